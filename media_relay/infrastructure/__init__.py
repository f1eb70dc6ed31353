"""
Infrastructure layer - external service integrations.

Each subdirectory wraps an external dependency:
- snowflake: Media catalog persistence
- storage: Object storage (S3-compatible)

These wrappers translate between external formats and our domain models.
"""
