"""
Object storage integration for uploaded media.

Supports AWS S3 and S3-compatible stores via boto3.
Includes mock mode for local development without credentials.
"""
