"""
Core business logic for media uploads.

This module is framework-agnostic - it doesn't import FastAPI, boto3,
or Snowflake. Storage and catalog are reached through the protocols
they are handed, so the upload flow can be tested against in-memory fakes.
"""
