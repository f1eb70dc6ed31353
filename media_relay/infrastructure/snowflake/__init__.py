"""Snowflake persistence for the media catalog."""
