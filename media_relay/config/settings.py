"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables with sensible defaults.
Using Pydantic's BaseSettings means we get:
- Type validation at startup (fail fast if config is wrong)
- Documentation of what's required vs optional
- Easy testing with different configurations

Mock modes enable local development without an S3 bucket or a Snowflake
account.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

FIVE_GIGABYTES = 5 * 1024 * 1024 * 1024


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    For lists (like cors_origins), use comma-separated values in env.
    """

    # API Configuration
    api_title: str = "Media Relay API"
    api_version: str = "v1"

    # Authentication
    admin_password: str = Field(
        default="",
        description="Shared secret for the admin login. Login always fails while empty."
    )
    admin_token: str = Field(
        default="media-relay-admin-token",
        description="Token handed out on successful login and expected in the Authorization header."
    )
    upload_auth_required: bool = Field(
        default=False,
        description="Require the admin token on upload endpoints."
    )

    # S3 Storage Configuration
    aws_region: str = Field(
        default="us-east-1",
        description="Region of the media bucket. Part of every public media URL."
    )
    aws_bucket_name: str = Field(
        default="media-relay",
        description="Bucket holding uploaded media"
    )
    aws_access_key_id: str = Field(
        default="",
        description="S3 access key ID"
    )
    aws_secret_access_key: str = Field(
        default="",
        description="S3 secret access key"
    )
    s3_endpoint_url: Optional[str] = Field(
        default=None,
        description="Custom endpoint for S3-compatible stores (MinIO, R2). AWS is used when unset."
    )
    public_base_url: Optional[str] = Field(
        default=None,
        description="Base URL for public media links. Derived from bucket and region when unset."
    )
    storage_mock_mode: bool = Field(
        default=False,
        description="Use in-memory mock instead of a real bucket."
    )

    # Snowflake Configuration
    snowflake_account: str = Field(
        default="",
        description="Snowflake account identifier"
    )
    snowflake_user: str = Field(
        default="",
        description="Snowflake service account username"
    )
    snowflake_password: str = Field(
        default="",
        description="Snowflake service account password"
    )
    snowflake_private_key_path: Optional[str] = Field(
        default=None,
        description="Path to RSA private key file for key-pair authentication"
    )
    snowflake_database: str = Field(
        default="MEDIA_RELAY",
        description="Snowflake database name"
    )
    snowflake_schema: str = Field(
        default="CATALOG",
        description="Snowflake schema name"
    )
    snowflake_warehouse: str = Field(
        default="COMPUTE_WH",
        description="Snowflake warehouse for query execution"
    )
    snowflake_role: Optional[str] = Field(
        default=None,
        description="Snowflake role to use (optional)"
    )
    snowflake_pool_size: int = Field(
        default=5,
        description="Idle connections kept open for reuse across requests"
    )
    snowflake_mock_mode: bool = Field(
        default=False,
        description="Use in-memory mock instead of real Snowflake connection. Enables local dev without DB."
    )

    # Upload Limits
    max_file_size_bytes: int = Field(
        default=FIVE_GIGABYTES,
        description="Largest single file accepted by the relay upload path."
    )
    max_files_per_upload: int = Field(
        default=100,
        description="Most files accepted in one relay upload request."
    )
    part_url_expiry_seconds: int = Field(
        default=3600,
        description="Lifetime of a presigned part upload URL."
    )
    io_timeout_seconds: int = Field(
        default=3600,
        description="Connect and read timeout for object store calls. Large transfers need a generous value."
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # CORS
    cors_origins: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def validate_required_fields(self) -> list[str]:
        """
        Validate that required fields are set based on mock mode settings.

        Returns list of missing required fields.
        This is separate from Pydantic validation because requirements
        depend on whether we're in mock mode.
        """
        missing = []

        if not self.admin_password:
            missing.append("ADMIN_PASSWORD")

        if not self.snowflake_mock_mode:
            if not self.snowflake_account:
                missing.append("SNOWFLAKE_ACCOUNT")
            if not self.snowflake_user:
                missing.append("SNOWFLAKE_USER")
            if not self.snowflake_password and not self.snowflake_private_key_path:
                missing.append("SNOWFLAKE_PASSWORD or SNOWFLAKE_PRIVATE_KEY_PATH")

        if not self.storage_mock_mode:
            if not self.aws_access_key_id:
                missing.append("AWS_ACCESS_KEY_ID")
            if not self.aws_secret_access_key:
                missing.append("AWS_SECRET_ACCESS_KEY")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache means we only load settings once per process.
    For tests, call get_settings.cache_clear() to reset.
    """
    return Settings()
