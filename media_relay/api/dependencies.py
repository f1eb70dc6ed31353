"""
FastAPI dependency injection.

The object store client, the catalog connection pool and the key
generator are built once at startup (build_shared_resources) and kept on
app.state.resources. Dependencies hand them to route handlers, wrapped in
a per-request UploadOrchestrator. Tests swap any of them through
app.dependency_overrides.
"""

import hmac
import logging
from dataclasses import dataclass
from typing import Annotated, Any, Optional

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..config.settings import Settings, get_settings
from ..core.media.models import ObjectKeyGenerator
from ..core.media.orchestrator import UploadOrchestrator
from ..infrastructure.snowflake.client import create_connection_pool
from ..infrastructure.snowflake.repositories.media import PooledMediaCatalog, SnowflakeConfig
from ..infrastructure.storage.client import StorageClient, StorageConfig, create_storage_client

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------------
# Shared Resources
# ---------------------------------------------------------------------------

@dataclass
class SharedResources:
    """Process-wide handles, safe to use from concurrent requests."""
    storage: StorageClient
    catalog_pool: Any  # SnowflakeConnectionPool or MockSnowflakeConnectionPool
    key_generator: ObjectKeyGenerator

    def close(self) -> None:
        self.catalog_pool.close()


def build_shared_resources(settings: Settings) -> SharedResources:
    storage_config = StorageConfig(
        bucket_name=settings.aws_bucket_name,
        region=settings.aws_region,
        access_key_id=settings.aws_access_key_id,
        secret_access_key=settings.aws_secret_access_key,
        endpoint_url=settings.s3_endpoint_url,
        public_base_url=settings.public_base_url,
        timeout_seconds=settings.io_timeout_seconds,
    )

    snowflake_config = SnowflakeConfig(
        account=settings.snowflake_account,
        user=settings.snowflake_user,
        password=settings.snowflake_password or None,
        private_key_path=settings.snowflake_private_key_path,
        database=settings.snowflake_database,
        schema=settings.snowflake_schema,
        warehouse=settings.snowflake_warehouse,
        role=settings.snowflake_role,
    )

    return SharedResources(
        storage=create_storage_client(
            config=storage_config,
            mock_mode=settings.storage_mock_mode,
        ),
        catalog_pool=create_connection_pool(
            config=snowflake_config,
            mock_mode=settings.snowflake_mock_mode,
            pool_size=settings.snowflake_pool_size,
        ),
        key_generator=ObjectKeyGenerator(),
    )


def get_resources(request: Request) -> SharedResources:
    return request.app.state.resources


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

def verify_admin_token(
    settings: Annotated[Settings, Depends(get_settings)],
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> str:
    """
    Check the bearer token handed out by /api/login.

    Raises 401 if no token is sent and 403 if it does not match.
    """
    if credentials is None:
        logger.warning("Request missing admin token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )

    # compare_digest rejects non-ASCII str, so compare encoded bytes
    if not hmac.compare_digest(
        credentials.credentials.encode("utf-8"),
        settings.admin_token.encode("utf-8"),
    ):
        logger.warning("Invalid admin token attempt")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid token",
        )

    return credentials.credentials


def verify_upload_access(
    settings: Annotated[Settings, Depends(get_settings)],
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> None:
    """Upload endpoints are open unless UPLOAD_AUTH_REQUIRED is set."""
    if settings.upload_auth_required:
        verify_admin_token(settings, credentials)


# ---------------------------------------------------------------------------
# Service Dependencies
# ---------------------------------------------------------------------------

def get_storage_client(
    resources: Annotated[SharedResources, Depends(get_resources)],
) -> StorageClient:
    return resources.storage


def get_key_generator(
    resources: Annotated[SharedResources, Depends(get_resources)],
) -> ObjectKeyGenerator:
    return resources.key_generator


def get_media_repository(
    resources: Annotated[SharedResources, Depends(get_resources)],
) -> PooledMediaCatalog:
    """
    Provide the media catalog backed by the shared connection pool.

    No connection is held by the dependency itself; each catalog
    operation checks one out, so failures stay inside the route's own
    error handling.
    """
    return PooledMediaCatalog(resources.catalog_pool)


def get_upload_orchestrator(
    settings: Annotated[Settings, Depends(get_settings)],
    storage: Annotated[StorageClient, Depends(get_storage_client)],
    catalog: Annotated[PooledMediaCatalog, Depends(get_media_repository)],
    key_generator: Annotated[ObjectKeyGenerator, Depends(get_key_generator)],
) -> UploadOrchestrator:
    return UploadOrchestrator(
        storage=storage,
        catalog=catalog,
        key_generator=key_generator,
        part_url_expiry_seconds=settings.part_url_expiry_seconds,
        max_files_per_upload=settings.max_files_per_upload,
        max_file_size_bytes=settings.max_file_size_bytes,
    )


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

AdminUser = Annotated[str, Depends(verify_admin_token)]
UploadAccess = Annotated[None, Depends(verify_upload_access)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
StorageClientDep = Annotated[StorageClient, Depends(get_storage_client)]
MediaRepositoryDep = Annotated[PooledMediaCatalog, Depends(get_media_repository)]
UploadOrchestratorDep = Annotated[UploadOrchestrator, Depends(get_upload_orchestrator)]
