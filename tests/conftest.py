"""
Shared pytest fixtures.

Unit fixtures wire the orchestrator to the in-memory storage and catalog
mocks. The api fixtures build a fresh app with both mock modes enabled.
"""

import pytest
from fastapi.testclient import TestClient

from media_relay.config.settings import get_settings
from media_relay.core.media.models import ObjectKeyGenerator
from media_relay.core.media.orchestrator import UploadOrchestrator
from media_relay.infrastructure.snowflake.client import MockSnowflakeConnection
from media_relay.infrastructure.snowflake.repositories.media import MediaCatalogRepository
from media_relay.infrastructure.storage.client import MockStorageClient, StorageConfig

FIXED_MILLIS = 1_700_000_000_000


@pytest.fixture
def storage():
    return MockStorageClient(StorageConfig(bucket_name="gallery", region="eu-west-3"))


@pytest.fixture
def connection():
    return MockSnowflakeConnection()


@pytest.fixture
def catalog(connection):
    return MediaCatalogRepository(connection)


@pytest.fixture
def key_generator():
    """Generator on a frozen clock, so keys are predictable."""
    return ObjectKeyGenerator(clock=lambda: FIXED_MILLIS)


@pytest.fixture
def orchestrator(storage, catalog, key_generator):
    return UploadOrchestrator(
        storage=storage,
        catalog=catalog,
        key_generator=key_generator,
    )


@pytest.fixture
def api_env(monkeypatch):
    """Environment for an app running entirely on in-memory mocks."""
    env = {
        "STORAGE_MOCK_MODE": "true",
        "SNOWFLAKE_MOCK_MODE": "true",
        "ADMIN_PASSWORD": "open-sesame",
        "ADMIN_TOKEN": "test-admin-token",
        "AWS_BUCKET_NAME": "gallery",
        "AWS_REGION": "eu-west-3",
        "UPLOAD_AUTH_REQUIRED": "false",
    }
    for name, value in env.items():
        monkeypatch.setenv(name, value)

    get_settings.cache_clear()
    yield env
    get_settings.cache_clear()


@pytest.fixture
def app(api_env):
    from media_relay.main import create_app

    return create_app()


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers(api_env):
    return {"Authorization": f"Bearer {api_env['ADMIN_TOKEN']}"}
