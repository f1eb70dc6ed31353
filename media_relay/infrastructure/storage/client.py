"""
Object storage client for uploaded media.

Supports AWS S3 and S3-compatible stores (MinIO, R2) with a mock mode for
local development.

Two upload paths go through this client:
- Multipart: the relay opens a session, signs one URL per part and
  finalizes the session. Part bytes travel from the client straight to
  the store and never pass through this process.
- Direct: small files received by the relay are streamed with put_object.

Mock mode keeps objects in memory, enabling API testing without
provisioning actual object storage.
"""

import logging
from dataclasses import dataclass
from typing import BinaryIO, Optional, Protocol, Sequence
from uuid import uuid4

from ...core.media.models import UploadedPart, public_object_url

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when storage operations fail."""
    pass


@dataclass
class StorageConfig:
    """Configuration for S3-compatible storage."""
    bucket_name: str
    region: str
    access_key_id: str = ""
    secret_access_key: str = ""
    endpoint_url: Optional[str] = None
    public_base_url: Optional[str] = None
    timeout_seconds: int = 3600


class StorageClient(Protocol):
    """
    Protocol for object storage operations.

    The bucket is bound when the client is built, so callers only deal
    in keys.
    """

    def create_multipart_upload(self, key: str, content_type: str) -> str:
        """Open a multipart session and return its upload ID."""
        ...

    def generate_part_upload_url(
        self,
        key: str,
        upload_id: str,
        part_number: int,
        expiry_seconds: int = 3600,
    ) -> str:
        """Sign a URL allowing one PUT of one part."""
        ...

    def complete_multipart_upload(
        self,
        key: str,
        upload_id: str,
        parts: Sequence[UploadedPart],
    ) -> None:
        """Finalize a session. Parts must already be in ascending order."""
        ...

    def put_object(
        self,
        key: str,
        body: BinaryIO,
        content_type: Optional[str] = None,
    ) -> str:
        """Stream an object into the bucket and return its location."""
        ...

    def list_object_keys(self, prefix: str = "") -> list[str]:
        """List every key in the bucket under a prefix."""
        ...

    def object_url(self, key: str) -> str:
        """Public URL for a key."""
        ...

    def ping(self) -> None:
        """Confirm the bucket is reachable; raises StorageError otherwise."""
        ...


class S3StorageClient:
    """
    S3 object storage client.

    Uses boto3 so the same code talks to AWS S3, MinIO or R2; only the
    endpoint differs. Timeouts are stretched to match the one-hour
    lifetime of part URLs, since finalizing a multi-gigabyte upload can
    take a while on the store side.
    """

    def __init__(self, config: StorageConfig) -> None:
        try:
            import boto3
            from botocore.config import Config
        except ImportError:
            raise ImportError(
                "boto3 is required for S3 storage. Install with: pip install boto3"
            )

        self._config = config

        boto_config = Config(
            signature_version='s3v4',
            connect_timeout=config.timeout_seconds,
            read_timeout=config.timeout_seconds,
            retries={'max_attempts': 1},
        )

        self._s3_client = boto3.client(
            's3',
            endpoint_url=config.endpoint_url,
            aws_access_key_id=config.access_key_id or None,
            aws_secret_access_key=config.secret_access_key or None,
            region_name=config.region,
            config=boto_config,
        )

        logger.info(
            "Initialized S3 storage client",
            extra={
                "bucket": config.bucket_name,
                "region": config.region,
                "endpoint": config.endpoint_url,
            }
        )

    def create_multipart_upload(self, key: str, content_type: str) -> str:
        try:
            response = self._s3_client.create_multipart_upload(
                Bucket=self._config.bucket_name,
                Key=key,
                ContentType=content_type,
            )
        except Exception as e:
            logger.error(
                "Failed to create multipart upload",
                extra={"key": key, "error": str(e)}
            )
            raise StorageError(f"Create multipart upload failed: {e}")

        logger.debug(
            "Created multipart upload",
            extra={"key": key, "upload_id": response["UploadId"]}
        )
        return response["UploadId"]

    def generate_part_upload_url(
        self,
        key: str,
        upload_id: str,
        part_number: int,
        expiry_seconds: int = 3600,
    ) -> str:
        """
        Sign a PUT URL for a single part.

        Signing is local; nothing checks that the session is still open.
        A stale upload ID only surfaces when the client's PUT is rejected.
        """
        try:
            return self._s3_client.generate_presigned_url(
                'upload_part',
                Params={
                    'Bucket': self._config.bucket_name,
                    'Key': key,
                    'UploadId': upload_id,
                    'PartNumber': part_number,
                },
                ExpiresIn=expiry_seconds,
                HttpMethod='PUT',
            )
        except Exception as e:
            logger.error(
                "Failed to generate part upload URL",
                extra={"key": key, "part_number": part_number, "error": str(e)}
            )
            raise StorageError(f"Presigned URL generation failed: {e}")

    def complete_multipart_upload(
        self,
        key: str,
        upload_id: str,
        parts: Sequence[UploadedPart],
    ) -> None:
        try:
            self._s3_client.complete_multipart_upload(
                Bucket=self._config.bucket_name,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={
                    'Parts': [
                        {'PartNumber': part.part_number, 'ETag': part.etag}
                        for part in parts
                    ]
                },
            )
        except Exception as e:
            logger.error(
                "Failed to complete multipart upload",
                extra={"key": key, "upload_id": upload_id, "error": str(e)}
            )
            raise StorageError(f"Complete multipart upload failed: {e}")

        logger.info(
            "Completed multipart upload",
            extra={"key": key, "part_count": len(parts)}
        )

    def put_object(
        self,
        key: str,
        body: BinaryIO,
        content_type: Optional[str] = None,
    ) -> str:
        """
        Stream a file object into the bucket.

        upload_fileobj switches to a managed multipart transfer for large
        bodies, so the file is never read into memory whole.
        """
        extra_args = {'ContentType': content_type} if content_type else None

        try:
            self._s3_client.upload_fileobj(
                body,
                self._config.bucket_name,
                key,
                ExtraArgs=extra_args,
            )
        except Exception as e:
            logger.error(
                "Failed to upload object",
                extra={"key": key, "error": str(e)}
            )
            raise StorageError(f"Upload failed: {e}")

        logger.debug("Uploaded object", extra={"key": key})
        return self.object_url(key)

    def list_object_keys(self, prefix: str = "") -> list[str]:
        keys: list[str] = []
        try:
            paginator = self._s3_client.get_paginator('list_objects_v2')
            for page in paginator.paginate(
                Bucket=self._config.bucket_name,
                Prefix=prefix,
            ):
                keys.extend(obj['Key'] for obj in page.get('Contents', []))
        except Exception as e:
            logger.error(
                "Failed to list objects",
                extra={"prefix": prefix, "error": str(e)}
            )
            raise StorageError(f"List failed: {e}")

        return keys

    def ping(self) -> None:
        try:
            self._s3_client.head_bucket(Bucket=self._config.bucket_name)
        except Exception as e:
            raise StorageError(f"Bucket unreachable: {e}")

    def object_url(self, key: str) -> str:
        return public_object_url(
            self._config.bucket_name,
            self._config.region,
            key,
            base_url=self._config.public_base_url,
        )


# ---------------------------------------------------------------------------
# Mock Storage for Local Development
# ---------------------------------------------------------------------------

class MockStorageClient:
    """
    In-memory storage for local development and tests.

    Multipart sessions are tracked so that finalizing an unknown session
    fails the way S3 does. Part bytes never reach the mock (clients PUT
    them to the signed URL), so a finalized multipart object is stored
    empty and the parts it was finalized with are kept in
    completed_parts for inspection.
    """

    def __init__(self, config: Optional[StorageConfig] = None) -> None:
        self._config = config or StorageConfig(bucket_name="mock-bucket", region="mock-region")
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, Optional[str]] = {}
        self.completed_parts: dict[str, list[UploadedPart]] = {}
        self._sessions: dict[str, dict] = {}
        logger.info("Initialized mock storage client (in-memory)")

    def create_multipart_upload(self, key: str, content_type: str) -> str:
        upload_id = uuid4().hex
        self._sessions[upload_id] = {"key": key, "content_type": content_type}
        return upload_id

    def generate_part_upload_url(
        self,
        key: str,
        upload_id: str,
        part_number: int,
        expiry_seconds: int = 3600,
    ) -> str:
        return (
            f"mock://storage/{key}"
            f"?uploadId={upload_id}&partNumber={part_number}&expires={expiry_seconds}"
        )

    def complete_multipart_upload(
        self,
        key: str,
        upload_id: str,
        parts: Sequence[UploadedPart],
    ) -> None:
        session = self._sessions.get(upload_id)
        if session is None or session["key"] != key:
            raise StorageError(f"No such upload: {upload_id}")

        del self._sessions[upload_id]
        self.objects[key] = b""
        self.content_types[key] = session["content_type"]
        self.completed_parts[key] = list(parts)

    def put_object(
        self,
        key: str,
        body: BinaryIO,
        content_type: Optional[str] = None,
    ) -> str:
        self.objects[key] = body.read()
        self.content_types[key] = content_type

        logger.debug(
            "Stored object in mock storage",
            extra={"key": key, "size_bytes": len(self.objects[key])}
        )

        return self.object_url(key)

    def list_object_keys(self, prefix: str = "") -> list[str]:
        return sorted(key for key in self.objects if key.startswith(prefix))

    def ping(self) -> None:
        pass

    def object_url(self, key: str) -> str:
        return public_object_url(
            self._config.bucket_name,
            self._config.region,
            key,
            base_url=self._config.public_base_url,
        )

    @property
    def open_upload_count(self) -> int:
        return len(self._sessions)


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_storage_client(
    config: Optional[StorageConfig] = None,
    mock_mode: bool = False,
) -> StorageClient:
    """
    Create storage client based on configuration.

    Args:
        config: Storage configuration (required if not mock_mode)
        mock_mode: If True, return mock client for testing

    Returns:
        StorageClient implementation (S3 or Mock)
    """
    if mock_mode:
        return MockStorageClient(config)

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return S3StorageClient(config)
