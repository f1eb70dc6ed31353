"""
Upload orchestration.

The multipart protocol has three client-driven phases:

1. start: mint a key and open a multipart session in the object store
2. part URL: sign a one-hour PUT URL for each part the client uploads
3. complete: finalize the session, then commit a gallery record

The orchestrator keeps nothing between phases. The client echoes back
the key, the upload ID and its collected part ETags, so any process can
serve any phase.

A record is only written after the store confirms the object, never the
other way round. When the catalog write fails the object stays in the
store without a record; find_uncataloged() and repair_uncataloged()
detect and fix that divergence.
"""

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional, Protocol, Sequence

from .models import (
    BatchUploadResult,
    CommitOutcome,
    CompletedUpload,
    IncomingFile,
    MediaKind,
    MediaListing,
    MediaRecord,
    ObjectKeyGenerator,
    StartedUpload,
    UncatalogedObject,
    UploadedPart,
    classify_media,
    split_object_key,
)

logger = logging.getLogger(__name__)

DEFAULT_PART_URL_EXPIRY_SECONDS = 3600
DEFAULT_MAX_FILES_PER_UPLOAD = 100
DEFAULT_MAX_FILE_SIZE_BYTES = 5 * 1024 * 1024 * 1024


class ObjectStore(Protocol):
    def create_multipart_upload(self, key: str, content_type: str) -> str: ...
    def generate_part_upload_url(
        self, key: str, upload_id: str, part_number: int, expiry_seconds: int = 3600
    ) -> str: ...
    def complete_multipart_upload(
        self, key: str, upload_id: str, parts: Sequence[UploadedPart]
    ) -> None: ...
    def put_object(self, key: str, body, content_type: Optional[str] = None) -> str: ...
    def list_object_keys(self, prefix: str = "") -> list[str]: ...
    def object_url(self, key: str) -> str: ...


class MediaCatalog(Protocol):
    def insert(self, record: MediaRecord, kind: MediaKind) -> None: ...
    def list_media(self) -> MediaListing: ...
    def list_keys(self) -> set[str]: ...


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class UploadError(Exception):
    """Base class for upload failures. The message is safe to show clients."""
    pass


class UploadValidationError(UploadError):
    """The request itself is unacceptable (no files, too many, too large)."""
    pass


class StartUploadError(UploadError):
    def __init__(self) -> None:
        super().__init__("Failed to start upload")


class PartUrlError(UploadError):
    def __init__(self) -> None:
        super().__init__("Failed to get part URL")


class CompleteUploadError(UploadError):
    def __init__(self) -> None:
        super().__init__("Failed to complete upload")


class BatchStoreError(UploadError):
    def __init__(self, stored: list[str]) -> None:
        super().__init__("Failed to upload files")
        self.stored = stored


class BatchCatalogError(UploadError):
    """
    Catalog write failed partway through a batch.

    Every file in the batch is already in the store; only the locations
    in `cataloged` made it into the gallery.
    """

    def __init__(self, stored: list[str], cataloged: list[str]) -> None:
        super().__init__("Upload successful but DB save failed")
        self.stored = stored
        self.cataloged = cataloged


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class UploadOrchestrator:
    """
    Drives both upload paths against an object store and a media catalog.

    Instances are cheap and hold no per-upload state; the store, catalog
    and key generator handed in are the long-lived shared resources.
    """

    def __init__(
        self,
        storage: ObjectStore,
        catalog: MediaCatalog,
        key_generator: ObjectKeyGenerator,
        part_url_expiry_seconds: int = DEFAULT_PART_URL_EXPIRY_SECONDS,
        max_files_per_upload: int = DEFAULT_MAX_FILES_PER_UPLOAD,
        max_file_size_bytes: int = DEFAULT_MAX_FILE_SIZE_BYTES,
    ) -> None:
        self._storage = storage
        self._catalog = catalog
        self._keys = key_generator
        self._part_url_expiry = part_url_expiry_seconds
        self._max_files = max_files_per_upload
        self._max_file_size = max_file_size_bytes

    # -- multipart path ----------------------------------------------------

    def start_upload(self, filename: str, content_type: str) -> StartedUpload:
        key = self._keys.generate(filename)

        try:
            upload_id = self._storage.create_multipart_upload(key, content_type)
        except Exception as e:
            logger.error(
                "Error starting multipart upload",
                extra={"key": key, "error": str(e)}
            )
            raise StartUploadError() from e

        logger.info(
            "Multipart upload started",
            extra={"key": key, "content_type": content_type}
        )
        return StartedUpload(upload_id=upload_id, key=key)

    def get_part_url(self, key: str, upload_id: str, part_number: int) -> str:
        """
        Sign a URL for one part.

        Neither the part number sequence nor the session's liveness is
        checked here; the store rejects bad parts at PUT or finalize time.
        """
        try:
            return self._storage.generate_part_upload_url(
                key,
                upload_id,
                part_number,
                expiry_seconds=self._part_url_expiry,
            )
        except Exception as e:
            logger.error(
                "Error getting part URL",
                extra={"key": key, "part_number": part_number, "error": str(e)}
            )
            raise PartUrlError() from e

    def complete_upload(
        self,
        key: str,
        upload_id: str,
        parts: Iterable[UploadedPart],
        original_name: str,
    ) -> CompletedUpload:
        """
        Finalize a multipart upload and commit it to the gallery.

        Parts are sorted by part number first; clients may report them in
        completion order. An unrecognized extension is not an error: the
        object is kept and the outcome says it was not cataloged.
        """
        ordered_parts = sorted(parts, key=lambda part: part.part_number)

        try:
            self._storage.complete_multipart_upload(key, upload_id, ordered_parts)
            return self._commit(key, self._storage.object_url(key), original_name)
        except Exception as e:
            logger.error(
                "Error completing multipart upload",
                extra={"key": key, "upload_id": upload_id, "error": str(e)}
            )
            raise CompleteUploadError() from e

    # -- single-shot path --------------------------------------------------

    def upload_batch(self, files: Sequence[IncomingFile]) -> BatchUploadResult:
        """
        Store a batch of files received by the relay, then catalog them.

        All files are stored before any record is written. Cataloging
        runs in request order and stops at the first failure; stored
        objects are never removed.
        """
        self._validate_batch(files)

        stored: list[tuple[IncomingFile, str, str]] = []
        for incoming in files:
            key = self._keys.generate(incoming.filename)
            try:
                location = self._storage.put_object(key, incoming.stream, incoming.content_type)
            except Exception as e:
                logger.error(
                    "Error storing file",
                    extra={"upload_filename": incoming.filename, "key": key, "error": str(e)}
                )
                raise BatchStoreError([loc for _, _, loc in stored]) from e
            stored.append((incoming, key, location))

        result = BatchUploadResult()
        for incoming, key, location in stored:
            logger.info("Processing file", extra={"upload_filename": incoming.filename})
            try:
                completed = self._commit(key, location, incoming.filename)
            except Exception as e:
                logger.error(
                    "Error saving to catalog",
                    extra={"upload_filename": incoming.filename, "key": key, "error": str(e)}
                )
                raise BatchCatalogError(
                    stored=[loc for _, _, loc in stored],
                    cataloged=list(result.cataloged),
                ) from e

            if completed.is_cataloged:
                result.cataloged.append(location)
            else:
                result.uncataloged.append(location)

        return result

    def _validate_batch(self, files: Sequence[IncomingFile]) -> None:
        if not files:
            raise UploadValidationError("No files uploaded")
        if len(files) > self._max_files:
            raise UploadValidationError(
                f"Too many files. Maximum per upload: {self._max_files}"
            )
        for incoming in files:
            if incoming.size is not None and incoming.size > self._max_file_size:
                raise UploadValidationError(f"File too large: {incoming.filename}")

    # -- commit ------------------------------------------------------------

    def _commit(self, key: str, url: str, original_name: str) -> CompletedUpload:
        kind = classify_media(original_name)
        if kind is None:
            logger.warning(
                "Upload not cataloged: unrecognized file type",
                extra={"key": key, "original_name": original_name}
            )
            return CompletedUpload(key=key, outcome=CommitOutcome.UNCATALOGED)

        record = MediaRecord(key=key, url=url, original_name=original_name)
        self._catalog.insert(record, kind)

        logger.info(
            "Upload cataloged",
            extra={"key": key, "kind": kind.value}
        )
        return CompletedUpload(key=key, outcome=CommitOutcome.CATALOGED, record=record)

    # -- reconciliation ----------------------------------------------------

    def find_uncataloged(self, prefix: str = "") -> list[UncatalogedObject]:
        """Objects in the store that have no gallery record."""
        cataloged = self._catalog.list_keys()
        missing = []
        for key in self._storage.list_object_keys(prefix):
            if key in cataloged:
                continue
            _, original_name = split_object_key(key)
            missing.append(UncatalogedObject(key=key, kind=classify_media(original_name)))
        return missing

    def repair_uncataloged(self, prefix: str = "") -> list[MediaRecord]:
        """
        Write the missing records for uncataloged objects of a known type.

        The commit date is recovered from the key's timestamp when the key
        was generated by this service; otherwise the repair time is used.
        Objects of unrecognized types stay uncataloged.
        """
        repaired = []
        for obj in self.find_uncataloged(prefix):
            if obj.kind is None:
                continue

            timestamp, original_name = split_object_key(obj.key)
            if timestamp is not None:
                upload_date = datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc)
            else:
                upload_date = datetime.now(timezone.utc)

            record = MediaRecord(
                key=obj.key,
                url=self._storage.object_url(obj.key),
                original_name=original_name,
                upload_date=upload_date,
            )
            self._catalog.insert(record, obj.kind)
            repaired.append(record)

        if repaired:
            logger.info("Repaired uncataloged objects", extra={"count": len(repaired)})
        return repaired
