"""
Unit tests for the upload orchestrator.

The orchestrator runs against the in-memory storage and catalog mocks,
so each test can inspect exactly what reached the store and the catalog.
"""

import io
from datetime import datetime, timezone

import pytest

from media_relay.core.media.models import (
    CommitOutcome,
    IncomingFile,
    MediaKind,
    UploadedPart,
)
from media_relay.core.media.orchestrator import (
    BatchCatalogError,
    BatchStoreError,
    CompleteUploadError,
    PartUrlError,
    StartUploadError,
    UploadOrchestrator,
    UploadValidationError,
)
from media_relay.infrastructure.snowflake.repositories.media import CatalogError
from media_relay.infrastructure.storage.client import StorageError

from tests.conftest import FIXED_MILLIS


class FlakyCatalog:
    """Catalog wrapper whose Nth insert fails."""

    def __init__(self, inner, fail_on_insert: int) -> None:
        self._inner = inner
        self._fail_on = fail_on_insert
        self.insert_calls = 0

    def insert(self, record, kind):
        self.insert_calls += 1
        if self.insert_calls == self._fail_on:
            raise CatalogError("Insert failed: warehouse suspended")
        self._inner.insert(record, kind)

    def list_media(self):
        return self._inner.list_media()

    def list_keys(self):
        return self._inner.list_keys()


class BrokenStorage:
    """Store whose every call fails."""

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise StorageError(f"{name} failed: connection reset")
        return fail


def incoming(filename: str, data: bytes = b"data", content_type: str = "application/octet-stream"):
    return IncomingFile(
        filename=filename,
        content_type=content_type,
        stream=io.BytesIO(data),
        size=len(data),
    )


# ---------------------------------------------------------------------------
# Multipart Path
# ---------------------------------------------------------------------------

class TestStartUpload:

    def test_start_opens_session_under_generated_key(self, orchestrator, storage):
        started = orchestrator.start_upload("cat.png", "image/png")

        assert started.key == f"{FIXED_MILLIS}-cat.png"
        assert started.upload_id
        assert storage.open_upload_count == 1

    def test_store_failure_reports_start_error(self, catalog, key_generator):
        orchestrator = UploadOrchestrator(BrokenStorage(), catalog, key_generator)

        with pytest.raises(StartUploadError, match="Failed to start upload"):
            orchestrator.start_upload("cat.png", "image/png")


class TestGetPartUrl:

    def test_url_is_valid_for_one_hour(self, orchestrator):
        started = orchestrator.start_upload("cat.png", "image/png")

        url = orchestrator.get_part_url(started.key, started.upload_id, 1)

        assert "partNumber=1" in url
        assert f"uploadId={started.upload_id}" in url
        assert "expires=3600" in url

    def test_expiry_is_configurable(self, storage, catalog, key_generator):
        orchestrator = UploadOrchestrator(
            storage, catalog, key_generator, part_url_expiry_seconds=600
        )

        url = orchestrator.get_part_url("k", "u", 3)

        assert "expires=600" in url

    def test_unknown_session_is_not_checked(self, orchestrator):
        """Signing does not validate the session; the store rejects bad PUTs later."""
        assert orchestrator.get_part_url("missing-key", "no-such-upload", 7)

    def test_store_failure_reports_part_url_error(self, catalog, key_generator):
        orchestrator = UploadOrchestrator(BrokenStorage(), catalog, key_generator)

        with pytest.raises(PartUrlError, match="Failed to get part URL"):
            orchestrator.get_part_url("k", "u", 1)


class TestCompleteUpload:

    def test_full_image_upload_is_cataloged(self, orchestrator, storage, catalog):
        """start → part URL → complete leaves one Image record with the derived URL."""
        started = orchestrator.start_upload("cat.png", "image/png")
        orchestrator.get_part_url(started.key, started.upload_id, 1)

        completed = orchestrator.complete_upload(
            started.key,
            started.upload_id,
            [UploadedPart(1, "abc")],
            "cat.png",
        )

        assert completed.outcome is CommitOutcome.CATALOGED
        assert started.key in storage.objects

        listing = catalog.list_media()
        assert listing.videos == []
        assert len(listing.images) == 1
        record = listing.images[0]
        assert record.key == started.key
        assert record.original_name == "cat.png"
        assert record.url == f"https://gallery.s3.eu-west-3.amazonaws.com/{started.key}"

    def test_parts_are_sorted_before_finalizing(self, orchestrator, storage):
        started = orchestrator.start_upload("clip.mp4", "video/mp4")
        parts = [UploadedPart(3, "c"), UploadedPart(1, "a"), UploadedPart(2, "b")]

        orchestrator.complete_upload(started.key, started.upload_id, parts, "clip.mp4")

        sent = storage.completed_parts[started.key]
        assert [p.part_number for p in sent] == [1, 2, 3]
        assert [p.etag for p in sent] == ["a", "b", "c"]

    def test_video_lands_in_video_collection(self, orchestrator, catalog):
        started = orchestrator.start_upload("CLIP.MOV", "video/quicktime")

        orchestrator.complete_upload(started.key, started.upload_id, [UploadedPart(1, "e")], "CLIP.MOV")

        listing = catalog.list_media()
        assert [r.key for r in listing.videos] == [started.key]
        assert listing.images == []

    def test_unrecognized_type_is_stored_but_not_cataloged(self, orchestrator, storage, catalog):
        started = orchestrator.start_upload("notes.txt", "text/plain")

        completed = orchestrator.complete_upload(
            started.key, started.upload_id, [UploadedPart(1, "abc")], "notes.txt"
        )

        assert completed.outcome is CommitOutcome.UNCATALOGED
        assert completed.record is None
        assert started.key in storage.objects
        assert catalog.list_keys() == set()

    def test_store_rejection_reports_complete_error(self, orchestrator, catalog):
        with pytest.raises(CompleteUploadError, match="Failed to complete upload"):
            orchestrator.complete_upload("k", "no-such-upload", [UploadedPart(1, "a")], "cat.png")

        assert catalog.list_keys() == set()

    def test_catalog_failure_reports_complete_error(self, storage, catalog, key_generator):
        orchestrator = UploadOrchestrator(storage, FlakyCatalog(catalog, 1), key_generator)
        started = orchestrator.start_upload("cat.png", "image/png")

        with pytest.raises(CompleteUploadError):
            orchestrator.complete_upload(started.key, started.upload_id, [UploadedPart(1, "a")], "cat.png")

        # the object is durable even though the record is missing
        assert started.key in storage.objects


# ---------------------------------------------------------------------------
# Single-shot Path
# ---------------------------------------------------------------------------

class TestUploadBatch:

    def test_recognized_files_are_stored_and_cataloged(self, orchestrator, storage, catalog):
        result = orchestrator.upload_batch([
            incoming("a.jpg", b"jpeg-bytes", "image/jpeg"),
            incoming("b.mp4", b"mp4-bytes", "video/mp4"),
        ])

        assert len(result.cataloged) == 2
        assert result.uncataloged == []
        assert sorted(storage.objects.values()) == [b"jpeg-bytes", b"mp4-bytes"]

        listing = catalog.list_media()
        assert len(listing.images) == 1
        assert len(listing.videos) == 1
        assert listing.images[0].url in result.cataloged

    def test_unrecognized_files_are_stored_only(self, orchestrator, storage, catalog):
        result = orchestrator.upload_batch([incoming("a.png"), incoming("doc.pdf")])

        assert len(storage.objects) == 2
        assert len(result.cataloged) == 1
        assert len(result.uncataloged) == 1
        assert result.uncataloged[0].endswith("-doc.pdf")
        assert len(catalog.list_keys()) == 1

    def test_same_name_in_one_batch_gets_distinct_keys(self, orchestrator, storage):
        orchestrator.upload_batch([incoming("dup.png"), incoming("dup.png")])

        assert len(storage.objects) == 2

    def test_catalog_failure_keeps_all_objects(self, storage, catalog, key_generator):
        """Second insert fails: all three files stay in the store, only the first is cataloged."""
        flaky = FlakyCatalog(catalog, fail_on_insert=2)
        orchestrator = UploadOrchestrator(storage, flaky, key_generator)

        with pytest.raises(BatchCatalogError, match="Upload successful but DB save failed") as excinfo:
            orchestrator.upload_batch([incoming("1.png"), incoming("2.png"), incoming("3.png")])

        assert len(storage.objects) == 3
        assert len(excinfo.value.stored) == 3
        assert len(excinfo.value.cataloged) == 1
        assert flaky.insert_calls == 2
        assert len(catalog.list_keys()) == 1

    def test_store_failure_reports_batch_store_error(self, catalog, key_generator):
        orchestrator = UploadOrchestrator(BrokenStorage(), catalog, key_generator)

        with pytest.raises(BatchStoreError, match="Failed to upload files"):
            orchestrator.upload_batch([incoming("a.png")])

        assert catalog.list_keys() == set()

    def test_empty_batch_is_rejected(self, orchestrator):
        with pytest.raises(UploadValidationError, match="No files uploaded"):
            orchestrator.upload_batch([])

    def test_too_many_files_are_rejected_before_storing(self, storage, catalog, key_generator):
        orchestrator = UploadOrchestrator(storage, catalog, key_generator, max_files_per_upload=2)

        with pytest.raises(UploadValidationError, match="Too many files"):
            orchestrator.upload_batch([incoming("1.png"), incoming("2.png"), incoming("3.png")])

        assert storage.objects == {}

    def test_oversized_file_is_rejected_before_storing(self, storage, catalog, key_generator):
        orchestrator = UploadOrchestrator(storage, catalog, key_generator, max_file_size_bytes=4)

        with pytest.raises(UploadValidationError, match="File too large: big.png"):
            orchestrator.upload_batch([incoming("ok.png", b"1234"), incoming("big.png", b"12345")])

        assert storage.objects == {}


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------

class TestReconciliation:

    def test_find_uncataloged_lists_orphans_with_their_kind(self, orchestrator, storage, catalog):
        orchestrator.upload_batch([incoming("kept.png")])
        storage.put_object("1700000000123-lost.mp4", io.BytesIO(b"v"))
        storage.put_object("1700000000124-notes.txt", io.BytesIO(b"t"))

        missing = {obj.key: obj.kind for obj in orchestrator.find_uncataloged()}

        assert missing == {
            "1700000000123-lost.mp4": MediaKind.VIDEO,
            "1700000000124-notes.txt": None,
        }

    def test_repair_catalogs_recognized_orphans(self, orchestrator, storage, catalog):
        storage.put_object("1700000000123-lost.mp4", io.BytesIO(b"v"))
        storage.put_object("1700000000124-notes.txt", io.BytesIO(b"t"))

        repaired = orchestrator.repair_uncataloged()

        assert [r.key for r in repaired] == ["1700000000123-lost.mp4"]
        record = repaired[0]
        assert record.original_name == "lost.mp4"
        assert record.upload_date == datetime.fromtimestamp(1700000000.123, tz=timezone.utc)

        listing = catalog.list_media()
        assert [r.key for r in listing.videos] == ["1700000000123-lost.mp4"]
        assert [obj.key for obj in orchestrator.find_uncataloged()] == ["1700000000124-notes.txt"]

    def test_repair_of_foreign_key_uses_current_time(self, orchestrator, storage):
        storage.put_object("imports/beach.jpg", io.BytesIO(b"i"))
        before = datetime.now(timezone.utc)

        [record] = orchestrator.repair_uncataloged()

        assert record.original_name == "imports/beach.jpg"
        assert record.upload_date >= before

    def test_nothing_to_repair_when_in_sync(self, orchestrator):
        orchestrator.upload_batch([incoming("a.png"), incoming("b.mov")])

        assert orchestrator.find_uncataloged() == []
        assert orchestrator.repair_uncataloged() == []
