"""
Unit tests for the media domain models.

These tests verify classification, URL derivation and key generation
without touching any external service.
"""

import re
import threading

import pytest

from media_relay.core.media.models import (
    IMAGE_EXTENSIONS,
    VIDEO_EXTENSIONS,
    CommitOutcome,
    CompletedUpload,
    MediaKind,
    ObjectKeyGenerator,
    UploadedPart,
    classify_media,
    public_object_url,
    split_object_key,
)


# ---------------------------------------------------------------------------
# Classification Tests
# ---------------------------------------------------------------------------

class TestClassifyMedia:
    """Tests for extension-based classification."""

    @pytest.mark.parametrize("ext", sorted(IMAGE_EXTENSIONS))
    def test_image_extensions_classify_as_image(self, ext):
        assert classify_media(f"photo{ext}") is MediaKind.IMAGE
        assert classify_media(f"photo{ext.upper()}") is MediaKind.IMAGE

    @pytest.mark.parametrize("ext", sorted(VIDEO_EXTENSIONS))
    def test_video_extensions_classify_as_video(self, ext):
        assert classify_media(f"clip{ext}") is MediaKind.VIDEO
        assert classify_media(f"clip{ext.upper()}") is MediaKind.VIDEO

    @pytest.mark.parametrize(
        "filename",
        ["notes.txt", "archive.zip", "movie.avi", "README", "photo.png.bak", ".png"],
    )
    def test_unsupported_files_classify_as_nothing(self, filename):
        assert classify_media(filename) is None

    def test_mixed_case_extension_is_recognized(self):
        assert classify_media("Holiday.JpEg") is MediaKind.IMAGE

    def test_extension_sets_do_not_overlap(self):
        """Every recognized extension maps to exactly one collection."""
        assert IMAGE_EXTENSIONS.isdisjoint(VIDEO_EXTENSIONS)


# ---------------------------------------------------------------------------
# URL Tests
# ---------------------------------------------------------------------------

class TestPublicObjectUrl:

    def test_url_derived_from_bucket_region_and_key(self):
        url = public_object_url("gallery", "eu-west-3", "1700000000000-cat.png")
        assert url == "https://gallery.s3.eu-west-3.amazonaws.com/1700000000000-cat.png"

    def test_base_url_overrides_s3_host(self):
        url = public_object_url("gallery", "auto", "k.png", base_url="https://cdn.example.com/")
        assert url == "https://cdn.example.com/k.png"


# ---------------------------------------------------------------------------
# Key Generation Tests
# ---------------------------------------------------------------------------

class TestObjectKeyGenerator:

    def test_key_is_timestamp_dash_filename(self):
        generator = ObjectKeyGenerator(clock=lambda: 1_700_000_000_000)
        assert generator.generate("cat.png") == "1700000000000-cat.png"

    def test_key_format_with_real_clock(self):
        key = ObjectKeyGenerator().generate("My Video.mov")
        assert re.fullmatch(r"\d+-My Video\.mov", key)

    def test_different_timestamps_give_different_keys(self):
        ticks = iter([1000, 2000])
        generator = ObjectKeyGenerator(clock=lambda: next(ticks))

        assert generator.generate("cat.png") == "1000-cat.png"
        assert generator.generate("cat.png") == "2000-cat.png"

    def test_same_millisecond_same_name_does_not_collide(self):
        """A stalled clock still yields distinct, increasing timestamps."""
        generator = ObjectKeyGenerator(clock=lambda: 5000)

        keys = [generator.generate("cat.png") for _ in range(3)]

        assert keys == ["5000-cat.png", "5001-cat.png", "5002-cat.png"]

    def test_clock_going_backwards_keeps_timestamps_increasing(self):
        ticks = iter([9000, 8000])
        generator = ObjectKeyGenerator(clock=lambda: next(ticks))

        assert generator.next_timestamp() == 9000
        assert generator.next_timestamp() == 9001

    def test_concurrent_generation_is_unique(self):
        generator = ObjectKeyGenerator(clock=lambda: 42)
        keys = []
        lock = threading.Lock()

        def worker():
            for _ in range(50):
                key = generator.generate("same.jpg")
                with lock:
                    keys.append(key)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(keys) == 400
        assert len(set(keys)) == 400


class TestSplitObjectKey:

    def test_generated_key_splits_into_timestamp_and_name(self):
        assert split_object_key("1700000000000-my-cat.png") == (1700000000000, "my-cat.png")

    def test_foreign_key_is_returned_whole(self):
        assert split_object_key("uploads/cat.png") == (None, "uploads/cat.png")
        assert split_object_key("abc-cat.png") == (None, "abc-cat.png")


# ---------------------------------------------------------------------------
# Value Object Tests
# ---------------------------------------------------------------------------

class TestUploadedPart:

    def test_part_number_must_be_positive(self):
        with pytest.raises(ValueError, match="positive"):
            UploadedPart(part_number=0, etag="abc")

    def test_parts_are_values(self):
        assert UploadedPart(1, "abc") == UploadedPart(1, "abc")


class TestCompletedUpload:

    def test_is_cataloged_reflects_outcome(self):
        assert CompletedUpload(key="k", outcome=CommitOutcome.CATALOGED).is_cataloged
        assert not CompletedUpload(key="k", outcome=CommitOutcome.UNCATALOGED).is_cataloged
