"""
Domain models for media uploads.

These models represent the core business concepts: what a committed upload
looks like, how a filename decides which gallery collection it lands in,
and how object keys are minted. They have no dependencies on web frameworks,
object stores or databases.
"""

import os
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional
from uuid import UUID, uuid4


class MediaKind(Enum):
    """The two gallery collections a committed upload can belong to."""
    IMAGE = "image"
    VIDEO = "video"


class CommitOutcome(Enum):
    """
    What happened to an upload once the object store confirmed it.

    UNCATALOGED uploads exist in the store but have no gallery record,
    because their extension is not a recognized media type.
    """
    CATALOGED = "cataloged"
    UNCATALOGED = "uncataloged"


IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".heic", ".webp", ".avif", ".heif"})
VIDEO_EXTENSIONS = frozenset({".mp4", ".mov", ".move", ".m4v", ".qt"})


def classify_media(filename: str) -> Optional[MediaKind]:
    """
    Pick the collection for a file by its extension (case-insensitive).

    Returns None for anything that is neither a known image nor video type.
    """
    ext = os.path.splitext(filename)[1].lower()
    if ext in IMAGE_EXTENSIONS:
        return MediaKind.IMAGE
    if ext in VIDEO_EXTENSIONS:
        return MediaKind.VIDEO
    return None


def public_object_url(
    bucket: str,
    region: str,
    key: str,
    base_url: Optional[str] = None,
) -> str:
    """
    Public URL of a stored object.

    Virtual-hosted S3 style unless a base URL (CDN, R2 public bucket, MinIO)
    is configured, in which case the key is appended to it.
    """
    if base_url:
        return f"{base_url.rstrip('/')}/{key}"
    return f"https://{bucket}.s3.{region}.amazonaws.com/{key}"


def _now_millis() -> int:
    return int(time.time() * 1000)


class ObjectKeyGenerator:
    """
    Mints object keys of the form ``<millisecond-timestamp>-<filename>``.

    The timestamp never repeats within one generator: when the clock has
    not advanced past the last issued value, the last value plus one is
    used instead. One generator is shared by every request handler of the
    process, so the lock is required.
    """

    def __init__(self, clock: Callable[[], int] = _now_millis) -> None:
        self._clock = clock
        self._last = 0
        self._lock = threading.Lock()

    def next_timestamp(self) -> int:
        with self._lock:
            timestamp = max(self._clock(), self._last + 1)
            self._last = timestamp
            return timestamp

    def generate(self, filename: str) -> str:
        return f"{self.next_timestamp()}-{filename}"


def split_object_key(key: str) -> tuple[Optional[int], str]:
    """
    Recover (timestamp, original filename) from a generated key.

    Keys that were not minted by ObjectKeyGenerator come back as
    (None, key).
    """
    prefix, sep, filename = key.partition("-")
    if sep and prefix.isdigit() and filename:
        return int(prefix), filename
    return None, key


@dataclass(frozen=True)
class UploadedPart:
    """One uploaded part of a multipart upload, as echoed back by the client."""
    part_number: int
    etag: str

    def __post_init__(self) -> None:
        if self.part_number < 1:
            raise ValueError("Part number must be a positive integer")


@dataclass
class MediaRecord:
    """
    A committed upload as it appears in the gallery.

    upload_date is the commit time, not the time the first byte arrived.
    """
    key: str
    url: str
    original_name: str
    upload_date: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: UUID = field(default_factory=uuid4)


@dataclass(frozen=True)
class StartedUpload:
    """Continuation data the client must echo back for later phases."""
    upload_id: str
    key: str


@dataclass
class CompletedUpload:
    """Result of finalizing a multipart upload."""
    key: str
    outcome: CommitOutcome
    record: Optional[MediaRecord] = None

    @property
    def is_cataloged(self) -> bool:
        return self.outcome is CommitOutcome.CATALOGED


@dataclass
class IncomingFile:
    """A file received by the relay upload path, not yet stored."""
    filename: str
    content_type: Optional[str]
    stream: object  # binary file-like object
    size: Optional[int] = None


@dataclass
class BatchUploadResult:
    """Locations of files handled by one relay upload request."""
    cataloged: list[str] = field(default_factory=list)
    uncataloged: list[str] = field(default_factory=list)


@dataclass
class MediaListing:
    """Gallery contents, each collection newest first."""
    images: list[MediaRecord] = field(default_factory=list)
    videos: list[MediaRecord] = field(default_factory=list)


@dataclass(frozen=True)
class UncatalogedObject:
    """A stored object that has no catalog record."""
    key: str
    kind: Optional[MediaKind]
