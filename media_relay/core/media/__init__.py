"""
Media upload logic.

Contains the upload orchestrator, domain models, and media classification.
"""

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
    public_object_url,
)
from .orchestrator import (
    BatchCatalogError,
    BatchStoreError,
    CompleteUploadError,
    PartUrlError,
    StartUploadError,
    UploadError,
    UploadOrchestrator,
    UploadValidationError,
)

__all__ = [
    "BatchUploadResult",
    "CommitOutcome",
    "CompletedUpload",
    "IncomingFile",
    "MediaKind",
    "MediaListing",
    "MediaRecord",
    "ObjectKeyGenerator",
    "StartedUpload",
    "UncatalogedObject",
    "UploadedPart",
    "classify_media",
    "public_object_url",
    "BatchCatalogError",
    "BatchStoreError",
    "CompleteUploadError",
    "PartUrlError",
    "StartUploadError",
    "UploadError",
    "UploadOrchestrator",
    "UploadValidationError",
]
