"""
Upload endpoints.

Multipart flow (large files, bytes go straight to the object store):
1. POST /api/upload/start → uploadId and key
2. POST /api/upload/get-part-url → signed PUT URL for one part
   (the client PUTs the part there and keeps the returned ETag)
3. POST /api/upload/complete → finalize and add to the gallery

Relay flow (small batches, bytes pass through this service):
    POST /api/upload with multipart form field `files`
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, File, HTTPException, UploadFile, status
from pydantic import BaseModel, ConfigDict, Field

from ...core.media.models import IncomingFile, UploadedPart
from ...core.media.orchestrator import UploadError, UploadValidationError
from ..dependencies import UploadAccess, UploadOrchestratorDep

logger = logging.getLogger(__name__)

router = APIRouter()

# S3 accepts part numbers 1..10000
MAX_PART_NUMBER = 10000


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class StartUploadRequest(BaseModel):
    filename: str = Field(min_length=1)
    filetype: str = Field(default="application/octet-stream", description="MIME type of the file")


class StartUploadResponse(BaseModel):
    success: bool = True
    upload_id: str = Field(serialization_alias="uploadId")
    key: str


class PartUrlRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str = Field(min_length=1)
    upload_id: str = Field(alias="uploadId", min_length=1)
    part_number: int = Field(alias="partNumber", ge=1, le=MAX_PART_NUMBER)


class PartUrlResponse(BaseModel):
    success: bool = True
    url: str


class CompletedPart(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    part_number: int = Field(alias="PartNumber", ge=1, le=MAX_PART_NUMBER)
    etag: str = Field(alias="ETag")


class CompleteUploadRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str = Field(min_length=1)
    upload_id: str = Field(alias="uploadId", min_length=1)
    parts: list[CompletedPart] = Field(min_length=1)
    original_name: str = Field(alias="originalName")


class CompleteUploadResponse(BaseModel):
    success: bool = True
    message: str
    outcome: str = Field(description="cataloged, or uncataloged for unrecognized file types")


class BatchUploadResponse(BaseModel):
    success: bool = True
    message: str
    files: list[str] = Field(description="Locations of files added to the gallery")
    uncataloged: list[str] = Field(
        default_factory=list,
        description="Locations of stored files with unrecognized types",
    )


def _upload_failed(error: UploadError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=str(error),
    )


# ---------------------------------------------------------------------------
# Multipart Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/start",
    response_model=StartUploadResponse,
    summary="Start a multipart upload",
)
def start_upload(
    request: StartUploadRequest,
    access: UploadAccess,
    orchestrator: UploadOrchestratorDep,
) -> StartUploadResponse:
    try:
        started = orchestrator.start_upload(request.filename, request.filetype)
    except UploadError as e:
        raise _upload_failed(e)

    return StartUploadResponse(upload_id=started.upload_id, key=started.key)


@router.post(
    "/get-part-url",
    response_model=PartUrlResponse,
    summary="Get a signed URL for one part",
)
def get_part_url(
    request: PartUrlRequest,
    access: UploadAccess,
    orchestrator: UploadOrchestratorDep,
) -> PartUrlResponse:
    try:
        url = orchestrator.get_part_url(request.key, request.upload_id, request.part_number)
    except UploadError as e:
        raise _upload_failed(e)

    return PartUrlResponse(url=url)


@router.post(
    "/complete",
    response_model=CompleteUploadResponse,
    summary="Finalize a multipart upload",
)
def complete_upload(
    request: CompleteUploadRequest,
    access: UploadAccess,
    orchestrator: UploadOrchestratorDep,
) -> CompleteUploadResponse:
    parts = [UploadedPart(part_number=p.part_number, etag=p.etag) for p in request.parts]

    try:
        completed = orchestrator.complete_upload(
            request.key,
            request.upload_id,
            parts,
            request.original_name,
        )
    except UploadError as e:
        raise _upload_failed(e)

    if completed.is_cataloged:
        message = "Upload completed and saved"
    else:
        message = "Upload completed but file type is not cataloged"

    return CompleteUploadResponse(message=message, outcome=completed.outcome.value)


# ---------------------------------------------------------------------------
# Relay Endpoint
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=BatchUploadResponse,
    summary="Upload files through the relay",
    description="Up to 100 files per request, 5GB each",
)
def upload_files(
    access: UploadAccess,
    orchestrator: UploadOrchestratorDep,
    files: Annotated[Optional[list[UploadFile]], File(description="Images and videos")] = None,
) -> BatchUploadResponse:
    """
    Relay a batch of files into the bucket, then catalog them.

    Starlette spools every form file to a temporary file before this
    handler runs, so the per-file size limit is only checked once the
    whole body has arrived. Bodies whose Content-Length exceeds the batch
    limit are refused earlier, in main.reject_oversized_batches. Large
    files belong on the multipart path.
    """
    logger.info("Upload request received", extra={"file_count": len(files or [])})

    incoming = [
        IncomingFile(
            filename=upload.filename or "upload",
            content_type=upload.content_type,
            stream=upload.file,
            size=upload.size,
        )
        for upload in files or []
    ]

    try:
        result = orchestrator.upload_batch(incoming)
    except UploadValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except UploadError as e:
        raise _upload_failed(e)

    return BatchUploadResponse(
        message="Files uploaded and saved successfully",
        files=result.cataloged,
        uncataloged=result.uncataloged,
    )
