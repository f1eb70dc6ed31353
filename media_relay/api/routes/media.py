"""
Gallery listing and catalog reconciliation endpoints.

The listing is public. Reconciliation is admin-only: it compares the
bucket with the catalog and can write the records that a failed catalog
save left out.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from ...core.media.models import MediaRecord
from ..dependencies import AdminUser, MediaRepositoryDep, UploadOrchestratorDep

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Response Models
# ---------------------------------------------------------------------------

class MediaItem(BaseModel):
    media_id: str = Field(serialization_alias="_id")
    key: str
    url: str
    last_modified: datetime = Field(serialization_alias="lastModified")

    @classmethod
    def from_record(cls, record: MediaRecord) -> "MediaItem":
        return cls(
            media_id=str(record.id),
            key=record.key,
            url=record.url,
            last_modified=record.upload_date,
        )


class MediaCollections(BaseModel):
    images: list[MediaItem]
    videos: list[MediaItem]


class MediaListResponse(BaseModel):
    success: bool = True
    data: MediaCollections


class UncatalogedItem(BaseModel):
    key: str
    kind: Optional[str] = Field(None, description="image, video, or null for unrecognized types")


class UncatalogedResponse(BaseModel):
    success: bool = True
    data: list[UncatalogedItem]


class ReconcileResponse(BaseModel):
    success: bool = True
    message: str
    repaired: list[str]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=MediaListResponse,
    summary="List gallery media",
    description="All images and videos, each newest first",
)
def list_media(repository: MediaRepositoryDep) -> MediaListResponse:
    try:
        listing = repository.list_media()
    except Exception as e:
        logger.error("Error fetching media", extra={"error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch media",
        )

    return MediaListResponse(
        data=MediaCollections(
            images=[MediaItem.from_record(r) for r in listing.images],
            videos=[MediaItem.from_record(r) for r in listing.videos],
        )
    )


@router.get(
    "/uncataloged",
    response_model=UncatalogedResponse,
    summary="Stored objects without a gallery record",
)
def list_uncataloged(
    admin: AdminUser,
    orchestrator: UploadOrchestratorDep,
) -> UncatalogedResponse:
    try:
        missing = orchestrator.find_uncataloged()
    except Exception as e:
        logger.error("Error scanning for uncataloged objects", extra={"error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to scan storage",
        )

    return UncatalogedResponse(
        data=[
            UncatalogedItem(key=obj.key, kind=obj.kind.value if obj.kind else None)
            for obj in missing
        ]
    )


@router.post(
    "/reconcile",
    response_model=ReconcileResponse,
    summary="Catalog stored media that has no record",
)
def reconcile(
    admin: AdminUser,
    orchestrator: UploadOrchestratorDep,
) -> ReconcileResponse:
    try:
        repaired = orchestrator.repair_uncataloged()
    except Exception as e:
        logger.error("Error reconciling catalog", extra={"error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to reconcile catalog",
        )

    return ReconcileResponse(
        message=f"Cataloged {len(repaired)} object(s)",
        repaired=[record.key for record in repaired],
    )
