"""
Admin media API — gallery management.

GET    /api/admin/media        — List all media (published or not)
GET    /api/admin/media/{id}   — Get one media item
POST   /api/admin/media/upload — Upload a file (multipart) or register an external URL
PATCH  /api/admin/media/{id}   — Edit title, category, publish flag, order...
DELETE /api/admin/media/{id}   — Delete the row and its stored files
"""

import logging
from pathlib import Path
from typing import Literal, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import ConfigDict
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import get_settings
from ..core.dependencies import get_db, get_media_processor, get_storage_dep, require_admin
from ..core.storage import StorageBackend
from ..models.media import MediaItem
from ..services import media_ingest
from ..services.media_ingest import IngestError, IngestRequest
from ..services.media_processor import MediaProcessor
from .common import CamelModel, MessageResponse, iso

logger = logging.getLogger(__name__)

admin_media_router = APIRouter(
    prefix="/admin/media",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)


class MediaOut(CamelModel):
    id: str
    title: str
    description: Optional[str] = None
    category: str
    file_type: str
    original_filename: Optional[str] = None
    compressed_file_path: str
    thumbnail_path: Optional[str] = None
    duration: Optional[str] = None
    file_size: Optional[str] = None
    is_external_link: bool
    metadata: Optional[dict] = None
    audio_metadata: Optional[dict] = None
    is_published: bool
    order_index: int
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class MediaUpdate(CamelModel):
    """Partial update. Unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    file_type: Optional[Literal["video", "audio"]] = None
    thumbnail_path: Optional[str] = None
    duration: Optional[str] = None
    audio_metadata: Optional[dict] = None
    is_published: Optional[bool] = None
    order_index: Optional[int] = None


def media_to_out(m: MediaItem) -> MediaOut:
    return MediaOut(
        id=m.id,
        title=m.title,
        description=m.description,
        category=m.category,
        file_type=m.file_type,
        original_filename=m.original_filename,
        compressed_file_path=m.compressed_file_path,
        thumbnail_path=m.thumbnail_path,
        duration=m.duration,
        file_size=m.file_size,
        is_external_link=m.is_external_link,
        metadata=m.media_metadata,
        audio_metadata=m.audio_metadata,
        is_published=m.is_published,
        order_index=m.order_index,
        created_at=iso(m.created_at),
        updated_at=iso(m.updated_at),
    )


async def _get_or_404(db: AsyncSession, media_id: str) -> MediaItem:
    media = await db.get(MediaItem, media_id)
    if media is None:
        raise HTTPException(status_code=404, detail="Media not found")
    return media


@admin_media_router.get("", response_model=list[MediaOut])
async def list_media(db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(MediaItem).order_by(MediaItem.category, MediaItem.order_index, MediaItem.created_at.desc())
    )
    return [media_to_out(m) for m in result.scalars().all()]


@admin_media_router.get("/{media_id}", response_model=MediaOut)
async def get_media(media_id: str, db: AsyncSession = Depends(get_db)):
    return media_to_out(await _get_or_404(db, media_id))


@admin_media_router.post("/upload", response_model=MediaOut)
async def upload_media(
    file: Optional[UploadFile] = File(None, description="Video or audio file"),
    title: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    audio_metadata: Optional[str] = Form(None, alias="audioMetadata"),
    url: Optional[str] = Form(None),
    file_type: Optional[str] = Form(None, alias="fileType"),
    db: AsyncSession = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_dep),
    processor: MediaProcessor = Depends(get_media_processor),
):
    """
    Add a gallery item.

    Either send `file` (video/audio, up to MAX_UPLOAD_BYTES), or send `url`
    together with `fileType` (video|audio) to register an external link.

    Example:
        curl -X POST http://localhost:8000/api/admin/media/upload \\
             -F "file=@promo.mp4" -F "title=Promo" -F "category=AI Video Studio"
    """
    settings = get_settings()
    request = IngestRequest(
        title=title,
        category=category,
        description=description,
        audio_metadata=audio_metadata,
        url=url,
        file_type=file_type,
    )
    try:
        media = await media_ingest.ingest_media(
            db,
            request,
            file,
            storage=storage,
            processor=processor,
            temp_dir=Path(settings.temp_upload_dir),
            max_bytes=settings.max_upload_bytes,
        )
    except IngestError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e

    return media_to_out(media)


@admin_media_router.patch("/{media_id}", response_model=MediaOut)
async def update_media(
    media_id: str,
    update: MediaUpdate,
    db: AsyncSession = Depends(get_db),
):
    media = await _get_or_404(db, media_id)

    changes = update.model_dump(exclude_unset=True)
    for key in ("title", "category", "file_type", "is_published", "order_index"):
        if key in changes and changes[key] is None:
            raise HTTPException(status_code=400, detail=f"{key} cannot be null")
    if "category" in changes and changes["category"] not in media_ingest.MEDIA_CATEGORIES:
        raise HTTPException(status_code=400, detail=f"Unknown category '{changes['category']}'")

    for key, value in changes.items():
        setattr(media, key, value)
    await db.flush()

    logger.info("Media updated: %s fields=%s", media_id, sorted(changes))
    return media_to_out(media)


@admin_media_router.delete("/{media_id}", response_model=MessageResponse)
async def delete_media(
    media_id: str,
    db: AsyncSession = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_dep),
):
    media = await _get_or_404(db, media_id)

    await media_ingest.delete_media_files(storage, media)
    await db.delete(media)
    await db.flush()

    logger.info("Media deleted: %s", media_id)
    return MessageResponse(message="Media deleted successfully")
