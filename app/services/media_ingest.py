"""
Gallery media ingestion.

An admin submits either a file (multipart) or an external URL, plus title and
category. Files are spooled to TEMP_UPLOAD_DIR, processed with ffmpeg, handed
to storage and recorded as a MediaItem. External links are recorded verbatim.

The temp upload is removed on every exit path. One attempt, no retry.
"""

import json
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from fastapi import UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.storage import StorageBackend
from ..models.media import MediaItem
from .media_processor import MediaProcessor, ProcessedMedia

logger = logging.getLogger(__name__)

# ── Gallery categories (one per public samples endpoint) ─────────────

CATEGORY_VIDEO_STUDIO = "AI Video Studio"
CATEGORY_AVATAR_STUDIO = "Avatar Studio"
CATEGORY_VOICE_ADS = "Professional Multilingual Voice Ads"
CATEGORY_VIDEO_EDITING = "AI Video Editing"
CATEGORY_PODCAST = "AI Podcast Production"

MEDIA_CATEGORIES = (
    CATEGORY_VIDEO_STUDIO,
    CATEGORY_AVATAR_STUDIO,
    CATEGORY_VOICE_ADS,
    CATEGORY_VIDEO_EDITING,
    CATEGORY_PODCAST,
)

# ── Allowed upload types ─────────────────────────────────────────────

ALLOWED_VIDEO_TYPES = {"video/mp4", "video/quicktime", "video/x-msvideo", "video/webm"}
ALLOWED_AUDIO_TYPES = {"audio/mpeg", "audio/wav", "audio/mp3", "audio/x-wav"}
ALLOWED_MIME_TYPES = ALLOWED_VIDEO_TYPES | ALLOWED_AUDIO_TYPES
FILE_TYPES = ("video", "audio")

CHUNK_SIZE = 1024 * 1024


class IngestError(Exception):
    """Ingestion rejected (4xx) or failed (5xx). Message is safe to show."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


@dataclass
class IngestRequest:
    title: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    audio_metadata: Optional[str] = None  # raw JSON string from the form
    url: Optional[str] = None
    file_type: Optional[str] = None  # required for external links


def is_allowed_mime(content_type: Optional[str]) -> bool:
    return (content_type or "").split(";")[0].strip().lower() in ALLOWED_MIME_TYPES


def parse_audio_metadata(raw: Optional[str]) -> Optional[dict]:
    """Unparsable metadata is logged and dropped, not rejected."""
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("Ignoring unparsable audio metadata: %s", e)
        return None
    if not isinstance(value, dict):
        logger.warning("Ignoring audio metadata that is not an object")
        return None
    return value


async def spool_upload(upload: UploadFile, temp_dir: Path, max_bytes: int) -> Path:
    """
    Stream an upload into temp_dir, enforcing max_bytes.

    A partial file is removed before raising.
    """
    temp_dir.mkdir(parents=True, exist_ok=True)
    target = temp_dir / f"{uuid.uuid4().hex}{Path(upload.filename or '').suffix.lower()}"
    written = 0
    try:
        with open(target, "wb") as out:
            while True:
                chunk = await upload.read(CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_bytes:
                    raise IngestError(
                        413, f"File too large (max {max_bytes // (1024 * 1024)}MB)"
                    )
                out.write(chunk)
        if written == 0:
            raise IngestError(400, "Empty file")
    except BaseException:
        discard_temp(target)
        raise
    return target


def discard_temp(path: Optional[Path]) -> None:
    if path is None:
        return
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.error("Failed to remove temp upload %s: %s", path, e)


async def ingest_media(
    db: AsyncSession,
    request: IngestRequest,
    upload: Optional[UploadFile],
    *,
    storage: StorageBackend,
    processor: MediaProcessor,
    temp_dir: Path,
    max_bytes: int,
) -> MediaItem:
    """
    Validate, process and persist one gallery item.

    Raises:
        IngestError: 4xx for rejected input, 500 for processing failures.
    """
    temp_path: Optional[Path] = None
    try:
        if upload is None and not request.url:
            raise IngestError(400, "No file or URL provided")

        if upload is not None:
            # Reject by type before a single byte hits the disk
            if not is_allowed_mime(upload.content_type):
                raise IngestError(400, "Invalid file type. Only video and audio files are allowed.")
            temp_path = await spool_upload(upload, temp_dir, max_bytes)

        if not request.title or not request.category:
            raise IngestError(400, "Title and category are required")
        if request.category not in MEDIA_CATEGORIES:
            raise IngestError(
                400, f"Unknown category '{request.category}'. Use one of: {', '.join(MEDIA_CATEGORIES)}"
            )

        audio_metadata = parse_audio_metadata(request.audio_metadata)

        if upload is None:
            item = _external_link_item(request, audio_metadata)
        else:
            item = await _processed_upload_item(
                request, audio_metadata, upload, temp_path, storage, processor
            )

        db.add(item)
        try:
            await db.flush()
        except SQLAlchemyError as e:
            logger.exception("Failed to record media %s: %s", item.title, e)
            await delete_media_files(storage, item)
            raise IngestError(500, "Failed to upload and process media") from e
        logger.info("Media created: %s (%s, %s)", item.id, item.file_type, item.category)
        return item
    finally:
        discard_temp(temp_path)


def _external_link_item(request: IngestRequest, audio_metadata: Optional[dict]) -> MediaItem:
    if request.file_type not in FILE_TYPES:
        raise IngestError(400, "File type (video/audio) is required for external links")

    return MediaItem(
        title=request.title,
        category=request.category,
        description=request.description or None,
        file_type=request.file_type,
        original_filename=request.url,
        compressed_file_path=request.url,
        thumbnail_path=None,
        duration="0",
        file_size="External",
        is_external_link=True,
        media_metadata=None,
        audio_metadata=audio_metadata,
    )


async def _processed_upload_item(
    request: IngestRequest,
    audio_metadata: Optional[dict],
    upload: UploadFile,
    temp_path: Path,
    storage: StorageBackend,
    processor: MediaProcessor,
) -> MediaItem:
    file_type = "video" if (upload.content_type or "").lower().startswith("video/") else "audio"
    original = upload.filename or f"upload.{file_type}"
    logger.info("Processing %s: %s", file_type, original)

    processed: Optional[ProcessedMedia] = None
    try:
        processed = await processor.process(temp_path, original, file_type)
        stored_path = await storage.upload_file(
            processed.output_path, processed.output_filename, folder=file_type
        )
        thumbnail = None
        if processed.thumbnail_path is not None:
            thumbnail = await storage.upload_file(
                processed.thumbnail_path, processed.thumbnail_path.name, folder="thumbnails"
            )
    except Exception as e:
        logger.exception("Media processing failed for %s: %s", original, e)
        raise IngestError(500, "Failed to upload and process media") from e
    finally:
        processor.discard(processed)

    return MediaItem(
        title=request.title,
        category=request.category,
        description=request.description or None,
        file_type=file_type,
        original_filename=original,
        compressed_file_path=stored_path,
        thumbnail_path=thumbnail,
        duration=processed.duration,
        file_size=processed.file_size,
        is_external_link=False,
        media_metadata=processed.metadata,
        audio_metadata=audio_metadata,
    )


async def delete_media_files(storage: StorageBackend, item: MediaItem) -> None:
    """Remove stored files of a media item. External links own no files."""
    if item.is_external_link:
        return
    for path in (item.compressed_file_path, item.thumbnail_path):
        if path:
            await storage.delete(path)
