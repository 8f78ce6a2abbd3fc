"""
Public samples API — the showcase sections of the marketing site.

GET /api/samples/demo-videos         — AI Video Studio videos
GET /api/samples/avatars             — Avatar Studio videos
GET /api/samples/voice-samples       — Multilingual voice ads (audio)
GET /api/samples/edited-videos       — AI Video Editing videos
GET /api/samples/podcast-samples     — AI Podcast Production episodes (audio)
GET /api/samples/interactive-avatars — Conversational avatar catalog

Only published rows are returned, ordered by order_index ascending.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_db
from ..models.avatar import InteractiveAvatar
from ..models.media import MediaItem
from ..services.media_ingest import (
    CATEGORY_AVATAR_STUDIO,
    CATEGORY_PODCAST,
    CATEGORY_VIDEO_EDITING,
    CATEGORY_VIDEO_STUDIO,
    CATEGORY_VOICE_ADS,
)
from .common import CamelModel, iso

logger = logging.getLogger(__name__)

samples_router = APIRouter(prefix="/samples", tags=["samples"])


# ── View models ──────────────────────────────────────────────────────

class _SampleBase(CamelModel):
    id: str
    description: str
    order_index: int
    is_published: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class DemoVideo(_SampleBase):
    title: str
    video_url: str
    thumbnail_url: Optional[str] = None
    category: str = "demo"
    duration: str


class AvatarSample(_SampleBase):
    name: str
    role: str = "Custom Avatar"
    video_url: str
    thumbnail_url: Optional[str] = None


class VoiceSample(_SampleBase):
    name: str
    language: str
    gender: str
    accent: Optional[str] = None
    age_range: Optional[str] = None
    audio_url: str
    duration: str


class EditedVideo(_SampleBase):
    title: str
    project_type: str = "Custom Edit"
    duration: str
    video_url: str
    thumbnail_url: Optional[str] = None


class PodcastSample(_SampleBase):
    title: str
    category: str
    episode_number: str = ""
    duration: str
    audio_url: str
    host_name: Optional[str] = None
    guest_name: Optional[str] = None


class InteractiveAvatarOut(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    video_url: str
    thumbnail_url: Optional[str] = None
    default_personality: Optional[str] = None
    supported_languages: list = []
    demo_conversations: list = []
    voice_preview_url: Optional[str] = None
    is_published: bool
    order_index: int
    metadata: dict = {}
    tavus_replica_id: Optional[str] = None
    tavus_persona_id: Optional[str] = None
    is_tavus_enabled: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


# ── Queries ──────────────────────────────────────────────────────────

async def published_media(db: AsyncSession, category: str, file_type: str) -> list[MediaItem]:
    result = await db.execute(
        select(MediaItem)
        .where(
            MediaItem.category == category,
            MediaItem.file_type == file_type,
            MediaItem.is_published.is_(True),
        )
        .order_by(MediaItem.order_index.asc(), MediaItem.created_at.asc())
    )
    return list(result.scalars().all())


def _base_fields(m: MediaItem, default_description: str) -> dict:
    return {
        "id": m.id,
        "description": m.description or default_description,
        "order_index": m.order_index,
        "is_published": m.is_published,
        "created_at": iso(m.created_at),
        "updated_at": iso(m.updated_at),
    }


def avatar_to_view(a: InteractiveAvatar) -> InteractiveAvatarOut:
    return InteractiveAvatarOut(
        id=a.id,
        name=a.name,
        description=a.description,
        video_url=a.video_url,
        thumbnail_url=a.thumbnail_url,
        default_personality=a.default_personality,
        supported_languages=a.supported_languages or [],
        demo_conversations=a.demo_conversations or [],
        voice_preview_url=a.voice_preview_url,
        is_published=a.is_published,
        order_index=a.order_index,
        metadata=a.avatar_metadata or {},
        tavus_replica_id=a.tavus_replica_id,
        tavus_persona_id=a.tavus_persona_id,
        is_tavus_enabled=a.is_tavus_enabled,
        created_at=iso(a.created_at),
        updated_at=iso(a.updated_at),
    )


# ── Endpoints ────────────────────────────────────────────────────────

@samples_router.get("/demo-videos", response_model=list[DemoVideo])
async def demo_videos(db: AsyncSession = Depends(get_db)):
    media = await published_media(db, CATEGORY_VIDEO_STUDIO, "video")
    return [
        DemoVideo(
            **_base_fields(m, "Professional AI-generated video content"),
            title=m.title,
            video_url=m.compressed_file_path,
            thumbnail_url=m.thumbnail_path,
            duration=m.duration or "30s",
        )
        for m in media
    ]


@samples_router.get("/avatars", response_model=list[AvatarSample])
async def avatars(db: AsyncSession = Depends(get_db)):
    media = await published_media(db, CATEGORY_AVATAR_STUDIO, "video")
    return [
        AvatarSample(
            **_base_fields(m, "Professional AI-generated avatar"),
            name=m.title,
            video_url=m.compressed_file_path,
            thumbnail_url=m.thumbnail_path,
        )
        for m in media
    ]


@samples_router.get("/voice-samples", response_model=list[VoiceSample])
async def voice_samples(db: AsyncSession = Depends(get_db)):
    media = await published_media(db, CATEGORY_VOICE_ADS, "audio")
    out = []
    for m in media:
        meta = m.audio_metadata or {}
        out.append(VoiceSample(
            **_base_fields(m, "Custom voice ad"),
            name=m.title,
            language=meta.get("language") or "English",
            gender=meta.get("gender") or "Neutral",
            accent=meta.get("accent") or None,
            age_range=meta.get("ageRange") or None,
            audio_url=m.compressed_file_path,
            duration=m.duration or "30s",
        ))
    return out


@samples_router.get("/edited-videos", response_model=list[EditedVideo])
async def edited_videos(db: AsyncSession = Depends(get_db)):
    media = await published_media(db, CATEGORY_VIDEO_EDITING, "video")
    return [
        EditedVideo(
            **_base_fields(m, "Professionally edited video content"),
            title=m.title,
            duration=m.duration or "60s",
            video_url=m.compressed_file_path,
            thumbnail_url=m.thumbnail_path,
        )
        for m in media
    ]


@samples_router.get("/podcast-samples", response_model=list[PodcastSample])
async def podcast_samples(db: AsyncSession = Depends(get_db)):
    media = await published_media(db, CATEGORY_PODCAST, "audio")
    out = []
    for m in media:
        meta = m.audio_metadata or {}
        tags = meta.get("tags") or []
        out.append(PodcastSample(
            **_base_fields(m, "Professional podcast episode"),
            title=m.title,
            category=tags[0] if tags else "general",
            episode_number=str(meta.get("episodeType") or ""),
            duration=m.duration or "15m",
            audio_url=m.compressed_file_path,
            host_name=meta.get("hostName") or None,
            guest_name=meta.get("guestName") or None,
        ))
    return out


@samples_router.get("/interactive-avatars", response_model=list[InteractiveAvatarOut])
async def interactive_avatars(db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(InteractiveAvatar)
        .where(InteractiveAvatar.is_published.is_(True))
        .order_by(InteractiveAvatar.order_index.asc())
    )
    return [avatar_to_view(a) for a in result.scalars().all()]
