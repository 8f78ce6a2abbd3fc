"""
Admin interactive-avatar API.

GET    /api/admin/avatars      — List all avatars (published or not)
POST   /api/admin/avatars      — Create an avatar
PATCH  /api/admin/avatars/{id} — Update an avatar
DELETE /api/admin/avatars/{id} — Delete an avatar (linked replicas/personas/sessions keep their rows)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_db, require_admin
from ..models.avatar import InteractiveAvatar
from .common import CamelModel, MessageResponse
from .samples import InteractiveAvatarOut, avatar_to_view

logger = logging.getLogger(__name__)

admin_avatars_router = APIRouter(
    prefix="/admin/avatars",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)


class DemoExchange(CamelModel):
    prompt: str
    response: str


class AvatarCreate(CamelModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    description: Optional[str] = None
    video_url: str = Field(min_length=1)
    thumbnail_url: Optional[str] = None
    default_personality: str = "professional"
    supported_languages: list[str] = []
    demo_conversations: list[DemoExchange] = []
    voice_preview_url: Optional[str] = None
    is_published: bool = False
    order_index: int = 0
    metadata: dict = {}


class AvatarUpdate(CamelModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    description: Optional[str] = None
    video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    default_personality: Optional[str] = None
    supported_languages: Optional[list[str]] = None
    demo_conversations: Optional[list[DemoExchange]] = None
    voice_preview_url: Optional[str] = None
    is_published: Optional[bool] = None
    order_index: Optional[int] = None
    metadata: Optional[dict] = None
    is_tavus_enabled: Optional[bool] = None


_NOT_NULL = ("name", "video_url", "is_published", "order_index", "is_tavus_enabled")


def _column_values(data: dict) -> dict:
    if "metadata" in data:
        data["avatar_metadata"] = data.pop("metadata")
    return data


async def _get_or_404(db: AsyncSession, avatar_id: str) -> InteractiveAvatar:
    avatar = await db.get(InteractiveAvatar, avatar_id)
    if avatar is None:
        raise HTTPException(status_code=404, detail="Avatar not found")
    return avatar


@admin_avatars_router.get("", response_model=list[InteractiveAvatarOut])
async def list_avatars(db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(InteractiveAvatar).order_by(InteractiveAvatar.order_index.asc())
    )
    return [avatar_to_view(a) for a in result.scalars().all()]


@admin_avatars_router.post("", response_model=InteractiveAvatarOut, status_code=201)
async def create_avatar(body: AvatarCreate, db: AsyncSession = Depends(get_db)):
    avatar = InteractiveAvatar(**_column_values(body.model_dump()))
    db.add(avatar)
    await db.flush()
    logger.info("Avatar created: %s (%s)", avatar.id, avatar.name)
    return avatar_to_view(avatar)


@admin_avatars_router.patch("/{avatar_id}", response_model=InteractiveAvatarOut)
async def update_avatar(avatar_id: str, body: AvatarUpdate, db: AsyncSession = Depends(get_db)):
    avatar = await _get_or_404(db, avatar_id)

    changes = body.model_dump(exclude_unset=True)
    for key in _NOT_NULL:
        if key in changes and changes[key] is None:
            raise HTTPException(status_code=400, detail=f"{key} cannot be null")

    for key, value in _column_values(changes).items():
        setattr(avatar, key, value)
    await db.flush()
    return avatar_to_view(avatar)


@admin_avatars_router.delete("/{avatar_id}", response_model=MessageResponse)
async def delete_avatar(avatar_id: str, db: AsyncSession = Depends(get_db)):
    avatar = await _get_or_404(db, avatar_id)
    await db.delete(avatar)
    await db.flush()
    logger.info("Avatar deleted: %s", avatar_id)
    return MessageResponse(message="Avatar deleted successfully")
