"""
Tavus proxy API — conversational avatars.

GET    /api/tavus/replicas                        — List Tavus replicas
POST   /api/tavus/replicas                        — Link a replica to an avatar (admin)
GET    /api/tavus/personas                        — List Tavus personas
POST   /api/tavus/personas                        — Create a persona (admin)
PATCH  /api/tavus/personas/{persona_id}           — Update a persona (admin)
DELETE /api/tavus/personas/{persona_id}           — Delete a persona (admin)
POST   /api/tavus/conversations                   — Start a conversation
GET    /api/tavus/conversations/{id}              — Fetch a conversation
DELETE /api/tavus/conversations/{id}              — End a conversation
GET    /api/tavus/conversations/{id}/transcript   — Fetch + mirror the transcript
GET    /api/tavus/sessions                        — Recent mirrored sessions (admin)

Tavus is called first; the local mirror is written afterwards. A failed
mirror write is logged and does not fail the request.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy import select, update as sql_update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AdminUser
from ..core.dependencies import get_db, get_tavus, require_admin
from ..models.avatar import InteractiveAvatar, TavusPersona, TavusReplica
from ..services import sessions
from ..services.tavus import TavusClient, TavusError

logger = logging.getLogger(__name__)

tavus_router = APIRouter(prefix="/tavus", tags=["tavus"])

DEFAULT_CONVERSATION_NAME = "New Conversation"

# Tavus answers these when the conversation no longer exists on its side
CONVERSATION_GONE = (404, 410)


# ── Request / response models ────────────────────────────────────────

class ConversationCreate(BaseModel):
    replica_id: Optional[str] = None
    persona_id: Optional[str] = None
    conversation_name: Optional[str] = None
    avatar_id: Optional[str] = None


class ConversationEndResponse(BaseModel):
    success: bool = True
    message: str = "Conversation ended successfully"
    duration_seconds: Optional[int] = None


class PersonaCreate(BaseModel):
    persona_name: Optional[str] = None
    system_prompt: Optional[str] = None
    context: Optional[str] = None
    llm_provider: Optional[str] = None
    llm_model: Optional[str] = None
    default_replica_id: Optional[str] = None
    avatar_id: Optional[str] = None


class PersonaUpdate(BaseModel):
    persona_name: Optional[str] = None
    system_prompt: Optional[str] = None
    context: Optional[str] = None
    llm_provider: Optional[str] = None
    llm_model: Optional[str] = None


class ReplicaLink(BaseModel):
    replica_id: str
    avatar_id: str


class TranscriptEntryOut(BaseModel):
    speaker: str
    message: str
    timestamp: Optional[str] = None


class TranscriptOut(BaseModel):
    conversation_id: str
    session_id: Optional[str] = None
    entries: list[TranscriptEntryOut] = []


class SessionOut(BaseModel):
    id: str
    conversation_id: str
    conversation_url: str
    conversation_name: Optional[str] = None
    avatar_id: Optional[str] = None
    replica_id: Optional[str] = None
    persona_id: Optional[str] = None
    status: str
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    user_info: dict = {}
    metadata: dict = {}
    created_at: Optional[datetime] = None


def _upstream_failure(action: str, e: TavusError) -> HTTPException:
    logger.error("Tavus %s failed: %s", action, e)
    return HTTPException(status_code=500, detail=f"Failed to {action}")


# ── Replicas ─────────────────────────────────────────────────────────

@tavus_router.get("/replicas")
async def list_replicas(tavus: TavusClient = Depends(get_tavus)):
    try:
        return await tavus.list_replicas()
    except TavusError as e:
        raise _upstream_failure("fetch replicas", e)


@tavus_router.post("/replicas")
async def link_replica(
    body: ReplicaLink,
    admin: AdminUser = Depends(require_admin),
    tavus: TavusClient = Depends(get_tavus),
    db: AsyncSession = Depends(get_db),
):
    """Mirror a Tavus replica locally and attach it to an interactive avatar."""
    avatar = await db.get(InteractiveAvatar, body.avatar_id)
    if avatar is None:
        raise HTTPException(status_code=404, detail="Avatar not found")

    try:
        replica = await tavus.get_replica(body.replica_id)
    except TavusError as e:
        raise _upstream_failure("fetch replica", e)

    result = await db.execute(select(TavusReplica).where(TavusReplica.replica_id == replica.replica_id))
    row = result.scalar_one_or_none()
    if row is None:
        row = TavusReplica(replica_id=replica.replica_id)
        db.add(row)
    row.replica_name = replica.replica_name
    row.status = replica.status or row.status
    row.thumbnail_video_url = replica.thumbnail_video_url
    row.training_video_url = replica.training_video_url
    row.avatar_id = avatar.id

    avatar.tavus_replica_id = replica.replica_id
    avatar.is_tavus_enabled = True
    await db.flush()

    logger.info("Replica %s linked to avatar %s by %s", replica.replica_id, avatar.id, admin.username)
    return replica.model_dump()


# ── Personas ─────────────────────────────────────────────────────────

@tavus_router.get("/personas")
async def list_personas(tavus: TavusClient = Depends(get_tavus)):
    try:
        return await tavus.list_personas()
    except TavusError as e:
        raise _upstream_failure("fetch personas", e)


@tavus_router.post("/personas")
async def create_persona(
    body: PersonaCreate,
    admin: AdminUser = Depends(require_admin),
    tavus: TavusClient = Depends(get_tavus),
    db: AsyncSession = Depends(get_db),
):
    if not body.persona_name or not body.system_prompt:
        raise HTTPException(status_code=400, detail="persona_name and system_prompt are required")

    try:
        persona = await tavus.create_persona(body.model_dump(exclude={"avatar_id"}))
    except TavusError as e:
        raise _upstream_failure("create persona", e)

    if body.avatar_id:
        await _mirror_persona(db, persona.persona_id, body)

    logger.info("Persona %s created by %s", persona.persona_id, admin.username)
    return persona.model_dump()


async def _mirror_persona(db: AsyncSession, persona_id: str, body: PersonaCreate) -> None:
    try:
        avatar = await db.get(InteractiveAvatar, body.avatar_id)
        if avatar is None:
            logger.warning("Persona %s: avatar %s not found, not linked", persona_id, body.avatar_id)
            return

        db.add(TavusPersona(
            persona_id=persona_id,
            persona_name=body.persona_name,
            avatar_id=avatar.id,
            system_prompt=body.system_prompt,
            context=body.context,
            llm_provider=body.llm_provider or "openai",
            llm_model=body.llm_model or "gpt-4",
            default_replica_id=body.default_replica_id,
        ))
        avatar.tavus_persona_id = persona_id
        await db.flush()
    except SQLAlchemyError as e:
        logger.error("Persona %s created at Tavus but local mirror failed: %s", persona_id, e)
        await db.rollback()


@tavus_router.patch("/personas/{persona_id}")
async def update_persona(
    persona_id: str,
    body: PersonaUpdate,
    admin: AdminUser = Depends(require_admin),
    tavus: TavusClient = Depends(get_tavus),
    db: AsyncSession = Depends(get_db),
):
    changes = body.model_dump(exclude_unset=True)
    if "persona_name" in changes and changes["persona_name"] is None:
        raise HTTPException(status_code=400, detail="persona_name cannot be null")
    changes = {k: v for k, v in changes.items() if v is not None}
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")

    try:
        persona = await tavus.update_persona(persona_id, changes)
    except TavusError as e:
        raise _upstream_failure("update persona", e)

    result = await db.execute(select(TavusPersona).where(TavusPersona.persona_id == persona_id))
    row = result.scalar_one_or_none()
    if row is not None:
        for key, value in changes.items():
            setattr(row, key, value)
        await db.flush()

    return persona.model_dump()


@tavus_router.delete("/personas/{persona_id}")
async def delete_persona(
    persona_id: str,
    admin: AdminUser = Depends(require_admin),
    tavus: TavusClient = Depends(get_tavus),
    db: AsyncSession = Depends(get_db),
):
    try:
        await tavus.delete_persona(persona_id)
    except TavusError as e:
        raise _upstream_failure("delete persona", e)

    result = await db.execute(select(TavusPersona).where(TavusPersona.persona_id == persona_id))
    row = result.scalar_one_or_none()
    if row is not None:
        await db.delete(row)
    await db.execute(
        sql_update(InteractiveAvatar)
        .where(InteractiveAvatar.tavus_persona_id == persona_id)
        .values(tavus_persona_id=None)
    )
    await db.flush()

    logger.info("Persona %s deleted by %s", persona_id, admin.username)
    return {"success": True, "message": "Persona deleted successfully"}


# ── Conversations ────────────────────────────────────────────────────

@tavus_router.post("/conversations")
async def create_conversation(
    body: ConversationCreate,
    request: Request,
    tavus: TavusClient = Depends(get_tavus),
    db: AsyncSession = Depends(get_db),
):
    if not body.replica_id or not body.persona_id:
        raise HTTPException(status_code=400, detail="replica_id and persona_id are required")

    name = body.conversation_name or DEFAULT_CONVERSATION_NAME
    try:
        conversation = await tavus.create_conversation(
            replica_id=body.replica_id,
            persona_id=body.persona_id,
            conversation_name=name,
        )
    except TavusError as e:
        raise _upstream_failure("create conversation", e)

    user_info = {
        "ip": request.client.host if request.client else None,
        "userAgent": request.headers.get("user-agent"),
    }

    session_id = None
    try:
        session = await sessions.record_session(
            db,
            conversation_id=conversation.conversation_id,
            conversation_url=conversation.conversation_url,
            conversation_name=name,
            replica_id=body.replica_id,
            persona_id=body.persona_id,
            avatar_id=body.avatar_id,
            user_info=user_info,
        )
        session_id = session.id
    except SQLAlchemyError as e:
        logger.error(
            "Conversation %s started but session mirror failed: %s",
            conversation.conversation_id, e,
        )
        await db.rollback()

    return {**conversation.model_dump(), "session_id": session_id}


@tavus_router.get("/conversations/{conversation_id}")
async def get_conversation(conversation_id: str, tavus: TavusClient = Depends(get_tavus)):
    try:
        conversation = await tavus.get_conversation(conversation_id)
    except TavusError as e:
        raise _upstream_failure("fetch conversation", e)
    return conversation.model_dump()


@tavus_router.delete("/conversations/{conversation_id}", response_model=ConversationEndResponse)
async def end_conversation(
    conversation_id: str,
    tavus: TavusClient = Depends(get_tavus),
    db: AsyncSession = Depends(get_db),
):
    try:
        await tavus.end_conversation(conversation_id)
    except TavusError as e:
        if e.status_code in CONVERSATION_GONE:
            await _record_lost_conversation(db, conversation_id, f"Tavus returned {e.status_code} on end")
        raise _upstream_failure("end conversation", e)

    duration = None
    try:
        session = await sessions.end_session(db, conversation_id)
        if session is not None:
            duration = session.duration_seconds
    except SQLAlchemyError as e:
        logger.error("Conversation %s ended but session update failed: %s", conversation_id, e)
        await db.rollback()

    return ConversationEndResponse(duration_seconds=duration)


async def _record_lost_conversation(db: AsyncSession, conversation_id: str, reason: str) -> None:
    # Committed here: the 500 raised afterwards rolls the request session back
    try:
        if await sessions.mark_session_error(db, conversation_id, reason):
            await db.commit()
    except SQLAlchemyError as e:
        logger.error("Could not mark session %s as error: %s", conversation_id, e)
        await db.rollback()


@tavus_router.get("/conversations/{conversation_id}/transcript", response_model=TranscriptOut)
async def get_transcript(
    conversation_id: str,
    tavus: TavusClient = Depends(get_tavus),
    db: AsyncSession = Depends(get_db),
):
    try:
        payload: Any = await tavus.get_transcript(conversation_id)
    except TavusError as e:
        raise _upstream_failure("fetch transcript", e)

    entries = sessions.extract_transcript_entries(payload)

    session_id = None
    try:
        session = await sessions.get_session_by_conversation(db, conversation_id)
        if session is not None:
            await sessions.replace_transcript(db, session, entries)
            session_id = session.id
    except SQLAlchemyError as e:
        logger.error("Transcript mirror failed for %s: %s", conversation_id, e)
        await db.rollback()

    return TranscriptOut(
        conversation_id=conversation_id,
        session_id=session_id,
        entries=[TranscriptEntryOut(**entry) for entry in entries],
    )


@tavus_router.get("/sessions", response_model=list[SessionOut])
async def list_sessions(
    admin: AdminUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    rows = await sessions.list_recent_sessions(db, limit=100)
    return [
        SessionOut(
            id=s.id,
            conversation_id=s.conversation_id,
            conversation_url=s.conversation_url,
            conversation_name=s.conversation_name,
            avatar_id=s.avatar_id,
            replica_id=s.replica_id,
            persona_id=s.persona_id,
            status=s.status,
            started_at=s.started_at,
            ended_at=s.ended_at,
            duration_seconds=s.duration_seconds,
            user_info=s.user_info or {},
            metadata=s.session_metadata or {},
            created_at=s.created_at,
        )
        for s in rows
    ]
