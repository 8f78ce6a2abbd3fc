"""
Local mirror of Tavus conversation sessions.

The external conversation is the source of truth; the rows here exist for
analytics. There is no compensation between the two: if one side fails the
other is left as it is and the failure is logged by the caller.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import select, update, delete as sql_delete
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.base import as_utc, utcnow
from ..models.conversation import ConversationSession, ConversationTranscript

logger = logging.getLogger(__name__)

STATUS_ACTIVE = "active"
STATUS_ENDED = "ended"
STATUS_ERROR = "error"


async def record_session(
    db: AsyncSession,
    *,
    conversation_id: str,
    conversation_url: str,
    conversation_name: Optional[str],
    replica_id: str,
    persona_id: str,
    avatar_id: Optional[str] = None,
    user_info: Optional[dict] = None,
) -> ConversationSession:
    session = ConversationSession(
        conversation_id=conversation_id,
        conversation_url=conversation_url,
        conversation_name=conversation_name,
        avatar_id=avatar_id,
        replica_id=replica_id,
        persona_id=persona_id,
        status=STATUS_ACTIVE,
        started_at=utcnow(),
        user_info=user_info or {},
    )
    db.add(session)
    await db.flush()
    logger.info("Session mirrored: conversation=%s session=%s", conversation_id, session.id)
    return session


async def get_session_by_conversation(
    db: AsyncSession, conversation_id: str
) -> Optional[ConversationSession]:
    result = await db.execute(
        select(ConversationSession).where(ConversationSession.conversation_id == conversation_id)
    )
    return result.scalar_one_or_none()


def elapsed_seconds(started_at: datetime, ended_at: datetime) -> int:
    """Whole seconds between two instants, rounded down, never negative."""
    delta = (as_utc(ended_at) - as_utc(started_at)).total_seconds()
    return max(0, math.floor(delta))


async def close_session(
    db: AsyncSession, session: ConversationSession, now: Optional[datetime] = None
) -> bool:
    """
    Move an active session to ended and stamp its duration.

    The status check and the write are one conditional UPDATE, so of two
    concurrent closes only one matches. Returns True if this call made the
    transition, False if the session was no longer active (its
    ended_at/duration are left untouched). `session` is refreshed either way.
    """
    ended = now or utcnow()
    result = await db.execute(
        update(ConversationSession)
        .where(
            ConversationSession.id == session.id,
            ConversationSession.status == STATUS_ACTIVE,
        )
        .values(
            ended_at=ended,
            duration_seconds=elapsed_seconds(session.started_at, ended),
            status=STATUS_ENDED,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    await db.refresh(session)
    return result.rowcount == 1


async def end_session(
    db: AsyncSession, conversation_id: str, now: Optional[datetime] = None
) -> Optional[ConversationSession]:
    session = await get_session_by_conversation(db, conversation_id)
    if session is None:
        logger.warning("No local session for conversation %s", conversation_id)
        return None

    if await close_session(db, session, now):
        logger.info(
            "Session ended: conversation=%s duration=%ss",
            conversation_id, session.duration_seconds,
        )
    else:
        logger.info("Session %s already %s; left unchanged", conversation_id, session.status)
    return session


async def mark_session_error(db: AsyncSession, conversation_id: str, reason: str) -> bool:
    """Move an active session to error. Returns False if there was none to move."""
    session = await get_session_by_conversation(db, conversation_id)
    if session is None:
        return False

    result = await db.execute(
        update(ConversationSession)
        .where(
            ConversationSession.id == session.id,
            ConversationSession.status == STATUS_ACTIVE,
        )
        .values(
            status=STATUS_ERROR,
            session_metadata={**(session.session_metadata or {}), "error": reason},
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    await db.refresh(session)
    if result.rowcount == 1:
        logger.warning("Session %s marked as error: %s", conversation_id, reason)
        return True
    return False


async def list_recent_sessions(db: AsyncSession, limit: int = 100) -> list[ConversationSession]:
    result = await db.execute(
        select(ConversationSession)
        .order_by(ConversationSession.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


# ── Transcripts ──────────────────────────────────────────────────────

def extract_transcript_entries(payload: Any) -> list[dict]:
    """
    Normalize a Tavus transcript payload into [{"speaker", "message", "timestamp"}].

    Tavus has returned the transcript as a bare list, under a wrapper key, or
    inside an event's `properties.transcript`; all three are accepted.
    """
    items: Any = payload
    if isinstance(payload, dict):
        properties = payload.get("properties")
        if isinstance(properties, dict) and isinstance(properties.get("transcript"), list):
            items = properties["transcript"]
        else:
            items = None
            for key in ("transcript", "segments", "messages", "data"):
                if isinstance(payload.get(key), list):
                    items = payload[key]
                    break
            if items is None:
                logger.warning("Unexpected transcript keys: %s", list(payload.keys()))
                return []

    if not isinstance(items, list):
        return []

    entries = []
    for item in items:
        if not isinstance(item, dict):
            continue
        message = item.get("content") or item.get("message") or item.get("text")
        if not message:
            continue
        speaker = item.get("role") or item.get("speaker") or "unknown"
        if speaker == "assistant":
            speaker = "avatar"
        entries.append({
            "speaker": str(speaker),
            "message": str(message),
            "timestamp": _timestamp_text(item.get("timestamp")),
        })
    return entries


async def replace_transcript(
    db: AsyncSession, session: ConversationSession, entries: list[dict]
) -> list[ConversationTranscript]:
    await db.execute(
        sql_delete(ConversationTranscript).where(ConversationTranscript.session_id == session.id)
    )

    rows = []
    for entry in entries:
        row = ConversationTranscript(
            session_id=session.id,
            speaker=entry["speaker"],
            message=entry["message"],
            timestamp=_parse_timestamp(entry.get("timestamp")) or utcnow(),
        )
        db.add(row)
        rows.append(row)

    await db.flush()
    logger.info("Transcript mirrored: session=%s entries=%d", session.id, len(rows))
    return rows


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return None


def _timestamp_text(value: Any) -> Optional[str]:
    """ISO-8601 text for string or epoch (s or ms) timestamps; None for anything else."""
    if isinstance(value, str):
        return value or None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    seconds = value / 1000 if value > 1e11 else value
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()
    except (OverflowError, OSError, ValueError):
        return None
