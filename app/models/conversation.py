"""
Mirrored Tavus conversation sessions and their transcripts. Used for analytics.
"""

from datetime import datetime

from sqlalchemy import String, Text, Integer, JSON, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import RecordBase, utcnow


class ConversationSession(RecordBase):
    __tablename__ = "conversation_sessions"

    conversation_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    conversation_url: Mapped[str] = mapped_column(Text, nullable=False)
    conversation_name: Mapped[str] = mapped_column(String, nullable=True)
    avatar_id: Mapped[str] = mapped_column(
        String, ForeignKey("interactive_avatars.id", ondelete="SET NULL"), nullable=True, index=True
    )
    replica_id: Mapped[str] = mapped_column(String, nullable=True)
    persona_id: Mapped[str] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default="active", index=True
    )  # active, ended, error
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    ended_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_seconds: Mapped[int] = mapped_column(Integer, nullable=True)
    user_info: Mapped[dict] = mapped_column(JSON, nullable=True, default=dict)  # ip, user agent
    session_metadata: Mapped[dict] = mapped_column("metadata", JSON, nullable=True, default=dict)

    transcripts: Mapped[list["ConversationTranscript"]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="ConversationTranscript.timestamp",
    )


class ConversationTranscript(RecordBase):
    __tablename__ = "conversation_transcripts"

    session_id: Mapped[str] = mapped_column(
        String, ForeignKey("conversation_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    speaker: Mapped[str] = mapped_column(String, nullable=False)  # user, avatar
    message: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    transcript_metadata: Mapped[dict] = mapped_column("metadata", JSON, nullable=True, default=dict)

    session: Mapped["ConversationSession"] = relationship(back_populates="transcripts")
