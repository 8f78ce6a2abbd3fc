"""
Interactive avatars and their Tavus replica/persona mirrors.
"""

from sqlalchemy import String, Text, JSON, Integer, Boolean, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from .base import RecordBase


class InteractiveAvatar(RecordBase):
    __tablename__ = "interactive_avatars"

    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=True)
    video_url: Mapped[str] = mapped_column(Text, nullable=False)
    thumbnail_url: Mapped[str] = mapped_column(Text, nullable=True)
    default_personality: Mapped[str] = mapped_column(String, nullable=True, default="professional")
    supported_languages: Mapped[list] = mapped_column(JSON, nullable=True, default=list)
    # [{"prompt": "...", "response": "..."}]
    demo_conversations: Mapped[list] = mapped_column(JSON, nullable=True, default=list)
    voice_preview_url: Mapped[str] = mapped_column(Text, nullable=True)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    avatar_metadata: Mapped[dict] = mapped_column("metadata", JSON, nullable=True, default=dict)

    tavus_replica_id: Mapped[str] = mapped_column(String, nullable=True)
    tavus_persona_id: Mapped[str] = mapped_column(String, nullable=True)
    is_tavus_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class TavusReplica(RecordBase):
    __tablename__ = "tavus_replicas"

    replica_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    replica_name: Mapped[str] = mapped_column(String, nullable=True)
    avatar_id: Mapped[str] = mapped_column(
        String, ForeignKey("interactive_avatars.id", ondelete="SET NULL"), nullable=True, index=True
    )
    status: Mapped[str] = mapped_column(String, nullable=True, default="training")  # training, ready, failed
    thumbnail_video_url: Mapped[str] = mapped_column(Text, nullable=True)
    training_video_url: Mapped[str] = mapped_column(Text, nullable=True)
    replica_metadata: Mapped[dict] = mapped_column("metadata", JSON, nullable=True, default=dict)


class TavusPersona(RecordBase):
    __tablename__ = "tavus_personas"

    persona_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    persona_name: Mapped[str] = mapped_column(String, nullable=False)
    avatar_id: Mapped[str] = mapped_column(
        String, ForeignKey("interactive_avatars.id", ondelete="SET NULL"), nullable=True, index=True
    )
    system_prompt: Mapped[str] = mapped_column(Text, nullable=True)
    context: Mapped[str] = mapped_column(Text, nullable=True)
    llm_provider: Mapped[str] = mapped_column(String, nullable=True, default="openai")
    llm_model: Mapped[str] = mapped_column(String, nullable=True, default="gpt-4")
    default_replica_id: Mapped[str] = mapped_column(String, nullable=True)
    persona_metadata: Mapped[dict] = mapped_column("metadata", JSON, nullable=True, default=dict)
