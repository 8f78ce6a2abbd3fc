"""
Gallery media — admin-uploaded videos and audio shown on the public site.
"""

from sqlalchemy import String, Text, JSON, Integer, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from .base import RecordBase


class MediaItem(RecordBase):
    __tablename__ = "media_items"

    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String, nullable=False, index=True)
    file_type: Mapped[str] = mapped_column(String, nullable=False)  # video, audio
    original_filename: Mapped[str] = mapped_column(Text, nullable=True)
    # Storage path/URL of the processed file, or the external URL verbatim
    compressed_file_path: Mapped[str] = mapped_column(Text, nullable=False)
    thumbnail_path: Mapped[str] = mapped_column(Text, nullable=True)
    duration: Mapped[str] = mapped_column(String, nullable=True)  # display string, e.g. "1:05"
    file_size: Mapped[str] = mapped_column(String, nullable=True)  # display string, e.g. "12.4 MB"
    is_external_link: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    media_metadata: Mapped[dict] = mapped_column(JSON, nullable=True, default=dict)
    # language, gender, accent, ageRange, tags, episodeType, hostName, guestName
    audio_metadata: Mapped[dict] = mapped_column(JSON, nullable=True)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
