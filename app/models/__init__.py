"""
All database models. Imported here so Base.metadata sees them for create_all().
"""

from .base import RecordBase
from .media import MediaItem
from .avatar import InteractiveAvatar, TavusReplica, TavusPersona
from .conversation import ConversationSession, ConversationTranscript
from .contact import ContactSubmission

__all__ = [
    "RecordBase",
    "MediaItem",
    "InteractiveAvatar", "TavusReplica", "TavusPersona",
    "ConversationSession", "ConversationTranscript",
    "ContactSubmission",
]
