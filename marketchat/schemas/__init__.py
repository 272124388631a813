from .conversation import (
    ConversationRead,
    ConversationView,
    ProfileSummary,
    PropertySummary,
)
from .message import AttachmentDescriptor, MessageRead
from .presence import PresenceRead

__all__ = [
    "AttachmentDescriptor",
    "ConversationRead",
    "ConversationView",
    "MessageRead",
    "PresenceRead",
    "ProfileSummary",
    "PropertySummary",
]
