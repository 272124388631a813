# Makes 'models' a package and simplifies imports

from .base import Base, BaseModel, metadata, utcnow
from .conversation import Conversation
from .message import Message
from .presence import UserPresence
from .profile import Profile
from .property import Property

__all__ = [
    "Base",
    "BaseModel",
    "metadata",
    "utcnow",
    "Conversation",
    "Message",
    "UserPresence",
    "Profile",
    "Property",
]
