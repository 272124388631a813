from sqlalchemy import Boolean, Column, DateTime
from sqlalchemy.types import Uuid

from .base import Base, utcnow


class UserPresence(Base):
    __tablename__ = "user_presence"

    # One row per user, keyed by the user id itself
    user_id = Column(Uuid(as_uuid=True), primary_key=True)
    is_online = Column(Boolean, nullable=False, default=False)
    last_seen = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
