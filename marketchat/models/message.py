from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Text, event, update
from sqlalchemy.orm import relationship
from sqlalchemy.types import Uuid

from .base import BaseModel, utcnow
from .conversation import Conversation


class Message(BaseModel):
    __tablename__ = "messages"

    # Messages are append-only; only is_read/read_at change after insert.
    conversation_id = Column(
        Uuid(as_uuid=True), ForeignKey("conversations.id"), nullable=False, index=True
    )
    sender_id = Column(Uuid(as_uuid=True), nullable=False)
    content = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    attachment_url = Column(Text, nullable=True)
    attachment_type = Column(Text, nullable=True)
    attachment_name = Column(Text, nullable=True)

    conversation = relationship("Conversation", back_populates="messages")


@event.listens_for(Message, "after_insert")
def bump_conversation_activity(mapper, connection, target):
    """Advance the parent conversation's last_message_at, trigger-style."""
    sent_at = target.created_at or utcnow()
    connection.execute(
        update(Conversation.__table__)
        .where(Conversation.__table__.c.id == target.conversation_id)
        .values(last_message_at=sent_at, updated_at=utcnow())
    )
