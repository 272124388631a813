import uuid
from datetime import datetime
from typing import Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketchat.models import Message, utcnow
from marketchat.realtime import ChangeEventType
from marketchat.schemas import MessageRead

from .base import BaseRepository


class MessageRepository(BaseRepository):
    collection = "messages"

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def create_message(
        self,
        conversation_id: uuid.UUID,
        sender_id: uuid.UUID,
        content: str,
        *,
        attachment_url: str | None = None,
        attachment_type: str | None = None,
        attachment_name: str | None = None,
    ) -> Message:
        """Creates and adds a new message to the session."""
        now = utcnow()
        new_message = Message(
            id=uuid.uuid4(),
            conversation_id=conversation_id,
            sender_id=sender_id,
            content=content,
            is_read=False,
            read_at=None,
            attachment_url=attachment_url,
            attachment_type=attachment_type,
            attachment_name=attachment_name,
            created_at=now,
            updated_at=now,
        )
        self.session.add(new_message)
        await self.session.flush()
        self._record(ChangeEventType.INSERT, MessageRead.model_validate(new_message))
        return new_message

    async def get_messages_by_conversation(
        self, conversation_id: uuid.UUID
    ) -> list[Message]:
        """Retrieves all messages for a given conversation, ordered by creation time."""
        stmt = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_latest_message(self, conversation_id: uuid.UUID) -> Message | None:
        stmt = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def count_unread(
        self, conversation_id: uuid.UUID, reader_id: uuid.UUID
    ) -> int:
        """Counts messages in a conversation the reader has not read yet."""
        stmt = select(func.count(Message.id)).where(
            Message.conversation_id == conversation_id,
            Message.is_read.is_(False),
            Message.sender_id != reader_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def mark_conversation_read(
        self,
        conversation_id: uuid.UUID,
        reader_id: uuid.UUID,
        read_at: datetime | None = None,
    ) -> Sequence[Message]:
        """Marks every unread message from the other party as read.

        Returns the messages that changed; already-read messages are untouched.
        """
        stmt = (
            select(Message)
            .where(
                Message.conversation_id == conversation_id,
                Message.is_read.is_(False),
                Message.sender_id != reader_id,
            )
            .order_by(Message.created_at.asc())
        )
        result = await self.session.execute(stmt)
        unread = result.scalars().all()
        return await self._mark_read(unread, read_at or utcnow())

    async def mark_message_read(
        self,
        message_id: uuid.UUID,
        reader_id: uuid.UUID,
        read_at: datetime | None = None,
    ) -> Message | None:
        stmt = select(Message).where(
            Message.id == message_id,
            Message.is_read.is_(False),
            Message.sender_id != reader_id,
        )
        result = await self.session.execute(stmt)
        message = result.scalars().first()
        if message is None:
            return None
        await self._mark_read([message], read_at or utcnow())
        return message

    async def _mark_read(
        self, messages: Sequence[Message], read_at: datetime
    ) -> Sequence[Message]:
        previous = [MessageRead.model_validate(m) for m in messages]
        for message in messages:
            message.is_read = True
            message.read_at = read_at
            message.updated_at = read_at
        if messages:
            await self.session.flush()
        for before, message in zip(previous, messages):
            self._record(
                ChangeEventType.UPDATE, MessageRead.model_validate(message), before
            )
        return messages
