from datetime import datetime
from typing import Iterable, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketchat.models import UserPresence, utcnow
from marketchat.realtime import ChangeEventType
from marketchat.schemas import PresenceRead

from .base import BaseRepository


class PresenceRepository(BaseRepository):
    collection = "user_presence"

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def upsert_presence(
        self, user_id: UUID, is_online: bool, seen_at: datetime | None = None
    ) -> UserPresence:
        """Inserts or updates the presence row owned by user_id."""
        now = seen_at or utcnow()
        presence = await self.session.get(UserPresence, user_id)
        if presence is None:
            presence = UserPresence(
                user_id=user_id, is_online=is_online, last_seen=now, updated_at=now
            )
            self.session.add(presence)
            await self.session.flush()
            self._record(ChangeEventType.INSERT, PresenceRead.model_validate(presence))
            return presence

        previous = PresenceRead.model_validate(presence)
        presence.is_online = is_online
        presence.last_seen = now
        presence.updated_at = now
        await self.session.flush()
        self._record(
            ChangeEventType.UPDATE, PresenceRead.model_validate(presence), previous
        )
        return presence

    async def get_presence_for_users(
        self, user_ids: Iterable[UUID]
    ) -> Sequence[UserPresence]:
        stmt = select(UserPresence).where(UserPresence.user_id.in_(list(user_ids)))
        result = await self.session.execute(stmt)
        return result.scalars().all()
