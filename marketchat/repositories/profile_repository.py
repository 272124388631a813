from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketchat.models import Profile, Property

from .base import BaseRepository


class ProfileRepository(BaseRepository):
    collection = "profiles"

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def get_profile_by_user_id(self, user_id: UUID) -> Profile | None:
        """Retrieves the public profile of a user."""
        stmt = select(Profile).filter(Profile.user_id == user_id)
        result = await self.session.execute(stmt)
        return result.scalars().first()


class PropertyRepository(BaseRepository):
    collection = "properties"

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def get_property_by_id(self, property_id: UUID) -> Property | None:
        """Retrieves the listing a conversation is about."""
        stmt = select(Property).filter(Property.id == property_id)
        result = await self.session.execute(stmt)
        return result.scalars().first()
