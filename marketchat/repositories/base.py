from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from marketchat.db import record_change
from marketchat.realtime import ChangeEvent, ChangeEventType


class BaseRepository:
    collection: str = ""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _record(
        self,
        event_type: ChangeEventType,
        new_record: BaseModel,
        previous_record: BaseModel | None = None,
    ) -> None:
        record_change(
            self.session,
            ChangeEvent.for_row(
                event_type, self.collection, new_record, previous_record
            ),
        )
