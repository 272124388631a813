import enum
from typing import Any

from pydantic import BaseModel


class ChangeEventType(str, enum.Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class ChangeEvent(BaseModel):
    """Row-level change notification for one collection (table)."""

    collection: str
    event_type: ChangeEventType
    new_record: dict[str, Any]
    previous_record: dict[str, Any] | None = None

    @classmethod
    def for_row(
        cls,
        event_type: ChangeEventType,
        collection: str,
        new_record: BaseModel,
        previous_record: BaseModel | None = None,
    ) -> "ChangeEvent":
        return cls(
            collection=collection,
            event_type=event_type,
            new_record=new_record.model_dump(mode="json"),
            previous_record=(
                previous_record.model_dump(mode="json") if previous_record else None
            ),
        )
