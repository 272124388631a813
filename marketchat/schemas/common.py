from datetime import datetime, timezone
from typing import Annotated

from pydantic import AfterValidator


def ensure_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UTCDateTime = Annotated[datetime, AfterValidator(ensure_utc)]
