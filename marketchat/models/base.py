import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime
from sqlalchemy.orm import declarative_base, declared_attr
from sqlalchemy.types import Uuid

Base = declarative_base()


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


# Define a base model with common fields
class BaseModel(Base):
    __abstract__ = True

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Timestamps are generated client-side so that change events can snapshot
    # a row right after flush without reloading it.
    @declared_attr
    def created_at(cls):
        return Column(DateTime(timezone=True), nullable=False, default=utcnow)

    @declared_attr
    def updated_at(cls):
        return Column(
            DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
        )


metadata = Base.metadata
