from sqlalchemy import JSON, Column, Text

from .base import BaseModel


class Property(BaseModel):
    __tablename__ = "properties"

    # Listing CRUD lives elsewhere; conversations only need a summary
    title = Column(Text, nullable=False)
    images = Column(JSON, nullable=False, default=list)
