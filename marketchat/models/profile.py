from sqlalchemy import Column, Text
from sqlalchemy.types import Uuid

from .base import BaseModel


class Profile(BaseModel):
    __tablename__ = "profiles"

    user_id = Column(Uuid(as_uuid=True), unique=True, nullable=False)
    full_name = Column(Text, nullable=True)
    avatar_url = Column(Text, nullable=True)
