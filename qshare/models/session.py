"""Durable conversation session blobs."""

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin


class SessionRecord(TimestampMixin, SQLModel, table=True):
    __tablename__ = "sessions"

    key: str = Field(primary_key=True)
    data: dict = Field(default_factory=dict, sa_type=sa.JSON, nullable=False)
