"""User model."""

from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class User(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    user_id: str = Field(unique=True, index=True, nullable=False)  # Telegram user id
    chat_id: Optional[int] = Field(default=None, sa_type=sa.BigInteger())
    full_name: str = Field(nullable=False)
    email: str = Field(unique=True, index=True, nullable=False)
    platform: str = Field(default="telegram", nullable=False)
    admin: bool = Field(default=False, nullable=False)
    verified: bool = Field(default=False, nullable=False)

    @property
    def first_name(self) -> str:
        return self.full_name.split(" ")[0] if self.full_name else ""
