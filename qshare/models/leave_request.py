"""Deferred membership removal."""

from datetime import datetime

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class LeaveRequest(UUIDMixin, SQLModel, table=True):
    __tablename__ = "leave_requests"

    user_id: str = Field(nullable=False, index=True)
    public_id: str = Field(nullable=False, index=True)
    status: str = Field(default="pending", nullable=False, index=True)  # pending | completed | cancelled
    expires_at: datetime = Field(nullable=False, sa_type=sa.DateTime())
    created_at: datetime = Field(default_factory=utcnow, nullable=False, sa_type=sa.DateTime())
