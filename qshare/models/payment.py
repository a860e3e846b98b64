"""Payment history and owner balances."""

from datetime import datetime

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class Payment(UUIDMixin, SQLModel, table=True):
    __tablename__ = "payments"

    user_id: str = Field(nullable=False, index=True)
    public_id: str = Field(nullable=False, index=True)
    plan: str = Field(nullable=False)
    amount: int = Field(nullable=False)
    reference: str = Field(unique=True, nullable=False)
    status: str = Field(default="success", nullable=False)
    kind: str = Field(default="join", nullable=False)  # join | renewal
    created_at: datetime = Field(default_factory=utcnow, nullable=False, sa_type=sa.DateTime())


class Balance(SQLModel, table=True):
    __tablename__ = "balances"

    user_id: str = Field(primary_key=True)
    balance: int = Field(default=0, nullable=False)
    updated_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_column_kwargs={"onupdate": utcnow},
        sa_type=sa.DateTime(),
    )
