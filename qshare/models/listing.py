"""Listing (shared subscription) and member models."""

from datetime import datetime
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin, utcnow


class Listing(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "listings"
    __table_args__ = (
        sa.CheckConstraint(
            "remaining_slots >= 0 AND remaining_slots <= total_slots",
            name="ck_listings_slot_bounds",
        ),
    )

    owner_id: str = Field(foreign_key="users.user_id", nullable=False, index=True)
    public_id: str = Field(unique=True, index=True, nullable=False)
    category: str = Field(nullable=False, index=True)
    subcategory: str = Field(nullable=False, index=True)
    plan: str = Field(nullable=False)
    amount: int = Field(nullable=False)  # monthly, catalog price + service fee
    total_slots: int = Field(nullable=False)
    remaining_slots: int = Field(nullable=False)
    duration_months: int = Field(nullable=False)
    share_method: str = Field(nullable=False)  # login | otp
    secret: dict = Field(default_factory=dict, sa_type=sa.JSON, nullable=False)
    status: str = Field(default="pending", nullable=False, index=True)  # pending | live | pending_unlist


class ListingMember(SQLModel, table=True):
    __tablename__ = "listing_members"

    listing_id: uuid.UUID = Field(foreign_key="listings.id", primary_key=True)
    email: str = Field(primary_key=True, index=True)
    joined_at: datetime = Field(default_factory=utcnow, nullable=False, sa_type=sa.DateTime())
