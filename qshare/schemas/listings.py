"""
Listing-related enums and lifecycle rules.

Covers: listing status and transitions, share methods, leave request and
payment states.
"""

from __future__ import annotations

from enum import Enum


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ListingStatus(str, Enum):
    PENDING = "pending"
    LIVE = "live"
    PENDING_UNLIST = "pending_unlist"


class ShareMethod(str, Enum):
    LOGIN = "login"
    OTP = "otp"


class LeaveStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    FAILED = "failed"
    ONGOING = "ongoing"
    SUCCESS = "success"


class PaymentKind(str, Enum):
    JOIN = "join"
    RENEWAL = "renewal"


class BrowseSort(str, Enum):
    NEWEST = "newest"
    OLDEST = "oldest"
    VERIFIED = "verified"


# ---------------------------------------------------------------------------
# Lifecycle transitions
# ---------------------------------------------------------------------------

LISTING_TRANSITIONS: dict[ListingStatus, list[ListingStatus]] = {
    ListingStatus.PENDING: [ListingStatus.LIVE, ListingStatus.PENDING_UNLIST],
    ListingStatus.LIVE: [ListingStatus.PENDING_UNLIST],
    ListingStatus.PENDING_UNLIST: [],
}

# Gateway statuses that keep the user on the "Completed / Cancel" prompt
RETRYABLE_PAYMENT_STATUSES = {
    PaymentStatus.PENDING.value,
    PaymentStatus.FAILED.value,
    PaymentStatus.ONGOING.value,
}
