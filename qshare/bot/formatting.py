"""Text helpers shared by the flows."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Optional

from qshare.models.listing import Listing
from qshare.models.user import User
from qshare.schemas.listings import ShareMethod

PHONE_RE = re.compile(r"^\+\d{7,15}$")


def naira(amount: int) -> str:
    return f"₦{amount:,}"


def months(count: int) -> str:
    return f"{count} month" if count == 1 else f"{count} months"


def day(moment: datetime) -> str:
    return moment.strftime("%d %b %Y")


def parse_int(text: str, low: int, high: int) -> Optional[int]:
    """Integer within [low, high], else None."""
    text = text.strip()
    if not text.isdigit():
        return None
    value = int(text)
    return value if low <= value <= high else None


def share_summary(method: str, secret: dict) -> list[str]:
    if method == ShareMethod.LOGIN.value:
        return [
            "Share method: Login details",
            f"Login email: {secret.get('email', '')}",
            "Password: ********",
        ]
    return ["Share method: OTP", f"Phone: {secret.get('phone', '')}"]


def listing_card(listing: Listing, owner: Optional[User] = None) -> str:
    lines = [f"{listing.plan} ({listing.subcategory})"]
    if owner is not None:
        badge = " (verified)" if owner.verified else ""
        lines.append(f"Owner: {owner.full_name}{badge}")
    lines += [
        f"Duration: {months(listing.duration_months)}",
        f"Slots left: {listing.remaining_slots}/{listing.total_slots}",
        f"Amount: {naira(listing.amount)} per month",
        f"ID: {listing.public_id}",
    ]
    return "\n".join(lines)
