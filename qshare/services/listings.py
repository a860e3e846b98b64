"""
Listing service layer: creation, discovery queries and owner updates.

Handles:
- Short public id generation with bounded collision retry
- Browse queries (available categories/subcategories, paginated results)
- Owner-only updates (slots, share access, duration) and unlisting
- Admin approval (pending -> live)
"""

from __future__ import annotations

import random
import string
from typing import Callable, Optional, Sequence

import structlog
from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from qshare.core.errors import (
    ListingAccessDenied,
    ListingUnavailable,
    PublicIdExhausted,
    SlotUpdateRejected,
)
from qshare.models.base import utcnow
from qshare.models.listing import Listing
from qshare.models.user import User
from qshare.schemas.listings import LISTING_TRANSITIONS, BrowseSort, ListingStatus, ShareMethod

log = structlog.get_logger()

PUBLIC_ID_ALPHABET = string.ascii_uppercase + string.digits
PUBLIC_ID_LENGTH = 6
PUBLIC_ID_ATTEMPTS = 10

_rng = random.SystemRandom()


def random_public_id() -> str:
    return "Q" + "".join(_rng.choice(PUBLIC_ID_ALPHABET) for _ in range(PUBLIC_ID_LENGTH))


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


async def public_id_exists(session: AsyncSession, public_id: str) -> bool:
    result = await session.execute(
        select(func.count()).select_from(Listing).where(Listing.public_id == public_id)
    )
    return result.scalar_one() > 0


async def generate_public_id(
    session: AsyncSession,
    generator: Callable[[], str] = random_public_id,
    attempts: int = PUBLIC_ID_ATTEMPTS,
) -> str:
    """Return an id no existing listing uses. Raises PublicIdExhausted."""
    for attempt in range(attempts):
        candidate = generator()
        if not await public_id_exists(session, candidate):
            return candidate
        log.warning("listing.public_id_collision", attempt=attempt + 1)
    raise PublicIdExhausted(f"No free public id after {attempts} attempts")


async def get_listing(session: AsyncSession, public_id: str) -> Optional[Listing]:
    result = await session.execute(select(Listing).where(Listing.public_id == public_id))
    return result.scalar_one_or_none()


async def get_owned_listing(session: AsyncSession, public_id: str, owner_id: str) -> Listing:
    listing = await get_listing(session, public_id)
    if listing is None or listing.owner_id != str(owner_id):
        raise ListingAccessDenied(public_id)
    return listing


async def get_owner(session: AsyncSession, listing: Listing) -> Optional[User]:
    result = await session.execute(select(User).where(User.user_id == listing.owner_id))
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


async def create_listing(
    session: AsyncSession,
    *,
    owner_id: str,
    public_id: str,
    category: str,
    subcategory: str,
    plan: str,
    amount: int,
    slots: int,
    duration_months: int,
    share_method: ShareMethod,
    secret: dict[str, str],
    status: ListingStatus = ListingStatus.PENDING,
) -> Listing:
    listing = Listing(
        owner_id=str(owner_id),
        public_id=public_id,
        category=category,
        subcategory=subcategory,
        plan=plan,
        amount=amount,
        total_slots=slots,
        remaining_slots=slots,
        duration_months=duration_months,
        share_method=ShareMethod(share_method).value,
        secret=dict(secret),
        status=ListingStatus(status).value,
    )
    session.add(listing)
    await session.flush()
    log.info(
        "listing.created",
        public_id=listing.public_id,
        owner_id=listing.owner_id,
        status=listing.status,
    )
    return listing


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def _joinable():
    return (Listing.status == ListingStatus.LIVE.value, Listing.remaining_slots > 0)


async def available_categories(session: AsyncSession) -> list[str]:
    result = await session.execute(
        select(Listing.category).where(*_joinable()).distinct().order_by(Listing.category)
    )
    return [row[0] for row in result.all()]


async def available_subcategories(session: AsyncSession, category: str) -> list[str]:
    result = await session.execute(
        select(Listing.subcategory)
        .where(Listing.category == category, *_joinable())
        .distinct()
        .order_by(Listing.subcategory)
    )
    return [row[0] for row in result.all()]


async def browse_listings(
    session: AsyncSession,
    *,
    category: str,
    subcategory: str,
    page: int,
    page_size: int,
    sort: BrowseSort = BrowseSort.NEWEST,
) -> tuple[list[tuple[Listing, User]], int]:
    """One page of joinable listings with their owners, plus the total count."""
    filters = (Listing.category == category, Listing.subcategory == subcategory, *_joinable())

    total_result = await session.execute(
        select(func.count()).select_from(Listing).where(*filters)
    )
    total = total_result.scalar_one()

    query = select(Listing, User).join(User, User.user_id == Listing.owner_id).where(*filters)
    if sort == BrowseSort.OLDEST:
        query = query.order_by(Listing.created_at.asc(), Listing.public_id)
    elif sort == BrowseSort.VERIFIED:
        query = query.order_by(User.verified.desc(), Listing.created_at.desc(), Listing.public_id)
    else:
        query = query.order_by(Listing.created_at.desc(), Listing.public_id)

    result = await session.execute(query.offset(page * page_size).limit(page_size))
    return [(listing, owner) for listing, owner in result.all()], total


async def owned_listings(session: AsyncSession, owner_id: str) -> Sequence[Listing]:
    result = await session.execute(
        select(Listing)
        .where(Listing.owner_id == str(owner_id))
        .order_by(Listing.created_at.desc(), Listing.public_id)
    )
    return result.scalars().all()


async def pending_listings(session: AsyncSession, limit: int = 10) -> Sequence[Listing]:
    result = await session.execute(
        select(Listing)
        .where(Listing.status == ListingStatus.PENDING.value)
        .order_by(Listing.created_at.asc())
        .limit(limit)
    )
    return result.scalars().all()


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


def _transition(listing: Listing, target: ListingStatus) -> None:
    current = ListingStatus(listing.status)
    if target not in LISTING_TRANSITIONS[current]:
        raise ListingUnavailable(
            f"Listing {listing.public_id} cannot move from {current.value} to {target.value}"
        )
    listing.status = target.value
    listing.updated_at = utcnow()


async def unlist_listing(session: AsyncSession, listing: Listing) -> Listing:
    _transition(listing, ListingStatus.PENDING_UNLIST)
    session.add(listing)
    await session.flush()
    log.info("listing.unlist_requested", public_id=listing.public_id)
    return listing


async def approve_listing(session: AsyncSession, public_id: str) -> Listing:
    listing = await get_listing(session, public_id)
    if listing is None:
        raise ListingAccessDenied(public_id)
    _transition(listing, ListingStatus.LIVE)
    session.add(listing)
    await session.flush()
    log.info("listing.approved", public_id=listing.public_id)
    return listing


# ---------------------------------------------------------------------------
# Owner updates
# ---------------------------------------------------------------------------


async def update_slots(
    session: AsyncSession, listing: Listing, new_total: int, policy: str = "reset"
) -> Listing:
    """Change the slot total.

    ``reset`` makes every slot available again. ``preserve`` keeps the taken
    slots taken and is rejected when fewer slots than that would remain.
    """
    stmt = update(Listing).where(Listing.id == listing.id)
    if policy == "preserve":
        taken = Listing.total_slots - Listing.remaining_slots
        stmt = stmt.where(taken <= new_total).values(
            total_slots=new_total,
            remaining_slots=new_total - taken,
            updated_at=utcnow(),
        )
    else:
        stmt = stmt.values(total_slots=new_total, remaining_slots=new_total, updated_at=utcnow())

    result = await session.execute(stmt.execution_options(synchronize_session=False))
    if result.rowcount == 0:
        raise SlotUpdateRejected(
            f"Listing {listing.public_id} has more members than {new_total} slots"
        )
    await session.refresh(listing)
    log.info(
        "listing.slots_updated",
        public_id=listing.public_id,
        total_slots=listing.total_slots,
        remaining_slots=listing.remaining_slots,
        policy=policy,
    )
    return listing


async def update_duration(session: AsyncSession, listing: Listing, months: int) -> Listing:
    listing.duration_months = months
    listing.updated_at = utcnow()
    session.add(listing)
    await session.flush()
    log.info("listing.duration_updated", public_id=listing.public_id, months=months)
    return listing


async def update_share_access(
    session: AsyncSession, listing: Listing, method: ShareMethod, secret: dict[str, str]
) -> Listing:
    listing.share_method = ShareMethod(method).value
    listing.secret = dict(secret)
    listing.updated_at = utcnow()
    session.add(listing)
    await session.flush()
    log.info("listing.share_access_updated", public_id=listing.public_id, method=listing.share_method)
    return listing
