"""
Membership service layer: joining, renewals and deferred leaving.

Handles:
- Atomic join (guarded slot claim, member row, payment record, owner credit)
- Renewal payments (payment record and owner credit only)
- Membership expiry and renewal windows
- Leave requests with a grace period, cancelled or finalized by the sweep
"""

from __future__ import annotations

import calendar
import uuid
from datetime import datetime, timedelta
from typing import Optional, Sequence

import structlog
from sqlalchemy import delete, func, insert, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from qshare.core.errors import DuplicateLeaveRequest, ListingAccessDenied, ListingUnavailable
from qshare.models.base import utcnow
from qshare.models.leave_request import LeaveRequest
from qshare.models.listing import Listing, ListingMember
from qshare.models.payment import Balance, Payment
from qshare.models.user import User
from qshare.schemas.listings import LeaveStatus, ListingStatus, PaymentKind, PaymentStatus
from qshare.services.listings import get_listing

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Expiry
# ---------------------------------------------------------------------------


def add_months(moment: datetime, months: int) -> datetime:
    """Calendar month arithmetic, clamping the day to the target month's length."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def membership_expiry(listing: Listing) -> datetime:
    return add_months(listing.created_at, listing.duration_months)


def renewal_due(listing: Listing, now: Optional[datetime] = None, lookahead_days: int = 7) -> bool:
    now = now or utcnow()
    return membership_expiry(listing) - now <= timedelta(days=lookahead_days)


def membership_status(listing: Listing, now: Optional[datetime] = None, lookahead_days: int = 7) -> str:
    now = now or utcnow()
    expiry = membership_expiry(listing)
    if now >= expiry:
        return "Expired"
    if expiry - now <= timedelta(days=lookahead_days):
        return "Expiring Soon"
    return "Active"


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------


async def is_member(session: AsyncSession, listing_id: uuid.UUID, email: str) -> bool:
    result = await session.execute(
        select(func.count())
        .select_from(ListingMember)
        .where(ListingMember.listing_id == listing_id, ListingMember.email == email)
    )
    return result.scalar_one() > 0


async def joined_listings(session: AsyncSession, email: str) -> Sequence[Listing]:
    """Live listings the email belongs to, most recently joined first."""
    result = await session.execute(
        select(Listing)
        .join(ListingMember, ListingMember.listing_id == Listing.id)
        .where(ListingMember.email == email, Listing.status == ListingStatus.LIVE.value)
        .order_by(ListingMember.joined_at.desc(), Listing.public_id)
    )
    return result.scalars().all()


async def payment_exists(session: AsyncSession, reference: str) -> bool:
    result = await session.execute(
        select(func.count()).select_from(Payment).where(Payment.reference == reference)
    )
    return result.scalar_one() > 0


async def credit_balance(session: AsyncSession, user_id: str, amount: int) -> None:
    """Add ``amount`` to the owner's balance, creating the row on first credit."""
    stmt = (
        update(Balance)
        .where(Balance.user_id == user_id)
        .values(balance=Balance.balance + amount, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    if result.rowcount:
        return
    try:
        async with session.begin_nested():
            await session.execute(insert(Balance).values(user_id=user_id, balance=amount, updated_at=utcnow()))
    except IntegrityError:
        # created by a concurrent credit
        await session.execute(stmt)


async def _claim_slot(session: AsyncSession, public_id: str) -> bool:
    result = await session.execute(
        update(Listing)
        .where(
            Listing.public_id == public_id,
            Listing.remaining_slots > 0,
            Listing.status == ListingStatus.LIVE.value,
        )
        .values(remaining_slots=Listing.remaining_slots - 1, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def complete_join(
    session: AsyncSession, *, public_id: str, user_id: str, email: str, reference: str
) -> Optional[Listing]:
    """Apply a verified join payment.

    Returns the listing, or None when the reference was already applied.
    Raises ListingUnavailable (with nothing written) when no slot is left.
    The session is rolled back on both failure paths.
    """
    if await payment_exists(session, reference):
        log.info("payment.already_applied", reference=reference)
        return None

    if not await _claim_slot(session, public_id):
        await session.rollback()
        log.info("membership.slot_unavailable", public_id=public_id, user_id=user_id)
        raise ListingUnavailable(public_id)

    listing = await get_listing(session, public_id)
    await session.refresh(listing)
    session.add(ListingMember(listing_id=listing.id, email=email))
    session.add(
        Payment(
            user_id=str(user_id),
            public_id=public_id,
            plan=listing.plan,
            amount=listing.amount,
            reference=reference,
            status=PaymentStatus.SUCCESS.value,
            kind=PaymentKind.JOIN.value,
        )
    )
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        log.warning("payment.duplicate_join", reference=reference, public_id=public_id)
        return None

    await credit_balance(session, listing.owner_id, listing.amount)
    log.info(
        "membership.joined",
        public_id=public_id,
        user_id=user_id,
        remaining_slots=listing.remaining_slots,
    )
    return listing


async def complete_renewal(
    session: AsyncSession, *, public_id: str, user_id: str, reference: str
) -> Optional[Listing]:
    """Record a verified renewal payment. Slots and members are untouched."""
    if await payment_exists(session, reference):
        log.info("payment.already_applied", reference=reference)
        return None

    listing = await get_listing(session, public_id)
    if listing is None:
        raise ListingAccessDenied(public_id)

    session.add(
        Payment(
            user_id=str(user_id),
            public_id=public_id,
            plan=listing.plan,
            amount=listing.amount,
            reference=reference,
            status=PaymentStatus.SUCCESS.value,
            kind=PaymentKind.RENEWAL.value,
        )
    )
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        log.warning("payment.duplicate_renewal", reference=reference, public_id=public_id)
        return None

    await credit_balance(session, listing.owner_id, listing.amount)
    log.info("membership.renewed", public_id=public_id, user_id=user_id)
    return listing


# ---------------------------------------------------------------------------
# Leaving
# ---------------------------------------------------------------------------


async def pending_leave(
    session: AsyncSession, user_id: str, public_id: str
) -> Optional[LeaveRequest]:
    result = await session.execute(
        select(LeaveRequest).where(
            LeaveRequest.user_id == str(user_id),
            LeaveRequest.public_id == public_id,
            LeaveRequest.status == LeaveStatus.PENDING.value,
        )
    )
    return result.scalars().first()


async def request_leave(
    session: AsyncSession,
    *,
    user_id: str,
    email: str,
    public_id: str,
    grace_days: int = 3,
    now: Optional[datetime] = None,
) -> LeaveRequest:
    listing = await get_listing(session, public_id)
    if listing is None or not await is_member(session, listing.id, email):
        raise ListingAccessDenied(public_id)
    if await pending_leave(session, user_id, public_id) is not None:
        raise DuplicateLeaveRequest(public_id)

    now = now or utcnow()
    request = LeaveRequest(
        user_id=str(user_id),
        public_id=public_id,
        status=LeaveStatus.PENDING.value,
        expires_at=now + timedelta(days=grace_days),
        created_at=now,
    )
    session.add(request)
    await session.flush()
    log.info("leave.requested", public_id=public_id, user_id=user_id, expires_at=request.expires_at.isoformat())
    return request


async def cancel_leave(session: AsyncSession, user_id: str, public_id: str) -> bool:
    result = await session.execute(
        update(LeaveRequest)
        .where(
            LeaveRequest.user_id == str(user_id),
            LeaveRequest.public_id == public_id,
            LeaveRequest.status == LeaveStatus.PENDING.value,
        )
        .values(status=LeaveStatus.CANCELLED.value)
        .execution_options(synchronize_session=False)
    )
    cancelled = result.rowcount > 0
    if cancelled:
        log.info("leave.cancelled", public_id=public_id, user_id=user_id)
    return cancelled


async def due_leave_requests(session: AsyncSession, now: Optional[datetime] = None) -> list[uuid.UUID]:
    now = now or utcnow()
    result = await session.execute(
        select(LeaveRequest.id)
        .where(LeaveRequest.status == LeaveStatus.PENDING.value, LeaveRequest.expires_at <= now)
        .order_by(LeaveRequest.expires_at)
    )
    return [row[0] for row in result.all()]


async def finalize_leave(
    session: AsyncSession, request_id: uuid.UUID, now: Optional[datetime] = None
) -> bool:
    """Remove the member behind an expired leave request and free the slot."""
    now = now or utcnow()
    request = await session.get(LeaveRequest, request_id)
    if request is None or request.status != LeaveStatus.PENDING.value or request.expires_at > now:
        return False

    user_result = await session.execute(select(User).where(User.user_id == request.user_id))
    user = user_result.scalar_one_or_none()
    listing = await get_listing(session, request.public_id)
    if user is None or listing is None:
        log.warning(
            "leave_sweep.skipped",
            request_id=str(request_id),
            user_found=user is not None,
            listing_found=listing is not None,
        )
        return False

    removed = await session.execute(
        delete(ListingMember).where(
            ListingMember.listing_id == listing.id, ListingMember.email == user.email
        )
    )
    if removed.rowcount:
        await session.execute(
            update(Listing)
            .where(Listing.id == listing.id, Listing.remaining_slots < Listing.total_slots)
            .values(remaining_slots=Listing.remaining_slots + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )

    request.status = LeaveStatus.COMPLETED.value
    session.add(request)
    await session.flush()
    log.info("leave_sweep.finalized", public_id=request.public_id, user_id=request.user_id)
    return True


# ---------------------------------------------------------------------------
# Wallet
# ---------------------------------------------------------------------------


async def get_balance(session: AsyncSession, user_id: str) -> int:
    balance = await session.get(Balance, str(user_id))
    return balance.balance if balance else 0


async def recent_payments(session: AsyncSession, user_id: str, limit: int = 10) -> Sequence[Payment]:
    result = await session.execute(
        select(Payment)
        .where(Payment.user_id == str(user_id))
        .order_by(Payment.created_at.desc())
        .limit(limit)
    )
    return result.scalars().all()
