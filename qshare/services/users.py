"""
User service: registration, profile edits and lookups.
"""

from __future__ import annotations

import re
import secrets
from datetime import datetime
from typing import Optional

import structlog
from pydantic import EmailStr, TypeAdapter, ValidationError
from sqlalchemy import delete, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from qshare.core.errors import AlreadyRegistered, EmailTaken
from qshare.models.base import utcnow
from qshare.models.listing import ListingMember
from qshare.models.session import SessionRecord
from qshare.models.user import User
from qshare.schemas.auth import PendingSignup

log = structlog.get_logger()

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
EMAIL_ADAPTER = TypeAdapter(EmailStr)
SIGNUP_KEY_PREFIX = "signup:"


def normalize_email(text: str) -> str:
    return text.strip().lower()


def is_valid_email(email: str) -> bool:
    if not EMAIL_RE.match(email or ""):
        return False
    try:
        EMAIL_ADAPTER.validate_python(email)
    except ValidationError:
        return False
    return True


def is_full_name(text: str) -> bool:
    """A full name has at least two words."""
    return " " in text.strip()


def generate_verification_code() -> str:
    return str(100000 + secrets.randbelow(900000))


async def get_user(session: AsyncSession, user_id: str) -> Optional[User]:
    result = await session.execute(select(User).where(User.user_id == str(user_id)))
    return result.scalar_one_or_none()


async def email_taken(
    session: AsyncSession, email: str, exclude_user_id: Optional[str] = None
) -> bool:
    query = select(func.count()).select_from(User).where(User.email == normalize_email(email))
    if exclude_user_id is not None:
        query = query.where(User.user_id != str(exclude_user_id))
    result = await session.execute(query)
    return result.scalar_one() > 0


async def create_user(
    session: AsyncSession,
    *,
    user_id: str,
    chat_id: Optional[int],
    full_name: str,
    email: str,
    platform: str = "telegram",
) -> User:
    """Persist a verified user.

    Raises AlreadyRegistered if ``user_id`` has a record and EmailTaken if the
    email belongs to someone else.
    """
    email = normalize_email(email)
    if await get_user(session, user_id) is not None:
        raise AlreadyRegistered(str(user_id))
    if await email_taken(session, email):
        raise EmailTaken(email)

    user = User(
        user_id=str(user_id),
        chat_id=chat_id,
        full_name=full_name.strip(),
        email=email,
        platform=platform,
        verified=True,
    )
    session.add(user)
    try:
        await session.flush()
    except IntegrityError as exc:
        await session.rollback()
        if await get_user(session, user_id) is not None:
            raise AlreadyRegistered(str(user_id)) from exc
        raise EmailTaken(email) from exc

    log.info("user.registered", user_id=user.user_id, platform=platform)
    return user


async def update_full_name(session: AsyncSession, user: User, full_name: str) -> User:
    user.full_name = full_name.strip()
    user.updated_at = utcnow()
    session.add(user)
    await session.flush()
    log.info("user.name_updated", user_id=user.user_id)
    return user


async def change_email(session: AsyncSession, user: User, new_email: str) -> User:
    """Move the user and every membership they hold to a verified new email."""
    new_email = normalize_email(new_email)
    if await email_taken(session, new_email, exclude_user_id=user.user_id):
        raise EmailTaken(new_email)

    old_email = user.email
    await session.execute(
        update(ListingMember)
        .where(ListingMember.email == old_email)
        .values(email=new_email)
    )
    user.email = new_email
    user.updated_at = utcnow()
    session.add(user)
    try:
        await session.flush()
    except IntegrityError as exc:
        await session.rollback()
        raise EmailTaken(new_email) from exc

    log.info("user.email_changed", user_id=user.user_id)
    return user


async def set_admin(session: AsyncSession, user_id: str, admin: bool = True) -> Optional[User]:
    user = await get_user(session, user_id)
    if user is None:
        return None
    user.admin = admin
    session.add(user)
    await session.flush()
    log.info("user.admin_flag_set", user_id=user.user_id, admin=admin)
    return user


# ---------------------------------------------------------------------------
# Signup for non-Telegram clients
# ---------------------------------------------------------------------------


def _signup_key(email: str) -> str:
    return SIGNUP_KEY_PREFIX + normalize_email(email)


async def save_pending_signup(session: AsyncSession, pending: PendingSignup) -> None:
    """Store (or replace) the pending signup for ``pending.email``."""
    key = _signup_key(pending.email)
    record = await session.get(SessionRecord, key)
    if record is None:
        record = SessionRecord(key=key, data=pending.model_dump(mode="json"))
    else:
        record.data = pending.model_dump(mode="json")
        record.updated_at = utcnow()
    session.add(record)
    await session.flush()
    log.info("signup.initiated", user_id=pending.user_id, platform=pending.platform)


async def get_pending_signup(
    session: AsyncSession, email: str, now: Optional[datetime] = None
) -> Optional[PendingSignup]:
    """The unexpired pending signup for ``email``, if any."""
    record = await session.get(SessionRecord, _signup_key(email))
    if record is None:
        return None
    try:
        pending = PendingSignup.model_validate(record.data)
    except ValidationError:
        log.warning("signup.unreadable", key=record.key)
        return None
    if pending.expires_at < (now or utcnow()):
        return None
    return pending


async def clear_pending_signup(session: AsyncSession, email: str) -> None:
    await session.execute(delete(SessionRecord).where(SessionRecord.key == _signup_key(email)))
