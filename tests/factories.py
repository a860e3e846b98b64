"""
Seed helpers and a bot harness that drives the dispatcher with
Telegram-shaped updates.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any, Optional
from unittest.mock import AsyncMock

from qshare.bot.dispatcher import Dispatcher
from qshare.core.session_store import MemorySessionStore, session_key
from qshare.models.listing import Listing, ListingMember
from qshare.models.user import User

_public_ids = itertools.count(1)


async def make_user(
    session_factory,
    user_id: str,
    email: str,
    full_name: str = "Ada Lovelace",
    admin: bool = False,
    verified: bool = True,
) -> User:
    async with session_factory() as session:
        user = User(
            user_id=user_id,
            chat_id=int(user_id),
            full_name=full_name,
            email=email,
            admin=admin,
            verified=verified,
        )
        session.add(user)
        await session.commit()
        return user


async def make_listing(
    session_factory,
    owner_id: str,
    *,
    public_id: Optional[str] = None,
    category: str = "Music",
    subcategory: str = "Spotify",
    plan: str = "Spotify Family",
    amount: int = 950,
    total_slots: int = 3,
    remaining_slots: Optional[int] = None,
    duration_months: int = 6,
    status: str = "live",
    members: tuple[str, ...] = (),
    **extra: Any,
) -> Listing:
    async with session_factory() as session:
        listing = Listing(
            owner_id=owner_id,
            public_id=public_id or f"QT{next(_public_ids):05d}",
            category=category,
            subcategory=subcategory,
            plan=plan,
            amount=amount,
            total_slots=total_slots,
            remaining_slots=total_slots if remaining_slots is None else remaining_slots,
            duration_months=duration_months,
            share_method="login",
            secret={"email": "shared@example.com", "password": "hunter2"},
            status=status,
            **extra,
        )
        session.add(listing)
        await session.flush()
        for email in members:
            session.add(ListingMember(listing_id=listing.id, email=email))
        await session.commit()
        return listing


@dataclass
class BotHarness:
    dispatcher: Dispatcher
    telegram: AsyncMock
    email: AsyncMock
    payments: AsyncMock
    store: MemorySessionStore
    sent: list[tuple] = field(default_factory=list)
    _ids: itertools.count = field(default_factory=lambda: itertools.count(1))

    async def _deliver(self, user_id: str, update: dict) -> list[str]:
        self.telegram.send_message.reset_mock()
        await self.dispatcher.handle_update({"update_id": next(self._ids), **update})
        self.sent = [_as_sent(c.kwargs) for c in self.telegram.send_message.call_args_list]
        return [text for chat_id, text, *_ in self.sent if chat_id == int(user_id)]

    async def text(self, user_id: str, text: str) -> list[str]:
        """Send a text message; returns the texts sent back to that user."""
        return await self._deliver(user_id, {"message": {**_message(user_id), "text": text}})

    async def press(self, user_id: str, data: str) -> list[str]:
        """Press an inline button; returns the texts sent back to that user."""
        return await self._deliver(
            user_id,
            {
                "callback_query": {
                    "id": f"cb-{next(self._ids)}",
                    "from": _sender(user_id),
                    "chat_instance": f"ci-{user_id}",
                    "message": _message(user_id),
                    "data": data,
                }
            },
        )

    def sent_to(self, chat_id: int) -> list[tuple]:
        return [msg for msg in self.sent if msg[0] == chat_id]

    def markup(self) -> Optional[dict]:
        """Keyboard of the last message sent."""
        for message in reversed(self.sent):
            if len(message) > 2 and message[2] is not None:
                return message[2]
        return None

    def callback_data(self) -> list[str]:
        keyboard = self.markup() or {}
        return [b.get("callback_data", "") for row in keyboard.get("inline_keyboard", []) for b in row]

    async def state(self, user_id: str):
        return await self.store.get(session_key(user_id, user_id))


def _sender(user_id: str) -> dict:
    return {"id": int(user_id), "is_bot": False, "first_name": "Test"}


def _message(user_id: str) -> dict:
    return {
        "message_id": 1,
        "date": 1700000000,
        "from": _sender(user_id),
        "chat": {"id": int(user_id), "type": "private"},
    }


def _as_sent(kwargs: dict) -> tuple:
    """(chat_id, text, keyboard as plain dict or None) for one send_message call."""
    markup = kwargs.get("reply_markup")
    return (
        kwargs["chat_id"],
        kwargs["text"],
        markup.model_dump(exclude_none=True) if markup is not None else None,
    )
