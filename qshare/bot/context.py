"""
Per-update handler context.

An inbound Telegram update is reduced to an ``Incoming`` event. Handlers read
it, mutate ``FlowContext.state`` and queue replies; the dispatcher persists
the state and delivers the queued messages once the database work is
committed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

import structlog
from aiogram import Bot
from aiogram.types import InlineKeyboardMarkup, Update
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from qshare.bot.keyboards import main_menu
from qshare.clients.email import EmailVerifier
from qshare.clients.payments import PaymentGateway
from qshare.core.config import Settings
from qshare.models.user import User
from qshare.schemas.catalog import Catalog
from qshare.schemas.session import BaseState, Idle

log = structlog.get_logger()

STALE_OPTION_TEXT = "That option is no longer active."


@dataclass
class Incoming:
    update_id: int
    user_id: str
    chat_id: int
    first_name: str = ""
    text: str = ""
    callback_data: str = ""
    callback_id: str = ""

    @property
    def is_callback(self) -> bool:
        return bool(self.callback_id)

    @property
    def command(self) -> Optional[str]:
        if self.is_callback or not self.text.startswith("/"):
            return None
        return self.text.split()[0].split("@")[0].lower()

    @classmethod
    def from_update(cls, update: dict[str, Any]) -> Optional["Incoming"]:
        """Parse a Telegram update; None for update kinds the bot ignores."""
        try:
            parsed = Update.model_validate(update)
        except ValidationError as exc:
            log.warning("bot.update_invalid", update_id=update.get("update_id"), errors=exc.error_count())
            return None

        callback = parsed.callback_query
        if callback is not None:
            sender = callback.from_user
            chat_id = callback.message.chat.id if callback.message is not None else sender.id
            return cls(
                update_id=parsed.update_id,
                user_id=str(sender.id),
                chat_id=chat_id,
                first_name=sender.first_name,
                callback_data=callback.data or "",
                callback_id=callback.id,
            )

        message = parsed.message
        if message is not None and message.text is not None and message.from_user is not None:
            return cls(
                update_id=parsed.update_id,
                user_id=str(message.from_user.id),
                chat_id=message.chat.id,
                first_name=message.from_user.first_name,
                text=message.text.strip(),
            )
        return None


@dataclass
class Outgoing:
    chat_id: int
    text: str
    reply_markup: Optional[InlineKeyboardMarkup] = None


@dataclass
class BotDeps:
    settings: Settings
    catalog: Catalog
    telegram: Bot
    email: EmailVerifier
    payments: PaymentGateway


@dataclass
class FlowContext:
    incoming: Incoming
    state: BaseState
    db: AsyncSession
    deps: BotDeps
    user: Optional[User] = None
    admin: bool = False
    replies: list[Outgoing] = field(default_factory=list)
    notifications: list[Outgoing] = field(default_factory=list)
    callback_notice: str = ""

    @property
    def settings(self) -> Settings:
        return self.deps.settings

    @property
    def is_admin(self) -> bool:
        return self.admin or self.incoming.chat_id in self.settings.admin_chat_ids

    def at(self, *steps: str) -> bool:
        return getattr(self.state, "step", None) in steps

    def reply(self, text: str, reply_markup: Optional[InlineKeyboardMarkup] = None) -> None:
        self.replies.append(Outgoing(self.incoming.chat_id, text, reply_markup))

    def notify(self, chat_id: int, text: str, reply_markup: Optional[InlineKeyboardMarkup] = None) -> None:
        """Queue a best-effort message to another chat."""
        self.notifications.append(Outgoing(chat_id, text, reply_markup))

    def notify_admins(self, text: str, reply_markup: Optional[InlineKeyboardMarkup] = None) -> None:
        for chat_id in self.settings.admin_chat_ids:
            self.notify(chat_id, text, reply_markup)

    def show_main_menu(self, text: str = "Here's what you can do:") -> None:
        self.state = Idle()
        self.reply(text, main_menu(self.is_admin))

    def stale(self) -> None:
        """Reject a button that does not belong to the current step."""
        self.callback_notice = STALE_OPTION_TEXT
        self.reply(STALE_OPTION_TEXT)


def chat_of(user: User) -> int:
    """Direct-message chat for a user; private chats share the user's id."""
    return user.chat_id if user.chat_id is not None else int(user.user_id)
