"""
Update dispatcher.

For each inbound update: load the session, apply the inactivity reset, route
the event to the handler for the current step, commit, save the session and
deliver the queued replies.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Awaitable, Callable

import structlog
from aiogram.exceptions import AiogramError
from aiogram.types import LinkPreviewOptions
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from qshare.bot.context import BotDeps, FlowContext, Incoming, Outgoing
from qshare.bot.flows import admin, discovery, listing, membership, menu, profile, registration, support
from qshare.bot.keyboards import main_menu
from qshare.core.session_store import STORE_ERRORS, SessionStore, session_key
from qshare.models.base import utcnow
from qshare.schemas.session import AwaitPayment, BaseState, Idle
from qshare.services import users

log = structlog.get_logger()

TIMEOUT_TEXT = "Your session timed out due to inactivity. Let's start again."
GENERIC_ERROR_TEXT = "Something went wrong on our side. Please try again."
USE_BUTTONS_TEXT = "Please choose an option from the menu."

NO_PREVIEW = LinkPreviewOptions(is_disabled=True)

CallbackHandler = Callable[[FlowContext, str, str], Awaitable[None]]
TextHandler = Callable[[FlowContext], Awaitable[None]]

CALLBACK_HANDLERS: dict[str, CallbackHandler] = {
    "menu": menu.on_callback,
    "add": listing.on_callback,
    "br": discovery.on_browse_callback,
    "pay": discovery.on_payment_callback,
    "my": membership.on_callback,
    "prof": profile.on_callback,
    "sup": support.on_callback,
    "adm": admin.on_callback,
}

TEXT_HANDLERS: dict[str, TextHandler] = {
    **registration.TEXT_HANDLERS,
    **listing.TEXT_HANDLERS,
    **membership.TEXT_HANDLERS,
    **profile.TEXT_HANDLERS,
}


async def route(ctx: FlowContext) -> None:
    incoming = ctx.incoming
    if incoming.is_callback:
        namespace, _, rest = incoming.callback_data.partition(":")
        action, _, arg = rest.partition(":")
        handler = CALLBACK_HANDLERS.get(namespace)
        if handler is None:
            ctx.stale()
            return
        await handler(ctx, action, arg)
        return

    command = incoming.command
    if command is not None:
        entry = menu.COMMANDS.get(command)
        if entry is None:
            ctx.reply(f"Unknown command {command}.", main_menu(ctx.is_admin))
            return
        await entry(ctx)
        return

    text_handler = TEXT_HANDLERS.get(getattr(ctx.state, "step", "idle"))
    if text_handler is None:
        ctx.reply(USE_BUTTONS_TEXT, main_menu(ctx.is_admin))
        return
    await text_handler(ctx)


class Dispatcher:
    def __init__(
        self,
        deps: BotDeps,
        store: SessionStore,
        session_factory: async_sessionmaker,
    ):
        self.deps = deps
        self.store = store
        self.session_factory = session_factory

    async def ping_database(self) -> bool:
        try:
            async with self.session_factory() as db:
                await db.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, OSError):
            log.warning("database.unreachable")
            return False

    def _timed_out(self, state: BaseState) -> bool:
        # A pending payment keeps its reference until verified or cancelled.
        if isinstance(state, (Idle, AwaitPayment)):
            return False
        limit = timedelta(seconds=self.deps.settings.inactivity_timeout_seconds)
        return utcnow() - state.updated_at > limit

    async def handle_update(self, update: dict[str, Any]) -> None:
        incoming = Incoming.from_update(update)
        if incoming is None or not incoming.user_id:
            log.debug("bot.update_ignored", update_id=update.get("update_id"))
            return

        structlog.contextvars.bind_contextvars(
            update_id=incoming.update_id,
            user_id=incoming.user_id,
            chat_id=incoming.chat_id,
        )
        try:
            await self._handle(incoming)
        finally:
            structlog.contextvars.clear_contextvars()

    async def _load(self, key: str) -> BaseState:
        try:
            return await self.store.get(key) or Idle()
        except STORE_ERRORS as exc:
            log.error("session_store.unavailable", op="get", backend=self.store.name, error=str(exc))
            return Idle()

    async def _handle(self, incoming: Incoming) -> None:
        key = session_key(incoming.user_id, incoming.chat_id)
        state = await self._load(key)
        timed_out = self._timed_out(state)
        if timed_out:
            log.info("session.timed_out", step=getattr(state, "step", None))
            state = Idle()

        async with self.session_factory() as db:
            ctx = FlowContext(incoming=incoming, state=state, db=db, deps=self.deps)
            if timed_out:
                ctx.reply(TIMEOUT_TEXT)
            try:
                ctx.user = await users.get_user(db, incoming.user_id)
                ctx.admin = bool(ctx.user and ctx.user.admin)
                await route(ctx)
                await db.commit()
            except SQLAlchemyError:
                log.exception("bot.persistence_failed", step=getattr(ctx.state, "step", None))
                await db.rollback()
                self._recover(ctx)
            except Exception:
                log.exception("bot.handler_failed", step=getattr(ctx.state, "step", None))
                await db.rollback()
                self._recover(ctx)

        await self._save(key, ctx.state)
        await self._deliver(ctx)

    def _recover(self, ctx: FlowContext) -> None:
        ctx.user = None
        ctx.replies.clear()
        ctx.notifications.clear()
        ctx.callback_notice = ""
        ctx.show_main_menu(GENERIC_ERROR_TEXT)

    async def _save(self, key: str, state: BaseState) -> None:
        try:
            if isinstance(state, Idle):
                await self.store.delete(key)
                return
            state.updated_at = utcnow()
            await self.store.set(key, state)
        except STORE_ERRORS as exc:
            log.error("session_store.unavailable", op="save", backend=self.store.name, error=str(exc))

    async def _send(self, message: Outgoing, event: str) -> None:
        try:
            await self.deps.telegram.send_message(
                chat_id=message.chat_id,
                text=message.text,
                reply_markup=message.reply_markup,
                link_preview_options=NO_PREVIEW,
            )
        except AiogramError as exc:
            log.error(event, chat_id=message.chat_id, error=str(exc))

    async def _deliver(self, ctx: FlowContext) -> None:
        if ctx.incoming.is_callback:
            try:
                await self.deps.telegram.answer_callback_query(
                    callback_query_id=ctx.incoming.callback_id,
                    text=ctx.callback_notice or None,
                )
            except AiogramError as exc:
                log.warning("telegram.callback_answer_failed", error=str(exc))
        for message in ctx.replies:
            await self._send(message, "telegram.reply_failed")
        for message in ctx.notifications:
            await self._send(message, "telegram.notify_failed")
