"""Commands and main-menu navigation."""

from __future__ import annotations

from qshare.bot.context import FlowContext
from qshare.bot.flows import admin, discovery, listing, membership, profile, registration, support, wallet


async def show_menu(ctx: FlowContext) -> None:
    ctx.show_main_menu()


MENU_ENTRIES = {
    "main": show_menu,
    "browse": discovery.show_categories,
    "mine": membership.show_menu,
    "add": listing.start,
    "wallet": wallet.show,
    "support": support.show,
    "profile": profile.show,
    "admin": admin.show,
}

COMMANDS = {
    "/start": registration.start,
    "/menu": show_menu,
    "/cancel": show_menu,
    "/help": support.show,
}


async def on_callback(ctx: FlowContext, action: str, arg: str) -> None:
    entry = MENU_ENTRIES.get(action)
    if entry is None:
        ctx.stale()
        return
    await entry(ctx)
