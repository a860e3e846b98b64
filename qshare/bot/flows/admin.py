"""Admin City: review and approve pending listings."""

from __future__ import annotations

import structlog

from qshare.bot.context import FlowContext, chat_of
from qshare.bot.formatting import naira
from qshare.bot.keyboards import MAIN_MENU_BUTTON, button, column
from qshare.core.errors import ListingAccessDenied, ListingUnavailable
from qshare.services import listings

log = structlog.get_logger()

NOT_AUTHORIZED = "You are not authorized to access Admin City."


async def show(ctx: FlowContext) -> None:
    if not ctx.is_admin:
        ctx.reply(NOT_AUTHORIZED)
        return
    pending = await listings.pending_listings(ctx.db)
    if not pending:
        ctx.show_main_menu("No listings are waiting for approval.")
        return
    lines = ["Listings awaiting approval:"]
    lines += [
        f"{l.public_id}: {l.plan} ({l.subcategory}), {l.total_slots} slots, {naira(l.amount)}"
        for l in pending
    ]
    ctx.reply(
        "\n".join(lines),
        column(
            [button(f"Approve {l.public_id}", f"adm:approve:{l.public_id}") for l in pending],
            [MAIN_MENU_BUTTON],
        ),
    )


async def on_callback(ctx: FlowContext, action: str, arg: str) -> None:
    if not ctx.is_admin:
        log.warning("admin.refused", action=action)
        ctx.callback_notice = NOT_AUTHORIZED
        ctx.reply(NOT_AUTHORIZED)
        return
    if action != "approve" or not arg:
        ctx.stale()
        return

    try:
        listing = await listings.approve_listing(ctx.db, arg)
    except ListingAccessDenied:
        ctx.reply(f"Listing {arg} was not found.")
        return
    except ListingUnavailable:
        ctx.reply(f"Listing {arg} is not awaiting approval.")
        return

    owner = await listings.get_owner(ctx.db, listing)
    if owner is not None:
        ctx.notify(chat_of(owner), f"Your listing {listing.public_id} ({listing.plan}) is now live!")
    ctx.callback_notice = "Approved"
    ctx.reply(f"Listing {listing.public_id} approved.")
