"""
My Subscriptions: owners manage their listings (update, unlist), members
manage what they joined (renew, leave, cancel leave).
"""

from __future__ import annotations

import structlog

from qshare.bot.context import FlowContext
from qshare.bot.flows.discovery import initiate_payment
from qshare.bot.flows.registration import required
from qshare.bot.formatting import PHONE_RE, day, months, naira, parse_int
from qshare.bot.keyboards import MAIN_MENU_BUTTON, button, column, keyboard, pager
from qshare.core.errors import (
    DuplicateLeaveRequest,
    ListingAccessDenied,
    ListingUnavailable,
    SlotUpdateRejected,
)
from qshare.models.base import utcnow
from qshare.schemas.listings import ListingStatus, ShareMethod
from qshare.schemas.session import (
    ConfirmLeave,
    MyListings,
    MyMemberships,
    UpdateDuration,
    UpdateLoginEmail,
    UpdateLoginPassword,
    UpdateMenu,
    UpdatePhone,
    UpdateShareMethod,
    UpdateSlots,
)
from qshare.services import listings, memberships, users

log = structlog.get_logger()

LIST_PAGE_SIZE = 5
NOT_YOURS = "You can only manage listings you own."
NOT_A_MEMBER = "You are not a member of that listing."


@required
async def show_menu(ctx: FlowContext) -> None:
    ctx.reply(
        "My Subscriptions:",
        keyboard(
            [button("Listed", "my:listed"), button("Joined", "my:joined")],
            [MAIN_MENU_BUTTON],
        ),
    )


# ---------------------------------------------------------------------------
# Owned listings
# ---------------------------------------------------------------------------


async def render_listed(ctx: FlowContext, page: int = 0) -> None:
    owned = list(await listings.owned_listings(ctx.db, ctx.user.user_id))
    if not owned:
        ctx.show_main_menu("You haven't listed any subscriptions yet.")
        return
    last_page = (len(owned) - 1) // LIST_PAGE_SIZE
    page = min(max(page, 0), last_page)
    ctx.state = MyListings(page=page)

    chunk = owned[page * LIST_PAGE_SIZE:(page + 1) * LIST_PAGE_SIZE]
    blocks = [
        f"{listing.plan} ({listing.public_id})\n"
        f"Status: {listing.status}\n"
        f"Slots left: {listing.remaining_slots}/{listing.total_slots}\n"
        f"Amount: {naira(listing.amount)} per month, {months(listing.duration_months)}"
        for listing in chunk
    ]
    rows = []
    for listing in chunk:
        row = [button(f"Update {listing.public_id}", f"my:update:{listing.public_id}")]
        if listing.status != ListingStatus.PENDING_UNLIST.value:
            row.append(button(f"Unlist {listing.public_id}", f"my:unlist:{listing.public_id}"))
        rows.append(row)
    ctx.reply(
        f"Your listings (page {page + 1} of {last_page + 1}):\n\n" + "\n\n".join(blocks),
        keyboard(*rows, pager("my:l", page, page < last_page), [MAIN_MENU_BUTTON]),
    )


async def _unlist(ctx: FlowContext, public_id: str) -> None:
    try:
        listing = await listings.get_owned_listing(ctx.db, public_id, ctx.user.user_id)
        await listings.unlist_listing(ctx.db, listing)
    except ListingAccessDenied:
        ctx.reply(NOT_YOURS)
        return
    except ListingUnavailable:
        ctx.reply(f"Listing {public_id} is already waiting to be unlisted.")
        return
    ctx.notify_admins(f"Unlist requested for {public_id} ({listing.plan}) by {ctx.user.full_name}.")
    ctx.reply(f"Unlist request for {public_id} submitted.")
    await render_listed(ctx, ctx.state.page)


async def _open_update(ctx: FlowContext, public_id: str) -> None:
    try:
        await listings.get_owned_listing(ctx.db, public_id, ctx.user.user_id)
    except ListingAccessDenied:
        ctx.reply(NOT_YOURS)
        return
    ctx.state = UpdateMenu(public_id=public_id)
    ctx.reply(
        f"What would you like to update for {public_id}?",
        keyboard(
            [button("Slots", "my:upd:slots"), button("Share access", "my:upd:share")],
            [button("Duration", "my:upd:duration")],
            [button("Back", "my:listed"), MAIN_MENU_BUTTON],
        ),
    )


async def _choose_update(ctx: FlowContext, field: str) -> None:
    public_id = ctx.state.public_id
    if field == "slots":
        ctx.state = UpdateSlots(public_id=public_id)
        ctx.reply(f"Enter the new number of slots (1-{ctx.settings.max_slots}):")
    elif field == "duration":
        ctx.state = UpdateDuration(public_id=public_id)
        ctx.reply("Enter the new duration in months (1-12):")
    elif field == "share":
        ctx.state = UpdateShareMethod(public_id=public_id)
        ctx.reply(
            "How will members get access?",
            keyboard(
                [button("Login details", "my:method:login")],
                [button("OTP (phone number)", "my:method:otp")],
            ),
        )
    else:
        ctx.stale()


async def _choose_method(ctx: FlowContext, method: str) -> None:
    public_id = ctx.state.public_id
    if method == ShareMethod.LOGIN.value:
        ctx.state = UpdateLoginEmail(public_id=public_id)
        ctx.reply("Enter the login email for the shared account:")
    elif method == ShareMethod.OTP.value:
        ctx.state = UpdatePhone(public_id=public_id)
        ctx.reply("Enter the phone number that receives the OTP (for example +2348012345678):")
    else:
        ctx.stale()


# ---------------------------------------------------------------------------
# Joined listings
# ---------------------------------------------------------------------------


async def render_joined(ctx: FlowContext, page: int = 0) -> None:
    joined = list(await memberships.joined_listings(ctx.db, ctx.user.email))
    if not joined:
        ctx.state = MyMemberships(page=0)
        ctx.reply(
            "You haven't joined any subscriptions yet.",
            keyboard([button("Browse Subscriptions", "menu:browse")], [MAIN_MENU_BUTTON]),
        )
        return
    last_page = (len(joined) - 1) // LIST_PAGE_SIZE
    page = min(max(page, 0), last_page)
    ctx.state = MyMemberships(page=page)

    lookahead = ctx.settings.renewal_lookahead_days
    now = utcnow()
    blocks, rows = [], []
    for listing in joined[page * LIST_PAGE_SIZE:(page + 1) * LIST_PAGE_SIZE]:
        status = memberships.membership_status(listing, now, lookahead)
        blocks.append(
            f"{listing.plan} ({listing.public_id})\n"
            f"Status: {status}\n"
            f"Renews: {day(memberships.membership_expiry(listing))}"
        )
        row = [button(f"Renew {listing.public_id}", f"my:renew:{listing.public_id}")]
        if await memberships.pending_leave(ctx.db, ctx.user.user_id, listing.public_id):
            row.append(button(f"Cancel leave {listing.public_id}", f"my:stay:{listing.public_id}"))
        else:
            row.append(button(f"Leave {listing.public_id}", f"my:leave:{listing.public_id}"))
        rows.append(row)

    ctx.reply(
        f"Subscriptions you joined (page {page + 1} of {last_page + 1}):\n\n" + "\n\n".join(blocks),
        keyboard(*rows, pager("my:j", page, page < last_page), [MAIN_MENU_BUTTON]),
    )


async def _member_listing(ctx: FlowContext, public_id: str):
    listing = await listings.get_listing(ctx.db, public_id)
    if listing is None or not await memberships.is_member(ctx.db, listing.id, ctx.user.email):
        ctx.reply(NOT_A_MEMBER)
        return None
    return listing


async def _renew(ctx: FlowContext, public_id: str) -> None:
    listing = await _member_listing(ctx, public_id)
    if listing is None:
        return
    if not memberships.renewal_due(listing, utcnow(), ctx.settings.renewal_lookahead_days):
        expiry = memberships.membership_expiry(listing)
        ctx.reply(f"Your {listing.plan} membership ({public_id}) is still active until {day(expiry)}.")
        return
    await initiate_payment(ctx, listing, renewal=True)


async def _ask_leave(ctx: FlowContext, public_id: str) -> None:
    listing = await _member_listing(ctx, public_id)
    if listing is None:
        return
    if await memberships.pending_leave(ctx.db, ctx.user.user_id, public_id):
        ctx.reply(f"You already have a pending leave request for {public_id}.")
        return
    ctx.state = ConfirmLeave(public_id=public_id)
    ctx.reply(
        f"Leave {listing.plan} ({public_id})? You'll be removed after "
        f"{ctx.settings.leave_grace_days} days and can cancel before then.",
        keyboard([button("Yes, leave", "my:leave_ok"), button("No", "my:joined")]),
    )


async def _confirm_leave(ctx: FlowContext) -> None:
    public_id = ctx.state.public_id
    try:
        request = await memberships.request_leave(
            ctx.db,
            user_id=ctx.user.user_id,
            email=ctx.user.email,
            public_id=public_id,
            grace_days=ctx.settings.leave_grace_days,
        )
    except ListingAccessDenied:
        ctx.show_main_menu(NOT_A_MEMBER)
        return
    except DuplicateLeaveRequest:
        ctx.state = MyMemberships()
        ctx.reply(f"You already have a pending leave request for {public_id}.")
        return

    ctx.state = MyMemberships()
    ctx.reply(
        f"Leave request submitted. You'll be removed from {public_id} on {day(request.expires_at)}.",
        keyboard([button("Cancel leave request", f"my:stay:{public_id}")], [MAIN_MENU_BUTTON]),
    )


async def _cancel_leave(ctx: FlowContext, public_id: str) -> None:
    if await memberships.cancel_leave(ctx.db, ctx.user.user_id, public_id):
        ctx.reply(f"Your leave request for {public_id} was cancelled. You're staying!")
    else:
        ctx.reply(f"There is no pending leave request for {public_id}.")


@required
async def on_callback(ctx: FlowContext, action: str, arg: str) -> None:
    state = ctx.state
    if action == "listed":
        await render_listed(ctx)
    elif action == "joined":
        await render_joined(ctx)
    elif action == "l" and ctx.at("my_listings") and arg in ("next", "prev"):
        await render_listed(ctx, state.page + (1 if arg == "next" else -1))
    elif action == "j" and ctx.at("my_memberships") and arg in ("next", "prev"):
        await render_joined(ctx, state.page + (1 if arg == "next" else -1))
    elif action == "unlist" and ctx.at("my_listings"):
        await _unlist(ctx, arg)
    elif action == "update" and ctx.at("my_listings"):
        await _open_update(ctx, arg)
    elif action == "upd" and ctx.at("update_menu"):
        await _choose_update(ctx, arg)
    elif action == "method" and ctx.at("update_share_method"):
        await _choose_method(ctx, arg)
    elif action == "renew" and ctx.at("my_memberships"):
        await _renew(ctx, arg)
    elif action == "leave" and ctx.at("my_memberships"):
        await _ask_leave(ctx, arg)
    elif action == "leave_ok" and ctx.at("confirm_leave"):
        await _confirm_leave(ctx)
    elif action == "stay" and ctx.at("my_memberships"):
        await _cancel_leave(ctx, arg)
    else:
        ctx.stale()


# ---------------------------------------------------------------------------
# Text steps (owner updates)
# ---------------------------------------------------------------------------


async def _owned(ctx: FlowContext):
    try:
        return await listings.get_owned_listing(ctx.db, ctx.state.public_id, ctx.user.user_id)
    except ListingAccessDenied:
        ctx.show_main_menu(NOT_YOURS)
        return None


async def _updated(ctx: FlowContext, text: str) -> None:
    ctx.reply(text)
    await render_listed(ctx)


@required
async def on_update_slots(ctx: FlowContext) -> None:
    slots = parse_int(ctx.incoming.text, 1, ctx.settings.max_slots)
    if slots is None:
        ctx.reply(f"Please enter a whole number of slots between 1 and {ctx.settings.max_slots}:")
        return
    listing = await _owned(ctx)
    if listing is None:
        return
    try:
        await listings.update_slots(ctx.db, listing, slots, ctx.settings.slot_update_policy)
    except SlotUpdateRejected:
        taken = listing.total_slots - listing.remaining_slots
        ctx.reply(f"{taken} slots are already taken. Please enter at least {taken}:")
        return
    await _updated(ctx, f"Slots for {listing.public_id} updated to {listing.total_slots}.")


@required
async def on_update_duration(ctx: FlowContext) -> None:
    duration = parse_int(ctx.incoming.text, 1, 12)
    if duration is None:
        ctx.reply("Please enter a number of months between 1 and 12:")
        return
    listing = await _owned(ctx)
    if listing is None:
        return
    await listings.update_duration(ctx.db, listing, duration)
    await _updated(ctx, f"Duration for {listing.public_id} updated to {months(duration)}.")


@required
async def on_update_login_email(ctx: FlowContext) -> None:
    email = ctx.incoming.text.strip()
    if not users.is_valid_email(email):
        ctx.reply("That email address is not valid. Please enter the login email:")
        return
    ctx.state = UpdateLoginPassword(public_id=ctx.state.public_id, login_email=email)
    ctx.reply("Enter the password for the shared account:")


@required
async def on_update_login_password(ctx: FlowContext) -> None:
    password = ctx.incoming.text.strip()
    if not password:
        ctx.reply("The password cannot be empty. Please enter the password:")
        return
    listing = await _owned(ctx)
    if listing is None:
        return
    secret = {"email": ctx.state.login_email, "password": password}
    await listings.update_share_access(ctx.db, listing, ShareMethod.LOGIN, secret)
    await _updated(ctx, f"Login details for {listing.public_id} updated.")


@required
async def on_update_phone(ctx: FlowContext) -> None:
    phone = ctx.incoming.text.strip()
    if not PHONE_RE.match(phone):
        ctx.reply("Please enter the phone number in international format, for example +2348012345678:")
        return
    listing = await _owned(ctx)
    if listing is None:
        return
    await listings.update_share_access(ctx.db, listing, ShareMethod.OTP, {"phone": phone})
    await _updated(ctx, f"OTP phone for {listing.public_id} updated.")


TEXT_HANDLERS = {
    "update_slots": on_update_slots,
    "update_duration": on_update_duration,
    "update_login_email": on_update_login_email,
    "update_login_password": on_update_login_password,
    "update_phone": on_update_phone,
}
