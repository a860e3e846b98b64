"""
Browse and join: available categories -> subcategories -> paginated listings
-> listing detail -> payment (initiate, verify, cancel).
"""

from __future__ import annotations

import structlog

from qshare.bot.context import FlowContext, chat_of
from qshare.bot.flows.registration import required
from qshare.bot.formatting import listing_card, naira
from qshare.bot.keyboards import MAIN_MENU_BUTTON, button, column, keyboard, pager, url_button
from qshare.core.errors import CollaboratorError, ListingAccessDenied, ListingUnavailable
from qshare.models.listing import Listing
from qshare.schemas.listings import RETRYABLE_PAYMENT_STATUSES, BrowseSort, ListingStatus, PaymentStatus
from qshare.schemas.session import AwaitPayment, Browse, ViewListing
from qshare.services import listings, memberships, users

log = structlog.get_logger()

SORT_LABELS = {
    BrowseSort.NEWEST: "Newest",
    BrowseSort.OLDEST: "Oldest",
    BrowseSort.VERIFIED: "Verified first",
}


async def show_categories(ctx: FlowContext, text: str = "Choose a category:") -> None:
    catalog = ctx.deps.catalog
    names = await listings.available_categories(ctx.db)
    indexed = [(catalog.category_index(name), name) for name in names]
    indexed = [(i, name) for i, name in indexed if i is not None]
    if not indexed:
        ctx.show_main_menu("No subscriptions are available right now. Check back soon!")
        return
    ctx.state = Browse()
    ctx.reply(text, column([button(name, f"br:cat:{i}") for i, name in indexed], [MAIN_MENU_BUTTON]))


async def _choose_category(ctx: FlowContext, arg: str) -> None:
    catalog = ctx.deps.catalog
    category = catalog.category(int(arg)) if arg.isdigit() else None
    if category is None:
        ctx.stale()
        return
    names = await listings.available_subcategories(ctx.db, category.name)
    indexed = [(catalog.subcategory_index(category.name, name), name) for name in names]
    indexed = [(i, name) for i, name in indexed if i is not None]
    if not indexed:
        await show_categories(ctx, f"Nothing is available in {category.name} anymore. Choose a category:")
        return
    ctx.state = Browse(category=category.name)
    ctx.reply(
        f"{category.name}: choose a service:",
        column(
            [button(name, f"br:sub:{i}") for i, name in indexed],
            [button("Back to categories", "br:back"), MAIN_MENU_BUTTON],
        ),
    )


async def _choose_subcategory(ctx: FlowContext, arg: str) -> None:
    state: Browse = ctx.state
    sub = ctx.deps.catalog.subcategory(state.category, int(arg)) if arg.isdigit() else None
    if sub is None:
        ctx.stale()
        return
    ctx.state = Browse(category=state.category, subcategory=sub.name, page=0, sort=state.sort)
    await render_results(ctx)


async def render_results(ctx: FlowContext) -> None:
    state: Browse = ctx.state
    size = ctx.settings.page_size
    rows, total = await listings.browse_listings(
        ctx.db,
        category=state.category,
        subcategory=state.subcategory,
        page=state.page,
        page_size=size,
        sort=state.sort,
    )
    if total == 0:
        await show_categories(ctx, f"No {state.subcategory} listings are open right now. Choose a category:")
        return
    last_page = (total - 1) // size
    if state.page > last_page:
        ctx.state = state = Browse(**{**state.model_dump(exclude={"updated_at"}), "page": last_page})
        await render_results(ctx)
        return

    blocks = [listing_card(listing, owner) for listing, owner in rows]
    text = f"{state.subcategory}: page {state.page + 1} of {last_page + 1}\n\n" + "\n\n".join(blocks)
    select_buttons = [button(f"Select {listing.public_id}", f"br:sel:{listing.public_id}") for listing, _ in rows]
    sort_row = [
        button(label, f"br:sort:{sort.value}") for sort, label in SORT_LABELS.items() if sort != state.sort
    ]
    ctx.reply(
        text,
        column(
            select_buttons,
            pager("br", state.page, state.page < last_page),
            sort_row,
            [button("Back to categories", "br:back"), MAIN_MENU_BUTTON],
        ),
    )


def _joinable(listing: Listing | None) -> bool:
    return (
        listing is not None
        and listing.status == ListingStatus.LIVE.value
        and listing.remaining_slots > 0
    )


async def _select(ctx: FlowContext, public_id: str) -> None:
    state: Browse = ctx.state
    listing = await listings.get_listing(ctx.db, public_id)
    if not _joinable(listing):
        ctx.reply("This listing is no longer available.")
        await render_results(ctx)
        return
    owner = await listings.get_owner(ctx.db, listing)
    ctx.state = ViewListing(
        public_id=listing.public_id,
        category=state.category,
        subcategory=state.subcategory,
        page=state.page,
        sort=state.sort,
    )
    ctx.reply(
        listing_card(listing, owner),
        keyboard(
            [button("Continue to payment", "pay:start")],
            [button("Back to results", "br:results")],
            [MAIN_MENU_BUTTON],
        ),
    )


async def on_browse_callback(ctx: FlowContext, action: str, arg: str) -> None:
    browsing = ctx.at("browse")
    state = ctx.state
    if action == "back" and ctx.at("browse", "view_listing"):
        await show_categories(ctx)
    elif action == "cat" and browsing:
        await _choose_category(ctx, arg)
    elif action == "sub" and browsing and state.category and not state.subcategory:
        await _choose_subcategory(ctx, arg)
    elif action in ("next", "prev") and browsing and state.subcategory:
        step = 1 if action == "next" else -1
        ctx.state = Browse(
            category=state.category,
            subcategory=state.subcategory,
            page=max(0, state.page + step),
            sort=state.sort,
        )
        await render_results(ctx)
    elif action == "sort" and browsing and state.subcategory and arg in {s.value for s in BrowseSort}:
        ctx.state = Browse(category=state.category, subcategory=state.subcategory, page=0, sort=BrowseSort(arg))
        await render_results(ctx)
    elif action == "sel" and browsing and state.subcategory:
        await _select(ctx, arg)
    elif action == "results" and ctx.at("view_listing"):
        ctx.state = Browse(
            category=state.category, subcategory=state.subcategory, page=state.page, sort=state.sort
        )
        await render_results(ctx)
    else:
        ctx.stale()


# ---------------------------------------------------------------------------
# Payment
# ---------------------------------------------------------------------------


def _payment_keyboard(authorization_url: str):
    return keyboard(
        [url_button("Pay now", authorization_url)],
        [button("Completed", "pay:verify"), button("Cancel", "pay:cancel")],
    )


async def initiate_payment(ctx: FlowContext, listing: Listing, renewal: bool = False) -> None:
    """Start a gateway transfer for ``listing`` and wait for the user to confirm it."""
    if listing.amount < ctx.settings.min_payment_amount:
        log.warning("payment.amount_invalid", public_id=listing.public_id, amount=listing.amount)
        ctx.reply("This listing's amount can't be paid online. Please contact support.")
        return
    email = ctx.user.email
    if not users.is_valid_email(email):
        ctx.reply("Your email address is not valid. Please update it from Profile / Settings.")
        return

    try:
        link = await ctx.deps.payments.initiate(listing.amount, email)
    except CollaboratorError as exc:
        log.error("payment.initiate_failed", public_id=listing.public_id, error=str(exc))
        ctx.reply("We couldn't reach the payment service. Please try again.")
        return

    ctx.state = AwaitPayment(
        public_id=listing.public_id,
        reference=link.reference,
        authorization_url=link.authorization_url,
        renewal=renewal,
    )
    log.info("payment.initiated", public_id=listing.public_id, reference=link.reference, renewal=renewal)
    verb = "renew" if renewal else "join"
    ctx.reply(
        f"To {verb} {listing.plan} ({listing.public_id}), pay {naira(listing.amount)} "
        "using the link below, then tap Completed.",
        _payment_keyboard(link.authorization_url),
    )


async def _start_payment(ctx: FlowContext) -> None:
    listing = await listings.get_listing(ctx.db, ctx.state.public_id)
    if not _joinable(listing):
        ctx.show_main_menu("This listing is no longer available.")
        return
    if listing.owner_id == ctx.user.user_id:
        ctx.reply("You can't join your own listing.")
        return
    if await memberships.is_member(ctx.db, listing.id, ctx.user.email):
        ctx.reply("You're already a member of this listing.")
        return
    await initiate_payment(ctx, listing)


async def _verify_payment(ctx: FlowContext) -> None:
    state: AwaitPayment = ctx.state
    try:
        status = await ctx.deps.payments.verify(state.reference)
    except CollaboratorError as exc:
        log.error("payment.verify_failed", reference=state.reference, error=str(exc))
        ctx.reply(
            "We couldn't reach the payment service. Please try again.",
            _payment_keyboard(state.authorization_url),
        )
        return

    if status != PaymentStatus.SUCCESS.value:
        prefix = f"Your payment is {status}." if status in RETRYABLE_PAYMENT_STATUSES else "We couldn't confirm your payment yet."
        ctx.reply(
            f"{prefix} Complete the transfer, then tap Completed.",
            _payment_keyboard(state.authorization_url),
        )
        return

    user_id, email, first_name = ctx.user.user_id, ctx.user.email, ctx.user.first_name
    try:
        if state.renewal:
            listing = await memberships.complete_renewal(
                ctx.db, public_id=state.public_id, user_id=user_id, reference=state.reference
            )
        else:
            listing = await memberships.complete_join(
                ctx.db,
                public_id=state.public_id,
                user_id=user_id,
                email=email,
                reference=state.reference,
            )
    except (ListingUnavailable, ListingAccessDenied):
        ctx.show_main_menu(
            f"Sorry, listing {state.public_id} is no longer available. "
            f"Please contact support with your payment reference {state.reference}."
        )
        return

    if listing is None:
        ctx.show_main_menu("This payment has already been processed.")
        return

    log.info("payment.verified", public_id=listing.public_id, reference=state.reference, renewal=state.renewal)
    owner = await listings.get_owner(ctx.db, listing)
    if owner is not None:
        verb = "renewed" if state.renewal else "joined"
        ctx.notify(
            chat_of(owner),
            f"{first_name} {verb} your {listing.plan} listing ({listing.public_id}). "
            f"Slots left: {listing.remaining_slots}/{listing.total_slots}.",
        )

    if state.renewal:
        ctx.show_main_menu(f"Payment confirmed! Your {listing.plan} membership ({listing.public_id}) is renewed.")
    else:
        ctx.show_main_menu(f"Payment confirmed! You're now part of {listing.plan} ({listing.public_id}).")


@required
async def on_payment_callback(ctx: FlowContext, action: str, arg: str) -> None:
    if action == "start" and ctx.at("view_listing"):
        await _start_payment(ctx)
    elif action == "verify" and ctx.at("await_payment"):
        await _verify_payment(ctx)
    elif action == "cancel" and ctx.at("await_payment"):
        ctx.show_main_menu("Payment cancelled.")
    else:
        ctx.stale()
