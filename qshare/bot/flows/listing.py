"""
Add My Subscription: category -> subcategory -> plan -> slots -> share
method -> credentials -> duration -> confirmation.
"""

from __future__ import annotations

import structlog

from qshare.bot.context import FlowContext
from qshare.bot.flows.registration import required
from qshare.bot.formatting import PHONE_RE, months, naira, parse_int, share_summary
from qshare.bot.keyboards import MAIN_MENU_BUTTON, approve_keyboard, button, column, keyboard
from qshare.core.errors import PublicIdExhausted
from qshare.schemas.listings import ListingStatus, ShareMethod
from qshare.schemas.session import (
    AddCategory,
    AddConfirm,
    AddDuration,
    AddLoginEmail,
    AddLoginPassword,
    AddPhone,
    AddPlan,
    AddShareMethod,
    AddSlots,
    AddSubcategory,
    advance,
)
from qshare.services import listings, users

log = structlog.get_logger()

RETURN_TO_CATEGORY = button("Return to category", "add:back")


def _show_categories(ctx: FlowContext, text: str = "Choose a category for your subscription:") -> None:
    ctx.state = AddCategory()
    buttons = [button(name, f"add:cat:{i}") for i, name in enumerate(ctx.deps.catalog.category_names())]
    ctx.reply(text, column(buttons, [MAIN_MENU_BUTTON]))


@required
async def start(ctx: FlowContext) -> None:
    _show_categories(ctx)


def _index(arg: str) -> int:
    return int(arg) if arg.isdigit() else -1


async def _choose_category(ctx: FlowContext, arg: str) -> None:
    category = ctx.deps.catalog.category(_index(arg))
    if category is None:
        ctx.stale()
        return
    ctx.state = AddSubcategory(category=category.name)
    buttons = [button(sub.name, f"add:sub:{i}") for i, sub in enumerate(category.subcategories)]
    ctx.reply(f"{category.name}: choose a service:", column(buttons, [RETURN_TO_CATEGORY, MAIN_MENU_BUTTON]))


async def _choose_subcategory(ctx: FlowContext, arg: str) -> None:
    catalog = ctx.deps.catalog
    sub = catalog.subcategory(ctx.state.category, _index(arg))
    if sub is None:
        ctx.stale()
        return
    if not sub.plans:
        _show_categories(ctx, f"No plans are available for {sub.name} yet. Please choose another category:")
        return

    ctx.state = advance(ctx.state, AddPlan, subcategory=sub.name)
    fee = ctx.settings.service_fee
    buttons = [
        button(f"{plan.name} ({naira(plan.price + fee)}/month)", f"add:plan:{plan.code}")
        for plan in sub.plans
    ]
    ctx.reply(f"{sub.name}: choose your plan:", column(buttons, [RETURN_TO_CATEGORY, MAIN_MENU_BUTTON]))


async def _choose_plan(ctx: FlowContext, arg: str) -> None:
    plan = ctx.deps.catalog.plan(ctx.state.category, ctx.state.subcategory, arg)
    if plan is None:
        ctx.stale()
        return
    amount = plan.price + ctx.settings.service_fee
    ctx.state = advance(ctx.state, AddSlots, plan=plan.name, amount=amount)
    ctx.reply(
        f"{plan.name}: members will pay {naira(amount)} per month.\n\n"
        f"How many slots are you sharing? (1-{ctx.settings.max_slots})"
    )


async def _choose_method(ctx: FlowContext, arg: str) -> None:
    if arg == ShareMethod.LOGIN.value:
        ctx.state = advance(ctx.state, AddLoginEmail)
        ctx.reply("Enter the login email for the shared account:")
    elif arg == ShareMethod.OTP.value:
        ctx.state = advance(ctx.state, AddPhone)
        ctx.reply("Enter the phone number that receives the OTP (for example +2348012345678):")
    else:
        ctx.stale()


async def _confirm(ctx: FlowContext) -> None:
    state: AddConfirm = ctx.state
    status = ListingStatus(ctx.settings.listing_initial_status)
    listing = await listings.create_listing(
        ctx.db,
        owner_id=ctx.user.user_id,
        public_id=state.public_id,
        category=state.category,
        subcategory=state.subcategory,
        plan=state.plan,
        amount=state.amount,
        slots=state.slots,
        duration_months=state.duration_months,
        share_method=state.share_method,
        secret=state.secret,
        status=status,
    )
    ctx.notify_admins(
        f"New listing {listing.public_id} by {ctx.user.full_name}: {listing.plan} "
        f"({listing.subcategory}), {listing.total_slots} slots at {naira(listing.amount)} per month. "
        f"Status: {listing.status}.",
        approve_keyboard(listing.public_id) if status == ListingStatus.PENDING else None,
    )
    if status == ListingStatus.PENDING:
        text = f"Your subscription {listing.public_id} has been submitted and is awaiting approval."
    else:
        text = f"Your subscription {listing.public_id} is now live!"
    ctx.show_main_menu(text)


WIZARD_STEPS = (
    "add_category",
    "add_subcategory",
    "add_plan",
    "add_slots",
    "add_share_method",
    "add_login_email",
    "add_login_password",
    "add_phone",
    "add_duration",
    "add_confirm",
)


@required
async def on_callback(ctx: FlowContext, action: str, arg: str) -> None:
    if action == "cat" and ctx.at("add_category"):
        await _choose_category(ctx, arg)
    elif action == "sub" and ctx.at("add_subcategory"):
        await _choose_subcategory(ctx, arg)
    elif action == "plan" and ctx.at("add_plan"):
        await _choose_plan(ctx, arg)
    elif action == "back" and ctx.at("add_category", "add_subcategory", "add_plan"):
        _show_categories(ctx)
    elif action == "method" and ctx.at("add_share_method"):
        await _choose_method(ctx, arg)
    elif action == "confirm" and ctx.at("add_confirm"):
        await _confirm(ctx)
    elif action == "cancel" and ctx.at(*WIZARD_STEPS):
        ctx.show_main_menu("Listing discarded.")
    else:
        ctx.stale()


# ---------------------------------------------------------------------------
# Text steps
# ---------------------------------------------------------------------------


@required
async def on_slots(ctx: FlowContext) -> None:
    slots = parse_int(ctx.incoming.text, 1, ctx.settings.max_slots)
    if slots is None:
        ctx.reply(f"Please enter a whole number of slots between 1 and {ctx.settings.max_slots}:")
        return
    ctx.state = advance(ctx.state, AddShareMethod, slots=slots)
    ctx.reply(
        "How will members get access?",
        keyboard(
            [button("Login details", "add:method:login")],
            [button("OTP (phone number)", "add:method:otp")],
            [MAIN_MENU_BUTTON],
        ),
    )


@required
async def on_login_email(ctx: FlowContext) -> None:
    email = ctx.incoming.text.strip()
    if not users.is_valid_email(email):
        ctx.reply("That email address is not valid. Please enter the login email:")
        return
    ctx.state = advance(ctx.state, AddLoginPassword, login_email=email)
    ctx.reply("Enter the password for the shared account:")


@required
async def on_login_password(ctx: FlowContext) -> None:
    password = ctx.incoming.text.strip()
    if not password:
        ctx.reply("The password cannot be empty. Please enter the password:")
        return
    state: AddLoginPassword = ctx.state
    ctx.state = advance(
        state,
        AddDuration,
        share_method=ShareMethod.LOGIN,
        secret={"email": state.login_email, "password": password},
    )
    ctx.reply("How many months will this subscription run? (1-12)")


@required
async def on_phone(ctx: FlowContext) -> None:
    phone = ctx.incoming.text.strip()
    if not PHONE_RE.match(phone):
        ctx.reply("Please enter the phone number in international format, for example +2348012345678:")
        return
    ctx.state = advance(ctx.state, AddDuration, share_method=ShareMethod.OTP, secret={"phone": phone})
    ctx.reply("How many months will this subscription run? (1-12)")


@required
async def on_duration(ctx: FlowContext) -> None:
    duration = parse_int(ctx.incoming.text, 1, 12)
    if duration is None:
        ctx.reply("Please enter a number of months between 1 and 12:")
        return
    try:
        public_id = await listings.generate_public_id(ctx.db)
    except PublicIdExhausted:
        log.error("listing.public_id_exhausted")
        ctx.show_main_menu("We couldn't create your listing right now. Please try again later.")
        return

    state = advance(ctx.state, AddConfirm, duration_months=duration, public_id=public_id)
    ctx.state = state
    lines = [
        "Please confirm your listing:",
        f"ID: {state.public_id}",
        f"Category: {state.category}",
        f"Service: {state.subcategory}",
        f"Plan: {state.plan}",
        f"Amount: {naira(state.amount)} per month",
        f"Slots: {state.slots}",
        f"Duration: {months(state.duration_months)}",
        *share_summary(ShareMethod(state.share_method).value, state.secret),
    ]
    ctx.reply(
        "\n".join(lines),
        keyboard([button("Confirm", "add:confirm"), button("Cancel", "add:cancel")]),
    )


TEXT_HANDLERS = {
    "add_slots": on_slots,
    "add_login_email": on_login_email,
    "add_login_password": on_login_password,
    "add_phone": on_phone,
    "add_duration": on_duration,
}
