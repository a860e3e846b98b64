"""
Registration: full name -> email -> emailed code -> verified user.
"""

from __future__ import annotations

import functools
from typing import Awaitable, Callable

import structlog

from qshare.bot.context import FlowContext
from qshare.core.errors import AlreadyRegistered, CollaboratorError, EmailTaken
from qshare.schemas.session import CollectEmail, CollectFullName, VerifyCode, advance
from qshare.services import users

log = structlog.get_logger()

Handler = Callable[..., Awaitable[None]]


async def begin(ctx: FlowContext) -> None:
    ctx.state = CollectFullName()
    ctx.reply("Welcome to Q! To get started, please register.\n\nPlease enter your full name:")


def required(handler: Handler) -> Handler:
    """Send unregistered users into registration instead of running ``handler``."""

    @functools.wraps(handler)
    async def wrapper(ctx: FlowContext, *args) -> None:
        if ctx.user is None:
            log.info("registration.required", handler=handler.__qualname__)
            await begin(ctx)
            return
        await handler(ctx, *args)

    return wrapper


async def start(ctx: FlowContext) -> None:
    if ctx.user is None:
        await begin(ctx)
        return
    ctx.show_main_menu(
        f"Welcome back to Q by Cratebux, {ctx.user.first_name}! "
        "Share premium subscriptions like Netflix, Spotify, and more at a fraction of the cost."
    )


async def on_full_name(ctx: FlowContext) -> None:
    text = ctx.incoming.text.strip()
    if not users.is_full_name(text):
        ctx.reply("That doesn't look like a full name. Please enter your first and last name:")
        return
    ctx.state = advance(ctx.state, CollectEmail, full_name=text)
    ctx.reply("Great! Now enter your email (for verification):")


async def on_email(ctx: FlowContext) -> None:
    email = users.normalize_email(ctx.incoming.text)
    if not users.is_valid_email(email):
        ctx.reply("That email address is not valid. Please enter a valid email:")
        return
    if await users.email_taken(ctx.db, email):
        ctx.reply("This email has already been used. Please enter a different one:")
        return

    code = users.generate_verification_code()
    first_name = ctx.state.full_name.split(" ")[0]
    try:
        await ctx.deps.email.send_code(first_name, email, code)
    except CollaboratorError as exc:
        log.error("registration.email_failed", error=str(exc))
        ctx.show_main_menu(
            "Sorry, we couldn't send your verification email right now. Please try again later."
        )
        return

    ctx.state = advance(ctx.state, VerifyCode, email=email, code=code)
    ctx.reply("Enter the verification code sent to your email:")


async def on_code(ctx: FlowContext) -> None:
    if ctx.incoming.text.strip() != ctx.state.code:
        ctx.reply("Incorrect code. Please enter the correct verification code:")
        return

    try:
        user = await users.create_user(
            ctx.db,
            user_id=ctx.incoming.user_id,
            chat_id=ctx.incoming.chat_id,
            full_name=ctx.state.full_name,
            email=ctx.state.email,
        )
    except AlreadyRegistered:
        log.info("registration.already_registered")
        ctx.show_main_menu("You are already registered. Welcome back to Q by Cratebux!")
        return
    except EmailTaken:
        ctx.state = advance(ctx.state, CollectEmail)
        ctx.reply("This email has already been used. Please enter a different one:")
        return

    ctx.user = user
    log.info("registration.completed", user_id=user.user_id)
    ctx.show_main_menu("Registration successful! You're ready to share and save.")


TEXT_HANDLERS = {
    "collect_full_name": on_full_name,
    "collect_email": on_email,
    "verify_code": on_code,
}
