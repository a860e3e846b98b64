"""Profile / Settings: view profile, edit name, change email (re-verified)."""

from __future__ import annotations

import structlog

from qshare.bot.context import FlowContext
from qshare.bot.flows.registration import required
from qshare.bot.keyboards import MAIN_MENU_BUTTON, button, keyboard
from qshare.core.errors import CollaboratorError, EmailTaken
from qshare.schemas.session import EditEmail, EditName, Idle, VerifyNewEmail
from qshare.services import users

log = structlog.get_logger()


def _render(ctx: FlowContext, prefix: str = "") -> None:
    user = ctx.user
    ctx.state = Idle()
    text = f"Name: {user.full_name}\nEmail: {user.email}"
    ctx.reply(
        f"{prefix}\n\n{text}" if prefix else text,
        keyboard(
            [button("Edit name", "prof:name"), button("Change email", "prof:email")],
            [MAIN_MENU_BUTTON],
        ),
    )


@required
async def show(ctx: FlowContext) -> None:
    _render(ctx)


@required
async def on_callback(ctx: FlowContext, action: str, arg: str) -> None:
    if action == "name" and ctx.at("idle"):
        ctx.state = EditName()
        ctx.reply("Enter your new full name:")
    elif action == "email" and ctx.at("idle"):
        ctx.state = EditEmail()
        ctx.reply("Enter your new email address:")
    else:
        ctx.stale()


@required
async def on_name(ctx: FlowContext) -> None:
    text = ctx.incoming.text.strip()
    if not users.is_full_name(text):
        ctx.reply("That doesn't look like a full name. Please enter your first and last name:")
        return
    await users.update_full_name(ctx.db, ctx.user, text)
    _render(ctx, "Your name has been updated.")


@required
async def on_email(ctx: FlowContext) -> None:
    email = users.normalize_email(ctx.incoming.text)
    if not users.is_valid_email(email):
        ctx.reply("That email address is not valid. Please enter a valid email:")
        return
    if email == ctx.user.email:
        ctx.reply("That's already your email. Enter a different one:")
        return
    if await users.email_taken(ctx.db, email, exclude_user_id=ctx.user.user_id):
        ctx.reply("This email has already been used. Please enter a different one:")
        return

    code = users.generate_verification_code()
    try:
        await ctx.deps.email.send_code(ctx.user.first_name, email, code)
    except CollaboratorError as exc:
        log.error("profile.email_failed", error=str(exc))
        ctx.show_main_menu("Sorry, we couldn't send your verification email right now. Please try again later.")
        return
    ctx.state = VerifyNewEmail(email=email, code=code)
    ctx.reply("Enter the verification code sent to your new email:")


@required
async def on_code(ctx: FlowContext) -> None:
    state: VerifyNewEmail = ctx.state
    if ctx.incoming.text.strip() != state.code:
        ctx.reply("Incorrect code. Please enter the correct verification code:")
        return
    try:
        await users.change_email(ctx.db, ctx.user, state.email)
    except EmailTaken:
        ctx.show_main_menu("This email has already been used. Your email was not changed.")
        return
    _render(ctx, "Your email has been updated.")


TEXT_HANDLERS = {
    "edit_name": on_name,
    "edit_email": on_email,
    "verify_new_email": on_code,
}
