"""
Signup API for clients outside Telegram (website, app).

GET  /api/auth/check-email      : is the email already registered
POST /api/auth/signup/initiate  : email a verification code, hold the details
POST /api/auth/signup/complete  : confirm the code and create the user
"""

from __future__ import annotations

from datetime import timedelta

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from qshare.bot.context import BotDeps
from qshare.core.database import get_session
from qshare.core.errors import AlreadyRegistered, CollaboratorError, EmailTaken
from qshare.models.base import utcnow
from qshare.schemas.auth import (
    CheckEmailResponse,
    MessageResponse,
    PendingSignup,
    SignupCompleteRequest,
    SignupCompleteResponse,
    SignupInitiateRequest,
    UserResponse,
)
from qshare.services import users

router = APIRouter()
log = structlog.get_logger()

EMAIL_IN_USE = "This email address is already in use."


def get_deps(request: Request) -> BotDeps:
    return request.app.state.dispatcher.deps


@router.get("/check-email", response_model=CheckEmailResponse)
async def check_email(
    email: str = Query(..., min_length=1),
    session: AsyncSession = Depends(get_session),
):
    """Report whether an email address is already registered."""
    return CheckEmailResponse(exists=await users.email_taken(session, email))


@router.post("/signup/initiate", response_model=MessageResponse)
async def initiate_signup(
    body: SignupInitiateRequest,
    session: AsyncSession = Depends(get_session),
    deps: BotDeps = Depends(get_deps),
):
    """Email a verification code and hold the signup until it is confirmed."""
    email = users.normalize_email(body.email)
    if not users.is_valid_email(email):
        raise HTTPException(status_code=422, detail="Email address is not valid")
    if await users.email_taken(session, email):
        raise HTTPException(status_code=409, detail=EMAIL_IN_USE)
    if await users.get_user(session, body.user_id) is not None:
        raise HTTPException(status_code=409, detail="This account is already registered.")

    code = users.generate_verification_code()
    full_name = body.full_name.strip()
    try:
        await deps.email.send_code(full_name.split(" ")[0], email, code)
    except CollaboratorError as exc:
        log.error("signup.email_failed", error=str(exc))
        raise HTTPException(status_code=502, detail="Failed to send verification email.") from exc

    await users.save_pending_signup(
        session,
        PendingSignup(
            user_id=body.user_id,
            full_name=full_name,
            email=email,
            platform=body.platform,
            code=code,
            expires_at=utcnow() + timedelta(seconds=deps.settings.signup_code_ttl_seconds),
        ),
    )
    return MessageResponse(message="Verification code sent to your email.")


@router.post(
    "/signup/complete",
    response_model=SignupCompleteResponse,
    status_code=201,
)
async def complete_signup(
    body: SignupCompleteRequest,
    session: AsyncSession = Depends(get_session),
):
    """Confirm the emailed code and create the verified user."""
    email = users.normalize_email(body.email)
    pending = await users.get_pending_signup(session, email)
    if pending is None:
        raise HTTPException(status_code=404, detail="Verification code is invalid or has expired.")
    if body.code.strip() != pending.code:
        raise HTTPException(status_code=400, detail="Incorrect verification code.")

    try:
        user = await users.create_user(
            session,
            user_id=pending.user_id,
            chat_id=None,
            full_name=pending.full_name,
            email=pending.email,
            platform=pending.platform,
        )
    except EmailTaken as exc:
        raise HTTPException(status_code=409, detail=EMAIL_IN_USE) from exc
    except AlreadyRegistered as exc:
        raise HTTPException(status_code=409, detail="This account is already registered.") from exc

    await users.clear_pending_signup(session, email)
    return SignupCompleteResponse(
        message="Registration successful.",
        user=UserResponse(
            user_id=user.user_id,
            full_name=user.full_name,
            email=user.email,
            platform=user.platform,
            verified=user.verified,
            created_at=user.created_at,
        ),
    )
