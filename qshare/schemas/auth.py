"""Schemas for the signup API used by non-Telegram clients."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class SignupInitiateRequest(BaseModel):
    """Start a signup: the code is emailed, the details wait for confirmation."""
    full_name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    user_id: str = Field(min_length=1, max_length=64)
    platform: str = Field(min_length=1, max_length=32)


class SignupCompleteRequest(BaseModel):
    email: EmailStr
    code: str = Field(min_length=1, max_length=12)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class CheckEmailResponse(BaseModel):
    exists: bool


class MessageResponse(BaseModel):
    message: str


class UserResponse(BaseModel):
    user_id: str
    full_name: str
    email: str
    platform: str
    verified: bool
    created_at: datetime


class SignupCompleteResponse(BaseModel):
    message: str
    user: UserResponse


# ---------------------------------------------------------------------------
# Stored state
# ---------------------------------------------------------------------------

class PendingSignup(BaseModel):
    """Signup details held between initiate and complete."""
    user_id: str
    full_name: str
    email: str
    platform: str
    code: str
    expires_at: datetime
