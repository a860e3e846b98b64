"""
HTTP surface: the Telegram webhook and the signup API.
"""

from fastapi import APIRouter

from . import auth, webhook

router = APIRouter()
router.include_router(webhook.router, prefix="/telegram", tags=["Telegram"])
router.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
