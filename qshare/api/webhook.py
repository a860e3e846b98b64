"""
Telegram webhook endpoint.

- POST /telegram/webhook: receive one update

Telegram retries any non-2xx answer, so every outcome (bad secret, handler
failure) is answered ``{"ok": true}`` and only logged.
"""

from __future__ import annotations

import hmac
from typing import Any, Optional

import structlog
from fastapi import APIRouter, Body, Depends, Header, Request

from qshare.bot.dispatcher import Dispatcher

router = APIRouter()
log = structlog.get_logger()

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


def get_dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher


def secret_matches(expected: str, provided: Optional[str]) -> bool:
    if not expected or provided is None:
        return False
    return hmac.compare_digest(expected.encode(), provided.encode())


@router.post("/webhook")
async def telegram_webhook(
    update: dict[str, Any] = Body(...),
    secret: Optional[str] = Header(default=None, alias=SECRET_HEADER),
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    if not secret_matches(dispatcher.deps.settings.webhook_secret, secret):
        log.warning("webhook.bad_secret", update_id=update.get("update_id"))
        return {"ok": True}

    try:
        await dispatcher.handle_update(update)
    except Exception:
        log.exception("webhook.update_failed", update_id=update.get("update_id"))
    return {"ok": True}
