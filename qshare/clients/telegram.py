"""
Telegram Bot API access through aiogram.

The bot only needs replies, callback answers and webhook setup, all of which
are plain ``aiogram.Bot`` methods. This module builds the ``Bot`` from
settings and holds the webhook registration used by the operator script.
"""

from __future__ import annotations

import structlog
from aiogram import Bot
from aiogram.client.session.aiohttp import AiohttpSession
from aiogram.client.telegram import TelegramAPIServer

from qshare.core.config import Settings

log = structlog.get_logger()

ALLOWED_UPDATES = ["message", "callback_query"]
WEBHOOK_PATH = "/telegram/webhook"


def build_bot(settings: Settings) -> Bot:
    session = AiohttpSession(
        api=TelegramAPIServer.from_base(settings.telegram_api_url),
        timeout=settings.http_timeout_seconds,
    )
    return Bot(token=settings.bot_token, session=session)


async def register_webhook(bot: Bot, base_url: str, secret_token: str) -> str:
    """Point Telegram at this service's webhook. Returns the registered URL."""
    url = f"{base_url.rstrip('/')}{WEBHOOK_PATH}"
    await bot.set_webhook(url, secret_token=secret_token, allowed_updates=ALLOWED_UPDATES)
    log.info("telegram.webhook_set", url=url)
    return url
