"""
Script to register the bot's webhook URL (and secret) with Telegram.
"""

import argparse
import asyncio

from aiogram.exceptions import AiogramError

from qshare.clients.telegram import build_bot, register_webhook
from qshare.core.config import get_settings

settings = get_settings()


async def set_webhook(base_url: str) -> bool:
    bot = build_bot(settings)
    try:
        url = await register_webhook(bot, base_url, settings.webhook_secret)
    except AiogramError as exc:
        print(f"Failed to set webhook: {exc}")
        return False
    finally:
        await bot.session.close()
    print(f"Webhook set to {url}")
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Register the Telegram webhook.")
    parser.add_argument("--base-url", required=True, help="Public base URL of this service")

    args = parser.parse_args()

    raise SystemExit(0 if asyncio.run(set_webhook(args.base_url)) else 1)
