"""
Script to grant (or revoke) the admin flag for a registered Telegram user.
"""

import argparse
import asyncio

from qshare.core.database import get_session_context
from qshare.services.users import set_admin


async def promote(user_id: str, revoke: bool = False) -> bool:
    async with get_session_context() as session:
        user = await set_admin(session, user_id, admin=not revoke)

    if user is None:
        print(f"No registered user with Telegram id {user_id}.")
        return False
    state = "revoked from" if revoke else "granted to"
    print(f"Admin {state} {user.full_name} ({user.email}).")
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Promote a registered user to admin.")
    parser.add_argument("--user-id", required=True, help="Telegram user id")
    parser.add_argument("--revoke", action="store_true", help="Remove the admin flag instead")

    args = parser.parse_args()

    raise SystemExit(0 if asyncio.run(promote(args.user_id, args.revoke)) else 1)
