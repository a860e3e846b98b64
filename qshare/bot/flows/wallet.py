"""Wallet / Payments: owner balance and recent payment history."""

from __future__ import annotations

from qshare.bot.context import FlowContext
from qshare.bot.flows.registration import required
from qshare.bot.formatting import day, naira
from qshare.bot.keyboards import back_to_menu
from qshare.schemas.session import Idle
from qshare.services import memberships

HISTORY_LIMIT = 10


@required
async def show(ctx: FlowContext) -> None:
    ctx.state = Idle()
    balance = await memberships.get_balance(ctx.db, ctx.user.user_id)
    payments = await memberships.recent_payments(ctx.db, ctx.user.user_id, HISTORY_LIMIT)

    lines = [f"Balance: {naira(balance)}", ""]
    if payments:
        lines.append("Recent payments:")
        lines += [
            f"{day(p.created_at)}  {p.plan} ({p.public_id})  {naira(p.amount)}  {p.kind}"
            for p in payments
        ]
    else:
        lines.append("No payments yet.")
    ctx.reply("\n".join(lines), back_to_menu())
