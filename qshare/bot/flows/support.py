"""Support & FAQs."""

from __future__ import annotations

from qshare.bot.context import FlowContext
from qshare.bot.faqs import FAQS, find_faq
from qshare.bot.keyboards import MAIN_MENU_BUTTON, button, column, keyboard, pager, url_button
from qshare.schemas.session import Faq, Idle

FAQ_PAGE_SIZE = 3


async def show(ctx: FlowContext) -> None:
    ctx.state = Idle()
    ctx.reply(
        "How can we help?",
        keyboard(
            [button("FAQs", "sup:faq")],
            [url_button("Live support", ctx.settings.support_url)],
            [MAIN_MENU_BUTTON],
        ),
    )


def _render_faqs(ctx: FlowContext, page: int) -> None:
    last_page = (len(FAQS) - 1) // FAQ_PAGE_SIZE
    page = min(max(page, 0), last_page)
    ctx.state = Faq(page=page)
    chunk = FAQS[page * FAQ_PAGE_SIZE:(page + 1) * FAQ_PAGE_SIZE]
    ctx.reply(
        "Frequently Asked Questions:",
        column(
            [button(faq.question, f"sup:q:{faq.id}") for faq in chunk],
            pager("sup", page, page < last_page),
            [button("Back to Support", "sup:home")],
        ),
    )


async def on_callback(ctx: FlowContext, action: str, arg: str) -> None:
    if action == "home":
        await show(ctx)
    elif action == "faq":
        _render_faqs(ctx, 0)
    elif action in ("next", "prev") and ctx.at("faq"):
        _render_faqs(ctx, ctx.state.page + (1 if action == "next" else -1))
    elif action == "list" and ctx.at("faq"):
        _render_faqs(ctx, ctx.state.page)
    elif action == "q" and ctx.at("faq"):
        faq = find_faq(arg)
        if faq is None:
            ctx.stale()
            return
        ctx.reply(f"{faq.question}\n\n{faq.answer}", keyboard([button("Back to questions", "sup:list")]))
    else:
        ctx.stale()
