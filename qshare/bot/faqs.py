"""Support FAQ entries, in display order."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Faq:
    id: str
    question: str
    answer: str


FAQS: tuple[Faq, ...] = (
    Faq(
        "how-it-works",
        "How does Q work?",
        "Q lets you legally share and split the cost of premium subscriptions like Netflix, "
        "Spotify, Canva, and more with verified users. We handle the group setup, payments, "
        "and renewals. You just enjoy.",
    ),
    Faq(
        "is-it-safe",
        "Is it safe to share subscriptions with strangers?",
        "Q connects you with verified users only. Each group is screened, payments are "
        "secured, and no one can ghost you or hijack the account.",
    ),
    Faq(
        "what-services",
        "What kind of services can I share on Q?",
        "Netflix, Spotify, ChatGPT, Canva, Notion and more. If it's premium and shareable, "
        "it's probably on Q.",
    ),
    Faq(
        "how-payments-work",
        "How do payments work?",
        "You pay your share and Q handles the rest: no chasing people, no failed renewals. "
        "Everything is automated, transparent and done in naira.",
    ),
    Faq(
        "someone-stops-paying",
        "What happens if someone in my group stops paying?",
        "Q covers it. We either replace them fast or pause the account until your group is "
        "stable again.",
    ),
)


def find_faq(faq_id: str) -> Optional[Faq]:
    for faq in FAQS:
        if faq.id == faq_id:
            return faq
    return None
