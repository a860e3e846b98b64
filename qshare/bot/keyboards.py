"""Inline keyboards. Callback data is ``namespace:action[:arg]``."""

from __future__ import annotations

from typing import Iterable, List

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup


def button(text: str, data: str) -> InlineKeyboardButton:
    return InlineKeyboardButton(text=text, callback_data=data)


def url_button(text: str, url: str) -> InlineKeyboardButton:
    return InlineKeyboardButton(text=text, url=url)


def keyboard(*rows: Iterable[InlineKeyboardButton]) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[list(row) for row in rows if row])


def column(
    buttons: Iterable[InlineKeyboardButton], *footer: List[InlineKeyboardButton]
) -> InlineKeyboardMarkup:
    """One button per row, followed by footer rows."""
    return keyboard(*([b] for b in buttons), *footer)


MAIN_MENU_BUTTON = button("Main menu", "menu:main")


def main_menu(is_admin: bool = False) -> InlineKeyboardMarkup:
    rows = [
        [button("Browse Subscriptions", "menu:browse")],
        [button("My Subscriptions", "menu:mine")],
        [button("Add My Subscription", "menu:add")],
        [button("Wallet / Payments", "menu:wallet")],
        [button("Support & FAQs", "menu:support")],
        [button("Profile / Settings", "menu:profile")],
    ]
    if is_admin:
        rows.append([button("Admin City", "menu:admin")])
    return keyboard(*rows)


def back_to_menu() -> InlineKeyboardMarkup:
    return keyboard([MAIN_MENU_BUTTON])


def pager(namespace: str, page: int, has_next: bool) -> List[InlineKeyboardButton]:
    row: List[InlineKeyboardButton] = []
    if page > 0:
        row.append(button("Previous", f"{namespace}:prev"))
    if has_next:
        row.append(button("Next", f"{namespace}:next"))
    return row


def approve_keyboard(public_id: str) -> InlineKeyboardMarkup:
    return keyboard([button(f"Approve {public_id}", f"adm:approve:{public_id}")])
