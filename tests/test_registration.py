"""
Registration flow tests: full name -> email -> emailed code -> verified user.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from qshare.core.errors import AlreadyRegistered, CollaboratorError, EmailTaken
from qshare.schemas.session import CollectFullName
from qshare.services import users
from tests.factories import make_user


def _sent_code(bot) -> str:
    return bot.email.send_code.await_args.args[2]


async def _register(bot, user_id: str, name: str, email: str) -> list[str]:
    await bot.text(user_id, "/start")
    await bot.text(user_id, name)
    await bot.text(user_id, email)
    return await bot.text(user_id, _sent_code(bot))


@pytest.mark.asyncio
async def test_start_for_unknown_user_asks_for_full_name(bot):
    replies = await bot.text("101", "/start")
    assert "full name" in replies[0]
    assert (await bot.state("101")).step == "collect_full_name"


@pytest.mark.asyncio
async def test_single_word_name_is_rejected(bot):
    await bot.text("101", "/start")
    replies = await bot.text("101", "John")
    assert "full name" in replies[0]
    assert (await bot.state("101")).step == "collect_full_name"


@pytest.mark.asyncio
async def test_full_name_advances_to_email(bot):
    await bot.text("101", "/start")
    await bot.text("101", "John Doe")
    state = await bot.state("101")
    assert state.step == "collect_email"
    assert state.full_name == "John Doe"


@pytest.mark.asyncio
async def test_invalid_email_reprompts(bot):
    await bot.text("101", "/start")
    await bot.text("101", "John Doe")
    replies = await bot.text("101", "john-at-example")
    assert "not valid" in replies[0]
    assert (await bot.state("101")).step == "collect_email"
    bot.email.send_code.assert_not_awaited()


@pytest.mark.asyncio
async def test_email_sends_code_with_first_name(bot):
    await bot.text("101", "/start")
    await bot.text("101", "John Doe")
    await bot.text("101", "John@Example.com")

    name, email, code = bot.email.send_code.await_args.args
    assert name == "John"
    assert email == "john@example.com"
    assert len(code) == 6 and code.isdigit()
    state = await bot.state("101")
    assert state.step == "verify_code"
    assert state.code == code


@pytest.mark.asyncio
async def test_wrong_code_reprompts(bot):
    await bot.text("101", "/start")
    await bot.text("101", "John Doe")
    await bot.text("101", "john@example.com")
    replies = await bot.text("101", "000000" if _sent_code(bot) != "000000" else "111111")
    assert "Incorrect code" in replies[0]
    assert (await bot.state("101")).step == "verify_code"


@pytest.mark.asyncio
async def test_correct_code_persists_verified_user(bot, db):
    replies = await _register(bot, "101", "John Doe", "john@example.com")
    assert "Registration successful" in replies[-1]
    assert await bot.state("101") is None

    user = await users.get_user(db, "101")
    assert user is not None
    assert user.full_name == "John Doe"
    assert user.email == "john@example.com"
    assert user.verified is True
    assert user.chat_id == 101


@pytest.mark.asyncio
async def test_known_user_is_greeted_by_first_name(bot, session_factory):
    await make_user(session_factory, "101", "john@example.com", full_name="John Doe")
    replies = await bot.text("101", "/start")
    assert "John" in replies[0]
    assert "menu:browse" in bot.callback_data()
    assert "menu:admin" not in bot.callback_data()


@pytest.mark.asyncio
async def test_admin_sees_admin_entry(bot, session_factory):
    await make_user(session_factory, "101", "john@example.com", full_name="John Doe", admin=True)
    await bot.text("101", "/start")
    assert "menu:admin" in bot.callback_data()


@pytest.mark.asyncio
async def test_email_owned_by_another_user_is_rejected(bot, session_factory):
    await make_user(session_factory, "202", "taken@example.com")
    await bot.text("101", "/start")
    await bot.text("101", "John Doe")
    replies = await bot.text("101", "taken@example.com")
    assert "already been used" in replies[0]
    assert (await bot.state("101")).step == "collect_email"


@pytest.mark.asyncio
async def test_same_email_registered_twice_is_rejected(db):
    await users.create_user(db, user_id="1", chat_id=1, full_name="A B", email="dup@example.com")
    await db.commit()
    with pytest.raises(EmailTaken):
        await users.create_user(db, user_id="2", chat_id=2, full_name="C D", email="DUP@example.com")


@pytest.mark.asyncio
async def test_email_failure_resets_to_idle(bot):
    bot.email.send_code.side_effect = CollaboratorError("email", "HTTP 503")
    await bot.text("101", "/start")
    await bot.text("101", "John Doe")
    replies = await bot.text("101", "john@example.com")
    assert "couldn't send your verification email" in replies[0]
    assert await bot.state("101") is None
    assert "menu:browse" in bot.callback_data()


@pytest.mark.asyncio
async def test_registration_required_actions_redirect(bot):
    replies = await bot.press("101", "menu:add")
    assert "full name" in replies[0]
    assert (await bot.state("101")).step == "collect_full_name"


@pytest.mark.asyncio
async def test_inactive_session_times_out(bot, settings):
    stale = CollectFullName()
    stale.updated_at = stale.updated_at - timedelta(seconds=settings.inactivity_timeout_seconds + 5)
    await bot.store.set("101:101", stale)

    replies = await bot.text("101", "John Doe")
    assert "timed out" in replies[0]
    assert "Please choose an option" in replies[1]
    assert await bot.state("101") is None


@pytest.mark.parametrize("email", ["a@b.co", "john.doe+q@example.com", "ade@mail.example.ng"])
def test_deliverable_addresses_are_accepted(email):
    assert users.is_valid_email(email)


@pytest.mark.parametrize(
    "email",
    ["john@localhost.test", "a..b@example.com", "john@exa mple.com", "john@example", "@example.com"],
)
def test_malformed_addresses_are_rejected(email):
    assert not users.is_valid_email(email)


@pytest.mark.asyncio
async def test_reserved_domain_reprompts(bot):
    await bot.text("101", "/start")
    await bot.text("101", "John Doe")
    replies = await bot.text("101", "john@site.invalid")
    assert "not valid" in replies[0]
    bot.email.send_code.assert_not_awaited()


@pytest.mark.asyncio
async def test_second_record_for_same_account_is_already_registered(db):
    await users.create_user(db, user_id="1", chat_id=1, full_name="A B", email="first@example.com")
    await db.commit()
    with pytest.raises(AlreadyRegistered):
        await users.create_user(db, user_id="1", chat_id=1, full_name="A B", email="second@example.com")


@pytest.mark.asyncio
async def test_concurrent_registration_of_same_account_is_already_registered(db, session_factory, monkeypatch):
    await make_user(session_factory, "101", "john@example.com", full_name="John Doe")
    real_get_user = users.get_user
    lookups = []

    async def racing_get_user(session, user_id):
        lookups.append(user_id)
        if len(lookups) == 1:
            return None
        return await real_get_user(session, user_id)

    monkeypatch.setattr(users, "get_user", racing_get_user)
    with pytest.raises(AlreadyRegistered):
        await users.create_user(db, user_id="101", chat_id=101, full_name="John Doe", email="new@example.com")
    assert len(lookups) == 2
