"""
Session state and session store tests.
"""

from __future__ import annotations

import pytest

from qshare.core.session_store import (
    DatabaseSessionStore,
    MemorySessionStore,
    RedisSessionStore,
    build_session_store,
    session_key,
)
from qshare.schemas.listings import ShareMethod
from qshare.schemas.session import AddDuration, AddLoginPassword, AddSlots, Idle, parse_state, advance


def test_session_key():
    assert session_key(12, 34) == "12:34"


def test_advance_drops_fields_the_next_step_does_not_declare():
    state = AddLoginPassword(
        category="Music", subcategory="Spotify", plan="Spotify Family", amount=950, slots=3,
        login_email="family@example.com",
    )
    nxt = advance(state, AddDuration, share_method=ShareMethod.LOGIN, secret={"email": "x", "password": "y"})
    assert nxt.step == "add_duration"
    assert nxt.slots == 3
    assert not hasattr(nxt, "login_email")


def test_parse_state_uses_step_discriminator():
    state = parse_state({"step": "add_slots", "category": "Music", "subcategory": "Spotify", "plan": "P", "amount": 1})
    assert isinstance(state, AddSlots)


@pytest.mark.asyncio
async def test_memory_store_round_trip():
    store = MemorySessionStore()
    await store.set("1:1", AddSlots(category="Music", subcategory="Spotify", plan="P", amount=950))
    loaded = await store.get("1:1")
    assert isinstance(loaded, AddSlots) and loaded.amount == 950
    await store.delete("1:1")
    assert await store.get("1:1") is None


@pytest.mark.asyncio
async def test_database_store_round_trip(session_factory):
    store = DatabaseSessionStore(session_factory)
    assert await store.ping()
    await store.set("1:1", Idle())
    await store.set("1:1", AddSlots(category="Music", subcategory="Spotify", plan="P", amount=950))
    loaded = await store.get("1:1")
    assert isinstance(loaded, AddSlots)
    await store.delete("1:1")
    assert await store.get("1:1") is None


@pytest.mark.asyncio
async def test_unreadable_blob_is_treated_as_missing():
    store = MemorySessionStore()
    store._data["1:1"] = {"step": "no_such_step"}
    assert await store.get("1:1") is None


@pytest.mark.asyncio
async def test_unreachable_redis_falls_back_to_memory(settings, session_factory, monkeypatch):
    async def unreachable(self):
        return False

    monkeypatch.setattr(RedisSessionStore, "ping", unreachable)
    settings.session_backend = "redis"
    store = await build_session_store(settings, session_factory)
    assert store.name == "memory"
    assert store.durable is False


@pytest.mark.asyncio
async def test_unreachable_backend_without_fallback_fails(settings, session_factory, monkeypatch):
    async def unreachable(self):
        return False

    monkeypatch.setattr(RedisSessionStore, "ping", unreachable)
    settings.session_backend = "redis"
    settings.session_fallback_to_memory = False
    with pytest.raises(RuntimeError):
        await build_session_store(settings, session_factory)


@pytest.mark.asyncio
async def test_database_backend_selected_when_reachable(settings, session_factory):
    settings.session_backend = "database"
    store = await build_session_store(settings, session_factory)
    assert store.name == "database"
