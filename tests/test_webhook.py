"""
Webhook endpoint tests.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from qshare.main import create_app

UPDATE = {
    "update_id": 7,
    "message": {
        "message_id": 1,
        "date": 1700000000,
        "from": {"id": 1, "is_bot": False, "first_name": "Ada"},
        "chat": {"id": 1, "type": "private"},
        "text": "/start",
    },
}


@pytest.fixture
def dispatcher(settings):
    fake = MagicMock()
    fake.deps.settings = settings
    fake.handle_update = AsyncMock()
    fake.ping_database = AsyncMock(return_value=True)
    fake.store.ping = AsyncMock(return_value=True)
    fake.store.name = "memory"
    return fake


@pytest.fixture
async def client(settings, dispatcher):
    app = create_app(settings, dispatcher=dispatcher)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.mark.asyncio
async def test_valid_secret_dispatches_update(client, dispatcher):
    response = await client.post(
        "/telegram/webhook", json=UPDATE, headers={"X-Telegram-Bot-Api-Secret-Token": "test-secret"}
    )
    assert response.status_code == 200
    assert response.json() == {"ok": True}
    dispatcher.handle_update.assert_awaited_once_with(UPDATE)


@pytest.mark.asyncio
@pytest.mark.parametrize("headers", [{}, {"X-Telegram-Bot-Api-Secret-Token": "wrong"}])
async def test_bad_secret_is_acknowledged_but_ignored(client, dispatcher, headers):
    response = await client.post("/telegram/webhook", json=UPDATE, headers=headers)
    assert response.status_code == 200
    assert response.json() == {"ok": True}
    dispatcher.handle_update.assert_not_awaited()


@pytest.mark.asyncio
async def test_handler_failure_still_answers_ok(client, dispatcher):
    dispatcher.handle_update.side_effect = RuntimeError("boom")
    response = await client.post(
        "/telegram/webhook", json=UPDATE, headers={"X-Telegram-Bot-Api-Secret-Token": "test-secret"}
    )
    assert response.status_code == 200
    assert response.json() == {"ok": True}


@pytest.mark.asyncio
async def test_health_check(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_ready_check(client, dispatcher):
    response = await client.get("/ready")
    assert response.status_code == 200
    assert response.json() == {"status": "ready", "session_backend": "memory"}

    dispatcher.ping_database.return_value = False
    response = await client.get("/ready")
    assert response.status_code == 503
    assert response.json()["database"] is False
