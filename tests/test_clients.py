"""
Collaborator client tests: httpx.MockTransport for the HTTP clients,
a mocked aiogram Bot for Telegram.
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import httpx
import pytest
from aiogram import Bot

from qshare.clients.email import EmailVerifier
from qshare.clients.payments import PaymentGateway
from qshare.clients.telegram import ALLOWED_UPDATES, build_bot, register_webhook
from qshare.core.errors import CollaboratorError
from qshare.core.http import request_with_retry


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestRetry:
    @pytest.mark.asyncio
    async def test_server_error_is_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503 if len(calls) == 1 else 200, json={})

        async with _client(handler) as client:
            resp = await request_with_retry(client, "svc", "GET", "http://svc.test/", retry_base=0)
        assert resp.status_code == 200
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(422, json={})

        async with _client(handler) as client:
            with pytest.raises(CollaboratorError, match="HTTP 422"):
                await request_with_retry(client, "svc", "GET", "http://svc.test/", retry_base=0)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_three_attempts(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(CollaboratorError) as exc_info:
                await request_with_retry(client, "svc", "POST", "http://svc.test/", retry_base=0)
        assert len(calls) == 3
        assert exc_info.value.service == "svc"


class TestPaymentGateway:
    @pytest.mark.asyncio
    async def test_initiate(self):
        def handler(request):
            assert request.url.path == "/api/transfer/initiate-transfer"
            assert json.loads(request.read()) == {"amount": 950, "email": "a@b.co"}
            return httpx.Response(200, json={"authorization_url": "https://pay/x", "reference": "r1"})

        async with _client(handler) as client:
            link = await PaymentGateway("http://pay.test/", client).initiate(950, "a@b.co")
        assert (link.reference, link.authorization_url) == ("r1", "https://pay/x")

    @pytest.mark.asyncio
    async def test_initiate_without_reference_fails(self):
        async with _client(lambda r: httpx.Response(200, json={"authorization_url": "x"})) as client:
            with pytest.raises(CollaboratorError):
                await PaymentGateway("http://pay.test", client).initiate(950, "a@b.co")

    @pytest.mark.asyncio
    async def test_verify_passes_reference(self):
        def handler(request):
            assert request.url.params["reference"] == "r1"
            return httpx.Response(200, json={"status": "success"})

        async with _client(handler) as client:
            assert await PaymentGateway("http://pay.test", client).verify("r1") == "success"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{"status": "reversed"}, {}, ["success"]])
    async def test_unknown_status_is_pending(self, body):
        async with _client(lambda r: httpx.Response(200, json=body)) as client:
            assert await PaymentGateway("http://pay.test", client).verify("r1") == "pending"


@pytest.mark.asyncio
async def test_email_verifier_payload():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.read())
        return httpx.Response(200, json={"ok": True})

    async with _client(handler) as client:
        await EmailVerifier("http://email.test/hook", client).send_code("John", "john@example.com", "123456")
    assert seen["body"] == {"name": "John", "email": "john@example.com", "verification": "123456"}



@pytest.mark.asyncio
async def test_register_webhook_sends_secret_and_update_kinds():
    bot = AsyncMock(spec=Bot)
    url = await register_webhook(bot, "https://bot.test/", "s3cret")
    assert url == "https://bot.test/telegram/webhook"
    bot.set_webhook.assert_awaited_once_with(
        "https://bot.test/telegram/webhook",
        secret_token="s3cret",
        allowed_updates=ALLOWED_UPDATES,
    )
    assert ALLOWED_UPDATES == ["message", "callback_query"]


@pytest.mark.asyncio
async def test_build_bot_uses_configured_api_server(settings):
    settings.bot_token = "123456:TEST-token"
    settings.telegram_api_url = "http://telegram.test"
    bot = build_bot(settings)
    try:
        assert bot.token == "123456:TEST-token"
        assert bot.session.api.base == "http://telegram.test/bot{token}/{method}"
    finally:
        await bot.session.close()
