"""
Shared fixtures: a throwaway SQLite database and fake collaborators.
"""

from __future__ import annotations

import itertools
from unittest.mock import AsyncMock

import pytest
from aiogram import Bot
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from qshare.bot.context import BotDeps
from qshare.bot.dispatcher import Dispatcher
from qshare.clients.email import EmailVerifier
from qshare.clients.payments import PaymentGateway, PaymentLink
from qshare.core.config import Settings
from qshare.core.database import init_db
from qshare.core.session_store import MemorySessionStore
from qshare.schemas.catalog import get_catalog
from tests.factories import BotHarness

ADMIN_CHAT_ID = 900


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'qshare-test.db'}",
        session_backend="memory",
        admin_chat_ids=[ADMIN_CHAT_ID],
        webhook_secret="test-secret",
        email_webhook_url="http://email.test/verify",
        payment_base_url="http://payments.test",
        support_url="https://support.test/chat",
        log_format="text",
    )


@pytest.fixture
async def engine(settings):
    engine = create_async_engine(settings.database_url)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def telegram() -> AsyncMock:
    return AsyncMock(spec=Bot)


@pytest.fixture
def email_client() -> AsyncMock:
    return AsyncMock(spec=EmailVerifier)


@pytest.fixture
def payments() -> AsyncMock:
    gateway = AsyncMock(spec=PaymentGateway)
    references = itertools.count(1)

    async def initiate(amount: int, email: str) -> PaymentLink:
        ref = f"ref-{next(references)}"
        return PaymentLink(reference=ref, authorization_url=f"https://pay.test/{ref}")

    gateway.initiate.side_effect = initiate
    gateway.verify.return_value = "success"
    return gateway


@pytest.fixture
def deps(settings, telegram, email_client, payments) -> BotDeps:
    return BotDeps(
        settings=settings,
        catalog=get_catalog(),
        telegram=telegram,
        email=email_client,
        payments=payments,
    )


@pytest.fixture
def bot(deps, session_factory) -> BotHarness:
    store = MemorySessionStore()
    return BotHarness(
        dispatcher=Dispatcher(deps, store, session_factory),
        telegram=deps.telegram,
        email=deps.email,
        payments=deps.payments,
        store=store,
    )
