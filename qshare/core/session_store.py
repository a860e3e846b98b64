"""
Conversation session storage.

Three backends share one contract (get / set / delete by key):

- database: ``sessions`` table, durable
- redis: one JSON string per key, durable
- memory: process-local dict, lost on restart

The backend is chosen once at startup by ``build_session_store``. When the
configured durable backend cannot be reached and the fallback is enabled,
the memory backend is selected and that choice is logged.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Optional

import redis.asyncio as redis
import structlog
from pydantic import ValidationError
from sqlalchemy import delete, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from qshare.core.config import Settings
from qshare.models.base import utcnow
from qshare.models.session import SessionRecord
from qshare.schemas.session import BaseState, SessionState, dump_state, parse_state

log = structlog.get_logger()

REDIS_SESSION_PREFIX = "qs:session:"

# Raised by a backend that was reachable at startup and is not any more.
STORE_ERRORS = (redis.RedisError, SQLAlchemyError, OSError)


def session_key(user_id: str | int, chat_id: str | int) -> str:
    return f"{user_id}:{chat_id}"


def _decode(key: str, raw: dict | None) -> Optional[SessionState]:
    if raw is None:
        return None
    try:
        return parse_state(raw)
    except ValidationError:
        log.warning("session.unreadable", key=key)
        return None


class SessionStore(ABC):
    """Key -> session state mapping."""

    name: str = "abstract"
    durable: bool = True

    @abstractmethod
    async def get(self, key: str) -> Optional[SessionState]: ...

    @abstractmethod
    async def set(self, key: str, state: BaseState) -> None: ...

    @abstractmethod
    async def delete(self, key: str) -> None: ...

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class MemorySessionStore(SessionStore):
    name = "memory"
    durable = False

    def __init__(self) -> None:
        self._data: dict[str, dict] = {}

    async def get(self, key: str) -> Optional[SessionState]:
        return _decode(key, self._data.get(key))

    async def set(self, key: str, state: BaseState) -> None:
        self._data[key] = dump_state(state)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)


class RedisSessionStore(SessionStore):
    name = "redis"

    def __init__(self, client: redis.Redis):
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> "RedisSessionStore":
        return cls(redis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> Optional[SessionState]:
        raw = await self._redis.get(REDIS_SESSION_PREFIX + key)
        return _decode(key, json.loads(raw) if raw else None)

    async def set(self, key: str, state: BaseState) -> None:
        await self._redis.set(REDIS_SESSION_PREFIX + key, json.dumps(dump_state(state)))

    async def delete(self, key: str) -> None:
        await self._redis.delete(REDIS_SESSION_PREFIX + key)

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except (redis.RedisError, OSError):
            return False

    async def close(self) -> None:
        await self._redis.aclose()


class DatabaseSessionStore(SessionStore):
    name = "database"

    def __init__(self, session_factory: async_sessionmaker):
        self._factory = session_factory

    async def get(self, key: str) -> Optional[SessionState]:
        async with self._factory() as session:
            record = await session.get(SessionRecord, key)
            return _decode(key, record.data if record else None)

    async def set(self, key: str, state: BaseState) -> None:
        async with self._factory() as session:
            record = await session.get(SessionRecord, key)
            if record is None:
                record = SessionRecord(key=key, data=dump_state(state))
            else:
                record.data = dump_state(state)
                record.updated_at = utcnow()
            session.add(record)
            await session.commit()

    async def delete(self, key: str) -> None:
        async with self._factory() as session:
            await session.execute(delete(SessionRecord).where(SessionRecord.key == key))
            await session.commit()

    async def ping(self) -> bool:
        try:
            async with self._factory() as session:
                await session.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, OSError):
            return False


async def build_session_store(
    settings: Settings, session_factory: async_sessionmaker
) -> SessionStore:
    """Select the session backend for this process."""
    store: SessionStore
    if settings.session_backend == "memory":
        store = MemorySessionStore()
    elif settings.session_backend == "redis":
        store = RedisSessionStore.from_url(settings.redis_url)
    else:
        store = DatabaseSessionStore(session_factory)

    if store.durable and not await store.ping():
        if not settings.session_fallback_to_memory:
            raise RuntimeError(f"Session backend '{store.name}' is unreachable")
        log.warning("session_store.degraded", configured=store.name, selected="memory")
        await store.close()
        store = MemorySessionStore()

    log.info("session_store.selected", backend=store.name, durable=store.durable)
    return store
