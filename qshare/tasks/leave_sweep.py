"""
ARQ background task: finalize leave requests whose grace period has elapsed.

Scheduled daily at 00:00 UTC. Run with ``arq qshare.tasks.leave_sweep.WorkerSettings``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import structlog
from arq import cron
from arq.connections import RedisSettings
from sqlalchemy.ext.asyncio import async_sessionmaker

from qshare.core.config import get_settings
from qshare.core.database import get_session_context
from qshare.core.logging import configure_logging
from qshare.models.base import utcnow
from qshare.services.memberships import due_leave_requests, finalize_leave

log = structlog.get_logger()


async def run_leave_sweep(
    session_factory: Optional[async_sessionmaker] = None,
    now: Optional[datetime] = None,
) -> int:
    """Finalize every due leave request, each in its own transaction.

    A request that fails is logged and skipped. Returns the number finalized.
    """
    now = now or utcnow()
    async with get_session_context(session_factory) as session:
        request_ids = await due_leave_requests(session, now)

    count = 0
    for request_id in request_ids:
        try:
            async with get_session_context(session_factory) as session:
                if await finalize_leave(session, request_id, now):
                    count += 1
        except Exception:
            log.exception("leave_sweep.request_failed", request_id=str(request_id))

    log.info("leave_sweep.batch_finalized", count=count, due=len(request_ids))
    return count


async def sweep_leave_requests(ctx: dict) -> int:
    return await run_leave_sweep(ctx.get("session_factory"))


async def startup(ctx: dict) -> None:
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)


# ARQ worker settings
class WorkerSettings:
    """ARQ worker configuration."""

    functions = [sweep_leave_requests]
    cron_jobs = [
        cron(sweep_leave_requests, hour=0, minute=0),
    ]
    on_startup = startup
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)
    timezone = timezone.utc
