"""
Q Share Bot API Server

Entry point for the FastAPI application.
"""

from contextlib import asynccontextmanager
from typing import Optional

import httpx
import structlog
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import async_sessionmaker

from qshare.api import router as api_router
from qshare.bot.context import BotDeps
from qshare.bot.dispatcher import Dispatcher
from qshare.clients.email import EmailVerifier
from qshare.clients.payments import PaymentGateway
from qshare.clients.telegram import build_bot
from qshare.core.config import Settings, get_settings
from qshare.core.database import async_session_factory, init_db
from qshare.core.logging import configure_logging
from qshare.core.session_store import build_session_store
from qshare.schemas.catalog import get_catalog

log = structlog.get_logger()


async def build_dispatcher(
    settings: Settings,
    http: httpx.AsyncClient,
    session_factory: async_sessionmaker,
) -> Dispatcher:
    """Wire clients, catalog and the session store into a dispatcher."""
    deps = BotDeps(
        settings=settings,
        catalog=get_catalog(),
        telegram=build_bot(settings),
        email=EmailVerifier(settings.email_webhook_url, http),
        payments=PaymentGateway(settings.payment_base_url, http),
    )
    store = await build_session_store(settings, session_factory)
    return Dispatcher(deps, store, session_factory)


def create_app(
    settings: Optional[Settings] = None,
    dispatcher: Optional[Dispatcher] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Passing a ``dispatcher`` skips building one at startup.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level, settings.log_format)
        log.info("qshare.starting", session_backend=settings.session_backend)
        http: Optional[httpx.AsyncClient] = None
        if getattr(app.state, "dispatcher", None) is None:
            if settings.create_tables:
                await init_db()
            http = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
            app.state.dispatcher = await build_dispatcher(settings, http, async_session_factory)
        yield
        log.info("qshare.shutting_down")
        await app.state.dispatcher.store.close()
        if http is not None:
            await app.state.dispatcher.deps.telegram.session.close()
            await http.aclose()

    app = FastAPI(
        title="Q Share Bot",
        description="Telegram bot for the Q subscription-sharing marketplace.",
        version="0.1.0",
        lifespan=lifespan,
    )
    if dispatcher is not None:
        app.state.dispatcher = dispatcher

    app.include_router(api_router)

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check: database and session store reachable."""
        current = getattr(app.state, "dispatcher", None)
        if current is None:
            return JSONResponse(status_code=503, content={"status": "starting"})
        database = await current.ping_database()
        sessions = await current.store.ping()
        if not (database and sessions):
            return JSONResponse(
                status_code=503,
                content={"status": "degraded", "database": database, "sessions": sessions},
            )
        return {"status": "ready", "session_backend": current.store.name}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
