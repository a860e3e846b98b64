"""
Bounded retry for outbound collaborator calls.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import structlog

from qshare.core.errors import CollaboratorError

log = structlog.get_logger()

MAX_RETRIES = 3
RETRY_BASE_SECONDS = 0.5


async def request_with_retry(
    client: httpx.AsyncClient,
    service: str,
    method: str,
    url: str,
    *,
    retry_base: float = RETRY_BASE_SECONDS,
    **kwargs: Any,
) -> httpx.Response:
    """Send a request, retrying transport errors and 5xx with linear backoff.

    4xx responses are not retried. Raises CollaboratorError once the
    attempts are used up.
    """
    last_error = ""
    for attempt in range(MAX_RETRIES):
        try:
            resp = await client.request(method, url, **kwargs)
            resp.raise_for_status()
            return resp
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if 400 <= status < 500:
                log.error("http.client_error", service=service, status=status, url=url)
                raise CollaboratorError(service, f"HTTP {status}") from exc
            last_error = f"HTTP {status}"
        except httpx.TransportError as exc:
            last_error = exc.__class__.__name__

        if attempt == MAX_RETRIES - 1:
            break
        backoff = retry_base * (attempt + 1)
        log.warning(
            "http.retry",
            service=service,
            attempt=attempt + 1,
            backoff=backoff,
            error=last_error,
        )
        await asyncio.sleep(backoff)

    raise CollaboratorError(service, f"gave up after {MAX_RETRIES} attempts ({last_error})")
