"""Email verification webhook."""

from __future__ import annotations

import httpx
import structlog

from qshare.core.http import request_with_retry

log = structlog.get_logger()


class EmailVerifier:
    """Posts ``{name, email, verification}`` to the verification webhook."""

    def __init__(self, url: str, client: httpx.AsyncClient):
        self._url = url
        self._client = client

    async def send_code(self, name: str, email: str, code: str) -> None:
        await request_with_retry(
            self._client,
            "email",
            "POST",
            self._url,
            json={"name": name, "email": email, "verification": code},
        )
        log.info("email.verification_sent", email=email)
