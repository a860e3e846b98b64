"""
Payment gateway client (bank transfer initiation and verification).
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx
import structlog

from qshare.core.errors import CollaboratorError
from qshare.core.http import request_with_retry
from qshare.schemas.listings import PaymentStatus

log = structlog.get_logger()


@dataclass
class PaymentLink:
    reference: str
    authorization_url: str


class PaymentGateway:
    def __init__(self, base_url: str, client: httpx.AsyncClient):
        self._base_url = base_url.rstrip("/")
        self._client = client

    async def initiate(self, amount: int, email: str) -> PaymentLink:
        resp = await request_with_retry(
            self._client,
            "payments",
            "POST",
            f"{self._base_url}/api/transfer/initiate-transfer",
            json={"amount": amount, "email": email},
        )
        try:
            data = resp.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        authorization_url = str(data.get("authorization_url") or "")
        reference = str(data.get("reference") or "")
        if not authorization_url or not reference:
            log.error("payments.incomplete_initiation", response=data)
            raise CollaboratorError("payments", "missing authorization URL or reference")
        return PaymentLink(reference=reference, authorization_url=authorization_url)

    async def verify(self, reference: str) -> str:
        """Return the transfer status; anything unrecognised is reported as pending."""
        resp = await request_with_retry(
            self._client,
            "payments",
            "GET",
            f"{self._base_url}/api/transfer/verify-transfer",
            params={"reference": reference},
        )
        try:
            data = resp.json()
        except ValueError:
            data = {}
        status = str(data.get("status") or "") if isinstance(data, dict) else ""
        if status not in {s.value for s in PaymentStatus}:
            log.warning("payments.unexpected_status", reference=reference, status=status)
            return PaymentStatus.PENDING.value
        return status
