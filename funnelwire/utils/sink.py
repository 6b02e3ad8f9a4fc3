"""Delivery of exported metrics to the downstream HTTP sink."""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from datetime import date
from typing import Sequence

import httpx

from funnelwire.errors import ExportError
from funnelwire.logic.models import ExportRecord
from funnelwire.utils.dates import format_date
from funnelwire.utils.rate_limit import RateLimiter
from funnelwire.utils.telemetry import Telemetry

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Signature"


def sign_payload(secret: str, payload: bytes) -> str:
    """Hex HMAC-SHA256 of the exact request body."""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


class SinkExporter:
    def __init__(
        self,
        url: str,
        secret: str = "",
        *,
        telemetry: Telemetry,
        rate_limiter: RateLimiter | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.url = url
        self.secret = secret
        self.telemetry = telemetry
        self.timeout = timeout
        self._rate_limiter = rate_limiter or RateLimiter()

    async def export(self, records: Sequence[ExportRecord], day: date) -> None:
        if not self.url:
            raise ExportError("sink URL not configured")
        start = time.monotonic()
        await self._rate_limiter.wait()

        payload = json.dumps([record.to_dict() for record in records]).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if self.secret:
            headers[SIGNATURE_HEADER] = sign_payload(self.secret, payload)

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.url, content=payload, headers=headers)
        except httpx.HTTPError as exc:
            self.telemetry.record_external_failure("sink", "network_error")
            raise ExportError(f"failed to export data: {exc}") from exc

        duration = time.monotonic() - start
        if not response.is_success:
            self.telemetry.record_external_call("sink", f"error_{response.status_code}", duration)
            raise ExportError(f"sink API returned status {response.status_code}")

        self.telemetry.record_external_call("sink", "success", duration)
        logger.info(
            "Exported %s records for %s to %s in %.3fs",
            len(records),
            format_date(day),
            self.url,
            duration,
        )
