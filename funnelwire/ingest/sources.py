"""HTTP clients for the ads and CRM sources."""

from __future__ import annotations

import logging
import time
from typing import Any, Protocol

import httpx

from funnelwire.ingest.models import RawAdRecord, RawOpportunity
from funnelwire.utils.rate_limit import RateLimiter
from funnelwire.utils.telemetry import Telemetry

logger = logging.getLogger(__name__)


class SourceClient(Protocol):
    async def fetch_ad_batch(self) -> list[RawAdRecord]: ...

    async def fetch_crm_batch(self) -> list[RawOpportunity]: ...


class SourceError(Exception):
    def __init__(self, api: str, error_type: str, message: str) -> None:
        super().__init__(message)
        self.api = api
        self.error_type = error_type


def _ad_items(data: Any) -> list[dict[str, Any]]:
    return ((data.get("external") or {}).get("ads") or {}).get("performance") or []


def _crm_items(data: Any) -> list[dict[str, Any]]:
    return ((data.get("external") or {}).get("crm") or {}).get("opportunities") or []


class HttpSourceClient:
    def __init__(
        self,
        ads_url: str,
        crm_url: str,
        *,
        telemetry: Telemetry,
        rate_limiter: RateLimiter | None = None,
        timeout: float = 30.0,
        session: httpx.AsyncClient | None = None,
    ) -> None:
        self.ads_url = ads_url
        self.crm_url = crm_url
        self.telemetry = telemetry
        self._rate_limiter = rate_limiter or RateLimiter()
        self._session = session or httpx.AsyncClient(
            timeout=timeout, headers={"Accept": "application/json"}
        )

    async def close(self) -> None:
        await self._session.aclose()

    async def fetch_ad_batch(self) -> list[RawAdRecord]:
        data = await self._get_json("ads", self.ads_url)
        try:
            records = [RawAdRecord.from_payload(item) for item in _ad_items(data)]
        except (AttributeError, TypeError, ValueError) as exc:
            self.telemetry.record_external_failure("ads", "json_parse")
            raise SourceError("ads", "json_parse", f"failed to parse ads data: {exc}") from exc
        logger.info("Fetched %s ad records from %s", len(records), self.ads_url)
        return records

    async def fetch_crm_batch(self) -> list[RawOpportunity]:
        data = await self._get_json("crm", self.crm_url)
        try:
            records = [RawOpportunity.from_payload(item) for item in _crm_items(data)]
        except (AttributeError, TypeError, ValueError) as exc:
            self.telemetry.record_external_failure("crm", "json_parse")
            raise SourceError("crm", "json_parse", f"failed to parse CRM data: {exc}") from exc
        logger.info("Fetched %s opportunities from %s", len(records), self.crm_url)
        return records

    async def _get_json(self, api: str, url: str) -> Any:
        if not url:
            self.telemetry.record_external_failure(api, "not_configured")
            raise SourceError(api, "not_configured", f"{api} URL not configured")
        start = time.monotonic()
        await self._rate_limiter.wait()
        try:
            response = await self._session.get(url)
        except httpx.HTTPError as exc:
            self.telemetry.record_external_failure(api, "network_error")
            raise SourceError(api, "network_error", f"failed to fetch {api} data: {exc}") from exc
        duration = time.monotonic() - start
        if not response.is_success:
            self.telemetry.record_external_call(api, f"error_{response.status_code}", duration)
            raise SourceError(api, "status", f"{api} API returned status {response.status_code}")
        try:
            data = response.json()
        except ValueError as exc:
            self.telemetry.record_external_failure(api, "json_parse")
            raise SourceError(api, "json_parse", f"failed to parse {api} data: {exc}") from exc
        self.telemetry.record_external_call(api, "success", duration)
        return data
