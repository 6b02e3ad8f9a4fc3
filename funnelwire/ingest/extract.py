"""Concurrent extraction from the ads and CRM sources."""

from __future__ import annotations

import asyncio
import logging

from funnelwire.errors import ExtractionError
from funnelwire.ingest.models import RawAdRecord, RawOpportunity
from funnelwire.ingest.sources import SourceClient

logger = logging.getLogger(__name__)


class Extractor:
    def __init__(self, client: SourceClient) -> None:
        self.client = client

    async def fetch_all(self) -> tuple[list[RawAdRecord], list[RawOpportunity]]:
        """Fetch both batches; both fetches finish before either failure is raised."""
        ads, crm = await asyncio.gather(
            self.client.fetch_ad_batch(),
            self.client.fetch_crm_batch(),
            return_exceptions=True,
        )
        for source, result in (("ads", ads), ("crm", crm)):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.error("Failed to fetch %s data: %s", source, result)
        if isinstance(ads, BaseException):
            raise ExtractionError("ads", str(ads)) from ads
        if isinstance(crm, BaseException):
            raise ExtractionError("crm", str(crm)) from crm
        logger.info("Extracted %s ad records and %s opportunities", len(ads), len(crm))
        return ads, crm
