"""Turns raw source batches into normalized records."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable, Sequence
from datetime import datetime

from funnelwire.errors import TransformError
from funnelwire.ingest.models import (
    NormalizedAdRecord,
    NormalizedOpportunity,
    RawAdRecord,
    RawOpportunity,
)
from funnelwire.ingest.normalize import (
    AD_DATE_FORMATS,
    CRM_DATE_FORMATS,
    normalize_utm,
    parse_flexible_date,
)
from funnelwire.utils.dates import now_utc
from funnelwire.utils.telemetry import Telemetry

logger = logging.getLogger(__name__)

DATE_PARSE = "date_parse"


class Transformer:
    def __init__(self, telemetry: Telemetry, *, clock: Callable[[], datetime] = now_utc) -> None:
        self.telemetry = telemetry
        self.clock = clock
        self.failures: Counter[str] = Counter()

    def transform_ads(
        self, raw: Sequence[RawAdRecord] | None, since: datetime | None = None
    ) -> list[NormalizedAdRecord]:
        if raw is None:
            raise TransformError("ads batch is missing")
        processed: list[NormalizedAdRecord] = []
        for ad in raw:
            parsed = parse_flexible_date(ad.date, AD_DATE_FORMATS)
            if parsed is None:
                logger.warning("Failed to parse ad date %r, skipping", ad.date)
                self.telemetry.record_record_failure("ads", DATE_PARSE)
                self.failures["ads"] += 1
                continue
            if since is not None and parsed < since:
                continue
            processed.append(
                NormalizedAdRecord(
                    date=parsed,
                    campaign_id=ad.campaign_id,
                    channel=ad.channel,
                    clicks=ad.clicks,
                    impressions=ad.impressions,
                    cost=ad.cost,
                    utm_campaign=normalize_utm(ad.utm_campaign),
                    utm_source=normalize_utm(ad.utm_source),
                    utm_medium=normalize_utm(ad.utm_medium),
                    processed_at=self.clock(),
                )
            )
        self.telemetry.record_records("ads", "success", len(processed))
        return processed

    def transform_crm(
        self, raw: Sequence[RawOpportunity] | None, since: datetime | None = None
    ) -> list[NormalizedOpportunity]:
        if raw is None:
            raise TransformError("CRM batch is missing")
        processed: list[NormalizedOpportunity] = []
        for opp in raw:
            created_at = parse_flexible_date(opp.created_at, CRM_DATE_FORMATS)
            if created_at is None:
                logger.warning("Failed to parse opportunity date %r, skipping", opp.created_at)
                self.telemetry.record_record_failure("crm", DATE_PARSE)
                self.failures["crm"] += 1
                continue
            if since is not None and created_at < since:
                continue
            processed.append(
                NormalizedOpportunity(
                    opportunity_id=opp.opportunity_id,
                    contact_email=opp.contact_email,
                    stage=opp.stage,
                    amount=opp.amount,
                    created_at=created_at,
                    utm_campaign=normalize_utm(opp.utm_campaign),
                    utm_source=normalize_utm(opp.utm_source),
                    utm_medium=normalize_utm(opp.utm_medium),
                    processed_at=self.clock(),
                )
            )
        self.telemetry.record_records("crm", "success", len(processed))
        return processed
