"""UTM correlation of ad spend with CRM outcomes.

Ads and opportunities are grouped by their UTM key. Every key that has ad
spend becomes one job for a bounded pool of worker threads; each worker turns
its group into a single :class:`BusinessMetrics` bucket. Keys that only appear
on the CRM side never produce a bucket.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections import defaultdict
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
from decimal import Decimal
from typing import Protocol, TypeVar

from funnelwire.errors import AggregationError
from funnelwire.ingest.models import NormalizedAdRecord, NormalizedOpportunity, Stage, UTMKey
from funnelwire.logic.models import BusinessMetrics
from funnelwire.utils.dates import now_utc

logger = logging.getLogger(__name__)


class _HasUTM(Protocol):
    @property
    def utm_key(self) -> UTMKey: ...


R = TypeVar("R", bound=_HasUTM)


def safe_div(numerator: float | int | Decimal, denominator: float | int | Decimal) -> float:
    if not denominator:
        return 0.0
    return float(numerator) / float(denominator)


def group_by_utm(records: Iterable[R]) -> dict[UTMKey, list[R]]:
    grouped: dict[UTMKey, list[R]] = defaultdict(list)
    for record in records:
        grouped[record.utm_key].append(record)
    return dict(grouped)


def _latest(ads: Sequence[NormalizedAdRecord]) -> NormalizedAdRecord:
    # Same-day ties resolve to the greatest campaign_id, then channel.
    return max(ads, key=lambda ad: (ad.date, ad.campaign_id, ad.channel))


def compute_bucket(
    utm: UTMKey,
    ads: Sequence[NormalizedAdRecord],
    opportunities: Sequence[NormalizedOpportunity],
    calculated_at: datetime,
) -> BusinessMetrics | None:
    if not ads:
        return None

    clicks = sum(ad.clicks for ad in ads)
    impressions = sum(ad.impressions for ad in ads)
    cost = sum((ad.cost for ad in ads), Decimal("0"))
    latest = _latest(ads)

    leads = opps = closed_won = 0
    revenue = Decimal("0")
    for opp in opportunities:
        if opp.stage == Stage.LEAD.value:
            leads += 1
        elif opp.stage == Stage.OPPORTUNITY.value:
            opps += 1
        elif opp.stage == Stage.CLOSED_WON.value:
            closed_won += 1
            revenue += opp.amount

    return BusinessMetrics(
        date=latest.date,
        channel=latest.channel,
        campaign_id=latest.campaign_id,
        utm_campaign=utm.campaign,
        utm_source=utm.source,
        utm_medium=utm.medium,
        clicks=clicks,
        impressions=impressions,
        cost=cost,
        leads=leads,
        opportunities=opps,
        closed_won=closed_won,
        revenue=revenue,
        cpc=safe_div(cost, clicks),
        cpa=safe_div(cost, leads),
        cvr_lead_to_opp=safe_div(opps, leads),
        cvr_opp_to_won=safe_div(closed_won, opps),
        roas=safe_div(revenue, cost),
        calculated_at=calculated_at,
    )


def calculate_metrics(
    ads: Sequence[NormalizedAdRecord],
    opportunities: Sequence[NormalizedOpportunity],
    pool_size: int,
    *,
    on_bucket: Callable[[BusinessMetrics], None] | None = None,
    clock: Callable[[], datetime] = now_utc,
) -> list[BusinessMetrics]:
    """Compute one bucket per UTM key with ad spend using ``pool_size`` threads.

    Blocks until every job has been processed. Result order is unspecified.
    """
    if pool_size < 1:
        raise ValueError("pool_size must be at least 1")

    ads_by_utm = group_by_utm(ads)
    opps_by_utm = group_by_utm(opportunities)
    if not ads_by_utm:
        return []

    jobs: queue.Queue[UTMKey] = queue.Queue(maxsize=len(ads_by_utm))
    results: queue.Queue[BusinessMetrics] = queue.Queue()
    errors: list[tuple[UTMKey, BaseException]] = []
    calculated_at = clock()

    for utm in ads_by_utm:
        jobs.put_nowait(utm)

    def work() -> None:
        while True:
            try:
                utm = jobs.get_nowait()
            except queue.Empty:
                return
            try:
                bucket = compute_bucket(utm, ads_by_utm[utm], opps_by_utm.get(utm, ()), calculated_at)
            except Exception as exc:  # noqa: BLE001
                errors.append((utm, exc))
                continue
            if bucket is not None:
                results.put(bucket)

    workers = [
        threading.Thread(target=work, name=f"metrics-worker-{idx}", daemon=True)
        for idx in range(min(pool_size, len(ads_by_utm)))
    ]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join()

    if errors:
        utm, exc = errors[0]
        raise AggregationError(f"failed to calculate metrics for {utm}: {exc}") from exc

    metrics: list[BusinessMetrics] = []
    while True:
        try:
            bucket = results.get_nowait()
        except queue.Empty:
            break
        metrics.append(bucket)
        if on_bucket is not None:
            on_bucket(bucket)
    logger.info("Calculated %s metric buckets from %s UTM groups", len(metrics), len(ads_by_utm))
    return metrics
