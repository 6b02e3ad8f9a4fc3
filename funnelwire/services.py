"""Process-wide wiring of stores, clients and services."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date

from funnelwire.config import Settings
from funnelwire.ingest.extract import Extractor
from funnelwire.ingest.models import NormalizedAdRecord, NormalizedOpportunity
from funnelwire.ingest.sources import HttpSourceClient, SourceClient
from funnelwire.logic.export_csv import CsvExporter
from funnelwire.logic.models import BusinessMetrics
from funnelwire.logic.pipeline import Pipeline
from funnelwire.logic.service import Exporter, MetricsService
from funnelwire.store.partitioned import PartitionedStore
from funnelwire.utils.dates import today_utc
from funnelwire.utils.rate_limit import RateLimiter
from funnelwire.utils.sink import SinkExporter
from funnelwire.utils.telemetry import Telemetry


@dataclass(slots=True)
class Services:
    settings: Settings
    telemetry: Telemetry
    ad_store: PartitionedStore[NormalizedAdRecord]
    crm_store: PartitionedStore[NormalizedOpportunity]
    metrics_store: PartitionedStore[BusinessMetrics]
    client: SourceClient
    pipeline: Pipeline
    metrics: MetricsService

    async def close(self) -> None:
        close = getattr(self.client, "close", None)
        if close is not None:
            await close()


def build_exporter(settings: Settings, telemetry: Telemetry, rate_limiter: RateLimiter) -> Exporter:
    if settings.export_provider == "csv":
        return CsvExporter(settings.csv_output_dir)
    return SinkExporter(
        settings.sink_url,
        settings.sink_secret,
        telemetry=telemetry,
        rate_limiter=rate_limiter,
        timeout=settings.request_timeout,
    )


def build_services(
    settings: Settings | None = None,
    *,
    client: SourceClient | None = None,
    exporter: Exporter | None = None,
    telemetry: Telemetry | None = None,
    today: Callable[[], date] = today_utc,
) -> Services:
    settings = settings or Settings.from_env()
    telemetry = telemetry or Telemetry()
    rate_limiter = RateLimiter(rate=settings.rate_limit_per_second, burst=settings.rate_limit_burst)

    ad_store: PartitionedStore[NormalizedAdRecord] = PartitionedStore(lambda ad: ad.date, name="ads")
    crm_store: PartitionedStore[NormalizedOpportunity] = PartitionedStore(
        lambda opp: opp.created_at, name="crm"
    )
    metrics_store: PartitionedStore[BusinessMetrics] = PartitionedStore(
        lambda metric: metric.date, name="metrics"
    )

    if client is None:
        client = HttpSourceClient(
            settings.ads_api_url,
            settings.crm_api_url,
            telemetry=telemetry,
            rate_limiter=rate_limiter,
            timeout=settings.request_timeout,
        )
    if exporter is None:
        exporter = build_exporter(settings, telemetry, rate_limiter)

    pipeline = Pipeline(
        Extractor(client),
        ad_store,
        crm_store,
        metrics_store,
        telemetry,
        worker_pool_size=settings.worker_pool_size,
        run_timeout=settings.run_timeout,
        lookback_days=settings.metrics_lookback_days,
        lookahead_days=settings.metrics_lookahead_days,
        today=today,
    )
    metrics = MetricsService(
        metrics_store,
        exporter,
        telemetry,
        summary_window_days=settings.summary_window_days,
        today=today,
    )
    return Services(
        settings=settings,
        telemetry=telemetry,
        ad_store=ad_store,
        crm_store=crm_store,
        metrics_store=metrics_store,
        client=client,
        pipeline=pipeline,
        metrics=metrics,
    )
