"""Pipeline orchestration.

One run moves through ``extracting -> transforming -> loading -> aggregating``
strictly in sequence. A failure in any stage aborts the run with a
:class:`PipelineError` naming the stage; data already written by the loading
stage stays in the stores.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum

from funnelwire.errors import PipelineError, StoreError
from funnelwire.ingest.extract import Extractor
from funnelwire.ingest.models import NormalizedAdRecord, NormalizedOpportunity
from funnelwire.ingest.transform import Transformer
from funnelwire.logic.correlate import calculate_metrics
from funnelwire.logic.models import BusinessMetrics
from funnelwire.store.partitioned import PartitionedStore
from funnelwire.utils.dates import start_of_day, today_utc
from funnelwire.utils.telemetry import Telemetry

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    IDLE = "idle"
    EXTRACTING = "extracting"
    TRANSFORMING = "transforming"
    LOADING = "loading"
    AGGREGATING = "aggregating"
    DONE = "done"
    FAILED = "failed"


STAGE_NAMES = {
    PipelineState.EXTRACTING: "extract",
    PipelineState.TRANSFORMING: "transform",
    PipelineState.LOADING: "load",
    PipelineState.AGGREGATING: "metrics",
}


@dataclass(slots=True)
class PipelineRun:
    state: PipelineState = PipelineState.IDLE
    since: date | None = None
    ads_loaded: int = 0
    crm_loaded: int = 0
    buckets: int = 0
    failures: dict[str, int] = field(default_factory=dict)
    failed_stage: str | None = None
    duration: float = 0.0


class Pipeline:
    def __init__(
        self,
        extractor: Extractor,
        ad_store: PartitionedStore[NormalizedAdRecord],
        crm_store: PartitionedStore[NormalizedOpportunity],
        metrics_store: PartitionedStore[BusinessMetrics],
        telemetry: Telemetry,
        *,
        worker_pool_size: int = 10,
        run_timeout: float | None = 120.0,
        lookback_days: int = 365,
        lookahead_days: int = 30,
        today: Callable[[], date] = today_utc,
    ) -> None:
        self.extractor = extractor
        self.ad_store = ad_store
        self.crm_store = crm_store
        self.metrics_store = metrics_store
        self.telemetry = telemetry
        self.worker_pool_size = worker_pool_size
        self.run_timeout = run_timeout
        self.lookback_days = lookback_days
        self.lookahead_days = lookahead_days
        self.today = today

    async def run(self, since: date | None = None) -> PipelineRun:
        run = PipelineRun(since=since)
        started = time.monotonic()
        self.telemetry.job_started()
        logger.info("Starting pipeline run (since=%s)", since)
        try:
            await asyncio.wait_for(self._run(run, since), timeout=self.run_timeout)
        except Exception as exc:
            stage = STAGE_NAMES.get(run.state, run.state.value)
            run.failed_stage = stage
            run.state = PipelineState.FAILED
            run.duration = time.monotonic() - started
            self.telemetry.record_job("failed", stage, run.duration)
            logger.error("Pipeline failed during %s: %s", stage, exc)
            if isinstance(exc, asyncio.TimeoutError):
                exc = TimeoutError(f"run exceeded {self.run_timeout}s")
            raise PipelineError(stage, exc) from exc
        finally:
            self.telemetry.job_finished()

        run.state = PipelineState.DONE
        run.duration = time.monotonic() - started
        self.telemetry.record_job("success", "complete", run.duration)
        logger.info(
            "Pipeline completed in %.3fs: %s ads, %s opportunities, %s buckets",
            run.duration,
            run.ads_loaded,
            run.crm_loaded,
            run.buckets,
        )
        return run

    async def _run(self, run: PipelineRun, since: date | None) -> None:
        cutoff = start_of_day(since) if since else None

        run.state = PipelineState.EXTRACTING
        raw_ads, raw_crm = await self.extractor.fetch_all()

        run.state = PipelineState.TRANSFORMING
        transformer = Transformer(self.telemetry)
        ads = transformer.transform_ads(raw_ads, cutoff)
        opportunities = transformer.transform_crm(raw_crm, cutoff)
        run.failures = dict(transformer.failures)

        run.state = PipelineState.LOADING
        run.ads_loaded, run.crm_loaded = await self._load(ads, opportunities)

        run.state = PipelineState.AGGREGATING
        run.buckets = await self._aggregate(since)

    async def _load(
        self, ads: list[NormalizedAdRecord], opportunities: list[NormalizedOpportunity]
    ) -> tuple[int, int]:
        loop = asyncio.get_running_loop()
        ads_result, crm_result = await asyncio.gather(
            loop.run_in_executor(None, self.ad_store.append, ads),
            loop.run_in_executor(None, self.crm_store.append, opportunities),
            return_exceptions=True,
        )
        if isinstance(ads_result, BaseException):
            raise StoreError(f"failed to store ads data: {ads_result}") from ads_result
        if isinstance(crm_result, BaseException):
            raise StoreError(f"failed to store CRM data: {crm_result}") from crm_result
        return ads_result, crm_result

    def _window(self, since: date | None) -> tuple[date, date]:
        today = self.today()
        start = since or today - timedelta(days=self.lookback_days)
        return start, today + timedelta(days=self.lookahead_days)

    async def _aggregate(self, since: date | None) -> int:
        start, end = self._window(since)
        ads = self.ad_store.range_scan(start, end)
        opportunities = self.crm_store.range_scan(start, end)
        loop = asyncio.get_running_loop()
        compute = functools.partial(
            calculate_metrics,
            ads,
            opportunities,
            self.worker_pool_size,
            on_bucket=lambda _: self.telemetry.record_business_metric("calculated"),
        )
        metrics = await loop.run_in_executor(None, compute)
        await loop.run_in_executor(None, self.metrics_store.append, metrics)
        return len(metrics)
