"""Query, summary and export operations over the metrics store."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Protocol

from funnelwire.errors import ExportError, NoMetricsError
from funnelwire.logic.correlate import safe_div
from funnelwire.logic.models import (
    BusinessMetrics,
    ExportRecord,
    MetricsFilter,
    MetricsResponse,
    MetricsSummary,
    SummaryAverages,
    SummaryTotals,
)
from funnelwire.store.partitioned import DEFAULT_LIMIT, PartitionedStore, paginate
from funnelwire.utils.dates import format_date, today_utc
from funnelwire.utils.telemetry import Telemetry

logger = logging.getLogger(__name__)


class Exporter(Protocol):
    async def export(self, records: Sequence[ExportRecord], day: date) -> None: ...


def _metric_date(metric: BusinessMetrics) -> datetime:
    return metric.date


class MetricsService:
    def __init__(
        self,
        store: PartitionedStore[BusinessMetrics],
        exporter: Exporter,
        telemetry: Telemetry,
        *,
        summary_window_days: int = 60,
        today: Callable[[], date] = today_utc,
    ) -> None:
        self.store = store
        self.exporter = exporter
        self.telemetry = telemetry
        self.summary_window_days = summary_window_days
        self.today = today

    def get_metrics_by_channel(
        self, channel: str, start: date, end: date, limit: int = 0, offset: int = 0
    ) -> MetricsResponse:
        logger.info("Getting metrics by channel %s (%s..%s)", channel, start, end)
        response = self._query(
            MetricsFilter(start=start, end=end, channel=channel, limit=limit, offset=offset)
        )
        self.telemetry.record_business_metric("channel_query")
        logger.info("Retrieved %s metrics by channel", len(response.data))
        return response

    def get_metrics_by_funnel(
        self, utm_campaign: str, start: date, end: date, limit: int = 0, offset: int = 0
    ) -> MetricsResponse:
        logger.info("Getting metrics by funnel %s (%s..%s)", utm_campaign, start, end)
        response = self._query(
            MetricsFilter(start=start, end=end, utm_campaign=utm_campaign, limit=limit, offset=offset)
        )
        self.telemetry.record_business_metric("funnel_query")
        logger.info("Retrieved %s metrics by funnel", len(response.data))
        return response

    def get_metrics_by_filter(self, metrics_filter: MetricsFilter) -> MetricsResponse:
        logger.info("Getting metrics by filter %s", metrics_filter)
        response = self._query(metrics_filter)
        self.telemetry.record_business_metric("filter_query")
        logger.info("Retrieved %s metrics by filter", len(response.data))
        return response

    def get_summary(self) -> MetricsSummary:
        end = self.today()
        start = end - timedelta(days=self.summary_window_days)
        records = self._matching(MetricsFilter(start=start, end=end))
        summary = summarize(records, start, end)
        self.telemetry.record_business_metric("summary")
        logger.info("Metrics summary generated from %s records", summary.metric_records)
        return summary

    async def export_metrics(self, day: date) -> int:
        """Push every bucket stored under ``day`` to the exporter.

        Raises :class:`NoMetricsError` when the day holds nothing and
        :class:`ExportError` when the exporter fails.
        """
        logger.info("Starting metrics export for %s", format_date(day))
        lookup = self.store.lookup_day(day)
        if not lookup.found:
            logger.warning("No metrics found for export date %s", format_date(day))
            raise NoMetricsError(day)

        records = [ExportRecord.from_metrics(metric) for metric in lookup.records]
        try:
            await self.exporter.export(records, day)
        except ExportError:
            logger.error("Failed to export metrics for %s", format_date(day))
            raise
        except Exception as exc:
            logger.error("Failed to export metrics for %s: %s", format_date(day), exc)
            raise ExportError(f"failed to export metrics: {exc}") from exc

        self.telemetry.record_business_metric("export")
        logger.info("Metrics export completed: %s records", len(records))
        return len(records)

    def _matching(self, metrics_filter: MetricsFilter) -> list[BusinessMetrics]:
        end = metrics_filter.end or self.today()
        start = metrics_filter.start or end - timedelta(days=365)
        return self.store.query(start, end, metrics_filter.matches)

    def _query(self, metrics_filter: MetricsFilter) -> MetricsResponse:
        records = self._matching(metrics_filter)
        page, total, has_more = paginate(
            records, metrics_filter.limit, metrics_filter.offset, _metric_date
        )
        limit = metrics_filter.limit if metrics_filter.limit > 0 else DEFAULT_LIMIT
        offset = metrics_filter.offset if metrics_filter.offset > 0 else 0
        return MetricsResponse(data=page, total=total, limit=limit, offset=offset, has_more=has_more)


def summarize(records: Sequence[BusinessMetrics], start: date, end: date) -> MetricsSummary:
    totals = SummaryTotals()
    channels: set[str] = set()
    campaigns: set[str] = set()
    for metric in records:
        totals.clicks += metric.clicks
        totals.impressions += metric.impressions
        totals.cost += metric.cost
        totals.leads += metric.leads
        totals.opportunities += metric.opportunities
        totals.closed_won += metric.closed_won
        totals.revenue += metric.revenue
        channels.add(metric.channel)
        campaigns.add(metric.campaign_id)

    averages = SummaryAverages(
        cpc=safe_div(totals.cost, totals.clicks),
        cpa=safe_div(totals.cost, totals.leads),
        cvr_lead_to_opp=safe_div(totals.opportunities, totals.leads),
        cvr_opp_to_won=safe_div(totals.closed_won, totals.opportunities),
        roas=safe_div(totals.revenue, totals.cost) if totals.cost > Decimal("0") else 0.0,
    )
    return MetricsSummary(
        period_start=start,
        period_end=end,
        totals=totals,
        averages=averages,
        unique_channels=len(channels),
        unique_campaigns=len(campaigns),
        metric_records=len(records),
    )
