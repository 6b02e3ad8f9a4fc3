"""Business metric records, query filters and summaries."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from funnelwire.utils.dates import day_key, format_date


@dataclass(slots=True)
class BusinessMetrics:
    date: datetime
    channel: str
    campaign_id: str
    utm_campaign: str
    utm_source: str
    utm_medium: str
    clicks: int
    impressions: int
    cost: Decimal
    leads: int
    opportunities: int
    closed_won: int
    revenue: Decimal
    cpc: float
    cpa: float
    cvr_lead_to_opp: float
    cvr_opp_to_won: float
    roas: float
    calculated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["date"] = self.date.isoformat()
        data["calculated_at"] = self.calculated_at.isoformat()
        data["cost"] = float(self.cost)
        data["revenue"] = float(self.revenue)
        return data


@dataclass(slots=True)
class ExportRecord:
    date: str
    channel: str
    campaign_id: str
    utm_campaign: str
    utm_source: str
    utm_medium: str
    clicks: int
    impressions: int
    cost: float
    leads: int
    opportunities: int
    closed_won: int
    revenue: float
    cpc: float
    cpa: float
    cvr_lead_to_opp: float
    cvr_opp_to_won: float
    roas: float

    @classmethod
    def from_metrics(cls, metric: BusinessMetrics) -> "ExportRecord":
        return cls(
            date=format_date(day_key(metric.date)),
            channel=metric.channel,
            campaign_id=metric.campaign_id,
            utm_campaign=metric.utm_campaign,
            utm_source=metric.utm_source,
            utm_medium=metric.utm_medium,
            clicks=metric.clicks,
            impressions=metric.impressions,
            cost=float(metric.cost),
            leads=metric.leads,
            opportunities=metric.opportunities,
            closed_won=metric.closed_won,
            revenue=float(metric.revenue),
            cpc=metric.cpc,
            cpa=metric.cpa,
            cvr_lead_to_opp=metric.cvr_lead_to_opp,
            cvr_opp_to_won=metric.cvr_opp_to_won,
            roas=metric.roas,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class MetricsFilter:
    start: date | None = None
    end: date | None = None
    channel: str | None = None
    campaign_id: str | None = None
    utm_campaign: str | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    limit: int = 0
    offset: int = 0

    def matches(self, metric: BusinessMetrics) -> bool:
        checks = (
            (self.channel, metric.channel),
            (self.campaign_id, metric.campaign_id),
            (self.utm_campaign, metric.utm_campaign),
            (self.utm_source, metric.utm_source),
            (self.utm_medium, metric.utm_medium),
        )
        return all(not wanted or wanted == actual for wanted, actual in checks)


@dataclass(slots=True)
class MetricsResponse:
    data: list[BusinessMetrics]
    total: int
    limit: int
    offset: int
    has_more: bool


@dataclass(slots=True)
class SummaryTotals:
    clicks: int = 0
    impressions: int = 0
    cost: Decimal = Decimal("0")
    leads: int = 0
    opportunities: int = 0
    closed_won: int = 0
    revenue: Decimal = Decimal("0")


@dataclass(slots=True)
class SummaryAverages:
    cpc: float = 0.0
    cpa: float = 0.0
    cvr_lead_to_opp: float = 0.0
    cvr_opp_to_won: float = 0.0
    roas: float = 0.0


@dataclass(slots=True)
class MetricsSummary:
    period_start: date
    period_end: date
    totals: SummaryTotals = field(default_factory=SummaryTotals)
    averages: SummaryAverages = field(default_factory=SummaryAverages)
    unique_channels: int = 0
    unique_campaigns: int = 0
    metric_records: int = 0

    def to_dict(self) -> dict[str, Any]:
        totals = asdict(self.totals)
        totals["cost"] = float(self.totals.cost)
        totals["revenue"] = float(self.totals.revenue)
        return {
            "period": {"from": format_date(self.period_start), "to": format_date(self.period_end)},
            "totals": totals,
            "averages": asdict(self.averages),
            "counts": {
                "unique_channels": self.unique_channels,
                "unique_campaigns": self.unique_campaigns,
                "metric_records": self.metric_records,
            },
        }
