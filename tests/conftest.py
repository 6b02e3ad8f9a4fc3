import json
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest

from funnelwire.config import Settings
from funnelwire.ingest.models import (
    NormalizedAdRecord,
    NormalizedOpportunity,
    RawAdRecord,
    RawOpportunity,
)
from funnelwire.logic.models import BusinessMetrics
from funnelwire.services import build_services
from funnelwire.utils.telemetry import Telemetry

FIXTURES = Path(__file__).parent / "fixtures" / "http"

TODAY = date(2025, 1, 15)


def load_fixture(path: str) -> str:
    return (FIXTURES / path).read_text()


def utc(year: int, month: int, day: int, hour: int = 0) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


def raw_ad(date="2025-01-01", clicks=100, cost="50", campaign_id="C1", channel="google_ads", utm=("spring", "google", "cpc"), impressions=1000):
    return RawAdRecord(
        date=date,
        campaign_id=campaign_id,
        channel=channel,
        clicks=clicks,
        impressions=impressions,
        cost=Decimal(cost),
        utm_campaign=utm[0],
        utm_source=utm[1],
        utm_medium=utm[2],
    )


def raw_opp(stage="lead", created_at="2025-01-01T12:00:00Z", amount="0", utm=("spring", "google", "cpc"), opportunity_id="O1"):
    return RawOpportunity(
        opportunity_id=opportunity_id,
        contact_email=f"{opportunity_id.lower()}@example.com",
        stage=stage,
        amount=Decimal(amount),
        created_at=created_at,
        utm_campaign=utm[0],
        utm_source=utm[1],
        utm_medium=utm[2],
    )


def ad_record(when, clicks=10, cost="5", campaign_id="C1", channel="google_ads", utm=("spring", "google", "cpc")):
    return NormalizedAdRecord(
        date=when,
        campaign_id=campaign_id,
        channel=channel,
        clicks=clicks,
        impressions=clicks * 10,
        cost=Decimal(cost),
        utm_campaign=utm[0],
        utm_source=utm[1],
        utm_medium=utm[2],
        processed_at=when,
    )


def opportunity(when, stage="lead", amount="0", utm=("spring", "google", "cpc"), opportunity_id="O1"):
    return NormalizedOpportunity(
        opportunity_id=opportunity_id,
        contact_email="lead@example.com",
        stage=stage,
        amount=Decimal(amount),
        created_at=when,
        utm_campaign=utm[0],
        utm_source=utm[1],
        utm_medium=utm[2],
        processed_at=when,
    )


class FakeSourceClient:
    def __init__(self, ads=None, opportunities=None, ads_error=None, crm_error=None):
        self.ads = list(ads or [])
        self.opportunities = list(opportunities or [])
        self.ads_error = ads_error
        self.crm_error = crm_error
        self.calls = []

    async def fetch_ad_batch(self):
        self.calls.append("ads")
        if self.ads_error:
            raise self.ads_error
        return list(self.ads)

    async def fetch_crm_batch(self):
        self.calls.append("crm")
        if self.crm_error:
            raise self.crm_error
        return list(self.opportunities)


class RecordingExporter:
    def __init__(self, error=None):
        self.calls = []
        self.error = error

    async def export(self, records, day):
        if self.error:
            raise self.error
        self.calls.append((day, list(records)))


@pytest.fixture()
def telemetry():
    return Telemetry()


@pytest.fixture()
def settings():
    return Settings(worker_pool_size=4, run_timeout=10.0)


@pytest.fixture()
def exporter():
    return RecordingExporter()


@pytest.fixture()
def make_services(settings, exporter, telemetry):
    def factory(client=None, **overrides):
        return build_services(
            overrides.pop("settings", settings),
            client=client or FakeSourceClient(),
            exporter=overrides.pop("exporter", exporter),
            telemetry=telemetry,
            today=overrides.pop("today", lambda: TODAY),
        )

    return factory


@pytest.fixture()
def ads_payload():
    return json.loads(load_fixture("ads/performance.json"))


@pytest.fixture()
def crm_payload():
    return json.loads(load_fixture("crm/opportunities.json"))


def business_metric(when=None, channel="google_ads", campaign_id="C1", utm=("spring", "google", "cpc"), clicks=100, cost="50", leads=1, opportunities=0, closed_won=0, revenue="0"):
    when = when or utc(2025, 1, 1)
    return BusinessMetrics(
        date=when,
        channel=channel,
        campaign_id=campaign_id,
        utm_campaign=utm[0],
        utm_source=utm[1],
        utm_medium=utm[2],
        clicks=clicks,
        impressions=clicks * 10,
        cost=Decimal(cost),
        leads=leads,
        opportunities=opportunities,
        closed_won=closed_won,
        revenue=Decimal(revenue),
        cpc=float(Decimal(cost) / clicks) if clicks else 0.0,
        cpa=float(Decimal(cost) / leads) if leads else 0.0,
        cvr_lead_to_opp=opportunities / leads if leads else 0.0,
        cvr_opp_to_won=closed_won / opportunities if opportunities else 0.0,
        roas=float(Decimal(revenue) / Decimal(cost)) if Decimal(cost) else 0.0,
        calculated_at=when,
    )
