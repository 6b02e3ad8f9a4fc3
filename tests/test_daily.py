from datetime import date

import pytest

from conftest import FakeSourceClient, raw_ad
from funnelwire.jobs import daily


@pytest.mark.asyncio
async def test_run_daily_ingests_and_exports_previous_day(make_services, exporter):
    services = make_services(FakeSourceClient(ads=[raw_ad(date="2025-01-01"), raw_ad(date="2024-12-30")]))
    run = await daily.run_daily(as_of=date(2025, 1, 2), services=services)

    assert run.ads_loaded == 1
    [(day, records)] = exporter.calls
    assert day == date(2025, 1, 1)
    assert records[0].date == "2025-01-01"


@pytest.mark.asyncio
async def test_run_daily_without_data_does_not_raise(make_services, exporter, caplog):
    services = make_services(FakeSourceClient())
    caplog.set_level("INFO")
    await daily.run_daily(as_of=date(2025, 1, 2), services=services)
    assert exporter.calls == []
    assert "No metrics to export for 2025-01-01" in caplog.text


@pytest.mark.asyncio
async def test_run_daily_builds_services_from_env(monkeypatch, make_services, exporter):
    built = []

    def fake_build(settings):
        built.append(settings)
        return make_services(FakeSourceClient(ads=[raw_ad(date="2025-01-01")]))

    monkeypatch.setenv("WORKER_POOL_SIZE", "3")
    monkeypatch.setattr(daily, "build_services", fake_build)
    await daily.run_daily(as_of=date(2025, 1, 2))
    assert built[0].worker_pool_size == 3
    assert len(exporter.calls) == 1
