import csv
import hashlib
import hmac
import json
from datetime import date

import httpx
import pytest
import respx

from conftest import RecordingExporter, TODAY, business_metric, utc
from funnelwire.errors import ExportError, NoMetricsError
from funnelwire.logic.export_csv import CSV_COLUMNS, CsvExporter
from funnelwire.logic.models import ExportRecord, MetricsFilter
from funnelwire.logic.service import MetricsService
from funnelwire.store.partitioned import PartitionedStore
from funnelwire.utils.sink import SIGNATURE_HEADER, SinkExporter

SINK_URL = "https://sink.example.com/metrics"


@pytest.fixture()
def store():
    store = PartitionedStore(lambda metric: metric.date, name="metrics")
    store.append(
        [
            business_metric(utc(2025, 1, 1), channel="google_ads", campaign_id="G1", clicks=100, cost="50", leads=2, opportunities=1, closed_won=1, revenue="200"),
            business_metric(utc(2025, 1, 2), channel="facebook_ads", campaign_id="F1", utm=("summer", "facebook", "social"), clicks=50, cost="25", leads=0),
            business_metric(utc(2025, 1, 3), channel="google_ads", campaign_id="G2", clicks=50, cost="25", leads=2, opportunities=1),
        ]
    )
    return store


@pytest.fixture()
def service(store, telemetry):
    return MetricsService(store, RecordingExporter(), telemetry, today=lambda: TODAY)


def test_metrics_by_channel(service, telemetry):
    response = service.get_metrics_by_channel("google_ads", date(2025, 1, 1), date(2025, 1, 31))
    assert [metric.campaign_id for metric in response.data] == ["G1", "G2"]
    assert (response.total, response.limit, response.offset, response.has_more) == (2, 100, 0, False)
    assert telemetry.count("business_metrics", "channel_query") == 1


def test_metrics_by_funnel_paginates(service):
    response = service.get_metrics_by_funnel("spring", date(2025, 1, 1), date(2025, 1, 31), limit=1, offset=0)
    assert [metric.campaign_id for metric in response.data] == ["G1"]
    assert response.has_more


def test_metrics_by_filter_respects_date_bounds(service, telemetry):
    response = service.get_metrics_by_filter(MetricsFilter(start=date(2025, 1, 2), end=date(2025, 1, 2)))
    assert [metric.campaign_id for metric in response.data] == ["F1"]
    response = service.get_metrics_by_filter(MetricsFilter(start=date(2025, 1, 1), end=date(2025, 1, 31), utm_source="facebook"))
    assert response.total == 1
    assert telemetry.count("business_metrics", "filter_query") == 2


def test_summary(service, telemetry):
    summary = service.get_summary()
    assert summary.period_end == TODAY
    assert summary.totals.clicks == 200
    assert float(summary.totals.cost) == 100.0
    assert summary.totals.leads == 4
    assert summary.averages.cpc == 0.5
    assert summary.averages.cpa == 25.0
    assert summary.averages.cvr_lead_to_opp == 0.5
    assert summary.averages.roas == 2.0
    assert (summary.unique_channels, summary.unique_campaigns, summary.metric_records) == (2, 3, 3)
    payload = summary.to_dict()
    assert payload["period"] == {"from": "2024-11-16", "to": "2025-01-15"}
    assert payload["counts"]["metric_records"] == 3
    assert telemetry.count("business_metrics", "summary") == 1


def test_summary_of_empty_store(telemetry):
    empty = MetricsService(PartitionedStore(lambda m: m.date), RecordingExporter(), telemetry, today=lambda: TODAY)
    summary = empty.get_summary()
    assert summary.metric_records == 0
    assert summary.averages.roas == 0.0


@pytest.mark.asyncio
async def test_export_pushes_flat_records(service, telemetry):
    count = await service.export_metrics(date(2025, 1, 1))
    assert count == 1
    [(day, records)] = service.exporter.calls
    assert day == date(2025, 1, 1)
    assert records[0].date == "2025-01-01"
    assert records[0].cost == 50.0
    assert telemetry.count("business_metrics", "export") == 1


@pytest.mark.asyncio
async def test_export_without_data(service):
    with pytest.raises(NoMetricsError, match="2025-02-01"):
        await service.export_metrics(date(2025, 2, 1))


@pytest.mark.asyncio
async def test_export_failure_is_wrapped(store, telemetry):
    failing = MetricsService(store, RecordingExporter(error=OSError("disk full")), telemetry)
    with pytest.raises(ExportError, match="disk full"):
        await failing.export_metrics(date(2025, 1, 1))
    assert telemetry.count("business_metrics", "export") == 0


@pytest.mark.asyncio
async def test_sink_signs_body_with_secret(telemetry):
    records = [ExportRecord.from_metrics(business_metric())]
    async with respx.mock(assert_all_called=True) as router:
        route = router.post(SINK_URL).mock(return_value=httpx.Response(202))
        await SinkExporter(SINK_URL, "s3cret", telemetry=telemetry).export(records, date(2025, 1, 1))
    request = route.calls.last.request
    expected = hmac.new(b"s3cret", request.content, hashlib.sha256).hexdigest()
    assert request.headers[SIGNATURE_HEADER] == expected
    assert json.loads(request.content)[0]["date"] == "2025-01-01"
    assert telemetry.count("external_calls", "sink", "success") == 1


@pytest.mark.asyncio
async def test_sink_without_secret_sends_no_signature(telemetry):
    async with respx.mock(assert_all_called=True) as router:
        route = router.post(SINK_URL).mock(return_value=httpx.Response(200))
        await SinkExporter(SINK_URL, telemetry=telemetry).export([], date(2025, 1, 1))
    assert SIGNATURE_HEADER not in route.calls.last.request.headers


@pytest.mark.asyncio
async def test_sink_error_status(telemetry):
    async with respx.mock() as router:
        router.post(SINK_URL).mock(return_value=httpx.Response(500))
        with pytest.raises(ExportError, match="500"):
            await SinkExporter(SINK_URL, telemetry=telemetry).export([], date(2025, 1, 1))
    assert telemetry.count("external_calls", "sink", "error_500") == 1


@pytest.mark.asyncio
async def test_sink_requires_url(telemetry):
    with pytest.raises(ExportError, match="not configured"):
        await SinkExporter("", telemetry=telemetry).export([], date(2025, 1, 1))


@pytest.mark.asyncio
async def test_csv_exporter_writes_one_file_per_day(tmp_path):
    records = [ExportRecord.from_metrics(business_metric())]
    await CsvExporter(tmp_path, upload=False).export(records, date(2025, 1, 1))
    path = tmp_path / "metrics-2025-01-01.csv"
    with path.open() as handle:
        rows = list(csv.DictReader(handle))
    assert list(rows[0].keys()) == CSV_COLUMNS
    assert rows[0]["channel"] == "google_ads"
