"""FastAPI application exposing the pipeline, metric queries and exports."""

from __future__ import annotations

import logging
import time
import uuid
from datetime import date
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from funnelwire.errors import ExportError, NoMetricsError, PipelineError, QueryValidationError
from funnelwire.logic.models import MetricsResponse
from funnelwire.logic.query import parse_filter, require
from funnelwire.services import Services, build_services
from funnelwire.utils.dates import format_date, parse_iso_date

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"
REQUEST_ID_HEADER = "X-Request-ID"


class HealthResponse(BaseModel):
    status: str
    timestamp: float


class IngestResponse(BaseModel):
    message: str
    since: str | None
    ads_loaded: int
    crm_loaded: int
    buckets: int
    failures: dict[str, int]
    duration: float


class ExportResponse(BaseModel):
    message: str
    date: str
    records: int


class MetricsPage(BaseModel):
    data: list[dict[str, Any]]
    total: int
    limit: int
    offset: int
    has_more: bool

    @classmethod
    def from_response(cls, response: MetricsResponse) -> "MetricsPage":
        return cls(
            data=[metric.to_dict() for metric in response.data],
            total=response.total,
            limit=response.limit,
            offset=response.offset,
            has_more=response.has_more,
        )


def _parse_day(raw: str | None, key: str) -> date | None:
    if not raw:
        return None
    try:
        return parse_iso_date(raw)
    except ValueError as exc:
        raise QueryValidationError(f"invalid '{key}' date format, expected YYYY-MM-DD") from exc


def create_app(services: Services | None = None) -> FastAPI:
    services = services or build_services()

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        yield
        await services.close()

    app = FastAPI(title="Funnelwire API", version=API_VERSION, lifespan=lifespan)
    app.state.services = services

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        start = time.monotonic()
        response = await call_next(request)
        duration = time.monotonic() - start
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)
        services.telemetry.record_http_request(request.method, endpoint, response.status_code, duration)
        response.headers[REQUEST_ID_HEADER] = request_id
        logger.info(
            "%s %s -> %s (%.3fs) [%s]",
            request.method,
            request.url.path,
            response.status_code,
            duration,
            request_id,
        )
        return response

    @app.exception_handler(QueryValidationError)
    async def validation_error(_: Request, exc: QueryValidationError) -> JSONResponse:
        return JSONResponse({"error": str(exc)}, status_code=400)

    @app.exception_handler(NoMetricsError)
    async def no_metrics(_: Request, exc: NoMetricsError) -> JSONResponse:
        return JSONResponse({"error": str(exc)}, status_code=404)

    @app.exception_handler(ExportError)
    async def export_failed(_: Request, exc: ExportError) -> JSONResponse:
        logger.error("Export failed: %s", exc)
        return JSONResponse({"error": str(exc)}, status_code=502)

    @app.exception_handler(PipelineError)
    async def pipeline_failed(_: Request, exc: PipelineError) -> JSONResponse:
        return JSONResponse({"error": str(exc), "stage": exc.stage}, status_code=500)

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="healthy", timestamp=time.time())

    @app.get("/metrics")
    async def telemetry_snapshot() -> JSONResponse:
        return JSONResponse(services.telemetry.snapshot())

    @app.get("/api/v1")
    async def info() -> dict[str, Any]:
        return {
            "service": "funnelwire",
            "version": API_VERSION,
            "endpoints": [
                "POST /api/v1/ingest/run",
                "GET /api/v1/metrics",
                "GET /api/v1/metrics/channel",
                "GET /api/v1/metrics/funnel",
                "GET /api/v1/metrics/summary",
                "POST /api/v1/export/run",
            ],
        }

    @app.post("/api/v1/ingest/run", response_model=IngestResponse)
    async def run_ingestion(since: str | None = Query(None)) -> IngestResponse:
        since_day = _parse_day(since, "since")
        run = await services.pipeline.run(since_day)
        return IngestResponse(
            message="ingestion completed",
            since=format_date(since_day) if since_day else None,
            ads_loaded=run.ads_loaded,
            crm_loaded=run.crm_loaded,
            buckets=run.buckets,
            failures=run.failures,
            duration=run.duration,
        )

    @app.get("/api/v1/metrics/channel", response_model=MetricsPage)
    async def metrics_by_channel(request: Request) -> MetricsPage:
        params = dict(request.query_params)
        channel = require(params, "channel")
        metrics_filter = parse_filter(
            params, today=services.metrics.today, lookback_days=services.settings.metrics_lookback_days
        )
        response = services.metrics.get_metrics_by_channel(
            channel, metrics_filter.start, metrics_filter.end, metrics_filter.limit, metrics_filter.offset
        )
        return MetricsPage.from_response(response)

    @app.get("/api/v1/metrics/funnel", response_model=MetricsPage)
    async def metrics_by_funnel(request: Request) -> MetricsPage:
        params = dict(request.query_params)
        utm_campaign = require(params, "utm_campaign")
        metrics_filter = parse_filter(
            params, today=services.metrics.today, lookback_days=services.settings.metrics_lookback_days
        )
        response = services.metrics.get_metrics_by_funnel(
            utm_campaign, metrics_filter.start, metrics_filter.end, metrics_filter.limit, metrics_filter.offset
        )
        return MetricsPage.from_response(response)

    @app.get("/api/v1/metrics/summary")
    async def metrics_summary() -> dict[str, Any]:
        return services.metrics.get_summary().to_dict()

    @app.get("/api/v1/metrics", response_model=MetricsPage)
    async def metrics_by_filter(request: Request) -> MetricsPage:
        metrics_filter = parse_filter(
            dict(request.query_params),
            today=services.metrics.today,
            lookback_days=services.settings.metrics_lookback_days,
        )
        return MetricsPage.from_response(services.metrics.get_metrics_by_filter(metrics_filter))

    @app.post("/api/v1/export/run", response_model=ExportResponse)
    async def run_export(date: str | None = Query(None)) -> ExportResponse:
        day = _parse_day(require({"date": date}, "date"), "date")
        records = await services.metrics.export_metrics(day)
        return ExportResponse(message="export completed", date=format_date(day), records=records)

    return app


app = create_app()
