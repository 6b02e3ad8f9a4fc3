"""Daily job orchestration."""

from __future__ import annotations

import asyncio
import logging
from datetime import date, timedelta

from dotenv import load_dotenv

from funnelwire.config import Settings
from funnelwire.errors import NoMetricsError
from funnelwire.logic.pipeline import PipelineRun
from funnelwire.services import Services, build_services
from funnelwire.utils.dates import format_date, today_utc
from funnelwire.utils.logs import configure_logging

logger = logging.getLogger(__name__)


async def run_daily(as_of: date | None = None, services: Services | None = None) -> PipelineRun:
    """Ingest everything since the previous day and export that day's buckets."""
    load_dotenv()
    if services is None:
        settings = Settings.from_env()
        configure_logging(settings.log_level)
        services = build_services(settings)
    target_date = as_of or today_utc()
    export_day = target_date - timedelta(days=1)

    try:
        run = await services.pipeline.run(export_day)
        try:
            await services.metrics.export_metrics(export_day)
        except NoMetricsError:
            logger.info("No metrics to export for %s", format_date(export_day))
    finally:
        await services.close()
    return run


if __name__ == "__main__":
    asyncio.run(run_daily())
