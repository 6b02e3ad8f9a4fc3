"""Run one ingest and export a day's metrics from the command line."""

from __future__ import annotations

import asyncio
import os
import sys

from dotenv import load_dotenv

from funnelwire.config import Settings
from funnelwire.errors import NoMetricsError
from funnelwire.services import build_services
from funnelwire.utils.dates import format_date, parse_iso_date
from funnelwire.utils.logs import configure_logging


async def main() -> None:
    load_dotenv()
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    since_raw = sys.argv[1] if len(sys.argv) > 1 else os.environ.get("SINCE")
    since = parse_iso_date(since_raw) if since_raw else None

    services = build_services(settings)
    try:
        run = await services.pipeline.run(since)
        print(f"Loaded {run.ads_loaded} ads, {run.crm_loaded} opportunities -> {run.buckets} buckets")
        export_raw = os.environ.get("EXPORT_DATE")
        if export_raw:
            day = parse_iso_date(export_raw)
            try:
                count = await services.metrics.export_metrics(day)
            except NoMetricsError:
                print("No metrics stored for", format_date(day))
            else:
                print(f"Exported {count} records for {format_date(day)}")
    finally:
        await services.close()


if __name__ == "__main__":
    asyncio.run(main())
