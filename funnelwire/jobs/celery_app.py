"""Celery configuration for the scheduled ingest."""

from __future__ import annotations

import os

from celery import Celery
from celery.schedules import crontab

broker_url = os.environ.get("REDIS_URL", "redis://redis:6379/0")
backend_url = os.environ.get("REDIS_URL", "redis://redis:6379/0")

celery_app = Celery("funnelwire", broker=broker_url, backend=backend_url, include=["funnelwire.jobs.daily"])
celery_app.conf.timezone = "UTC"
celery_app.conf.beat_schedule = {
    "daily-ingest": {
        "task": "funnelwire.jobs.daily.run_daily",
        "schedule": crontab(hour=int(os.environ.get("INGEST_HOUR", "2")), minute=int(os.environ.get("INGEST_MINUTE", "0"))),
    },
}


@celery_app.task(name="funnelwire.jobs.daily.run_daily")
def run_daily_task():  # pragma: no cover - executed by worker
    import asyncio

    from funnelwire.jobs.daily import run_daily

    asyncio.run(run_daily())
