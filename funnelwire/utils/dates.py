"""Datetime helpers."""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Iterator

import pendulum

UTC = pendulum.UTC

_ISO_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")


def now_utc() -> pendulum.DateTime:
    return pendulum.now(UTC)


def today_utc() -> date:
    return now_utc().date()


def day_key(value: datetime) -> date:
    """Calendar day of ``value`` in UTC; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.date()
    return pendulum.instance(value).in_timezone(UTC).date()


def start_of_day(value: date) -> pendulum.DateTime:
    return pendulum.datetime(value.year, value.month, value.day, tz=UTC)


def iter_days(start: date, end: date) -> Iterator[date]:
    if start > end:
        return
    current = start
    while True:
        yield current
        if current == end:
            return
        current += timedelta(days=1)


def parse_iso_date(value: str) -> date:
    """Strict ``YYYY-MM-DD`` parsing; raises ``ValueError`` otherwise."""
    if not _ISO_DATE_RE.fullmatch(value):
        raise ValueError(f"{value!r} is not a YYYY-MM-DD date")
    return pendulum.from_format(value, "YYYY-MM-DD", tz=UTC).date()


def format_date(value: date) -> str:
    return value.strftime("%Y-%m-%d")
