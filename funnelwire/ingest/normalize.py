"""Record-level normalization: flexible date parsing and UTM defaults."""

from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import datetime

import pendulum

from funnelwire.ingest.models import UNKNOWN

RFC3339 = "RFC3339"

# The ads source favors calendar dates, the CRM source full timestamps.
AD_DATE_FORMATS: tuple[str, ...] = (
    "YYYY-MM-DD",
    "YYYY/MM/DD",
    "MM/DD/YYYY",
    "DD/MM/YYYY",
    RFC3339,
)
CRM_DATE_FORMATS: tuple[str, ...] = (
    RFC3339,
    "YYYY-MM-DD HH:mm:ss",
    "YYYY-MM-DD",
    "YYYY/MM/DD HH:mm:ss",
    "YYYY/MM/DD",
)

_RFC3339_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?(Z|[+-]\d{2}:\d{2})$"
)

_TOKEN_RE = re.compile(r"YYYY|MM|DD|HH|mm|ss")


def _shape(layout: str) -> re.Pattern[str]:
    # Fixed-width digits; pendulum alone would accept "2025-1-5".
    return re.compile(
        _TOKEN_RE.sub(lambda m: r"\d{%d}" % len(m.group(0)), re.escape(layout))
    )


_SHAPES = {layout: _shape(layout) for layout in (*AD_DATE_FORMATS, *CRM_DATE_FORMATS) if layout != RFC3339}


def _parse(raw: str, layout: str) -> datetime:
    if layout == RFC3339:
        if not _RFC3339_RE.fullmatch(raw):
            raise ValueError(f"{raw!r} is not an RFC3339 timestamp")
        return pendulum.parse(raw)
    shape = _SHAPES.get(layout) or _shape(layout)
    if not shape.fullmatch(raw):
        raise ValueError(f"{raw!r} does not match {layout}")
    return pendulum.from_format(raw, layout, tz=pendulum.UTC)


def parse_flexible_date(raw: str, formats: Sequence[str]) -> datetime | None:
    """Return the first successful parse of ``raw`` over ``formats``, else None."""
    if not raw:
        return None
    for layout in formats:
        try:
            return _parse(raw, layout)
        except (ValueError, TypeError, OverflowError):
            continue
    return None


def normalize_utm(value: str) -> str:
    return value if value else UNKNOWN
