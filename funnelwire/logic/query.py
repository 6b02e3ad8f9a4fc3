"""Maps raw query-string parameters onto a :class:`MetricsFilter`."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import date, timedelta

from funnelwire.errors import QueryValidationError
from funnelwire.logic.models import MetricsFilter
from funnelwire.utils.dates import parse_iso_date, today_utc

DEFAULT_LOOKBACK_DAYS = 365

FILTER_FIELDS = ("channel", "campaign_id", "utm_campaign", "utm_source", "utm_medium")


def _parse_date(params: Mapping[str, str | None], key: str, default: date) -> date:
    raw = params.get(key)
    if not raw:
        return default
    try:
        return parse_iso_date(raw)
    except ValueError as exc:
        raise QueryValidationError(f"invalid '{key}' date format, expected YYYY-MM-DD") from exc


def _parse_int(params: Mapping[str, str | None], key: str) -> int:
    raw = params.get(key)
    if raw is None or raw == "":
        return 0
    try:
        return int(raw)
    except ValueError as exc:
        raise QueryValidationError(f"invalid '{key}' value, expected an integer") from exc


def parse_filter(
    params: Mapping[str, str | None],
    *,
    today: Callable[[], date] = today_utc,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS,
) -> MetricsFilter:
    """Build a filter; ``from`` defaults to ``today - lookback_days``, ``to`` to today.

    Limit and offset are passed through as given; clamping happens at pagination.
    """
    current = today()
    start = _parse_date(params, "from", current - timedelta(days=lookback_days))
    end = _parse_date(params, "to", current)
    values = {name: params.get(name) or None for name in FILTER_FIELDS}
    return MetricsFilter(
        start=start,
        end=end,
        limit=_parse_int(params, "limit"),
        offset=_parse_int(params, "offset"),
        **values,
    )


def require(params: Mapping[str, str | None], key: str) -> str:
    value = params.get(key)
    if not value:
        raise QueryValidationError(f"{key} parameter is required")
    return value
