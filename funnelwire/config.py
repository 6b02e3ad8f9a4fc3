"""Runtime settings read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping


def _env(environ: Mapping[str, str], key: str, default: str) -> str:
    value = environ.get(key)
    return value if value else default


def _int_env(environ: Mapping[str, str], key: str, default: int, minimum: int | None = None) -> int:
    try:
        value = int(environ[key])
    except (KeyError, ValueError):
        return default
    if minimum is not None and value < minimum:
        return default
    return value


def _float_env(environ: Mapping[str, str], key: str, default: float) -> float:
    raw = environ.get(key, "").strip()
    if raw.endswith("s"):
        raw = raw[:-1]
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(slots=True)
class Settings:
    ads_api_url: str = ""
    crm_api_url: str = ""
    sink_url: str = ""
    sink_secret: str = ""
    export_provider: str = "sink"
    csv_output_dir: str = "artifacts/csv"
    worker_pool_size: int = 10
    request_timeout: float = 30.0
    run_timeout: float = 120.0
    rate_limit_per_second: float = 100.0
    rate_limit_burst: int = 10
    metrics_lookback_days: int = 365
    metrics_lookahead_days: int = 30
    summary_window_days: int = 60
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        return cls(
            ads_api_url=_env(env, "ADS_API_URL", ""),
            crm_api_url=_env(env, "CRM_API_URL", ""),
            sink_url=_env(env, "SINK_URL", ""),
            sink_secret=_env(env, "SINK_SECRET", ""),
            export_provider=_env(env, "EXPORT_PROVIDER", "sink"),
            csv_output_dir=_env(env, "CSV_OUTPUT_DIR", "artifacts/csv"),
            worker_pool_size=_int_env(env, "WORKER_POOL_SIZE", 10, minimum=1),
            request_timeout=_float_env(env, "REQUEST_TIMEOUT", 30.0),
            run_timeout=_float_env(env, "RUN_TIMEOUT", 120.0),
            rate_limit_per_second=_float_env(env, "RATE_LIMIT_PER_SECOND", 100.0),
            rate_limit_burst=_int_env(env, "RATE_LIMIT_BURST", 10, minimum=1),
            metrics_lookback_days=_int_env(env, "METRICS_LOOKBACK_DAYS", 365),
            metrics_lookahead_days=_int_env(env, "METRICS_LOOKAHEAD_DAYS", 30),
            summary_window_days=_int_env(env, "SUMMARY_WINDOW_DAYS", 60),
            log_level=_env(env, "LOG_LEVEL", "INFO").upper(),
        )
