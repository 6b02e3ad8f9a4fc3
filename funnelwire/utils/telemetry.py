"""In-process counters and timings for the pipeline and the API.

Every ``record_*`` call is fire-and-forget: a failure while recording is logged
at debug level and never reaches the caller.
"""

from __future__ import annotations

import functools
import logging
import threading
from collections import Counter, defaultdict
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


def _fire_and_forget(func: Callable[..., None]) -> Callable[..., None]:
    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> None:
        try:
            func(*args, **kwargs)
        except Exception:  # noqa: BLE001
            logger.debug("Telemetry call %s failed", func.__name__, exc_info=True)

    return wrapper


class Telemetry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: Counter[tuple[str, ...]] = Counter()
        self._durations: dict[tuple[str, ...], list[float]] = defaultdict(list)
        self._jobs_in_progress = 0

    def _inc(self, key: tuple[str, ...], amount: int = 1) -> None:
        with self._lock:
            self._counters[key] += amount

    def _observe(self, key: tuple[str, ...], seconds: float) -> None:
        with self._lock:
            self._durations[key].append(seconds)

    def count(self, *key: str) -> int:
        with self._lock:
            return self._counters[key]

    def durations(self, *key: str) -> list[float]:
        with self._lock:
            return list(self._durations.get(key, ()))

    @property
    def jobs_in_progress(self) -> int:
        return self._jobs_in_progress

    @_fire_and_forget
    def record_http_request(self, method: str, endpoint: str, status_code: int, seconds: float) -> None:
        self._inc(("http_requests", method, endpoint, str(status_code)))
        self._observe(("http_request_duration", method, endpoint), seconds)

    @_fire_and_forget
    def job_started(self) -> None:
        with self._lock:
            self._jobs_in_progress += 1

    @_fire_and_forget
    def job_finished(self) -> None:
        with self._lock:
            self._jobs_in_progress = max(0, self._jobs_in_progress - 1)

    @_fire_and_forget
    def record_job(self, status: str, stage: str, seconds: float) -> None:
        self._inc(("jobs", status, stage))
        self._observe(("job_duration", stage), seconds)

    @_fire_and_forget
    def record_records(self, source: str, status: str, count: int) -> None:
        self._inc(("records_processed", source, status), count)

    @_fire_and_forget
    def record_record_failure(self, source: str, error_type: str) -> None:
        self._inc(("records_failed", source, error_type))

    @_fire_and_forget
    def record_external_call(self, api: str, status: str, seconds: float) -> None:
        self._inc(("external_calls", api, status))
        self._observe(("external_call_duration", api), seconds)

    @_fire_and_forget
    def record_external_failure(self, api: str, error_type: str) -> None:
        self._inc(("external_failures", api, error_type))

    @_fire_and_forget
    def record_business_metric(self, kind: str) -> None:
        self._inc(("business_metrics", kind))

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            counters = {"|".join(key): value for key, value in sorted(self._counters.items())}
            durations = {
                "|".join(key): {"count": len(values), "sum": round(sum(values), 6)}
                for key, values in sorted(self._durations.items())
            }
            return {
                "counters": counters,
                "durations": durations,
                "jobs_in_progress": self._jobs_in_progress,
            }
