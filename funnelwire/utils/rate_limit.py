"""Shared token bucket for outbound calls."""

from __future__ import annotations

import asyncio
import time


class RateLimiter:
    """Token bucket: ``burst`` tokens, refilled at ``rate`` tokens per second."""

    def __init__(self, *, rate: float = 100.0, burst: int = 10) -> None:
        if rate <= 0 or burst < 1:
            raise ValueError("rate must be positive and burst at least 1")
        self.rate = rate
        self.burst = burst
        self._tokens = float(burst)
        self._updated = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        self._tokens = min(self.burst, self._tokens + (now - self._updated) * self.rate)
        self._updated = now

    async def wait(self) -> None:
        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1:
                    self._tokens -= 1
                    return
                await asyncio.sleep((1 - self._tokens) / self.rate)

    @property
    def available(self) -> float:
        self._refill()
        return self._tokens
