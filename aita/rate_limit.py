"""
Judgment Rate Limiter

Every judgment may cost a paid AI call, so the judging endpoints are
throttled per caller: "user:<id>" for signed-in authors, "ip:<host>"
for the anonymous /api/judge endpoint.

In-memory sliding windows, one deque of request times per caller,
bounded by least-recently-seen eviction. Single-process only.

Defaults: 10 judgments/minute, 100/hour (AITA_RATE_PER_MINUTE,
AITA_RATE_PER_HOUR). AITA_RATE_LIMIT=false switches it off.
"""

from __future__ import annotations

import os
import threading
import time
from collections import OrderedDict, deque
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException

from aita.logging import get_logger

logger = get_logger("rate_limit")

MINUTE = 60
HOUR = 3600


@dataclass(frozen=True)
class RateLimits:
    per_minute: int = 10
    per_hour: int = 100


class RateLimitExceeded(HTTPException):
    """429 with a Retry-After header."""

    def __init__(self, detail: str, retry_after: int):
        super().__init__(
            status_code=429,
            detail=detail,
            headers={"Retry-After": str(retry_after)},
        )
        self.retry_after = retry_after


class JudgmentRateLimiter:
    """Sliding-window limiter keyed by caller."""

    def __init__(
        self,
        limits: RateLimits = RateLimits(),
        max_callers: int = 5000,
        enabled: bool = True,
        clock=time.monotonic,
    ):
        self.limits = limits
        self.max_callers = max_callers
        self.enabled = enabled
        self._clock = clock
        self._hits: OrderedDict[str, deque[float]] = OrderedDict()
        self._lock = threading.Lock()

    def _prune(self, hits: deque[float], now: float) -> None:
        while hits and hits[0] <= now - HOUR:
            hits.popleft()

    def _recent(self, hits: deque[float], now: float, window: int) -> list[float]:
        return [t for t in hits if t > now - window]

    def hit(self, key: Optional[str], limits: Optional[RateLimits] = None) -> None:
        """
        Count one judgment for the caller.

        Raises RateLimitExceeded (429) when the minute or hour budget
        is spent. A rejected request is not counted.
        """
        if not self.enabled or key is None:
            return
        limits = limits or self.limits
        now = self._clock()

        with self._lock:
            hits = self._hits.get(key)
            if hits is None:
                if len(self._hits) >= self.max_callers:
                    self._hits.popitem(last=False)
                hits = self._hits[key] = deque()
            else:
                self._hits.move_to_end(key)
            self._prune(hits, now)

            last_minute = self._recent(hits, now, MINUTE)
            if len(last_minute) >= limits.per_minute:
                retry_after = max(1, int(last_minute[0] + MINUTE - now) + 1)
                logger.info("Minute budget spent", extra={"caller": key})
                raise RateLimitExceeded(
                    f"Rate limit exceeded: {limits.per_minute} judgments/minute. "
                    f"Retry after {retry_after} seconds.",
                    retry_after,
                )
            if len(hits) >= limits.per_hour:
                retry_after = max(1, int(hits[0] + HOUR - now) + 1)
                logger.info("Hour budget spent", extra={"caller": key})
                raise RateLimitExceeded(
                    f"Rate limit exceeded: {limits.per_hour} judgments/hour.",
                    retry_after,
                )

            hits.append(now)

    def usage(self, key: str) -> dict:
        now = self._clock()
        with self._lock:
            hits = self._hits.get(key)
            if not hits:
                return {"minute": 0, "hour": 0}
            self._prune(hits, now)
            return {
                "minute": len(self._recent(hits, now, MINUTE)),
                "hour": len(hits),
            }

    def cleanup(self, max_idle: float = 2 * HOUR) -> int:
        """Forget callers idle for longer than max_idle seconds."""
        cutoff = self._clock() - max_idle
        with self._lock:
            idle = [k for k, hits in self._hits.items() if not hits or hits[-1] < cutoff]
            for k in idle:
                del self._hits[k]
        return len(idle)

    def reset(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._hits.clear()
            else:
                self._hits.pop(key, None)


limiter = JudgmentRateLimiter(
    limits=RateLimits(
        per_minute=int(os.getenv("AITA_RATE_PER_MINUTE", "10")),
        per_hour=int(os.getenv("AITA_RATE_PER_HOUR", "100")),
    ),
    enabled=os.getenv("AITA_RATE_LIMIT", "true").lower() == "true",
)


def check_rate_limit(key: Optional[str], limits: Optional[RateLimits] = None) -> None:
    """Count a judgment against the shared limiter. None = unlimited."""
    limiter.hit(key, limits)


def get_usage(key: str) -> dict:
    return limiter.usage(key)


def cleanup_stale_windows(max_age: float = 2 * HOUR) -> int:
    return limiter.cleanup(max_age)
