"""Fixed-window rate limiting per client identifier.

The window opens on the first request from an identifier and resets
entirely (count back to 1) once it has elapsed. Bursts straddling a window
boundary can admit up to twice the limit in a short span.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Callable, Mapping

from conduit.utils.logging import get_logger

log = get_logger(__name__)


@dataclass
class RateLimitEntry:
    count: int
    reset_at: float
    first_request: float


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float  # epoch seconds

    def retry_after(self, now: float | None = None) -> int:
        now = time.time() if now is None else now
        return max(0, math.ceil(self.reset_at - now))

    def headers(self, now: float | None = None) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at * 1000)),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after(now))
        return headers


class FixedWindowRateLimiter:
    def __init__(
        self,
        max_requests: int = 60,
        window: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._limits: dict[str, RateLimitEntry] = {}
        self._max_requests = max_requests
        self._window = window
        self._clock = clock

    def is_allowed(
        self,
        identifier: str,
        max_requests: int | None = None,
        window: float | None = None,
    ) -> RateLimitDecision:
        limit = self._max_requests if max_requests is None else max_requests
        window = self._window if window is None else window
        now = self._clock()
        entry = self._limits.get(identifier)

        if entry is None or now > entry.reset_at:
            entry = RateLimitEntry(count=1, reset_at=now + window, first_request=now)
            self._limits[identifier] = entry
            return RateLimitDecision(True, limit, limit - 1, entry.reset_at)

        if entry.count >= limit:
            log.warning("rate_limit_exceeded", identifier=identifier, limit=limit)
            return RateLimitDecision(False, limit, 0, entry.reset_at)

        entry.count += 1
        return RateLimitDecision(True, limit, limit - entry.count, entry.reset_at)

    def reset(self, identifier: str) -> None:
        self._limits.pop(identifier, None)

    def clear(self) -> None:
        self._limits.clear()

    def status(self, identifier: str) -> RateLimitEntry | None:
        entry = self._limits.get(identifier)
        if entry is None:
            return None
        if self._clock() > entry.reset_at:
            del self._limits[identifier]
            return None
        return entry

    def clean_expired(self) -> int:
        now = self._clock()
        expired = [k for k, e in self._limits.items() if now > e.reset_at]
        for key in expired:
            del self._limits[key]
        return len(expired)


def rate_limit_identifier(headers: Mapping[str, str], remote: str | None = None) -> str:
    """Identify a client by forwarded IP, real IP, or peer address."""
    forwarded = headers.get("X-Forwarded-For", "")
    ip = forwarded.split(",")[0].strip() or headers.get("X-Real-IP", "") or remote or "unknown"
    return f"ip:{ip}"
