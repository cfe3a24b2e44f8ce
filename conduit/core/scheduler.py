"""Periodic eviction of expired cache entries and rate-limit windows."""

from __future__ import annotations

import asyncio

from conduit.core.cache import TTLCache
from conduit.core.rate_limiter import FixedWindowRateLimiter
from conduit.utils.logging import get_logger

log = get_logger(__name__)


class Sweeper:
    def __init__(
        self,
        cache: TTLCache,
        limiter: FixedWindowRateLimiter,
        interval: float = 300.0,
    ) -> None:
        self._cache = cache
        self._limiter = limiter
        self._interval = interval
        self._running = False
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._sweep_loop(), name="sweeper")
        log.info("sweeper_started", interval=self._interval)

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None

    def sweep(self) -> tuple[int, int]:
        """One eviction pass. Returns (cache entries, limiter windows) removed."""
        cache_removed = self._cache.clean_expired()
        limiter_removed = self._limiter.clean_expired()
        if cache_removed or limiter_removed:
            log.debug("sweep_done", cache=cache_removed, rate_limit=limiter_removed)
        return cache_removed, limiter_removed

    async def _sweep_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._interval)
            try:
                self.sweep()
            except Exception:
                log.exception("sweep_error")
