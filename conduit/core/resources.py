"""Process-wide shared state, passed explicitly instead of living in globals."""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from conduit.config import Settings
from conduit.core.cache import TTLCache
from conduit.core.http import ResilientHttpClient, RetryPolicy
from conduit.core.orchestrator import ToolOrchestrator
from conduit.core.rate_limiter import FixedWindowRateLimiter
from conduit.core.scheduler import Sweeper
from conduit.tools import ToolRegistry, build_default_registry
from conduit.utils.logging import get_logger

log = get_logger(__name__)


def retry_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        max_retries=settings.http.max_retries,
        initial_delay=settings.http.initial_delay,
        max_delay=settings.http.max_delay,
        multiplier=settings.http.backoff_multiplier,
    )


@dataclass
class Resources:
    settings: Settings
    cache: TTLCache
    limiter: FixedWindowRateLimiter
    tool_http: ResilientHttpClient
    provider_http: ResilientHttpClient
    tools: ToolRegistry
    orchestrator: ToolOrchestrator
    sweeper: Sweeper

    @classmethod
    def create(
        cls,
        settings: Settings,
        tool_transport: httpx.AsyncBaseTransport | None = None,
        provider_transport: httpx.AsyncBaseTransport | None = None,
    ) -> Resources:
        """Build the bundle. Transports are injectable for tests."""
        policy = retry_policy(settings)
        timeout = settings.http.timeout

        tool_http = ResilientHttpClient(
            timeout=timeout,
            policy=policy,
            client=httpx.AsyncClient(
                timeout=timeout, follow_redirects=True, transport=tool_transport
            ),
        )
        # Streams stay open far longer than one tool call; only the connect
        # and header phase is bounded by the short timeout.
        provider_http = ResilientHttpClient(
            timeout=timeout,
            policy=policy,
            client=httpx.AsyncClient(
                timeout=httpx.Timeout(timeout, read=settings.llm.request_timeout),
                transport=provider_transport,
            ),
        )

        cache = TTLCache(default_ttl=settings.cache.default_ttl)
        limiter = FixedWindowRateLimiter(
            max_requests=settings.rate_limit.max_requests,
            window=settings.rate_limit.window_seconds,
        )
        tools = build_default_registry(settings.tools, tool_http)
        return cls(
            settings=settings,
            cache=cache,
            limiter=limiter,
            tool_http=tool_http,
            provider_http=provider_http,
            tools=tools,
            orchestrator=ToolOrchestrator(tools, cache),
            sweeper=Sweeper(cache, limiter, interval=settings.cache.sweep_interval),
        )

    def reset(self) -> None:
        """Drop all cached results and rate-limit windows."""
        self.cache.clear()
        self.limiter.clear()
        log.info("resources_reset")

    async def start(self) -> None:
        await self.sweeper.start()

    async def aclose(self) -> None:
        await self.sweeper.stop()
        await self.tool_http.aclose()
        await self.provider_http.aclose()
