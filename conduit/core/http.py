"""Outbound HTTP with a hard per-attempt timeout and bounded retry.

Only transport-level transient failures are retried: connection reset,
DNS failure, connection refused and timeouts. An HTTP response, whatever its
status, is never retried; callers decide what a non-2xx status means.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, TypeVar

import httpx

from conduit.utils.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")

# ConnectError covers both refused connections and DNS resolution failures;
# ReadError/WriteError/RemoteProtocolError are how httpx surfaces a reset peer.
TRANSIENT_ERRORS: tuple[type[Exception], ...] = (
    httpx.TimeoutException,
    httpx.ConnectError,
    httpx.ReadError,
    httpx.WriteError,
    httpx.RemoteProtocolError,
    asyncio.TimeoutError,
)


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    multiplier: float = 2.0

    def backoff_delay(self, attempt: int) -> float:
        return min(self.initial_delay * (self.multiplier ** attempt), self.max_delay)


def is_transient(exc: BaseException) -> bool:
    return isinstance(exc, TRANSIENT_ERRORS)


async def retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    label: str = "request",
) -> T:
    """Run ``fn`` until it succeeds, a non-transient error occurs, or retries run out."""
    for attempt in range(policy.max_retries + 1):
        try:
            return await fn()
        except TRANSIENT_ERRORS as e:
            if attempt == policy.max_retries:
                log.warning(
                    "http_retries_exhausted",
                    target=label,
                    attempts=attempt + 1,
                    error=type(e).__name__,
                )
                raise
            wait = policy.backoff_delay(attempt)
            log.warning(
                "http_transient_retry",
                target=label,
                attempt=attempt,
                wait=wait,
                error=type(e).__name__,
            )
            await asyncio.sleep(wait)
    raise RuntimeError("Unreachable")


class UpstreamStream:
    """Raw body of a streamed HTTP response, as an async byte iterator.

    Owns the response: iteration ending, ``aclose()``, or leaving the
    ``async with`` block releases the upstream connection.
    """

    def __init__(self, response: httpx.Response) -> None:
        self.response = response
        self._closed = False

    @property
    def status_code(self) -> int:
        return self.response.status_code

    async def __aiter__(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self.response.aiter_bytes():
                yield chunk
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if not self._closed:
            self._closed = True
            await self.response.aclose()

    async def __aenter__(self) -> UpstreamStream:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()


class ResilientHttpClient:
    def __init__(
        self,
        timeout: float = 10.0,
        policy: RetryPolicy | None = None,
        client: httpx.AsyncClient | None = None,
        read_timeout: float | None = None,
    ) -> None:
        self._timeout = timeout
        self._policy = policy or RetryPolicy()
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, read=read_timeout or timeout),
            follow_redirects=True,
        )

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def request(
        self,
        method: str,
        url: str,
        *,
        timeout: float | None = None,
        raise_for_status: bool = False,
        **kwargs: Any,
    ) -> httpx.Response:
        """Issue one buffered request with retry on transient failures.

        ``timeout`` bounds each attempt as a whole; it defaults to the
        client-wide hard timeout.
        """
        limit = timeout or self._timeout

        async def attempt() -> httpx.Response:
            resp = await asyncio.wait_for(
                self._client.request(method, url, **kwargs), timeout=limit
            )
            if raise_for_status:
                resp.raise_for_status()
            return resp

        return await retry(attempt, self._policy, label=_host(url))

    async def open_stream(
        self,
        method: str,
        url: str,
        *,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> UpstreamStream:
        """Open a streamed response; the timeout guards connect + headers only."""
        limit = timeout or self._timeout
        request = self._client.build_request(method, url, **kwargs)

        async def attempt() -> httpx.Response:
            return await asyncio.wait_for(
                self._client.send(request, stream=True), timeout=limit
            )

        response = await retry(attempt, self._policy, label=_host(url))
        return UpstreamStream(response)

    async def aclose(self) -> None:
        await self._client.aclose()


def _host(url: str) -> str:
    try:
        return httpx.URL(url).host or url
    except httpx.InvalidURL:
        return url
