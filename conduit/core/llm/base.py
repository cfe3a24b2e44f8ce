"""LLM provider adapter base class.

An adapter translates the canonical ``LLMRequest`` into one backend's HTTP
request and the backend's JSON response back into ``LLMResponse``. Streaming
returns the raw upstream body; turning bytes into ``DeltaChunk`` events is
the job of ``StreamNormalizer`` driven by the adapter's ``frame_parser()``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ClassVar

import httpx

from conduit.config import DEFAULT_BASE_URLS, ProviderConfig, ProviderName
from conduit.core.http import ResilientHttpClient, UpstreamStream
from conduit.core.llm.types import LLMRequest, LLMResponse
from conduit.core.stream import FrameParser, StreamNormalizer
from conduit.errors import ProviderAPIError
from conduit.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 1000


class ProviderAdapter(ABC):
    name: ClassVar[ProviderName]
    label: ClassVar[str]
    default_model: ClassVar[str]
    # Served by list_models() for backends without a listing endpoint
    known_models: ClassVar[tuple[str, ...]] = ()

    def __init__(
        self,
        config: ProviderConfig,
        http: ResilientHttpClient,
        request_timeout: float = 120.0,
    ) -> None:
        self.config = config
        self._http = http
        self._request_timeout = request_timeout

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    @abstractmethod
    def validate_config(self, config: ProviderConfig) -> bool:
        """Structural check only; never touches the network."""

    @abstractmethod
    def _endpoint(self, request: LLMRequest, stream: bool) -> str: ...

    @abstractmethod
    def _build_body(self, request: LLMRequest, stream: bool) -> dict[str, Any]: ...

    @abstractmethod
    def _parse_response(self, data: Any, request: LLMRequest) -> LLMResponse: ...

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }

    def frame_parser(self) -> FrameParser:
        return FrameParser()

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    async def chat(self, request: LLMRequest) -> LLMResponse:
        resp = await self._http.request(
            "POST",
            self._endpoint(request, stream=False),
            headers=self._headers(),
            json=self._build_body(request, stream=False),
            timeout=self._request_timeout,
        )
        if resp.is_error:
            raise self._api_error(resp)
        return self._parse_response(resp.json(), request)

    async def stream(self, request: LLMRequest) -> UpstreamStream:
        """Open the streaming call and hand back the raw body reader."""
        upstream = await self._http.open_stream(
            "POST",
            self._endpoint(request, stream=True),
            headers=self._headers(),
            json=self._build_body(request, stream=True),
        )
        if upstream.response.is_error:
            try:
                await upstream.response.aread()
                raise self._api_error(upstream.response)
            finally:
                await upstream.aclose()
        return upstream

    def normalizer(self, request: LLMRequest) -> StreamNormalizer:
        return StreamNormalizer(self.frame_parser(), model=self.resolve_model(request))

    async def list_models(self) -> list[str]:
        return list(self.known_models) or [self.default_model]

    async def _get_json(self, url: str) -> Any:
        resp = await self._http.request(
            "GET", url, headers=self._headers(), timeout=self._request_timeout
        )
        if resp.is_error:
            raise self._api_error(resp)
        data = _json_or_none(resp)
        if data is None:
            raise ProviderAPIError(
                self.name.value, resp.status_code, f"{self.label} returned a non-JSON body"
            )
        return data

    # ------------------------------------------------------------------
    # Resolution helpers
    # ------------------------------------------------------------------

    @property
    def base_url(self) -> str:
        return (self.config.base_url or DEFAULT_BASE_URLS[self.name]).rstrip("/")

    def resolve_model(self, request: LLMRequest) -> str:
        return request.model or self.config.model or self.default_model

    def temperature(self, request: LLMRequest) -> float:
        if request.temperature is not None:
            return request.temperature
        if self.config.default_temperature is not None:
            return self.config.default_temperature
        return DEFAULT_TEMPERATURE

    def max_tokens(self, request: LLMRequest) -> int:
        if request.max_tokens is not None:
            return request.max_tokens
        if self.config.default_max_tokens is not None:
            return self.config.default_max_tokens
        return DEFAULT_MAX_TOKENS

    def _api_error(self, resp: httpx.Response) -> ProviderAPIError:
        message = extract_error_message(_json_or_none(resp))
        if not message:
            message = f"{self.label} API error: {resp.reason_phrase or resp.status_code}"
        log.warning(
            "provider_api_error",
            provider=self.name.value,
            status=resp.status_code,
            message=message,
        )
        return ProviderAPIError(self.name.value, resp.status_code, message)


def extract_error_message(data: Any) -> str:
    """Pull the backend's own error text out of an error body, if any."""
    if not isinstance(data, dict):
        return ""
    error = data.get("error")
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message:
            return message
    if isinstance(error, str) and error:
        return error
    message = data.get("message")
    return message if isinstance(message, str) else ""


def _json_or_none(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return None
