"""Chat pipeline: tool pre-pass → provider lookup → adapter → normalizer."""

from __future__ import annotations

import os
from contextlib import aclosing
from typing import AsyncIterator, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

from conduit.config import ProviderConfig
from conduit.core.llm.base import ProviderAdapter
from conduit.core.llm.registry import ProviderRegistry
from conduit.core.llm.types import DeltaChunk, LLMMessage, LLMRequest, LLMResponse, ToolDeclaration
from conduit.core.resources import Resources
from conduit.core.sanitizer import sanitize_input, screen_message
from conduit.utils.logging import get_logger

log = get_logger(__name__)

MAX_MESSAGES = 1000
MAX_MESSAGE_CHARS = 10_000


class ChatRequestBody(BaseModel):
    """Inbound chat request as sent by clients."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[LLMMessage] = Field(min_length=1, max_length=MAX_MESSAGES)
    # Omitted sampling fields fall through to <PROVIDER>_TEMPERATURE / _MAX_TOKENS
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, ge=1, le=4000)
    stream: bool = True
    provider: str | None = None
    model: str | None = None
    api_key: str | None = Field(default=None, alias="apiKey")
    base_url: str | None = Field(default=None, alias="baseURL")

    @field_validator("messages")
    @classmethod
    def _screen(cls, messages: list[LLMMessage]) -> list[LLMMessage]:
        screened: list[LLMMessage] = []
        for i, message in enumerate(messages):
            if len(message.content) > MAX_MESSAGE_CHARS:
                raise ValueError(
                    f"messages[{i}] exceeds {MAX_MESSAGE_CHARS} characters"
                )
            if message.role == "user":
                try:
                    content = screen_message(message.content)
                except ValueError as e:
                    raise ValueError(f"messages[{i}]: {e}") from None
            else:
                content = sanitize_input(message.content)
            if content != message.content:
                message = message.model_copy(update={"content": content})
            screened.append(message)
        return screened

    def override(self) -> ProviderConfig | None:
        if not self.api_key and not self.base_url:
            return None
        return ProviderConfig(api_key=self.api_key or "", base_url=self.base_url)


class ChatService:
    def __init__(
        self, resources: Resources, environ: Mapping[str, str] | None = None
    ) -> None:
        self._resources = resources
        self.providers = ProviderRegistry(
            resources.settings,
            resources.provider_http,
            os.environ if environ is None else environ,
        )

    async def _prepare(self, body: ChatRequestBody) -> tuple[ProviderAdapter, LLMRequest]:
        # Resolve the provider first so config errors surface before any tool call
        adapter = self.providers.get(body.provider, body.override())
        messages = await self._resources.orchestrator.prepare(body.messages)

        tools: list[ToolDeclaration] | None = None
        if self._resources.settings.llm.declare_tools:
            tools = [
                ToolDeclaration.model_validate(d)
                for d in self._resources.tools.declarations()
            ]

        request = LLMRequest(
            messages=messages,
            temperature=body.temperature,
            max_tokens=body.max_tokens,
            model=body.model,
            tools=tools,
            tool_choice="auto" if tools else None,
        )
        log.info(
            "chat_request",
            provider=adapter.name.value,
            model=adapter.resolve_model(request),
            messages=len(messages),
            stream=body.stream,
        )
        return adapter, request

    async def complete(self, body: ChatRequestBody) -> LLMResponse:
        adapter, request = await self._prepare(body)
        response = await adapter.chat(request)
        if response.model is None:
            response = response.model_copy(update={"model": adapter.resolve_model(request)})
        return response

    async def open_stream(
        self, body: ChatRequestBody
    ) -> tuple[AsyncIterator[DeltaChunk], str]:
        """Open the upstream stream and return (chunks, resolved model).

        Provider errors raise here, before the first chunk is produced.
        """
        adapter, request = await self._prepare(body)
        upstream = await adapter.stream(request)
        return adapter.normalizer(request).normalize(upstream), adapter.resolve_model(request)

    async def stream(self, body: ChatRequestBody) -> AsyncIterator[DeltaChunk]:
        chunks, _ = await self.open_stream(body)
        async with aclosing(chunks):
            async for chunk in chunks:
                yield chunk
