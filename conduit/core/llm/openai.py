"""OpenAI-compatible chat-completions providers.

Works with any API that speaks the OpenAI Chat Completions protocol:
  - OpenAI          (https://api.openai.com/v1)
  - OpenRouter      (https://openrouter.ai/api/v1)
  - QrokCloud       (https://api.qrokcloud.com, endpoint under /v1)
  - GitHub Copilot  (https://api.githubcopilot.com/v1)

Requests and tool declarations are passed through verbatim; the stream is
standard SSE with ``choices[0].delta.content`` and a ``[DONE]`` sentinel, so
the default ``FrameParser`` applies unchanged.
"""

from __future__ import annotations

from typing import Any

from conduit.config import ProviderConfig, ProviderName
from conduit.core.llm.base import ProviderAdapter
from conduit.core.llm.types import LLMRequest, LLMResponse, Usage


class OpenAICompatibleAdapter(ProviderAdapter):
    path = "/chat/completions"
    # Backends without a /models listing serve known_models instead
    lists_models = True

    def validate_config(self, config: ProviderConfig) -> bool:
        return bool(config.api_key)

    def _endpoint(self, request: LLMRequest, stream: bool) -> str:
        return f"{self.base_url}{self.path}"

    def _build_body(self, request: LLMRequest, stream: bool) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self.resolve_model(request),
            "messages": [m.model_dump() for m in request.messages],
            "temperature": self.temperature(request),
            "max_tokens": self.max_tokens(request),
            "stream": stream,
        }
        if request.tools:
            body["tools"] = [t.model_dump() for t in request.tools]
        if request.tool_choice:
            body["tool_choice"] = request.tool_choice
        return body

    def _parse_response(self, data: Any, request: LLMRequest) -> LLMResponse:
        choices = data.get("choices") or [{}]
        message = choices[0].get("message") or {}
        usage = data.get("usage")
        return LLMResponse(
            content=message.get("content") or "",
            model=data.get("model"),
            usage=Usage.model_validate(usage) if isinstance(usage, dict) else None,
        )

    async def list_models(self) -> list[str]:
        if not self.lists_models:
            return await super().list_models()
        data = await self._get_json(f"{self.base_url}/models")
        entries = data.get("data") if isinstance(data, dict) else None
        ids = [
            e["id"] for e in entries or []
            if isinstance(e, dict) and isinstance(e.get("id"), str)
        ]
        return sorted(i for i in ids if self.is_chat_model(i))

    def is_chat_model(self, model_id: str) -> bool:
        return True


class OpenAIAdapter(OpenAICompatibleAdapter):
    name = ProviderName.OPENAI
    label = "OpenAI"
    default_model = "gpt-3.5-turbo"

    def validate_config(self, config: ProviderConfig) -> bool:
        return bool(config.api_key) and config.api_key.startswith("sk-")

    def is_chat_model(self, model_id: str) -> bool:
        return model_id.startswith(("gpt-", "o1-"))


class OpenRouterAdapter(OpenAICompatibleAdapter):
    name = ProviderName.OPENROUTER
    label = "OpenRouter"
    default_model = "meta-llama/llama-3.3-70b-instruct:free"


class QrokCloudAdapter(OpenAICompatibleAdapter):
    name = ProviderName.QROKCLOUD
    label = "QrokCloud"
    default_model = "default"
    path = "/v1/chat/completions"
    lists_models = False

    def validate_config(self, config: ProviderConfig) -> bool:
        return bool(config.api_key) and bool(config.base_url)


class GitHubCopilotAdapter(OpenAICompatibleAdapter):
    name = ProviderName.GITHUB_COPILOT
    label = "GitHub Copilot"
    default_model = "gpt-4"
    lists_models = False
    known_models = ("gpt-4", "gpt-3.5-turbo")
