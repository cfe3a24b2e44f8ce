"""Ollama provider, local daemon or ollama.com cloud.

The two deployments differ only in path and auth: a local daemon serves
``/api/chat`` without credentials, the hosted API serves ``/chat`` under its
``/api`` base URL and wants a bearer token. Streams are bare NDJSON, one
object per line, with ``"done": true`` on the last.
"""

from __future__ import annotations

from typing import Any

from conduit.config import ProviderConfig, ProviderName
from conduit.core.llm.base import ProviderAdapter
from conduit.core.llm.types import LLMRequest, LLMResponse, Usage
from conduit.core.stream import Frame, FrameParser, dig

CLOUD_HOST = "ollama.com"


def is_cloud(base_url: str | None) -> bool:
    return bool(base_url) and CLOUD_HOST in base_url


class OllamaFrameParser(FrameParser):
    def parse(self, payload: Any) -> Frame | None:
        content = dig(payload, ("message", "content"))
        done = dig(payload, ("done",)) is True
        if not content and not done:
            return None
        return Frame(
            content=content if isinstance(content, str) else "",
            done=done,
            model=dig(payload, ("model",)),
        )


class OllamaAdapter(ProviderAdapter):
    name = ProviderName.OLLAMA
    label = "Ollama"
    default_model = "llama3.1"

    def validate_config(self, config: ProviderConfig) -> bool:
        if not config.base_url:
            return False
        if is_cloud(config.base_url) and not config.api_key:
            return False
        return True

    @property
    def cloud(self) -> bool:
        return is_cloud(self.base_url)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.cloud and self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    def _endpoint(self, request: LLMRequest, stream: bool) -> str:
        return f"{self.base_url}{'/chat' if self.cloud else '/api/chat'}"

    async def list_models(self) -> list[str]:
        data = await self._get_json(f"{self.base_url}{'/tags' if self.cloud else '/api/tags'}")
        models = data.get("models") if isinstance(data, dict) else None
        return [
            m["name"] for m in models or []
            if isinstance(m, dict) and isinstance(m.get("name"), str)
        ]

    def _build_body(self, request: LLMRequest, stream: bool) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self.resolve_model(request),
            "messages": [m.model_dump() for m in request.messages],
            "options": {
                "temperature": self.temperature(request),
                "num_predict": self.max_tokens(request),
            },
            "stream": stream,
        }
        if request.tools:
            body["tools"] = [t.model_dump() for t in request.tools]
        return body

    def _parse_response(self, data: Any, request: LLMRequest) -> LLMResponse:
        prompt = data.get("prompt_eval_count")
        completion = data.get("eval_count")
        usage = None
        if prompt is not None or completion is not None:
            usage = Usage(
                prompt_tokens=prompt,
                completion_tokens=completion,
                total_tokens=(prompt or 0) + (completion or 0),
            )
        return LLMResponse(
            content=dig(data, ("message", "content")) or "",
            model=data.get("model") or self.resolve_model(request),
            usage=usage,
        )

    def frame_parser(self) -> FrameParser:
        return OllamaFrameParser()
