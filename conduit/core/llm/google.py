"""Google Gemini provider (generativelanguage REST API)."""

from __future__ import annotations

from typing import Any

from conduit.config import ProviderConfig, ProviderName
from conduit.core.llm.base import ProviderAdapter
from conduit.core.llm.types import LLMRequest, LLMResponse, ToolDeclaration, Usage
from conduit.core.stream import Frame, FrameParser, dig


def convert_tools(tools: list[ToolDeclaration] | None) -> list[dict[str, Any]]:
    if not tools:
        return []
    return [{
        "function_declarations": [
            {
                "name": tool.function.name,
                "description": tool.function.description,
                "parameters": tool.function.parameters,
            }
            for tool in tools
        ],
    }]


def candidate_text(payload: Any) -> str:
    parts = dig(payload, ("candidates", 0, "content", "parts")) or []
    return "".join(
        part["text"] for part in parts
        if isinstance(part, dict) and isinstance(part.get("text"), str)
    )


class GeminiFrameParser(FrameParser):
    recovery_keys = ("text",)

    def parse(self, payload: Any) -> Frame | None:
        text = candidate_text(payload)
        if not text:
            return None
        return Frame(content=text, model=dig(payload, ("modelVersion",)))


class GoogleAdapter(ProviderAdapter):
    name = ProviderName.GOOGLE
    label = "Google"
    default_model = "gemini-pro"
    known_models = ("gemini-2.0-flash-exp", "gemini-1.5-pro", "gemini-1.5-flash", "gemini-pro")

    def validate_config(self, config: ProviderConfig) -> bool:
        return bool(config.api_key)

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-goog-api-key": self.config.api_key,
        }

    def _endpoint(self, request: LLMRequest, stream: bool) -> str:
        model = self.resolve_model(request)
        if not model.startswith("models/"):
            model = f"models/{model}"
        if stream:
            return f"{self.base_url}/{model}:streamGenerateContent?alt=sse"
        return f"{self.base_url}/{model}:generateContent"

    def _build_body(self, request: LLMRequest, stream: bool) -> dict[str, Any]:
        system = "\n\n".join(m.content for m in request.messages if m.role == "system")
        contents = [
            {
                "role": "model" if m.role == "assistant" else "user",
                "parts": [{"text": m.content}],
            }
            for m in request.messages
            if m.role != "system"
        ]
        tools = convert_tools(request.tools)

        body: dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": self.temperature(request),
                "maxOutputTokens": self.max_tokens(request),
            },
        }
        if system:
            body["systemInstruction"] = {"parts": [{"text": system}]}
        if tools:
            body["tools"] = tools
        return body

    def _parse_response(self, data: Any, request: LLMRequest) -> LLMResponse:
        meta = data.get("usageMetadata") or {}
        usage = None
        if meta:
            usage = Usage(
                prompt_tokens=meta.get("promptTokenCount"),
                completion_tokens=meta.get("candidatesTokenCount"),
                total_tokens=meta.get("totalTokenCount"),
            )
        return LLMResponse(
            content=candidate_text(data),
            model=data.get("modelVersion") or self.resolve_model(request),
            usage=usage,
        )

    def frame_parser(self) -> FrameParser:
        return GeminiFrameParser()
