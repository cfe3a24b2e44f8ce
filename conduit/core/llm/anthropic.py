"""Anthropic Messages API provider."""

from __future__ import annotations

from typing import Any

from conduit.config import ProviderConfig, ProviderName
from conduit.core.llm.base import ProviderAdapter
from conduit.core.llm.types import LLMRequest, LLMResponse, ToolDeclaration, Usage
from conduit.core.stream import Frame, FrameParser, dig

ANTHROPIC_VERSION = "2023-06-01"


def convert_tools(tools: list[ToolDeclaration] | None) -> list[dict[str, Any]]:
    """OpenAI function declarations → Anthropic ``input_schema`` tools."""
    return [
        {
            "name": tool.function.name,
            "description": tool.function.description,
            "input_schema": tool.function.parameters,
        }
        for tool in tools or []
    ]


def convert_tool_choice(choice: str | dict[str, Any] | None) -> dict[str, Any] | None:
    if choice is None or choice == "none":
        return None
    if choice == "auto":
        return {"type": "auto"}
    if choice == "required":
        return {"type": "any"}
    if isinstance(choice, dict):
        name = dig(choice, ("function", "name"))
        if name:
            return {"type": "tool", "name": name}
    return None


class AnthropicFrameParser(FrameParser):
    """Typed SSE events: text arrives in ``content_block_delta``, the stream ends at ``message_stop``."""

    recovery_keys = ("text",)

    def parse(self, payload: Any) -> Frame | None:
        event = dig(payload, ("type",))
        if event == "message_start":
            return Frame(model=dig(payload, ("message", "model")))
        if event == "content_block_delta":
            text = dig(payload, ("delta", "text"))
            if isinstance(text, str) and text:
                return Frame(content=text)
            return None
        if event == "message_stop":
            return Frame(done=True)
        return None


class AnthropicAdapter(ProviderAdapter):
    name = ProviderName.ANTHROPIC
    label = "Anthropic"
    default_model = "claude-3-5-sonnet-20241022"
    known_models = (
        "claude-3-5-sonnet-20241022",
        "claude-3-5-haiku-20241022",
        "claude-3-opus-20240229",
        "claude-3-sonnet-20240229",
        "claude-3-haiku-20240307",
    )

    def validate_config(self, config: ProviderConfig) -> bool:
        return bool(config.api_key) and config.api_key.startswith("sk-ant-")

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.config.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

    def _endpoint(self, request: LLMRequest, stream: bool) -> str:
        return f"{self.base_url}/messages"

    def _build_body(self, request: LLMRequest, stream: bool) -> dict[str, Any]:
        # System turns go in the top-level field; the messages list only
        # accepts user/assistant roles.
        system = "\n\n".join(m.content for m in request.messages if m.role == "system")
        messages = [
            {"role": m.role, "content": m.content}
            for m in request.messages
            if m.role != "system"
        ]
        tools = convert_tools(request.tools)
        tool_choice = convert_tool_choice(request.tool_choice)

        body: dict[str, Any] = {
            "model": self.resolve_model(request),
            "messages": messages,
            "temperature": self.temperature(request),
            "max_tokens": self.max_tokens(request),
        }
        if stream:
            body["stream"] = True
        if system:
            body["system"] = system
        if tools and request.tool_choice != "none":
            body["tools"] = tools
            if tool_choice:
                body["tool_choice"] = tool_choice
        return body

    def _parse_response(self, data: Any, request: LLMRequest) -> LLMResponse:
        text = "".join(
            block.get("text", "")
            for block in data.get("content") or []
            if block.get("type") == "text"
        )
        usage = data.get("usage") or {}
        prompt = usage.get("input_tokens")
        completion = usage.get("output_tokens")
        return LLMResponse(
            content=text,
            model=data.get("model"),
            usage=Usage(
                prompt_tokens=prompt,
                completion_tokens=completion,
                total_tokens=(prompt or 0) + (completion or 0) if usage else None,
            ),
        )

    def frame_parser(self) -> FrameParser:
        return AnthropicFrameParser()
