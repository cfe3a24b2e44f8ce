"""Hugging Face Inference provider.

Text-generation endpoints take a single prompt rather than a conversation,
so only the most recent user turn is sent. Streams arrive either as SSE
token events (``token.text``), as cumulative ``generated_text`` snapshots, or
as one bare JSON object carrying the whole answer.
"""

from __future__ import annotations

from typing import Any

from conduit.config import ProviderConfig, ProviderName
from conduit.core.llm.base import ProviderAdapter
from conduit.core.llm.types import LLMMessage, LLMRequest, LLMResponse
from conduit.core.stream import Frame, FrameParser, dig

DEDICATED_ENDPOINT_HOST = "inference.endpoints.huggingface.cloud"


def last_user_message(messages: list[LLMMessage]) -> str:
    for message in reversed(messages):
        if message.role == "user":
            return message.content
    return ""


def generated_text(data: Any) -> str:
    if isinstance(data, list):
        data = data[0] if data else {}
    if isinstance(data, str):
        return data
    if isinstance(data, dict):
        text = data.get("generated_text") or data.get("text")
        if isinstance(text, str):
            return text
    return ""


class HuggingFaceFrameParser(FrameParser):
    """Stateful: cumulative snapshots are diffed against what was already sent."""

    recovery_keys = ("text", "generated_text")

    def __init__(self) -> None:
        self._text = ""

    def parse(self, payload: Any) -> Frame | None:
        if not isinstance(payload, dict):
            return None

        token = payload.get("token")
        if isinstance(token, dict):
            if token.get("special"):
                return None
            text = token.get("text") or ""
            self._text += text
            return Frame(content=text) if text else None

        snapshot = generated_text(payload)
        if not snapshot:
            return None
        if snapshot.startswith(self._text):
            delta = snapshot[len(self._text):]
        else:
            delta = snapshot
        self._text = snapshot
        return Frame(content=delta) if delta else None

    def parse_bare(self, payload: Any) -> Frame | None:
        """A bare (non-SSE) object carries the full answer and ends the stream."""
        text = generated_text(payload)
        if not text:
            return None
        return Frame(content=text, done=True)


class HuggingFaceAdapter(ProviderAdapter):
    name = ProviderName.HUGGINGFACE
    label = "Hugging Face"
    default_model = "Qwen/Qwen3-Omni-30B-A3B-Instruct"
    known_models = (
        "Qwen/Qwen3-Omni-30B-A3B-Instruct",
        "Qwen/Qwen3-Omni-30B-A3B-Thinking",
        "Qwen/Qwen2.5-72B-Instruct",
        "Qwen/Qwen2.5-32B-Instruct",
        "meta-llama/Llama-3.1-70B-Instruct",
        "meta-llama/Llama-3.1-8B-Instruct",
        "mistralai/Mistral-7B-Instruct-v0.2",
        "google/gemma-7b-it",
    )

    def validate_config(self, config: ProviderConfig) -> bool:
        return bool(config.api_key)

    def _endpoint(self, request: LLMRequest, stream: bool) -> str:
        if DEDICATED_ENDPOINT_HOST in self.base_url:
            return self.base_url
        return f"{self.base_url}/models/{self.resolve_model(request)}"

    def _build_body(self, request: LLMRequest, stream: bool) -> dict[str, Any]:
        body: dict[str, Any] = {
            "inputs": last_user_message(request.messages),
            "parameters": {
                "temperature": self.temperature(request),
                "max_new_tokens": self.max_tokens(request),
                "return_full_text": False,
            },
        }
        if stream:
            body["stream"] = True
            body["options"] = {"wait_for_model": True}
        return body

    def _parse_response(self, data: Any, request: LLMRequest) -> LLMResponse:
        return LLMResponse(
            content=generated_text(data),
            model=self.resolve_model(request),
        )

    def frame_parser(self) -> FrameParser:
        return HuggingFaceFrameParser()
