"""LLM data types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, Field

Role = Literal["user", "assistant", "system"]


class LLMMessage(BaseModel):
    role: Role
    content: str


class ToolFunction(BaseModel):
    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})


class ToolDeclaration(BaseModel):
    """A callable the model may invoke, in OpenAI function-calling shape."""

    type: Literal["function"] = "function"
    function: ToolFunction


class LLMRequest(BaseModel):
    messages: list[LLMMessage]
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, ge=1, le=4000)
    model: str | None = None
    tools: list[ToolDeclaration] | None = None
    # "auto", "none", or {"type": "function", "function": {"name": ...}}
    tool_choice: str | dict[str, Any] | None = None


class Usage(BaseModel):
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


class LLMResponse(BaseModel):
    content: str = ""
    model: str | None = None
    usage: Usage | None = None


@dataclass
class DeltaChunk:
    content: str = ""
    done: bool = False
    model: str | None = None
