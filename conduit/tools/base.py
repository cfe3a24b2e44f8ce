"""Base tool interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ToolResult:
    success: bool
    tool: str
    output: dict[str, Any] = field(default_factory=dict)
    error: str = ""
    cached: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success, "tool": self.tool}
        if self.success:
            data["result"] = {**self.output, "cached": self.cached}
        else:
            data["error"] = self.error
        return data


class BaseTool(ABC):
    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def description(self) -> str: ...

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """JSON Schema for tool parameters."""
        ...

    @property
    def cache_ttl(self) -> float:
        """Seconds a successful result stays cached."""
        return 300.0

    def ttl_for(self, output: dict[str, Any]) -> float:
        return self.cache_ttl

    def normalize_args(self, args: dict[str, Any]) -> dict[str, Any]:
        """Canonical form of ``args``, used for cache keys and execution.

        Raises ToolError when a required argument is missing.
        """
        return dict(args)

    @abstractmethod
    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        """Run the tool; raise ToolError when no result can be produced."""

    def declaration(self) -> dict[str, Any]:
        """OpenAI function-calling declaration."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }
