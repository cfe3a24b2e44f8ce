"""Tool pre-pass: classify the user's turn, run at most one tool, inject its result."""

from __future__ import annotations

import json
from typing import Any, Sequence

import httpx

from conduit.core.cache import TTLCache, generate_cache_key
from conduit.core.intent import DEFAULT_RULES, IntentRule, ToolInvocation, classify
from conduit.core.llm.types import LLMMessage
from conduit.errors import ToolError
from conduit.tools.base import ToolResult
from conduit.tools.registry import ToolRegistry
from conduit.utils.logging import get_logger

log = get_logger(__name__)

SEARCH_TOOL = "searchWeb"


class ToolOrchestrator:
    def __init__(
        self,
        registry: ToolRegistry,
        cache: TTLCache,
        rules: Sequence[IntentRule] = DEFAULT_RULES,
    ) -> None:
        self._registry = registry
        self._cache = cache
        self._rules = rules

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    def classify(self, message: str) -> ToolInvocation | None:
        invocation = classify(message, self._rules)
        if invocation is not None and invocation.tool not in self._registry:
            log.debug("tool_not_registered", tool=invocation.tool)
            return None
        return invocation

    async def execute(self, name: str, args: dict[str, Any] | None = None) -> ToolResult:
        """Run one tool through the cache.

        Unknown tools and invalid arguments raise ToolError; a tool that runs
        but cannot produce a result, or fails unexpectedly, yields
        ``success=False``.
        """
        tool = self._registry.get(name)
        normalized = tool.normalize_args(args or {})
        key = generate_cache_key("tool", name, normalized)

        hit = self._cache.get(key)
        if hit is not None:
            log.debug("tool_cache_hit", tool=name)
            return ToolResult(success=True, tool=name, output=dict(hit), cached=True)

        try:
            output = await tool.execute(**normalized)
        except ToolError as e:
            log.warning("tool_failed", tool=name, error=str(e))
            return ToolResult(success=False, tool=name, error=str(e))
        except httpx.HTTPError as e:
            log.warning("tool_failed", tool=name, error=type(e).__name__)
            return ToolResult(success=False, tool=name, error=f"Upstream request failed: {type(e).__name__}")
        except Exception as e:
            log.exception("tool_execution_error", tool=name)
            return ToolResult(success=False, tool=name, error=str(e) or type(e).__name__)

        self._cache.set(key, dict(output), ttl=tool.ttl_for(output))
        log.info("tool_executed", tool=name)
        return ToolResult(success=True, tool=name, output=output)

    async def prepare(self, messages: list[LLMMessage]) -> list[LLMMessage]:
        """Return ``messages`` with at most one tool-context system message appended."""
        last_user = next((m for m in reversed(messages) if m.role == "user"), None)
        if last_user is None:
            return list(messages)

        invocation = self.classify(last_user.content)
        if invocation is None:
            return list(messages)

        log.info("tool_detected", tool=invocation.tool, args=invocation.args)
        try:
            result = await self.execute(invocation.tool, invocation.args)
        except ToolError as e:
            result = ToolResult(success=False, tool=invocation.tool, error=str(e))

        return [*messages, LLMMessage(role="system", content=format_context(result))]


def format_context(result: ToolResult) -> str:
    if not result.success:
        return f"Tool execution failed: {result.error}. Continue with normal response."
    if result.tool == SEARCH_TOOL:
        return _format_search(result.output)
    summary = ", ".join(f"{k}: {_scalar(v)}" for k, v in result.output.items())
    return f"Tool Result ({result.tool}): {summary}"


def _format_search(output: dict[str, Any]) -> str:
    query = output.get("query", "")
    results = output.get("results") or []
    if not results:
        return (
            f'Web search for "{query}" returned no results. The user may need to '
            "refine their search query or the information may not be available "
            "online. Provide a helpful response based on your knowledge."
        )
    lines = [f'Web Search Results for "{query}":', ""]
    for i, item in enumerate(results, 1):
        lines.append(f"{i}. {item.get('title', '')}")
        lines.append(f"   URL: {item.get('url', '')}")
        lines.append(f"   {item.get('snippet', '')}")
        lines.append("")
    lines.append(
        "Use these search results to provide accurate and up-to-date information. "
        "If the results are limited, mention that and provide the best answer "
        "based on available information."
    )
    return "\n".join(lines)


def _scalar(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)
