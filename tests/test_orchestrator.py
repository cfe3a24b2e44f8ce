"""Tests for the tool pre-pass orchestrator."""

from typing import Any

import pytest

from conduit.core.cache import TTLCache
from conduit.core.llm.types import LLMMessage
from conduit.core.orchestrator import ToolOrchestrator, format_context
from conduit.errors import ToolError
from conduit.tools import CalculatorTool, ToolRegistry, ToolResult
from conduit.tools.base import BaseTool


class CountingTool(BaseTool):
    """Echo tool that counts executions."""

    def __init__(
        self, name: str = "echo", fail: bool = False, crash: bool = False
    ) -> None:
        self._name = name
        self.fail = fail
        self.crash = crash
        self.calls = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return "Echo"

    @property
    def parameters(self) -> dict[str, Any]:
        return {"type": "object", "properties": {"text": {"type": "string"}}}

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        self.calls += 1
        if self.fail:
            raise ToolError("upstream unavailable")
        if self.crash:
            raise KeyError("price")
        return {"text": kwargs.get("text", "")}


@pytest.fixture
def cache():
    return TTLCache()


@pytest.fixture
def orchestrator(cache):
    return ToolOrchestrator(ToolRegistry([CalculatorTool()]), cache)


class TestExecute:
    async def test_result_then_cached(self, cache):
        tool = CountingTool()
        orch = ToolOrchestrator(ToolRegistry([tool]), cache)

        first = await orch.execute("echo", {"text": "hi"})
        second = await orch.execute("echo", {"text": "hi"})

        assert first.success and not first.cached
        assert second.success and second.cached
        assert second.output == {"text": "hi"}
        assert tool.calls == 1

    async def test_calculator_result(self, orchestrator):
        result = await orchestrator.execute("calculate", {"expression": "2 + 2 * 10"})
        assert result.to_dict() == {
            "success": True,
            "tool": "calculate",
            "result": {"result": "22", "expression": "2 + 2 * 10", "cached": False},
        }
        again = await orchestrator.execute("calculate", {"expression": " 2 + 2 * 10 "})
        assert again.cached

    async def test_failure_not_cached(self, cache):
        tool = CountingTool(fail=True)
        orch = ToolOrchestrator(ToolRegistry([tool]), cache)

        result = await orch.execute("echo", {"text": "x"})
        assert not result.success
        assert result.error == "upstream unavailable"
        await orch.execute("echo", {"text": "x"})
        assert tool.calls == 2
        assert len(cache) == 0

    async def test_unexpected_exception_becomes_failure(self, cache):
        orch = ToolOrchestrator(ToolRegistry([CountingTool(crash=True)]), cache)
        result = await orch.execute("echo", {"text": "x"})
        assert result.success is False
        assert result.error == "'price'"
        assert len(cache) == 0

    async def test_unknown_tool_raises(self, orchestrator):
        with pytest.raises(ToolError, match="Unknown tool 'nope'"):
            await orchestrator.execute("nope", {})

    async def test_missing_argument_raises(self, orchestrator):
        with pytest.raises(ToolError, match="expression"):
            await orchestrator.execute("calculate", {})


class TestPrepare:
    async def test_appends_one_system_message(self, orchestrator):
        messages = [
            LLMMessage(role="system", content="You are helpful."),
            LLMMessage(role="user", content="calculate 2 + 2 * 10"),
        ]
        prepared = await orchestrator.prepare(messages)
        assert prepared[:2] == messages
        assert len(prepared) == 3
        assert prepared[2].role == "system"
        assert prepared[2].content == (
            "Tool Result (calculate): result: 22, expression: 2 + 2 * 10"
        )

    async def test_no_tool_leaves_messages_unchanged(self, orchestrator):
        messages = [LLMMessage(role="user", content="Hello!")]
        assert await orchestrator.prepare(messages) == messages

    async def test_unregistered_tool_ignored(self, orchestrator):
        messages = [LLMMessage(role="user", content="search for jazz clubs")]
        assert await orchestrator.prepare(messages) == messages

    async def test_only_last_user_message_classified(self, orchestrator):
        messages = [
            LLMMessage(role="user", content="calculate 1 + 1"),
            LLMMessage(role="assistant", content="2"),
            LLMMessage(role="user", content="thanks"),
        ]
        assert await orchestrator.prepare(messages) == messages

    async def test_tool_error_becomes_note(self, orchestrator):
        messages = [LLMMessage(role="user", content="calculate 1 / 0 please")]
        prepared = await orchestrator.prepare(messages)
        assert prepared[-1].content == (
            "Tool execution failed: Division by zero. Continue with normal response."
        )

    async def test_oversized_result_becomes_note(self, orchestrator):
        messages = [LLMMessage(role="user", content="calculate 10^5000 + 1")]
        prepared = await orchestrator.prepare(messages)
        assert len(prepared) == 2
        assert prepared[-1].content == (
            "Tool execution failed: Result too large. Continue with normal response."
        )

    async def test_crashing_tool_becomes_note(self, cache):
        orch = ToolOrchestrator(ToolRegistry([CountingTool(name="calculate", crash=True)]), cache)
        prepared = await orch.prepare([LLMMessage(role="user", content="calculate 6 * 7")])
        assert prepared[-1].role == "system"
        assert prepared[-1].content.startswith("Tool execution failed:")


class TestFormatContext:
    def test_failure(self):
        result = ToolResult(success=False, tool="getStockPrice", error="No quote found for ZZZ")
        assert format_context(result) == (
            "Tool execution failed: No quote found for ZZZ. Continue with normal response."
        )

    def test_search_results(self):
        result = ToolResult(success=True, tool="searchWeb", output={
            "query": "jazz",
            "results": [{"title": "Jazz", "url": "https://j.example", "snippet": "Music genre"}],
            "totalResults": 1,
        })
        text = format_context(result)
        assert text.startswith('Web Search Results for "jazz":\n\n1. Jazz\n   URL: https://j.example\n   Music genre\n')
        assert text.endswith("based on available information.")

    def test_search_without_results(self):
        result = ToolResult(success=True, tool="searchWeb", output={"query": "zzz", "results": []})
        assert format_context(result).startswith('Web search for "zzz" returned no results.')

    def test_generic_tool(self):
        result = ToolResult(success=True, tool="getCryptoPrice", output={
            "symbol": "BITCOIN", "price": 50000, "currency": "USD",
        })
        assert format_context(result) == (
            "Tool Result (getCryptoPrice): symbol: BITCOIN, price: 50000, currency: USD"
        )
