"""Conduit tools."""

from __future__ import annotations

from conduit.config import ToolsConfig
from conduit.core.http import ResilientHttpClient
from conduit.tools.base import BaseTool, ToolResult
from conduit.tools.calculator import CalculatorTool
from conduit.tools.finance import CryptoPriceTool, StockPriceTool
from conduit.tools.registry import ToolRegistry
from conduit.tools.web_search import WebSearchTool

__all__ = [
    "BaseTool",
    "ToolResult",
    "ToolRegistry",
    "CalculatorTool",
    "WebSearchTool",
    "StockPriceTool",
    "CryptoPriceTool",
    "build_default_registry",
]


def build_default_registry(config: ToolsConfig, http: ResilientHttpClient) -> ToolRegistry:
    return ToolRegistry([
        CalculatorTool(cache_ttl=config.calculator_ttl),
        WebSearchTool(
            http,
            max_results=config.search_max_results,
            cache_ttl=config.search_ttl,
            fallback_ttl=config.search_fallback_ttl,
        ),
        StockPriceTool(http, api_key=config.alpha_vantage_api_key, cache_ttl=config.stock_ttl),
        CryptoPriceTool(http, cache_ttl=config.crypto_ttl),
    ])
