"""Web search via the DuckDuckGo Instant Answer API (no API key)."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote_plus

import httpx

from conduit.core.http import ResilientHttpClient
from conduit.errors import ToolError
from conduit.tools.base import BaseTool
from conduit.utils.logging import get_logger

log = get_logger(__name__)

DDG_API_URL = "https://api.duckduckgo.com/"
USER_AGENT = "Mozilla/5.0 (compatible; conduit/0.1)"


def fallback_results(query: str) -> list[dict[str, str]]:
    return [{
        "title": "Web Search",
        "url": f"https://duckduckgo.com/?q={quote_plus(query)}",
        "snippet": f'Search for "{query}" on DuckDuckGo. Click the link to view results.',
    }]


def extract_results(data: dict[str, Any], query: str, limit: int) -> list[dict[str, str]]:
    results: list[dict[str, str]] = []
    if data.get("AbstractText"):
        results.append({
            "title": data.get("Heading") or query,
            "url": data.get("AbstractURL") or f"https://duckduckgo.com/?q={quote_plus(query)}",
            "snippet": data["AbstractText"],
        })

    for topic in data.get("RelatedTopics") or []:
        if len(results) >= limit:
            break
        # Grouped topics nest their entries one level down
        for entry in topic.get("Topics", [topic]) if isinstance(topic, dict) else []:
            text, url = entry.get("Text"), entry.get("FirstURL")
            if text and url and len(results) < limit:
                results.append({
                    "title": text.split(" - ")[0],
                    "url": url,
                    "snippet": text,
                })
    return results


class WebSearchTool(BaseTool):
    def __init__(
        self,
        http: ResilientHttpClient,
        max_results: int = 5,
        cache_ttl: float = 600.0,
        fallback_ttl: float = 60.0,
    ) -> None:
        self._http = http
        self._max_results = max_results
        self._cache_ttl = cache_ttl
        self._fallback_ttl = fallback_ttl

    @property
    def name(self) -> str:
        return "searchWeb"

    @property
    def description(self) -> str:
        return "Searches the web using DuckDuckGo (free, no API key)"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search query."},
                "maxResults": {
                    "type": "integer",
                    "description": "Maximum number of results.",
                    "default": self._max_results,
                },
            },
            "required": ["query"],
        }

    @property
    def cache_ttl(self) -> float:
        return self._cache_ttl

    def ttl_for(self, output: dict[str, Any]) -> float:
        return self._fallback_ttl if output.get("fallback") else self._cache_ttl

    def normalize_args(self, args: dict[str, Any]) -> dict[str, Any]:
        query = " ".join(str(args.get("query") or "").split())
        if not query:
            raise ToolError("Missing required argument: query")
        try:
            limit = int(args.get("maxResults") or self._max_results)
        except (TypeError, ValueError) as e:
            raise ToolError("maxResults must be an integer") from e
        return {"query": query, "maxResults": max(1, min(limit, 20))}

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        query: str = kwargs["query"]
        limit: int = kwargs.get("maxResults", self._max_results)

        log.info("web_search_start", query=query)
        try:
            resp = await self._http.request(
                "GET",
                DDG_API_URL,
                params={"q": query, "format": "json", "no_html": "1", "skip_disambig": "1"},
                headers={"User-Agent": USER_AGENT},
                raise_for_status=True,
            )
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            log.warning("web_search_failed", query=query, error=str(e))
            data = {}

        results = extract_results(data if isinstance(data, dict) else {}, query, limit)
        if not results:
            log.info("web_search_fallback", query=query)
            return {
                "query": query,
                "results": fallback_results(query),
                "totalResults": 0,
                "fallback": True,
            }

        log.info("web_search_done", query=query, results=len(results))
        return {"query": query, "results": results, "totalResults": len(results)}
