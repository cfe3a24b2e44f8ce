"""Keyword rules that map a user message to at most one tool call.

Rules are tried in order and the first match wins. Matching is a cheap
heuristic over the raw text; a miss simply means no tool runs for that turn.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Sequence

from conduit.tools.finance import CRYPTO_ALIASES


@dataclass(frozen=True)
class ToolInvocation:
    tool: str
    args: dict[str, Any] = field(default_factory=dict)


class IntentRule(ABC):
    tool: str

    @abstractmethod
    def match(self, message: str) -> dict[str, Any] | None:
        """Tool arguments when ``message`` asks for this tool, else None."""

    def classify(self, message: str) -> ToolInvocation | None:
        args = self.match(message)
        return ToolInvocation(self.tool, args) if args is not None else None


def _words(*alternatives: str) -> re.Pattern[str]:
    return re.compile(r"\b(?:%s)\b" % "|".join(alternatives), re.IGNORECASE)


class CalculatorRule(IntentRule):
    tool = "calculate"

    keywords = _words("calculate", "compute", "math", "hesapla", "hesap")
    operator = re.compile(r"\d\s*(?:[-+*/^%]|\*\*)\s*[\d(.]")
    candidate = re.compile(r"[\d+\-*/^%().\s]+")

    def match(self, message: str) -> dict[str, Any] | None:
        if not self.keywords.search(message) or not self.operator.search(message):
            return None
        runs = [
            run.strip() for run in self.candidate.findall(message)
            if self.operator.search(run)
        ]
        if not runs:
            return None
        expression = max(runs, key=len).rstrip(".")
        return {"expression": expression}


class WebSearchRule(IntentRule):
    tool = "searchWeb"

    keywords = _words(
        r"web\s+search", r"web\s+arama", "search", "ara", "find", "bul",
        "google", "duckduckgo",
    )
    exclusions = _words("code", "kod", "programming")
    boilerplate = _words(
        "please", r"can\s+you", r"could\s+you", r"for\s+me",
        r"benim\s+icin", r"yapar\s+misin", r"bu\s+konuyla\s+ilgili",
    )

    def __init__(self, max_results: int = 5) -> None:
        self.max_results = max_results

    def match(self, message: str) -> dict[str, Any] | None:
        if not self.keywords.search(message) or self.exclusions.search(message):
            return None
        return {"query": self.extract_query(message), "maxResults": self.max_results}

    def extract_query(self, message: str) -> str:
        query = self.keywords.sub(" ", message)
        query = self.boilerplate.sub(" ", query)
        query = re.sub(r"\s+([,.;:!?])", r"\1", query)
        query = re.sub(r"([,;:])(?:\s*[,;:])+", r"\1", query)
        query = " ".join(query.split()).strip(" ,.;:!?")
        if len(query) < 3:
            query = " ".join(message.split())
        return query


class StockPriceRule(IntentRule):
    tool = "getStockPrice"

    keywords = _words("stock", "stocks", "share", "hisse", "price", "fiyat")
    ticker = re.compile(r"\b[A-Z]{1,5}\b")
    not_tickers = frozenset({"I", "A"})

    def match(self, message: str) -> dict[str, Any] | None:
        if not self.keywords.search(message):
            return None
        for token in self.ticker.findall(message):
            # Crypto symbols go to the crypto rule
            if token in self.not_tickers or token.lower() in CRYPTO_ALIASES:
                continue
            return {"symbol": token}
        return None


class CryptoPriceRule(IntentRule):
    tool = "getCryptoPrice"

    keywords = _words("crypto", "kripto", "coin", *sorted({*CRYPTO_ALIASES, *CRYPTO_ALIASES.values()}))
    symbols = _words(*sorted({*CRYPTO_ALIASES, *CRYPTO_ALIASES.values()}, key=len, reverse=True))

    def match(self, message: str) -> dict[str, Any] | None:
        if not self.keywords.search(message):
            return None
        found = self.symbols.search(message)
        if not found:
            return None
        return {"symbol": found.group(0).lower()}


DEFAULT_RULES: tuple[IntentRule, ...] = (
    CalculatorRule(),
    WebSearchRule(),
    StockPriceRule(),
    CryptoPriceRule(),
)


def classify(
    message: str, rules: Sequence[IntentRule] = DEFAULT_RULES
) -> ToolInvocation | None:
    for rule in rules:
        invocation = rule.classify(message)
        if invocation is not None:
            return invocation
    return None
