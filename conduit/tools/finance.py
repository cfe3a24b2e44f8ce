"""Market data tools: Alpha Vantage stock quotes, CoinGecko crypto prices."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import httpx

from conduit.core.http import ResilientHttpClient
from conduit.errors import ToolError
from conduit.tools.base import BaseTool
from conduit.utils.logging import get_logger

log = get_logger(__name__)

ALPHA_VANTAGE_URL = "https://www.alphavantage.co/query"
COINGECKO_URL = "https://api.coingecko.com/api/v3/simple/price"

CRYPTO_ALIASES: dict[str, str] = {
    "btc": "bitcoin",
    "eth": "ethereum",
    "ada": "cardano",
    "sol": "solana",
    "doge": "dogecoin",
    "xrp": "ripple",
    "dot": "polkadot",
    "ltc": "litecoin",
    "bnb": "binancecoin",
    "usdt": "tether",
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _get_json(http: ResilientHttpClient, url: str, params: dict[str, str], source: str) -> Any:
    try:
        resp = await http.request("GET", url, params=params, raise_for_status=True)
        return resp.json()
    except httpx.HTTPStatusError as e:
        raise ToolError(f"{source} returned HTTP {e.response.status_code}") from e
    except httpx.HTTPError as e:
        raise ToolError(f"{source} request failed: {type(e).__name__}") from e
    except ValueError as e:
        raise ToolError(f"{source} returned a non-JSON response") from e


class StockPriceTool(BaseTool):
    def __init__(
        self, http: ResilientHttpClient, api_key: str = "demo", cache_ttl: float = 300.0
    ) -> None:
        self._http = http
        self._api_key = api_key
        self._cache_ttl = cache_ttl

    @property
    def name(self) -> str:
        return "getStockPrice"

    @property
    def description(self) -> str:
        return "Gets current stock price (free API)"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "symbol": {"type": "string", "description": "Ticker symbol, e.g. AAPL."},
            },
            "required": ["symbol"],
        }

    @property
    def cache_ttl(self) -> float:
        return self._cache_ttl

    def normalize_args(self, args: dict[str, Any]) -> dict[str, Any]:
        symbol = str(args.get("symbol") or "").strip().upper()
        if not symbol:
            raise ToolError("Missing required argument: symbol")
        return {"symbol": symbol}

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        symbol: str = kwargs["symbol"]
        data = await _get_json(
            self._http,
            ALPHA_VANTAGE_URL,
            {"function": "GLOBAL_QUOTE", "symbol": symbol, "apikey": self._api_key},
            "Alpha Vantage",
        )
        if not isinstance(data, dict):
            raise ToolError("Alpha Vantage returned an unexpected payload")
        if data.get("Error Message"):
            raise ToolError(data["Error Message"])
        if data.get("Note") or data.get("Information"):
            raise ToolError("API rate limit exceeded. Please try again later.")

        quote = data.get("Global Quote") or {}
        price = quote.get("05. price")
        if not price:
            raise ToolError(f"No quote found for {symbol}")
        try:
            value = float(price)
        except ValueError as e:
            raise ToolError(f"Invalid price for {symbol}: {price!r}") from e

        return {
            "symbol": quote.get("01. symbol") or symbol,
            "price": value,
            "currency": "USD",
            "timestamp": _now(),
        }


class CryptoPriceTool(BaseTool):
    def __init__(self, http: ResilientHttpClient, cache_ttl: float = 120.0) -> None:
        self._http = http
        self._cache_ttl = cache_ttl

    @property
    def name(self) -> str:
        return "getCryptoPrice"

    @property
    def description(self) -> str:
        return "Gets current cryptocurrency price (free API)"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "symbol": {
                    "type": "string",
                    "description": "Coin id or symbol, e.g. bitcoin or BTC.",
                },
            },
            "required": ["symbol"],
        }

    @property
    def cache_ttl(self) -> float:
        return self._cache_ttl

    def normalize_args(self, args: dict[str, Any]) -> dict[str, Any]:
        symbol = str(args.get("symbol") or "").strip().lower()
        if not symbol:
            raise ToolError("Missing required argument: symbol")
        return {"symbol": CRYPTO_ALIASES.get(symbol, symbol)}

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        coin: str = kwargs["symbol"]
        data = await _get_json(
            self._http,
            COINGECKO_URL,
            {"ids": coin, "vs_currencies": "usd"},
            "CoinGecko",
        )
        price = data.get(coin, {}).get("usd") if isinstance(data, dict) else None
        if price is None:
            raise ToolError(f"No price found for {coin}")
        return {
            "symbol": coin.upper(),
            "price": price,
            "currency": "USD",
            "timestamp": _now(),
        }
