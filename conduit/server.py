"""Gateway HTTP server using aiohttp."""

from __future__ import annotations

import asyncio
import json
from contextlib import aclosing
from typing import Any

import httpx
from aiohttp import web
from pydantic import ValidationError

from conduit.core.chat import ChatRequestBody, ChatService
from conduit.core.http import is_transient
from conduit.core.rate_limiter import rate_limit_identifier
from conduit.core.resources import Resources
from conduit.core.stream import DONE_FRAME, encode_sse
from conduit.errors import ConfigError, ProviderAPIError, ToolError
from conduit.utils.logging import get_logger

log = get_logger(__name__)

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def error_response(exc: BaseException) -> web.Response:
    """Map an exception onto a JSON error response."""
    if isinstance(exc, ValidationError):
        return _error(400, "Invalid request", details=json.loads(exc.json()))
    if isinstance(exc, (ConfigError, ToolError)):
        return _error(400, str(exc))
    if isinstance(exc, ProviderAPIError):
        return _error(502, exc.message, provider=exc.provider, upstream_status=exc.status)
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        return _error(504, "Upstream request timed out")
    if is_transient(exc):
        return _error(503, "Upstream service unavailable")
    log.exception("unhandled_error", error_type=type(exc).__name__)
    return _error(500, "Internal server error")


def _error(status: int, message: str, **extra: Any) -> web.Response:
    return web.json_response({"error": message, **extra}, status=status)


async def _read_json(request: web.Request) -> Any:
    try:
        return await request.json()
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON body: {e.msg}") from e


class GatewayServer:
    """Serves the chat, tool and provider endpoints."""

    def __init__(self, resources: Resources, chat: ChatService | None = None) -> None:
        self._resources = resources
        self._chat = chat or ChatService(resources)
        self._runner: web.AppRunner | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        config = self._resources.settings.server
        app = self.build_app()
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, config.bind, config.port)
        await site.start()
        log.info("gateway_server_started", bind=config.bind, port=config.port)

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        log.info("gateway_server_stopped")

    # ------------------------------------------------------------------
    # App construction
    # ------------------------------------------------------------------

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/api/chat", self._handle_chat)
        app.router.add_post("/api/tools", self._handle_tool)
        app.router.add_get("/api/tools", self._handle_list_tools)
        app.router.add_get("/api/llm/providers", self._handle_providers)
        app.router.add_get("/api/llm/providers/{provider}/models", self._handle_models)
        app.router.add_get("/health", self._handle_health)
        return app

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def _handle_chat(self, request: web.Request) -> web.StreamResponse:
        try:
            body = ChatRequestBody.model_validate(await _read_json(request))
            if not body.stream:
                return await self._complete(body)
            chunks, model = await self._chat.open_stream(body)
        except Exception as e:
            return error_response(e)
        return await self._stream(request, chunks, model)

    async def _complete(self, body: ChatRequestBody) -> web.Response:
        response = await self._chat.complete(body)
        return web.json_response({
            "choices": [{"message": {"role": "assistant", "content": response.content}}],
            "model": response.model,
            "usage": response.usage.model_dump() if response.usage else None,
        })

    async def _stream(self, request: web.Request, chunks: Any, model: str) -> web.StreamResponse:
        resp = web.StreamResponse(status=200, headers=SSE_HEADERS)
        sent = 0
        async with aclosing(chunks):
            await resp.prepare(request)
            try:
                async for chunk in chunks:
                    if chunk.done:
                        break
                    if chunk.content:
                        await resp.write(encode_sse(chunk, model))
                        sent += 1
            except ConnectionResetError:
                log.info("chat_client_disconnected", chunks=sent)
                return resp
            except Exception as e:
                # Headers already sent: end with the sentinel, no error body
                log.exception("chat_stream_failed", error_type=type(e).__name__, chunks=sent)
            await resp.write(DONE_FRAME)
        await resp.write_eof()
        log.info("chat_stream_done", chunks=sent)
        return resp

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    async def _handle_tool(self, request: web.Request) -> web.Response:
        identifier = rate_limit_identifier(request.headers, request.remote)
        decision = self._resources.limiter.is_allowed(identifier)
        headers = decision.headers()
        if not decision.allowed:
            return web.json_response(
                {
                    "error": "Rate limit exceeded",
                    "retryAfter": decision.retry_after(),
                },
                status=429,
                headers=headers,
            )

        try:
            data = await _read_json(request)
            if not isinstance(data, dict) or not data.get("toolName"):
                raise ToolError("toolName is required")
            args = data.get("args") or {}
            if not isinstance(args, dict):
                raise ToolError("args must be an object")
            result = await self._resources.orchestrator.execute(data["toolName"], args)
        except Exception as e:
            resp = error_response(e)
            resp.headers.update(headers)
            return resp

        return web.json_response(
            result.to_dict(), status=200 if result.success else 502, headers=headers
        )

    async def _handle_list_tools(self, request: web.Request) -> web.Response:
        return web.json_response({"tools": self._resources.tools.list()})

    # ------------------------------------------------------------------
    # Providers / health
    # ------------------------------------------------------------------

    async def _handle_providers(self, request: web.Request) -> web.Response:
        registry = self._chat.providers
        default = registry.default_provider
        return web.json_response({
            "available": [p.value for p in registry.available()],
            "default": default.value if default else None,
            "providers": registry.describe(),
        })

    async def _handle_models(self, request: web.Request) -> web.Response:
        try:
            adapter = self._chat.providers.get(request.match_info["provider"])
            models = await adapter.list_models()
        except Exception as e:
            return error_response(e)
        log.debug("provider_models_listed", provider=adapter.name.value, count=len(models))
        return web.json_response({"provider": adapter.name.value, "models": models})

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({
            "status": "ok",
            "cache": len(self._resources.cache),
            "tools": self._resources.tools.names(),
        })
