"""Conduit entry point: wires resources into the gateway and runs it."""

from __future__ import annotations

import asyncio
import json
import signal
import sys

import click

from conduit import __version__
from conduit.config import Settings, load_settings
from conduit.core.chat import ChatService
from conduit.core.resources import Resources
from conduit.errors import ConduitError
from conduit.server import GatewayServer
from conduit.utils.logging import get_logger, setup_logging

log = get_logger(__name__)


class Conduit:
    """Main application: owns the shared resources and the HTTP server."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.resources = Resources.create(settings)
        self.chat = ChatService(self.resources)
        self.server = GatewayServer(self.resources, self.chat)

    async def start(self) -> None:
        log.info("conduit_starting", version=__version__)
        await self.resources.start()
        await self.server.start()
        default = self.chat.providers.default_provider
        log.info(
            "conduit_ready",
            providers=[p.value for p in self.chat.providers.available()],
            default=default.value if default else None,
        )

    async def stop(self) -> None:
        log.info("conduit_stopping")
        await self.server.stop()
        await self.resources.aclose()
        log.info("conduit_stopped")


async def run(settings: Settings) -> None:
    app = Conduit(settings)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        log.info("shutdown_signal")
        stop_event.set()

    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _signal_handler)

    await app.start()

    try:
        if sys.platform == "win32":
            while not stop_event.is_set():
                await asyncio.sleep(1)
        else:
            await stop_event.wait()
    except KeyboardInterrupt:
        pass
    finally:
        await app.stop()


def _load(config_path: str | None, log_level: str | None) -> Settings:
    settings = load_settings(config_path)
    if log_level:
        settings.log_level = log_level
    setup_logging(level=settings.log_level, json_output=settings.log_json)
    return settings


@click.group()
@click.version_option(__version__, prog_name="conduit")
def cli() -> None:
    """Conduit, a streaming gateway for LLM providers."""


@cli.command()
@click.option("--config", "config_path", default=None, help="Path to config YAML file")
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
@click.option("--host", default=None, help="Bind address (overrides config)")
@click.option("--port", type=int, default=None, help="Port (overrides config)")
def serve(
    config_path: str | None, log_level: str | None, host: str | None, port: int | None
) -> None:
    """Start the HTTP gateway."""
    settings = _load(config_path, log_level)
    if host:
        settings.server.bind = host
    if port:
        settings.server.port = port
    asyncio.run(run(settings))


@cli.command()
@click.option("--config", "config_path", default=None, help="Path to config YAML file")
def providers(config_path: str | None) -> None:
    """List providers and whether they are configured."""
    settings = _load(config_path, "WARNING")

    async def _describe() -> tuple[dict, str | None]:
        resources = Resources.create(settings)
        try:
            registry = ChatService(resources).providers
            default = registry.default_provider
            return registry.describe(), default.value if default else None
        finally:
            await resources.aclose()

    described, default = asyncio.run(_describe())
    for name, meta in described.items():
        marker = "*" if name == default else " "
        status = "configured" if meta["configured"] else "-"
        click.echo(f"{marker} {name:<15} {status:<11} {meta['defaultModel']}")


@cli.command()
@click.argument("name")
@click.option("--arg", "args", multiple=True, help="Tool argument as key=value (repeatable)")
@click.option("--config", "config_path", default=None, help="Path to config YAML file")
def tool(name: str, args: tuple[str, ...], config_path: str | None) -> None:
    """Run one tool and print its result as JSON."""
    settings = _load(config_path, "WARNING")
    parsed: dict[str, str] = {}
    for item in args:
        key, sep, value = item.partition("=")
        if not sep:
            raise click.BadParameter(f"expected key=value, got {item!r}", param_hint="--arg")
        parsed[key] = value

    async def _run() -> dict:
        resources = Resources.create(settings)
        try:
            result = await resources.orchestrator.execute(name, parsed)
            return result.to_dict()
        finally:
            await resources.aclose()

    try:
        output = asyncio.run(_run())
    except ConduitError as e:
        raise click.ClickException(str(e)) from e
    click.echo(json.dumps(output, indent=2, ensure_ascii=False))
    if not output["success"]:
        sys.exit(1)


if __name__ == "__main__":
    cli()
