"""Provider lookup: name + env config + per-call override → ready adapter."""

from __future__ import annotations

import os
from typing import Any, Mapping

from conduit.config import (
    DEFAULT_BASE_URLS,
    ProviderConfig,
    ProviderName,
    Settings,
    provider_config_from_env,
)
from conduit.core.http import ResilientHttpClient
from conduit.core.llm.anthropic import AnthropicAdapter
from conduit.core.llm.base import ProviderAdapter
from conduit.core.llm.google import GoogleAdapter
from conduit.core.llm.huggingface import HuggingFaceAdapter
from conduit.core.llm.ollama import OllamaAdapter
from conduit.core.llm.openai import (
    GitHubCopilotAdapter,
    OpenAIAdapter,
    OpenRouterAdapter,
    QrokCloudAdapter,
)
from conduit.errors import ConfigError, UnknownProviderError
from conduit.utils.logging import get_logger

log = get_logger(__name__)

_ADAPTERS: dict[ProviderName, type[ProviderAdapter]] = {
    ProviderName.OPENAI: OpenAIAdapter,
    ProviderName.ANTHROPIC: AnthropicAdapter,
    ProviderName.GOOGLE: GoogleAdapter,
    ProviderName.OLLAMA: OllamaAdapter,
    ProviderName.OPENROUTER: OpenRouterAdapter,
    ProviderName.QROKCLOUD: QrokCloudAdapter,
    ProviderName.GITHUB_COPILOT: GitHubCopilotAdapter,
    ProviderName.HUGGINGFACE: HuggingFaceAdapter,
}


def parse_provider(raw: str | ProviderName) -> ProviderName:
    if isinstance(raw, ProviderName):
        return raw
    try:
        return ProviderName(raw.strip().lower())
    except ValueError:
        raise UnknownProviderError(raw, [p.value for p in ProviderName]) from None


class ProviderRegistry:
    def __init__(
        self,
        settings: Settings,
        http: ResilientHttpClient,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._settings = settings
        self._http = http
        self._environ = os.environ if environ is None else environ

    @property
    def default_provider(self) -> ProviderName | None:
        return self._settings.default_provider(self._environ)

    def resolve_config(
        self, provider: ProviderName, override: ProviderConfig | None = None
    ) -> ProviderConfig:
        """Env config for ``provider`` with ``override`` fields layered on top."""
        base = provider_config_from_env(provider, self._environ)
        if base is None:
            base = ProviderConfig(base_url=DEFAULT_BASE_URLS[provider])
        return base.merged(override)

    def get(
        self,
        provider: str | ProviderName | None = None,
        override: ProviderConfig | None = None,
    ) -> ProviderAdapter:
        """Build a validated adapter, or raise before any network call is made."""
        if provider is None or provider == "":
            name = self.default_provider
            if name is None:
                raise ConfigError(
                    "No provider specified and no default provider configured"
                )
        else:
            name = parse_provider(provider)

        config = self.resolve_config(name, override)
        if not config.api_key and name is not ProviderName.OLLAMA:
            raise ConfigError(
                f"{name.value} API key is missing. "
                f"Set {name.env_prefix}_API_KEY or pass apiKey in the request"
            )

        adapter = _ADAPTERS[name](
            config, self._http, request_timeout=self._settings.llm.request_timeout
        )
        if not adapter.validate_config(config):
            raise ConfigError(f"Invalid configuration for provider '{name.value}'")
        return adapter

    def available(self) -> list[ProviderName]:
        """Providers whose environment configuration is present and valid."""
        found: list[ProviderName] = []
        for name, cls in _ADAPTERS.items():
            config = provider_config_from_env(name, self._environ)
            if config is None:
                continue
            adapter = cls(config, self._http)
            if adapter.validate_config(config):
                found.append(name)
            else:
                log.debug("provider_config_invalid", provider=name.value)
        return found

    def describe(self) -> dict[str, dict[str, Any]]:
        """Per-provider metadata keyed by provider id."""
        available = set(self.available())
        return {
            name.value: {
                "name": cls.label,
                "defaultModel": cls.default_model,
                "apiUrl": self.resolve_config(name).base_url,
                "envKey": f"{name.env_prefix}_API_KEY",
                "configured": name in available,
            }
            for name, cls in _ADAPTERS.items()
        }
