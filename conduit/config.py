"""Configuration management with Pydantic Settings + optional YAML.

Two layers live here:

* ``Settings`` - application settings (server, HTTP policy, cache, rate
  limits, tool keys), read from ``CONDUIT_*`` env vars over an optional YAML
  file.
* ``ProviderConfig`` - per-backend credentials and defaults, read from the
  conventional ``<PROVIDER>_API_KEY`` style variables and merged with any
  per-call override sent by a client.
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from conduit.errors import ConfigError
from conduit.utils.platform import get_config_dir


class ProviderName(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    OLLAMA = "ollama"
    OPENROUTER = "openrouter"
    QROKCLOUD = "qrokcloud"
    GITHUB_COPILOT = "github-copilot"
    HUGGINGFACE = "huggingface"

    @property
    def env_prefix(self) -> str:
        return self.value.upper().replace("-", "_")


DEFAULT_BASE_URLS: dict[ProviderName, str] = {
    ProviderName.OPENAI: "https://api.openai.com/v1",
    ProviderName.ANTHROPIC: "https://api.anthropic.com/v1",
    ProviderName.GOOGLE: "https://generativelanguage.googleapis.com/v1beta",
    ProviderName.OLLAMA: "http://localhost:11434",
    ProviderName.OPENROUTER: "https://openrouter.ai/api/v1",
    ProviderName.QROKCLOUD: "https://api.qrokcloud.com",
    ProviderName.GITHUB_COPILOT: "https://api.githubcopilot.com/v1",
    ProviderName.HUGGINGFACE: "https://router.huggingface.co/hf-inference",
}

OLLAMA_LOCAL_URL = "http://localhost:11434"
OLLAMA_CLOUD_URL = "https://ollama.com/api"


# ---------------------------------------------------------------------------
# Application settings
# ---------------------------------------------------------------------------

class ServerConfig(BaseModel):
    bind: str = "0.0.0.0"
    port: int = 8080


class HttpConfig(BaseModel):
    timeout: float = 10.0
    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0


class LLMConfig(BaseModel):
    default_provider: str = ""
    request_timeout: float = 120.0
    # Attach the tool registry as function declarations on streamed calls
    declare_tools: bool = False


class CacheConfig(BaseModel):
    default_ttl: float = 300.0
    sweep_interval: float = 300.0


class RateLimitConfig(BaseModel):
    max_requests: int = 60
    window_seconds: float = 60.0


class ToolsConfig(BaseModel):
    alpha_vantage_api_key: str = "demo"
    search_max_results: int = 5
    calculator_ttl: float = 3600.0
    search_ttl: float = 600.0
    search_fallback_ttl: float = 60.0
    stock_ttl: float = 300.0
    crypto_ttl: float = 120.0


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CONDUIT_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    server: ServerConfig = Field(default_factory=ServerConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    log_level: str = "INFO"
    log_json: bool = False

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Env vars take precedence over values passed in from YAML
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    def default_provider(self, environ: Mapping[str, str] | None = None) -> ProviderName | None:
        """Configured default provider, falling back to ``LLM_PROVIDER``."""
        env = os.environ if environ is None else environ
        raw = self.llm.default_provider or env.get("LLM_PROVIDER", "")
        try:
            return ProviderName(raw.strip().lower())
        except ValueError:
            return None


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings from env vars, optionally overlaying a YAML config."""
    yaml_data: dict[str, Any] = {}

    # Determine config file path
    if config_path is None:
        config_path = os.environ.get("CONDUIT_CONFIG")
    if config_path is None:
        default = get_config_dir() / "config.yaml"
        if default.exists():
            config_path = default

    # Load YAML if found
    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                yaml_data = yaml.safe_load(f) or {}

    # Build settings: YAML values as defaults, env vars override
    return Settings(**yaml_data)


# ---------------------------------------------------------------------------
# Provider configuration
# ---------------------------------------------------------------------------

class ProviderConfig(BaseModel):
    api_key: str = ""
    base_url: str | None = None
    model: str | None = None
    default_temperature: float | None = None
    default_max_tokens: int | None = None

    def merged(self, override: ProviderConfig | None) -> ProviderConfig:
        """Return a copy where every field set on ``override`` wins.

        Unset (None or empty-string) override fields fall through to this
        config's value instead of blanking it.
        """
        if override is None:
            return self.model_copy()
        updates = {
            name: value
            for name, value in override.model_dump().items()
            if value is not None and value != ""
        }
        return self.model_copy(update=updates)


def _parse_number(raw: str | None, cast: type, var: str) -> Any:
    if raw is None or raw.strip() == "":
        return None
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigError(f"{var} must be a number, got {raw!r}") from e


def provider_config_from_env(
    provider: ProviderName, environ: Mapping[str, str] | None = None
) -> ProviderConfig | None:
    """Read a provider's defaults from environment variables.

    Returns None when the provider has no API key configured, except for
    Ollama, which runs locally without one.
    """
    env = os.environ if environ is None else environ
    prefix = provider.env_prefix

    api_key = env.get(f"{prefix}_API_KEY", "")
    if provider is ProviderName.HUGGINGFACE and not api_key:
        api_key = env.get("HF_API_KEY", "") or env.get("HF_API", "")

    base_url = env.get(f"{prefix}_BASE_URL", "")
    if provider is ProviderName.OLLAMA and not base_url:
        # A key means the hosted service; no key means a local daemon
        base_url = OLLAMA_CLOUD_URL if api_key else OLLAMA_LOCAL_URL

    if not api_key and provider is not ProviderName.OLLAMA:
        return None

    return ProviderConfig(
        api_key=api_key,
        base_url=base_url or DEFAULT_BASE_URLS[provider],
        model=env.get(f"{prefix}_MODEL") or None,
        default_temperature=_parse_number(
            env.get(f"{prefix}_TEMPERATURE"), float, f"{prefix}_TEMPERATURE"
        ),
        default_max_tokens=_parse_number(
            env.get(f"{prefix}_MAX_TOKENS"), int, f"{prefix}_MAX_TOKENS"
        ),
    )
