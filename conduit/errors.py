"""Exception hierarchy shared by the provider, tool and HTTP layers."""

from __future__ import annotations


class ConduitError(Exception):
    """Base class for all Conduit errors."""


class ConfigError(ConduitError):
    """A provider or application setting is missing or malformed.

    Raised at construction time, before any network call is made.
    """


class UnknownProviderError(ConfigError):
    def __init__(self, provider: str, known: list[str]) -> None:
        self.provider = provider
        super().__init__(
            f"Unknown provider '{provider}'. Available: {', '.join(known)}"
        )


class ProviderAPIError(ConduitError):
    """Upstream LLM backend answered with a non-2xx status."""

    def __init__(self, provider: str, status: int, message: str) -> None:
        self.provider = provider
        self.status = status
        self.message = message
        super().__init__(message)


class ToolError(ConduitError):
    """A tool could not produce a result (bad input, upstream failure, no data)."""
