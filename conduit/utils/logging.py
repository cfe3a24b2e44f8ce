"""Structured logging setup using structlog."""

from __future__ import annotations

import logging
import re
import sys
from typing import Any, Mapping

import structlog


REDACTED = "***REDACTED***"

# Header and field names whose values are always secrets
_SECRET_FIELDS = frozenset({"authorization", "x-api-key", "x-goog-api-key", "api_key", "apikey"})

_SENSITIVE_PATTERNS = [
    re.compile(
        r"(token|key|api_key|apikey|secret|password|authorization)[\"']?\s*[:=]\s*[\"']?[\w\-\.]+",
        re.IGNORECASE,
    ),
]

# Bare provider keys (sk-..., sk-ant-..., hf_...) can show up inside URLs or error text.
_BARE_KEY_RE = re.compile(r"\b(sk-[A-Za-z0-9\-_]{8,}|hf_[A-Za-z0-9]{8,})")


def _redact(key: str, value: Any) -> Any:
    if key.lower() in _SECRET_FIELDS:
        return REDACTED
    if isinstance(value, Mapping):
        return {k: _redact(str(k), v) for k, v in value.items()}
    if not isinstance(value, str):
        return value
    for pattern in _SENSITIVE_PATTERNS:
        value = pattern.sub(rf"\1={REDACTED}", value)
    return _BARE_KEY_RE.sub(REDACTED, value)


def _filter_sensitive(
    _logger: structlog.types.WrappedLogger,
    _method: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    for key, value in list(event_dict.items()):
        event_dict[key] = _redact(key, value)
    return event_dict


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """Configure structlog with optional JSON output."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    # Warn if DEBUG is enabled; message content will be logged
    if numeric_level <= logging.DEBUG:
        print(
            "WARNING: DEBUG logging is enabled. Conversation content may "
            "appear in logs. Do not use in production.",
            file=sys.stderr,
        )

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        _filter_sensitive,
    ]

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)

    # Quiet noisy libraries
    for name in ("httpx", "httpcore", "aiohttp.access"):
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
