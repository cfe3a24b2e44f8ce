"""In-memory TTL cache used to memoize tool results.

Per-process only. Entries are evicted lazily when read after expiry and in
bulk by ``clean_expired()``, which the sweeper calls periodically. There is
no size bound.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Callable


@dataclass
class CacheEntry:
    value: Any
    created_at: float
    expires_at: float


def generate_cache_key(prefix: str, *parts: Any) -> str:
    """Deterministic key from a prefix and JSON-serialisable parts."""
    return f"{prefix}:{json.dumps(parts, sort_keys=True, default=str)}"


class TTLCache:
    def __init__(
        self,
        default_ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._default_ttl = default_ttl
        self._clock = clock

    def __len__(self) -> int:
        return len(self._entries)

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        now = self._clock()
        self._entries[key] = CacheEntry(
            value=value,
            created_at=now,
            expires_at=now + (ttl if ttl is not None else self._default_ttl),
        )

    def _live_entry(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() > entry.expires_at:
            del self._entries[key]
            return None
        return entry

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._live_entry(key)
        return default if entry is None else entry.value

    def has(self, key: str) -> bool:
        return self._live_entry(key) is not None

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def clean_expired(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if now > e.expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def stats(self) -> dict[str, Any]:
        now = self._clock()
        return {
            "size": len(self._entries),
            "entries": [
                {
                    "key": key,
                    "age": now - entry.created_at,
                    "expires_in": entry.expires_at - now,
                }
                for key, entry in self._entries.items()
            ],
        }
