"""
Process-wide TTL cache for idempotent YNAB reads.

Keys are built by the caller from the operation name and its parameters,
e.g. ``budget_summary:<budget_id>:2024-01-01``. Expired entries are dropped
lazily when read; nothing sweeps the cache in the background.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_TTL_MINUTES = 5


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class TTLCache:
    """In-memory key/value store with per-entry expiry.

    Not thread-safe; it is only touched from the MCP server's request handling.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def set(
        self, key: str, value: Any, ttl_minutes: float = DEFAULT_TTL_MINUTES
    ) -> None:
        """Store value under key, replacing any existing entry."""
        self._entries[key] = CacheEntry(
            value=value, expires_at=self._clock() + ttl_minutes * 60
        )

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None if it is missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None

        if self._clock() > entry.expires_at:
            del self._entries[key]
            return None

        return entry.value

    def invalidate(self, prefix: str) -> int:
        """Drop every entry whose key starts with prefix."""
        stale = [key for key in self._entries if key.startswith(prefix)]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.info(f"Invalidated {len(stale)} cached entries for {prefix}")
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


cache = TTLCache()
