"""Time-bounded in-process cache for slowly-changing reference data.

Entries expire lazily: an expired entry is dropped the next time it is
read, there is no background sweep.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """A cached value and the monotonic instant it stops being valid."""

    key: str
    value: Any
    expires_at: float


class TTLCache:
    """Expiring key/value store.

    Safe to share between asyncio tasks and threads: every read and write
    happens under one lock. Races on the same key are last-write-wins.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        """Initialize an empty cache.

        Args:
            clock: Returns the current time in seconds. Defaults to
                `time.monotonic`; tests pass a controllable clock.
        """
        self._clock = clock or time.monotonic
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        """Store `value` under `key` for `ttl_seconds`, replacing any entry."""
        with self._lock:
            self._entries[key] = CacheEntry(
                key=key,
                value=value,
                expires_at=self._clock() + ttl_seconds,
            )

    def get(self, key: str, default: Any = None) -> Any:
        """Return the live value for `key`, or `default` if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            if self._clock() >= entry.expires_at:
                del self._entries[key]
                logger.debug(f"Cache entry expired: {key}")
                return default
            return entry.value

    def delete(self, key: str) -> None:
        """Drop `key` if present."""
        with self._lock:
            self._entries.pop(key, None)

    def delete_prefix(self, prefix: str) -> None:
        """Drop every key starting with `prefix`."""
        with self._lock:
            for key in [k for k in self._entries if k.startswith(prefix)]:
                del self._entries[key]

    def clear(self) -> None:
        """Drop all entries."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
