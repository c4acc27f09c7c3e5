"""Thread-safe in-memory LRU cache with per-entry expiry.

Used by the Focusmate REST client to remember partner profiles (user id →
display name) so that listing a week of sessions does not issue one
``/users/{id}`` request per session on every call.

Design decisions
────────────────
• **OrderedDict** for O(1) LRU eviction and promotion.
• **Entry-count ceiling** rather than byte size: profile entries are tiny and
  roughly uniform.
• **TTL** so renamed partners eventually show their new name.
• **threading.Lock** for thread safety (list queries may run concurrently).
• Purely ephemeral: data is lost on process restart.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 512
DEFAULT_TTL_SECONDS = 6 * 60 * 60


class TTLCache:
    """Least-Recently-Used cache bounded by entry count, with expiry."""

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_entries = max_entries
        self._ttl = ttl_seconds
        self._clock = clock
        # key → (value, expires_at)
        self._store: OrderedDict[str, tuple[Any, float]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        """Return the cached value (promoting it to MRU) or ``None``."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= self._clock():
                del self._store[key]
                logger.debug("Cache: expired %s", key)
                return None
            self._store.move_to_end(key)
            return value

    def put(self, key: str, value: Any) -> None:
        """Insert or overwrite *key*.  Evicts LRU entries if needed."""
        with self._lock:
            self._store.pop(key, None)
            while len(self._store) >= self._max_entries and self._store:
                evicted_key, _ = self._store.popitem(last=False)
                logger.debug("Cache: evicted %s", evicted_key)
            self._store[key] = (value, self._clock() + self._ttl)

    def invalidate(self, key: str) -> bool:
        """Remove a single key.  Returns ``True`` if the key existed."""
        with self._lock:
            return self._store.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    @property
    def entry_count(self) -> int:
        return len(self._store)
