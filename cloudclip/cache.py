"""Short-lived result cache for client lookups"""

import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

DEFAULT_TTL_SECONDS = 60

MISSING = object()


class ResultCache:
    """
    key -> (value, expiry) with a fixed TTL.

    Keys are tuples of (operation, id, *args). Any mutation of an id must call
    invalidate(id), which drops every cached answer for that id regardless of
    operation. Answers may be up to ttl_seconds stale otherwise.
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS,
                 clock: Optional[Callable[[], float]] = None):
        self.ttl_seconds = ttl_seconds
        self.clock = clock or time.monotonic
        self._items: Dict[Tuple[Hashable, ...], Tuple[Any, float]] = {}

    def get(self, key: Tuple[Hashable, ...]) -> Any:
        """Return the cached value, or MISSING if absent or stale"""
        item = self._items.get(key)
        if item is None:
            return MISSING
        value, expires = item
        if self.clock() > expires:
            del self._items[key]
            return MISSING
        return value

    def set(self, key: Tuple[Hashable, ...], value: Any) -> None:
        now = self.clock()
        self.prune(now)
        self._items[key] = (value, now + self.ttl_seconds)

    def prune(self, now: Optional[float] = None) -> int:
        """Evict every stale item; returns how many were dropped"""
        now = self.clock() if now is None else now
        stale = [key for key, (_, expires) in self._items.items() if now > expires]
        for key in stale:
            del self._items[key]
        return len(stale)

    def invalidate(self, entry_id: str) -> int:
        """Drop every cached answer that concerns entry_id"""
        stale = [key for key in self._items if len(key) > 1 and key[1] == entry_id]
        for key in stale:
            del self._items[key]
        return len(stale)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)
