"""Small in-process cache with per-entry expiry."""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Hashable, Tuple

_MISSING = object()


class TTLCache:
    """Map keys to values for a limited number of seconds.

    Expired entries are dropped when read and whenever a value is stored.
    At most ``max_entries`` values are kept; storing one more evicts the
    oldest. ``clock`` defaults to :func:`time.monotonic`.
    """

    def __init__(
        self,
        default_ttl: int = 600,
        clock: Callable[[], float] | None = None,
        max_entries: int = 256,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be a positive integer.")
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self._clock = clock or time.monotonic
        self._store: Dict[Hashable, Tuple[float, Any]] = {}

    def get(self, key: Hashable, default: Any = None) -> Any:
        item = self._store.get(key, _MISSING)
        if item is _MISSING:
            return default
        expires_at, value = item
        if self._clock() >= expires_at:
            self._store.pop(key, None)
            return default
        return value

    def set(self, key: Hashable, value: Any, ttl: int | None = None) -> None:
        lifetime = self.default_ttl if ttl is None else ttl
        now = self._clock()
        self._purge_expired(now)

        # Insertion order is age order, so a re-set key becomes the newest.
        self._store.pop(key, None)
        while len(self._store) >= self.max_entries:
            del self._store[next(iter(self._store))]
        self._store[key] = (now + lifetime, value)

    def _purge_expired(self, now: float) -> None:
        expired = [key for key, (expires_at, _) in self._store.items() if now >= expires_at]
        for key in expired:
            del self._store[key]

    def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)


__all__ = ["TTLCache"]
