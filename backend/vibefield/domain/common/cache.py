"""Time-boxed in-process cache shared by read-through layers."""
from __future__ import annotations

import time
from collections import OrderedDict
from typing import Callable, Generic, Hashable, Optional, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class TimeBoxedCache(Generic[K, V]):
    """Key/value cache where every entry expires after a fixed TTL.

    Bounded by max_entries; the oldest insert is dropped first when full.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._items: "OrderedDict[K, tuple[float, V]]" = OrderedDict()

    def get(self, key: K) -> Optional[V]:
        entry = self._items.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._items[key]
            return None
        return value

    def set(self, key: K, value: V, ttl_seconds: Optional[float] = None) -> None:
        if self.max_entries <= 0:
            return
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        if key in self._items:
            del self._items[key]
        while len(self._items) >= self.max_entries:
            self._items.popitem(last=False)
        self._items[key] = (self._clock() + ttl, value)

    def evict(self, key: K) -> bool:
        return self._items.pop(key, None) is not None

    def evict_where(self, predicate: Callable[[K], bool]) -> int:
        """Evict every key matching predicate. Returns the number evicted."""
        doomed = [k for k in self._items if predicate(k)]
        for k in doomed:
            del self._items[k]
        return len(doomed)

    def purge_expired(self) -> int:
        now = self._clock()
        doomed = [k for k, (expires_at, _) in self._items.items() if now >= expires_at]
        for k in doomed:
            del self._items[k]
        return len(doomed)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)
