"""Read-through cache with bounded TTL for configuration lookups."""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Hashable
from typing import Any


class ReadThroughCache:
    """Caches loader results per key for ``ttl_seconds``.

    Entries are evicted oldest-first once ``max_entries`` is reached.
    ``None`` results are only kept when ``cache_none`` is set; otherwise
    a miss is looked up again on the next call.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
        cache_none: bool = True,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._cache_none = cache_none
        self._entries: OrderedDict[Hashable, tuple[float, Any]] = (
            OrderedDict()
        )
        self.hits = 0
        self.misses = 0

    async def get_or_load(
        self,
        key: Hashable,
        loader: Callable[[], Awaitable[Any]],
    ) -> Any:
        now = self._clock()
        entry = self._entries.get(key)
        if entry is not None and entry[0] > now:
            self.hits += 1
            return entry[1]

        self.misses += 1
        value = await loader()
        if value is None and not self._cache_none:
            return None
        self._entries[key] = (now + self._ttl, value)
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)
        return value

    def invalidate(self, key: Hashable | None = None) -> None:
        """Drop one key, or everything when ``key`` is None."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)
