"""
Concept Index Cache

Time-bounded in-process cache of the lightweight concept index (id, name,
category, description, difficulty of every active concept). Similarity
scoring needs the whole active population repeatedly during one extraction
run; the cache avoids reloading it for every candidate.

Any concept create or update must call invalidate(). An index load that was
already in flight when invalidate() ran does not repopulate the cache.

The clock is injectable so TTL behaviour can be tested without waiting.

Usage:
    cache = ConceptIndexCache(loader=load_index, ttl_seconds=300)
    index = await cache.get_index()
    cache.invalidate()
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Optional

from conceptlab.models.concepts import ConceptIndexEntry

logger = logging.getLogger(__name__)

IndexLoader = Callable[[], Awaitable[list[ConceptIndexEntry]]]


class ConceptIndexCache:
    """
    Cache of the active concept index with a fixed TTL.

    Args:
        loader: Async callable returning the current index
        ttl_seconds: Seconds a loaded index stays fresh
        clock: Monotonic clock returning seconds
    """

    def __init__(
        self,
        loader: IndexLoader,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._loader = loader
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Optional[list[ConceptIndexEntry]] = None
        self._loaded_at: float = 0.0
        self._generation = 0
        self._lock = asyncio.Lock()

    @property
    def is_fresh(self) -> bool:
        """Whether a cached index exists and is within its TTL."""
        return self._entries is not None and self._clock() - self._loaded_at < self.ttl_seconds

    async def get_index(self, force_refresh: bool = False) -> list[ConceptIndexEntry]:
        """
        Return the concept index, loading it when stale, missing or forced.

        Args:
            force_refresh: Reload even if the cached index is fresh

        Returns:
            A copy of the cached index list
        """
        if not force_refresh and self.is_fresh:
            return list(self._entries)

        async with self._lock:
            # Another caller may have refreshed while we waited
            if not force_refresh and self.is_fresh:
                return list(self._entries)

            generation = self._generation
            entries = await self._loader()

            if generation == self._generation:
                self._entries = list(entries)
                self._loaded_at = self._clock()
                logger.debug(f"Concept index refreshed ({len(entries)} concepts)")
            else:
                logger.debug("Concept index invalidated during load; not caching result")

            return list(entries)

    def invalidate(self) -> None:
        """Drop the cached index so the next read reloads it."""
        self._entries = None
        self._generation += 1
        logger.debug("Concept index cache invalidated")
