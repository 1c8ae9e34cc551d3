"""
Search cache - invalidate-all-on-write memo for multi-source searches

Entries have no TTL. Every mutating entry point calls invalidate_all(); a
search computed concurrently with an invalidation is not stored, since it
may reflect the state before the write.
"""

import logging
import threading
from collections import OrderedDict
from typing import Hashable, Optional

from vector_store.models import SearchResult

logger = logging.getLogger(__name__)


def _copy_results(results: list[SearchResult]) -> list[SearchResult]:
    return [r.model_copy(deep=True) for r in results]


class SearchCache:
    """
    Thread-safe LRU cache of result lists.

    Callers always receive copies, so mutating a returned list (or its
    results) never changes a cached entry.
    """

    def __init__(self, enabled: bool = True, max_entries: int = 1024):
        self.enabled = enabled
        self.max_entries = max_entries
        self._entries: OrderedDict[Hashable, list[SearchResult]] = OrderedDict()
        self._lock = threading.Lock()
        self._generation = 0
        self.hits = 0
        self.misses = 0

    @property
    def generation(self) -> int:
        """Incremented by every invalidation."""
        return self._generation

    def get(self, key: Hashable) -> Optional[list[SearchResult]]:
        if not self.enabled:
            return None
        with self._lock:
            cached = self._entries.get(key)
            if cached is None:
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return _copy_results(cached)

    def put(self, key: Hashable, results: list[SearchResult], generation: Optional[int] = None) -> bool:
        """
        Store results computed at `generation`.

        Returns:
            False if the cache was invalidated since, and nothing was stored.
        """
        if not self.enabled:
            return False
        with self._lock:
            if generation is not None and generation != self._generation:
                return False
            self._entries[key] = _copy_results(results)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
            return True

    def invalidate_all(self) -> None:
        with self._lock:
            dropped = len(self._entries)
            self._entries.clear()
            self._generation += 1
        if dropped:
            logger.debug("Search cache invalidated (%d entries dropped)", dropped)

    def __len__(self) -> int:
        return len(self._entries)
