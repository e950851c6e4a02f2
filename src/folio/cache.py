"""
Query cache for Folio.

Provides:
- Cached row lists keyed by (entity table, owning identity)
- Invalidation after every mutation
- Generation counters so a read that started before an invalidation
  cannot store its stale result
- Last-known rows for views that must keep showing data after a read error
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, Optional[str]]
Rows = List[Dict[str, Any]]


@dataclass
class CacheEntry:
    """Cached value and bookkeeping for one key."""

    generation: int = 0
    rows: Optional[Rows] = None
    fresh: bool = False
    last_known: Optional[Rows] = field(default=None, repr=False)


class QueryCache:
    """
    In-process cache of entity lists.

    Entries are only ever replaced by confirmed server reads, so the cache
    never shows optimistic state.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[CacheKey, CacheEntry] = {}

    def _entry(self, key: CacheKey) -> CacheEntry:
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = CacheEntry()
        return entry

    def generation(self, key: CacheKey) -> int:
        with self._lock:
            return self._entry(key).generation

    def get(self, key: CacheKey) -> Optional[Rows]:
        """Fresh rows for ``key``, or None when a read is needed."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or not entry.fresh:
                return None
            return list(entry.rows or [])

    def peek(self, key: CacheKey) -> Optional[Rows]:
        """Last rows ever stored for ``key``, fresh or not."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.last_known is None:
                return None
            return list(entry.last_known)

    def store(self, key: CacheKey, rows: Rows, generation: int) -> bool:
        """
        Store the result of a read that started at ``generation``.

        Returns:
            False (and stores nothing) when the key was invalidated while the
            read was in flight.
        """
        with self._lock:
            entry = self._entry(key)
            if entry.generation != generation:
                logger.debug(f"Discarding stale read for {key[0]}")
                return False
            entry.rows = list(rows)
            entry.last_known = list(rows)
            entry.fresh = True
            return True

    def invalidate(self, table: str, owner: Optional[str] = None) -> None:
        """
        Mark cached lists for ``table`` stale.

        With ``owner`` only that owner's list is invalidated; without it
        every owner's list for the table is.
        """
        with self._lock:
            keys = [k for k in self._entries if k[0] == table and (owner is None or k[1] == owner)]
            if owner is not None and (table, owner) not in self._entries:
                keys.append((table, owner))
            for key in keys:
                entry = self._entry(key)
                entry.generation += 1
                entry.fresh = False
        logger.debug(f"Invalidated cache for {table}")

    def fetch(self, key: CacheKey, loader: Callable[[], Rows]) -> Rows:
        """
        Return cached rows, reading through ``loader`` on a miss.

        Exceptions from ``loader`` propagate; the cache is left untouched.
        """
        cached = self.get(key)
        if cached is not None:
            return cached
        generation = self.generation(key)
        rows = loader()
        self.store(key, rows, generation)
        return rows

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
