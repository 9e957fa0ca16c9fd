"""In-process query deduplication pool.

Remembers recent search results per normalized query so repeated queries in
the same process skip both the provider and the shared cache. The pool is
local to one process; it is not coordinated across instances.
"""

import re
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

from request_optimizer.config import Settings, get_settings
from request_optimizer.entities import QueryPoolEntry
from request_optimizer.entities.query_pool import Priority

QUERY_TYPE_TTLS: dict[str, int] = {
    "news": 7 * 24 * 3600,
    "personalized": 24 * 3600,
    "context": 30 * 24 * 3600,
    "live": 3600,
}
DEFAULT_QUERY_TTL = 3600

QUERY_TYPE_PRIORITY: dict[str, Priority] = {
    "personalized": "high",
    "live": "high",
    "context": "medium",
    "news": "low",
}

_WHITESPACE = re.compile(r"\s+")
_NON_WORD = re.compile(r"[^\w\s]")


def normalize_query(query: str) -> str:
    """Lower-case, trim, collapse whitespace and strip punctuation."""
    query = _WHITESPACE.sub(" ", query.lower().strip())
    return _NON_WORD.sub("", query)


def pool_key(query: str, query_type: str) -> str:
    return f"{normalize_query(query)}:{query_type}"


def ttl_for(query_type: str) -> int:
    """Freshness window in seconds for a query type."""
    return QUERY_TYPE_TTLS.get(query_type, DEFAULT_QUERY_TTL)


def priority_for(query_type: str) -> Priority:
    return QUERY_TYPE_PRIORITY.get(query_type, "medium")


class QueryDeduplicationPool:
    """Bounded map of recent results keyed by ``normalized query:query type``.

    Entries stay valid for their query type's TTL. When the pool grows past
    its capacity the oldest insertions are evicted first; priority is kept on
    each entry for callers but does not affect eviction.

    Example:
        ```python
        pool = QueryDeduplicationPool(capacity=1000)
        key = pool.make_key("  Ceasefire TALKS!", "news")   # "ceasefire talks:news"
        if (entry := pool.lookup(key)) is None:
            pool.insert(key, await search(...))
        ```
    """

    def __init__(
        self,
        capacity: int | None = None,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the pool.

        Args:
            capacity: Maximum number of entries. Defaults to settings.query_pool_capacity.
            settings: Application settings. Defaults to ``get_settings()``.
            clock: Returns the current Unix time.
        """
        if capacity is None:
            capacity = (settings or get_settings()).query_pool_capacity
        if capacity <= 0:
            raise ValueError("Query pool capacity must be positive")
        self._capacity = capacity
        self._clock = clock
        self._entries: OrderedDict[str, QueryPoolEntry] = OrderedDict()

    @staticmethod
    def make_key(query: str, query_type: str) -> str:
        return pool_key(query, query_type)

    def lookup(self, key: str) -> QueryPoolEntry | None:
        """Return the entry for ``key`` while it is still fresh.

        The query type is read from the key's last ``:`` segment; stale
        entries are dropped.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None

        query_type = key.rsplit(":", 1)[-1]
        if self._clock() - entry.timestamp < ttl_for(query_type):
            return entry

        del self._entries[key]
        return None

    def insert(self, key: str, result: Any, priority: Priority | None = None) -> QueryPoolEntry:
        """Store a result, replacing any entry under the same key.

        Args:
            key: Pool key (see ``make_key``)
            result: Result to remember
            priority: Informational priority. Defaults to the query type's.

        Returns:
            The stored entry
        """
        entry = QueryPoolEntry(
            key=key,
            result=result,
            timestamp=self._clock(),
            priority=priority or priority_for(key.rsplit(":", 1)[-1]),
        )
        self._entries.pop(key, None)
        self._entries[key] = entry

        while len(self._entries) > self._capacity:
            self._entries.popitem(last=False)
        return entry

    def clear(self) -> None:
        self._entries.clear()

    def get_stats(self) -> dict[str, Any]:
        """Get pool size and the oldest and newest insertion timestamps."""
        timestamps = [entry.timestamp for entry in self._entries.values()]
        return {
            "size": len(timestamps),
            "capacity": self._capacity,
            "oldest_entry": min(timestamps) if timestamps else None,
            "newest_entry": max(timestamps) if timestamps else None,
        }

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
