"""Query pool entry entity."""

from dataclasses import dataclass
from typing import Any, Literal

Priority = Literal["high", "medium", "low"]


@dataclass(frozen=True)
class QueryPoolEntry:
    """A pooled result for one normalized query.

    Attributes:
        key: ``normalized_query:query_type``
        result: The pooled result
        timestamp: Insertion time (Unix timestamp)
        priority: Informational priority derived from the query type
    """

    key: str
    result: Any
    timestamp: float
    priority: Priority = "medium"
