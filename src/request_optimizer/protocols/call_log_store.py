"""Call-log storage protocol.

An append-only log of provider call attempts. Entries are never updated;
aggregation always reads the raw log for the requested window.
"""

from typing import Protocol, runtime_checkable

from request_optimizer.entities import ApiCallLogEntity


@runtime_checkable
class CallLogStore(Protocol):
    """Protocol for call-log storage backends."""

    async def append(self, entry: ApiCallLogEntity) -> None:
        """Append one call-log entry.

        Args:
            entry: The entry to append
        """
        ...

    async def fetch_window(self, start: float, end: float) -> list[ApiCallLogEntity]:
        """Return every entry whose ``started_at`` lies in ``[start, end]``.

        Args:
            start: Window start (Unix timestamp)
            end: Window end (Unix timestamp)

        Returns:
            Entries ordered by start time
        """
        ...

    async def delete_before(self, cutoff: float) -> int:
        """Delete every entry that started before ``cutoff``.

        Returns:
            Number of entries deleted
        """
        ...
