"""Redis implementation of CallLogStore.

Call-log entries are JSON members of one sorted set scored by start time,
which makes window reads and retention cleanup single range commands.
"""

import dataclasses
import json
import uuid

import redis.asyncio as redis

from request_optimizer.config import Settings, get_redis_client, get_settings
from request_optimizer.entities import ApiCallLogEntity

from .redis_repository import storage_errors

_FIELDS = {f.name for f in dataclasses.fields(ApiCallLogEntity)}


class RedisCallLogRepository:
    """Append-only call log on a Redis sorted set.

    This class satisfies the CallLogStore protocol through structural
    typing - no explicit inheritance needed.
    """

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        log_key: str | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the call-log repository.

        Args:
            redis_client: Redis client instance. If None, creates default.
            log_key: Sorted-set key holding the log. Defaults to settings.
            settings: Application settings. Defaults to ``get_settings()``.
        """
        settings = settings or get_settings()
        self._client = redis_client or get_redis_client(settings)
        self._key = log_key or settings.call_log_key

    @classmethod
    def create(cls, settings: Settings | None = None) -> "RedisCallLogRepository":
        """Factory method to create RedisCallLogRepository with defaults."""
        return cls(settings=settings)

    async def append(self, entry: ApiCallLogEntity) -> None:
        """Append one entry, scored by its start time."""
        record = dataclasses.asdict(entry)
        # Identical calls in the same instant must stay distinct members
        record["id"] = uuid.uuid4().hex
        with storage_errors("append"):
            await self._client.zadd(
                self._key, {json.dumps(record, default=str): entry.started_at}
            )

    async def fetch_window(self, start: float, end: float) -> list[ApiCallLogEntity]:
        """Return entries that started within ``[start, end]``."""
        with storage_errors("fetch_window"):
            members = await self._client.zrangebyscore(self._key, start, end)
            entries = []
            for member in members:
                record = json.loads(member)
                entries.append(
                    ApiCallLogEntity(**{k: v for k, v in record.items() if k in _FIELDS})
                )
        return entries

    async def delete_before(self, cutoff: float) -> int:
        """Delete entries that started before ``cutoff``."""
        with storage_errors("delete_before"):
            removed: int = await self._client.zremrangebyscore(self._key, "-inf", f"({cutoff}")
        return removed
