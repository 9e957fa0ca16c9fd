"""Redis implementation of CacheStore.

Every cache entry is one Redis hash stored under ``{prefix}:{cache_key}``; its
access record is a second hash under ``{prefix}_access:{cache_key}``.
It's the default implementation and satisfies the CacheStore protocol.
"""

import json
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from request_optimizer.config import Settings, get_redis_client, get_settings
from request_optimizer.entities import AccessRecord, CacheEntryEntity
from request_optimizer.errors import StorageError

# Access records expire after this long without an access
ACCESS_HISTORY_TTL = 30 * 24 * 3600


@contextmanager
def storage_errors(action: str) -> Iterator[None]:
    """Convert Redis and decoding failures into ``StorageError``."""
    try:
        yield
    except RedisError as e:
        raise StorageError(f"Redis {action} failed: {e}") from e
    except (KeyError, ValueError, TypeError) as e:
        raise StorageError(f"Corrupt record during {action}: {e}") from e


def _optional_float(value: str | None) -> float | None:
    return float(value) if value else None


class RedisCacheRepository:
    """Redis implementation using one hash per cache key.

    This class satisfies the CacheStore protocol through structural
    typing - no explicit inheritance needed.

    Expiry is stored on the hash and also applied as a native Redis TTL, so
    abandoned entries disappear even if nobody reads them again.
    """

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        key_prefix: str | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the Redis cache repository.

        Args:
            redis_client: Redis client instance. If None, creates default.
            key_prefix: Prefix for entry keys. Defaults to settings.
            settings: Application settings. Defaults to ``get_settings()``.
        """
        settings = settings or get_settings()
        self._client = redis_client or get_redis_client(settings)
        self._prefix = key_prefix or settings.cache_key_prefix

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        key_prefix: str | None = None,
    ) -> "RedisCacheRepository":
        """Factory method to create RedisCacheRepository with defaults.

        Args:
            settings: Application settings. If None, uses ``get_settings()``.
            key_prefix: Entry key prefix. If None, uses settings.

        Returns:
            Configured RedisCacheRepository
        """
        return cls(key_prefix=key_prefix, settings=settings)

    def _redis_key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    def _access_key(self, key: str) -> str:
        # Outside the entry scan pattern
        return f"{self._prefix}_access:{key}"

    def _scan_pattern(self) -> str:
        return f"{self._prefix}:*"

    @staticmethod
    def _to_mapping(entry: CacheEntryEntity) -> dict[str, str]:
        """Serialize an entry; hit_count and last_hit_at are left untouched."""
        return {
            "key": entry.key,
            "provider_type": entry.provider_type,
            "endpoint": entry.endpoint,
            "request_hash": entry.request_hash,
            "response_data": json.dumps(entry.response_data, default=str),
            "response_metadata": json.dumps(entry.response_metadata, default=str),
            "ttl_seconds": "" if entry.ttl_seconds is None else str(entry.ttl_seconds),
            "expires_at": "" if entry.expires_at is None else repr(entry.expires_at),
            "cache_version": str(entry.cache_version),
            "created_at": repr(entry.created_at),
        }

    @staticmethod
    def _from_mapping(data: dict[str, Any]) -> CacheEntryEntity:
        ttl = data.get("ttl_seconds")
        return CacheEntryEntity(
            key=data["key"],
            provider_type=data["provider_type"],
            endpoint=data["endpoint"],
            request_hash=data.get("request_hash", ""),
            response_data=json.loads(data["response_data"]),
            response_metadata=json.loads(data.get("response_metadata") or "null"),
            ttl_seconds=int(ttl) if ttl else None,
            expires_at=_optional_float(data.get("expires_at")),
            cache_version=int(data.get("cache_version") or 1),
            hit_count=int(data.get("hit_count") or 0),
            created_at=float(data.get("created_at") or 0.0),
            last_hit_at=_optional_float(data.get("last_hit_at")),
        )

    async def fetch(self, key: str) -> CacheEntryEntity | None:
        """Fetch an entry by key, ignoring expiry.

        Args:
            key: The cache key

        Returns:
            The stored entry, or None if there is none
        """
        with storage_errors("fetch"):
            data = await self._client.hgetall(self._redis_key(key))
            if not data:
                return None
            return self._from_mapping(data)

    async def upsert(self, entry: CacheEntryEntity) -> None:
        """Insert or replace an entry, preserving its hit counter.

        Args:
            entry: The entry to store
        """
        redis_key = self._redis_key(entry.key)
        with storage_errors("upsert"):
            pipe = self._client.pipeline(transaction=True)
            pipe.hset(redis_key, mapping=self._to_mapping(entry))
            pipe.hsetnx(redis_key, "hit_count", 0)
            if entry.ttl_seconds:
                pipe.expire(redis_key, entry.ttl_seconds)
            else:
                pipe.persist(redis_key)
            await pipe.execute()

    async def delete(self, key: str) -> bool:
        """Delete a specific entry by key.

        Args:
            key: The cache key

        Returns:
            True if deleted, False otherwise
        """
        with storage_errors("delete"):
            result: int = await self._client.delete(self._redis_key(key))
        return result > 0

    async def record_hit(self, key: str, at: float) -> None:
        """Increment the hit counter of an existing entry.

        Args:
            key: The cache key
            at: Hit time (Unix timestamp)
        """
        redis_key = self._redis_key(key)
        with storage_errors("record_hit"):
            if not await self._client.exists(redis_key):
                return
            pipe = self._client.pipeline(transaction=True)
            pipe.hincrby(redis_key, "hit_count", 1)
            pipe.hset(redis_key, "last_hit_at", repr(at))
            await pipe.execute()

    async def record_access(self, key: str, at: float) -> None:
        """Count one access in the key's access record.

        The record is a separate hash that outlives the entry; it expires
        after ``ACCESS_HISTORY_TTL`` seconds without access.

        Args:
            key: The cache key
            at: Access time (Unix timestamp)
        """
        access_key = self._access_key(key)
        with storage_errors("record_access"):
            pipe = self._client.pipeline(transaction=True)
            pipe.hincrby(access_key, "access_count", 1)
            pipe.hsetnx(access_key, "first_access", repr(at))
            pipe.hset(access_key, "last_access", repr(at))
            pipe.expire(access_key, ACCESS_HISTORY_TTL)
            await pipe.execute()

    async def fetch_access(self, key: str) -> AccessRecord | None:
        """Fetch the access record of a key.

        Returns:
            The record, or None if the key was never accessed
        """
        with storage_errors("fetch_access"):
            data = await self._client.hgetall(self._access_key(key))
            if not data:
                return None
            return AccessRecord(
                cache_key=key,
                access_count=int(data["access_count"]),
                first_access=float(data["first_access"]),
                last_access=float(data["last_access"]),
            )

    async def delete_matching(
        self,
        provider_type: str | None = None,
        endpoint: str | None = None,
        request_hash: str | None = None,
    ) -> int:
        """Delete entries matching all given filters.

        Returns:
            Number of entries deleted
        """
        count = 0
        with storage_errors("delete_matching"):
            async for redis_key in self._client.scan_iter(match=self._scan_pattern()):
                stored_provider, stored_endpoint, stored_hash = await self._client.hmget(
                    redis_key, ["provider_type", "endpoint", "request_hash"]
                )
                if provider_type and stored_provider != provider_type:
                    continue
                if endpoint and stored_endpoint != endpoint:
                    continue
                if request_hash and stored_hash != request_hash:
                    continue
                if await self._client.delete(redis_key):
                    count += 1
        return count

    async def delete_expired(self, now: float) -> int:
        """Delete entries whose expiry is at or before ``now``.

        Returns:
            Number of entries deleted
        """
        count = 0
        with storage_errors("delete_expired"):
            async for redis_key in self._client.scan_iter(match=self._scan_pattern()):
                expires_at = _optional_float(await self._client.hget(redis_key, "expires_at"))
                if expires_at is not None and expires_at <= now:
                    if await self._client.delete(redis_key):
                        count += 1
        return count

    async def hit_counts(self, provider_type: str | None = None) -> list[int]:
        """Return the hit counter of every entry, optionally per provider."""
        counts = []
        with storage_errors("hit_counts"):
            async for redis_key in self._client.scan_iter(match=self._scan_pattern()):
                stored_provider, hit_count = await self._client.hmget(
                    redis_key, ["provider_type", "hit_count"]
                )
                if stored_provider is None:
                    continue
                if provider_type and stored_provider != provider_type:
                    continue
                counts.append(int(hit_count or 0))
        return counts

    async def health_check(self) -> bool:
        """Check if Redis is accessible.

        Returns:
            True if healthy, False otherwise
        """
        try:
            return bool(await self._client.ping())
        except RedisError:
            return False

    @property
    def client(self) -> redis.Redis:
        """Get the Redis client."""
        return self._client
