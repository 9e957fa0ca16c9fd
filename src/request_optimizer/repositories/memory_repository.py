"""In-process implementations of CacheStore and CallLogStore.

Used by tests and single-process tools. State lives for the lifetime of the
repository object and is not shared across processes.
"""

import dataclasses

from request_optimizer.entities import AccessRecord, ApiCallLogEntity, CacheEntryEntity


class MemoryCacheRepository:
    """Dictionary-backed cache store.

    This class satisfies the CacheStore protocol through structural
    typing - no explicit inheritance needed. Expiry is only enforced by the
    service layer and ``delete_expired``.
    """

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntryEntity] = {}
        self._access: dict[str, AccessRecord] = {}

    async def fetch(self, key: str) -> CacheEntryEntity | None:
        return self._entries.get(key)

    async def upsert(self, entry: CacheEntryEntity) -> None:
        existing = self._entries.get(entry.key)
        if existing is not None:
            entry = dataclasses.replace(
                entry,
                hit_count=existing.hit_count,
                last_hit_at=existing.last_hit_at,
            )
        self._entries[entry.key] = entry

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def record_hit(self, key: str, at: float) -> None:
        entry = self._entries.get(key)
        if entry is not None:
            self._entries[key] = dataclasses.replace(
                entry, hit_count=entry.hit_count + 1, last_hit_at=at
            )

    async def record_access(self, key: str, at: float) -> None:
        record = self._access.get(key)
        if record is None:
            self._access[key] = AccessRecord(key, access_count=1, first_access=at, last_access=at)
            return
        self._access[key] = dataclasses.replace(
            record,
            access_count=record.access_count + 1,
            last_access=at,
        )

    async def fetch_access(self, key: str) -> AccessRecord | None:
        return self._access.get(key)

    async def delete_matching(
        self,
        provider_type: str | None = None,
        endpoint: str | None = None,
        request_hash: str | None = None,
    ) -> int:
        doomed = [
            key
            for key, entry in self._entries.items()
            if (not provider_type or entry.provider_type == provider_type)
            and (not endpoint or entry.endpoint == endpoint)
            and (not request_hash or entry.request_hash == request_hash)
        ]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    async def delete_expired(self, now: float) -> int:
        doomed = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    async def hit_counts(self, provider_type: str | None = None) -> list[int]:
        return [
            entry.hit_count
            for entry in self._entries.values()
            if not provider_type or entry.provider_type == provider_type
        ]

    async def health_check(self) -> bool:
        return True

    def __len__(self) -> int:
        return len(self._entries)


class MemoryCallLogRepository:
    """List-backed append-only call log."""

    def __init__(self) -> None:
        self._entries: list[ApiCallLogEntity] = []

    async def append(self, entry: ApiCallLogEntity) -> None:
        self._entries.append(entry)

    async def fetch_window(self, start: float, end: float) -> list[ApiCallLogEntity]:
        window = [e for e in self._entries if start <= e.started_at <= end]
        return sorted(window, key=lambda e: e.started_at)

    async def delete_before(self, cutoff: float) -> int:
        kept = [e for e in self._entries if e.started_at >= cutoff]
        removed = len(self._entries) - len(kept)
        self._entries = kept
        return removed

    def __len__(self) -> int:
        return len(self._entries)
