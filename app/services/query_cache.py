"""Two-tier TTL cache for catalog queries."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from pydantic import ValidationError

from ..models import MovieRecord
from ..utils import now_ms

logger = logging.getLogger(__name__)

DEFAULT_TTL_MS = 30 * 60 * 1_000


class PersistentStore(Protocol):
    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def clear(self, prefix: str | None = None) -> None: ...


@dataclass(slots=True)
class CacheEntry:
    """A cached value together with the time it was stored and its TTL."""

    key: str
    value: Any
    stored_at_ms: int
    ttl_ms: int

    def is_fresh(self, now: int) -> bool:
        return now - self.stored_at_ms < self.ttl_ms

    def to_payload(self) -> dict[str, Any]:
        return {
            "value": self.value,
            "storedAt": self.stored_at_ms,
            "ttl": self.ttl_ms,
        }

    @classmethod
    def from_payload(cls, key: str, payload: Any) -> "CacheEntry | None":
        if not isinstance(payload, dict) or "value" not in payload:
            return None
        try:
            stored_at = int(payload["storedAt"])
            ttl = int(payload["ttl"])
        except (KeyError, TypeError, ValueError):
            return None
        return cls(key=key, value=payload["value"], stored_at_ms=stored_at, ttl_ms=ttl)


class QueryCache:
    """Memoizes query results in memory, backed by an optional persistent tier.

    Reads consult the in-memory mapping first and fall back to the persistent
    store, repopulating memory on a hit. Writes go to both tiers. Expired
    entries read as absent and are purged lazily.
    """

    def __init__(
        self,
        *,
        default_ttl_ms: int = DEFAULT_TTL_MS,
        store: PersistentStore | None = None,
        namespace: str = "",
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._memory: dict[str, CacheEntry] = {}
        self._store = store
        self._namespace = namespace
        self._default_ttl_ms = default_ttl_ms
        self._clock = clock

    @property
    def default_ttl_ms(self) -> int:
        return self._default_ttl_ms

    def now(self) -> int:
        return self._clock()

    async def get(self, key: str) -> Any | None:
        """Return the cached value for ``key`` or ``None`` when absent or expired."""

        entry = await self.get_entry(key)
        return None if entry is None else entry.value

    async def get_entry(self, key: str, *, allow_expired: bool = False) -> CacheEntry | None:
        """Return the raw entry; expired entries are only returned when allowed."""

        now = self._clock()
        entry = self._memory.get(key)
        if entry is None and self._store is not None:
            entry = CacheEntry.from_payload(key, await self._store.get(self._storage_key(key)))
            if entry is not None:
                self._memory[key] = entry
        if entry is None:
            return None
        if entry.is_fresh(now) or allow_expired:
            return entry

        logger.debug("Cache entry %s expired", key)
        await self.delete(key)
        return None

    async def set(self, key: str, value: Any, ttl_ms: int | None = None) -> None:
        entry = CacheEntry(
            key=key,
            value=value,
            stored_at_ms=self._clock(),
            ttl_ms=ttl_ms if ttl_ms is not None else self._default_ttl_ms,
        )
        self._memory[key] = entry
        if self._store is not None:
            await self._store.set(self._storage_key(key), entry.to_payload())

    async def delete(self, key: str) -> None:
        self._memory.pop(key, None)
        if self._store is not None:
            await self._store.delete(self._storage_key(key))

    async def clear(self) -> None:
        """Drop every entry owned by this cache from both tiers."""

        self._memory.clear()
        if self._store is not None:
            await self._store.clear(self._namespace or None)

    def _storage_key(self, key: str) -> str:
        return f"{self._namespace}{key}"


def dump_records(records: list[MovieRecord]) -> list[dict[str, Any]]:
    return [record.to_payload() for record in records]


def load_records(value: Any) -> list[MovieRecord] | None:
    """Rehydrate cached movie payloads; ``None`` signals an unusable value."""

    if not isinstance(value, list):
        return None
    try:
        return [MovieRecord.model_validate(item) for item in value]
    except ValidationError:
        logger.warning("Discarding malformed cached movie payload")
        return None
