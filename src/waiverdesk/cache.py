"""Time-limited memoisation of suggestion results."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from aiocache import Cache  # type: ignore[import-untyped]

from .errors import DataIntegrityError
from .formatting import normalise_query
from .metrics import record_cache_lookup
from .models import SearchCandidate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """Cached candidates and the clock reading at insertion."""

    payload: tuple[SearchCandidate, ...]
    inserted_at: float


class SuggestionCache:
    """Query-keyed cache with lazy TTL eviction.

    Entries are replaced whole on ``set`` and never mutated, so the atomic
    single-key operations of the aiocache backend are enough for concurrent
    readers and writers. ``clock`` must be monotonic; tests inject a fake one.
    """

    def __init__(
        self,
        ttl_seconds: float = 120.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        strict: bool = True,
        backend: Cache | None = None,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._strict = strict
        self._backend = backend if backend is not None else Cache(Cache.MEMORY)

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    async def get(self, key: str) -> list[SearchCandidate] | None:
        normalised = normalise_query(key)
        if not self.enabled or not normalised:
            return None

        entry = await self._backend.get(normalised)
        if entry is None:
            record_cache_lookup("miss")
            return None

        if not self._is_valid(entry):
            message = f"Corrupt suggestion cache entry for {normalised!r}: {entry!r}"
            if self._strict:
                raise DataIntegrityError(message)
            logger.warning("suggestion_cache_corrupt key=%r", normalised)
            await self._backend.delete(normalised)
            record_cache_lookup("miss")
            return None

        if self._clock() - entry.inserted_at > self.ttl_seconds:
            await self._backend.delete(normalised)
            record_cache_lookup("expired")
            return None

        record_cache_lookup("hit")
        return list(entry.payload)

    async def set(self, key: str, candidates: Sequence[SearchCandidate]) -> None:
        normalised = normalise_query(key)
        if not self.enabled or not normalised:
            return
        entry = CacheEntry(payload=tuple(candidates), inserted_at=self._clock())
        await self._backend.set(normalised, entry)

    async def clear(self) -> None:
        await self._backend.clear()

    async def close(self) -> None:
        await self._backend.close()

    @staticmethod
    def _is_valid(entry: object) -> bool:
        if not isinstance(entry, CacheEntry):
            return False
        return all(isinstance(item, SearchCandidate) for item in entry.payload)
