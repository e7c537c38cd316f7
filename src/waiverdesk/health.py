"""Rolling health summary for search, suggestion and listing requests."""

from __future__ import annotations

import time
from collections import Counter, deque
from collections.abc import Callable
from dataclasses import dataclass
from statistics import fmean
from typing import Dict


@dataclass(frozen=True)
class QueryRecord:
    """Outcome of one search-family request."""

    endpoint: str
    duration_ms: float
    success: bool
    result_count: int
    cache_hit: bool | None
    error_message: str | None
    recorded_at: float


class SearchHealthMonitor:
    """Keeps the most recent queries and summarises them for ``/healthz``.

    Failures and empty result sets are reported separately, so a store outage
    never reads as a run of queries that simply matched nothing. ``cache_hit``
    is ``None`` for requests that do not consult the suggestion cache.
    """

    def __init__(self, max_records: int = 1000, *, clock: Callable[[], float] = time.time) -> None:
        self._records: deque[QueryRecord] = deque(maxlen=max_records)
        self._clock = clock

    def record_query(
        self,
        *,
        endpoint: str,
        duration_ms: float,
        success: bool,
        result_count: int = 0,
        cache_hit: bool | None = None,
        error_message: str | None = None,
    ) -> None:
        self._records.append(
            QueryRecord(
                endpoint=endpoint,
                duration_ms=duration_ms,
                success=success,
                result_count=result_count,
                cache_hit=cache_hit,
                error_message=error_message,
                recorded_at=self._clock(),
            )
        )

    def cache_hit_ratio(self) -> float:
        lookups = [record.cache_hit for record in self._records if record.cache_hit is not None]
        if not lookups:
            return 0.0
        return sum(lookups) / len(lookups)

    def summary(self) -> Dict[str, object]:
        records = list(self._records)
        if not records:
            return {
                "recent_queries": 0,
                "avg_duration_ms": 0.0,
                "success_rate": 1.0,
                "empty_result_rate": 0.0,
                "cache_hit_ratio": 0.0,
            }

        succeeded = [record for record in records if record.success]
        empty = sum(1 for record in succeeded if record.result_count == 0)
        return {
            "recent_queries": len(records),
            "avg_duration_ms": fmean(record.duration_ms for record in records),
            "success_rate": len(succeeded) / len(records),
            # share of successful queries that matched nothing
            "empty_result_rate": empty / len(succeeded) if succeeded else 0.0,
            "avg_result_count": (
                fmean(record.result_count for record in succeeded) if succeeded else 0.0
            ),
            "cache_hit_ratio": self.cache_hit_ratio(),
            "recent_errors": [r.error_message for r in records if r.error_message][-5:],
            "requests_by_endpoint": dict(Counter(record.endpoint for record in records)),
        }
