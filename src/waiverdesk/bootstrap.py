"""Bootstrap helpers for the store and shared search state."""

from __future__ import annotations

import logging

from .cache import SuggestionCache
from .config import Settings
from .ranking import RankingQuery
from .store import WaiverStore

logger = logging.getLogger(__name__)


async def open_store(settings: Settings) -> WaiverStore:
    """Open the waivers database, creating tables on first use."""

    store = WaiverStore(settings.database_path)
    await store.open()
    return store


def build_ranking(store: WaiverStore, settings: Settings) -> RankingQuery:
    logger.info(
        "ranking_configured mode=%s threshold=%s limit=%s",
        settings.match_mode,
        settings.similarity_threshold,
        settings.search_limit,
    )
    return RankingQuery.from_settings(store, settings)


def build_suggestion_cache(settings: Settings) -> SuggestionCache:
    return SuggestionCache(
        settings.suggestion_cache_ttl_seconds,
        strict=not settings.is_production,
    )


async def close_resources(store: WaiverStore, cache: SuggestionCache) -> None:
    try:
        await cache.close()
    except Exception as exc:  # pragma: no cover - best effort on shutdown
        logger.warning("Suggestion cache close raised an exception: %s", exc, exc_info=exc)
    await store.close()
