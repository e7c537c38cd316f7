"""Endpoint handlers that orchestrate ranking, caching and the store."""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from typing import Any

import pydantic

from .auth import Principal, create_admin_user
from .cache import SuggestionCache
from .config import Settings
from .errors import NotFoundError, StoreUnavailableError, ValidationError, WaiverDeskError
from .health import SearchHealthMonitor
from .metrics import record_search
from .models import SearchCandidate, WaiverSubmission
from .ranking import RankingQuery
from .store import WaiverStore

logger = logging.getLogger(__name__)


def _dump_candidates(candidates: Sequence[SearchCandidate]) -> list[dict[str, Any]]:
    return [candidate.model_dump(mode="json", by_alias=True) for candidate in candidates]


def _status_label(exc: BaseException | None) -> str:
    if exc is None:
        return "success"
    if isinstance(exc, ValidationError):
        return "invalid"
    return "error"


def _observe(
    endpoint: str,
    start: float,
    monitor: SearchHealthMonitor | None,
    *,
    error: BaseException | None,
    result_count: int = 0,
    cache_hit: bool | None = None,
) -> None:
    duration = time.perf_counter() - start
    record_search(endpoint, _status_label(error), duration)
    if monitor is None or isinstance(error, ValidationError):
        return
    monitor.record_query(
        endpoint=endpoint,
        duration_ms=duration * 1000,
        success=error is None,
        result_count=result_count,
        cache_hit=cache_hit,
        error_message=str(error) if error is not None else None,
    )


def _parse_id(raw: str | int, label: str) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid {label} ID") from exc


async def suggestions_handler(
    ranking: RankingQuery,
    cache: SuggestionCache,
    *,
    query: str | None,
    monitor: SearchHealthMonitor | None = None,
) -> dict[str, Any]:
    start = time.perf_counter()
    error: BaseException | None = None
    results: list[SearchCandidate] = []
    cache_hit = False
    try:
        term = ranking.validate(query)
        cached = await cache.get(term)
        if cached is not None:
            cache_hit = True
            results = cached
        else:
            results = await ranking.search(term)
            await cache.set(term, results)
    except Exception as exc:
        error = exc
        raise
    finally:
        _observe(
            "suggestions",
            start,
            monitor,
            error=error,
            result_count=len(results),
            cache_hit=cache_hit,
        )
    return {"suggestions": _dump_candidates(results)}


async def search_handler(
    ranking: RankingQuery,
    *,
    query: str | None,
    monitor: SearchHealthMonitor | None = None,
) -> dict[str, Any]:
    start = time.perf_counter()
    error: BaseException | None = None
    results: list[SearchCandidate] = []
    try:
        results = await ranking.search(query)
    except Exception as exc:
        error = exc
        raise
    finally:
        _observe("search", start, monitor, error=error, result_count=len(results))
    return {"results": _dump_candidates(results)}


async def list_records_handler(
    ranking: RankingQuery,
    *,
    monitor: SearchHealthMonitor | None = None,
) -> dict[str, Any]:
    start = time.perf_counter()
    error: BaseException | None = None
    results: list[SearchCandidate] = []
    try:
        results = await ranking.list_recent()
    except Exception as exc:
        error = exc
        raise
    finally:
        _observe("records", start, monitor, error=error, result_count=len(results))
    return {"results": _dump_candidates(results)}


async def record_detail_handler(store: WaiverStore, *, waiver_id: str | int) -> dict[str, Any]:
    record_id = _parse_id(waiver_id, "waiver")
    record = await store.get_waiver(record_id)
    if record is None:
        raise NotFoundError("Waiver not found")
    return {"waiver": record.model_dump(mode="json", by_alias=True)}


async def submit_waiver_handler(
    store: WaiverStore,
    payload: Any,
    *,
    ip_address: str | None,
    user_agent: str | None,
) -> dict[str, Any]:
    try:
        submission = WaiverSubmission.model_validate(payload)
    except pydantic.ValidationError as exc:
        logger.debug("waiver_rejected errors=%s", exc.error_count())
        raise ValidationError("Missing required fields") from exc

    waiver_id = await store.insert_waiver(
        submission,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    logger.info("waiver_submitted id=%s", waiver_id)
    return {"success": True, "id": waiver_id, "message": "Waiver submitted successfully"}


async def list_admins_handler(store: WaiverStore) -> dict[str, Any]:
    users = await store.list_admins()
    return {"users": [user.model_dump(mode="json", by_alias=True) for user in users]}


async def create_admin_handler(
    store: WaiverStore,
    settings: Settings,
    payload: Any,
) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValidationError("Username and password are required")
    username = str(payload.get("username") or "")
    password = str(payload.get("password") or "")
    user_id = await create_admin_user(store, username, password, settings)
    return {
        "success": True,
        "id": user_id,
        "message": f'Admin user "{username.strip()}" created successfully',
    }


async def delete_admin_handler(
    store: WaiverStore,
    principal: Principal,
    *,
    user_id: str | int,
) -> dict[str, Any]:
    target_id = _parse_id(user_id, "user")
    user = await store.get_admin_by_id(target_id)
    if user is None:
        raise NotFoundError("User not found")
    if user.username.lower() == principal.username.lower():
        raise ValidationError("You cannot delete your own account")
    await store.delete_admin(target_id)
    logger.info("admin_deleted username=%s by=%s", user.username, principal.username)
    return {
        "success": True,
        "message": f'Admin user "{user.username}" deleted successfully',
    }


def error_payload(exc: WaiverDeskError) -> tuple[dict[str, Any], int]:
    """Map an application error to a JSON body and HTTP status."""

    if isinstance(exc, StoreUnavailableError):
        return {"error": "Search is temporarily unavailable, please try again"}, exc.status_code
    return {"error": str(exc) or exc.__class__.__name__}, exc.status_code
