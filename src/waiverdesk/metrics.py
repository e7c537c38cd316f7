"""Prometheus metrics helpers for the waiver search service."""

from __future__ import annotations

import threading

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

_LOCK = threading.Lock()
_REGISTRY: CollectorRegistry | None = None

# Prometheus collectors (initialised lazily so tests can reset the registry)
_SEARCH_COUNTER: Counter
_SEARCH_LATENCY_SECONDS: Histogram
_CACHE_COUNTER: Counter
_HTTP_REQUEST_COUNTER: Counter
_HTTP_REQUEST_LATENCY_SECONDS: Histogram


def _initialise_registry() -> None:
    global _REGISTRY
    global _SEARCH_COUNTER, _SEARCH_LATENCY_SECONDS
    global _CACHE_COUNTER
    global _HTTP_REQUEST_COUNTER, _HTTP_REQUEST_LATENCY_SECONDS

    registry = CollectorRegistry()

    _SEARCH_COUNTER = Counter(
        "waiverdesk_search_requests_total",
        "Search, suggestion and listing requests grouped by endpoint and status.",
        ["endpoint", "status"],
        registry=registry,
    )
    _SEARCH_LATENCY_SECONDS = Histogram(
        "waiverdesk_search_latency_seconds",
        "Execution time of search, suggestion and listing requests.",
        ["endpoint"],
        registry=registry,
    )
    _CACHE_COUNTER = Counter(
        "waiverdesk_suggestion_cache_total",
        "Suggestion cache lookups grouped by outcome (hit, miss, expired).",
        ["result"],
        registry=registry,
    )
    _HTTP_REQUEST_COUNTER = Counter(
        "waiverdesk_http_requests_total",
        "HTTP requests handled by the admin API.",
        ["method", "path", "status"],
        registry=registry,
    )
    _HTTP_REQUEST_LATENCY_SECONDS = Histogram(
        "waiverdesk_http_request_seconds",
        "HTTP handler latency for the admin API.",
        ["method", "path"],
        registry=registry,
    )

    _REGISTRY = registry


def _ensure_registry() -> None:
    if _REGISTRY is None:
        with _LOCK:
            if _REGISTRY is None:
                _initialise_registry()


def record_search(endpoint: str, status: str, duration_seconds: float) -> None:
    """Record a search-family request."""

    _ensure_registry()
    _SEARCH_COUNTER.labels(endpoint=endpoint, status=status).inc()
    _SEARCH_LATENCY_SECONDS.labels(endpoint=endpoint).observe(duration_seconds)


def record_cache_lookup(result: str) -> None:
    """Record a suggestion cache lookup outcome."""

    _ensure_registry()
    _CACHE_COUNTER.labels(result=result).inc()


def record_http_request(
    method: str,
    path: str,
    status_code: int,
    duration_seconds: float,
) -> None:
    """Record an HTTP request handled by the admin API."""

    _ensure_registry()
    _HTTP_REQUEST_COUNTER.labels(
        method=method,
        path=path,
        status=str(status_code),
    ).inc()
    _HTTP_REQUEST_LATENCY_SECONDS.labels(method=method, path=path).observe(duration_seconds)


def metrics_payload() -> tuple[bytes, str]:
    """Return the Prometheus metrics payload and content type."""

    _ensure_registry()
    return generate_latest(_REGISTRY or CollectorRegistry()), CONTENT_TYPE_LATEST


def reset_metrics_for_tests() -> None:  # pragma: no cover - test utility
    """Reset the registry so tests can run with a clean state."""

    with _LOCK:
        _initialise_registry()
