"""Async HTTP client for the admin search endpoints."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .config import Settings
from .debounce import CancellationToken
from .errors import AuthError, TransientFetchError, ValidationError
from .models import SearchCandidate

logger = logging.getLogger(__name__)


class WaiverSearchClient:
    """Fetches suggestions, search results and listings over HTTP.

    Every call is bounded by ``timeout``. Network failures, timeouts and
    server faults surface as ``TransientFetchError``; nothing is retried.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        cookie_name: str = "admin_token",
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        cookies = {cookie_name: token} if token else None
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            cookies=cookies,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        base_url: str,
        *,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "WaiverSearchClient":
        return cls(
            base_url,
            token=token,
            cookie_name=settings.cookie_name,
            timeout=settings.fetch_timeout_seconds,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "WaiverSearchClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def suggestions(
        self,
        query: str,
        token: CancellationToken | None = None,
    ) -> list[SearchCandidate]:
        """Fetch suggestions; a response arriving after ``token`` is cancelled is dropped."""

        payload = await self._get_json("/suggestions", params={"q": query})
        if token is not None and token.cancelled:
            logger.debug("suggestions_dropped query=%r", query)
            return []
        return self._candidates(payload, "suggestions")

    async def search(self, query: str) -> list[SearchCandidate]:
        payload = await self._get_json("/search", params={"q": query})
        return self._candidates(payload, "results")

    async def records(self) -> list[SearchCandidate]:
        payload = await self._get_json("/records")
        return self._candidates(payload, "results")

    async def _get_json(self, path: str, *, params: dict[str, str] | None = None) -> Any:
        try:
            response = await self._client.get(path, params=params)
        except httpx.TimeoutException as exc:
            raise TransientFetchError(f"Request to {path} timed out") from exc
        except httpx.TransportError as exc:
            raise TransientFetchError(f"Request to {path} failed: {exc}") from exc

        if response.status_code == 401:
            raise AuthError(self._error_message(response) or "Unauthorized")
        if response.status_code == 400:
            raise ValidationError(self._error_message(response) or "Invalid request")
        if response.status_code >= 400:
            logger.warning("fetch_failed path=%s status=%s", path, response.status_code)
            raise TransientFetchError(f"Request to {path} failed with status {response.status_code}")
        try:
            return response.json()
        except ValueError as exc:
            raise TransientFetchError(f"Request to {path} returned invalid JSON") from exc

    @staticmethod
    def _error_message(response: httpx.Response) -> str | None:
        try:
            body = response.json()
        except ValueError:
            return None
        if isinstance(body, dict) and isinstance(body.get("error"), str):
            return body["error"]
        return None

    @staticmethod
    def _candidates(payload: Any, key: str) -> list[SearchCandidate]:
        items = payload.get(key) if isinstance(payload, dict) else None
        if not isinstance(items, list):
            raise TransientFetchError(f"Response is missing '{key}'")
        return [SearchCandidate.model_validate(item) for item in items]
