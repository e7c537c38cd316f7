"""
Debounced, cancellable suggestion fetching.

A ``DebounceController`` turns a stream of query edits into at most one
suggestion fetch per settling period. Each settle cycle runs as a single
asyncio task guarded by a ``CancellationToken``; a new edit cancels the
previous cycle, whether it is still waiting on the timer, reading the cache
or awaiting the network. The token is checked at the one point where
results are handed to the listener, so a late response from an abandoned
query can never overwrite fresher suggestions.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

from .cache import SuggestionCache
from .config import Settings
from .errors import WaiverDeskError
from .formatting import normalise_query
from .models import SearchCandidate

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation handle for one fetch cycle."""

    def __init__(self) -> None:
        self._cancelled = False
        self._task: asyncio.Task | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def bind(self, task: asyncio.Task) -> None:
        self._task = task

    def cancel(self) -> None:
        """Cancel the cycle. Safe to call more than once."""

        if self._cancelled:
            return
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()


FetchSuggestions = Callable[[str, CancellationToken], Awaitable[list[SearchCandidate]]]


class SuggestionListener(Protocol):
    """Receives the visible-state changes produced by the controller."""

    def on_closed(self) -> None: ...

    def on_loading(self, query: str) -> None: ...

    def on_results(self, query: str, candidates: list[SearchCandidate]) -> None: ...

    def on_error(self, query: str, error: WaiverDeskError) -> None: ...


class DebounceController:
    """Delays suggestion fetches until typing pauses and drops stale responses."""

    def __init__(
        self,
        fetch: FetchSuggestions,
        listener: SuggestionListener,
        *,
        cache: SuggestionCache | None = None,
        delay: float = 0.2,
        min_length: int = 2,
    ) -> None:
        self._fetch = fetch
        self._listener = listener
        self._cache = cache
        self.delay = delay
        self.min_length = min_length
        self._task: asyncio.Task | None = None
        self._token: CancellationToken | None = None
        self._settled_query: str | None = None
        self._disposed = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        fetch: FetchSuggestions,
        listener: SuggestionListener,
        *,
        cache: SuggestionCache | None = None,
    ) -> "DebounceController":
        return cls(
            fetch,
            listener,
            cache=cache,
            delay=settings.debounce_ms / 1000,
            min_length=settings.min_query_length,
        )

    @property
    def settled_query(self) -> str | None:
        """The last query that finished its settling delay."""

        return self._settled_query

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def update(self, query: str) -> None:
        """Register a query edit. Must be called from within a running event loop."""

        if self._disposed:
            return
        self.cancel_pending()
        term = normalise_query(query)
        if len(term) < self.min_length:
            self._settled_query = None
            self._listener.on_closed()
            return

        self._listener.on_loading(term)
        token = CancellationToken()
        task = asyncio.get_running_loop().create_task(self._cycle(term, token))
        token.bind(task)
        self._token = token
        self._task = task

    def cancel_pending(self) -> None:
        """Stop the pending timer and abort any in-flight fetch."""

        if self._token is not None:
            self._token.cancel()
        self._token = None
        self._task = None

    def dispose(self) -> None:
        self.cancel_pending()
        self._disposed = True

    async def wait_idle(self) -> None:
        """Wait until no settle cycle is running, re-raising unexpected failures."""

        while self._task is not None and not self._task.done():
            await asyncio.wait({self._task})
        task = self._task
        if task is not None and not task.cancelled():
            exc = task.exception()
            if exc is not None:
                raise exc

    async def _cycle(self, term: str, token: CancellationToken) -> None:
        try:
            await asyncio.sleep(self.delay)
            self._settled_query = term

            if self._cache is not None:
                cached = await self._cache.get(term)
                if cached is not None:
                    self._commit(term, token, cached)
                    return

            try:
                results = await self._fetch(term, token)
            except WaiverDeskError as exc:
                if not self._finish(token):
                    return
                logger.info("suggestion_fetch_failed query=%r error=%s", term, exc)
                self._listener.on_error(term, exc)
                return

            if token.cancelled:
                return
            if self._cache is not None:
                await self._cache.set(term, results)
            self._commit(term, token, results)
        except asyncio.CancelledError:
            if token.cancelled:
                return
            raise

    def _finish(self, token: CancellationToken) -> bool:
        if token.cancelled or token is not self._token:
            return False
        self._token = None
        return True

    def _commit(self, term: str, token: CancellationToken, results: list[SearchCandidate]) -> None:
        if not self._finish(token):
            logger.debug("suggestion_result_discarded query=%r", term)
            return
        self._listener.on_results(term, list(results))
