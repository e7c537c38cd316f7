"""Typeahead interaction state for the admin search box."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .cache import SuggestionCache
from .client import WaiverSearchClient
from .config import Settings
from .debounce import DebounceController, FetchSuggestions
from .errors import AuthError, WaiverDeskError
from .formatting import highlight_match, normalise_query
from .models import SearchCandidate

logger = logging.getLogger(__name__)

RETRY_MESSAGE = "Couldn't load suggestions. Try again."

SearchCallback = Callable[[str], Awaitable[Any]]


class TypeaheadState(str, Enum):
    CLOSED = "closed"
    LOADING = "loading"
    OPEN_WITH_RESULTS = "open-with-results"
    OPEN_NO_RESULTS = "open-no-results"


@dataclass(frozen=True)
class TypeaheadOption:
    """One rendered row of the suggestion list."""

    id: int
    primary: str
    secondary: str | None
    candidate: SearchCandidate

    @classmethod
    def from_candidate(cls, candidate: SearchCandidate) -> "TypeaheadOption":
        secondary = f"Born {candidate.year_of_birth}" if candidate.year_of_birth else None
        return cls(
            id=candidate.id,
            primary=candidate.display_name,
            secondary=secondary,
            candidate=candidate,
        )


class TypeaheadSession:
    """Suggestion list, highlighted index and selection for one input field.

    The session only reacts to controller callbacks and user events; fetching,
    debouncing and caching live in ``DebounceController``.
    """

    def __init__(
        self,
        fetch: FetchSuggestions,
        *,
        on_search: SearchCallback | None = None,
        cache: SuggestionCache | None = None,
        delay: float = 0.2,
        min_length: int = 2,
        blur_grace: float = 0.1,
    ) -> None:
        self._controller = DebounceController(
            fetch, self, cache=cache, delay=delay, min_length=min_length
        )
        self._on_search = on_search
        self.blur_grace = blur_grace
        self.query = ""
        self.state = TypeaheadState.CLOSED
        self.options: list[TypeaheadOption] = []
        self.active_index = -1
        self.error: str | None = None
        self.auth_required = False
        self._pointer_active = False
        self._blur_handle: asyncio.TimerHandle | None = None
        self._search_task: asyncio.Task | None = None
        self.search_results: list[SearchCandidate] | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        fetch: FetchSuggestions,
        *,
        on_search: SearchCallback | None = None,
        cache: SuggestionCache | None = None,
    ) -> "TypeaheadSession":
        return cls(
            fetch,
            on_search=on_search,
            cache=cache,
            delay=settings.debounce_ms / 1000,
            min_length=settings.min_query_length,
            blur_grace=settings.blur_grace_ms / 1000,
        )

    @classmethod
    def from_client(
        cls,
        client: WaiverSearchClient,
        *,
        cache: SuggestionCache | None = None,
        delay: float = 0.2,
        min_length: int = 2,
        blur_grace: float = 0.1,
    ) -> "TypeaheadSession":
        """Fetch suggestions and run committed searches through ``client``."""

        return cls(
            client.suggestions,
            on_search=client.search,
            cache=cache,
            delay=delay,
            min_length=min_length,
            blur_grace=blur_grace,
        )

    @property
    def is_open(self) -> bool:
        return self.state is not TypeaheadState.CLOSED

    @property
    def is_loading(self) -> bool:
        return self.state is TypeaheadState.LOADING

    @property
    def active_option(self) -> TypeaheadOption | None:
        if 0 <= self.active_index < len(self.options):
            return self.options[self.active_index]
        return None

    def highlighted_labels(self) -> list[str]:
        """Primary labels with the current query marked."""

        term = normalise_query(self.query)
        return [highlight_match(option.primary, term) for option in self.options]

    # input events

    def set_query(self, text: str) -> None:
        self.query = text
        self._controller.update(text)

    def handle_key(self, key: str) -> bool:
        """Apply a key press. Returns True when the key was consumed."""

        if key == "Enter" and self.active_option is None:
            return self._submit_query()

        if not self.is_open or not self.options:
            return False

        if key == "ArrowDown":
            if self.active_index < len(self.options) - 1:
                self.active_index += 1
            return True
        if key == "ArrowUp":
            self.active_index = self.active_index - 1 if self.active_index > 0 else -1
            return True
        if key == "Escape":
            self.close()
            return True
        if key in ("Enter", "Tab"):
            option = self.active_option
            if option is None:
                return False
            self.commit(option)
            return True
        return False

    def pointer_down(self, index: int) -> None:
        if 0 <= index < len(self.options):
            self._pointer_active = True

    def pointer_cancel(self) -> None:
        self._pointer_active = False

    def click(self, index: int) -> None:
        self._pointer_active = False
        if 0 <= index < len(self.options):
            self.commit(self.options[index])

    def focus(self) -> None:
        self._cancel_blur()

    def blur(self) -> None:
        """Close after a grace delay so a pointer selection can land first.

        A pointer-down in progress extends the delay once; a press that never
        turns into a click does not keep the list open.
        """

        self._cancel_blur()
        self._schedule_blur_close(extended=False)

    def close(self) -> None:
        self._cancel_blur()
        self.state = TypeaheadState.CLOSED
        self.active_index = -1

    def commit(self, option: TypeaheadOption) -> None:
        """Select ``option`` and run a full search for its display name."""

        self._controller.cancel_pending()
        self.query = option.primary
        self.options = []
        self.close()
        self._start_search(option.primary)

    def dispose(self) -> None:
        self._cancel_blur()
        self._controller.dispose()
        if self._search_task is not None and not self._search_task.done():
            self._search_task.cancel()

    async def wait_idle(self) -> None:
        await self._controller.wait_idle()
        if self._search_task is not None:
            await self._search_task

    # controller callbacks

    def on_closed(self) -> None:
        self.options = []
        self.error = None
        self.close()

    def on_loading(self, query: str) -> None:
        self.error = None
        self.state = TypeaheadState.LOADING

    def on_results(self, query: str, candidates: list[SearchCandidate]) -> None:
        self.options = [TypeaheadOption.from_candidate(candidate) for candidate in candidates]
        self.active_index = -1
        self.error = None
        self.state = (
            TypeaheadState.OPEN_WITH_RESULTS if self.options else TypeaheadState.OPEN_NO_RESULTS
        )

    def on_error(self, query: str, error: WaiverDeskError) -> None:
        self.options = []
        self.active_index = -1
        self.state = TypeaheadState.CLOSED
        if isinstance(error, AuthError):
            self.auth_required = True
            self.error = None
        else:
            self.error = RETRY_MESSAGE

    # internals

    def _submit_query(self) -> bool:
        term = normalise_query(self.query)
        if len(term) < self._controller.min_length:
            return False
        self._controller.cancel_pending()
        self.options = []
        self.close()
        self._start_search(term)
        return True

    def _start_search(self, term: str) -> None:
        if self._on_search is None:
            return
        self._search_task = asyncio.get_running_loop().create_task(self._run_search(term))

    async def _run_search(self, term: str) -> None:
        result = await self._on_search(term)
        if isinstance(result, list):
            self.search_results = result

    def _cancel_blur(self) -> None:
        if self._blur_handle is not None:
            self._blur_handle.cancel()
            self._blur_handle = None

    def _schedule_blur_close(self, *, extended: bool) -> None:
        loop = asyncio.get_running_loop()
        self._blur_handle = loop.call_later(self.blur_grace, self._close_after_blur, extended)

    def _close_after_blur(self, extended: bool) -> None:
        self._blur_handle = None
        if self._pointer_active and not extended:
            logger.debug("blur_close_deferred query=%r", self.query)
            self._schedule_blur_close(extended=True)
            return
        self._pointer_active = False
        self.close()
