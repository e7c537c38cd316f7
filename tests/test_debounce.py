import asyncio

import pytest

from waiverdesk.cache import SuggestionCache
from waiverdesk.config import Settings
from waiverdesk.debounce import CancellationToken, DebounceController
from waiverdesk.errors import TransientFetchError
from waiverdesk.models import SearchCandidate


def make_candidate(candidate_id, name):
    first, last = name.split(" ", 1)
    return SearchCandidate(
        id=candidate_id,
        display_name=name,
        first_name=first,
        last_name=last,
        year_of_birth="1990",
        waiver_year=2026,
        is_current_year=True,
    )


class RecordingListener:
    def __init__(self):
        self.events = []

    def on_closed(self):
        self.events.append(("closed",))

    def on_loading(self, query):
        self.events.append(("loading", query))

    def on_results(self, query, candidates):
        self.events.append(("results", query, [c.display_name for c in candidates]))

    def on_error(self, query, error):
        self.events.append(("error", query, type(error).__name__))

    def of_kind(self, kind):
        return [event for event in self.events if event[0] == kind]


class StubFetcher:
    def __init__(self, data=None):
        self.data = data or {}
        self.calls = []

    async def __call__(self, query, token):
        self.calls.append(query)
        return [make_candidate(i, name) for i, name in enumerate(self.data.get(query, []), 1)]


@pytest.mark.asyncio
async def test_short_query_closes_without_fetching():
    fetcher = StubFetcher()
    listener = RecordingListener()
    controller = DebounceController(fetcher, listener, delay=0.01)

    controller.update("j")
    controller.update("  ")
    await asyncio.sleep(0.03)

    assert fetcher.calls == []
    assert listener.events == [("closed",), ("closed",)]
    assert controller.pending is False


@pytest.mark.asyncio
async def test_rapid_edits_issue_a_single_fetch():
    fetcher = StubFetcher({"jane": ["Jane Doe"]})
    listener = RecordingListener()
    controller = DebounceController(fetcher, listener, delay=0.01)

    for text in ["j", "ja", "jan", "jane"]:
        controller.update(text)
    await controller.wait_idle()

    assert fetcher.calls == ["jane"]
    assert controller.settled_query == "jane"
    assert listener.of_kind("results") == [("results", "jane", ["Jane Doe"])]


@pytest.mark.asyncio
async def test_repeated_query_is_served_from_cache():
    fetcher = StubFetcher({"jane": ["Jane Doe"]})
    listener = RecordingListener()
    controller = DebounceController(
        fetcher, listener, cache=SuggestionCache(120), delay=0.01
    )

    controller.update("jane")
    await controller.wait_idle()
    controller.update("jane")
    await controller.wait_idle()

    assert fetcher.calls == ["jane"]
    assert len(listener.of_kind("results")) == 2


@pytest.mark.asyncio
async def test_in_flight_fetch_is_aborted_by_new_edit():
    aborted = []
    released = asyncio.Event()
    started = asyncio.Event()

    async def fetch(query, token):
        if query == "alpha":
            started.set()
            try:
                await released.wait()
            except asyncio.CancelledError:
                aborted.append(query)
                raise
        return [make_candidate(2, "Bravo New")]

    listener = RecordingListener()
    controller = DebounceController(fetch, listener, delay=0.01)

    controller.update("alpha")
    await started.wait()
    controller.update("bravo")
    await controller.wait_idle()

    assert aborted == ["alpha"]
    assert listener.of_kind("results") == [("results", "bravo", ["Bravo New"])]


@pytest.mark.asyncio
async def test_late_response_for_abandoned_query_is_discarded():
    released = asyncio.Event()
    started = asyncio.Event()
    cache = SuggestionCache(120)

    async def stubborn_fetch(query, token):
        if query == "alpha":
            started.set()
            while not released.is_set():
                try:
                    await released.wait()
                except asyncio.CancelledError:
                    continue
            return [make_candidate(1, "Alpha Old")]
        return [make_candidate(2, "Bravo New")]

    listener = RecordingListener()
    controller = DebounceController(stubborn_fetch, listener, cache=cache, delay=0.01)

    controller.update("alpha")
    await started.wait()
    controller.update("bravo")
    await controller.wait_idle()

    released.set()
    await asyncio.sleep(0.02)

    assert listener.of_kind("results") == [("results", "bravo", ["Bravo New"])]
    assert await cache.get("alpha") is None


@pytest.mark.asyncio
async def test_fetch_error_is_reported_only_for_current_query():
    released = asyncio.Event()
    started = asyncio.Event()

    async def fetch(query, token):
        if query == "alpha":
            started.set()
            while not released.is_set():
                try:
                    await released.wait()
                except asyncio.CancelledError:
                    continue
        raise TransientFetchError(f"{query} failed")

    listener = RecordingListener()
    controller = DebounceController(fetch, listener, delay=0.01)

    controller.update("alpha")
    await started.wait()
    controller.update("bravo")
    await controller.wait_idle()
    released.set()
    await asyncio.sleep(0.02)

    assert listener.of_kind("error") == [("error", "bravo", "TransientFetchError")]


@pytest.mark.asyncio
async def test_unexpected_fetch_failure_propagates():
    async def fetch(query, token):
        raise RuntimeError("boom")

    controller = DebounceController(fetch, RecordingListener(), delay=0.01)
    controller.update("jane")

    with pytest.raises(RuntimeError):
        await controller.wait_idle()


@pytest.mark.asyncio
async def test_dispose_stops_pending_and_future_work():
    fetcher = StubFetcher({"jane": ["Jane Doe"]})
    listener = RecordingListener()
    controller = DebounceController(fetcher, listener, delay=0.01)

    controller.update("jane")
    controller.dispose()
    controller.update("john")
    await asyncio.sleep(0.03)

    assert fetcher.calls == []
    assert listener.of_kind("results") == []


@pytest.mark.asyncio
async def test_cancellation_token_is_idempotent():
    token = CancellationToken()
    task = asyncio.get_running_loop().create_task(asyncio.sleep(10))
    token.bind(task)

    token.cancel()
    token.cancel()

    assert token.cancelled is True
    with pytest.raises(asyncio.CancelledError):
        await task


def test_from_settings_uses_configured_delay():
    settings = Settings(debounce_ms=350, min_query_length=3)
    controller = DebounceController.from_settings(settings, StubFetcher(), RecordingListener())

    assert controller.delay == pytest.approx(0.35)
    assert controller.min_length == 3
