import pytest
from aiocache import Cache

from waiverdesk.cache import CacheEntry, SuggestionCache
from waiverdesk.errors import DataIntegrityError
from waiverdesk.metrics import metrics_payload, reset_metrics_for_tests
from waiverdesk.models import SearchCandidate


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_candidate(candidate_id=1, name="Jane Doe"):
    first, last = name.split(" ", 1)
    return SearchCandidate(
        id=candidate_id,
        display_name=name,
        first_name=first,
        last_name=last,
        year_of_birth="1990",
        waiver_year=2026,
        is_current_year=True,
        signature_timestamp="2026-01-05T10:00:00.000Z",
    )


@pytest.mark.asyncio
async def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = SuggestionCache(120, clock=clock)
    await cache.set("jane", [make_candidate()])

    clock.advance(119)
    hit = await cache.get("jane")
    assert hit is not None
    assert [candidate.display_name for candidate in hit] == ["Jane Doe"]

    clock.advance(2)
    assert await cache.get("jane") is None


@pytest.mark.asyncio
async def test_keys_are_normalised_and_empty_results_cached():
    cache = SuggestionCache(120, clock=FakeClock())
    await cache.set("  jane   doe ", [])

    cached = await cache.get("jane doe")
    assert cached == []
    assert await cache.get("unknown") is None


@pytest.mark.asyncio
async def test_returned_lists_do_not_alias_the_entry():
    cache = SuggestionCache(120, clock=FakeClock())
    await cache.set("jane", [make_candidate()])

    first = await cache.get("jane")
    first.append(make_candidate(2, "John Smith"))

    second = await cache.get("jane")
    assert len(second) == 1


@pytest.mark.asyncio
async def test_clear_discards_all_entries():
    cache = SuggestionCache(120, clock=FakeClock())
    await cache.set("jane", [make_candidate()])
    await cache.set("smith", [make_candidate(2, "John Smith")])

    await cache.clear()

    assert await cache.get("jane") is None
    assert await cache.get("smith") is None


@pytest.mark.asyncio
async def test_zero_ttl_disables_caching():
    cache = SuggestionCache(0, clock=FakeClock())
    assert cache.enabled is False
    await cache.set("jane", [make_candidate()])
    assert await cache.get("jane") is None


@pytest.mark.asyncio
async def test_corrupt_entry_raises_in_strict_mode():
    backend = Cache(Cache.MEMORY)
    cache = SuggestionCache(120, clock=FakeClock(), strict=True, backend=backend)
    await backend.set("jane", {"not": "an entry"})

    with pytest.raises(DataIntegrityError):
        await cache.get("jane")


@pytest.mark.asyncio
async def test_corrupt_entry_is_evicted_when_lenient():
    clock = FakeClock()
    backend = Cache(Cache.MEMORY)
    cache = SuggestionCache(120, clock=clock, strict=False, backend=backend)
    await backend.set("jane", CacheEntry(payload=("garbage",), inserted_at=clock()))

    assert await cache.get("jane") is None
    assert await backend.get("jane") is None


@pytest.mark.asyncio
async def test_lookups_are_counted_by_outcome():
    reset_metrics_for_tests()
    clock = FakeClock()
    cache = SuggestionCache(10, clock=clock)

    await cache.get("jane")
    await cache.set("jane", [make_candidate()])
    await cache.get("jane")
    clock.advance(11)
    await cache.get("jane")

    payload, _ = metrics_payload()
    text = payload.decode()
    assert 'waiverdesk_suggestion_cache_total{result="miss"} 1.0' in text
    assert 'waiverdesk_suggestion_cache_total{result="hit"} 1.0' in text
    assert 'waiverdesk_suggestion_cache_total{result="expired"} 1.0' in text
