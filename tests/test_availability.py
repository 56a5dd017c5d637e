import pytest

from brazuca.debrid.availability import (
    AvailabilityCache,
    apply_availability,
    collect_cached_hashes,
    is_instantly_available,
)
from brazuca.utils.models import Candidate

from conftest import HASH_A, HASH_B, HASH_C, FakeInstantDebrid, cached_payload


def test_is_instantly_available():
    assert is_instantly_available({"rd": [{"1": {"filename": "a.mkv"}}]})
    assert is_instantly_available({"rdp": {"variant": {"1": {"filename": "a.mkv"}}}})
    assert is_instantly_available({"rd": {"filename": "a.mkv"}})
    assert not is_instantly_available({"rd": []})
    assert not is_instantly_available({"rd": {}})
    assert not is_instantly_available({"rd": [], "other": [{"1": {}}]})
    assert not is_instantly_available([])


def test_collect_cached_hashes_lowercases():
    payload = cached_payload(HASH_A)
    payload[HASH_B.upper()] = {"rd": []}

    assert collect_cached_hashes(payload) == {HASH_A}


@pytest.mark.asyncio
async def test_lookup_marks_cached_hashes(clock):
    cache = AvailabilityCache(ttl=300, chunk_size=50, clock=clock)
    debrid = FakeInstantDebrid({"/": cached_payload(HASH_A)})

    result = await cache.lookup([HASH_A.upper(), HASH_B], debrid)

    assert result == {HASH_A}
    assert debrid.calls == [("/", [HASH_A, HASH_B])]
    assert cache.get(HASH_A).cached is True
    assert cache.get(HASH_B).cached is False


@pytest.mark.asyncio
async def test_lookup_within_ttl_makes_no_calls(clock):
    cache = AvailabilityCache(ttl=300, clock=clock)
    debrid = FakeInstantDebrid({"/": cached_payload(HASH_A)})

    first = await cache.lookup([HASH_A, HASH_B], debrid)
    clock.advance(299)
    second = await cache.lookup([HASH_B, HASH_A], debrid)

    assert first == second == {HASH_A}
    assert len(debrid.calls) == 1


@pytest.mark.asyncio
async def test_lookup_refetches_after_expiry(clock):
    cache = AvailabilityCache(ttl=300, clock=clock)
    debrid = FakeInstantDebrid({"/": cached_payload(HASH_A)})

    await cache.lookup([HASH_A], debrid)
    clock.advance(300)
    debrid.responses = {"/": {HASH_A: {"rd": []}}}
    result = await cache.lookup([HASH_A], debrid)

    assert result == set()
    assert len(debrid.calls) == 2


@pytest.mark.asyncio
async def test_empty_chunk_tries_comma_join_before_single_hashes(clock):
    cache = AvailabilityCache(clock=clock)
    debrid = FakeInstantDebrid({"/": {}, ",": cached_payload(HASH_B)})

    result = await cache.lookup([HASH_A, HASH_B], debrid)

    assert result == {HASH_B}
    assert debrid.calls == [("/", [HASH_A, HASH_B]), (",", [HASH_A, HASH_B])]


@pytest.mark.asyncio
async def test_single_hash_fallback_after_both_joins_fail(clock):
    cache = AvailabilityCache(clock=clock)

    def per_hash(hashes):
        return cached_payload(HASH_A) if hashes == [HASH_A] else {}

    debrid = FakeInstantDebrid({"/": per_hash, ",": {}})

    result = await cache.lookup([HASH_A, HASH_B], debrid)

    assert result == {HASH_A}
    assert debrid.calls == [
        ("/", [HASH_A, HASH_B]),
        (",", [HASH_A, HASH_B]),
        ("/", [HASH_A]),
        ("/", [HASH_B]),
    ]
    assert cache.get(HASH_B).cached is False


@pytest.mark.asyncio
async def test_lookup_splits_into_chunks(clock):
    cache = AvailabilityCache(chunk_size=2, clock=clock)
    debrid = FakeInstantDebrid({"/": cached_payload(HASH_A, HASH_C)})

    result = await cache.lookup([HASH_A, HASH_B, HASH_C], debrid)

    assert result == {HASH_A, HASH_C}
    assert debrid.calls == [("/", [HASH_A, HASH_B]), ("/", [HASH_C])]


@pytest.mark.asyncio
async def test_failures_are_remembered_as_unavailable(clock):
    cache = AvailabilityCache(clock=clock)
    debrid = FakeInstantDebrid(fail=True)

    assert await cache.lookup([HASH_A], debrid) == set()
    calls = len(debrid.calls)
    assert await cache.lookup([HASH_A], debrid) == set()

    assert len(debrid.calls) == calls
    assert cache.get(HASH_A).cached is False


@pytest.mark.asyncio
async def test_without_credential_nothing_is_cached(clock):
    cache = AvailabilityCache(clock=clock)

    assert await cache.lookup([HASH_A, HASH_B]) == set()
    assert cache.entries == {}


@pytest.mark.asyncio
async def test_live_entries_answer_without_credential(clock):
    cache = AvailabilityCache(clock=clock)
    await cache.lookup([HASH_A], FakeInstantDebrid({"/": cached_payload(HASH_A)}))

    assert await cache.lookup([HASH_A, HASH_B]) == {HASH_A}


def test_apply_availability():
    candidates = [
        Candidate(title="Filme A", info_hash=HASH_A),
        Candidate(title="Filme B", info_hash=HASH_B),
        Candidate(title="Filme C"),
    ]

    apply_availability(candidates, {HASH_A})

    assert [candidate.cached for candidate in candidates] == [True, False, False]
    assert candidates[0].title == "⚡ Filme A"
    assert candidates[1].title == "Filme B"


@pytest.mark.asyncio
async def test_expired_entries_are_dropped_on_write(clock):
    cache = AvailabilityCache(ttl=300, clock=clock)
    debrid = FakeInstantDebrid({"/": cached_payload(HASH_A)})

    await cache.lookup([HASH_A], debrid)
    clock.advance(301)
    await cache.lookup([HASH_B], debrid)

    assert set(cache.entries) == {HASH_B}
