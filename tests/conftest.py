from typing import List

import pytest

from brazuca.scrapers.base import SourceProvider
from brazuca.utils.exceptions import AvailabilityError

HASH_A = "a" * 40
HASH_B = "b" * 40
HASH_C = "c" * 40
TOKEN = "T" * 32


def magnet_for(info_hash: str):
    return f"magnet:?xt=urn:btih:{info_hash}&dn=release"


def cached_payload(*hashes: str):
    return {hash.upper(): {"rd": [{"1": {"filename": "movie.mkv", "filesize": 1}}]} for hash in hashes}


class FakeInstantDebrid:
    """Stands in for the Real-Debrid client during availability lookups."""

    def __init__(self, responses=None, fail: bool = False):
        # separator -> payload, or a callable(hashes) -> payload
        self.responses = responses or {}
        self.fail = fail
        self.calls = []

    async def get_instant(self, hashes: List[str], separator: str = "/"):
        self.calls.append((separator, list(hashes)))
        if self.fail:
            raise AvailabilityError("service unavailable")

        response = self.responses.get(separator, {})
        if callable(response):
            return response(list(hashes))
        return response


class FakeProvider(SourceProvider):
    def __init__(self, candidates=None, error: Exception = None):
        super().__init__("Fake")
        self.candidates = candidates or []
        self.error = error
        self.calls = []

    async def discover(self, media_type, media_id, options=None):
        self.calls.append((media_type, media_id, options))
        if self.error:
            raise self.error
        return [candidate.model_copy(deep=True) for candidate in self.candidates]


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
