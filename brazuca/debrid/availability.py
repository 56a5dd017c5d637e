import time
from typing import Callable, Dict, Iterable, List, Optional, Set

from brazuca.debrid.realdebrid import RealDebrid
from brazuca.utils.exceptions import AvailabilityError
from brazuca.utils.logger import logger
from brazuca.utils.models import AvailabilityEntry, Candidate, settings

PROVIDER_RESULT_KEYS = ("rd", "rdp")


def has_cached_nested(value):
    if isinstance(value, list):
        return len(value) > 0

    if isinstance(value, dict):
        nested = [entry for entry in value.values() if isinstance(entry, (dict, list))]
        if not nested:
            return len(value) > 0
        return any(has_cached_nested(entry) for entry in nested)

    return False


def is_instantly_available(value):
    if not isinstance(value, dict):
        return False

    return any(has_cached_nested(value.get(key)) for key in PROVIDER_RESULT_KEYS)


def collect_cached_hashes(payload: dict):
    return {
        str(hash).lower()
        for hash, details in (payload or {}).items()
        if is_instantly_available(details)
    }


async def fetch_slash_joined(debrid: RealDebrid, hashes: List[str]):
    return await debrid.get_instant(hashes, "/")


async def fetch_comma_joined(debrid: RealDebrid, hashes: List[str]):
    return await debrid.get_instant(hashes, ",")


# Tried in order per chunk; the first non-empty payload wins.
CHUNK_STRATEGIES = (fetch_slash_joined, fetch_comma_joined)


class AvailabilityCache:
    """
    Process-wide memory of Real-Debrid instant availability answers.

    Entries live for ``ttl`` seconds from the fetch that produced them and are
    authoritative while alive, whether they say cached or not.
    """

    def __init__(
        self,
        ttl: Optional[int] = None,
        chunk_size: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl = settings.AVAILABILITY_TTL if ttl is None else ttl
        self.chunk_size = chunk_size or settings.AVAILABILITY_CHUNK_SIZE
        self.clock = clock
        self.entries: Dict[str, AvailabilityEntry] = {}

    def get(self, hash: str):
        entry = self.entries.get(hash)
        if entry is None or entry.expires <= self.clock():
            return None
        return entry

    def prune(self, now: float):
        expired = [hash for hash, entry in self.entries.items() if entry.expires <= now]
        for hash in expired:
            del self.entries[hash]

    def update(self, hashes: Iterable[str], cached_hashes: Set[str], now: float):
        self.prune(now)
        expires = now + self.ttl
        for hash in hashes:
            self.entries[hash] = AvailabilityEntry(
                cached=hash in cached_hashes, expires=expires
            )

    async def lookup(self, hashes: Iterable[str], debrid: Optional[RealDebrid] = None):
        result = set()
        hashes_to_fetch = []

        for hash in dict.fromkeys(hash.lower() for hash in hashes if hash):
            entry = self.get(hash)
            if entry is not None:
                if entry.cached:
                    result.add(hash)
            elif debrid is not None:
                hashes_to_fetch.append(hash)

        if debrid is None or len(hashes_to_fetch) == 0:
            return result

        chunks = [
            hashes_to_fetch[i : i + self.chunk_size]
            for i in range(0, len(hashes_to_fetch), self.chunk_size)
        ]
        for chunk in chunks:
            result.update(await self.lookup_chunk(chunk, debrid))

        logger.info(
            f"{len(result)} instantly available out of {len(hashes_to_fetch)} hashes checked on Real-Debrid"
        )
        return result

    async def lookup_chunk(self, chunk: List[str], debrid: RealDebrid):
        for strategy in CHUNK_STRATEGIES:
            payload = await self.try_strategy(strategy, debrid, chunk)
            if payload:
                cached = collect_cached_hashes(payload)
                self.update(chunk, cached, self.clock())
                return cached & set(chunk)

        cached = set()
        for hash in chunk:
            payload = await self.try_strategy(fetch_slash_joined, debrid, [hash])
            hash_cached = collect_cached_hashes(payload) & {hash}
            self.update([hash], hash_cached, self.clock())
            cached |= hash_cached

        return cached

    async def try_strategy(self, strategy, debrid: RealDebrid, hashes: List[str]):
        try:
            return await strategy(debrid, hashes)
        except AvailabilityError as e:
            logger.warning(f"{strategy.__name__} failed for {len(hashes)} hashes: {e}")
            return {}


def apply_availability(candidates: List[Candidate], cached_hashes: Set[str]):
    for candidate in candidates:
        candidate.cached = bool(candidate.info_hash) and candidate.info_hash in cached_hashes
        if candidate.cached and candidate.title:
            candidate.title = f"⚡ {candidate.title}"
