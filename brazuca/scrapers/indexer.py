import asyncio
import math
import re
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import unquote

import aiohttp
import orjson
from pydantic import BaseModel, Field
from RTN import parse

from brazuca.scrapers.base import DiscoverOptions, SourceProvider
from brazuca.utils.exceptions import DiscoveryError
from brazuca.utils.general import (
    build_magnet,
    bytes_to_size,
    extract_info_hash,
    get_language_emoji,
    infer_quality,
    is_magnet,
    normalize,
    normalize_info_hash,
    normalize_quality,
    size_to_bytes,
    split_languages,
)
from brazuca.utils.logger import logger
from brazuca.utils.metadata import CinemetaLookup
from brazuca.utils.models import Candidate, MatchContext, settings

imdb_id_pattern = re.compile(r"^tt\d+$")


class MediaRequest(BaseModel):
    media_type: str
    imdb_id: Optional[str] = None
    query: Optional[str] = None
    season: Optional[int] = None
    episode: Optional[int] = None
    titles: List[str] = Field(default_factory=list)
    year: Optional[int] = None
    episode_title: Optional[str] = None

    @property
    def is_movie(self):
        return self.media_type == "movie"

    @property
    def display_title(self):
        if self.titles:
            return self.titles[0]
        return self.query


def normalize_type(media_type: str):
    lower = (media_type or "").lower()
    if lower in ("movie", "movies"):
        return "movie"
    if lower in ("series", "tv", "show", "shows"):
        return "series"
    return lower


def sanitize_query(raw: str):
    if not raw:
        return None

    decoded = unquote(raw)
    cleaned = re.sub(r"\s+", " ", re.sub(r"[-_.]", " ", decoded)).strip()
    return cleaned or None


def to_int(value) -> Optional[int]:
    if isinstance(value, bool) or value is None:
        return None

    if isinstance(value, int):
        return value

    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None

    if isinstance(value, str) and value.strip():
        digits = re.sub(r"[^0-9-]", "", value)
        try:
            return int(digits)
        except ValueError:
            return None

    return None


def parse_media_id(media_type: str, media_id: str):
    parts = (media_id or "").split(":")
    raw_id = parts[0]

    request = MediaRequest(media_type=normalize_type(media_type))
    if imdb_id_pattern.match(raw_id):
        request.imdb_id = raw_id
    else:
        request.query = sanitize_query(raw_id)

    if len(parts) > 1 and parts[1].isdigit():
        request.season = int(parts[1])
    if len(parts) > 2 and parts[2].isdigit():
        request.episode = int(parts[2])

    return request


def to_text(value):
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def to_magnet(value):
    if is_magnet(value):
        return value.strip()
    return None


def to_web_url(value):
    if isinstance(value, str) and value.strip().lower().startswith(("http://", "https://")):
        return value.strip()
    return None


def to_imdb_id(value):
    if isinstance(value, int) and not isinstance(value, bool):
        return f"tt{value:07d}"

    if isinstance(value, str):
        match = re.search(r"tt\d+", value)
        if match:
            return match.group(0)

    return None


def to_year(value):
    year = to_int(value)
    if year is not None and 1870 <= year <= 2100:
        return year
    return None


def to_episode_list(value):
    if isinstance(value, (int, str)) and not isinstance(value, bool):
        value = re.split(r"[,\s]+", str(value))

    if not isinstance(value, (list, tuple)):
        return None

    episodes = [episode for episode in (to_int(item) for item in value) if episode is not None]
    return episodes or None


# Ordered key spellings per logical field. First present, convertible value wins.
FIELD_ACCESSORS: Dict[str, Tuple[Tuple[str, ...], Callable]] = {
    "title": (
        ("title", "name", "filename", "release", "file", "slug", "displayName"),
        to_text,
    ),
    "magnet": (
        ("magnet", "magnetURI", "magnetUri", "magnet_link", "magnetLink", "link"),
        to_magnet,
    ),
    "info_hash": (("infoHash", "info_hash", "hash", "btih"), normalize_info_hash),
    "size": (
        ("size", "sizeBytes", "size_bytes", "bytes", "filesize", "length", "totalSize"),
        size_to_bytes,
    ),
    "seeders": (
        ("seeders", "seed", "seeds", "seedCount", "seed_count", "peers", "peer", "peerCount"),
        to_int,
    ),
    "quality": (("quality", "resolution"), normalize_quality),
    "release_group": (("releaseGroup", "release_group", "group", "uploader"), to_text),
    "source": (("source", "tracker", "provider", "indexer", "site"), to_text),
    "audio": (("audio", "audios", "languages", "language", "lang", "dubbing"), split_languages),
    "url": (
        ("url", "detailUrl", "detailsUrl", "details", "pageUrl", "page", "infoUrl", "link"),
        to_web_url,
    ),
    "imdb_id": (("imdbId", "imdb_id", "imdb", "imdbID"), to_imdb_id),
    "year": (("year", "releaseYear", "release_year"), to_year),
    "season": (("season", "seasonNumber", "season_number"), to_int),
    "seasons": (("seasons", "seasonList", "season_list"), to_episode_list),
    "episode": (("episode", "episodeNumber", "episode_number"), to_int),
    "episodes": (("episodes", "episodeList", "episode_list"), to_episode_list),
}

HIT_TITLE_KEYS = FIELD_ACCESSORS["title"][0] + (
    "originalTitle",
    "original_title",
    "alternativeTitle",
    "alternative_title",
)


def extract_field(hit: dict, field: str):
    keys, converter = FIELD_ACCESSORS[field]
    for key in keys:
        if key not in hit:
            continue
        value = converter(hit[key])
        if value is not None and value != []:
            return value
    return None


def parse_release(title: Optional[str]):
    if not title:
        return None
    try:
        return parse(title)
    except Exception as e:
        logger.debug(f"Could not parse release title {title}: {e}")
        return None


class HitInfo(BaseModel):
    """What a raw hit declares, either explicitly or through its release title."""

    title: Optional[str] = None
    imdb_id: Optional[str] = None
    year: Optional[int] = None
    seasons: List[int] = Field(default_factory=list)
    episode: Optional[int] = None
    episodes: List[int] = Field(default_factory=list)
    group: Optional[str] = None


def describe_hit(hit: dict):
    title = extract_field(hit, "title")
    parsed = parse_release(title)

    season = extract_field(hit, "season")
    seasons = [season] if season is not None else extract_field(hit, "seasons")
    if seasons is None:
        seasons = list(parsed.seasons) if parsed else []

    episode = extract_field(hit, "episode")
    episodes = extract_field(hit, "episodes")
    if episode is None and episodes is None and parsed:
        episodes = list(parsed.episodes)

    return HitInfo(
        title=title,
        imdb_id=extract_field(hit, "imdb_id"),
        year=extract_field(hit, "year") or (parsed.year if parsed and parsed.year else None),
        seasons=seasons,
        episode=episode,
        episodes=episodes or [],
        group=getattr(parsed, "group", None) if parsed else None,
    )


def hit_titles(hit: dict):
    titles = []
    for key in HIT_TITLE_KEYS:
        normalized = normalize(to_text(hit.get(key)))
        if normalized and normalized not in titles:
            titles.append(normalized)
    return titles


def is_relevant(hit: dict, info: HitInfo, request: MediaRequest):
    if info.imdb_id and request.imdb_id:
        return info.imdb_id == request.imdb_id

    targets = [normalize(title) for title in [*request.titles, request.query]]
    targets = [target for target in targets if target]
    candidates = hit_titles(hit)
    if targets and candidates:
        overlap = any(
            candidate in target or target in candidate
            for candidate in candidates
            for target in targets
        )
        if not overlap:
            return False

    if request.is_movie:
        if request.year and info.year and abs(info.year - request.year) > 1:
            return False
        return True

    if request.season is not None and info.seasons and request.season not in info.seasons:
        return False

    if request.episode is not None:
        if info.episode is not None and info.episode != request.episode:
            return False
        if info.episodes and request.episode not in info.episodes:
            return False

    return True


def build_search_queries(request: MediaRequest):
    queries = []

    if request.imdb_id:
        queries.append({"imdbId": request.imdb_id, "imdb_id": request.imdb_id})

    base = request.display_title
    if base:
        tokens = [base]
        if request.is_movie:
            if request.year:
                tokens.append(str(request.year))
        else:
            if request.season is not None:
                tokens.append(f"season {request.season}")
            if request.episode is not None:
                tokens.append(f"episode {request.episode}")
            if len(tokens) == 1 and request.episode_title:
                tokens.append(request.episode_title)
        text = " ".join(tokens)
        queries.append({"query": text, "q": text, "title": text})

    for query in queries:
        if request.media_type:
            query["type"] = request.media_type
        if request.season is not None:
            query["season"] = str(request.season)
        if request.episode is not None:
            query["episode"] = str(request.episode)
        query["limit"] = "50"

    return queries


def extract_results(payload):
    if isinstance(payload, list):
        return [hit for hit in payload if isinstance(hit, dict)]

    if isinstance(payload, dict):
        for key in ("data", "results", "torrents"):
            results = payload.get(key)
            if isinstance(results, list):
                return [hit for hit in results if isinstance(hit, dict)]

    return []


def format_display(
    title: str,
    quality: Optional[str],
    seeders: Optional[int],
    size: Optional[int],
    source: str,
    languages: List[str],
    url: Optional[str],
):
    headline = f"{title} [{quality}]" if quality else title

    metadata = []
    if seeders is not None:
        metadata.append(f"👤 {seeders}")
    if size:
        metadata.append(f"💾 {bytes_to_size(size)}")
    metadata.append(f"⚙️ {source}")

    lines = [headline, " ".join(metadata)]
    if languages:
        lines.append("🔊 " + " / ".join(get_language_emoji(language) for language in languages))
    if url:
        lines.append(f"🔗 {url}")

    return "\n".join(lines)


def dedupe_key(candidate: Candidate):
    return candidate.info_hash or candidate.magnet


class TorrentIndexer(SourceProvider):
    def __init__(
        self,
        session: aiohttp.ClientSession,
        base_url: Optional[str] = None,
        name: Optional[str] = None,
        metadata: Optional[CinemetaLookup] = None,
        max_results: Optional[int] = None,
    ):
        super().__init__(name or settings.INDEXER_NAME)
        self.session = session
        self.base_url = (base_url or settings.INDEXER_URL).rstrip("/")
        self.metadata = metadata
        self.max_results = max_results or settings.MAX_RESULTS

    async def discover(
        self,
        media_type: str,
        media_id: str,
        options: Optional[DiscoverOptions] = None,
    ) -> List[Candidate]:
        try:
            request = parse_media_id(media_type, media_id)
            await self.resolve_metadata(request)

            hits = []
            for params in build_search_queries(request):
                try:
                    results = await self.search(params)
                except DiscoveryError as e:
                    logger.warning(f"Exception while searching {self.name} for {media_id}: {e}")
                    results = []
                hits.extend(results)

            candidates = self.to_candidates(hits, request)
            logger.info(
                f"{len(candidates)} candidates kept out of {len(hits)} {self.name} results for {media_type}/{media_id}"
            )
            return candidates
        except Exception as e:
            logger.warning(f"Exception while discovering {media_type}/{media_id} on {self.name}: {e}")
            return []

    async def resolve_metadata(self, request: MediaRequest):
        if not request.imdb_id or self.metadata is None:
            return

        try:
            metadata = await self.metadata.get_metadata(
                request.media_type, request.imdb_id, request.season, request.episode
            )
        except DiscoveryError as e:
            logger.warning(f"Continuing without metadata for {request.imdb_id}: {e}")
            return

        request.titles = metadata.titles
        request.year = metadata.year
        request.episode_title = metadata.episode_title

    async def search(self, params: dict):
        timeout = (
            aiohttp.ClientTimeout(total=settings.INDEXER_TIMEOUT)
            if settings.INDEXER_TIMEOUT
            else None
        )
        try:
            async with self.session.get(
                f"{self.base_url}/api/v1/torrents/search",
                params=params,
                timeout=timeout,
            ) as response:
                if response.status >= 400:
                    raise DiscoveryError(
                        f"Failed to fetch torrents from {self.name}: {response.status}"
                    )
                payload = orjson.loads(await response.read())
        except DiscoveryError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise DiscoveryError(f"Failed to fetch torrents from {self.name}: {e}") from e

        return extract_results(payload)

    def to_candidates(self, hits: List[dict], request: MediaRequest):
        candidates = []
        seen = set()
        for hit in hits:
            try:
                info = describe_hit(hit)
                if not is_relevant(hit, info, request):
                    continue

                candidate = self.build_candidate(hit, info, request)
            except Exception as e:
                logger.warning(f"Skipping unreadable {self.name} result: {e}")
                continue

            if candidate is None:
                continue

            key = dedupe_key(candidate)
            if key in seen:
                continue
            seen.add(key)

            candidates.append(candidate)
            if len(candidates) >= self.max_results:
                break

        return candidates

    def build_candidate(self, hit: dict, info: HitInfo, request: MediaRequest):
        magnet = extract_field(hit, "magnet")
        info_hash = extract_field(hit, "info_hash") or extract_info_hash(magnet)
        if not magnet and info_hash:
            magnet = build_magnet(info_hash)
        if not magnet:
            return None

        title = info.title or f"{self.name} Torrent"
        size = extract_field(hit, "size")
        seeders = extract_field(hit, "seeders")
        quality = extract_field(hit, "quality") or infer_quality(title)
        source = extract_field(hit, "source") or self.name
        url = extract_field(hit, "url")

        return Candidate(
            name=f"[{source}] {quality}" if quality else f"[{source}]",
            title=format_display(
                title, quality, seeders, size, source, extract_field(hit, "audio") or [], url
            ),
            url=url,
            magnet=magnet,
            info_hash=info_hash,
            size=size,
            seeders=seeders,
            quality=quality,
            release_group=extract_field(hit, "release_group") or info.group,
            context=MatchContext(
                type=request.media_type,
                season=request.season,
                episode=request.episode,
                episode_title=request.episode_title,
                title=request.display_title,
                year=request.year,
                episode_list=info.episodes or None,
            ),
        )
