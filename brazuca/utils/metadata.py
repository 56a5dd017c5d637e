import asyncio
import re
from typing import List, Optional

import aiohttp
import orjson
from pydantic import BaseModel, Field

from brazuca.utils.exceptions import DiscoveryError
from brazuca.utils.logger import logger
from brazuca.utils.models import settings


class MediaMetadata(BaseModel):
    titles: List[str] = Field(default_factory=list)
    year: Optional[int] = None
    episode_title: Optional[str] = None


def parse_year(value) -> Optional[int]:
    if isinstance(value, int) and not isinstance(value, bool):
        return value

    if isinstance(value, str):
        match = re.match(r"\s*(\d{4})", value)
        if match:
            return int(match.group(1))

    return None


def find_episode_title(videos, season: Optional[int], episode: Optional[int]):
    if episode is None or not isinstance(videos, list):
        return None

    for video in videos:
        if not isinstance(video, dict):
            continue
        if video.get("episode") != episode:
            continue
        if season is not None and video.get("season") != season:
            continue

        title = video.get("name") or video.get("title")
        if isinstance(title, str) and title.strip():
            return title.strip()

    return None


def extract_metadata(data: dict, season: Optional[int], episode: Optional[int]):
    meta = data.get("meta") if isinstance(data, dict) else None
    if not isinstance(meta, dict):
        raise DiscoveryError("Metadata response carries no meta object")

    aliases = meta.get("aliases")
    if not isinstance(aliases, list):
        aliases = []

    titles = []
    for title in [meta.get("name"), *aliases]:
        if isinstance(title, str) and title.strip() and title.strip() not in titles:
            titles.append(title.strip())

    return MediaMetadata(
        titles=titles,
        year=parse_year(meta.get("year")) or parse_year(meta.get("releaseInfo")),
        episode_title=find_episode_title(meta.get("videos"), season, episode),
    )


class CinemetaLookup:
    """Canonical titles, release year and episode titles from Cinemeta."""

    def __init__(self, session: aiohttp.ClientSession, base_url: Optional[str] = None):
        self.session = session
        self.base_url = (base_url or settings.METADATA_URL).rstrip("/")

    async def get_metadata(
        self,
        media_type: str,
        imdb_id: str,
        season: Optional[int] = None,
        episode: Optional[int] = None,
    ) -> MediaMetadata:
        meta_type = "series" if media_type in ("series", "anime") else "movie"
        try:
            async with self.session.get(
                f"{self.base_url}/meta/{meta_type}/{imdb_id}.json"
            ) as response:
                if response.status >= 400:
                    raise DiscoveryError(
                        f"Metadata lookup for {imdb_id} failed with status {response.status}"
                    )
                data = orjson.loads(await response.read())
        except DiscoveryError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise DiscoveryError(f"Metadata lookup for {imdb_id} failed: {e}") from e

        try:
            metadata = extract_metadata(data, season, episode)
        except (TypeError, AttributeError, ValueError) as e:
            raise DiscoveryError(f"Malformed metadata for {imdb_id}: {e}") from e

        logger.debug(
            f"Metadata for {imdb_id}: titles={metadata.titles} year={metadata.year} episode_title={metadata.episode_title}"
        )
        return metadata
