from typing import Callable, List, Optional
from urllib.parse import urlencode

import aiohttp

from brazuca.debrid.availability import AvailabilityCache, apply_availability
from brazuca.debrid.realdebrid import RealDebrid
from brazuca.scrapers.base import DiscoverOptions, SourceProvider
from brazuca.utils.general import (
    build_magnet,
    decode_match_context,
    encode_match_context,
    extract_info_hash,
    is_magnet,
    sanitize_external_url,
    validate_token,
)
from brazuca.utils.logger import logger
from brazuca.utils.models import (
    Candidate,
    MatchContext,
    StreamBehaviorHints,
    StremioStream,
    settings,
)


def extract_stream_magnet(candidate: Candidate):
    if is_magnet(candidate.magnet):
        return candidate.magnet
    if is_magnet(candidate.url):
        return candidate.url
    if candidate.info_hash:
        return build_magnet(candidate.info_hash)
    return None


def build_resolve_url(token: str, magnet: str, context: Optional[MatchContext] = None):
    params = {"token": token, "magnet": magnet}
    encoded_context = encode_match_context(context)
    if encoded_context:
        params["ctx"] = encoded_context

    return f"{settings.BASE_URL}{settings.URL_PREFIX}/resolve?{urlencode(params)}"


def create_stream_metadata(candidate: Candidate, url: str, fallback_magnet: str):
    fallback_title = candidate.title or "Unknown file"
    realdebrid_ready = bool(candidate.cached)
    base_name = candidate.name or f"[{settings.ADDON_NAME}] {fallback_title}"

    return StremioStream(
        name=f"[{'RD+' if realdebrid_ready else 'RD'}] {base_name}",
        title=fallback_title,
        url=url,
        behaviorHints=StreamBehaviorHints(
            notWebReady=True,
            realDebridReady=realdebrid_ready,
            fallbackMagnet=fallback_magnet,
        ),
        infoHash=candidate.info_hash,
        externalUrl=sanitize_external_url(candidate.url),
        size=candidate.size,
        seeders=candidate.seeders,
        quality=candidate.quality,
        releaseGroup=candidate.release_group,
    )


class StreamPipeline:
    def __init__(
        self,
        provider: SourceProvider,
        availability: AvailabilityCache,
        debrid_factory: Callable[..., RealDebrid] = RealDebrid,
    ):
        self.provider = provider
        self.availability = availability
        self.debrid_factory = debrid_factory

    async def list_streams(
        self,
        media_type: str,
        media_id: str,
        token: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        ip: Optional[str] = None,
    ) -> List[StremioStream]:
        try:
            return await self.build_streams(media_type, media_id, token, session, ip)
        except Exception as e:
            logger.error(f"Stream processing error for {media_type}/{media_id}: {e}")
            return []

    async def build_streams(self, media_type, media_id, token, session, ip):
        token = validate_token(token) or validate_token(settings.REALDEBRID_TOKEN)

        candidates = await self.provider.discover(
            media_type, media_id, DiscoverOptions(realdebrid_token=token)
        )

        processable = []
        for candidate in candidates:
            magnet = extract_stream_magnet(candidate)
            if not magnet:
                logger.debug(f"Skipping stream without magnet/infoHash: {candidate.name or candidate.title}")
                continue
            candidate.magnet = magnet
            candidate.info_hash = candidate.info_hash or extract_info_hash(magnet)
            processable.append(candidate)

        if len(processable) == 0:
            logger.info(f"No processable magnet streams were found for {media_type}/{media_id}")
            return []

        debrid = self.debrid_factory(session, token, ip) if token else None
        if debrid is None:
            logger.debug("No Real-Debrid token provided, returning magnet fallback streams")

        cached_hashes = await self.availability.lookup(
            {candidate.info_hash for candidate in processable if candidate.info_hash},
            debrid,
        )
        apply_availability(processable, cached_hashes)

        streams = []
        for candidate in processable:
            url = (
                build_resolve_url(token, candidate.magnet, candidate.context)
                if token
                else candidate.magnet
            )
            streams.append(create_stream_metadata(candidate, url, candidate.magnet))

        streams.sort(key=lambda stream: not stream.behaviorHints.realDebridReady)

        logger.info(f"Returning {len(streams)} streams for {media_type}/{media_id}")
        return streams

    async def resolve_for_playback(
        self,
        magnet: str,
        token: str,
        encoded_context: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        ip: Optional[str] = None,
    ) -> str:
        if not token:
            raise ValueError("Real-Debrid token is required for playback")

        context = decode_match_context(encoded_context)
        logger.info(f"Processing magnet for playback: {magnet[:50]}...")

        debrid = self.debrid_factory(session, token, ip)
        direct_url = await debrid.generate_download_link(magnet, context)

        logger.info(f"Successfully processed magnet for playback: {direct_url}")
        return direct_url
