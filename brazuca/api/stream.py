import os
from typing import Optional

import aiohttp
from fastapi import APIRouter, Request
from fastapi.responses import FileResponse, JSONResponse, RedirectResponse, Response

from brazuca.debrid.availability import AvailabilityCache
from brazuca.pipeline import StreamPipeline
from brazuca.scrapers.indexer import TorrentIndexer
from brazuca.utils.exceptions import PlaybackError
from brazuca.utils.general import extract_token, get_client_ip
from brazuca.utils.logger import logger
from brazuca.utils.metadata import CinemetaLookup
from brazuca.utils.models import settings

streams = APIRouter(prefix=f"{settings.URL_PREFIX}")

availability_cache = AvailabilityCache()


def get_pipeline(session: aiohttp.ClientSession):
    provider = TorrentIndexer(session, metadata=CinemetaLookup(session))
    return StreamPipeline(provider, availability_cache)


async def list_streams(request: Request, type: str, id: str, token: Optional[str]):
    async with aiohttp.ClientSession(raise_for_status=True) as session:
        results = await get_pipeline(session).list_streams(
            type, id, token, session, get_client_ip(request)
        )

    return {"streams": [stream.model_dump(exclude_none=True) for stream in results]}


@streams.get("/stream/{type}/{id}.json")
async def stream(request: Request, type: str, id: str):
    token = extract_token(request.query_params, request.headers)
    return await list_streams(request, type, id, token)


@streams.get("/{path_token}/stream/{type}/{id}.json")
async def stream_with_token(request: Request, path_token: str, type: str, id: str):
    token = extract_token(request.query_params, request.headers, path_token=path_token)
    return await list_streams(request, type, id, token)


def probe_success():
    return Response(
        status_code=204,
        headers={"cache-control": "no-store, max-age=0", "x-brazuca-rd-probe": "ok"},
    )


async def resolve(
    request: Request, token: Optional[str], magnet: Optional[str], ctx: Optional[str]
):
    if request.method == "HEAD":
        return probe_success()

    if not magnet:
        return JSONResponse({"error": "Magnet link is required"}, status_code=400)

    if not token:
        return JSONResponse({"error": "Real-Debrid token is required"}, status_code=400)

    try:
        async with aiohttp.ClientSession(raise_for_status=True) as session:
            direct_url = await get_pipeline(session).resolve_for_playback(
                magnet, token, ctx, session, get_client_ip(request)
            )
    except PlaybackError as e:
        logger.error(f"Magnet processing error: {e}")
        return JSONResponse(
            {"error": "Failed to process magnet link", "kind": e.kind}, status_code=500
        )

    return RedirectResponse(direct_url, status_code=302)


@streams.api_route("/resolve", methods=["GET", "HEAD"])
async def resolve_query(
    request: Request,
    token: Optional[str] = None,
    magnet: Optional[str] = None,
    ctx: Optional[str] = None,
):
    return await resolve(request, token, magnet, ctx)


@streams.api_route("/resolve/{token}/{magnet:path}", methods=["GET", "HEAD"])
async def resolve_path(request: Request, token: str, magnet: str, ctx: Optional[str] = None):
    return await resolve(request, token, magnet, ctx)


@streams.get(settings.PLACEHOLDER_PATH)
async def placeholder():
    if not os.path.exists(settings.PLACEHOLDER_FILE):
        logger.warning(f"Placeholder asset missing at {settings.PLACEHOLDER_FILE}")
        return Response(status_code=404)

    return FileResponse(settings.PLACEHOLDER_FILE, media_type="video/mp4")
