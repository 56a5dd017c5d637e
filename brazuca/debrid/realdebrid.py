import asyncio
from typing import List, Optional

import aiohttp
import orjson

from brazuca.utils.exceptions import (
    INSPECT_FAILED,
    NO_FILES,
    NO_LINKS,
    SELECT_FAILED,
    SUBMIT_FAILED,
    AvailabilityError,
    PlaybackError,
)
from brazuca.utils.files import select_best_file
from brazuca.utils.logger import logger
from brazuca.utils.models import ArchiveFile, MatchContext, settings


class RealDebrid:
    api_url = "https://api.real-debrid.com/rest/1.0"

    def __init__(
        self,
        session: aiohttp.ClientSession,
        debrid_api_key: str,
        ip: Optional[str] = None,
        retry_delay: Optional[float] = None,
    ):
        self.session = session
        self.debrid_api_key = debrid_api_key
        self.ip = ip
        self.retry_delay = (
            settings.RESOLVE_RETRY_DELAY if retry_delay is None else retry_delay
        )

    @property
    def headers(self):
        return {"Authorization": f"Bearer {self.debrid_api_key}"}

    def with_ip(self, data: dict):
        if self.ip:
            data["ip"] = self.ip
        return data

    async def request(self, method: str, endpoint: str, data: Optional[dict] = None):
        async with self.session.request(
            method,
            f"{self.api_url}/{endpoint}",
            headers=self.headers,
            data=data,
        ) as response:
            if response.status >= 400:
                raise aiohttp.ClientResponseError(
                    response.request_info,
                    response.history,
                    status=response.status,
                    message=f"Real-Debrid answered {response.status} for {endpoint}",
                )
            body = await response.read()

        return orjson.loads(body) if body else None

    async def get_instant(self, hashes: List[str], separator: str = "/"):
        endpoint = "torrents/instantAvailability/" + separator.join(
            hash.upper() for hash in hashes
        )
        try:
            payload = await self.request("GET", endpoint)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise AvailabilityError(
                f"Exception while checking hash instant availability on Real-Debrid: {e}"
            ) from e

        return payload if isinstance(payload, dict) else {}

    async def add_magnet(self, magnet: str):
        try:
            add_magnet = await self.request(
                "POST", "torrents/addMagnet", data=self.with_ip({"magnet": magnet})
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise PlaybackError(SUBMIT_FAILED, f"Failed to add magnet: {e}") from e

        torrent_id = add_magnet.get("id") if isinstance(add_magnet, dict) else None
        if not torrent_id:
            raise PlaybackError(
                SUBMIT_FAILED, f"Failed to get magnet ID from Real-Debrid: {add_magnet}"
            )
        return str(torrent_id)

    async def get_info(self, torrent_id: str):
        try:
            info = await self.request("GET", f"torrents/info/{torrent_id}")
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise PlaybackError(INSPECT_FAILED, f"Failed to get torrent info: {e}") from e

        if not isinstance(info, dict):
            raise PlaybackError(INSPECT_FAILED, f"Unexpected torrent info: {info}")
        return info

    async def select_files(self, torrent_id: str, file_ids: str):
        try:
            await self.request(
                "POST",
                f"torrents/selectFiles/{torrent_id}",
                data=self.with_ip({"files": file_ids}),
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise PlaybackError(SELECT_FAILED, f"Failed to select files: {e}") from e

    async def unrestrict_link(self, link: str):
        try:
            unrestrict_link = await self.request(
                "POST", "unrestrict/link", data=self.with_ip({"link": link})
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise PlaybackError(NO_LINKS, f"Failed to unrestrict link: {e}") from e

        download = unrestrict_link.get("download") if isinstance(unrestrict_link, dict) else None
        if not download:
            raise PlaybackError(NO_LINKS, f"Unrestricted link has no download: {unrestrict_link}")
        return download

    async def get_download_link(self, torrent_id: str):
        info = await self.get_info(torrent_id)

        links = info.get("links") or []
        if len(links) == 0:
            raise PlaybackError(NO_LINKS, f"No download links available for torrent: {torrent_id}")

        if not links[0]:
            raise PlaybackError(NO_LINKS, f"Download link is undefined for torrent: {torrent_id}")

        return await self.unrestrict_link(links[0])

    async def generate_download_link(
        self, magnet: str, context: Optional[MatchContext] = None
    ):
        torrent_id = await self.add_magnet(magnet)

        magnet_info = await self.get_info(torrent_id)
        files = [
            ArchiveFile.model_validate(file)
            for file in magnet_info.get("files") or []
            if isinstance(file, dict) and "id" in file
        ]
        if len(files) == 0:
            raise PlaybackError(NO_FILES, f"No files found in torrent: {torrent_id}")

        selected_file = select_best_file(files, context)
        logger.info(f"Selected file {selected_file.path} ({selected_file.id}) of torrent {torrent_id}")
        await self.select_files(torrent_id, str(selected_file.id))

        magnet_info = await self.get_info(torrent_id)
        if magnet_info.get("status") == "downloaded":
            return await self.get_download_link(torrent_id)

        logger.info(
            f"Torrent {torrent_id} not downloaded yet ({magnet_info.get('status')}), checking again in {self.retry_delay}s"
        )
        await asyncio.sleep(self.retry_delay)

        magnet_info = await self.get_info(torrent_id)
        if magnet_info.get("status") == "downloaded":
            return await self.get_download_link(torrent_id)

        logger.info(
            f"Torrent {torrent_id} is still {magnet_info.get('status')} | Progress: {magnet_info.get('progress')}%, serving placeholder"
        )
        return settings.placeholder_url
