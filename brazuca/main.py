import os
import re
import signal
import sys
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request

from brazuca.api.core import main
from brazuca.api.stream import streams
from brazuca.utils.logger import logger
from brazuca.utils.models import settings


def mask_tokens(path: str):
    # Real-Debrid tokens and magnets travel in the path.
    if "/resolve/" in path:
        path = path.split("/resolve/")[0] + "/resolve/***"
    return re.sub(r"/[A-Za-z0-9]{21,}(?=/)", "/***", path)


class LoguruMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint):
        start_time = time.time()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception as e:
            logger.exception(f"Exception during request processing: {e}")
            raise
        finally:
            process_time = time.time() - start_time
            logger.log(
                "API",
                f"{request.method} {mask_tokens(request.url.path)} - {status_code} - {process_time:.2f}s",
            )
        return response


def start_log():
    logger.log("BRAZUCA", f"Server started on http://{settings.FASTAPI_HOST}:{settings.FASTAPI_PORT} - {settings.FASTAPI_WORKERS} workers")
    logger.log("BRAZUCA", f"Public Base URL: {settings.BASE_URL}{settings.URL_PREFIX}")
    logger.log("BRAZUCA", f"Indexer: {settings.INDEXER_NAME} - {settings.INDEXER_URL} - timeout: {settings.INDEXER_TIMEOUT or 'transport default'}")
    logger.log("BRAZUCA", f"Metadata: {settings.METADATA_URL}")
    logger.log("BRAZUCA", f"Environment Real-Debrid token: {bool(settings.REALDEBRID_TOKEN)}")
    logger.log("BRAZUCA", f"Availability cache: ttl {settings.AVAILABILITY_TTL}s - chunks of {settings.AVAILABILITY_CHUNK_SIZE}")
    logger.log("BRAZUCA", f"Resolve retry delay: {settings.RESOLVE_RETRY_DELAY}s")
    logger.log("BRAZUCA", f"Placeholder: {settings.placeholder_url}")
    if not settings.PLACEHOLDER_URL and not os.path.exists(settings.PLACEHOLDER_FILE):
        logger.warning(
            f"No placeholder video at {settings.PLACEHOLDER_FILE}, torrents still downloading will answer 404"
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    start_log()
    yield
    logger.log("BRAZUCA", "Shutting down.")


app = FastAPI(
    title="Brazuca RD",
    summary="Torrent streams for Stremio, resolved through Real-Debrid on play.",
    version="1.0.0",
    lifespan=lifespan,
    redoc_url=None,
)

app.add_middleware(LoguruMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(main)
app.include_router(streams)


def signal_handler(sig, frame):
    logger.log("BRAZUCA", "Exiting Gracefully.")
    sys.exit(0)


def run():
    signal.signal(signal.SIGINT, signal_handler)
    uvicorn.run(
        "brazuca.main:app",
        host=settings.FASTAPI_HOST,
        port=settings.FASTAPI_PORT,
        proxy_headers=True,
        forwarded_allow_ips="*",
        workers=settings.FASTAPI_WORKERS,
        log_config=None,
    )


if __name__ == "__main__":
    run()
