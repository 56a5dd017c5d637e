from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse

from brazuca.utils.general import extract_token, validate_token
from brazuca.utils.models import settings

main = APIRouter(prefix=f"{settings.URL_PREFIX}")


@main.get("/", status_code=200)
async def root():
    return RedirectResponse(f"{settings.URL_PREFIX}/manifest.json")


@main.get("/health", status_code=200)
async def health():
    return {"status": "ok"}


def build_manifest(has_token: bool):
    return {
        "id": settings.ADDON_ID,
        "name": f"{settings.ADDON_NAME}{' | RD' if has_token else ''}",
        "description": "Brazilian torrent streams resolved through Real-Debrid.",
        "version": "1.0.0",
        "catalogs": [],
        "resources": [
            {
                "name": "stream",
                "types": ["movie", "series"],
                "idPrefixes": ["tt"],
            }
        ],
        "types": ["movie", "series"],
        "behaviorHints": {"configurable": True, "configurationRequired": False},
    }


@main.get("/manifest.json")
async def manifest(request: Request):
    token = extract_token(request.query_params, request.headers)
    return build_manifest(token is not None)


@main.get("/{token}/manifest.json")
async def manifest_with_token(token: Optional[str] = None):
    return build_manifest(validate_token(token) is not None)
