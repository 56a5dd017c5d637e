import base64
import binascii
import math
import re
import unicodedata
from typing import Optional, Union

import orjson
from fastapi import Request
from pydantic import ValidationError

from brazuca.utils.logger import logger
from brazuca.utils.models import MatchContext

# Keyed by diacritic-folded, lower-cased language name or code.
languages_emojis = {
    "multi": "🌎",
    "dual": "🌎",
    "dual audio": "🌎",
    "pt": "🇵🇹",
    "portugues de portugal": "🇵🇹",
    "pt-br": "🇧🇷",
    "ptbr": "🇧🇷",
    "br": "🇧🇷",
    "portugues": "🇧🇷",
    "portuguese": "🇧🇷",
    "brazilian": "🇧🇷",
    "brazilian portuguese": "🇧🇷",
    "portugues brasileiro": "🇧🇷",
    "dublado": "🇧🇷",
    "nacional": "🇧🇷",
    "en": "🇬🇧",
    "eng": "🇬🇧",
    "english": "🇬🇧",
    "ingles": "🇬🇧",
    "es": "🇪🇸",
    "spa": "🇪🇸",
    "spanish": "🇪🇸",
    "espanol": "🇪🇸",
    "espanhol": "🇪🇸",
    "latino": "💃🏻",
    "fr": "🇫🇷",
    "french": "🇫🇷",
    "frances": "🇫🇷",
    "de": "🇩🇪",
    "german": "🇩🇪",
    "alemao": "🇩🇪",
    "it": "🇮🇹",
    "italian": "🇮🇹",
    "italiano": "🇮🇹",
    "ja": "🇯🇵",
    "japanese": "🇯🇵",
    "japones": "🇯🇵",
    "ko": "🇰🇷",
    "korean": "🇰🇷",
    "coreano": "🇰🇷",
    "zh": "🇨🇳",
    "chinese": "🇨🇳",
    "chines": "🇨🇳",
    "ru": "🇷🇺",
    "russian": "🇷🇺",
    "russo": "🇷🇺",
    "hi": "🇮🇳",
    "hindi": "🇮🇳",
    "ar": "🇸🇦",
    "arabic": "🇸🇦",
    "arabe": "🇸🇦",
    "pl": "🇵🇱",
    "polish": "🇵🇱",
    "polones": "🇵🇱",
    "nl": "🇳🇱",
    "dutch": "🇳🇱",
    "holandes": "🇳🇱",
    "tr": "🇹🇷",
    "turkish": "🇹🇷",
    "turco": "🇹🇷",
}

language_separators = re.compile(r"\s*[,/|;+]\s*")
info_hash_pattern = re.compile(r"^[a-fA-F0-9]{40}$")
base32_hash_pattern = re.compile(r"^[a-zA-Z2-7]{32}$")
btih_pattern = re.compile(r"btih:([^&]+)", re.IGNORECASE)
quality_pattern = re.compile(r"(4k|2160p|1440p|1080p|720p|480p)", re.IGNORECASE)
resolution_pattern = re.compile(r"^(\d{3,4})[pi]?$")
size_pattern = re.compile(
    r"(\d+(?:[.,]\d+)?)\s*(tib|tb|terabytes?|gib|gb|gigabytes?|mib|mb|megabytes?|kib|kb|kilobytes?|bytes?|b)\b",
    re.IGNORECASE,
)
size_multipliers = {
    "t": 1024**4,
    "g": 1024**3,
    "m": 1024**2,
    "k": 1024,
    "b": 1,
}

VIDEO_FILE_EXTENSIONS = [
    ".mp4", ".mkv", ".mov", ".avi", ".ts", ".m4v", ".wmv", ".flv", ".webm"
]


def fold_diacritics(text: str):
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def normalize(text: Optional[str]):
    """Fold diacritics, lower-case and drop everything but [a-z0-9]."""
    if not text:
        return ""

    return re.sub(r"[^a-z0-9]+", "", fold_diacritics(str(text)).lower())


def get_language_emoji(language: str):
    language_formatted = fold_diacritics(language).strip().lower()
    return languages_emojis.get(language_formatted, language)


def split_languages(value):
    if not value:
        return []

    if isinstance(value, (list, tuple)):
        tokens = []
        for item in value:
            tokens.extend(split_languages(item))
        return tokens

    return [token for token in language_separators.split(str(value)) if token.strip()]


def is_video(title: str):
    return title.lower().endswith(tuple(VIDEO_FILE_EXTENSIONS))


def bytes_to_size(bytes: int):
    sizes = ["B", "KB", "MB", "GB", "TB"]

    value = float(bytes)
    i = 0
    while value >= 1024 and i < len(sizes) - 1:
        value /= 1024
        i += 1

    if value >= 10:
        return f"{value:.1f} {sizes[i]}"
    return f"{int(round(value))} {sizes[i]}"


def size_to_bytes(size: Union[int, float, str, None]):
    if size is None or isinstance(size, bool):
        return None

    if isinstance(size, (int, float)):
        return int(size) if math.isfinite(size) and size >= 0 else None

    if not isinstance(size, str):
        return None

    trimmed = size.strip()
    if not trimmed:
        return None

    if trimmed.isdigit():
        return int(trimmed)

    match = size_pattern.search(trimmed)
    if not match:
        return None

    number, unit = match.groups()
    if "," in number:
        integer, fraction = number.split(",", 1)
        number = integer + fraction if len(fraction) == 3 else f"{integer}.{fraction}"

    value = float(number) * size_multipliers[unit[0].lower()]
    if not math.isfinite(value):
        return None

    return int(round(value))


def normalize_quality(quality):
    if quality is None or isinstance(quality, bool):
        return None

    if isinstance(quality, (int, float)):
        quality = str(int(quality))

    value = str(quality).strip().lower()
    if not value:
        return None

    if value in ("4k", "uhd") or "2160" in value and "p" not in value:
        return "4K"

    match = resolution_pattern.match(value)
    if match:
        return f"{int(match.group(1))}p"

    return infer_quality(value)


def infer_quality(title: Optional[str]):
    if not title:
        return None

    match = quality_pattern.search(title)
    if not match:
        return None

    quality = match.group(1).lower()
    if quality == "4k":
        return "4K"

    return quality


def normalize_info_hash(value: Optional[str]):
    if not value or not isinstance(value, str):
        return None

    value = value.strip()
    if info_hash_pattern.match(value):
        return value.lower()

    if base32_hash_pattern.match(value):
        try:
            return base64.b32decode(value.upper()).hex()
        except binascii.Error:
            return None

    return None


def extract_info_hash(magnet: Optional[str]):
    if not magnet:
        return None

    match = btih_pattern.search(magnet)
    if not match:
        return None

    return normalize_info_hash(match.group(1))


def build_magnet(info_hash: str):
    return f"magnet:?xt=urn:btih:{info_hash}"


def is_magnet(value) -> bool:
    return isinstance(value, str) and value.strip().lower().startswith("magnet:")


def sanitize_external_url(url: Optional[str]):
    if not url or not isinstance(url, str):
        return None

    trimmed = url.strip()
    if not trimmed.lower().startswith("https://"):
        return None

    return "https://" + trimmed[len("https://"):]


def encode_match_context(context: Optional[MatchContext]):
    if context is None:
        return None

    data = orjson.dumps(context.model_dump(by_alias=True, exclude_none=True))
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def decode_match_context(encoded: Optional[str]):
    if not encoded:
        return None

    try:
        payload = base64.urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4))
        data = orjson.loads(payload)
        if not isinstance(data, dict):
            return None
        return MatchContext.model_validate(data)
    except (binascii.Error, ValueError, ValidationError) as e:
        logger.debug(f"Ignoring undecodable match context: {e}")
        return None


def validate_token(token: Optional[str]):
    # Real-Debrid tokens are long; anything shorter is an accidental input.
    if token and len(token) > 20:
        return token
    return None


def extract_token(
    query=None,
    headers=None,
    extra: Optional[dict] = None,
    path_token: Optional[str] = None,
):
    query = query or {}
    headers = headers or {}
    extra = extra or {}

    token = (
        query.get("realdebridToken")
        or query.get("rdToken")
        or query.get("token")
        or headers.get("x-rd-token")
        or extra.get("realdebridToken")
        or extra.get("token")
        or path_token
    )

    return validate_token(token)


def get_client_ip(request: Request):
    if "cf-connecting-ip" in request.headers:
        return request.headers["cf-connecting-ip"]
    return request.client.host if request.client else None
