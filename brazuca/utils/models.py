from typing import List, Optional, Union
from urllib.parse import urlsplit, urlunsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def normalize_base_url(value: Optional[str]):
    if not value:
        return None

    candidate = value.strip()
    if not candidate:
        return None

    if not candidate.lower().startswith(("http://", "https://")):
        candidate = f"https://{candidate}"

    parsed = urlsplit(candidate)
    if not parsed.netloc:
        return None

    path = parsed.path.rstrip("/")
    return urlunsplit(("https", parsed.netloc, path, "", "")).rstrip("/")


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    ADDON_ID: Optional[str] = "community.brazuca.rd"
    ADDON_NAME: Optional[str] = "Brazuca RD"
    FASTAPI_HOST: Optional[str] = "0.0.0.0"
    FASTAPI_PORT: Optional[int] = 7000
    FASTAPI_WORKERS: Optional[int] = 1
    BASE_URL: Optional[str] = None
    VERCEL_URL: Optional[str] = None
    URL_PREFIX: Optional[str] = ""
    LOG_LEVEL: Optional[str] = "INFO"
    REALDEBRID_TOKEN: Optional[str] = None
    INDEXER_URL: Optional[str] = "http://127.0.0.1:8080"
    INDEXER_NAME: Optional[str] = "Indexer"
    INDEXER_TIMEOUT: Optional[int] = None
    METADATA_URL: Optional[str] = "https://v3-cinemeta.strem.io"
    MAX_RESULTS: Optional[int] = 60
    AVAILABILITY_TTL: Optional[int] = 300
    AVAILABILITY_CHUNK_SIZE: Optional[int] = 50
    RESOLVE_RETRY_DELAY: Optional[float] = 5.0
    PLACEHOLDER_PATH: Optional[str] = "/placeholder/downloading.mp4"
    PLACEHOLDER_FILE: Optional[str] = "brazuca/assets/downloading.mp4"
    PLACEHOLDER_URL: Optional[str] = None

    @field_validator("LOG_LEVEL")
    @classmethod
    def set_log_level(cls, v):
        return (v or "INFO").upper()

    @model_validator(mode="after")
    def set_base_url(self):
        self.BASE_URL = (
            normalize_base_url(self.BASE_URL)
            or normalize_base_url(self.VERCEL_URL)
            or normalize_base_url("https://brazuca-rd.vercel.app")
        )
        return self

    @property
    def placeholder_url(self):
        if self.PLACEHOLDER_URL:
            return self.PLACEHOLDER_URL
        return f"{self.BASE_URL}{self.PLACEHOLDER_PATH}"


settings = AppSettings()


class MatchContext(BaseModel):
    """What a candidate is expected to contain, used to pick a file at playback."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: Optional[str] = None
    season: Optional[int] = None
    episode: Optional[int] = None
    episode_title: Optional[str] = Field(default=None, alias="episodeTitle")
    title: Optional[str] = None
    year: Optional[int] = None
    episode_list: Optional[List[int]] = Field(default=None, alias="episodeList")


class Candidate(BaseModel):
    name: Optional[str] = None
    title: Optional[str] = None
    url: Optional[str] = None
    magnet: Optional[str] = None
    info_hash: Optional[str] = None
    size: Optional[int] = None
    seeders: Optional[int] = None
    quality: Optional[str] = None
    release_group: Optional[str] = None
    cached: Optional[bool] = None
    context: Optional[MatchContext] = None


class AvailabilityEntry(BaseModel):
    cached: bool
    expires: float


class ArchiveFile(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: Union[int, str]
    path: str = ""
    bytes: int = 0
    selected: Optional[int] = None


class StreamBehaviorHints(BaseModel):
    notWebReady: Optional[bool] = None
    realDebridReady: Optional[bool] = None
    fallbackMagnet: Optional[str] = None


class StremioStream(BaseModel):
    name: Optional[str] = None
    title: Optional[str] = None
    url: str
    behaviorHints: Optional[StreamBehaviorHints] = None
    infoHash: Optional[str] = None
    externalUrl: Optional[str] = None
    size: Optional[int] = None
    seeders: Optional[int] = None
    quality: Optional[str] = None
    releaseGroup: Optional[str] = None
