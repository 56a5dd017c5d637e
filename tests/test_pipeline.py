from urllib.parse import parse_qs, urlsplit

import pytest

from brazuca.debrid.availability import AvailabilityCache
from brazuca.pipeline import StreamPipeline, build_resolve_url, extract_stream_magnet
from brazuca.utils.general import build_magnet, decode_match_context, encode_match_context
from brazuca.utils.models import Candidate, MatchContext, settings

from conftest import (
    HASH_A,
    HASH_B,
    TOKEN,
    FakeInstantDebrid,
    FakeProvider,
    cached_payload,
    magnet_for,
)

CONTEXT = MatchContext(type="movie", title="Cidade de Deus", year=2002)


def candidates():
    return [
        Candidate(name="[Tracker] 720p", title="Filme A", magnet=magnet_for(HASH_A), context=CONTEXT),
        Candidate(name="[Tracker] 1080p", title="Filme B", info_hash=HASH_B, context=CONTEXT),
        Candidate(name="[Tracker]", title="Sem magnet"),
    ]


class DebridFactory:
    def __init__(self, debrid):
        self.debrid = debrid
        self.calls = []

    def __call__(self, session, token, ip=None):
        self.calls.append((session, token, ip))
        return self.debrid


class FakePlaybackDebrid:
    def __init__(self, url="https://download.real-debrid.com/d/XYZ/file.mkv"):
        self.url = url
        self.calls = []

    async def generate_download_link(self, magnet, context=None):
        self.calls.append((magnet, context))
        return self.url


@pytest.fixture(autouse=True)
def no_environment_token(monkeypatch):
    monkeypatch.setattr(settings, "REALDEBRID_TOKEN", None)


def test_extract_stream_magnet():
    assert extract_stream_magnet(Candidate(magnet=magnet_for(HASH_A))) == magnet_for(HASH_A)
    assert extract_stream_magnet(Candidate(url=magnet_for(HASH_B))) == magnet_for(HASH_B)
    assert extract_stream_magnet(Candidate(info_hash=HASH_A)) == build_magnet(HASH_A)
    assert extract_stream_magnet(Candidate(url="https://tracker.example/t/1")) is None


def test_build_resolve_url():
    url = build_resolve_url(TOKEN, magnet_for(HASH_A), CONTEXT)

    assert url.startswith(f"{settings.BASE_URL}{settings.URL_PREFIX}/resolve?")
    query = parse_qs(urlsplit(url).query)
    assert query["token"] == [TOKEN]
    assert query["magnet"] == [magnet_for(HASH_A)]
    assert decode_match_context(query["ctx"][0]) == CONTEXT

    assert "ctx=" not in build_resolve_url(TOKEN, magnet_for(HASH_A))


@pytest.mark.asyncio
async def test_without_credential_streams_point_at_magnets(clock):
    cache = AvailabilityCache(clock=clock)
    factory = DebridFactory(FakeInstantDebrid())
    pipeline = StreamPipeline(FakeProvider(candidates()), cache, factory)

    streams = await pipeline.list_streams("movie", "tt0317248")

    assert len(streams) == 2
    for stream in streams:
        assert stream.url.startswith("magnet:")
        assert stream.url == stream.behaviorHints.fallbackMagnet
        assert stream.behaviorHints.realDebridReady is False
        assert stream.behaviorHints.notWebReady is True
        assert stream.name.startswith("[RD] ")
    assert streams[1].url == build_magnet(HASH_B)
    assert streams[1].infoHash == HASH_B
    assert factory.calls == []
    assert cache.entries == {}


@pytest.mark.asyncio
async def test_with_credential_available_streams_come_first(clock):
    debrid = FakeInstantDebrid({"/": cached_payload(HASH_B)})
    factory = DebridFactory(debrid)
    provider = FakeProvider(candidates())
    pipeline = StreamPipeline(provider, AvailabilityCache(clock=clock), factory)

    streams = await pipeline.list_streams("movie", "tt0317248", TOKEN, ip="203.0.113.7")

    assert [stream.infoHash for stream in streams] == [HASH_B, HASH_A]
    first, second = streams
    assert first.name == "[RD+] [Tracker] 1080p"
    assert first.title == "⚡ Filme B"
    assert first.behaviorHints.realDebridReady is True
    assert second.name == "[RD] [Tracker] 720p"
    assert second.title == "Filme A"

    query = parse_qs(urlsplit(first.url).query)
    assert first.url.startswith(f"{settings.BASE_URL}{settings.URL_PREFIX}/resolve?")
    assert query["token"] == [TOKEN]
    assert query["magnet"] == [build_magnet(HASH_B)]
    assert decode_match_context(query["ctx"][0]) == CONTEXT
    assert first.behaviorHints.fallbackMagnet == build_magnet(HASH_B)

    assert factory.calls == [(None, TOKEN, "203.0.113.7")]
    assert provider.calls[0][2].realdebrid_token == TOKEN
    assert len(debrid.calls) == 1


@pytest.mark.asyncio
async def test_environment_token_is_used_when_request_has_none(monkeypatch, clock):
    monkeypatch.setattr(settings, "REALDEBRID_TOKEN", TOKEN)
    factory = DebridFactory(FakeInstantDebrid())
    pipeline = StreamPipeline(FakeProvider(candidates()), AvailabilityCache(clock=clock), factory)

    streams = await pipeline.list_streams("movie", "tt0317248", "too-short")

    assert all("/resolve?" in stream.url for stream in streams)
    assert factory.calls[0][1] == TOKEN


@pytest.mark.asyncio
async def test_nothing_processable(clock):
    pipeline = StreamPipeline(
        FakeProvider([Candidate(title="Sem magnet")]), AvailabilityCache(clock=clock)
    )

    assert await pipeline.list_streams("movie", "tt0317248", TOKEN) == []


@pytest.mark.asyncio
async def test_listing_never_raises(clock):
    pipeline = StreamPipeline(
        FakeProvider(error=RuntimeError("provider exploded")), AvailabilityCache(clock=clock)
    )

    assert await pipeline.list_streams("movie", "tt0317248", TOKEN) == []


@pytest.mark.asyncio
async def test_resolve_for_playback_decodes_context(clock):
    debrid = FakePlaybackDebrid()
    factory = DebridFactory(debrid)
    pipeline = StreamPipeline(FakeProvider(), AvailabilityCache(clock=clock), factory)

    url = await pipeline.resolve_for_playback(
        magnet_for(HASH_A), TOKEN, encode_match_context(CONTEXT), ip="203.0.113.7"
    )

    assert url == debrid.url
    assert debrid.calls == [(magnet_for(HASH_A), CONTEXT)]
    assert factory.calls == [(None, TOKEN, "203.0.113.7")]


@pytest.mark.asyncio
async def test_resolve_for_playback_ignores_broken_context(clock):
    debrid = FakePlaybackDebrid()
    pipeline = StreamPipeline(FakeProvider(), AvailabilityCache(clock=clock), DebridFactory(debrid))

    await pipeline.resolve_for_playback(magnet_for(HASH_A), TOKEN, "%%%")

    assert debrid.calls == [(magnet_for(HASH_A), None)]


@pytest.mark.asyncio
async def test_resolve_for_playback_requires_token(clock):
    pipeline = StreamPipeline(FakeProvider(), AvailabilityCache(clock=clock))

    with pytest.raises(ValueError):
        await pipeline.resolve_for_playback(magnet_for(HASH_A), None)
