import asyncio

import pytest

from conftest import lastfm_route, make_gateway
from matchmonkey.api.gateway import NotFoundError, ServiceError, ThrottledError, TransientServiceError
from matchmonkey.api.lastfm import LastFMAPI, check_lastfm_error
from matchmonkey.storage.cache import RunCache


def test_check_lastfm_error_maps_codes():
    check_lastfm_error({"similarartists": {}})
    with pytest.raises(NotFoundError):
        check_lastfm_error({"error": 6, "message": "not found"})
    with pytest.raises(ThrottledError):
        check_lastfm_error({"error": 29, "message": "slow down"})
    with pytest.raises(TransientServiceError):
        check_lastfm_error({"error": 16})
    with pytest.raises(ServiceError):
        check_lastfm_error({"error": 10, "message": "Invalid API key"})


def test_similar_artists_and_top_tracks_are_normalized():
    gateway, transport = make_gateway(lastfm_route(
        similar={"Artist A": ["Artist B", "Artist C"]},
        top_tracks={"Artist B": ["Song 1", "Song 2"]},
    ))
    api = LastFMAPI(gateway, RunCache(), "key")

    async def run():
        return await api.get_similar_artists("Artist A"), await api.get_top_tracks("Artist B")

    similar, top = asyncio.run(run())
    assert [s["name"] for s in similar] == ["Artist B", "Artist C"]
    assert similar[0]["match"] == 0.5
    assert [t.title for t in top] == ["Song 1", "Song 2"]
    assert top[0].rank == 1 and top[0].playcount == 10000
    assert transport.calls[0]["params"]["api_key"] == "key"


def test_single_object_collapsed_by_service_is_a_list():
    def route(method, url, params):
        return {"toptracks": {"track": {"name": "Only Song", "playcount": "7"}}}

    gateway, _ = make_gateway(route)
    api = LastFMAPI(gateway, RunCache(), "key")

    tracks = asyncio.run(api.get_top_tracks("Solo"))
    assert [t.title for t in tracks] == ["Only Song"]
    assert tracks[0].rank == 1


def test_unknown_artist_returns_empty_and_is_cached():
    gateway, transport = make_gateway(lastfm_route())
    cache = RunCache()
    api = LastFMAPI(gateway, cache, "key")

    async def run():
        first = await api.get_similar_artists("Nobody")
        second = await api.get_similar_artists("nobody")
        return first, second

    assert asyncio.run(run()) == ([], [])
    assert len(transport.calls) == 1


def test_missing_api_key_skips_network():
    gateway, transport = make_gateway(lastfm_route(similar={"A": ["B"]}))
    api = LastFMAPI(gateway, RunCache(), None)

    assert asyncio.run(api.get_similar_artists("A")) == []
    assert transport.calls == []
    assert not api.available


def test_prefixes_restored_before_query():
    gateway, transport = make_gateway(lastfm_route(similar={"The Beatles": ["The Kinks"]}))
    api = LastFMAPI(gateway, RunCache(), "key", prefixes=["The"])

    similar = asyncio.run(api.get_similar_artists("Beatles, The"))
    assert [s["name"] for s in similar] == ["The Kinks"]
    assert transport.calls[0]["params"]["artist"] == "The Beatles"
