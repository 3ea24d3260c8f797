import asyncio

from conftest import track
from matchmonkey.hosts.console import DryRunSink, StaticSeedSource
from matchmonkey.hosts.subsonic import (
    PlaybackPoller, SubsonicCatalog, SubsonicPlaylistSink, SubsonicSeedSource, queue_event,
    song_to_track,
)
from matchmonkey.models.records import MatchOptions, PlaybackEvent
from matchmonkey.utils.auth import subsonic_auth_params


class FakeSubsonicClient:
    username = "me"

    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    async def request(self, endpoint, extra_params=None):
        params = list(extra_params.items()) if isinstance(extra_params, dict) else list(extra_params or [])
        self.calls.append((endpoint, params))
        response = self.responses.get(endpoint, {})
        return response(params) if callable(response) else response


def test_auth_params_use_salted_token():
    params = subsonic_auth_params("me", "secret")
    assert params["u"] == "me"
    assert len(params["t"]) == 32 and params["s"]
    assert "p" not in params
    assert params["f"] == "json"


def test_song_to_track():
    song = {"id": 12, "title": "Song", "artist": "A", "bitRate": 256, "userRating": 4, "path": "a/b.mp3"}
    converted = song_to_track(song)
    assert (converted.id, converted.bitrate, converted.rating) == ("12", 256, 4)
    assert song_to_track({"title": "x", "userRating": 0}).rating is None


def test_catalog_filters_by_artist():
    client = FakeSubsonicClient({"search3": {"searchResult3": {"song": [
        {"id": "1", "title": "One", "artist": "Artist A"},
        {"id": "2", "title": "Two", "artist": "Artist A; Guest"},
        {"id": "3", "title": "Three", "artist": "Artist AB"},
    ]}}})

    rows = asyncio.run(SubsonicCatalog(client).find_tracks("artist a", ["One"], MatchOptions()))

    assert [t.id for t in rows["One"]] == ["1", "2"]


def test_playlist_sink_clears_and_adds():
    client = FakeSubsonicClient({
        "getPlaylist": {"playlist": {"entry": [{"id": "9"}, {"id": "8"}]}},
        "updatePlaylist": {"status": "ok"},
    })
    sink = SubsonicPlaylistSink(client)

    added = asyncio.run(sink.add_tracks({"id": "p1", "name": "Mix"}, [track("1", "a", "A"), track("2", "b", "B")],
                                        clear_first=True))

    assert added == 2
    updates = [params for endpoint, params in client.calls if endpoint == "updatePlaylist"]
    assert updates[0] == [("playlistId", "p1"), ("songIndexToRemove", 0), ("songIndexToRemove", 1)]
    assert updates[1] == [("playlistId", "p1"), ("songIdToAdd", "1"), ("songIdToAdd", "2")]


def test_enqueue_appends_and_skips_duplicates():
    client = FakeSubsonicClient({
        "getPlayQueue": {"playQueue": {"current": "5", "position": 1000, "entry": [{"id": "5"}, {"id": "1"}]}},
        "savePlayQueue": {"status": "ok"},
    })
    sink = SubsonicPlaylistSink(client)

    added = asyncio.run(sink.enqueue([track("1", "a", "A"), track("2", "b", "B")], ignore_dupes=True))

    assert added == 1
    saved = [params for endpoint, params in client.calls if endpoint == "savePlayQueue"][0]
    assert saved == [("id", "5"), ("id", "1"), ("id", "2"), ("current", "5"), ("position", 1000)]


def test_seed_source_prefers_starred_then_now_playing():
    client = FakeSubsonicClient({
        "getStarred2": {"starred2": {"song": [{"artist": "Starred", "title": "S"}]}},
        "getNowPlaying": {"nowPlaying": {"entry": {"artist": "Playing", "title": "P", "username": "me"}}},
    })
    assert asyncio.run(SubsonicSeedSource(client, use_starred=True).get_selection())[0].artist == "Starred"
    assert asyncio.run(SubsonicSeedSource(client).get_selection()) == []
    assert asyncio.run(SubsonicSeedSource(client).get_currently_playing()).artist == "Playing"


def test_queue_event_and_poller():
    assert queue_event({"current": "b", "entry": [{"id": "a"}, {"id": "b"}, {"id": "c"}]}) == \
        PlaybackEvent(total=3, cursor=2)
    assert queue_event({}) is None

    async def run():
        channel = asyncio.Queue()
        client = FakeSubsonicClient({"getPlayQueue": {"playQueue": {"current": "a", "entry": [{"id": "a"}]}}})
        poller = PlaybackPoller(client, channel, interval=0.01)
        await poller.poll_once()
        await poller.poll_once()
        return channel.qsize()

    assert asyncio.run(run()) == 1


def test_static_seed_source_and_dry_run_sink():
    source = StaticSeedSource.from_args(["Artist A"], ["Artist B - Song"])
    selection = asyncio.run(source.get_selection())
    assert [(s.artist, s.title) for s in selection] == [("Artist B", "Song"), ("Artist A", "")]

    sink = DryRunSink()
    assert asyncio.run(sink.enqueue([track("1", "a", "A")])) == 1
