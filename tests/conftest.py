"""Test configuration and fake collaborators shared by the test modules."""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from matchmonkey.api.gateway import GatewayResponse, ServiceGateway  # noqa: E402
from matchmonkey.interfaces import SourceTrack  # noqa: E402
from matchmonkey.models.records import MatchedTrack  # noqa: E402
from matchmonkey.utils.text import artist_key  # noqa: E402


class FakeClock:
    """Monotonic clock that only moves when sleep() is awaited or advance() is called."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeTransport:
    """Replacement for ServiceGateway._send driven by a routing function."""

    def __init__(self, route: Callable[[str, str, Dict[str, str]], Any]):
        self.route = route
        self.calls: List[Dict[str, Any]] = []

    async def __call__(self, method, url, params, json_body):
        params = dict(params or {})
        await asyncio.sleep(0)
        self.calls.append({"method": method, "url": url, "params": params})
        result = self.route(method, url, params)
        if isinstance(result, GatewayResponse):
            return result
        return GatewayResponse(200, json.dumps(result))


def make_gateway(route, clock: Optional[FakeClock] = None, **kwargs) -> Tuple[ServiceGateway, FakeTransport]:
    clock = clock or FakeClock()
    options = {"min_interval": 0.0, "max_retries": 2}
    options.update(kwargs)
    gateway = ServiceGateway(clock=clock, sleep=clock.sleep, **options)
    transport = FakeTransport(route)
    gateway._send = transport
    return gateway, transport


def lastfm_route(similar=None, top_tracks=None, similar_tracks=None, tags=None, tag_artists=None):
    """Build a routing function answering Last.fm methods from plain dicts.

    Keys are artist names (or "artist|title" for similar tracks, tag names
    for tag artists); unknown keys answer with Last.fm error 6.
    """
    similar = similar or {}
    top_tracks = top_tracks or {}
    similar_tracks = similar_tracks or {}
    tags = tags or {}
    tag_artists = tag_artists or {}
    not_found = {"error": 6, "message": "The artist you supplied could not be found"}

    def route(method, url, params):
        name = params.get("method")
        artist = params.get("artist", "")
        if name == "artist.getSimilar":
            if artist not in similar:
                return not_found
            return {"similarartists": {"artist": [{"name": n, "match": "0.5"} for n in similar[artist]]}}
        if name == "artist.getTopTracks":
            if artist not in top_tracks:
                return not_found
            return {"toptracks": {"track": [
                {"name": t, "playcount": str(1000 * (10 - i)), "@attr": {"rank": str(i + 1)}}
                for i, t in enumerate(top_tracks[artist])
            ]}}
        if name == "track.getSimilar":
            key = f"{artist}|{params.get('track')}"
            if key not in similar_tracks:
                return not_found
            return {"similartracks": {"track": [
                {"name": title, "artist": {"name": a}, "match": str(score)}
                for a, title, score in similar_tracks[key]
            ]}}
        if name == "artist.getInfo":
            return {"artist": {"name": artist, "tags": {"tag": [{"name": t} for t in tags.get(artist, [])]}}}
        if name == "tag.getTopArtists":
            names = tag_artists.get(params.get("tag"), [])
            return {"topartists": {"artist": [{"name": n} for n in names]}}
        return not_found

    return route


class FakeCatalog:
    """CatalogQuery over an in-memory list of tracks."""

    def __init__(self, tracks: Sequence[MatchedTrack] = ()):
        self.tracks = list(tracks)
        self.calls: List[tuple] = []

    async def find_tracks(self, artist, titles, options):
        self.calls.append((artist, list(titles)))
        rows = [t for t in self.tracks if artist_key(t.artist) == artist_key(artist)]
        return {title: rows for title in titles}


class FakeSink:
    """PlaylistSink recording every call."""

    def __init__(self, existing: Sequence[str] = (), fail: bool = False):
        self.playlists: Dict[str, List[MatchedTrack]] = {name: [] for name in existing}
        self.created: List[tuple] = []
        self.cleared: List[str] = []
        self.committed: List[str] = []
        self.queue: List[MatchedTrack] = []
        self.enqueue_calls: List[dict] = []
        self.fail = fail

    async def find_playlist(self, name):
        return {"name": name} if name in self.playlists else None

    async def create_playlist(self, name, parent=None):
        if self.fail:
            raise RuntimeError("database is locked")
        self.created.append((name, parent))
        self.playlists[name] = []
        return {"name": name}

    async def add_tracks(self, target, tracks, clear_first=False, ignore_dupes=False):
        if clear_first:
            self.cleared.append(target["name"])
            self.playlists[target["name"]] = []
        self.playlists[target["name"]].extend(tracks)
        return len(tracks)

    async def commit(self, target):
        self.committed.append(target["name"])

    async def enqueue(self, tracks, clear=False, save_history=True, ignore_dupes=False):
        if self.fail:
            raise RuntimeError("queue unavailable")
        self.enqueue_calls.append({"clear": clear, "ignore_dupes": ignore_dupes, "count": len(tracks)})
        self.queue.extend(tracks)
        return len(tracks)


class FakeNotifier:
    def __init__(self):
        self.toasts: List[tuple] = []
        self.progress_calls: List[tuple] = []

    def toast(self, message, level="info"):
        self.toasts.append((message, level))

    def progress(self, message, fraction):
        self.progress_calls.append((message, fraction))


class FakeSeedSource:
    def __init__(self, selection: Sequence[SourceTrack] = (), playing: Optional[SourceTrack] = None):
        self.selection = list(selection)
        self.playing = playing

    async def get_selection(self):
        return list(self.selection)

    async def get_currently_playing(self):
        return self.playing


def track(id, title, artist, bitrate=320, rating=None, album="", path=""):
    return MatchedTrack(id=id, title=title, artist=artist, album=album, rating=rating,
                        bitrate=bitrate, path=path)


@pytest.fixture
def clock():
    return FakeClock()
