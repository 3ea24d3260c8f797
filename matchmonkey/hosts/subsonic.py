"""Subsonic/Navidrome host adapter: catalog, playlists, queue and seeds"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import aiohttp
import requests

from matchmonkey.interfaces import SourceTrack
from matchmonkey.models.config_models import SubsonicConfig
from matchmonkey.models.records import MatchedTrack, MatchOptions, PlaybackEvent
from matchmonkey.utils.auth import subsonic_auth_params
from matchmonkey.utils.text import artist_key, split_artists


logger = logging.getLogger(__name__)

Params = Union[Dict[str, Any], Sequence[Tuple[str, Any]]]

ARTIST_SONG_LIMIT = 500


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def song_to_track(song: Dict[str, Any]) -> MatchedTrack:
    """Convert a Subsonic song object into a MatchedTrack."""
    rating = song.get("userRating")
    return MatchedTrack(
        id=str(song.get("id", "")) or None,
        title=song.get("title", ""),
        artist=song.get("artist", ""),
        album=song.get("album", ""),
        rating=int(rating) if isinstance(rating, (int, float)) and rating > 0 else None,
        bitrate=int(song.get("bitRate") or 0),
        path=song.get("path", ""),
        extra={"genre": song.get("genre", "")},
    )


def song_to_source(song: Dict[str, Any]) -> SourceTrack:
    return SourceTrack(
        artist=song.get("artist", ""),
        title=song.get("title", ""),
        genre=song.get("genre", "") or "",
        album=song.get("album", "") or "",
    )


class SubsonicClient:
    """Minimal async Subsonic REST client."""

    def __init__(self, url: str, username: str, password: str, timeout: float = 30):
        """Initialize Subsonic client.

        Args:
            url: Server URL
            username: Username for authentication
            password: Password for authentication
            timeout: Request timeout in seconds
        """
        self.url = url.rstrip("/")
        self.username = username
        self.password = password
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_config(cls, config: SubsonicConfig) -> "SubsonicClient":
        return cls(config.url, config.username, config.password)

    def _params(self, extra: Optional[Params]) -> List[Tuple[str, Any]]:
        params = list(subsonic_auth_params(self.username, self.password).items())
        if extra:
            items = extra.items() if isinstance(extra, dict) else extra
            params.extend((k, v) for k, v in items)
        return params

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def request(self, endpoint: str, extra_params: Optional[Params] = None) -> Optional[dict]:
        """Make Subsonic API request.

        Args:
            endpoint: API endpoint, e.g. "search3"
            extra_params: Additional parameters; a sequence of pairs allows repeated keys

        Returns:
            subsonic-response body or None on error
        """
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))

        try:
            async with self._session.get(f"{self.url}/rest/{endpoint}",
                                         params=self._params(extra_params)) as response:
                response.raise_for_status()
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error("Subsonic request error (%s): %s", endpoint, str(e)[:200])
            return None

        body = (data or {}).get("subsonic-response", {})
        if body.get("status") == "failed":
            logger.error("Subsonic API failed (%s): %s", endpoint, body.get("error", {}).get("message"))
            return None
        return body

    def test_connection(self) -> bool:
        """Ping the server synchronously.

        Returns:
            True if connection successful
        """
        try:
            r = requests.get(f"{self.url}/rest/ping", params=self._params(None), timeout=10)
            r.raise_for_status()
            ok = r.json().get("subsonic-response", {}).get("status") == "ok"
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error("✗ Subsonic connection failed: %s", str(e)[:200])
            return False
        if ok:
            logger.info("✓ Connected to Subsonic: %s", self.url)
        else:
            logger.error("✗ Subsonic rejected the credentials")
        return ok


class SubsonicCatalog:
    """CatalogQuery backed by search3."""

    def __init__(self, client: SubsonicClient, song_limit: int = ARTIST_SONG_LIMIT):
        self.client = client
        self.song_limit = song_limit

    async def artist_songs(self, artist: str) -> List[MatchedTrack]:
        response = await self.client.request("search3", {
            "query": artist, "songCount": self.song_limit, "artistCount": 0, "albumCount": 0,
        })
        if not response:
            return []
        wanted = artist_key(artist)
        tracks = []
        for song in _as_list((response.get("searchResult3") or {}).get("song")):
            names = [artist_key(n) for n in split_artists(song.get("artist", ""))]
            if wanted in names or artist_key(song.get("artist", "")) == wanted:
                tracks.append(song_to_track(song))
        return tracks

    async def find_tracks(self, artist: str, titles: Sequence[str],
                          options: MatchOptions) -> Dict[str, List[MatchedTrack]]:
        songs = await self.artist_songs(artist)
        logger.debug('Catalog has %d song(s) by "%s"', len(songs), artist)
        return {title: songs for title in titles}


class SubsonicPlaylistSink:
    """PlaylistSink writing Subsonic playlists and the saved play queue.

    Subsonic has no playlist folders, so a parent playlist is ignored.
    Changes are written immediately; commit only logs.
    """

    def __init__(self, client: SubsonicClient):
        self.client = client

    async def find_playlist(self, name: str) -> Optional[Dict[str, Any]]:
        response = await self.client.request("getPlaylists")
        if not response:
            return None
        wanted = name.strip().lower()
        for playlist in _as_list((response.get("playlists") or {}).get("playlist")):
            if str(playlist.get("name", "")).strip().lower() == wanted:
                return playlist
        return None

    async def create_playlist(self, name: str, parent: Optional[Any] = None) -> Optional[Dict[str, Any]]:
        if parent is not None:
            logger.debug("Subsonic playlists have no folders; ignoring parent")
        response = await self.client.request("createPlaylist", {"name": name})
        if not response:
            return None
        return response.get("playlist") or await self.find_playlist(name)

    async def _entries(self, playlist_id: str) -> List[str]:
        response = await self.client.request("getPlaylist", {"id": playlist_id})
        if not response:
            return []
        return [str(e.get("id")) for e in _as_list((response.get("playlist") or {}).get("entry"))]

    async def add_tracks(self, target: Dict[str, Any], tracks: Sequence[MatchedTrack],
                         clear_first: bool = False, ignore_dupes: bool = False) -> int:
        playlist_id = str(target["id"])
        existing = await self._entries(playlist_id)

        if clear_first and existing:
            removal = [("playlistId", playlist_id)] + [("songIndexToRemove", i) for i in range(len(existing))]
            if await self.client.request("updatePlaylist", removal) is None:
                raise RuntimeError(f"Could not clear playlist {target.get('name')}")
            existing = []

        ids = _new_ids(tracks, existing if ignore_dupes else ())
        if not ids:
            return 0
        params = [("playlistId", playlist_id)] + [("songIdToAdd", song_id) for song_id in ids]
        if await self.client.request("updatePlaylist", params) is None:
            raise RuntimeError(f"Could not add tracks to playlist {target.get('name')}")
        return len(ids)

    async def commit(self, target: Dict[str, Any]) -> None:
        logger.debug("Playlist %s saved", target.get("name"))

    async def enqueue(self, tracks: Sequence[MatchedTrack], clear: bool = False,
                      save_history: bool = True, ignore_dupes: bool = False) -> int:
        response = await self.client.request("getPlayQueue") or {}
        queue = response.get("playQueue") or {}
        existing = [str(e.get("id")) for e in _as_list(queue.get("entry"))]
        current = queue.get("current")
        position = queue.get("position", 0)

        ids = _new_ids(tracks, existing if ignore_dupes else ())
        if not ids:
            return 0

        kept = [] if clear else existing
        params: List[Tuple[str, Any]] = [("id", song_id) for song_id in kept + ids]
        if current and str(current) in kept:
            params += [("current", current), ("position", position)]
        if await self.client.request("savePlayQueue", params) is None:
            raise RuntimeError("Could not save play queue")
        return len(ids)


def _new_ids(tracks: Iterable[MatchedTrack], existing: Iterable[str]) -> List[str]:
    seen = set(existing)
    ids = []
    for track in tracks:
        if not track.id or track.id in seen:
            continue
        seen.add(track.id)
        ids.append(track.id)
    return ids


class SubsonicSeedSource:
    """SeedSource: starred songs as the selection, then the playing track."""

    def __init__(self, client: SubsonicClient, use_starred: bool = False, starred_limit: int = 10):
        self.client = client
        self.use_starred = use_starred
        self.starred_limit = starred_limit

    async def get_selection(self) -> List[SourceTrack]:
        if not self.use_starred:
            return []
        response = await self.client.request("getStarred2")
        if not response:
            logger.warning("Failed to fetch starred songs")
            return []
        songs = _as_list((response.get("starred2") or {}).get("song"))
        return [song_to_source(s) for s in songs[:self.starred_limit]]

    async def get_currently_playing(self) -> Optional[SourceTrack]:
        response = await self.client.request("getNowPlaying")
        entries = _as_list(((response or {}).get("nowPlaying") or {}).get("entry"))
        for entry in entries:
            if entry.get("username") in (None, self.client.username):
                return song_to_source(entry)

        response = await self.client.request("getPlayQueue")
        queue = (response or {}).get("playQueue") or {}
        current = str(queue.get("current", ""))
        for entry in _as_list(queue.get("entry")):
            if str(entry.get("id")) == current:
                return song_to_source(entry)
        return None


def queue_event(queue: Dict[str, Any]) -> Optional[PlaybackEvent]:
    """Turn a getPlayQueue snapshot into a PlaybackEvent."""
    entries = _as_list(queue.get("entry"))
    if not entries:
        return None
    current = str(queue.get("current", ""))
    ids = [str(e.get("id")) for e in entries]
    cursor = ids.index(current) + 1 if current in ids else None
    return PlaybackEvent(total=len(ids), cursor=cursor)


class PlaybackPoller:
    """Feeds PlaybackEvents from the saved play queue into a channel."""

    def __init__(self, client: SubsonicClient, channel: "asyncio.Queue[Optional[PlaybackEvent]]",
                 interval: float = 5.0):
        self.client = client
        self.channel = channel
        self.interval = interval
        self._stopped = asyncio.Event()
        self._last: Optional[PlaybackEvent] = None

    def stop(self) -> None:
        self._stopped.set()

    async def poll_once(self) -> Optional[PlaybackEvent]:
        response = await self.client.request("getPlayQueue")
        event = queue_event((response or {}).get("playQueue") or {})
        if event is not None and event != self._last:
            self._last = event
            await self.channel.put(event)
        return event

    async def run(self) -> None:
        """Poll until stopped, then close the channel with a None sentinel."""
        logger.info("Polling play queue every %.0fs", self.interval)
        try:
            while not self._stopped.is_set():
                await self.poll_once()
                try:
                    await asyncio.wait_for(self._stopped.wait(), timeout=self.interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            await self.channel.put(None)
