"""Last.fm API client for artist, track and tag similarity"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from matchmonkey.api.gateway import (
    NotFoundError, ServiceError, ServiceGateway, ThrottledError, TransientServiceError,
)
from matchmonkey.models.records import CandidateTrack
from matchmonkey.storage.cache import RunCache, make_key
from matchmonkey.utils.text import fix_prefixes


logger = logging.getLogger(__name__)

SERVICE = "lastfm"

# Last.fm error codes
ERROR_NOT_FOUND = 6
ERROR_OPERATION_FAILED = 8
ERROR_UNAVAILABLE = 16
ERROR_RATE_LIMIT = 29


def _as_list(value: Any) -> List[Any]:
    """Last.fm collapses single-element arrays into a bare object."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def check_lastfm_error(payload: Any) -> None:
    """Translate an in-band Last.fm error object into a gateway exception.

    Args:
        payload: Decoded JSON body

    Raises:
        NotFoundError: Unknown artist/track/tag (code 6)
        ThrottledError: Rate limit exceeded (code 29)
        TransientServiceError: Temporary backend failure (codes 8, 16)
        ServiceError: Any other error code
    """
    if not isinstance(payload, dict) or "error" not in payload:
        return
    code = _to_int(payload.get("error"))
    message = str(payload.get("message", ""))[:200]
    if code == ERROR_NOT_FOUND:
        raise NotFoundError(message or "not found")
    if code == ERROR_RATE_LIMIT:
        raise ThrottledError(message or "rate limit exceeded")
    if code in (ERROR_OPERATION_FAILED, ERROR_UNAVAILABLE):
        raise TransientServiceError(f"error {code}: {message}")
    raise ServiceError(f"error {code}: {message}")


class LastFMAPI:
    """Similarity and tag lookups, cached for the duration of one run."""

    def __init__(self, gateway: ServiceGateway, cache: Optional[RunCache], api_key: Optional[str],
                 base_url: str = "https://ws.audioscrobbler.com/2.0",
                 prefixes: Iterable[str] = ()):
        """Initialize Last.fm API client.

        Args:
            gateway: Shared service gateway
            cache: Cache of the current run
            api_key: Last.fm API key; without one every lookup returns nothing
            base_url: API root URL
            prefixes: Name articles to restore before querying ("Beatles, The")
        """
        self.gateway = gateway
        self.cache = cache
        self.api_key = api_key
        self.base_url = base_url.rstrip("/") + "/"
        self.prefixes = tuple(prefixes)
        self._warned = False

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    async def _request(self, method: str, key_parts: tuple, params: Dict[str, Any],
                       normalize, empty: Any) -> Any:
        """Make API request through the gateway.

        Args:
            method: Last.fm API method
            key_parts: Query arguments identifying the request in the cache
            params: Method parameters
            normalize: Payload normalizer
            empty: Value returned on error

        Returns:
            Normalized response or empty
        """
        if not self.api_key:
            if not self._warned:
                logger.warning("Last.fm API key not configured, skipping %s", method)
                self._warned = True
            return empty

        request_params = {
            "method": method,
            "api_key": self.api_key,
            "format": "json",
            "autocorrect": 1,
        }
        request_params.update(params)

        return await self.gateway.fetch_json(
            SERVICE,
            self.base_url,
            request_params,
            cache=self.cache,
            cache_key=make_key(SERVICE, method, *key_parts),
            normalize=normalize,
            check=check_lastfm_error,
            empty=empty,
        )

    async def get_similar_artists(self, artist: str, limit: int = 20) -> List[Dict[str, Any]]:
        """Fetch artists similar to the given one.

        Args:
            artist: Artist name
            limit: Maximum number of similar artists

        Returns:
            List of {"name", "match"} dicts in service order
        """
        artist = fix_prefixes(artist, self.prefixes)

        def normalize(payload):
            items = _as_list((payload.get("similarartists") or {}).get("artist"))
            return [
                {"name": item["name"], "match": _to_float(item.get("match"))}
                for item in items if isinstance(item, dict) and item.get("name")
            ]

        return await self._request(
            "artist.getSimilar", (artist, limit), {"artist": artist, "limit": limit}, normalize, []
        )

    async def get_top_tracks(self, artist: str, limit: int = 10) -> List[CandidateTrack]:
        """Fetch an artist's most popular tracks.

        Args:
            artist: Artist name
            limit: Maximum number of tracks

        Returns:
            Candidate tracks carrying playcount and rank
        """
        artist = fix_prefixes(artist, self.prefixes)

        def normalize(payload):
            items = _as_list((payload.get("toptracks") or {}).get("track"))
            tracks = []
            for index, item in enumerate(items):
                if not isinstance(item, dict) or not item.get("name"):
                    continue
                rank = _to_int((item.get("@attr") or {}).get("rank")) or index + 1
                tracks.append(CandidateTrack(
                    title=item["name"],
                    playcount=_to_int(item.get("playcount")),
                    rank=rank,
                ))
            return tracks

        return await self._request(
            "artist.getTopTracks", (artist, limit), {"artist": artist, "limit": limit}, normalize, []
        )

    async def get_similar_tracks(self, artist: str, title: str, limit: int = 50) -> List[Dict[str, Any]]:
        """Fetch tracks similar to a given track.

        Args:
            artist: Artist of the seed track
            title: Seed track title
            limit: Maximum number of results

        Returns:
            List of {"artist", "title", "match", "playcount"} dicts
        """
        artist = fix_prefixes(artist, self.prefixes)

        def normalize(payload):
            items = _as_list((payload.get("similartracks") or {}).get("track"))
            results = []
            for item in items:
                if not isinstance(item, dict) or not item.get("name"):
                    continue
                item_artist = item.get("artist")
                name = item_artist.get("name") if isinstance(item_artist, dict) else item_artist
                if not name:
                    continue
                results.append({
                    "artist": name,
                    "title": item["name"],
                    "match": _to_float(item.get("match")),
                    "playcount": _to_int(item.get("playcount")),
                })
            return results

        return await self._request(
            "track.getSimilar", (artist, title, limit),
            {"artist": artist, "track": title, "limit": limit}, normalize, []
        )

    async def get_artist_tags(self, artist: str) -> List[str]:
        """Fetch an artist's tags from artist.getInfo.

        Args:
            artist: Artist name

        Returns:
            Tag names, most relevant first
        """
        artist = fix_prefixes(artist, self.prefixes)

        def normalize(payload):
            info = payload.get("artist") or {}
            tags = _as_list((info.get("tags") or {}).get("tag"))
            return [tag["name"] for tag in tags if isinstance(tag, dict) and tag.get("name")]

        return await self._request("artist.getInfo", (artist,), {"artist": artist}, normalize, [])

    async def get_tag_top_artists(self, tag: str, limit: int = 20) -> List[str]:
        """Fetch top artists for a tag.

        Args:
            tag: Tag/genre name
            limit: Maximum number of artists

        Returns:
            Artist names in rank order
        """
        def normalize(payload):
            items = _as_list((payload.get("topartists") or {}).get("artist"))
            return [item["name"] for item in items if isinstance(item, dict) and item.get("name")]

        return await self._request(
            "tag.getTopArtists", (tag, limit), {"tag": tag, "limit": limit}, normalize, []
        )
