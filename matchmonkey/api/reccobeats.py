"""ReccoBeats API client for audio features and recommendations"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from matchmonkey.api.gateway import ServiceGateway
from matchmonkey.storage.cache import RunCache, make_key
from matchmonkey.utils.text import artist_key, normalize_title


logger = logging.getLogger(__name__)

SERVICE = "reccobeats"

# Audio features accepted as recommendation targets
FEATURE_KEYS = (
    "acousticness", "danceability", "energy", "instrumentalness",
    "liveness", "loudness", "speechiness", "tempo", "valence",
)

MAX_SEEDS = 5
SEARCH_PAGE_SIZE = 25


def unwrap(payload: Any) -> List[Dict[str, Any]]:
    """Extract the item list from a content/data envelope."""
    if isinstance(payload, list):
        return [item for item in payload if isinstance(item, dict)]
    if isinstance(payload, dict):
        for key in ("content", "data"):
            items = payload.get(key)
            if isinstance(items, list):
                return [item for item in items if isinstance(item, dict)]
    return []


def extract_features(item: Dict[str, Any]) -> Dict[str, float]:
    features = {}
    for key in FEATURE_KEYS:
        value = item.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            features[key] = float(value)
    return features


def _artist_names(item: Dict[str, Any]) -> List[str]:
    names = []
    for artist in item.get("artists") or []:
        if isinstance(artist, dict) and artist.get("name"):
            names.append(artist["name"])
        elif isinstance(artist, str):
            names.append(artist)
    return names


def _title_of(item: Dict[str, Any]) -> str:
    return item.get("trackTitle") or item.get("title") or item.get("name") or ""


class ReccoBeatsAPI:
    """Resolves seed tracks to ReccoBeats ids and fetches recommendations."""

    def __init__(self, gateway: ServiceGateway, cache: Optional[RunCache],
                 base_url: str = "https://api.reccobeats.com/v1"):
        self.gateway = gateway
        self.cache = cache
        self.base_url = base_url.rstrip("/")

    async def _get(self, path: str, key_parts: tuple, params: Optional[Dict[str, Any]],
                   normalize, empty: Any) -> Any:
        return await self.gateway.fetch_json(
            SERVICE,
            f"{self.base_url}{path}",
            params,
            cache=self.cache,
            cache_key=make_key(SERVICE, path, *key_parts),
            normalize=normalize,
            empty=empty,
        )

    async def _search(self, entity: str, text: str) -> List[Dict[str, Any]]:
        return await self._get(
            f"/{entity}/search", (text,), {"searchText": text, "size": SEARCH_PAGE_SIZE}, unwrap, []
        )

    async def _tracks_of(self, entity: str, entity_id: str) -> List[Dict[str, Any]]:
        return await self._get(
            f"/{entity}/{entity_id}/track", (), {"size": 50}, unwrap, []
        )

    @staticmethod
    def _find_title(tracks: List[Dict[str, Any]], title: str) -> Optional[str]:
        wanted = normalize_title(title)
        for track in tracks:
            if track.get("id") and normalize_title(_title_of(track)) == wanted:
                return str(track["id"])
        return None

    async def search_track(self, artist: str, title: str, album: Optional[str] = None) -> Optional[str]:
        """Resolve a track to its ReccoBeats identifier.

        Looks the track up through its album when one is known, then
        through the artist's track list.

        Args:
            artist: Artist name
            title: Track title
            album: Optional album name

        Returns:
            Track id, or None if the track cannot be found
        """
        wanted_artist = artist_key(artist)

        if album:
            for found in await self._search("album", album):
                names = [artist_key(n) for n in _artist_names(found)]
                if found.get("id") and (not names or wanted_artist in names):
                    track_id = self._find_title(await self._tracks_of("album", found["id"]), title)
                    if track_id:
                        return track_id

        for found in await self._search("artist", artist):
            if not found.get("id") or artist_key(found.get("name", "")) != wanted_artist:
                continue
            track_id = self._find_title(await self._tracks_of("artist", found["id"]), title)
            if track_id:
                return track_id

        logger.info("ReccoBeats has no id for %s - %s", artist, title)
        return None

    async def get_audio_features(self, track_id: str) -> Dict[str, float]:
        """Fetch the audio-feature vector of a track.

        Args:
            track_id: ReccoBeats track id

        Returns:
            Feature name -> value; empty when unavailable
        """
        def normalize(payload):
            return extract_features(payload if isinstance(payload, dict) else {})

        return await self._get(f"/track/{track_id}/audio-features", (), None, normalize, {})

    async def get_recommendations(self, seed_ids: Sequence[str], size: int = 50,
                                  targets: Optional[Dict[str, float]] = None) -> List[Dict[str, Any]]:
        """Request recommendations for up to five seed tracks.

        Args:
            seed_ids: ReccoBeats track ids (only the first five are sent)
            size: Number of recommendations requested
            targets: Optional audio-feature targets used as filter hints

        Returns:
            List of {"artist", "title", "popularity", "features"} dicts in rank order
        """
        seeds = [str(s) for s in seed_ids][:MAX_SEEDS]
        if not seeds:
            return []

        params: Dict[str, Any] = {"seeds": ",".join(seeds), "size": max(1, min(int(size), 100))}
        for key, value in sorted((targets or {}).items()):
            if key in FEATURE_KEYS:
                params[key] = round(float(value), 3)

        def normalize(payload):
            results = []
            for item in unwrap(payload):
                names = _artist_names(item)
                title = _title_of(item)
                if not names or not title:
                    continue
                popularity = item.get("popularity")
                results.append({
                    "artist": names[0],
                    "title": title,
                    "popularity": float(popularity) if isinstance(popularity, (int, float)) else None,
                    "features": extract_features(item),
                })
            return results

        key_parts = (tuple(seeds), params["size"], tuple(sorted(
            (k, v) for k, v in params.items() if k in FEATURE_KEYS
        )))
        return await self._get("/track/recommendation", key_parts, params, normalize, [])
