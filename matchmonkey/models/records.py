"""Plain records passed between pipeline stages"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple


logger = logging.getLogger(__name__)


class DiscoveryMode(str, Enum):
    """Discovery modes understood by the orchestrator"""
    ARTIST = "artist"
    TRACK = "track"
    GENRE = "genre"
    PROFILE = "profile-seeded"
    MOOD = "mood"
    ACTIVITY = "activity"

    @classmethod
    def parse(cls, value: Optional[str]) -> "DiscoveryMode":
        """Resolve a mode name, falling back to artist mode.

        Args:
            value: Mode name (case-insensitive); "ai" and "reccobeats" are
                accepted as aliases of the profile-seeded mode

        Returns:
            Matching DiscoveryMode
        """
        if isinstance(value, cls):
            return value
        name = (value or "").strip().lower()
        if name in ("ai", "reccobeats", "profile"):
            return cls.PROFILE
        for mode in cls:
            if mode.value == name:
                return mode
        logger.warning("Unknown discovery mode '%s', using artist mode", value)
        return cls.ARTIST

    @property
    def uses_profile(self) -> bool:
        return self in (DiscoveryMode.MOOD, DiscoveryMode.ACTIVITY)


class SeedKind(str, Enum):
    ARTIST = "artist"
    TRACK = "track"
    GENRE = "genre"


@dataclass(frozen=True)
class Seed:
    """Listening-context entry that starts discovery."""
    kind: SeedKind
    artist: str
    title: Optional[str] = None
    genre: Optional[str] = None
    album: Optional[str] = None


@dataclass
class CandidateTrack:
    """Track suggested by a discovery service, not yet found in the catalog.

    match_score is a 0..1 similarity confidence; playcount, rank and
    popularity are whatever ranking signal the service returned.
    """
    title: str
    match_score: Optional[float] = None
    playcount: Optional[int] = None
    rank: Optional[int] = None
    popularity: Optional[float] = None


@dataclass
class Candidate:
    """Artist entry of a discovery candidate pool."""
    artist: str
    tracks: List[CandidateTrack] = field(default_factory=list)
    source: str = "seed"

    @property
    def titles(self) -> List[str]:
        return [t.title for t in self.tracks]


@dataclass(frozen=True)
class AudioFeatureProfile:
    """Named preset of audio-feature targets (mood or activity)."""
    name: str
    kind: str
    targets: Dict[str, float] = field(default_factory=dict)
    tags: Tuple[str, ...] = ()

    def __hash__(self) -> int:
        return hash((self.name, self.kind))


@dataclass
class MatchedTrack:
    """Local catalog record resolved by the library matcher.

    rating uses a 0-5 star scale; None means the track is unrated.
    """
    id: Optional[str]
    title: str
    artist: str
    album: str = ""
    rating: Optional[int] = None
    bitrate: int = 0
    path: str = ""
    extra: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def dedup_key(self) -> str:
        return dedup_key(self)

    @property
    def quality(self) -> Tuple[int, int]:
        return (self.bitrate or 0, self.rating or 0)


def dedup_key(track: MatchedTrack) -> str:
    """Derive the canonical identity string of a matched track.

    Catalog identifier first, then path, then a title/album/artist composite.

    Args:
        track: Matched catalog record

    Returns:
        Deduplication key
    """
    if track.id not in (None, "", "0", 0):
        return str(track.id)
    if track.path:
        return f"path:{track.path.lower()}"
    return "meta:{}:{}:{}".format(
        (track.title or "").strip().lower(),
        (track.album or "").strip().lower(),
        (track.artist or "").strip().lower(),
    )


@dataclass
class MatchOptions:
    rank: bool = False
    best: bool = False
    min_rating: int = 0
    allow_unknown: bool = True


@dataclass
class DiscoveryOptions:
    """Effective limits and switches for one pipeline run."""
    mode: DiscoveryMode = DiscoveryMode.ARTIST
    seed_limit: int = 5
    similar_limit: int = 20
    tracks_per_artist: int = 9999
    total_limit: int = 9999
    include_seed_artist: bool = False
    include_seed_track: bool = False
    rank: bool = False
    best: bool = False
    randomize: bool = False
    min_rating: int = 0
    allow_unknown: bool = True
    blacklist: FrozenSet[str] = frozenset()
    prefixes: Tuple[str, ...] = ()
    blend_ratio: float = 0.5
    profile_name: Optional[str] = None
    auto_mode: bool = False

    @property
    def match_options(self) -> MatchOptions:
        return MatchOptions(
            rank=self.rank,
            best=self.best,
            min_rating=self.min_rating,
            allow_unknown=self.allow_unknown,
        )

    def is_blacklisted(self, artist: str) -> bool:
        return artist.strip().upper() in self.blacklist


@dataclass
class PipelineResult:
    """Outcome of one run_pipeline call."""
    success: bool
    tracks_added: int = 0
    tracks: List[MatchedTrack] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": self.success,
            "tracksAdded": self.tracks_added,
            "tracks": self.tracks,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class AutoModeState:
    """Mutable auto-mode flags, owned by the auto-trigger controller."""
    listening: bool = False
    running: bool = False
    last_trigger_time: Optional[float] = None
    cooldown_ms: int = 5000


@dataclass(frozen=True)
class PlaybackEvent:
    """Playback-position snapshot delivered to the auto-trigger controller.

    remaining is the exact number of queued entries after the current one,
    when the host can report it. cursor is the one-based position of the
    current entry in a queue of total entries.
    """
    remaining: Optional[int] = None
    total: Optional[int] = None
    cursor: Optional[int] = None

    def estimate_remaining(self) -> Optional[int]:
        """Estimate entries left in the queue.

        Returns:
            Remaining count, or None when the event carries no usable data
        """
        if self.remaining is not None:
            return max(0, self.remaining)
        if self.total is not None and self.cursor is not None:
            return max(0, self.total - self.cursor)
        if self.total is not None:
            return max(0, self.total)
        return None
