"""Collaborator contracts consumed by the discovery engine

Host applications plug into the engine by implementing these protocols.
Every I/O-bound method is a coroutine; notification calls are plain
fire-and-forget functions.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

from matchmonkey.models.records import MatchedTrack, MatchOptions


@dataclass(frozen=True)
class SourceTrack:
    """Track as reported by the host's selection or player.

    artist may hold several names joined by ';'.
    """
    artist: str
    title: str = ""
    genre: str = ""
    album: str = ""


class SeedSource(Protocol):
    async def get_selection(self) -> List[SourceTrack]:
        ...

    async def get_currently_playing(self) -> Optional[SourceTrack]:
        ...


class SettingsProvider(Protocol):
    def get(self, key: str, default: Any = None) -> Any:
        ...

    def get_int(self, key: str, default: int = 0) -> int:
        ...

    def get_float(self, key: str, default: float = 0.0) -> float:
        ...

    def get_bool(self, key: str, default: bool = False) -> bool:
        ...

    def get_str(self, key: str, default: str = "") -> str:
        ...

    def get_list(self, key: str, default: Optional[List[str]] = None) -> List[str]:
        ...


class CatalogQuery(Protocol):
    async def find_tracks(
        self, artist: str, titles: Sequence[str], options: MatchOptions
    ) -> Dict[str, List[MatchedTrack]]:
        """Return catalog rows by artist that may correspond to each title.

        Rows may be a superset of the true matches (e.g. every track of the
        artist); the library matcher performs the actual title comparison.
        """
        ...


class PlaylistSink(Protocol):
    async def create_playlist(self, name: str, parent: Optional[Any] = None) -> Any:
        ...

    async def find_playlist(self, name: str) -> Optional[Any]:
        ...

    async def add_tracks(
        self,
        target: Any,
        tracks: Sequence[MatchedTrack],
        clear_first: bool = False,
        ignore_dupes: bool = False,
    ) -> int:
        ...

    async def commit(self, target: Any) -> None:
        ...

    async def enqueue(
        self,
        tracks: Sequence[MatchedTrack],
        clear: bool = False,
        save_history: bool = True,
        ignore_dupes: bool = False,
    ) -> int:
        ...


class NotificationSink(Protocol):
    def toast(self, message: str, level: str = "info") -> None:
        ...

    def progress(self, message: str, fraction: float) -> None:
        ...
