"""Console collaborators for CLI runs and dry runs"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from matchmonkey.interfaces import SourceTrack
from matchmonkey.models.records import MatchedTrack


logger = logging.getLogger(__name__)


class LoggingNotifier:
    """NotificationSink that writes to the log."""

    def __init__(self):
        self._last_step = -1

    def toast(self, message: str, level: str = "info") -> None:
        if level == "error":
            logger.error("🔔 %s", message)
        elif level == "warning":
            logger.warning("🔔 %s", message)
        else:
            logger.info("🔔 %s", message)

    def progress(self, message: str, fraction: float) -> None:
        # One line per 10% step
        step = int(fraction * 10)
        if step != self._last_step:
            self._last_step = step
            logger.info("[%3d%%] %s", int(fraction * 100), message)


class StaticSeedSource:
    """SeedSource returning a fixed selection, e.g. from the command line."""

    def __init__(self, selection: Sequence[SourceTrack] = (), playing: Optional[SourceTrack] = None):
        self.selection = list(selection)
        self.playing = playing

    @classmethod
    def from_args(cls, artists: Sequence[str] = (), tracks: Sequence[str] = ()) -> "StaticSeedSource":
        """Build from CLI values: artist names and "Artist - Title" strings."""
        selection = []
        for value in tracks:
            artist, sep, title = value.partition(" - ")
            selection.append(SourceTrack(artist=artist.strip(), title=title.strip() if sep else ""))
        selection.extend(SourceTrack(artist=a.strip()) for a in artists if a.strip())
        return cls(selection)

    async def get_selection(self) -> List[SourceTrack]:
        return list(self.selection)

    async def get_currently_playing(self) -> Optional[SourceTrack]:
        return self.playing


class DryRunSink:
    """PlaylistSink that only logs what would be written."""

    def __init__(self):
        self.playlists: Dict[str, List[MatchedTrack]] = {}
        self.queue: List[MatchedTrack] = []

    async def find_playlist(self, name: str) -> Optional[Dict[str, Any]]:
        return {"name": name} if name in self.playlists else None

    async def create_playlist(self, name: str, parent: Optional[Any] = None) -> Dict[str, Any]:
        self.playlists[name] = []
        logger.info("[DRY RUN] Would create playlist '%s'", name)
        return {"name": name}

    async def add_tracks(self, target: Dict[str, Any], tracks: Sequence[MatchedTrack],
                         clear_first: bool = False, ignore_dupes: bool = False) -> int:
        entries = self.playlists.setdefault(target["name"], [])
        if clear_first:
            entries.clear()
        keys = {t.dedup_key for t in entries}
        added = [t for t in tracks if not (ignore_dupes and t.dedup_key in keys)]
        entries.extend(added)
        for track in added:
            logger.info("[DRY RUN]   %s - %s", track.artist, track.title)
        return len(added)

    async def commit(self, target: Dict[str, Any]) -> None:
        logger.info("[DRY RUN] Would save playlist '%s' (%d tracks)",
                    target["name"], len(self.playlists.get(target["name"], [])))

    async def enqueue(self, tracks: Sequence[MatchedTrack], clear: bool = False,
                      save_history: bool = True, ignore_dupes: bool = False) -> int:
        if clear:
            self.queue.clear()
        keys = {t.dedup_key for t in self.queue}
        added = [t for t in tracks if not (ignore_dupes and t.dedup_key in keys)]
        self.queue.extend(added)
        for track in added:
            logger.info("[DRY RUN] Would enqueue %s - %s", track.artist, track.title)
        return len(added)
