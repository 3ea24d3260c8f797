"""Delivery of matched tracks to a playlist or the play queue"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Sequence

from matchmonkey.interfaces import PlaylistSink
from matchmonkey.models.config_models import OVERWRITE_CREATE, OVERWRITE_REPLACE, OVERWRITE_SKIP
from matchmonkey.models.records import MatchedTrack


logger = logging.getLogger(__name__)

MAX_LABEL_LENGTH = 80
MAX_NAME_LENGTH = 100
# Safety stop for unique-name probing
MAX_NAME_ATTEMPTS = 1000

# Confirmation hook: receives (proposed name, overwrite mode) and returns a
# playlist name, "auto" to create automatically, or None to cancel
ConfirmHook = Callable[[str, str], Awaitable[Optional[str]]]


class OutputError(Exception):
    """Playlist or queue delivery failed."""


class OutputCancelled(OutputError):
    """User cancelled the confirmation step."""


@dataclass
class OutputPlan:
    """Output switches for one run, after auto-mode overrides."""
    enqueue: bool = False
    overwrite: str = OVERWRITE_CREATE
    template: str = "Artists similar to %"
    parent: Optional[str] = None
    ignore_dupes: bool = False
    clear_queue: bool = False
    confirm: bool = False


@dataclass
class OutputResult:
    added: int
    target: str
    enqueued: bool = False


def seed_label(artists: Sequence[str]) -> str:
    """Join seed artist names into a playlist label."""
    label = ", ".join(a for a in artists if a) or "Similar"
    if len(label) > MAX_LABEL_LENGTH:
        label = label[:MAX_LABEL_LENGTH] + "..."
    return label


def build_playlist_name(template: str, label: str) -> str:
    """Apply the naming template.

    The first "%" is replaced by the label; a template without one gets
    the label appended after a space.

    Args:
        template: Name template, e.g. "Artists similar to %"
        label: Seed label

    Returns:
        Playlist name of at most 100 characters
    """
    template = template or "%"
    if "%" in template:
        name = template.replace("%", label, 1)
    else:
        name = f"{template} {label}"
    if len(name) > MAX_NAME_LENGTH:
        name = name[:MAX_NAME_LENGTH - 3] + "..."
    return name


def normalize_overwrite(mode: Optional[str]) -> str:
    lowered = (mode or "").lower()
    if "do not" in lowered:
        return OVERWRITE_SKIP
    if "overwrite" in lowered:
        return OVERWRITE_REPLACE
    return OVERWRITE_CREATE


class OutputBuilder:
    """Writes the final track list through a PlaylistSink."""

    def __init__(self, sink: PlaylistSink, confirm_hook: Optional[ConfirmHook] = None):
        self.sink = sink
        self.confirm_hook = confirm_hook

    async def deliver(self, tracks: Sequence[MatchedTrack], plan: OutputPlan,
                      seed_artists: Sequence[str]) -> OutputResult:
        """Deliver tracks according to the plan.

        Args:
            tracks: Final ordered tracks
            plan: Output switches
            seed_artists: Seed artist names used for the playlist label

        Returns:
            OutputResult describing where the tracks went

        Raises:
            OutputCancelled: The confirmation hook cancelled
            OutputError: The sink failed
        """
        overwrite = normalize_overwrite(plan.overwrite)
        try:
            if plan.enqueue or overwrite == OVERWRITE_SKIP:
                return await self.enqueue(tracks, plan)
            return await self.write_playlist(tracks, plan, overwrite, seed_artists)
        except OutputError:
            raise
        except Exception as e:
            raise OutputError(f"Output failed: {e}") from e

    async def enqueue(self, tracks: Sequence[MatchedTrack], plan: OutputPlan) -> OutputResult:
        added = await self.sink.enqueue(
            tracks, clear=plan.clear_queue, save_history=True, ignore_dupes=plan.ignore_dupes
        )
        logger.info("Enqueued %d track(s)", added)
        return OutputResult(added=added, target="Now Playing", enqueued=True)

    async def unique_name(self, name: str) -> str:
        candidate = name
        index = 1
        while await self.sink.find_playlist(candidate) is not None:
            index += 1
            if index > MAX_NAME_ATTEMPTS:
                raise OutputError(f"No free playlist name for '{name}'")
            candidate = f"{name}_{index}"
        return candidate

    async def write_playlist(self, tracks: Sequence[MatchedTrack], plan: OutputPlan,
                             overwrite: str, seed_artists: Sequence[str]) -> OutputResult:
        name = build_playlist_name(plan.template, seed_label(seed_artists))
        target: Any = None

        if plan.confirm and self.confirm_hook is not None:
            choice = await self.confirm_hook(name, overwrite)
            if choice is None:
                raise OutputCancelled("cancelled")
            if choice != "auto":
                name = choice
                target = await self.sink.find_playlist(choice)

        clear_first = False
        if target is not None:
            clear_first = overwrite == OVERWRITE_REPLACE
        elif overwrite == OVERWRITE_REPLACE:
            target = await self.sink.find_playlist(name)
            clear_first = target is not None
        else:
            name = await self.unique_name(name)

        if target is None:
            parent = None
            if plan.parent and plan.parent.strip():
                parent = await self.sink.find_playlist(plan.parent.strip())
                if parent is None:
                    logger.info("Parent playlist '%s' not found, creating at root", plan.parent)
            target = await self.sink.create_playlist(name, parent)
            if target is None:
                raise OutputError(f"Could not create playlist '{name}'")
            logger.info("Created playlist '%s'", name)

        added = await self.sink.add_tracks(target, tracks, clear_first=clear_first,
                                           ignore_dupes=plan.ignore_dupes)
        await self.sink.commit(target)
        logger.info("Added %d track(s) to playlist '%s'%s", added, name,
                    " (cleared first)" if clear_first else "")
        return OutputResult(added=added, target=name)
