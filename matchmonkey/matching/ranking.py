"""Run-wide deduplication and ranking of matched tracks"""

import logging
import math
import random
from collections import OrderedDict
from dataclasses import dataclass
from typing import List, Optional, Sequence

from matchmonkey.models.records import CandidateTrack, MatchedTrack


logger = logging.getLogger(__name__)

# Playcount that maps to the top of the 0-100 scale
PLAYCOUNT_CEILING = 10_000_000
# Service rank that maps to the bottom of the 0-100 scale
RANK_FLOOR = 1000


def playcount_score(playcount: int) -> float:
    if playcount <= 0:
        return 0.0
    return min(100.0, 100.0 * math.log10(playcount + 1) / math.log10(PLAYCOUNT_CEILING))


def rank_score(rank: int) -> float:
    if rank <= 1:
        return 100.0
    return max(0.0, 100.0 * (1 - math.log10(rank) / math.log10(RANK_FLOOR)))


def score_candidate(track: Optional[CandidateTrack], index: int) -> float:
    """Compute the 0-100 ranking score of a candidate track.

    Sources in order of preference: similarity match score, playcount
    (log scale), service rank (log scale), popularity, and finally the
    run-wide position.

    Args:
        track: Candidate the catalog record was matched from
        index: Run-wide insertion position

    Returns:
        Score between 0 and 100
    """
    if track is not None:
        if track.match_score is not None:
            return max(0.0, min(100.0, track.match_score * 100.0))
        if track.playcount:
            return playcount_score(track.playcount)
        if track.rank:
            return rank_score(track.rank)
        if track.popularity is not None:
            return max(0.0, min(100.0, float(track.popularity)))
    return float(max(0, 100 - index))


@dataclass
class RankedEntry:
    track: MatchedTrack
    score: float
    index: int


class TrackRanker:
    """Collapses duplicate matched tracks across a whole run.

    The first track seen for a DedupKey keeps its position. A later
    duplicate replaces the stored instance only when its (bitrate, rating)
    is strictly better; a higher score updates the score alone.
    """

    def __init__(self):
        self._entries: "OrderedDict[str, RankedEntry]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, track: MatchedTrack) -> bool:
        return track.dedup_key in self._entries

    def add(self, track: MatchedTrack, candidate: Optional[CandidateTrack] = None) -> bool:
        """Add a matched track.

        Args:
            track: Catalog record
            candidate: Candidate it was matched from, used for scoring

        Returns:
            True if the track was new to the run
        """
        key = track.dedup_key
        score = score_candidate(candidate, len(self._entries))
        existing = self._entries.get(key)
        if existing is None:
            self._entries[key] = RankedEntry(track=track, score=score, index=len(self._entries))
            return True

        if track.quality > existing.track.quality:
            logger.debug("Replacing %s with better copy (%s kbps)", key, track.bitrate)
            existing.track = track
        if score > existing.score:
            existing.score = score
        return False

    def tracks(self, rank: bool = False, randomize: bool = False,
               rng: Optional[random.Random] = None) -> List[MatchedTrack]:
        """Return the final ordering.

        Args:
            rank: Order by descending score (ties keep insertion order)
            randomize: Shuffle instead, when ranking is off
            rng: Random source for shuffling

        Returns:
            Matched tracks
        """
        entries = list(self._entries.values())
        if rank:
            entries.sort(key=lambda e: (-e.score, e.index))
        elif randomize:
            (rng or random).shuffle(entries)
        return [e.track for e in entries]


def deduplicate(tracks: Sequence[MatchedTrack]) -> List[MatchedTrack]:
    """Deduplicate a list of matched tracks, keeping first-seen order."""
    ranker = TrackRanker()
    for track in tracks:
        ranker.add(track)
    return ranker.tracks()
