"""Blending of seed-derived and profile-derived candidate pools"""

import logging
import math
from typing import List, Sequence, Tuple

from matchmonkey.models.records import Candidate
from matchmonkey.utils.text import artist_key


logger = logging.getLogger(__name__)


def blend_counts(target_total: int, ratio: float) -> Tuple[int, int]:
    """Split a target total between seed and profile sources.

    Args:
        target_total: Number of artists wanted overall
        ratio: Fraction allocated to seed-derived results (clamped to 0..1)

    Returns:
        (seed_count, profile_count), summing to target_total
    """
    total = max(0, int(target_total))
    ratio = min(1.0, max(0.0, float(ratio)))
    # round() absorbs float noise such as 20 * 0.7 == 14.000000000000002
    seed_count = min(total, math.ceil(round(total * ratio, 9)))
    return seed_count, total - seed_count


def dedupe_candidates(candidates: Sequence[Candidate]) -> List[Candidate]:
    """Drop later entries whose artist was already seen, keeping order."""
    seen = set()
    unique = []
    for candidate in candidates:
        key = artist_key(candidate.artist)
        if key and key not in seen:
            seen.add(key)
            unique.append(candidate)
    return unique


def blend_candidates(seed_pool: Sequence[Candidate], profile_pool: Sequence[Candidate],
                     ratio: float, target_total: int) -> List[Candidate]:
    """Interleave seed and profile candidates at the given ratio.

    Each pool is deduplicated on its own and truncated to its share, then
    entries alternate seed[0], profile[0], seed[1], profile[1], ... An
    artist already taken from the other pool is not repeated.

    Args:
        seed_pool: Candidates from seed similarity, in relevance order
        profile_pool: Candidates from the mood/activity profile, in relevance order
        ratio: Fraction of the total allocated to seed_pool
        target_total: Overall number of artists wanted

    Returns:
        Blended candidate list
    """
    seed_count, profile_count = blend_counts(target_total, ratio)
    seeds = dedupe_candidates(seed_pool)[:seed_count]
    profiles = dedupe_candidates(profile_pool)[:profile_count]

    blended: List[Candidate] = []
    taken = set()
    for index in range(max(len(seeds), len(profiles))):
        for pool in (seeds, profiles):
            if index < len(pool):
                key = artist_key(pool[index].artist)
                if key not in taken:
                    taken.add(key)
                    blended.append(pool[index])

    logger.info("Blended %d seed + %d profile artists (ratio %.2f, target %d)",
                len(seeds), len(profiles), ratio, target_total)
    return blended
