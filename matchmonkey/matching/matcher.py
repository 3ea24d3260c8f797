"""Three-pass fuzzy matching of candidate titles against the local catalog"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from matchmonkey.interfaces import CatalogQuery
from matchmonkey.models.records import MatchedTrack, MatchOptions
from matchmonkey.monitoring.metrics import record_match
from matchmonkey.utils.text import normalize_title, tokenize


logger = logging.getLogger(__name__)

PASS_EXACT = "exact"
PASS_NORMALIZED = "normalized"
PASS_PARTIAL = "partial"

# Share of the query's tokens that must appear in a catalog title
PARTIAL_OVERLAP_RATIO = 0.6
MIN_TOKEN_LENGTH = 3


def passes_rating(track: MatchedTrack, options: MatchOptions) -> bool:
    """Apply the rating floor; unrated tracks pass only when allowed."""
    if track.rating is None:
        return options.allow_unknown
    return track.rating >= options.min_rating


def select_order(rows: Iterable[MatchedTrack]) -> List[MatchedTrack]:
    """Order rows by bitrate, then rating, keeping catalog order on ties."""
    return sorted(rows, key=lambda t: t.quality, reverse=True)


def token_overlap(query_tokens: set, title: str) -> float:
    if not query_tokens:
        return 0.0
    return len(query_tokens & tokenize(title, MIN_TOKEN_LENGTH)) / len(query_tokens)


def match_title(title: str, rows: Sequence[MatchedTrack]) -> Tuple[Optional[str], List[MatchedTrack]]:
    """Find catalog rows matching one title.

    Passes run from strict to loose; the first one that yields rows wins.

    Args:
        title: Candidate title
        rows: Catalog rows of the artist, already rating-filtered

    Returns:
        (pass name, matching rows in catalog order); (None, []) on a miss
    """
    wanted = title.strip().casefold()
    exact = [r for r in rows if r.title.strip().casefold() == wanted]
    if exact:
        return PASS_EXACT, exact

    normalized = normalize_title(title)
    if normalized:
        found = [r for r in rows if normalize_title(r.title) == normalized]
        if found:
            return PASS_NORMALIZED, found

    query_tokens = tokenize(title, MIN_TOKEN_LENGTH)
    if query_tokens:
        found = [r for r in rows if token_overlap(query_tokens, r.title) >= PARTIAL_OVERLAP_RATIO]
        if found:
            return PASS_PARTIAL, found

    return None, []


class LibraryMatcher:
    """Resolves candidate titles of one artist to catalog records."""

    def __init__(self, catalog: CatalogQuery):
        self.catalog = catalog
        self.last_passes: Dict[str, str] = {}

    async def match(self, artist: str, titles: Sequence[str], max_per_title: int = 1,
                    options: Optional[MatchOptions] = None) -> Dict[str, List[MatchedTrack]]:
        """Match titles of an artist against the catalog.

        Args:
            artist: Artist name
            titles: Candidate titles
            max_per_title: Records kept per title, best first; 0 keeps all
            options: Rating filter and best-only switch

        Returns:
            Title -> matched records; titles without a match are absent
        """
        options = options or MatchOptions()
        self.last_passes = {}
        titles = [t for t in titles if t and t.strip()]
        if not titles:
            return {}

        rows_by_title = await self.catalog.find_tracks(artist, titles, options)

        # Rows returned for any title are candidates for every title of the artist
        pool: List[MatchedTrack] = []
        seen = set()
        for title in titles:
            for row in rows_by_title.get(title) or []:
                if id(row) not in seen:
                    seen.add(id(row))
                    pool.append(row)

        pool = [row for row in pool if passes_rating(row, options)]
        if not pool:
            logger.debug('No catalog rows for "%s"', artist)
            return {}

        limit = 1 if options.best else max_per_title
        results: Dict[str, List[MatchedTrack]] = {}
        for title in titles:
            if title in results:
                continue
            pass_name, found = match_title(title, pool)
            if not found:
                continue
            ordered = select_order(found)
            results[title] = ordered[:limit] if limit and limit > 0 else ordered
            self.last_passes[title] = pass_name
            record_match(pass_name)
            if pass_name != PASS_EXACT:
                logger.debug('"%s" matched "%s" by %s pass', title, results[title][0].title, pass_name)

        logger.debug('Matched %d/%d titles for "%s"', len(results), len(titles), artist)
        return results
