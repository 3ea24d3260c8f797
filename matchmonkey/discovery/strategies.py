"""Discovery strategies producing candidate artist/track pools"""

import logging
import math
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from matchmonkey.api.lastfm import LastFMAPI
from matchmonkey.api.reccobeats import ReccoBeatsAPI
from matchmonkey.discovery.profiles import ProfileManager
from matchmonkey.interfaces import NotificationSink
from matchmonkey.models.records import (
    Candidate, CandidateTrack, DiscoveryMode, DiscoveryOptions, Seed,
)
from matchmonkey.utils.text import artist_key, normalize_title, split_artists


logger = logging.getLogger(__name__)

# Upper bound for a single top-tracks request
TOP_TRACKS_MAX = 100
# Seed artists queried for tags when seeds carry too few genres
GENRE_TAG_ARTISTS = 3
TAGS_PER_ARTIST = 3
SEED_GENRE_WEIGHT = 3
INFERRED_TAG_WEIGHT = 1


@dataclass
class DiscoveryContext:
    """Service clients and helpers shared by the strategies of one run."""
    lastfm: LastFMAPI
    reccobeats: ReccoBeatsAPI
    profiles: ProfileManager
    notifier: Optional[NotificationSink] = None

    def progress(self, message: str, fraction: float) -> None:
        if self.notifier is not None:
            self.notifier.progress(message, max(0.0, min(1.0, fraction)))


def seed_artists(seeds: Sequence[Seed], limit: Optional[int] = None) -> List[str]:
    """Unique seed artist names in seed order."""
    names: List[str] = []
    seen = set()
    for seed in seeds:
        key = artist_key(seed.artist)
        if key and key not in seen:
            seen.add(key)
            names.append(seed.artist.strip())
            if limit is not None and len(names) >= limit:
                break
    return names


def aggregate_features(vectors: Sequence[Dict[str, float]]) -> Dict[str, float]:
    """Combine seed feature vectors into one target.

    A single vector is returned unchanged; several vectors are averaged
    per feature over the vectors that carry it.

    Args:
        vectors: Audio-feature vectors

    Returns:
        Aggregate feature targets
    """
    vectors = [v for v in vectors if v]
    if not vectors:
        return {}
    if len(vectors) == 1:
        return dict(vectors[0])

    totals: Dict[str, float] = {}
    counts: Dict[str, int] = {}
    for vector in vectors:
        for key, value in vector.items():
            totals[key] = totals.get(key, 0.0) + value
            counts[key] = counts.get(key, 0) + 1
    return {key: totals[key] / counts[key] for key in totals}


class ArtistPool:
    """Ordered, deduplicated, blacklist-filtered set of candidate artists."""

    def __init__(self, options: DiscoveryOptions, source: str = "seed"):
        self.options = options
        self.source = source
        self._entries: "OrderedDict[str, Candidate]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, artist: str) -> Optional[Candidate]:
        """Add an artist unless already present or blacklisted.

        Returns:
            The candidate for the artist, or None if it was rejected
        """
        key = artist_key(artist)
        if not key:
            return None
        if self.options.is_blacklisted(artist):
            logger.debug("Skipping blacklisted artist: %s", artist)
            return None
        if key not in self._entries:
            self._entries[key] = Candidate(artist=artist.strip(), source=self.source)
        return self._entries[key]

    def add_track(self, artist: str, track: CandidateTrack) -> bool:
        """Add a track under its artist, respecting tracks_per_artist."""
        candidate = self.add(artist)
        if candidate is None or len(candidate.tracks) >= self.options.tracks_per_artist:
            return False
        wanted = normalize_title(track.title)
        if any(normalize_title(t.title) == wanted for t in candidate.tracks):
            return False
        candidate.tracks.append(track)
        return True

    def candidates(self) -> List[Candidate]:
        return list(self._entries.values())


class DiscoveryStrategy:
    """Base class: discover(seeds, options) never raises.

    Subclasses implement ``collect`` (artist pool, tracks optional);
    ``complete`` fills in top tracks for candidates that have none.
    """

    mode: DiscoveryMode = DiscoveryMode.ARTIST

    def __init__(self, context: DiscoveryContext):
        self.context = context

    async def discover(self, seeds: Sequence[Seed], options: DiscoveryOptions) -> List[Candidate]:
        """Run the strategy.

        Args:
            seeds: Collected seeds
            options: Effective run options

        Returns:
            Candidates with at least one track, possibly empty
        """
        try:
            candidates = await self.collect(seeds, options)
            candidates = await self.complete(candidates, options)
        except Exception as e:
            logger.error("%s discovery failed: %s", self.mode.value, e, exc_info=True)
            return []
        logger.info("%s discovery: %d candidate artists, %d tracks",
                    self.mode.value, len(candidates), sum(len(c.tracks) for c in candidates))
        return candidates

    async def collect(self, seeds: Sequence[Seed], options: DiscoveryOptions) -> List[Candidate]:
        raise NotImplementedError

    async def complete(self, candidates: List[Candidate], options: DiscoveryOptions) -> List[Candidate]:
        """Fetch top tracks for trackless candidates and drop empty ones.

        Args:
            candidates: Candidate pool
            options: Effective run options

        Returns:
            Candidates that have at least one track
        """
        limit = max(1, min(options.tracks_per_artist, TOP_TRACKS_MAX))
        pending = [c for c in candidates if not c.tracks]
        for index, candidate in enumerate(pending):
            self.context.progress(f'Fetching tracks for "{candidate.artist}"...',
                                  0.5 + 0.3 * (index + 1) / len(pending))
            try:
                tracks = await self.context.lastfm.get_top_tracks(candidate.artist, limit)
            except Exception as e:
                logger.warning('Top tracks failed for "%s": %s', candidate.artist, e)
                continue
            candidate.tracks = list(tracks[:options.tracks_per_artist])
            if not candidate.tracks:
                logger.debug('No top tracks found for "%s"', candidate.artist)

        return [c for c in candidates if c.tracks]


class ArtistStrategy(DiscoveryStrategy):
    """Similar artists of each seed artist, then their top tracks."""

    mode = DiscoveryMode.ARTIST

    async def collect(self, seeds: Sequence[Seed], options: DiscoveryOptions) -> List[Candidate]:
        pool = ArtistPool(options, source="seed")
        artists = seed_artists(seeds, options.seed_limit)

        for index, artist in enumerate(artists):
            self.context.progress(f'Finding artists similar to "{artist}"...',
                                  0.1 + 0.4 * index / max(1, len(artists)))
            try:
                if options.include_seed_artist:
                    pool.add(artist)
                similar = await self.context.lastfm.get_similar_artists(artist, options.similar_limit)
                if not similar:
                    logger.info('No similar artists found for "%s"', artist)
                    continue
                for item in similar[:options.similar_limit]:
                    pool.add(item["name"])
            except Exception as e:
                logger.warning('Artist discovery failed for seed "%s": %s', artist, e)

        return pool.candidates()


class TrackStrategy(DiscoveryStrategy):
    """Tracks similar to each seed track, grouped by artist."""

    mode = DiscoveryMode.TRACK

    async def collect(self, seeds: Sequence[Seed], options: DiscoveryOptions) -> List[Candidate]:
        pool = ArtistPool(options, source="seed")
        track_seeds = [s for s in seeds if s.title][:options.seed_limit]
        if not track_seeds:
            logger.info("Track discovery needs seeds with titles; none available")
            return []

        for index, seed in enumerate(track_seeds):
            self.context.progress(f'Finding tracks similar to "{seed.title}"...',
                                  0.1 + 0.6 * index / len(track_seeds))
            try:
                if options.include_seed_track:
                    pool.add_track(seed.artist, CandidateTrack(title=seed.title, match_score=1.0))
                similar = await self.context.lastfm.get_similar_tracks(
                    seed.artist, seed.title, options.similar_limit
                )
                if not similar:
                    logger.info('No similar tracks found for "%s - %s"', seed.artist, seed.title)
                    continue
                for item in similar:
                    pool.add_track(item["artist"], CandidateTrack(
                        title=item["title"],
                        match_score=item.get("match"),
                        playcount=item.get("playcount"),
                    ))
            except Exception as e:
                logger.warning('Track discovery failed for seed "%s - %s": %s', seed.artist, seed.title, e)

        return pool.candidates()


class GenreStrategy(DiscoveryStrategy):
    """Top artists of the seeds' most weighted tags."""

    mode = DiscoveryMode.GENRE

    async def collect_tags(self, seeds: Sequence[Seed], options: DiscoveryOptions,
                           max_tags: int) -> List[str]:
        """Collect tags ordered by weight.

        Seed-supplied genres weigh 3, tags inferred from artist metadata
        weigh 1. Equal weights keep first-seen order.
        """
        weights: "OrderedDict[str, int]" = OrderedDict()
        limited = list(seeds)[:max(1, options.seed_limit)]

        for seed in limited:
            for genre in split_artists(seed.genre):
                tag = genre.lower()
                weights[tag] = weights.get(tag, 0) + SEED_GENRE_WEIGHT

        if len(weights) < max_tags:
            for artist in seed_artists(limited, GENRE_TAG_ARTISTS):
                self.context.progress(f'Getting genre tags for "{artist}"...', 0.15)
                try:
                    tags = await self.context.lastfm.get_artist_tags(artist)
                except Exception as e:
                    logger.warning('Tag lookup failed for "%s": %s', artist, e)
                    continue
                for tag in tags[:TAGS_PER_ARTIST]:
                    tag = tag.lower()
                    weights[tag] = weights.get(tag, 0) + INFERRED_TAG_WEIGHT

        ordered = sorted(weights.items(), key=lambda item: -item[1])
        return [tag for tag, _weight in ordered]

    async def collect(self, seeds: Sequence[Seed], options: DiscoveryOptions) -> List[Candidate]:
        pool = ArtistPool(options, source="seed")
        max_candidates = max(1, options.similar_limit)
        max_tags = min(5, math.ceil(max_candidates / 5))
        artists_per_tag = math.ceil(max_candidates / max_tags)

        if options.include_seed_artist:
            for artist in seed_artists(seeds, options.seed_limit):
                pool.add(artist)

        tags = await self.collect_tags(seeds, options, max_tags)
        if not tags:
            logger.info("Genre discovery found no tags")
            return pool.candidates()

        selected = tags[:max_tags]
        logger.info("Genre discovery top tags: %s", ", ".join(selected))

        for index, tag in enumerate(selected):
            if len(pool) >= max_candidates:
                logger.debug("Genre discovery reached %d candidates", max_candidates)
                break
            self.context.progress(f'Searching "{tag}" genre ({index + 1}/{len(selected)})...',
                                  0.3 + 0.3 * (index + 1) / len(selected))
            try:
                fetch_limit = min(artists_per_tag, max_candidates - len(pool))
                for name in await self.context.lastfm.get_tag_top_artists(tag, fetch_limit):
                    if len(pool) >= max_candidates:
                        break
                    pool.add(name)
            except Exception as e:
                logger.warning('Genre discovery failed for tag "%s": %s', tag, e)

        return pool.candidates()


class FeatureRecommendationMixin:
    """Seed resolution and recommendation grouping on the feature service."""

    context: DiscoveryContext

    async def resolve_seed_ids(self, seeds: Sequence[Seed],
                               options: DiscoveryOptions) -> Tuple[List[str], List[Dict[str, float]]]:
        """Resolve seed tracks to feature-service ids and feature vectors.

        Returns:
            (ids, vectors) for the seeds that resolved
        """
        ids: List[str] = []
        vectors: List[Dict[str, float]] = []
        track_seeds = [s for s in seeds if s.title][:options.seed_limit]

        for index, seed in enumerate(track_seeds):
            self.context.progress(f'Analyzing "{seed.title}"...', 0.1 + 0.3 * index / len(track_seeds))
            try:
                track_id = await self.context.reccobeats.search_track(seed.artist, seed.title, seed.album)
                if not track_id or track_id in ids:
                    continue
                ids.append(track_id)
                features = await self.context.reccobeats.get_audio_features(track_id)
                if features:
                    vectors.append(features)
            except Exception as e:
                logger.warning('Feature lookup failed for "%s - %s": %s', seed.artist, seed.title, e)

        return ids, vectors

    async def recommend(self, ids: Sequence[str], targets: Dict[str, float],
                        options: DiscoveryOptions, source: str) -> List[Candidate]:
        size = min(100, max(20, options.similar_limit * 3))
        recommendations = await self.context.reccobeats.get_recommendations(ids, size, targets)
        pool = ArtistPool(options, source=source)
        for item in recommendations:
            pool.add_track(item["artist"], CandidateTrack(
                title=item["title"], popularity=item.get("popularity")
            ))
        return pool.candidates()[:options.similar_limit]


class ProfileSeededStrategy(FeatureRecommendationMixin, DiscoveryStrategy):
    """Recommendations from seed audio features (seed-driven AI mode)."""

    mode = DiscoveryMode.PROFILE

    async def collect(self, seeds: Sequence[Seed], options: DiscoveryOptions) -> List[Candidate]:
        ids, vectors = await self.resolve_seed_ids(seeds, options)
        if not ids:
            logger.info("No seed could be resolved on ReccoBeats; nothing to recommend")
            return []

        targets = aggregate_features(vectors)
        logger.info("Requesting recommendations for %d seed(s), targets: %s",
                    len(ids), ", ".join(f"{k}={v:.2f}" for k, v in sorted(targets.items())) or "none")
        self.context.progress("Fetching recommendations...", 0.5)
        return await self.recommend(ids, targets, options, source="seed")


class ProfileStrategy(FeatureRecommendationMixin, DiscoveryStrategy):
    """Mood or activity preset discovery.

    Seeds, when present, steer feature-service recommendations with the
    preset's targets. When no seed resolves the preset's tags are expanded
    through the similarity service instead.
    """

    def __init__(self, context: DiscoveryContext, mode: DiscoveryMode):
        super().__init__(context)
        self.mode = mode

    async def collect(self, seeds: Sequence[Seed], options: DiscoveryOptions) -> List[Candidate]:
        profile = self.context.profiles.get_profile(self.mode.value, options.profile_name)
        if profile is None:
            logger.warning("Unknown %s preset '%s'; available: %s", self.mode.value,
                           options.profile_name, ", ".join(self.context.profiles.names(self.mode.value)))
            return []

        logger.info("Using %s preset '%s'", profile.kind, profile.name)

        if seeds:
            ids, _vectors = await self.resolve_seed_ids(seeds, options)
            if ids:
                self.context.progress(f"Fetching {profile.name} recommendations...", 0.5)
                candidates = await self.recommend(ids, profile.targets, options, source="profile")
                if candidates:
                    return candidates
            logger.info("Feature recommendations unavailable, expanding '%s' tags instead", profile.name)

        pool = ArtistPool(options, source="profile")
        per_tag = max(1, math.ceil(options.similar_limit / max(1, len(profile.tags))))
        for tag in profile.tags:
            if len(pool) >= options.similar_limit:
                break
            try:
                for name in await self.context.lastfm.get_tag_top_artists(tag, per_tag):
                    if len(pool) >= options.similar_limit:
                        break
                    pool.add(name)
            except Exception as e:
                logger.warning('Preset tag "%s" failed: %s', tag, e)
        return pool.candidates()


def build_strategy(mode: DiscoveryMode, context: DiscoveryContext) -> DiscoveryStrategy:
    """Instantiate the strategy for a discovery mode.

    Args:
        mode: Discovery mode
        context: Run context

    Returns:
        Strategy instance
    """
    if mode == DiscoveryMode.TRACK:
        return TrackStrategy(context)
    if mode == DiscoveryMode.GENRE:
        return GenreStrategy(context)
    if mode == DiscoveryMode.PROFILE:
        return ProfileSeededStrategy(context)
    if mode in (DiscoveryMode.MOOD, DiscoveryMode.ACTIVITY):
        return ProfileStrategy(context, mode)
    return ArtistStrategy(context)
