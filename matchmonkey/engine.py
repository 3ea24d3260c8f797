"""MatchMonkey - Discovery pipeline orchestration

This module contains the seed collector and the MatchMonkeyEngine class,
which runs one discovery -> match -> dedup/rank -> output pipeline per
invocation.
"""

import logging
import random
import time
import uuid
from typing import Callable, List, Optional, Sequence

from matchmonkey.api.gateway import ServiceGateway
from matchmonkey.api.lastfm import LastFMAPI
from matchmonkey.api.reccobeats import ReccoBeatsAPI
from matchmonkey.discovery.blending import blend_candidates
from matchmonkey.discovery.profiles import ProfileManager, load_profiles
from matchmonkey.discovery.strategies import (
    ArtistStrategy, DiscoveryContext, build_strategy,
)
from matchmonkey.interfaces import (
    CatalogQuery, NotificationSink, PlaylistSink, SeedSource, SettingsProvider, SourceTrack,
)
from matchmonkey.matching.matcher import LibraryMatcher
from matchmonkey.matching.ranking import TrackRanker, score_candidate
from matchmonkey.models.config_models import MatchMonkeyConfig, OVERWRITE_CREATE
from matchmonkey.models.records import (
    Candidate, CandidateTrack, DiscoveryMode, DiscoveryOptions, MatchedTrack, PipelineResult,
    Seed, SeedKind,
)
from matchmonkey.monitoring.metrics import record_run_complete
from matchmonkey.playlist.output import (
    ConfirmHook, OutputBuilder, OutputCancelled, OutputError, OutputPlan,
)
from matchmonkey.storage.cache import RunCache
from matchmonkey.storage.missed import MissedResultsStore
from matchmonkey.utils.text import artist_key, split_artists


logger = logging.getLogger(__name__)

NO_SEEDS_MESSAGE = "No seed tracks found. Select one or more tracks or start playing a track."
NO_CANDIDATES_MESSAGE = "No similar artists found for the selected seeds."
NO_MATCHES_MESSAGE = "No matching tracks found in your library. Try adjusting your filters or adding more music."


def seeds_from_tracks(tracks: Sequence[SourceTrack]) -> List[Seed]:
    """Turn host tracks into seeds, one per distinct artist.

    Multi-artist fields are split on ';'. The first occurrence of an
    artist keeps its track context.

    Args:
        tracks: Tracks from the selection or the player

    Returns:
        Deduplicated seeds in selection order
    """
    seeds: List[Seed] = []
    seen = set()
    for track in tracks:
        if track is None:
            continue
        for name in split_artists(track.artist):
            key = artist_key(name)
            if key in seen:
                continue
            seen.add(key)
            title = (track.title or "").strip() or None
            seeds.append(Seed(
                kind=SeedKind.TRACK if title else SeedKind.ARTIST,
                artist=name,
                title=title,
                genre=(track.genre or "").strip() or None,
                album=(track.album or "").strip() or None,
            ))
    return seeds


class SeedCollector:
    """Reads seeds from the host: selection first, then the playing track."""

    def __init__(self, source: SeedSource):
        self.source = source

    async def collect(self) -> List[Seed]:
        try:
            selection = await self.source.get_selection()
        except Exception as e:
            logger.error("Error reading selection: %s", e)
            selection = []

        seeds = seeds_from_tracks(selection or [])
        if seeds:
            logger.info("Collected %d seed artist(s) from selection", len(seeds))
            return seeds

        try:
            playing = await self.source.get_currently_playing()
        except Exception as e:
            logger.error("Error reading current track: %s", e)
            playing = None

        seeds = seeds_from_tracks([playing] if playing else [])
        if seeds:
            logger.info("Using currently playing track as seed: %s", seeds[0].artist)
        return seeds


class MatchMonkeyEngine:
    """Main orchestrator: one run_pipeline call per playlist generation."""

    def __init__(
        self,
        config: MatchMonkeyConfig,
        settings: SettingsProvider,
        seed_source: SeedSource,
        catalog: CatalogQuery,
        sink: PlaylistSink,
        notifier: Optional[NotificationSink] = None,
        gateway: Optional[ServiceGateway] = None,
        profiles: Optional[ProfileManager] = None,
        missed_store: Optional[MissedResultsStore] = None,
        confirm_hook: Optional[ConfirmHook] = None,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ):
        """Initialize engine.

        Args:
            config: Validated configuration (service endpoints and keys)
            settings: Settings provider consulted at the start of every run
            seed_source: Host selection / player
            catalog: Host library search
            sink: Host playlist and queue writer
            notifier: Optional toast/progress sink
            gateway: Shared service gateway; built from config when omitted
            profiles: Mood/activity presets; defaults or PROFILES_FILE when omitted
            missed_store: Optional store for unmatched recommendations
            confirm_hook: Optional playlist confirmation callback for manual runs
            clock: Monotonic time source for run durations
            rng: Random source for shuffling
        """
        self.config = config
        self.settings = settings
        self.seed_collector = SeedCollector(seed_source)
        self.catalog = catalog
        self.sink = sink
        self.notifier = notifier
        self.gateway = gateway or ServiceGateway.from_config(config.gateway, config.monitoring)
        self.profiles = profiles or load_profiles(config.discovery.profiles_file)
        self.missed_store = missed_store
        self.output = OutputBuilder(sink, confirm_hook)
        self._clock = clock
        self._rng = rng or random.Random()

    async def close(self) -> None:
        await self.gateway.close()

    # ------------------------------------------------------------------
    # Options
    # ------------------------------------------------------------------

    def build_options(self, mode: Optional[str] = None, auto_mode: bool = False) -> DiscoveryOptions:
        """Read the effective run options from settings.

        Auto mode switches to track discovery with the conservative
        auto-mode caps and never includes the seed artist.

        Args:
            mode: Requested discovery mode; the configured mode when None
            auto_mode: Whether the run was triggered automatically

        Returns:
            DiscoveryOptions for this run
        """
        s = self.settings
        if auto_mode:
            discovery_mode = DiscoveryMode.TRACK
        else:
            discovery_mode = DiscoveryMode.parse(mode or s.get_str("discovery.mode", "artist"))

        profile_name = None
        if discovery_mode == DiscoveryMode.MOOD:
            profile_name = s.get_str("discovery.mood") or None
        elif discovery_mode == DiscoveryMode.ACTIVITY:
            profile_name = s.get_str("discovery.activity") or None

        return DiscoveryOptions(
            mode=discovery_mode,
            seed_limit=s.get_int("automode.seed_limit", 2) if auto_mode else s.get_int("discovery.seed_limit", 5),
            similar_limit=s.get_int("discovery.similar_limit", 20),
            tracks_per_artist=(s.get_int("automode.tracks_per_artist", 5) if auto_mode
                               else s.get_int("discovery.tracks_per_artist", 9999)),
            total_limit=s.get_int("automode.total_limit", 10) if auto_mode else s.get_int("discovery.total_limit", 9999),
            include_seed_artist=not auto_mode and s.get_bool("discovery.include_seed_artist"),
            include_seed_track=s.get_bool("discovery.include_seed_track"),
            rank=s.get_bool("discovery.rank"),
            best=s.get_bool("discovery.best"),
            randomize=s.get_bool("discovery.randomize"),
            min_rating=s.get_int("discovery.min_rating", 0),
            allow_unknown=s.get_bool("discovery.allow_unknown", True),
            blacklist=frozenset(n.strip().upper() for n in s.get_list("discovery.blacklist") if n.strip()),
            prefixes=tuple(p.strip() for p in s.get_list("discovery.prefixes") if p.strip()),
            blend_ratio=min(1.0, max(0.0, s.get_float("discovery.blend_ratio", 0.5))),
            profile_name=profile_name,
            auto_mode=auto_mode,
        )

    def build_output_plan(self, auto_mode: bool = False) -> OutputPlan:
        s = self.settings
        if auto_mode:
            return OutputPlan(enqueue=True, ignore_dupes=True, clear_queue=False, confirm=False)
        return OutputPlan(
            enqueue=s.get_bool("output.enqueue"),
            overwrite=s.get_str("output.overwrite", OVERWRITE_CREATE),
            template=s.get_str("output.playlist_name", "Artists similar to %"),
            parent=s.get_str("output.parent_playlist") or None,
            ignore_dupes=s.get_bool("output.ignore_dupes"),
            clear_queue=s.get_bool("output.clear_queue"),
            confirm=s.get_bool("output.confirm"),
        )

    # ------------------------------------------------------------------
    # Pipeline stages
    # ------------------------------------------------------------------

    def _context(self, cache: RunCache, options: DiscoveryOptions) -> DiscoveryContext:
        lastfm = LastFMAPI(
            self.gateway, cache, self.config.lastfm.api_key,
            base_url=self.config.lastfm.base_url, prefixes=options.prefixes,
        )
        reccobeats = ReccoBeatsAPI(self.gateway, cache, base_url=self.config.reccobeats.base_url)
        return DiscoveryContext(lastfm=lastfm, reccobeats=reccobeats, profiles=self.profiles,
                                notifier=self.notifier)

    async def discover(self, seeds: Sequence[Seed], options: DiscoveryOptions,
                       context: DiscoveryContext) -> List[Candidate]:
        """Run the strategy for the mode, blending in seed similarity when asked.

        Args:
            seeds: Collected seeds
            options: Run options
            context: Run-scoped service clients

        Returns:
            Candidates with tracks
        """
        if options.mode.uses_profile and self.profiles.get_profile(options.mode.value,
                                                                   options.profile_name) is None:
            logger.warning("Unknown %s preset '%s', nothing to discover",
                           options.mode.value, options.profile_name)
            return []

        strategy = build_strategy(options.mode, context)
        if not (options.mode.uses_profile and seeds and options.blend_ratio > 0):
            return await strategy.discover(seeds, options)

        artist_strategy = ArtistStrategy(context)
        try:
            seed_pool = await artist_strategy.collect(seeds, options)
            profile_pool = await strategy.collect(seeds, options)
            blended = blend_candidates(seed_pool, profile_pool, options.blend_ratio, options.similar_limit)
            return await artist_strategy.complete(blended, options)
        except Exception as e:
            logger.error("Blended discovery failed: %s", e, exc_info=True)
            return []

    async def match_candidates(self, candidates: Sequence[Candidate],
                               options: DiscoveryOptions) -> List[MatchedTrack]:
        """Match candidates against the catalog and collapse duplicates.

        Args:
            candidates: Discovery output
            options: Run options

        Returns:
            Final ordered tracks, at most total_limit
        """
        matcher = LibraryMatcher(self.catalog)
        ranker = TrackRanker()
        match_options = options.match_options
        position = 0

        for index, candidate in enumerate(candidates):
            if len(ranker) >= options.total_limit:
                break
            if self.notifier is not None:
                self.notifier.progress(f'Matching {len(candidate.tracks)} tracks from "{candidate.artist}"...',
                                       0.8 + 0.15 * (index + 1) / max(1, len(candidates)))
            try:
                matches = await matcher.match(candidate.artist, candidate.titles, 1, match_options)
            except Exception as e:
                logger.error('Error matching "%s": %s', candidate.artist, e)
                continue

            added = 0
            for track in candidate.tracks:
                if len(ranker) >= options.total_limit:
                    break
                found = matches.get(track.title)
                if not found:
                    self._record_missed(candidate, track, position)
                    position += 1
                    continue
                for record in found:
                    if ranker.add(record, track):
                        added += 1
                    if len(ranker) >= options.total_limit:
                        break
                position += 1

            logger.info('Added %d track(s) from "%s" (total: %d)', added, candidate.artist, len(ranker))

        return ranker.tracks(rank=options.rank, randomize=options.randomize, rng=self._rng)[:options.total_limit]

    def _record_missed(self, candidate: Candidate, track: CandidateTrack, position: int) -> None:
        if self.missed_store is None:
            return
        popularity = score_candidate(track, position) if (
            track.match_score is not None or track.playcount or track.rank or track.popularity is not None
        ) else 0
        try:
            self.missed_store.add(candidate.artist, track.title, popularity=popularity,
                                  source=candidate.source)
        except Exception as e:
            logger.warning("Could not record missed result: %s", e)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def _toast(self, message: str, level: str = "info") -> None:
        if self.notifier is not None:
            self.notifier.toast(message, level)

    async def run_pipeline(self, mode: Optional[str] = None, auto_mode: bool = False) -> PipelineResult:
        """Run discovery, matching, ranking and output once.

        Args:
            mode: Discovery mode name; the configured mode when None
            auto_mode: Apply auto-mode limits and queue output

        Returns:
            PipelineResult; only output failures are reported as errors,
            every other failure degrades to fewer or no tracks
        """
        run_id = uuid.uuid4().hex[:8]
        start = self._clock()
        options = self.build_options(mode, auto_mode)
        trigger = "auto" if auto_mode else "manual"
        cache = RunCache(run_id)

        logger.info("=" * 70)
        logger.info("MatchMonkey run %s: %s discovery (%s)", run_id, options.mode.value, trigger,
                    extra={"run_id": run_id, "mode": options.mode.value})
        logger.info("=" * 70)

        result = await self._run(options, cache)

        duration = self._clock() - start
        stats = cache.stats()
        cache.clear()
        if result.success:
            outcome = "success"
        elif result.error in (NO_SEEDS_MESSAGE, NO_CANDIDATES_MESSAGE, NO_MATCHES_MESSAGE):
            outcome = "empty"
        else:
            outcome = "error"
        record_run_complete(options.mode.value, trigger, outcome, duration)

        logger.info("=" * 70)
        logger.info("Run %s finished in %.1fs: %s, %d track(s) added (cache: %s)",
                    run_id, duration, outcome, result.tracks_added, stats,
                    extra={"run_id": run_id, "duration": duration})
        logger.info("=" * 70)

        if result.success:
            if auto_mode:
                self._toast(f"Auto-queued {result.tracks_added} similar track(s)")
            else:
                self._toast(f"Added {result.tracks_added} tracks from similar artists", "success")
        elif not auto_mode and result.error != "cancelled":
            self._toast(result.error or "Nothing to add", "error" if outcome == "error" else "info")
        return result

    async def _run(self, options: DiscoveryOptions, cache: RunCache) -> PipelineResult:
        self._progress("Collecting seed tracks...", 0.05)
        seeds = await self.seed_collector.collect()
        if not seeds and not options.mode.uses_profile:
            return PipelineResult(success=False, error=NO_SEEDS_MESSAGE)
        seeds = seeds[:options.seed_limit]

        context = self._context(cache, options)
        candidates = await self.discover(seeds, options, context)
        if not candidates:
            return PipelineResult(success=False, error=NO_CANDIDATES_MESSAGE)

        tracks = await self.match_candidates(candidates, options)
        if not tracks:
            return PipelineResult(success=False, error=NO_MATCHES_MESSAGE)

        self._progress("Writing results...", 0.95)
        plan = self.build_output_plan(options.auto_mode)
        try:
            delivered = await self.output.deliver(tracks, plan, [s.artist for s in seeds])
        except OutputCancelled:
            logger.info("Playlist creation cancelled")
            return PipelineResult(success=False, tracks=tracks, error="cancelled")
        except OutputError as e:
            logger.error("Output failed: %s", e)
            return PipelineResult(success=False, tracks=tracks, error=str(e))

        self._progress("Done", 1.0)
        return PipelineResult(success=True, tracks_added=delivered.added, tracks=tracks)

    def _progress(self, message: str, fraction: float) -> None:
        if self.notifier is not None:
            self.notifier.progress(message, fraction)
