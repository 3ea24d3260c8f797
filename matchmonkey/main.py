#!/usr/bin/env python3
"""MatchMonkey - Command line entry point

Subcommands:
    run     one discovery pipeline (manual trigger)
    watch   auto-mode against a Subsonic server's play queue
    check   connectivity check of every configured service
    missed  list or clear recommendations missing from the library
"""

import sys
import logging
import argparse
import asyncio
from typing import Optional

import requests

from matchmonkey.automode.controller import AutoTriggerController
from matchmonkey.config import get_data_dir, load_config_from_env, validate_config
from matchmonkey.engine import MatchMonkeyEngine
from matchmonkey.hosts.console import DryRunSink, LoggingNotifier, StaticSeedSource
from matchmonkey.hosts.subsonic import (
    PlaybackPoller, SubsonicCatalog, SubsonicClient, SubsonicPlaylistSink, SubsonicSeedSource,
)
from matchmonkey.models.config_models import MatchMonkeyConfig
from matchmonkey.models.records import DiscoveryMode
from matchmonkey.monitoring.metrics import setup_metrics
from matchmonkey.settings import AUTO_MODE_KEY, MappingSettings
from matchmonkey.storage.missed import MissedResultsStore
from matchmonkey.utils.helpers import acquire_lock, print_banner, release_lock
from matchmonkey.utils.logging_config import setup_logging


logger = logging.getLogger(__name__)

MISSED_DB_NAME = "matchmonkey_missed.db"
LOCK_FILE_NAME = "matchmonkey.lock"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="matchmonkey",
        description="MatchMonkey - Similar-music discovery matched against your library",
        epilog="Configure via environment variables (LASTFM_API_KEY, SUBSONIC_URL, ...)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run one discovery pipeline")
    run.add_argument("--mode", choices=[m.value for m in DiscoveryMode], default=None,
                     help="Discovery mode (default: DISCOVERY_MODE)")
    run.add_argument("--artist", action="append", default=[], help="Seed artist (repeatable)")
    run.add_argument("--track", action="append", default=[], help='Seed track as "Artist - Title" (repeatable)')
    run.add_argument("--mood", help="Mood preset for mood mode")
    run.add_argument("--activity", help="Activity preset for activity mode")
    run.add_argument("--starred", action="store_true", help="Use starred Subsonic songs as seeds")
    run.add_argument("--dry-run", action="store_true", help="Log results without writing playlists")

    watch = sub.add_parser("watch", help="Auto-queue tracks when the Subsonic play queue runs low")
    watch.add_argument("--dry-run", action="store_true", help="Log results without touching the queue")

    sub.add_parser("check", help="Check connectivity to configured services")

    missed = sub.add_parser("missed", help="List or clear missed recommendations")
    missed.add_argument("--clear", action="store_true", help="Delete all missed results")
    missed.add_argument("--limit", type=int, default=50, help="Rows to show")

    return parser


def missed_store(config: MatchMonkeyConfig) -> Optional[MissedResultsStore]:
    if not config.missed.enabled:
        return None
    return MissedResultsStore(get_data_dir() / MISSED_DB_NAME, max_results=config.missed.max_results)


def build_engine(config: MatchMonkeyConfig, settings: MappingSettings, seed_source, dry_run: bool,
                 client: Optional[SubsonicClient]) -> MatchMonkeyEngine:
    """Wire the engine with Subsonic collaborators, or console ones without a server."""
    if client is not None:
        catalog = SubsonicCatalog(client)
        sink = DryRunSink() if dry_run else SubsonicPlaylistSink(client)
    else:
        catalog = _EmptyCatalog()
        sink = DryRunSink()
    return MatchMonkeyEngine(
        config, settings, seed_source, catalog, sink,
        notifier=LoggingNotifier(),
        missed_store=missed_store(config),
    )


class _EmptyCatalog:
    """Catalog used when no library server is configured."""

    async def find_tracks(self, artist, titles, options):
        return {}


async def cmd_run(args, config: MatchMonkeyConfig, settings: MappingSettings) -> int:
    if args.mood:
        settings.set("discovery.mood", args.mood)
    if args.activity:
        settings.set("discovery.activity", args.activity)

    client = SubsonicClient.from_config(config.subsonic) if config.subsonic else None
    if client is None:
        logger.warning("SUBSONIC_URL not set: matching against an empty library")

    if args.artist or args.track:
        seed_source = StaticSeedSource.from_args(args.artist, args.track)
    elif client is not None:
        seed_source = SubsonicSeedSource(client, use_starred=args.starred)
    else:
        logger.error("No seeds: pass --artist/--track or configure SUBSONIC_URL")
        return 1

    engine = build_engine(config, settings, seed_source, args.dry_run, client)
    try:
        result = await engine.run_pipeline(args.mode, False)
    finally:
        await engine.close()
        if client is not None:
            await client.close()

    if result.success:
        print(f"Added {result.tracks_added} track(s)")
        for track in result.tracks:
            print(f"  {track.artist} - {track.title}")
        return 0
    print(f"No tracks added: {result.error}")
    return 0 if result.error == "cancelled" else 1


async def cmd_watch(args, config: MatchMonkeyConfig, settings: MappingSettings) -> int:
    if not config.subsonic:
        logger.error("watch requires SUBSONIC_URL, SUBSONIC_USER and SUBSONIC_PASSWORD")
        return 1

    lock = acquire_lock(get_data_dir() / LOCK_FILE_NAME)
    settings.set(AUTO_MODE_KEY, True)
    client = SubsonicClient.from_config(config.subsonic)
    engine = build_engine(config, settings, SubsonicSeedSource(client), args.dry_run, client)

    channel: asyncio.Queue = asyncio.Queue()
    poller = PlaybackPoller(client, channel, interval=config.automode.poll_interval)
    controller = AutoTriggerController(
        engine.run_pipeline,
        settings,
        threshold=config.automode.threshold,
        cooldown_ms=config.automode.cooldown_ms,
    )

    poll_task = asyncio.create_task(poller.run())
    try:
        await controller.run(channel)
    finally:
        poller.stop()
        await asyncio.gather(poll_task, return_exceptions=True)
        await engine.close()
        await client.close()
        release_lock(lock)
    return 0


def cmd_check(config: MatchMonkeyConfig) -> int:
    """Check every configured service synchronously."""
    ok = True

    if config.lastfm.api_key:
        try:
            r = requests.get(config.lastfm.base_url.rstrip("/") + "/", params={
                "method": "artist.getInfo", "artist": "Radiohead",
                "api_key": config.lastfm.api_key, "format": "json",
            }, timeout=10)
            data = r.json()
            if "error" in data:
                logger.error("✗ Last.fm: %s", data.get("message"))
                ok = False
            else:
                logger.info("✓ Last.fm reachable")
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error("✗ Last.fm: %s", str(e)[:200])
            ok = False
    else:
        logger.warning("- Last.fm: no API key configured")

    try:
        r = requests.get(config.reccobeats.base_url.rstrip("/") + "/artist/search",
                         params={"searchText": "Radiohead", "size": 1}, timeout=10)
        r.raise_for_status()
        logger.info("✓ ReccoBeats reachable")
    except requests.exceptions.RequestException as e:
        logger.error("✗ ReccoBeats: %s", str(e)[:200])
        ok = False

    if config.subsonic:
        ok = SubsonicClient.from_config(config.subsonic).test_connection() and ok
    else:
        logger.info("- Subsonic: not configured")

    return 0 if ok else 1


def cmd_missed(args, config: MatchMonkeyConfig) -> int:
    store = MissedResultsStore(get_data_dir() / MISSED_DB_NAME, max_results=config.missed.max_results)
    if args.clear:
        store.clear()
        print("Missed results cleared")
        return 0

    rows = store.list(limit=args.limit)
    if not rows:
        print("No missed results")
        return 0
    print(f"{'Seen':>5} {'Pop':>4}  Artist - Title")
    for row in rows:
        print(f"{row['occurrences']:>5} {row['popularity']:>4}  {row['artist']} - {row['title']}")
    print(f"({store.count()} total)")
    return 0


def main(argv: Optional[list] = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    raw = load_config_from_env()
    log = raw.get("logging", {})
    setup_logging(log_level=log.get("level", "INFO"), log_format=log.get("format", "text"),
                  log_file=log.get("file"))

    config = validate_config(raw)
    if config is None:
        sys.exit(1)

    if config.monitoring.metrics_enabled:
        try:
            setup_metrics(enabled=True, port=config.monitoring.metrics_port)
        except Exception as e:
            logger.warning(f"Failed to initialize metrics: {e}")

    settings = MappingSettings.from_config(config)

    if args.command == "check":
        sys.exit(cmd_check(config))
    if args.command == "missed":
        sys.exit(cmd_missed(args, config))

    print_banner()
    try:
        if args.command == "run":
            code = asyncio.run(cmd_run(args, config, settings))
        else:
            code = asyncio.run(cmd_watch(args, config, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        logger.error("Startup failed: %s", e, exc_info=True)
        sys.exit(1)
