"""Configuration management for MatchMonkey"""

import logging
import os
from pathlib import Path
from typing import Dict, Optional

from pydantic import ValidationError

from matchmonkey.utils.secrets import load_secret
from matchmonkey.models.config_models import (
    MatchMonkeyConfig, LastFMConfig, ReccoBeatsConfig, GatewayConfig,
    DiscoveryConfig, OutputConfig, AutoModeConfig, SubsonicConfig,
    MonitoringConfig, MissedResultsConfig, LoggingConfig,
)


logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config_from_env() -> Dict:
    """Load configuration from environment variables.

    Returns:
        Configuration dictionary, one sub-dict per section
    """
    logger.info("Loading configuration from environment variables...")

    config = {
        "lastfm": {
            "api_key": load_secret("LASTFM_API_KEY"),
            "base_url": os.getenv("LASTFM_BASE_URL", "https://ws.audioscrobbler.com/2.0"),
        },
        "reccobeats": {
            "base_url": os.getenv("RECCOBEATS_BASE_URL", "https://api.reccobeats.com/v1"),
        },
        "gateway": {
            "min_interval": float(os.getenv("GATEWAY_MIN_INTERVAL", "0.2")),
            "timeout": float(os.getenv("GATEWAY_TIMEOUT", "10")),
            "max_retries": int(os.getenv("GATEWAY_MAX_RETRIES", "3")),
            "initial_backoff": float(os.getenv("GATEWAY_INITIAL_BACKOFF", "1.0")),
            "backoff_factor": float(os.getenv("GATEWAY_BACKOFF_FACTOR", "2.0")),
            "max_backoff": float(os.getenv("GATEWAY_MAX_BACKOFF", "30")),
        },
        "discovery": {
            "mode": os.getenv("DISCOVERY_MODE", "artist"),
            "seed_limit": int(os.getenv("SEED_LIMIT", "5")),
            "similar_limit": int(os.getenv("SIMILAR_LIMIT", "20")),
            "tracks_per_artist": int(os.getenv("TRACKS_PER_ARTIST", "9999")),
            "total_limit": int(os.getenv("TOTAL_LIMIT", "9999")),
            "include_seed_artist": _env_bool("INCLUDE_SEED_ARTIST", False),
            "include_seed_track": _env_bool("INCLUDE_SEED_TRACK", False),
            "rank": _env_bool("RANK_ENABLED", False),
            "best": _env_bool("BEST_ENABLED", False),
            "randomize": _env_bool("RANDOMIZE", False),
            "min_rating": int(os.getenv("MIN_RATING", "0")),
            "allow_unknown": _env_bool("ALLOW_UNKNOWN", True),
            "blacklist": os.getenv("BLACKLIST", ""),
            "prefixes": os.getenv("NAME_PREFIXES", ""),
            "blend_ratio": float(os.getenv("BLEND_RATIO", "0.5")),
            "mood": os.getenv("MOOD") or None,
            "activity": os.getenv("ACTIVITY") or None,
            "profiles_file": os.getenv("PROFILES_FILE") or None,
        },
        "output": {
            "enqueue": _env_bool("ENQUEUE", False),
            "overwrite": os.getenv("OVERWRITE_MODE", "Create new playlist"),
            "playlist_name": os.getenv("PLAYLIST_NAME", "Artists similar to %"),
            "parent_playlist": os.getenv("PARENT_PLAYLIST") or None,
            "ignore_dupes": _env_bool("IGNORE_DUPES", False),
            "clear_queue": _env_bool("CLEAR_QUEUE", False),
            "confirm": _env_bool("CONFIRM", False),
        },
        "automode": {
            "enabled": _env_bool("AUTO_MODE_ENABLED", False),
            "threshold": int(os.getenv("AUTO_MODE_THRESHOLD", "2")),
            "cooldown_ms": int(os.getenv("AUTO_MODE_COOLDOWN_MS", "5000")),
            "seed_limit": int(os.getenv("AUTO_MODE_SEED_LIMIT", "2")),
            "tracks_per_artist": int(os.getenv("AUTO_MODE_TRACKS_PER_ARTIST", "5")),
            "total_limit": int(os.getenv("AUTO_MODE_TOTAL_LIMIT", "10")),
            "poll_interval": float(os.getenv("AUTO_MODE_POLL_INTERVAL", "5")),
        },
        "subsonic": {
            "url": load_secret("SUBSONIC_URL"),
            "username": load_secret("SUBSONIC_USER"),
            "password": load_secret("SUBSONIC_PASSWORD"),
        },
        "monitoring": {
            "metrics_enabled": _env_bool("METRICS_ENABLED", False),
            "metrics_port": int(os.getenv("METRICS_PORT", "9090")),
            "circuit_breaker_threshold": int(os.getenv("CIRCUIT_BREAKER_THRESHOLD", "5")),
            "circuit_breaker_timeout": int(os.getenv("CIRCUIT_BREAKER_TIMEOUT", "60")),
        },
        "missed": {
            "enabled": _env_bool("MISSED_RESULTS_ENABLED", True),
            "max_results": int(os.getenv("MISSED_RESULTS_MAX", "10000")),
        },
        "logging": {
            "level": os.getenv("LOG_LEVEL", "INFO"),
            "format": os.getenv("LOG_FORMAT", "text"),
            "file": os.getenv("LOG_FILE") or None,
        },
    }

    return config


def validate_config(config: Dict) -> Optional[MatchMonkeyConfig]:
    """Validate configuration using Pydantic models.

    Args:
        config: Configuration dictionary as returned by load_config_from_env

    Returns:
        Validated MatchMonkeyConfig or None if validation fails
    """
    subsonic = config.get("subsonic") or {}
    try:
        validated_config = MatchMonkeyConfig(
            lastfm=LastFMConfig(**config.get("lastfm", {})),
            reccobeats=ReccoBeatsConfig(**config.get("reccobeats", {})),
            gateway=GatewayConfig(**config.get("gateway", {})),
            discovery=DiscoveryConfig(**config.get("discovery", {})),
            output=OutputConfig(**config.get("output", {})),
            automode=AutoModeConfig(**config.get("automode", {})),
            subsonic=SubsonicConfig(**subsonic) if subsonic.get("url") else None,
            monitoring=MonitoringConfig(**config.get("monitoring", {})),
            missed=MissedResultsConfig(**config.get("missed", {})),
            logging=LoggingConfig(**config.get("logging", {})),
        )

        logger.info("✓ Configuration validation passed")
        return validated_config

    except ValidationError as e:
        logger.error(f"Configuration validation failed: {e}")
        return None


def get_data_dir() -> Path:
    """Get data directory path.

    Returns:
        Path to data directory
    """
    data_dir = Path(os.getenv("MATCHMONKEY_DATA_DIR", Path.cwd()))
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir
