"""Pydantic models for configuration validation"""

import logging
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator


logger = logging.getLogger(__name__)


OVERWRITE_CREATE = "Create new playlist"
OVERWRITE_REPLACE = "Overwrite existing playlist"
OVERWRITE_SKIP = "Do not create playlist"

DISCOVERY_MODES = ["artist", "track", "genre", "profile-seeded", "mood", "activity"]


def _split_list(v):
    if v is None:
        return []
    if isinstance(v, str):
        return [item.strip() for item in v.split(",") if item.strip()]
    return [str(item).strip() for item in v if str(item).strip()]


def _validate_url(v):
    if not v.startswith(('http://', 'https://')):
        raise ValueError('URL must start with http:// or https://')
    return v.rstrip('/')


class LastFMConfig(BaseModel):
    """Similarity/tag service configuration"""
    api_key: Optional[str] = Field(None, description="Last.fm API key")
    base_url: str = Field("https://ws.audioscrobbler.com/2.0", description="Last.fm API root")

    @field_validator('api_key')
    @classmethod
    def validate_api_key(cls, v):
        if v and v in ['your-api-key-here', 'placeholder', 'changeme']:
            raise ValueError('API key appears to be a placeholder')
        return v

    @field_validator('base_url')
    @classmethod
    def validate_url(cls, v):
        return _validate_url(v)


class ReccoBeatsConfig(BaseModel):
    """Feature/recommendation service configuration"""
    base_url: str = Field("https://api.reccobeats.com/v1", description="ReccoBeats API root")

    @field_validator('base_url')
    @classmethod
    def validate_url(cls, v):
        return _validate_url(v)


class GatewayConfig(BaseModel):
    """Outbound request throttling and retry configuration"""
    min_interval: float = Field(0.2, ge=0.0, le=10.0)
    timeout: float = Field(10.0, gt=0.0, le=120.0)
    max_retries: int = Field(3, ge=0, le=10)
    initial_backoff: float = Field(1.0, ge=0.0)
    backoff_factor: float = Field(2.0, ge=1.0)
    max_backoff: float = Field(30.0, ge=0.0)


class DiscoveryConfig(BaseModel):
    """Discovery limits and switches"""
    mode: str = Field("artist", description="Default discovery mode")
    seed_limit: int = Field(5, ge=1, le=100)
    similar_limit: int = Field(20, ge=1, le=500)
    tracks_per_artist: int = Field(9999, ge=1)
    total_limit: int = Field(9999, ge=1)
    include_seed_artist: bool = False
    include_seed_track: bool = False
    rank: bool = False
    best: bool = False
    randomize: bool = False
    min_rating: int = Field(0, ge=0, le=5)
    allow_unknown: bool = True
    blacklist: List[str] = Field(default_factory=list)
    prefixes: List[str] = Field(default_factory=list)
    blend_ratio: float = Field(0.5, ge=0.0, le=1.0)
    mood: Optional[str] = None
    activity: Optional[str] = None
    profiles_file: Optional[str] = None

    @field_validator('blacklist', 'prefixes', mode='before')
    @classmethod
    def split_lists(cls, v):
        return _split_list(v)

    @field_validator('mode')
    @classmethod
    def validate_mode(cls, v):
        value = (v or "artist").strip().lower()
        if value not in DISCOVERY_MODES + ["ai", "reccobeats"]:
            raise ValueError(f'Mode must be one of: {", ".join(DISCOVERY_MODES)}')
        return value


class OutputConfig(BaseModel):
    """Playlist and queue output configuration"""
    enqueue: bool = False
    overwrite: str = Field(OVERWRITE_CREATE, description="Playlist overwrite policy")
    playlist_name: str = Field("Artists similar to %", min_length=1)
    parent_playlist: Optional[str] = None
    ignore_dupes: bool = False
    clear_queue: bool = False
    confirm: bool = False

    @field_validator('overwrite')
    @classmethod
    def validate_overwrite(cls, v):
        allowed = [OVERWRITE_CREATE, OVERWRITE_REPLACE, OVERWRITE_SKIP]
        for option in allowed:
            if v.strip().lower() == option.lower():
                return option
        logger.warning("Unknown overwrite mode '%s', treating as '%s'", v, OVERWRITE_CREATE)
        return OVERWRITE_CREATE


class AutoModeConfig(BaseModel):
    """Auto-trigger configuration"""
    enabled: bool = Field(False, description="Re-run discovery when the queue runs low")
    threshold: int = Field(2, ge=0, le=100)
    cooldown_ms: int = Field(5000, ge=0)
    seed_limit: int = Field(2, ge=1)
    tracks_per_artist: int = Field(5, ge=1)
    total_limit: int = Field(10, ge=1)
    poll_interval: float = Field(5.0, gt=0.0)


class SubsonicConfig(BaseModel):
    """Subsonic/Navidrome host configuration"""
    url: str = Field(..., description="Subsonic server URL")
    username: str = Field(..., description="Username")
    password: str = Field(..., description="Password")

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        return _validate_url(v)

    @field_validator('username', 'password')
    @classmethod
    def validate_not_empty(cls, v):
        if not v or v.strip() == '':
            raise ValueError('Field cannot be empty')
        return v


class MonitoringConfig(BaseModel):
    """Monitoring configuration"""
    metrics_enabled: bool = Field(False, description="Enable Prometheus metrics")
    metrics_port: int = Field(9090, ge=1024, le=65535)
    circuit_breaker_threshold: int = Field(5, ge=1)
    circuit_breaker_timeout: int = Field(60, ge=1)


class MissedResultsConfig(BaseModel):
    """Missed recommendations store configuration"""
    enabled: bool = True
    max_results: int = Field(10000, ge=1)


class LoggingConfig(BaseModel):
    """Logging configuration"""
    level: str = Field("INFO", description="Log level")
    format: str = Field("text", description="Log format (text or json)")
    file: Optional[str] = None

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        allowed = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in allowed:
            raise ValueError(f'Log level must be one of: {", ".join(allowed)}')
        return v.upper()

    @field_validator('format')
    @classmethod
    def validate_format(cls, v):
        if v.lower() not in ['text', 'json']:
            raise ValueError('Log format must be "text" or "json"')
        return v.lower()


class MatchMonkeyConfig(BaseModel):
    """Main MatchMonkey configuration"""
    lastfm: LastFMConfig = Field(default_factory=LastFMConfig)
    reccobeats: ReccoBeatsConfig = Field(default_factory=ReccoBeatsConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    automode: AutoModeConfig = Field(default_factory=AutoModeConfig)
    subsonic: Optional[SubsonicConfig] = None
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    missed: MissedResultsConfig = Field(default_factory=MissedResultsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode='after')
    def validate_config(self):
        """Validate overall configuration"""
        if not self.lastfm.api_key:
            logger.warning("No Last.fm API key configured - artist, track and genre discovery will find nothing")
        return self
