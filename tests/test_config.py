import pytest
from pydantic import ValidationError

from matchmonkey import config as config_module
from matchmonkey.models.config_models import (
    DiscoveryConfig, LastFMConfig, OutputConfig, OVERWRITE_REPLACE, OVERWRITE_CREATE,
)
from matchmonkey.settings import MappingSettings
from matchmonkey.utils import secrets


def test_env_values_are_loaded_and_validated(monkeypatch):
    monkeypatch.setenv("LASTFM_API_KEY", "abc123")
    monkeypatch.setenv("DISCOVERY_MODE", "Track")
    monkeypatch.setenv("BLACKLIST", "Artist X, Artist Y")
    monkeypatch.setenv("OVERWRITE_MODE", "overwrite existing playlist")
    monkeypatch.setenv("AUTO_MODE_ENABLED", "yes")
    monkeypatch.delenv("SUBSONIC_URL", raising=False)

    cfg = config_module.validate_config(config_module.load_config_from_env())

    assert cfg is not None
    assert cfg.lastfm.api_key == "abc123"
    assert cfg.discovery.mode == "track"
    assert cfg.discovery.blacklist == ["Artist X", "Artist Y"]
    assert cfg.output.overwrite == OVERWRITE_REPLACE
    assert cfg.automode.enabled
    assert cfg.subsonic is None


def test_invalid_values_fail_validation(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "LOUD")
    assert config_module.validate_config(config_module.load_config_from_env()) is None


def test_model_validators():
    with pytest.raises(ValidationError):
        LastFMConfig(api_key="changeme")
    with pytest.raises(ValidationError):
        DiscoveryConfig(mode="telepathy")
    with pytest.raises(ValidationError):
        DiscoveryConfig(blend_ratio=1.5)
    assert OutputConfig(overwrite="whatever").overwrite == OVERWRITE_CREATE
    assert DiscoveryConfig(prefixes="The, A").prefixes == ["The", "A"]


def test_secret_file_wins_over_environment(tmp_path, monkeypatch):
    (tmp_path / "lastfm_api_key").write_text("from-file\n")
    monkeypatch.setattr(secrets, "SECRETS_DIR", tmp_path)
    monkeypatch.setenv("LASTFM_API_KEY", "from-env")

    assert secrets.load_secret("LASTFM_API_KEY") == "from-file"
    assert secrets.load_secret("MISSING_SECRET", "fallback") == "fallback"


def test_mapping_settings_accessors():
    settings = MappingSettings({
        "discovery": {"seed_limit": "7", "rank": "true", "blacklist": "A, B", "blend_ratio": "oops"},
    })
    assert settings.get_int("discovery.seed_limit") == 7
    assert settings.get_bool("discovery.rank")
    assert settings.get_list("discovery.blacklist") == ["A", "B"]
    assert settings.get_float("discovery.blend_ratio", 0.5) == 0.5
    assert settings.get_str("discovery.mode", "artist") == "artist"
    assert settings.get_list("discovery.prefixes", ["The"]) == ["The"]
