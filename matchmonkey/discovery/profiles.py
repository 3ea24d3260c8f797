"""Mood and activity audio-feature presets"""

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from matchmonkey.models.records import AudioFeatureProfile


logger = logging.getLogger(__name__)


DEFAULT_PROFILES = {
    "mood": {
        "energetic": {
            "targets": {"energy": 0.85, "valence": 0.7, "danceability": 0.7, "tempo": 128},
            "tags": ["energetic", "upbeat", "dance"],
        },
        "relaxed": {
            "targets": {"energy": 0.3, "valence": 0.55, "acousticness": 0.6, "tempo": 90},
            "tags": ["chillout", "relaxing", "mellow"],
        },
        "happy": {
            "targets": {"energy": 0.7, "valence": 0.85, "danceability": 0.65},
            "tags": ["happy", "feel good", "summer"],
        },
        "sad": {
            "targets": {"energy": 0.3, "valence": 0.2, "acousticness": 0.55, "tempo": 80},
            "tags": ["sad", "melancholy", "melancholic"],
        },
        "focused": {
            "targets": {"energy": 0.4, "valence": 0.45, "instrumentalness": 0.7, "speechiness": 0.05},
            "tags": ["instrumental", "ambient", "post-rock"],
        },
        "angry": {
            "targets": {"energy": 0.92, "valence": 0.25, "loudness": -4.0},
            "tags": ["aggressive", "metal", "hardcore"],
        },
        "romantic": {
            "targets": {"energy": 0.4, "valence": 0.6, "acousticness": 0.5, "tempo": 95},
            "tags": ["romantic", "love", "soul"],
        },
    },
    "activity": {
        "workout": {
            "targets": {"energy": 0.9, "danceability": 0.75, "tempo": 140},
            "tags": ["workout", "gym", "electronic"],
        },
        "study": {
            "targets": {"energy": 0.35, "instrumentalness": 0.75, "speechiness": 0.04},
            "tags": ["study", "instrumental", "lo-fi"],
        },
        "party": {
            "targets": {"energy": 0.85, "danceability": 0.85, "valence": 0.75, "tempo": 124},
            "tags": ["party", "dance", "house"],
        },
        "sleep": {
            "targets": {"energy": 0.1, "acousticness": 0.8, "instrumentalness": 0.6, "tempo": 70},
            "tags": ["sleep", "ambient", "drone"],
        },
        "driving": {
            "targets": {"energy": 0.75, "valence": 0.6, "tempo": 115},
            "tags": ["driving", "road trip", "classic rock"],
        },
        "meditation": {
            "targets": {"energy": 0.08, "acousticness": 0.85, "instrumentalness": 0.85},
            "tags": ["meditation", "new age", "ambient"],
        },
        "cooking": {
            "targets": {"energy": 0.55, "valence": 0.7, "danceability": 0.6},
            "tags": ["jazz", "funk", "bossa nova"],
        },
    },
}


def _build(kind: str, name: str, data: Dict) -> AudioFeatureProfile:
    targets = {str(k): float(v) for k, v in (data.get("targets") or {}).items()}
    tags = tuple(str(t) for t in (data.get("tags") or []))
    return AudioFeatureProfile(name=name.lower(), kind=kind, targets=targets, tags=tags)


class ProfileManager:
    """Resolves preset names to AudioFeatureProfile objects"""

    def __init__(self, profiles_file: Optional[Path] = None):
        """Initialize profile manager.

        Args:
            profiles_file: Optional YAML file replacing the built-in presets
        """
        self.profiles: Dict[str, Dict[str, AudioFeatureProfile]] = {}

        if profiles_file and profiles_file.exists():
            self.load_profiles(profiles_file)
        else:
            self._load_default_profiles()

    def _load_default_profiles(self) -> None:
        self._load_mapping(DEFAULT_PROFILES)
        logger.debug("Loaded %d default profiles", sum(len(v) for v in self.profiles.values()))

    def _load_mapping(self, data: Dict) -> None:
        self.profiles = {}
        for kind in ("mood", "activity"):
            entries = data.get(kind) or {}
            self.profiles[kind] = {
                name.lower(): _build(kind, name, values or {}) for name, values in entries.items()
            }

    def load_profiles(self, profiles_file: Path) -> None:
        """Load presets from a YAML file.

        The file holds ``mood:`` and/or ``activity:`` mappings of
        name -> {targets: {...}, tags: [...]}.

        Args:
            profiles_file: Path to YAML file
        """
        try:
            with open(profiles_file, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load profiles: {e}")
            logger.info("Using default profiles instead")
            self._load_default_profiles()
            return

        if not isinstance(data, dict) or not ({"mood", "activity"} & set(data)):
            logger.warning("Invalid profile file format, using defaults")
            self._load_default_profiles()
            return

        try:
            self._load_mapping(data)
        except (TypeError, ValueError, AttributeError) as e:
            logger.error(f"Invalid profile definition in {profiles_file}: {e}")
            self._load_default_profiles()
            return

        logger.info(f"Loaded {sum(len(v) for v in self.profiles.values())} profiles from {profiles_file}")

    def get_profile(self, kind: str, name: Optional[str]) -> Optional[AudioFeatureProfile]:
        """Get a preset by kind and name.

        Args:
            kind: "mood" or "activity"
            name: Preset name (case-insensitive)

        Returns:
            AudioFeatureProfile, or None for unknown names
        """
        if not name:
            return None
        return self.profiles.get(kind, {}).get(name.strip().lower())

    def names(self, kind: str) -> List[str]:
        return sorted(self.profiles.get(kind, {}))


def load_profiles(profiles_file: Optional[str] = None) -> ProfileManager:
    """Load presets from file or use defaults.

    Args:
        profiles_file: Optional path; PROFILES_FILE is consulted otherwise

    Returns:
        ProfileManager instance
    """
    path_value = profiles_file or os.getenv("PROFILES_FILE")
    path = Path(path_value) if path_value else None
    return ProfileManager(path if path and path.exists() else None)
