"""Settings provider backed by the validated configuration"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from matchmonkey.models.config_models import MatchMonkeyConfig


logger = logging.getLogger(__name__)

AUTO_MODE_KEY = "automode.enabled"

_TRUE_VALUES = ("1", "true", "yes", "on")


def _flatten(data: Mapping[str, Any], prefix: str = "") -> Dict[str, Any]:
    flat: Dict[str, Any] = {}
    for key, value in data.items():
        name = f"{prefix}{key}"
        if isinstance(value, Mapping):
            flat.update(_flatten(value, f"{name}."))
        else:
            flat[name] = value
    return flat


class MappingSettings:
    """Dotted-key settings with typed accessors.

    Keys mirror the configuration sections, e.g. ``discovery.seed_limit``
    or ``automode.enabled``.
    """

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        self._values: Dict[str, Any] = _flatten(values or {})

    @classmethod
    def from_config(cls, config: MatchMonkeyConfig) -> "MappingSettings":
        return cls(config.model_dump())

    def get(self, key: str, default: Any = None) -> Any:
        value = self._values.get(key)
        return default if value is None else value

    def get_int(self, key: str, default: int = 0) -> int:
        value = self.get(key, default)
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning("Setting %s=%r is not an integer, using %d", key, value, default)
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        value = self.get(key, default)
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning("Setting %s=%r is not a number, using %s", key, value, default)
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key, default)
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value != 0
        return str(value).strip().lower() in _TRUE_VALUES

    def get_str(self, key: str, default: str = "") -> str:
        value = self.get(key, default)
        return str(value)

    def get_list(self, key: str, default: Optional[List[str]] = None) -> List[str]:
        """Read a list setting; comma-separated strings are split."""
        value = self.get(key)
        if value is None:
            return list(default or [])
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return [str(item).strip() for item in value if str(item).strip()]

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value
