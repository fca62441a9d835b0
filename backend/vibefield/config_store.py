"""Config store: YAML/JSON config file (master over env) + pushable overrides.

Precedence: overrides > config file > env > defaults. Tuning constants for the
tile, convergence and policy heuristics are expected to be pushed here at
runtime while they are calibrated against real usage.
"""
import json
import logging
import threading
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)


def _read_config_file(path: Optional[Path]) -> dict[str, Any]:
    """Read a flat dict from a .yaml/.yml/.json file. Missing or invalid files yield {}."""
    if path is None or not path.exists():
        return {}
    try:
        raw = path.read_text()
    except OSError as e:
        logger.warning("Could not read config file %s: %s", path, e)
        return {}

    suffix = path.suffix.lower()
    try:
        if suffix in (".yaml", ".yml"):
            data = yaml.safe_load(raw)
        elif suffix == ".json":
            data = json.loads(raw)
        else:
            logger.warning("Config file must be .yaml, .yml, or .json: %s", path)
            return {}
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        logger.warning("Invalid config file %s: %s", path, e)
        return {}

    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning("Config file must contain a mapping; got %s", type(data).__name__)
        return {}
    return data


class ConfigStore:
    """Holds the current Settings built from env, config file and pushed overrides."""

    def __init__(self, settings_cls: type, config_file_path: Optional[str] = None):
        self._settings_cls = settings_cls
        self._file_path = Path(config_file_path).expanduser().resolve() if config_file_path else None
        self._overrides: dict[str, Any] = {}
        self._current: Optional[Any] = None
        self._lock = threading.RLock()

    def _build(self, overrides: dict[str, Any]) -> Any:
        env_values = self._settings_cls().model_dump()
        file_values = _read_config_file(self._file_path)
        return self._settings_cls(**{**env_values, **file_values, **overrides})

    def load_initial(self) -> None:
        """Build settings once at startup."""
        with self._lock:
            self._current = self._build(self._overrides)
            if self._file_path and self._file_path.exists():
                logger.info("Loaded config file (master over env): %s", self._file_path)

    def get_settings(self) -> Any:
        with self._lock:
            if self._current is None:
                self.load_initial()
            return self._current

    def update(self, overrides: dict[str, Any]) -> bool:
        """Merge overrides and rebuild. Keeps the previous settings if validation fails."""
        with self._lock:
            candidate = {**self._overrides, **overrides}
            try:
                self._current = self._build(candidate)
            except Exception as e:
                logger.warning("Config update rejected; keeping previous config: %s", e)
                return False
            self._overrides = candidate
            return True

    def reload_from_file(self) -> None:
        """Re-read the config file, keeping pushed overrides."""
        with self._lock:
            try:
                self._current = self._build(self._overrides)
            except Exception as e:
                logger.warning("Config reload rejected; keeping previous config: %s", e)

    def clear_overrides(self) -> None:
        with self._lock:
            self._overrides = {}
            self._current = self._build({})
