"""Config: load user settings from a JSON file merged over defaults."""
from __future__ import annotations

from dataclasses import dataclass, fields, replace
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict
import json
import logging
import os

from .errors import ConfigError

ENV_VAR = "TAKEOUT_MERGE_CONFIG"
DEFAULT_CONFIG_PATH = Path.home() / ".takeout_merge.json"


@dataclass(frozen=True)
class Settings:
    edited_suffix: str = "-edited"
    log_level: str = "INFO"
    log_file: str | None = None
    poll_interval: float = 0.2
    auto_acknowledge: bool = False
    job_retention: float = 3600.0

    def with_overrides(self, **kwargs) -> "Settings":
        """Return a copy with every non-None keyword applied."""
        changes = {k: v for k, v in kwargs.items() if v is not None}
        return replace(self, **changes) if changes else self


_FIELD_TYPES = {
    "edited_suffix": str,
    "log_level": str,
    "log_file": str,
    "poll_interval": (int, float),
    "auto_acknowledge": bool,
    "job_retention": (int, float),
}


def _coerce(raw: Dict[str, Any], source: Path) -> Dict[str, Any]:
    known = {f.name for f in fields(Settings)}
    values: Dict[str, Any] = {}
    for key, value in raw.items():
        if key not in known:
            logging.warning("Ignoring unknown config key %r in %s", key, source)
            continue
        if value is None:
            continue
        expected = _FIELD_TYPES[key]
        if isinstance(value, bool) and expected is not bool:
            raise ConfigError(f"{source}: {key} must not be a boolean")
        if not isinstance(value, expected):
            raise ConfigError(f"{source}: {key} has invalid value {value!r}")
        values[key] = value

    suffix = values.get("edited_suffix")
    if suffix is not None and not suffix:
        raise ConfigError(f"{source}: edited_suffix must not be empty")
    if "poll_interval" in values:
        values["poll_interval"] = float(values["poll_interval"])
        if values["poll_interval"] < 0:
            raise ConfigError(f"{source}: poll_interval must be >= 0")
    if "job_retention" in values:
        values["job_retention"] = float(values["job_retention"])
        if values["job_retention"] < 0:
            raise ConfigError(f"{source}: job_retention must be >= 0")
    if "log_level" in values:
        values["log_level"] = values["log_level"].upper()
    return values


def resolve_config_path(path: str | os.PathLike | None = None) -> Path:
    if path:
        return Path(path).expanduser()
    env = os.environ.get(ENV_VAR)
    if env:
        return Path(env).expanduser()
    return DEFAULT_CONFIG_PATH


@lru_cache(maxsize=8)
def _load(path: Path) -> Settings:
    if not path.exists():
        logging.debug("No config file at %s, using defaults", path)
        return Settings()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Cannot read config {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Config {path} must contain a JSON object")
    return Settings(**_coerce(raw, path))


def load_settings(path: str | os.PathLike | None = None) -> Settings:
    """Load settings from `path`, `$TAKEOUT_MERGE_CONFIG` or the home default.

    A missing file yields the defaults. Results are cached per resolved path;
    call `load_settings.cache_clear()` after editing the file.
    """
    return _load(resolve_config_path(path))


load_settings.cache_clear = _load.cache_clear  # type: ignore[attr-defined]
