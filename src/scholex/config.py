"""Engine settings and YAML config loading.

Settings are a single frozen value built once at start-up and handed to the
orchestrator and extractors. Values come from (in order of precedence) the
YAML file, environment variables, then the defaults below.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigurationError


SAVE_CONFIDENCE_THRESHOLD = 0.5
APPLY_CONFIDENCE_THRESHOLD = 0.3
MAX_FREQUENT_LABELS = 10
HTML_AUTHOR_DELIMITERS = r"[,;，、]"
MIN_GENERIC_DATE_YEAR = 1990
DEFAULT_DB_PATH = Path("data") / "scholex.sqlite"


def _default_db_url() -> Optional[str]:
    return os.getenv("SCHOLEX_DB_URL") or None


@dataclass(frozen=True)
class EngineSettings:
    """Thresholds and knobs shared by every extraction component."""

    save_threshold: float = SAVE_CONFIDENCE_THRESHOLD
    apply_threshold: float = APPLY_CONFIDENCE_THRESHOLD
    max_labels: int = MAX_FREQUENT_LABELS
    html_author_delimiters: str = HTML_AUTHOR_DELIMITERS
    min_generic_date_year: int = MIN_GENERIC_DATE_YEAR
    db_path: Path = DEFAULT_DB_PATH
    db_url: Optional[str] = field(default_factory=_default_db_url)

    def __post_init__(self) -> None:
        validate_settings(self)


def validate_settings(settings: EngineSettings) -> None:
    for name in ("save_threshold", "apply_threshold"):
        value = getattr(settings, name)
        if not isinstance(value, (int, float)) or not 0.0 <= value <= 1.0:
            raise ConfigurationError(f"{name} must be a number in [0, 1], got {value!r}")
    if settings.apply_threshold > settings.save_threshold:
        raise ConfigurationError("apply_threshold cannot exceed save_threshold")
    if not isinstance(settings.max_labels, int) or settings.max_labels < 1:
        raise ConfigurationError("max_labels must be a positive integer")
    if not settings.html_author_delimiters:
        raise ConfigurationError("html_author_delimiters cannot be empty")


def load_config(config_path: Path) -> Dict[str, Any]:
    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")
    with config_path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config root must be a mapping: {config_path}")
    return data


def validate_config(data: Dict[str, Any]) -> None:
    """Reject unknown keys under ``engine`` before building settings."""
    engine = data.get("engine", {})
    if not isinstance(engine, dict):
        raise ConfigurationError("'engine' section must be a mapping")
    known = {f.name for f in fields(EngineSettings)}
    unknown = sorted(set(engine) - known)
    if unknown:
        raise ConfigurationError(f"Unknown engine settings: {', '.join(unknown)}")


def settings_from_config(data: Dict[str, Any], base: Optional[EngineSettings] = None) -> EngineSettings:
    validate_config(data)
    engine = dict(data.get("engine", {}))
    if "db_path" in engine:
        engine["db_path"] = Path(engine["db_path"])
    return replace(base or EngineSettings(), **engine)


def load_settings(config_path: Optional[Path] = None) -> EngineSettings:
    """Build settings from an optional YAML file, falling back to defaults."""
    if config_path is None:
        return EngineSettings()
    return settings_from_config(load_config(config_path))
