"""JSON settings file holding the log level and the image directories."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from directories import canonical_directory

APP_NAME = "image-shelf"
CONFIG_FILENAME = "config.json"
DEFAULT_LOG_LEVEL = "info"

logger = logging.getLogger(__name__)


class SettingsError(Exception):
    pass


def default_config_path() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / APP_NAME / CONFIG_FILENAME


@dataclass
class Settings:
    path: Path
    log_level: str = DEFAULT_LOG_LEVEL
    image_directories: List[str] = field(default_factory=list)
    extra: Dict[str, object] = field(default_factory=dict)

    def list_root_directories(self) -> Tuple[str, ...]:
        return tuple(self.image_directories)

    def add_directory(self, directory: Union[str, Path]) -> bool:
        """Register ``directory``; returns False when it is already present."""
        candidate = canonical_directory(directory)
        if not candidate.is_dir():
            raise SettingsError(f"Not a directory: {candidate}")
        existing = {canonical_directory(entry) for entry in self.image_directories}
        if candidate in existing:
            logger.info("Directory already registered: %s", candidate)
            return False
        self.image_directories.append(str(candidate))
        logger.info("Registered directory %d: %s", len(self.image_directories) - 1, candidate)
        return True

    def numeric_log_level(self) -> int:
        level = logging.getLevelName(str(self.log_level).upper())
        return level if isinstance(level, int) else logging.INFO

    def to_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = dict(self.extra)
        data["log_level"] = self.log_level
        data["image_directories"] = list(self.image_directories)
        return data


def _dedupe_directories(entries: List[object]) -> List[str]:
    directories: List[str] = []
    seen = set()
    for entry in entries:
        if not isinstance(entry, str) or not entry.strip():
            logger.warning("Ignoring invalid directory entry: %r", entry)
            continue
        canonical = canonical_directory(entry)
        if canonical in seen:
            logger.warning("Ignoring duplicate directory entry: %s", entry)
            continue
        seen.add(canonical)
        directories.append(entry)
    return directories


def save_settings(settings: Settings) -> None:
    settings.path.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps(settings.to_dict(), indent=4)
    settings.path.write_text(payload + "\n", encoding="utf-8")


def load_settings(path: Optional[Path] = None) -> Settings:
    """Read the settings file, creating it with defaults when missing.

    The normalised settings are written back so the file always carries
    every known key.
    """
    config_path = Path(path) if path is not None else default_config_path()
    if not config_path.exists():
        logger.info("Creating settings file %s", config_path)
        settings = Settings(path=config_path)
        save_settings(settings)
        return settings

    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SettingsError(f"Invalid JSON in {config_path}: {exc}") from exc
    except OSError as exc:
        raise SettingsError(f"Unable to read {config_path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise SettingsError(f"Settings file {config_path} must contain a JSON object")

    directories = raw.pop("image_directories", None) or []
    if not isinstance(directories, list):
        raise SettingsError("image_directories must be a list")
    log_level = raw.pop("log_level", None) or DEFAULT_LOG_LEVEL

    settings = Settings(
        path=config_path,
        log_level=str(log_level),
        image_directories=_dedupe_directories(directories),
        extra=raw,
    )
    save_settings(settings)
    return settings
