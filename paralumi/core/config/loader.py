"""
Settings loader — reads paralumi.yml into a validated ``Settings`` model.

The settings file is optional.  When present it supplies defaults for
every operation flag; anything given on the command line wins.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from paralumi.core.errors import ConfigError
from paralumi.core.models.selector import DEFAULT_NAMESPACE

logger = logging.getLogger(__name__)

# Default settings filename
SETTINGS_FILE = "paralumi.yml"


class Settings(BaseModel):
    """Run defaults loaded from paralumi.yml."""

    model_config = ConfigDict(extra="forbid")

    organization: str | None = None
    project: str | None = None
    config_filter: str | None = None
    stack_name: str | None = None
    namespace: str = DEFAULT_NAMESPACE
    work_dir: str = "."
    output_dir: str = "."
    max_workers: int | None = Field(default=None, ge=1)
    timeout: float | None = Field(default=None, gt=0)
    fail_on_error: bool = False


def find_settings_file(start_dir: Path | None = None) -> Path | None:
    """Search for paralumi.yml starting from ``start_dir``, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to paralumi.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):
        candidate = current / SETTINGS_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def load_settings(path: Path | None = None, *, search: bool = True) -> Settings:
    """Load and validate settings.

    Args:
        path: Explicit path to a settings file.  Must exist when given.
        search: When ``path`` is None, look for paralumi.yml upward
            from the cwd.  No file found means all defaults.

    Raises:
        ConfigError: If the file is missing, unreadable, or invalid.
    """
    if path is None:
        path = find_settings_file() if search else None
        if path is None:
            logger.debug("No %s found, using defaults", SETTINGS_FILE)
            return Settings()

    if not path.is_file():
        raise ConfigError(f"Settings file not found: {path}")

    logger.debug("Loading settings from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return Settings()

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # Allow everything to sit under a top-level "paralumi" key
    if "paralumi" in data and isinstance(data["paralumi"], dict):
        data = data["paralumi"]

    try:
        settings = Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings in {path}: {e}") from e

    logger.info("Loaded settings from %s", path)
    return settings
