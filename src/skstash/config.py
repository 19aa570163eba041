"""
Stash configuration -- where the store lives and who can read it.

    ~/.skstash/config.yaml

    host: backup.example.org
    remote_root: /srv/stash
    recipient: me@example.org
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from . import STASH_HOME
from .errors import ConfigError
from .models import StashConfig

logger = logging.getLogger("skstash.config")

CONFIG_FILENAME = "config.yaml"


def config_path(home: Optional[Path] = None) -> Path:
    """Path of the config file under the stash home."""
    return (home or Path(STASH_HOME)).expanduser() / CONFIG_FILENAME


def load_config(home: Optional[Path] = None) -> StashConfig:
    """Load and validate the stash configuration.

    Args:
        home: Stash home directory. Defaults to ``STASH_HOME``.

    Returns:
        StashConfig: The validated configuration.

    Raises:
        ConfigError: If the file is missing, unreadable or invalid.
    """
    path = config_path(home)
    if not path.exists():
        raise ConfigError(
            f"No config at {path}. Run 'skstash config init' first."
        )

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Cannot parse {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must be a mapping")

    try:
        config = StashConfig(**data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config {path}: {exc}") from exc

    logger.debug("Loaded config from %s (host=%s)", path, config.host or "local")
    return config


def save_config(config: StashConfig, home: Optional[Path] = None) -> Path:
    """Persist a configuration to ``config.yaml``.

    Returns:
        Path: The written file.
    """
    path = config_path(home)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(mode="json", exclude_none=True)
    path.write_text(yaml.dump(data, default_flow_style=False), encoding="utf-8")
    logger.info("Config saved to %s", path)
    return path
