"""Configuration file loading and saving."""

import json
from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from supportbot.config.schema import Config


def get_config_path() -> Path:
    """Default configuration file location."""
    return Path.home() / ".supportbot" / "config.json"


def load_config(path: Path | None = None) -> Config:
    """
    Load configuration from a JSON file.

    Environment variables (SUPPORTBOT_*) fill in anything the file omits.
    A missing or invalid file yields the defaults.
    """
    path = path or get_config_path()

    if not path.exists():
        return Config()

    try:
        data = json.loads(path.read_text())
        return Config(**data)
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning(f"Failed to load config from {path}: {e}")
        return Config()


def save_config(config: Config, path: Path | None = None) -> None:
    """Write configuration to a JSON file."""
    path = path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config.model_dump(), indent=2))
