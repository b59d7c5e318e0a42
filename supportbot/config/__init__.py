"""Configuration module."""

from supportbot.config.schema import Config
from supportbot.config.loader import load_config, save_config, get_config_path

__all__ = ["Config", "load_config", "save_config", "get_config_path"]
