"""
Tests for configuration defaults, environment overrides and file loading.
"""

import json

from supportbot.config.loader import load_config, save_config
from supportbot.config.schema import Config


class TestConfig:

    def test_defaults(self):
        config = Config()

        assert config.scheduling.quiet_period_seconds == 1200
        assert config.scheduling.retention_seconds == 86400
        assert config.scheduling.reaper_interval_seconds == 300
        assert config.scheduling.strip_classification is True
        assert config.usage.cap == 10
        assert config.usage.window_seconds == 86400
        assert config.provider.model == "gemini/gemini-1.5-flash"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("SUPPORTBOT_DEBUG", "true")
        monkeypatch.setenv("SUPPORTBOT_SCHEDULING__QUIET_PERIOD_SECONDS", "30")
        monkeypatch.setenv("SUPPORTBOT_DISCORD__TOKEN", "secret")

        config = Config()

        assert config.debug is True
        assert config.scheduling.quiet_period_seconds == 30
        assert config.discord.token == "secret"

    def test_load_missing_file_gives_defaults(self, config_dir):
        config = load_config(config_dir / "missing.json")

        assert config.usage.cap == 10

    def test_load_invalid_file_gives_defaults(self, config_dir):
        path = config_dir / "config.json"
        path.write_text("{not json")

        assert load_config(path).usage.cap == 10

    def test_save_then_load(self, config_dir):
        path = config_dir / "nested" / "config.json"
        config = Config()
        config.usage.cap = 3
        config.scheduling.strip_classification = False

        save_config(config, path)
        loaded = load_config(path)

        assert json.loads(path.read_text())["usage"]["cap"] == 3
        assert loaded.usage.cap == 3
        assert loaded.scheduling.strip_classification is False
