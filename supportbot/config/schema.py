"""Configuration schema using Pydantic."""

from pathlib import Path
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DiscordConfig(BaseModel):
    """Discord channel configuration."""
    token: str = ""  # Bot token from Discord Developer Portal
    allow_guilds: list[str] = Field(default_factory=list)  # Allowed guild IDs
    allow_channels: list[str] = Field(default_factory=list)  # Allowed channel IDs
    ignore_members_after_hours: float = 1.0  # Only auto-reply to members who joined recently
    context_messages_before: int = 3  # Author messages gathered above an "Ask" target
    context_messages_after: int = 10  # Author messages gathered below an "Ask" target
    failure_message: str = "Sorry, that doesn't look like a support question I can help with."


class ProviderConfig(BaseModel):
    """Text-generation provider configuration."""
    api_key: str = ""
    api_base: str | None = None
    model: str = "gemini/gemini-1.5-flash"
    fallback_models: list[str] = Field(default_factory=list)
    cooldown_seconds: int = 300
    max_tokens: int = 2048
    temperature: float = 0.7


class SchedulingConfig(BaseModel):
    """Debounce and retention policy."""
    quiet_period_seconds: float = 1200.0  # 20 minutes without a human answer
    fast_track_seconds: float = 0.01
    retention_seconds: float = 86400.0  # Keep follow-up context for a day
    reaper_interval_seconds: float = 300.0
    strip_classification: bool = True  # Hide the YES/NO gate line from users
    remove_on_failure: bool = True  # Forget conversations the provider rejected


class UsageConfig(BaseModel):
    """Usage cap policy."""
    cap: int = 10  # Replies per window, 0 = unlimited
    window_seconds: float = 86400.0
    warning_message: str = (
        "You've used this bot a lot recently. "
        "If you wish to continue, please use an AI assistant yourself."
    )


class Config(BaseSettings):
    """Root configuration for SupportBot."""
    model_config = SettingsConfigDict(env_prefix="SUPPORTBOT_", env_nested_delimiter="__")

    debug: bool = False
    log_dir: str = "~/.supportbot/logs"
    discord: DiscordConfig = Field(default_factory=DiscordConfig)
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    scheduling: SchedulingConfig = Field(default_factory=SchedulingConfig)
    usage: UsageConfig = Field(default_factory=UsageConfig)

    @property
    def log_path(self) -> Path:
        """Get expanded log directory."""
        return Path(self.log_dir).expanduser()
