"""
Discord bot configuration management.

Loads secrets and Discord IDs from environment variables. Tunables
(quota, moderation, services) come from src.settings.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from src.settings import BotSettings, load_settings


def _env_int(name: str) -> Optional[int]:
    value = os.getenv(name, "").strip()
    return int(value) if value else None


@dataclass
class BotConfig:
    """Configuration for the LineDevs gatekeeper bot."""

    # API tokens
    discord_token: str = field(default_factory=lambda: os.getenv("DISCORD_TOKEN", ""))
    gemini_api_key: str = field(default_factory=lambda: os.getenv("GEMINI_API", ""))
    roblox_api_key: str = field(default_factory=lambda: os.getenv("ROBLOX_API_KEY", ""))
    registry_api_key: str = field(default_factory=lambda: os.getenv("REGISTRY_API_KEY", ""))

    # Guild wiring
    guild_id: Optional[int] = field(default_factory=lambda: _env_int("GUILD_ID"))
    unverified_role_id: Optional[int] = field(default_factory=lambda: _env_int("UNVERIFIED_ROLE_ID"))
    verified_role_id: Optional[int] = field(default_factory=lambda: _env_int("VERIFIED_ROLE_ID"))
    registration_channel_id: Optional[int] = field(
        default_factory=lambda: _env_int("REGISTRATION_CHANNEL_ID")
    )
    ai_channel_id: Optional[int] = field(default_factory=lambda: _env_int("AI_CHANNEL_ID"))

    # Storage and web
    database_path: Path = field(
        default_factory=lambda: Path(os.getenv("DATABASE_PATH", "linedevs_bot.db"))
    )
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "3000")))
    self_url: str = field(default_factory=lambda: os.getenv("SELF_URL", ""))
    log_dir: Path = field(default_factory=lambda: Path.home() / "logs" / "linedevs_bot")

    # Tunables
    settings_path: str = field(default_factory=lambda: os.getenv("LINEDEVS_SETTINGS", ""))
    settings: BotSettings = field(default_factory=BotSettings)

    def validate(self) -> tuple[bool, str]:
        """Validate that required configuration is present."""
        if not self.discord_token:
            return False, "DISCORD_TOKEN environment variable not set"
        if self.guild_id is None:
            return False, "GUILD_ID environment variable not set"
        if self.verified_role_id is None:
            return False, "VERIFIED_ROLE_ID environment variable not set"
        return True, "Configuration valid"


def load_config() -> BotConfig:
    """Load configuration from environment variables and the settings file."""
    config = BotConfig()
    config.settings = load_settings(config.settings_path or None)
    return config
