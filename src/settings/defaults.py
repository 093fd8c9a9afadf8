"""
Default tunables for the LineDevs gatekeeper bot.

These defaults are used when a value is not specified in the YAML settings
file. Secrets and Discord IDs live in the environment (see
src.linedevs_bot.config), not here.
"""

from typing import Dict, Any, List


# Alphanumerics plus '.' and '_' (safe to paste into a Roblox About section)
VERIFICATION_KEY_ALPHABET = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789._"
)

# Terms that flag a message. Matched case-insensitively as substrings.
DEFAULT_DENYLIST: List[str] = [
    "free nitro",
    "discord.gift/",
    "steamcommunity.com/gift",
    "robux generator",
    "free robux",
    "kill yourself",
    "kys",
]


DEFAULT_CONFIG: Dict[str, Any] = {
    # Assistant quota
    "quota": {
        "daily_allotment": 15,
        "rotation_hours": 24.0,
    },

    # Content moderation
    "moderation": {
        "flag_threshold": 5,
        "suspension_hours": 48.0,
        "denylist": list(DEFAULT_DENYLIST),
    },

    # Manual Roblox verification
    "verification": {
        "key_length": 12,
        "key_alphabet": VERIFICATION_KEY_ALPHABET,
        "session_ttl_minutes": None,  # Sessions never expire
        "profile_url_template": "https://www.roblox.com/users/{external_id}/profile",
    },

    # Outbound services
    "services": {
        "directory_base_url": "https://users.roblox.com",
        "registry_url_template": (
            "https://registry.rover.link/api/guilds/{guild_id}/discord-to-roblox/{requester_id}"
        ),
        "assistant_base_url": "https://generativelanguage.googleapis.com/v1beta",
        "assistant_model": "gemini-1.5-flash",
        "http_timeout_seconds": 15.0,
    },

    # Status web server
    "web": {
        "log_buffer_size": 1000,
        "log_tail": 200,
        "keep_alive_minutes": 5.0,
    },
}


# Named profiles (can be referenced via `extends: <name>` in YAML)
SETTINGS_PROFILES: Dict[str, Dict[str, Any]] = {
    "strict": {
        "quota": {"daily_allotment": 5},
        "moderation": {"flag_threshold": 3, "suspension_hours": 72.0},
    },
    "relaxed": {
        "quota": {"daily_allotment": 30},
        "moderation": {"flag_threshold": 8, "suspension_hours": 24.0},
    },
}


def get_settings_profile(profile_name: str) -> Dict[str, Any]:
    """
    Get overrides for a named settings profile.

    Args:
        profile_name: Profile name (e.g., 'strict')

    Returns:
        Partial settings dictionary

    Raises:
        KeyError: If profile not found
    """
    if profile_name not in SETTINGS_PROFILES:
        available = ', '.join(sorted(SETTINGS_PROFILES.keys()))
        raise KeyError(f"Unknown settings profile '{profile_name}'. Available: {available}")
    return SETTINGS_PROFILES[profile_name]
