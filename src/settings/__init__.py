"""
Settings module for the LineDevs gatekeeper bot.

Tunables (quota, moderation, verification, outbound services, web) are
loaded from an optional YAML file and validated with Pydantic.

Usage:
    from src.settings import load_settings, BotSettings

    # Defaults only
    settings = load_settings()

    # Load from YAML file with overrides
    settings = load_settings("config/linedevs.yaml", overrides={
        "quota.daily_allotment": 20,
    })

    print(settings.moderation.flag_threshold)
"""

from src.settings.schema import (
    BotSettings,
    QuotaSettings,
    ModerationSettings,
    VerificationSettings,
    ServiceSettings,
    WebSettings,
)

from src.settings.loader import (
    load_settings,
    load_settings_dict,
    load_yaml,
    merge_dicts,
    apply_overrides,
    get_nested,
)

from src.settings.defaults import (
    DEFAULT_CONFIG,
    DEFAULT_DENYLIST,
    SETTINGS_PROFILES,
    VERIFICATION_KEY_ALPHABET,
    get_settings_profile,
)

__all__ = [
    # =========== Settings Classes ===========
    "BotSettings",
    "QuotaSettings",
    "ModerationSettings",
    "VerificationSettings",
    "ServiceSettings",
    "WebSettings",
    # =========== Loader Functions ===========
    "load_settings",
    "load_settings_dict",
    "load_yaml",
    "merge_dicts",
    "apply_overrides",
    "get_nested",
    # =========== Defaults ===========
    "DEFAULT_CONFIG",
    "DEFAULT_DENYLIST",
    "SETTINGS_PROFILES",
    "VERIFICATION_KEY_ALPHABET",
    "get_settings_profile",
]
