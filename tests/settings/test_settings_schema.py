"""
Tests for settings schema validation.
"""

import pytest
from pydantic import ValidationError

from src.settings import (
    BotSettings,
    ModerationSettings,
    ServiceSettings,
    VerificationSettings,
    get_settings_profile,
)


class TestModerationSettings:

    def test_denylist_normalized(self):
        settings = ModerationSettings(denylist=["  Free NITRO ", "", "KYS"])
        assert settings.denylist == ["free nitro", "kys"]

    def test_threshold_must_be_positive(self):
        with pytest.raises(ValidationError):
            ModerationSettings(flag_threshold=0)


class TestVerificationSettings:

    def test_ttl_optional(self):
        assert VerificationSettings().session_ttl_minutes is None
        assert VerificationSettings(session_ttl_minutes=30).session_ttl_minutes == 30

    def test_ttl_must_be_positive(self):
        with pytest.raises(ValidationError):
            VerificationSettings(session_ttl_minutes=0)

    def test_short_keys_rejected(self):
        with pytest.raises(ValidationError):
            VerificationSettings(key_length=3)


class TestServiceSettings:

    def test_registry_template_needs_requester(self):
        with pytest.raises(ValidationError):
            ServiceSettings(registry_url_template="https://registry.example.com/{guild_id}")

    def test_custom_registry_template(self):
        settings = ServiceSettings(registry_url_template="https://r.example.com/{requester_id}")
        assert settings.registry_url_template.format(guild_id=1, requester_id=2) == "https://r.example.com/2"


class TestBotSettings:

    def test_nested_dict(self):
        settings = BotSettings.model_validate({"web": {"log_tail": 50}})
        assert settings.web.log_tail == 50
        assert settings.web.log_buffer_size == 1000

    def test_profiles(self):
        assert get_settings_profile("strict")["quota"]["daily_allotment"] == 5

    def test_unknown_profile(self):
        with pytest.raises(KeyError):
            get_settings_profile("lenient")
