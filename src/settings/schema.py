"""
Pydantic models for bot settings validation.

Provides type-safe tunables with automatic validation and the defaults
from src.settings.defaults.
"""

from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from src.settings.defaults import DEFAULT_DENYLIST, VERIFICATION_KEY_ALPHABET


class QuotaSettings(BaseModel):
    """Daily assistant quota."""
    daily_allotment: int = Field(default=15, ge=1, description="Invocations granted per rotation window")
    rotation_hours: float = Field(default=24.0, gt=0, description="Hours between quota resets")


class ModerationSettings(BaseModel):
    """Flag accumulation and automatic suspension."""
    flag_threshold: int = Field(default=5, ge=1, description="Flags that trigger a suspension")
    suspension_hours: float = Field(default=48.0, gt=0, description="Suspension length")
    denylist: List[str] = Field(default_factory=lambda: list(DEFAULT_DENYLIST))

    @field_validator('denylist')
    @classmethod
    def normalize_terms(cls, v: List[str]) -> List[str]:
        """Lowercase, strip and drop empty terms."""
        return [term.strip().lower() for term in v if term and term.strip()]


class VerificationSettings(BaseModel):
    """Manual profile-key verification."""
    key_length: int = Field(default=12, ge=6, le=64)
    key_alphabet: str = Field(default=VERIFICATION_KEY_ALPHABET, min_length=2)
    session_ttl_minutes: Optional[float] = Field(default=None, description="None keeps sessions forever")
    profile_url_template: str = "https://www.roblox.com/users/{external_id}/profile"

    @field_validator('session_ttl_minutes')
    @classmethod
    def validate_ttl(cls, v: Optional[float]) -> Optional[float]:
        """TTL must be positive when set."""
        if v is not None and v <= 0:
            raise ValueError("session_ttl_minutes must be positive or null")
        return v


class ServiceSettings(BaseModel):
    """Outbound HTTP services."""
    directory_base_url: str = "https://users.roblox.com"
    registry_url_template: str = (
        "https://registry.rover.link/api/guilds/{guild_id}/discord-to-roblox/{requester_id}"
    )
    assistant_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    assistant_model: str = "gemini-1.5-flash"
    http_timeout_seconds: float = Field(default=15.0, gt=0)

    @model_validator(mode='after')
    def validate_registry_template(self):
        """Registry template must address the requester."""
        if "{requester_id}" not in self.registry_url_template:
            raise ValueError("registry_url_template must contain '{requester_id}'")
        return self


class WebSettings(BaseModel):
    """Status web server and log buffer."""
    log_buffer_size: int = Field(default=1000, ge=10)
    log_tail: int = Field(default=200, ge=1)
    keep_alive_minutes: float = Field(default=5.0, gt=0)


class BotSettings(BaseModel):
    """Complete tunables for the bot."""
    quota: QuotaSettings = Field(default_factory=QuotaSettings)
    moderation: ModerationSettings = Field(default_factory=ModerationSettings)
    verification: VerificationSettings = Field(default_factory=VerificationSettings)
    services: ServiceSettings = Field(default_factory=ServiceSettings)
    web: WebSettings = Field(default_factory=WebSettings)
