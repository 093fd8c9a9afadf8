"""
Output sanitization and channel gating.

Masks secrets before log lines leave the process (the /api/logs feed)
and decides which channels the assistant answers in.
"""

import re
from typing import List, Optional, Set, Tuple

# Patterns to mask (pattern, replacement)
SECRET_PATTERNS: List[Tuple[str, str]] = [
    # API keys
    (r"api[_-]?key[=:]\s*\S+", "api_key=***MASKED***"),
    (r"apikey[=:]\s*\S+", "apikey=***MASKED***"),
    # Query-string keys (Gemini uses ?key=...)
    (r"([?&])key=[^&\s]+", r"\1key=***MASKED***"),
    # Secrets and passwords
    (r"secret[=:]\s*\S+", "secret=***MASKED***"),
    (r"password[=:]\s*\S+", "password=***MASKED***"),
    # Tokens
    (r"token[=:]\s*\S+", "token=***MASKED***"),
    (r"bearer\s+\S+", "bearer ***MASKED***"),
    # Discord bot tokens
    (r"[MN][A-Za-z\d]{23,}\.[\w-]{6}\.[\w-]{27}", "***DISCORD_TOKEN***"),
    # Google API keys
    (r"AIza[0-9A-Za-z_-]{35}", "***GOOGLE_KEY***"),
]


def sanitize_output(text: str) -> str:
    """
    Sanitize text before exposing it outside the process.

    Args:
        text: Raw log line or message

    Returns:
        Text with ANSI codes removed and secrets masked
    """
    text = re.sub(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])", "", text)

    for pattern, replacement in SECRET_PATTERNS:
        text = re.sub(pattern, replacement, text, flags=re.IGNORECASE)

    return text


def is_channel_allowed(channel_id: int, allowed_channels: Set[int]) -> bool:
    """Check if a channel is in the allowed list (empty set = all allowed)."""
    if not allowed_channels:
        return True
    return channel_id in allowed_channels


def is_assistant_channel(channel_id: int, ai_channel_id: Optional[int]) -> bool:
    """The assistant only answers in its configured channel."""
    if ai_channel_id is None:
        return False
    return is_channel_allowed(channel_id, {ai_channel_id})


def is_registration_channel(channel_id: int, registration_channel_id: Optional[int]) -> bool:
    """Terms may be posted anywhere unless a registration channel is configured."""
    if registration_channel_id is None:
        return True
    return is_channel_allowed(channel_id, {registration_channel_id})
