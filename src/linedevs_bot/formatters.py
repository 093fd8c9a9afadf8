"""
Discord message formatting utilities.

Builds the user-facing texts for verification, quota and moderation, and
splits long assistant output to fit Discord's character limits.
"""

from datetime import datetime
from typing import List, Optional

from .errors import (
    AlreadyLinked,
    BotError,
    Conflict,
    Exhausted,
    NotFound,
    Suspended,
    Unauthorized,
    VerificationMismatch,
)
from .models import PendingVerification

# Discord limits
MAX_MESSAGE_LENGTH = 2000

TERMS_TEXT = (
    "**Terms & Policies**\n\n"
    "Please read carefully before registering:\n"
    "1) Be respectful. Harassment, slurs and scams are removed and flagged.\n"
    "2) Repeated flags lead to an automatic timeout.\n"
    "3) The assistant channel is rate limited per member per day.\n"
    "4) Your Roblox account is linked to one Discord account at a time.\n\n"
    "Press **Agree & Register** to begin."
)


def discord_timestamp(moment: datetime, style: str = "F") -> str:
    """Render a datetime as a Discord timestamp tag."""
    return f"<t:{int(moment.timestamp())}:{style}>"


def split_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> List[str]:
    """
    Split a long message into chunks that fit Discord's character limit.

    Args:
        text: The full message text
        max_length: Maximum length per chunk (default 2000)

    Returns:
        List of message chunks
    """
    if len(text) <= max_length:
        return [text]

    chunks = []
    remaining = text

    while remaining:
        if len(remaining) <= max_length:
            chunks.append(remaining)
            break

        # Try to split at a newline
        split_point = remaining.rfind("\n", 0, max_length)
        if split_point == -1 or split_point < max_length // 2:
            # No good newline, split at space
            split_point = remaining.rfind(" ", 0, max_length)
            if split_point == -1 or split_point < max_length // 2:
                split_point = max_length

        chunks.append(remaining[:split_point])
        remaining = remaining[split_point:].lstrip()

    return chunks


def format_verification_instructions(session: PendingVerification, profile_url: str) -> str:
    """Instructions shown after a username resolves."""
    return (
        "**Account Verification**\n"
        "Please place the following Key onto your Roblox profile's About section:\n\n"
        f"`{session.verification_key}`\n\n"
        "Instructions:\n"
        "1) Copy the key.\n"
        f"2) Go to profile: {profile_url}\n"
        "3) Paste key in About.\n"
        "4) Return and press Done."
    )


def format_link_success(external_name: str, already_linked: bool = False) -> str:
    if already_linked:
        return f"You are already verified as **{external_name}**."
    return f"Verification successful! You are now verified as **{external_name}**."


def format_unlink_success(external_name: Optional[str], self_service: bool) -> str:
    if self_service:
        return f"Your Roblox account **{external_name}** has been unlinked."
    return f"Unlinked Roblox account **{external_name}**."


def format_assistant_reply(
    display_name: str,
    prompt: str,
    reply: str,
    remaining: int,
    allotment: int,
) -> List[str]:
    """
    Format the public assistant answer.

    Returns:
        List of message strings to send
    """
    body = f"**{display_name}:** {prompt}\n**Assistant:** {reply}"
    footer = f"\n\n_{remaining}/{allotment} assistant uses left today_"

    messages = split_message(body, MAX_MESSAGE_LENGTH - 100)
    if len(messages[-1]) + len(footer) <= MAX_MESSAGE_LENGTH:
        messages[-1] += footer
    else:
        messages.append(footer.strip())
    return messages


def format_balance(remaining: int, allotment: int, resets_at: datetime) -> str:
    return (
        f"You have **{remaining}/{allotment}** assistant uses left. "
        f"Quota resets {discord_timestamp(resets_at, 'R')}."
    )


def format_moderation_warning(mention: str, flag_count: int, threshold: int) -> str:
    return (
        f"⚠️ {mention}, your message was removed for breaking the rules. "
        f"Warning {flag_count}/{threshold}."
    )


def format_suspension_notice(mention: str, until: datetime) -> str:
    return (
        f"⛔ {mention} has been timed out until {discord_timestamp(until)} "
        "after repeated rule violations."
    )


def format_flags(flag_count: int, threshold: int, suspended_until: Optional[datetime]) -> str:
    text = f"Flags: **{flag_count}/{threshold}**"
    if suspended_until is not None:
        text += f"\nSuspended until {discord_timestamp(suspended_until)}"
    return text


def format_error(error: BotError) -> str:
    """User-facing text for a core error."""
    if isinstance(error, VerificationMismatch):
        return f"Key not found on profile. Make sure you pasted exactly: `{error.expected_key}`"
    if isinstance(error, Conflict):
        holder = f"<@{error.holder_id}>" if error.holder_id else "another member"
        return (
            f"That Roblox account is already linked to {holder}. "
            "They must unlink it first, or contact an admin."
        )
    if isinstance(error, Suspended):
        return f"⛔ You are suspended until {discord_timestamp(error.until)}."
    if isinstance(error, Exhausted):
        return "⏳ You have used all of your assistant uses for today. Try again tomorrow."
    if isinstance(error, AlreadyLinked):
        return f"You are already verified as **{error.external_name}**. Use `/unlink` first."
    if isinstance(error, Unauthorized):
        return f"⛔ {error}"
    if isinstance(error, NotFound):
        return str(error)
    return f"❌ {error}"
