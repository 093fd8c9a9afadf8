"""
Tests for Discord message formatting.
"""

from datetime import datetime, timezone

from src.linedevs_bot.errors import (
    AlreadyLinked,
    Conflict,
    Exhausted,
    NotFound,
    Suspended,
    VerificationMismatch,
)
from src.linedevs_bot.formatters import (
    MAX_MESSAGE_LENGTH,
    discord_timestamp,
    format_assistant_reply,
    format_error,
    format_verification_instructions,
    split_message,
)
from src.linedevs_bot.models import PendingVerification

MOMENT = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class TestSplitMessage:

    def test_short_message_unchanged(self):
        assert split_message("hello") == ["hello"]

    def test_splits_at_newline(self):
        text = "a" * 1500 + "\n" + "b" * 1000
        chunks = split_message(text)
        assert chunks == ["a" * 1500, "b" * 1000]

    def test_hard_split_without_whitespace(self):
        chunks = split_message("x" * 4500)
        assert [len(c) for c in chunks] == [2000, 2000, 500]


class TestTexts:

    def test_timestamp(self):
        assert discord_timestamp(MOMENT, "R") == f"<t:{int(MOMENT.timestamp())}:R>"

    def test_instructions_carry_key_and_profile(self):
        session = PendingVerification(1, 777, "AliceRBX", "AB12cd34EF56", MOMENT)
        text = format_verification_instructions(session, "https://www.roblox.com/users/777/profile")

        assert "`AB12cd34EF56`" in text
        assert "About section" in text
        assert "https://www.roblox.com/users/777/profile" in text

    def test_assistant_reply_footer(self):
        messages = format_assistant_reply("Alice", "q", "answer", 3, 15)
        assert len(messages) == 1
        assert messages[0].startswith("**Alice:** q")
        assert messages[0].endswith("_3/15 assistant uses left today_")

    def test_long_assistant_reply_fits(self):
        messages = format_assistant_reply("Alice", "q", "z " * 3000, 0, 15)
        assert len(messages) > 1
        assert all(len(m) <= MAX_MESSAGE_LENGTH for m in messages)


class TestFormatError:

    def test_mismatch_repeats_key(self):
        text = format_error(VerificationMismatch("KEY123"))
        assert text == "Key not found on profile. Make sure you pasted exactly: `KEY123`"

    def test_conflict_mentions_holder(self):
        assert "<@1001>" in format_error(Conflict(777, 1001))

    def test_conflict_unknown_holder(self):
        assert "another member" in format_error(Conflict(777, None))

    def test_suspended(self):
        assert discord_timestamp(MOMENT) in format_error(Suspended(MOMENT))

    def test_exhausted(self):
        assert "assistant uses" in format_error(Exhausted("out"))

    def test_already_linked(self):
        assert "**AliceRBX**" in format_error(AlreadyLinked("AliceRBX"))

    def test_not_found_passthrough(self):
        assert format_error(NotFound("No pending verification found. Start again.")) == (
            "No pending verification found. Start again."
        )
