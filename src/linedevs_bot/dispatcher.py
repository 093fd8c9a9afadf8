"""
Routes typed inbound events to the core operations.

The discord.py layer converts gateway events and interactions into the
event dataclasses below and applies the returned Reply. Nothing here
imports discord.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import aiosqlite

from .assistant import AssistantClient
from .errors import BotError, Unauthorized
from .formatters import (
    format_assistant_reply,
    format_balance,
    format_error,
    format_flags,
    format_link_success,
    format_moderation_warning,
    format_suspension_notice,
    format_unlink_success,
    format_verification_instructions,
)
from .ledger import TokenLedger
from .linking import AccountLinker
from .moderation import ModerationEngine
from .security import is_assistant_channel
from .telemetry import BotMetrics

logger = logging.getLogger(__name__)

NOTICE_LIFETIME_SECONDS = 15.0
INTERNAL_ERROR_TEXT = "❌ Something went wrong on our side. Please try again."


# ============================================================================
# EVENTS
# ============================================================================

@dataclass(frozen=True)
class MessageEvent:
    requester_id: int
    display_name: str
    channel_id: int
    content: str


@dataclass(frozen=True)
class AgreeRegisterEvent:
    requester_id: int


@dataclass(frozen=True)
class UsernameSubmittedEvent:
    requester_id: int
    username: str


@dataclass(frozen=True)
class ConfirmVerificationEvent:
    requester_id: int


@dataclass(frozen=True)
class UnlinkEvent:
    actor_id: int
    target_id: int
    actor_is_admin: bool = False


@dataclass(frozen=True)
class BalanceEvent:
    requester_id: int


@dataclass(frozen=True)
class FlagsEvent:
    actor_id: int
    target_id: int
    actor_is_admin: bool = False


# ============================================================================
# REPLIES
# ============================================================================

class ReplyAction(str, Enum):
    """Follow-up UI the transport should attach."""
    NONE = "none"
    PROMPT_USERNAME = "prompt_username"
    SHOW_DONE_BUTTON = "show_done_button"


@dataclass
class Reply:
    """What the transport should do in response to an event."""

    messages: List[str] = field(default_factory=list)
    ephemeral: bool = True
    action: ReplyAction = ReplyAction.NONE
    delete_source: bool = False
    delete_after: Optional[float] = None
    timeout_until: Optional[datetime] = None


def mention(user_id: int) -> str:
    return f"<@{user_id}>"


class EventDispatcher:
    """Single entry point from the transport into the core."""

    def __init__(
        self,
        linker: AccountLinker,
        ledger: TokenLedger,
        moderation: ModerationEngine,
        assistant: AssistantClient,
        metrics: BotMetrics,
        ai_channel_id: Optional[int] = None,
        profile_url_template: str = "https://www.roblox.com/users/{external_id}/profile",
    ):
        self.linker = linker
        self.ledger = ledger
        self.moderation = moderation
        self.assistant = assistant
        self.metrics = metrics
        self.ai_channel_id = ai_channel_id
        self.profile_url_template = profile_url_template

        self._handlers: Dict[type, Callable[[Any], Awaitable[Optional[Reply]]]] = {
            MessageEvent: self._on_message,
            AgreeRegisterEvent: self._on_agree,
            UsernameSubmittedEvent: self._on_username,
            ConfirmVerificationEvent: self._on_confirm,
            UnlinkEvent: self._on_unlink,
            BalanceEvent: self._on_balance,
            FlagsEvent: self._on_flags,
        }

    async def dispatch(self, event: Any) -> Optional[Reply]:
        """
        Handle one event.

        Returns:
            Reply to apply, or None when nothing should be sent
        """
        handler = self._handlers.get(type(event))
        if handler is None:
            raise TypeError(f"Unsupported event type: {type(event).__name__}")

        is_message = isinstance(event, MessageEvent)
        try:
            return await handler(event)
        except BotError as e:
            logger.info(f"{type(event).__name__} rejected: {type(e).__name__}: {e}")
            return Reply(
                messages=[format_error(e)],
                ephemeral=True,
                delete_source=is_message,
                delete_after=NOTICE_LIFETIME_SECONDS if is_message else None,
            )
        except aiosqlite.Error as e:
            logger.error(f"Storage error handling {type(event).__name__}: {e}", exc_info=True)
            return Reply(messages=[INTERNAL_ERROR_TEXT], ephemeral=True)

    # ------------------------------------------------------------------ messages

    async def _on_message(self, event: MessageEvent) -> Optional[Reply]:
        self.metrics.touch_user(event.requester_id)

        result = await self.moderation.check(event.requester_id, event.content)
        if result is not None:
            self.metrics.incr("messages_flagged")
            who = mention(event.requester_id)
            if result.suspended:
                self.metrics.incr("suspensions")
                return Reply(
                    messages=[format_suspension_notice(who, result.until)],
                    ephemeral=False,
                    delete_source=True,
                    timeout_until=result.until,
                )
            return Reply(
                messages=[format_moderation_warning(who, result.flag_count, result.threshold)],
                ephemeral=False,
                delete_source=True,
                delete_after=NOTICE_LIFETIME_SECONDS,
            )

        if not is_assistant_channel(event.channel_id, self.ai_channel_id):
            return None

        spend = await self.ledger.consume_token(event.requester_id)
        self.metrics.incr("tokens_consumed")
        logger.info(f"AI prompt from {event.display_name}: {event.content[:100]}")

        answer = await self.assistant.generate(event.content)
        if not answer.success:
            self.metrics.incr("assistant_failures")

        return Reply(
            messages=format_assistant_reply(
                event.display_name,
                event.content,
                answer.text,
                spend.remaining,
                self.ledger.daily_allotment,
            ),
            ephemeral=False,
            delete_source=True,
        )

    # ------------------------------------------------------------------ linking

    async def _on_agree(self, event: AgreeRegisterEvent) -> Reply:
        result = await self.linker.start_linking(event.requester_id)
        if result is None:
            return Reply(
                messages=["Enter your Roblox username to continue."],
                action=ReplyAction.PROMPT_USERNAME,
            )
        if not result.already_linked:
            self.metrics.incr("verifications_completed")
        return Reply(messages=[format_link_success(result.account.external_name, result.already_linked)])

    async def _on_username(self, event: UsernameSubmittedEvent) -> Reply:
        session = await self.linker.submit_username(event.requester_id, event.username)
        self.metrics.incr("verifications_started")
        profile_url = self.profile_url_template.format(external_id=session.external_id)
        return Reply(
            messages=[format_verification_instructions(session, profile_url)],
            action=ReplyAction.SHOW_DONE_BUTTON,
        )

    async def _on_confirm(self, event: ConfirmVerificationEvent) -> Reply:
        result = await self.linker.confirm(event.requester_id)
        if not result.already_linked:
            self.metrics.incr("verifications_completed")
        return Reply(messages=[format_link_success(result.account.external_name, result.already_linked)])

    async def _on_unlink(self, event: UnlinkEvent) -> Reply:
        previous = await self.linker.unlink(event.actor_id, event.target_id, event.actor_is_admin)
        self.metrics.incr("unlinks")
        self_service = event.actor_id == event.target_id
        return Reply(messages=[format_unlink_success(previous.external_name, self_service)])

    # ------------------------------------------------------------------ queries

    async def _on_balance(self, event: BalanceEvent) -> Reply:
        remaining = await self.ledger.peek_balance(event.requester_id)
        resets_at = await self.ledger.next_reset(event.requester_id)
        return Reply(messages=[format_balance(remaining, self.ledger.daily_allotment, resets_at)])

    async def _on_flags(self, event: FlagsEvent) -> Reply:
        if event.actor_id != event.target_id and not event.actor_is_admin:
            raise Unauthorized("Only admins may view other members' flags.")

        account = await self.moderation.store.get_by_requester(event.target_id)
        if account is None:
            return Reply(messages=[format_flags(0, self.moderation.flag_threshold, None)])

        state = account.moderation_state(self.moderation.clock())
        until = state.suspended_until if state.suspended else None
        return Reply(messages=[format_flags(state.flag_count, self.moderation.flag_threshold, until)])
