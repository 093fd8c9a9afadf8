"""
LineDevs Discord Bot - Main entry point.

Runs the verification gate, the metered assistant channel, moderation and
the status web server in one process.

Usage:
    python -m src.linedevs_bot.main

Environment Variables Required:
    DISCORD_TOKEN - Discord bot token
    GUILD_ID - The single guild the bot serves
    VERIFIED_ROLE_ID - Role granted after verification
    UNVERIFIED_ROLE_ID, AI_CHANNEL_ID, GEMINI_API - optional
"""

import asyncio
import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

import aiohttp
import discord
from discord import app_commands
from discord.ext import commands, tasks
from dotenv import load_dotenv

from src.utils import banner, build_console_handler

from .assistant import AssistantClient
from .config import BotConfig, load_config
from .dispatcher import (
    AgreeRegisterEvent,
    BalanceEvent,
    ConfirmVerificationEvent,
    EventDispatcher,
    FlagsEvent,
    MessageEvent,
    Reply,
    ReplyAction,
    UnlinkEvent,
    UsernameSubmittedEvent,
)
from .formatters import TERMS_TEXT
from .identity import IdentityResolver
from .ledger import TokenLedger
from .linking import AccountLinker
from .moderation import ModerationEngine
from .security import is_registration_channel
from .sessions import VerificationSessionStore
from .storage import AccountStore
from .telemetry import BotMetrics, LogRingBuffer
from .web import create_status_app, ping_self, start_status_server

# Load environment variables from .env file
load_dotenv()

# Constants
MAX_RECONNECT_ATTEMPTS = 5
RECONNECT_DELAY_BASE = 5  # seconds
PACKAGE_LOGGER = __package__ or "linedevs_bot"

logger = logging.getLogger(__name__)


def setup_logging(log_dir: Path, ring_buffer: Optional[LogRingBuffer] = None) -> logging.Logger:
    """
    Set up logging with file, console and ring-buffer handlers.

    Creates rotating log files in log_dir with format:
    linedevs_bot_YYYYMMDD.log
    """
    log_dir.mkdir(parents=True, exist_ok=True)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(logging.DEBUG)
    package_logger.handlers.clear()

    log_format = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    # File handler - rotating, max 10MB per file, keep 5 backups
    log_file = log_dir / f"linedevs_bot_{datetime.now().strftime('%Y%m%d')}.log"
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(log_format)
    package_logger.addHandler(file_handler)

    package_logger.addHandler(build_console_handler(logging.INFO))

    if ring_buffer is not None:
        ring_buffer.setFormatter(logging.Formatter(
            "[%(levelname)s] %(asctime)s - %(message)s", datefmt="%Y-%m-%dT%H:%M:%S"
        ))
        package_logger.addHandler(ring_buffer)

    # Also configure discord.py logging
    discord_logger = logging.getLogger("discord")
    discord_logger.setLevel(logging.WARNING)
    discord_logger.addHandler(file_handler)

    package_logger.info(f"Logging initialized. Log file: {log_file}")
    return package_logger


def validate_discord_token(token: str) -> tuple[bool, str]:
    """Basic format check - tokens have 3 parts separated by dots."""
    if not token:
        return False, "Discord token is empty"
    if len(token.split(".")) != 3:
        return False, "Discord token format invalid (expected 3 parts separated by dots)"
    return True, "Token format valid"


# ============================================================================
# GUILD SIDE EFFECTS
# ============================================================================

class DiscordMemberRoles:
    """Applies role and nickname changes for link state transitions."""

    def __init__(self, bot: "GatekeeperBot"):
        self.bot = bot

    async def _member(self, user_id: int) -> Optional[discord.Member]:
        guild = self.bot.get_guild(self.bot.config.guild_id)
        if guild is None:
            logger.warning(f"Guild {self.bot.config.guild_id} not available")
            return None
        member = guild.get_member(user_id)
        if member is not None:
            return member
        try:
            return await guild.fetch_member(user_id)
        except discord.HTTPException as e:
            logger.warning(f"Could not fetch member {user_id}: {e}")
            return None

    async def _swap(self, member: discord.Member, remove_id: Optional[int],
                    add_id: Optional[int], reason: str) -> None:
        if remove_id:
            try:
                await member.remove_roles(discord.Object(id=remove_id), reason=reason)
            except discord.HTTPException as e:
                logger.warning(f"Could not remove role {remove_id} from {member}: {e}")
        if add_id:
            try:
                await member.add_roles(discord.Object(id=add_id), reason=reason)
            except discord.HTTPException as e:
                logger.warning(f"Could not add role {add_id} to {member}: {e}")

    async def mark_verified(self, requester_id: int, display_name: str) -> None:
        member = await self._member(requester_id)
        if member is None:
            return
        config = self.bot.config
        await self._swap(member, config.unverified_role_id, config.verified_role_id,
                         "Verified via Roblox check")
        try:
            await member.edit(nick=display_name[:32], reason="Set during verification")
        except discord.HTTPException as e:
            logger.warning(f"Could not set nickname for {member}: {e}")

    async def mark_unverified(self, requester_id: int) -> None:
        member = await self._member(requester_id)
        if member is None:
            return
        config = self.bot.config
        await self._swap(member, config.verified_role_id, config.unverified_role_id,
                         "Roblox account unlinked")
        try:
            await member.edit(nick=None, reason="Roblox account unlinked")
        except discord.HTTPException as e:
            logger.warning(f"Could not reset nickname for {member}: {e}")


# ============================================================================
# VIEWS AND MODALS
# ============================================================================

class TermsView(discord.ui.View):
    """Persistent 'Agree & Register' button under the terms post."""

    def __init__(self, bot: "GatekeeperBot"):
        super().__init__(timeout=None)
        self.bot = bot

    @discord.ui.button(label="Agree & Register", style=discord.ButtonStyle.primary,
                       custom_id="agree_register")
    async def agree(self, interaction: discord.Interaction, button: discord.ui.Button):
        await interaction.response.defer(ephemeral=True, thinking=True)
        reply = await self.bot.dispatcher.dispatch(AgreeRegisterEvent(interaction.user.id))
        await self.bot.send_interaction_reply(interaction, reply)


class UsernameEntryView(discord.ui.View):
    """Opens the username modal."""

    def __init__(self, bot: "GatekeeperBot"):
        super().__init__(timeout=None)
        self.bot = bot

    @discord.ui.button(label="Enter Roblox username", style=discord.ButtonStyle.primary,
                       custom_id="enter_roblox_username")
    async def enter(self, interaction: discord.Interaction, button: discord.ui.Button):
        await interaction.response.send_modal(UsernameModal(self.bot))


class UsernameModal(discord.ui.Modal, title="Register - Roblox Username"):
    username = discord.ui.TextInput(
        label="Roblox username (only username)",
        style=discord.TextStyle.short,
        required=True,
        max_length=32,
    )

    def __init__(self, bot: "GatekeeperBot"):
        super().__init__()
        self.bot = bot

    async def on_submit(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True, thinking=True)
        event = UsernameSubmittedEvent(interaction.user.id, str(self.username.value))
        reply = await self.bot.dispatcher.dispatch(event)
        await self.bot.send_interaction_reply(interaction, reply)


class DoneView(discord.ui.View):
    """Persistent 'Done' button under the verification instructions."""

    def __init__(self, bot: "GatekeeperBot"):
        super().__init__(timeout=None)
        self.bot = bot

    @discord.ui.button(label="Done", style=discord.ButtonStyle.success,
                       custom_id="done_verification")
    async def done(self, interaction: discord.Interaction, button: discord.ui.Button):
        await interaction.response.defer(ephemeral=True, thinking=True)
        reply = await self.bot.dispatcher.dispatch(ConfirmVerificationEvent(interaction.user.id))
        await self.bot.send_interaction_reply(interaction, reply)


# ============================================================================
# BOT
# ============================================================================

class GatekeeperBot(commands.Bot):
    """Single-guild verification and assistant bot."""

    def __init__(self, config: BotConfig, metrics: BotMetrics, log_buffer: LogRingBuffer):
        intents = discord.Intents.default()
        intents.members = True
        intents.message_content = True

        super().__init__(command_prefix="!", intents=intents, help_command=None)
        self.config = config
        self.metrics = metrics
        self.log_buffer = log_buffer
        settings = config.settings

        self.store = AccountStore(config.database_path)
        self.sessions = VerificationSessionStore(
            ttl_minutes=settings.verification.session_ttl_minutes,
            key_length=settings.verification.key_length,
            key_alphabet=settings.verification.key_alphabet,
        )
        self.ledger = TokenLedger(
            self.store,
            daily_allotment=settings.quota.daily_allotment,
            rotation_hours=settings.quota.rotation_hours,
        )
        self.moderation = ModerationEngine(
            self.store,
            denylist=settings.moderation.denylist,
            flag_threshold=settings.moderation.flag_threshold,
            suspension_hours=settings.moderation.suspension_hours,
            default_allotment=settings.quota.daily_allotment,
        )

        # Created in setup_hook, once the event loop is running
        self.http_session: Optional[aiohttp.ClientSession] = None
        self.dispatcher: Optional[EventDispatcher] = None
        self.web_runner = None

    async def setup_hook(self):
        """Create the HTTP session, core services, views and web server."""
        settings = self.config.settings
        await self.store.initialize()

        timeout = aiohttp.ClientTimeout(total=settings.services.http_timeout_seconds)
        self.http_session = aiohttp.ClientSession(timeout=timeout)

        resolver = IdentityResolver(
            self.http_session,
            settings.services,
            guild_id=self.config.guild_id,
            directory_api_key=self.config.roblox_api_key,
            registry_api_key=self.config.registry_api_key,
        )
        linker = AccountLinker(
            self.store,
            resolver,
            self.sessions,
            DiscordMemberRoles(self),
            default_allotment=settings.quota.daily_allotment,
        )
        assistant = AssistantClient(self.http_session, settings.services, self.config.gemini_api_key)
        self.dispatcher = EventDispatcher(
            linker,
            self.ledger,
            self.moderation,
            assistant,
            self.metrics,
            ai_channel_id=self.config.ai_channel_id,
            profile_url_template=settings.verification.profile_url_template,
        )

        # Persistent views survive restarts (custom_id based)
        self.add_view(TermsView(self))
        self.add_view(UsernameEntryView(self))
        self.add_view(DoneView(self))

        self.tree.on_error = self.on_app_command_error

        app = create_status_app(
            self.metrics,
            self.log_buffer,
            extra_metrics=self.storage_metrics,
            log_tail=settings.web.log_tail,
        )
        self.web_runner = await start_status_server(app, self.config.port)

        if self.config.self_url:
            self.keep_alive.change_interval(minutes=settings.web.keep_alive_minutes)
            self.keep_alive.start()

    async def storage_metrics(self) -> dict:
        return {
            "linkedAccounts": await self.store.count_linked(),
            "pendingVerifications": len(self.sessions),
        }

    @tasks.loop(minutes=5)
    async def keep_alive(self):
        await ping_self(self.http_session, self.config.self_url)

    async def close(self):
        """Stop background work before closing the gateway."""
        self.metrics.status = "stopping"
        if self.keep_alive.is_running():
            self.keep_alive.cancel()
        if self.web_runner is not None:
            await self.web_runner.cleanup()
        if self.http_session is not None and not self.http_session.closed:
            await self.http_session.close()
        await super().close()

    async def sync_commands_to_guild(self):
        """Register slash commands on the configured guild (instant propagation)."""
        guild = discord.Object(id=self.config.guild_id)
        try:
            self.tree.clear_commands(guild=None)
            await self.tree.sync()

            self.tree.clear_commands(guild=guild)
            for command in (register_show_terms_command, unlink_command,
                            balance_command, flags_command):
                self.tree.add_command(command, guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.info(f"Synced {len(synced)} commands to guild {self.config.guild_id}")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}", exc_info=True)

    async def on_ready(self):
        self.metrics.status = "online"
        logger.info(f"Discord bot ready: {self.user} (ID: {self.user.id})")
        logger.info(f"  Guilds: {len(self.guilds)}")
        logger.info(f"  Latency: {self.latency * 1000:.2f}ms")
        await self.sync_commands_to_guild()

    async def on_disconnect(self):
        logger.warning("Disconnected from Discord gateway")
        self.metrics.status = "reconnecting"

    async def on_resumed(self):
        logger.info("Session resumed after disconnect")
        self.metrics.status = "online"

    async def on_error(self, event_method: str, *args, **kwargs):
        logger.error(f"Error in event {event_method}", exc_info=True)

    async def on_app_command_error(self, interaction: discord.Interaction,
                                   error: app_commands.AppCommandError):
        logger.error(f"Slash command error: {error}", exc_info=True)
        try:
            if interaction.response.is_done():
                await interaction.followup.send(f"❌ Error: {str(error)[:200]}", ephemeral=True)
            else:
                await interaction.response.send_message(f"❌ Error: {str(error)[:200]}", ephemeral=True)
        except discord.HTTPException as e:
            logger.error(f"Failed to send error response: {e}")

    async def on_member_join(self, member: discord.Member):
        """Every newcomer starts out unverified."""
        if member.guild.id != self.config.guild_id or not self.config.unverified_role_id:
            return
        try:
            await member.add_roles(discord.Object(id=self.config.unverified_role_id),
                                   reason="Auto-assign unverified on join")
            logger.info(f"Assigned Unverified role to {member}")
        except discord.HTTPException as e:
            logger.warning(f"Could not assign role on join to {member}: {e}")

    async def on_message(self, message: discord.Message):
        if message.author.bot or message.guild is None:
            return
        if message.guild.id != self.config.guild_id:
            return

        event = MessageEvent(
            requester_id=message.author.id,
            display_name=message.author.display_name,
            channel_id=message.channel.id,
            content=message.content,
        )
        reply = await self.dispatcher.dispatch(event)
        if reply is not None:
            await self.apply_message_reply(message, reply)

    async def apply_message_reply(self, message: discord.Message, reply: Reply):
        """Carry out a Reply produced for a channel message."""
        if reply.delete_source:
            try:
                await message.delete()
            except discord.HTTPException as e:
                logger.warning(f"Could not delete message {message.id}: {e}")

        if reply.timeout_until is not None and isinstance(message.author, discord.Member):
            try:
                await message.author.timeout(reply.timeout_until, reason="Automatic moderation")
            except discord.HTTPException as e:
                logger.error(f"Could not time out {message.author}: {e}")

        for text in reply.messages:
            try:
                await message.channel.send(text, delete_after=reply.delete_after)
            except discord.HTTPException as e:
                logger.error(f"Failed to send reply in #{message.channel}: {e}")
                break

    async def send_interaction_reply(self, interaction: discord.Interaction, reply: Optional[Reply]):
        """Send a Reply as the (deferred) interaction response."""
        if reply is None or not reply.messages:
            return

        view = None
        if reply.action == ReplyAction.PROMPT_USERNAME:
            view = UsernameEntryView(self)
        elif reply.action == ReplyAction.SHOW_DONE_BUTTON:
            view = DoneView(self)

        try:
            for index, text in enumerate(reply.messages):
                is_last = index == len(reply.messages) - 1
                kwargs = {"ephemeral": reply.ephemeral}
                if view is not None and is_last:
                    kwargs["view"] = view
                if interaction.response.is_done():
                    await interaction.followup.send(text, **kwargs)
                else:
                    await interaction.response.send_message(text, **kwargs)
        except discord.HTTPException as e:
            logger.error(f"Failed to send interaction reply: {e}")


# Global bot instance (set during create_bot)
_bot: Optional[GatekeeperBot] = None


def get_bot() -> GatekeeperBot:
    """Get the current bot instance."""
    if _bot is None:
        raise RuntimeError("Bot not initialized")
    return _bot


def is_admin(interaction: discord.Interaction) -> bool:
    return bool(interaction.permissions and interaction.permissions.administrator)


# ============================================================================
# SLASH COMMANDS
# ============================================================================

@app_commands.command(name="register_show_terms", description="Display Terms & Policies for registration")
async def register_show_terms_command(interaction: discord.Interaction):
    """Post the terms with the Agree & Register button (admins only, registration channel if set)."""
    bot = get_bot()
    if not is_admin(interaction):
        await interaction.response.send_message(
            "Only admins may deploy the registration terms.", ephemeral=True
        )
        return
    if not is_registration_channel(interaction.channel_id, bot.config.registration_channel_id):
        await interaction.response.send_message(
            f"Registration terms belong in <#{bot.config.registration_channel_id}>.", ephemeral=True
        )
        return
    await interaction.response.send_message(TERMS_TEXT, view=TermsView(bot))


@app_commands.command(name="unlink", description="Unlink a Roblox account")
@app_commands.describe(member="Member to unlink (admins only, defaults to yourself)")
async def unlink_command(interaction: discord.Interaction, member: Optional[discord.Member] = None):
    bot = get_bot()
    await interaction.response.defer(ephemeral=True, thinking=True)
    target = member or interaction.user
    event = UnlinkEvent(interaction.user.id, target.id, actor_is_admin=is_admin(interaction))
    await bot.send_interaction_reply(interaction, await bot.dispatcher.dispatch(event))


@app_commands.command(name="balance", description="Show your remaining assistant uses")
async def balance_command(interaction: discord.Interaction):
    bot = get_bot()
    reply = await bot.dispatcher.dispatch(BalanceEvent(interaction.user.id))
    await bot.send_interaction_reply(interaction, reply)


@app_commands.command(name="flags", description="Show moderation flags")
@app_commands.describe(member="Member to inspect (admins only, defaults to yourself)")
async def flags_command(interaction: discord.Interaction, member: Optional[discord.Member] = None):
    bot = get_bot()
    target = member or interaction.user
    event = FlagsEvent(interaction.user.id, target.id, actor_is_admin=is_admin(interaction))
    await bot.send_interaction_reply(interaction, await bot.dispatcher.dispatch(event))


# ============================================================================
# BOT CREATION AND LIFECYCLE
# ============================================================================

def create_bot(config: BotConfig, metrics: BotMetrics, log_buffer: LogRingBuffer) -> GatekeeperBot:
    """Create and configure the bot instance."""
    global _bot
    _bot = GatekeeperBot(config, metrics, log_buffer)
    return _bot


def reconnect_delay(attempt: int, network: bool) -> int:
    """Seconds to wait before reconnect attempt number `attempt` (1-based)."""
    if network:
        return min(RECONNECT_DELAY_BASE * (2 ** attempt), 300)
    return min(RECONNECT_DELAY_BASE * attempt, 60)


async def run_bot_with_reconnect(config: BotConfig, metrics: BotMetrics, log_buffer: LogRingBuffer):
    """
    Keep the gateway connection alive.

    Login and intent errors are fatal. Network failures back off
    exponentially; anything else backs off linearly. Either way the
    process exits after MAX_RECONNECT_ATTEMPTS.
    """
    attempts = 0

    while True:
        try:
            bot = create_bot(config, metrics, log_buffer)
            logger.info("Connecting to Discord...")
            async with bot:
                await bot.start(config.discord_token)

        except discord.LoginFailure as e:
            logger.error(f"Login rejected, check DISCORD_TOKEN: {e}")
            sys.exit(1)

        except discord.PrivilegedIntentsRequired as e:
            logger.error(f"Enable the SERVER MEMBERS and MESSAGE CONTENT intents: {e}")
            sys.exit(1)

        except discord.GatewayNotFound:
            logger.warning("Discord gateway unavailable, retrying in 60s")
            await asyncio.sleep(60)

        except asyncio.CancelledError:
            logger.info("Bot shutdown requested")
            break

        except Exception as e:
            attempts += 1
            network = isinstance(e, aiohttp.ClientConnectorError)
            logger.error(f"Connection lost ({type(e).__name__}): {e}", exc_info=not network)
            if attempts >= MAX_RECONNECT_ATTEMPTS:
                logger.error(f"Giving up after {attempts} reconnect attempts")
                sys.exit(1)

            delay = reconnect_delay(attempts, network)
            logger.warning(f"Reconnect {attempts}/{MAX_RECONNECT_ATTEMPTS} in {delay}s")
            await asyncio.sleep(delay)

        else:
            logger.info("Bot closed")
            break


def main():
    """Main entry point with validation."""
    config = load_config()
    metrics = BotMetrics()
    log_buffer = LogRingBuffer(capacity=config.settings.web.log_buffer_size)
    setup_logging(config.log_dir, log_buffer)

    banner("LINEDEVS DISCORD BOT STARTING", [
        f"Time: {datetime.now().isoformat()}",
        f"PID: {os.getpid()}",
        f"Database: {config.database_path}",
        f"Status server port: {config.port}",
        f"Log directory: {config.log_dir}",
    ])

    token_valid, token_msg = validate_discord_token(config.discord_token)
    if not token_valid:
        logger.error(f"Discord token validation failed: {token_msg}")
        sys.exit(1)

    is_valid, error_msg = config.validate()
    if not is_valid:
        logger.error(f"Configuration validation failed: {error_msg}")
        sys.exit(1)

    settings = config.settings
    logger.info("Configuration loaded successfully:")
    logger.info(f"  Guild: {config.guild_id}")
    logger.info(f"  AI channel: {config.ai_channel_id or 'disabled'}")
    logger.info(f"  Assistant: {'configured' if config.gemini_api_key else 'not configured'}")
    logger.info(f"  Daily quota: {settings.quota.daily_allotment}")
    logger.info(
        f"  Moderation: {len(settings.moderation.denylist)} terms, "
        f"suspend at {settings.moderation.flag_threshold} flags for {settings.moderation.suspension_hours}h"
    )

    try:
        asyncio.run(run_bot_with_reconnect(config, metrics, log_buffer))
    except KeyboardInterrupt:
        logger.info("Bot shutdown by keyboard interrupt (Ctrl+C)")
    finally:
        logger.info("Bot shutdown complete")


if __name__ == "__main__":
    main()
