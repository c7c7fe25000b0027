# Copyright (c) 2025 Stephen Clau
#
# This file is part of Hydration Bot.
#
# Hydration Bot is dual-licensed:
#
# 1. GNU Affero General Public License v3.0 (AGPL-3.0)
#    See LICENSE file for full terms
#
# 2. Commercial License
#    For proprietary use without AGPL requirements
#    Contact: licensing@laudiversified.com
#
# SPDX-License-Identifier: AGPL-3.0-only OR Commercial

"""Discord bot client.

Delegates concerns to specialized modules:
- bot.presence: users currently present (voice channel or guild)
- bot.reminders: opt-in reminder registry
- bot.reminder_scheduler: background reminder sweep
- bot.shutdown: process-wide shutdown flag
- bot.event_handler: gateway events and commands into the registries
- bot.commands: drate / quit text commands
"""

import asyncio
from typing import Optional, Any, Dict, Iterable, Set

import discord
from discord.ext import commands
import structlog

try:
    from .bot import (
        Command,
        EventHandler,
        PresenceRegistry,
        ReminderRegistry,
        ReminderScheduler,
        ShutdownCoordinator,
    )
    from .bot.commands import register_hydration_commands
    from .bot.errors import ConfigurationError
    from .bot.helpers import DirectMessageChannel, open_direct_channel
    from .bot.reminder_scheduler import (
        DEFAULT_REMINDER_TEMPLATE,
        DEFAULT_SEND_TIMEOUT,
        DEFAULT_THRESHOLD,
        DEFAULT_TICK_INTERVAL,
        render_reminder_message,
    )
except ImportError:
    from bot import (  # type: ignore
        Command,
        EventHandler,
        PresenceRegistry,
        ReminderRegistry,
        ReminderScheduler,
        ShutdownCoordinator,
    )
    from bot.commands import register_hydration_commands  # type: ignore
    from bot.errors import ConfigurationError  # type: ignore
    from bot.helpers import DirectMessageChannel, open_direct_channel  # type: ignore
    from bot.reminder_scheduler import (  # type: ignore
        DEFAULT_REMINDER_TEMPLATE,
        DEFAULT_SEND_TIMEOUT,
        DEFAULT_THRESHOLD,
        DEFAULT_TICK_INTERVAL,
        render_reminder_message,
    )

logger = structlog.get_logger()


class HydrationBot(commands.Bot):
    """Discord bot tracking presence and sending opt-in hydration reminders."""

    def __init__(
        self,
        token: str,
        *,
        command_prefix: str = "!",
        presence_source: str = "voice",
        owner_ids: Optional[Iterable[int]] = None,
        reminder_threshold: float = DEFAULT_THRESHOLD,
        reminder_tick_interval: float = DEFAULT_TICK_INTERVAL,
        reminder_send_timeout: float = DEFAULT_SEND_TIMEOUT,
        reminder_message: str = DEFAULT_REMINDER_TEMPLATE,
        intents: Optional[discord.Intents] = None,
    ):
        """
        Initialize Discord bot.

        Args:
            token: Discord bot token
            command_prefix: Text command prefix
            presence_source: 'voice' or 'guild'
            owner_ids: Users allowed to run quit (None: resolve from application info)
            reminder_threshold: Seconds between reminders for one user
            reminder_tick_interval: Seconds between reminder sweeps
            reminder_send_timeout: Upper bound in seconds for one delivery
            reminder_message: Reminder text; "{prefix}" becomes the command prefix
            intents: Discord intents (auto-configured if None)
        """
        if intents is None:
            intents = discord.Intents.default()
            intents.message_content = True  # Required to read text commands
            intents.voice_states = True
            intents.members = presence_source == "guild"

        # Only the hydration commands are exposed; no built-in help
        super().__init__(command_prefix=command_prefix, intents=intents, help_command=None)

        self.token = token
        self.presence_source = presence_source
        self._configured_owner_ids: Set[int] = set(owner_ids or ())
        self._connected = False
        self._connection_task: Optional[asyncio.Task] = None

        self.presence_registry = PresenceRegistry()
        self.reminder_registry = ReminderRegistry()
        self.shutdown_coordinator = ShutdownCoordinator(gateway=self)

        self.event_handler = EventHandler(
            presence=self.presence_registry,
            reminders=self.reminder_registry,
            shutdown=self.shutdown_coordinator,
            owner_ids=self._configured_owner_ids,
        )

        self.reminder_scheduler = ReminderScheduler(
            self.reminder_registry,
            messenger=self,
            shutdown=self.shutdown_coordinator,
            tick_interval=reminder_tick_interval,
            threshold=reminder_threshold,
            send_timeout=reminder_send_timeout,
            message=render_reminder_message(reminder_message, command_prefix),
        )

        logger.info(
            "discord_bot_initialized",
            command_prefix=command_prefix,
            presence_source=presence_source,
            reminder_threshold=reminder_threshold,
            reminder_tick_interval=reminder_tick_interval,
        )

    # ========================================================================
    # Bot Lifecycle
    # ========================================================================

    async def setup_hook(self) -> None:
        """Called during login. Registers commands, resolves owners, starts reminders."""
        register_hydration_commands(self)
        await self._resolve_owners()
        await self.reminder_scheduler.start()
        logger.info("discord_bot_setup_complete")

    async def _resolve_owners(self) -> None:
        """
        Populate the owner set from configuration or the application owner.

        Raises:
            ConfigurationError: If application info cannot be fetched
        """
        if self._configured_owner_ids:
            self.event_handler.set_owners(self._configured_owner_ids)
            return

        try:
            info = await self.application_info()
        except discord.errors.HTTPException as e:
            raise ConfigurationError(f"Couldn't get application info: {e}") from e

        if info.team is not None:
            owners = {member.id for member in info.team.members}
        else:
            owners = {info.owner.id}

        self.event_handler.set_owners(owners)

    async def connect_bot(self) -> None:
        """Log in and start the gateway connection in the background."""
        try:
            logger.info("connecting_to_discord")
            await self.login(self.token)
        except discord.errors.LoginFailure as e:
            logger.error("discord_login_failed", error=str(e))
            raise ConfigurationError(f"Discord login failed: {e}") from e

        self._connection_task = asyncio.create_task(self.connect())

    async def disconnect_bot(self) -> None:
        """Request shutdown, drain the reminder loop and close the gateway."""
        await self.shutdown_coordinator.request_shutdown()
        await self.reminder_scheduler.join()

        if self._connection_task is not None:
            try:
                await self._connection_task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning("gateway_connection_ended_with_error", error=str(e))
            self._connection_task = None

        if not self.is_closed():
            await self.close()
        self._connected = False
        logger.info("discord_bot_disconnected")

    async def stop_all(self) -> None:
        """Stop accepting gateway events and disconnect."""
        self._connected = False
        if not self.is_closed():
            await self.close()

    @property
    def connection_task(self) -> Optional[asyncio.Task]:
        return self._connection_task

    @property
    def is_connected(self) -> bool:
        """Check if bot is connected to Discord."""
        return self._connected

    # ========================================================================
    # Discord Event Handlers
    # ========================================================================

    async def on_ready(self) -> None:
        """Called when bot is ready (fires on initial connect AND reconnects)."""
        if self.user is None:
            logger.error("discord_bot_ready_but_no_user")
            return

        self._connected = True
        self.event_handler.on_connected(self.user.name)

    async def on_resumed(self) -> None:
        self._connected = True
        self.event_handler.on_resumed()

    async def on_disconnect(self) -> None:
        self._connected = False
        logger.warning("discord_bot_disconnected_from_gateway")

    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ) -> None:
        if self.presence_source != "voice" or member.bot:
            return
        joined = after.channel is not None
        logger.debug("voice_state_update", user_id=member.id, joined=joined)
        self.event_handler.on_presence_changed(member.id, joined)

    async def on_member_join(self, member: discord.Member) -> None:
        if self.presence_source != "guild" or member.bot:
            return
        logger.info("user_joined", user=member.name)
        self.event_handler.on_presence_changed(member.id, True)

    async def on_member_remove(self, member: discord.Member) -> None:
        if self.presence_source != "guild" or member.bot:
            return
        logger.info("user_exited", user=member.name)
        self.event_handler.on_presence_changed(member.id, False)

    async def on_command_error(
        self, ctx: commands.Context, error: commands.CommandError
    ) -> None:
        """Log command failures; nothing is shown to the invoking user."""
        if isinstance(error, commands.CommandNotFound):
            logger.debug("command_not_found", content=getattr(ctx.message, "content", None))
            return

        logger.error(
            "command_failed",
            command=getattr(ctx.command, "name", None),
            user_id=getattr(ctx.author, "id", None),
            error=str(error),
        )

    # ========================================================================
    # Messaging capability (used by the reminder scheduler)
    # ========================================================================

    async def open_private_channel(self, user_id: int) -> DirectMessageChannel:
        return await open_direct_channel(self, user_id)

    # ========================================================================
    # Status
    # ========================================================================

    def status_snapshot(self) -> Dict[str, Any]:
        """Summarize runtime state for the health endpoint."""
        return {
            "connected": self._connected,
            "present_users": self.presence_registry.count(),
            "reminder_subscribers": self.reminder_registry.count(),
            "scheduler_state": self.reminder_scheduler.state.value,
            "shutting_down": self.shutdown_coordinator.is_stopped,
            "commands": [c.value for c in Command],
        }


class HydrationBotFactory:
    """Factory for creating Discord bot instances."""

    @staticmethod
    def create_bot(config: Any) -> HydrationBot:
        """Create a Discord bot instance from a Config."""
        return HydrationBot(
            token=config.discord_token,
            command_prefix=config.command_prefix,
            presence_source=config.presence_source,
            owner_ids=config.owner_ids or None,
            reminder_threshold=config.reminder_threshold,
            reminder_tick_interval=config.reminder_tick_interval,
            reminder_send_timeout=config.reminder_send_timeout,
            reminder_message=config.reminder_message,
        )
