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

"""Tests for discord_bot.py: wiring, gateway events, lifecycle."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import discord
import pytest
from discord.ext import commands
from structlog.testing import capture_logs

from bot.errors import ConfigurationError
from bot.reminder_scheduler import SchedulerState
from config import Config
from discord_bot import HydrationBot, HydrationBotFactory

TOKEN = "MTIzNDU2Nzg5MDEyMzQ1Njc4.GaBcDe.abcdefghijklmnopqrstuvwxyz0123456789AB"


def _member(user_id: int, is_bot: bool = False) -> MagicMock:
    member = MagicMock()
    member.id = user_id
    member.bot = is_bot
    member.name = f"user{user_id}"
    return member


def _voice(channel) -> MagicMock:
    state = MagicMock()
    state.channel = channel
    return state


@pytest.fixture
def bot() -> HydrationBot:
    return HydrationBot(token=TOKEN, owner_ids=[1], reminder_tick_interval=0.01)


# ========================================================================
# INITIALIZATION
# ========================================================================


class TestInitialization:
    def test_components_share_state(self, bot) -> None:
        assert bot.event_handler.presence is bot.presence_registry
        assert bot.event_handler.reminders is bot.reminder_registry
        assert bot.reminder_scheduler.registry is bot.reminder_registry
        assert bot.shutdown_coordinator.gateway is bot
        assert bot.reminder_scheduler.messenger is bot

    def test_configured_owners(self, bot) -> None:
        assert bot.event_handler.is_owner(1)

    def test_default_intents_voice(self, bot) -> None:
        assert bot.intents.voice_states is True
        assert bot.intents.message_content is True
        assert bot.intents.members is False

    def test_guild_presence_enables_members_intent(self) -> None:
        bot = HydrationBot(token=TOKEN, presence_source="guild")
        assert bot.intents.members is True

    def test_scheduler_settings(self) -> None:
        bot = HydrationBot(
            token=TOKEN,
            reminder_threshold=60.0,
            reminder_tick_interval=2.0,
            reminder_send_timeout=3.0,
            reminder_message="water",
        )
        scheduler = bot.reminder_scheduler
        assert (scheduler.threshold, scheduler.tick_interval, scheduler.send_timeout) == (60.0, 2.0, 3.0)
        assert scheduler.message == "water"
        assert scheduler.state is SchedulerState.IDLE

    def test_factory_uses_config(self) -> None:
        config = Config(
            discord_token=TOKEN,
            command_prefix="~",
            presence_source="guild",
            owner_ids=[9],
            reminder_threshold=120.0,
        )
        bot = HydrationBotFactory.create_bot(config)

        assert bot.command_prefix == "~"
        assert bot.presence_source == "guild"
        assert bot.event_handler.is_owner(9)
        assert bot.reminder_scheduler.threshold == 120.0

    def test_reminder_message_uses_command_prefix(self) -> None:
        bot = HydrationBot(token=TOKEN, command_prefix="~")
        assert "`~drate off`" in bot.reminder_scheduler.message
        assert "{prefix}" not in bot.reminder_scheduler.message

    def test_custom_reminder_message_prefix_placeholder(self) -> None:
        bot = HydrationBot(token=TOKEN, command_prefix="?", reminder_message="drink up, {prefix}drate off to stop")
        assert bot.reminder_scheduler.message == "drink up, ?drate off to stop"

    def test_status_snapshot(self, bot) -> None:
        bot.presence_registry.mark_present(3)
        bot.reminder_registry.opt_in(4, 0.0)

        status = bot.status_snapshot()

        assert status["present_users"] == 1
        assert status["reminder_subscribers"] == 1
        assert status["scheduler_state"] == "idle"
        assert status["shutting_down"] is False
        assert status["connected"] is False
        assert status["commands"] == ["drate", "quit"]


# ========================================================================
# GATEWAY EVENTS
# ========================================================================


class TestPresenceEvents:
    @pytest.mark.asyncio
    async def test_voice_join_and_leave(self, bot) -> None:
        member = _member(5)
        await bot.on_voice_state_update(member, _voice(None), _voice(MagicMock()))
        assert bot.presence_registry.is_present(5)

        await bot.on_voice_state_update(member, _voice(MagicMock()), _voice(None))
        assert not bot.presence_registry.is_present(5)

    @pytest.mark.asyncio
    async def test_voice_channel_switch_stays_present(self, bot) -> None:
        member = _member(5)
        await bot.on_voice_state_update(member, _voice(None), _voice(MagicMock()))
        await bot.on_voice_state_update(member, _voice(MagicMock()), _voice(MagicMock()))
        assert bot.presence_registry.is_present(5)

    @pytest.mark.asyncio
    async def test_bots_ignored(self, bot) -> None:
        await bot.on_voice_state_update(_member(5, is_bot=True), _voice(None), _voice(MagicMock()))
        assert bot.presence_registry.count() == 0

    @pytest.mark.asyncio
    async def test_member_events_ignored_in_voice_mode(self, bot) -> None:
        await bot.on_member_join(_member(5))
        assert bot.presence_registry.count() == 0

    @pytest.mark.asyncio
    async def test_guild_mode_member_events(self) -> None:
        bot = HydrationBot(token=TOKEN, presence_source="guild")
        await bot.on_member_join(_member(5))
        assert bot.presence_registry.is_present(5)

        await bot.on_voice_state_update(_member(6), _voice(None), _voice(MagicMock()))
        assert not bot.presence_registry.is_present(6)

        await bot.on_member_remove(_member(5))
        assert not bot.presence_registry.is_present(5)

    @pytest.mark.asyncio
    async def test_on_ready_sets_connected(self, bot) -> None:
        user = MagicMock()
        user.name = "hydration-bot"
        with patch.object(HydrationBot, "user", new=user):
            await bot.on_ready()
        assert bot.is_connected is True

        await bot.on_disconnect()
        assert bot.is_connected is False

        await bot.on_resumed()
        assert bot.is_connected is True

    @pytest.mark.asyncio
    async def test_voice_state_update_is_logged(self, bot) -> None:
        with capture_logs() as logs:
            await bot.on_voice_state_update(_member(5), _voice(None), _voice(MagicMock()))

        events = [entry for entry in logs if entry["event"] == "voice_state_update"]
        assert events == [
            {"event": "voice_state_update", "user_id": 5, "joined": True, "log_level": "debug"}
        ]

    @pytest.mark.asyncio
    async def test_command_not_found_is_quiet(self, bot) -> None:
        ctx = MagicMock()
        await bot.on_command_error(ctx, commands.CommandNotFound("nope"))
        await bot.on_command_error(ctx, commands.CommandError("broken"))


# ========================================================================
# LIFECYCLE
# ========================================================================


class TestSetupHook:
    @pytest.mark.asyncio
    async def test_registers_commands_and_starts_scheduler(self, bot) -> None:
        await bot.setup_hook()
        try:
            assert bot.get_command("drate") is not None
            assert bot.get_command("quit") is not None
            assert bot.reminder_scheduler.state is SchedulerState.RUNNING
        finally:
            bot.shutdown_coordinator.trigger()
            await bot.reminder_scheduler.join()

    @pytest.mark.asyncio
    async def test_only_hydration_commands_registered(self, bot) -> None:
        await bot.setup_hook()
        try:
            assert sorted(c.name for c in bot.commands) == ["drate", "quit"]
            assert bot.get_command("help") is None
        finally:
            bot.shutdown_coordinator.trigger()
            await bot.reminder_scheduler.join()

    @pytest.mark.asyncio
    async def test_scheduler_idle_until_setup_hook(self, bot) -> None:
        assert bot.reminder_scheduler.state is SchedulerState.IDLE

        await bot.setup_hook()
        try:
            assert bot.reminder_scheduler.state is SchedulerState.RUNNING
        finally:
            bot.shutdown_coordinator.trigger()
            await bot.reminder_scheduler.join()

    @pytest.mark.asyncio
    async def test_owner_resolved_from_application(self) -> None:
        bot = HydrationBot(token=TOKEN)
        info = MagicMock()
        info.team = None
        info.owner.id = 77

        with patch.object(bot, "application_info", AsyncMock(return_value=info)):
            await bot._resolve_owners()

        assert bot.event_handler.owner_ids == {77}

    @pytest.mark.asyncio
    async def test_owner_resolved_from_team(self) -> None:
        bot = HydrationBot(token=TOKEN)
        info = MagicMock()
        info.team.members = [MagicMock(id=1), MagicMock(id=2)]

        with patch.object(bot, "application_info", AsyncMock(return_value=info)):
            await bot._resolve_owners()

        assert bot.event_handler.owner_ids == {1, 2}

    @pytest.mark.asyncio
    async def test_application_info_failure_is_fatal(self) -> None:
        bot = HydrationBot(token=TOKEN)
        response = MagicMock(status=500, reason="error")
        error = discord.errors.HTTPException(response, "down")

        with patch.object(bot, "application_info", AsyncMock(side_effect=error)):
            with pytest.raises(ConfigurationError):
                await bot._resolve_owners()


class TestConnection:
    @pytest.mark.asyncio
    async def test_login_failure_is_configuration_error(self, bot) -> None:
        with patch.object(bot, "login", AsyncMock(side_effect=discord.errors.LoginFailure("bad"))):
            with pytest.raises(ConfigurationError):
                await bot.connect_bot()
        assert bot.connection_task is None

    @pytest.mark.asyncio
    async def test_connect_starts_gateway_task(self, bot) -> None:
        gate = asyncio.Event()

        async def fake_connect():
            await gate.wait()

        with patch.object(bot, "login", AsyncMock()), patch.object(bot, "connect", fake_connect):
            await bot.connect_bot()
            assert bot.connection_task is not None
            gate.set()
            await bot.connection_task

    @pytest.mark.asyncio
    async def test_stop_all_closes_client(self, bot) -> None:
        with patch.object(bot, "close", AsyncMock()) as close, \
                patch.object(bot, "is_closed", return_value=False):
            await bot.stop_all()
        close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_disconnect_drains_scheduler(self, bot) -> None:
        with patch.object(bot, "close", AsyncMock()) as close, \
                patch.object(bot, "is_closed", return_value=False):
            await bot.reminder_scheduler.start()
            await asyncio.sleep(0.03)

            await bot.disconnect_bot()

        assert bot.shutdown_coordinator.is_stopped
        assert bot.reminder_scheduler.state is SchedulerState.STOPPED
        assert close.await_count >= 1
        assert bot.is_connected is False

    @pytest.mark.asyncio
    async def test_quit_command_end_to_end(self, bot) -> None:
        ctx = MagicMock()
        ctx.author.id = 1
        ctx.send = AsyncMock()

        with patch.object(bot, "close", AsyncMock()) as close, \
                patch.object(bot, "is_closed", return_value=False):
            await bot.setup_hook()
            await bot.get_command("quit").callback(ctx)
            await asyncio.wait_for(bot.reminder_scheduler.join(), timeout=1.0)

        ctx.send.assert_awaited_once_with("Shutting down!")
        close.assert_awaited_once()
        assert bot.reminder_scheduler.state is SchedulerState.STOPPED

    @pytest.mark.asyncio
    async def test_non_owner_quit_keeps_scheduler_ticking(self, bot) -> None:
        ctx = MagicMock()
        ctx.author.id = 999
        ctx.send = AsyncMock()

        with patch.object(bot, "close", AsyncMock()) as close, \
                patch.object(bot, "is_closed", return_value=False):
            await bot.setup_hook()
            try:
                await asyncio.sleep(0.03)
                await bot.get_command("quit").callback(ctx)
                ticks_after_quit = bot.reminder_scheduler.ticks

                await asyncio.sleep(0.1)

                assert bot.reminder_scheduler.ticks > ticks_after_quit
                assert bot.reminder_scheduler.state is SchedulerState.RUNNING
                assert not bot.shutdown_coordinator.is_stopped
                ctx.send.assert_not_awaited()
                close.assert_not_awaited()
            finally:
                bot.shutdown_coordinator.trigger()
                await bot.reminder_scheduler.join()

    @pytest.mark.asyncio
    async def test_open_private_channel_delegates(self, bot) -> None:
        sentinel = MagicMock()
        with patch("discord_bot.open_direct_channel", AsyncMock(return_value=sentinel)) as opener:
            assert await bot.open_private_channel(5) is sentinel
        opener.assert_awaited_once_with(bot, 5)
