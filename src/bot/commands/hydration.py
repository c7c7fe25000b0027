"""Text command registration.

Prefix parsing belongs to discord.ext.commands; every command body is a
thin adapter that forwards to EventHandler.on_command with ctx.send as the
reply channel.
"""

from typing import Any, List, Optional, Protocol, runtime_checkable

from discord.ext import commands
import structlog

from ..event_handler import Command

logger = structlog.get_logger()


@runtime_checkable
class HydrationCommandHost(Protocol):
    """Protocol defining expected bot attributes for hydration commands."""

    event_handler: Any

    def add_command(self, command: commands.Command) -> None:
        ...


def register_hydration_commands(bot: HydrationCommandHost) -> List[commands.Command]:
    """
    Register the drate and quit text commands on the bot.

    Args:
        bot: Bot exposing ``event_handler`` and ``add_command``

    Returns:
        Registered Command objects, in registration order
    """

    @commands.command(name=Command.DRATE.value, help="Toggle hydration reminders: drate [on|off]")
    async def drate_command(ctx: commands.Context, arg: Optional[str] = None) -> None:
        await bot.event_handler.on_command(
            Command.DRATE,
            ctx.author.id,
            arg,
            respond=ctx.send,
        )

    @commands.command(name=Command.QUIT.value, help="Shut the bot down (owners only)")
    async def quit_command(ctx: commands.Context) -> None:
        await bot.event_handler.on_command(
            Command.QUIT,
            ctx.author.id,
            respond=ctx.send,
        )

    registered = [drate_command, quit_command]
    for command in registered:
        bot.add_command(command)

    logger.info("text_commands_registered", commands=[c.name for c in registered])
    return registered
