"""Discord text command registration.

Exports register_hydration_commands() which registers the drate and quit
commands on the bot.
"""

from .hydration import register_hydration_commands

__all__ = ["register_hydration_commands"]
