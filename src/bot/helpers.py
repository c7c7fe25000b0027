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

"""Helper utilities for Discord bot operations.

Includes the direct-message channel adapter used by the reminder scheduler
and the OAuth2 invite URL builder.
"""

from typing import Any

import discord
import structlog

from .errors import ChannelError, SendError

logger = structlog.get_logger()

# View Channels, Send Messages, Send TTS Messages, Mention Everyone
BOT_PERMISSIONS = 138240


class DirectMessageChannel:
    """Private channel to a single user with read-aloud (TTS) support."""

    def __init__(self, user_id: int, channel: Any) -> None:
        """
        Initialize direct message channel.

        Args:
            user_id: Discord user ID of the recipient
            channel: discord.DMChannel (or anything with ``async send``)
        """
        self.user_id = user_id
        self.channel = channel

    async def send(self, text: str, read_aloud: bool = False) -> None:
        """
        Send a message on the channel.

        Raises:
            SendError: Discord rejected or failed the send
        """
        try:
            await self.channel.send(text, tts=read_aloud)
        except discord.errors.Forbidden as e:
            raise SendError(self.user_id, f"DMs closed: {e}") from e
        except discord.errors.HTTPException as e:
            raise SendError(self.user_id, f"Send failed: {e}") from e


async def open_direct_channel(client: Any, user_id: int) -> DirectMessageChannel:
    """
    Resolve a user and open (or reuse) a DM channel to them.

    Args:
        client: discord.Client instance
        user_id: Discord user ID

    Returns:
        DirectMessageChannel for the user

    Raises:
        ChannelError: User unknown or channel could not be created
    """
    try:
        user = client.get_user(user_id)
        if user is None:
            user = await client.fetch_user(user_id)
        dm_channel = user.dm_channel or await user.create_dm()
    except discord.errors.NotFound as e:
        raise ChannelError(user_id, f"Unknown user: {e}") from e
    except discord.errors.HTTPException as e:
        raise ChannelError(user_id, f"Could not open DM channel: {e}") from e

    logger.debug("dm_channel_opened", user_id=user_id, channel_id=dm_channel.id)
    return DirectMessageChannel(user_id, dm_channel)


def build_invite_url(client_id: str, permissions: int = BOT_PERMISSIONS) -> str:
    """
    Build the OAuth2 authorization URL used to add the bot to a guild.

    Args:
        client_id: Discord application (client) ID
        permissions: Permission bitmask requested for the bot

    Returns:
        Authorization URL
    """
    return discord.utils.oauth_url(
        client_id,
        permissions=discord.Permissions(permissions),
        scopes=("bot",),
    )
