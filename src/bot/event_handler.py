"""Gateway events and command invocations routed into the registries."""

import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Set

import structlog

from .errors import AuthorizationError
from .presence import PresenceRegistry, UserId
from .reminders import ReminderRegistry
from .shutdown import ShutdownCoordinator

logger = structlog.get_logger()

Responder = Callable[[str], Awaitable[Any]]

DRATE_USAGE = "Unknown argument. Usage: `!drate [on|off]`"
SHUTDOWN_REPLY = "Shutting down!"


class Command(str, Enum):
    """Supported text commands."""

    DRATE = "drate"
    QUIT = "quit"


class EventHandler:
    """Single entry point from the gateway into the presence and reminder state."""

    def __init__(
        self,
        presence: PresenceRegistry,
        reminders: ReminderRegistry,
        shutdown: ShutdownCoordinator,
        owner_ids: Optional[Iterable[UserId]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize event handler.

        Args:
            presence: Registry of present users
            reminders: Registry of opted-in users
            shutdown: Coordinator used by the quit command
            owner_ids: Users allowed to run quit (may be set later)
            clock: Monotonic time source used for opt-in stamps
        """
        self.presence = presence
        self.reminders = reminders
        self.shutdown = shutdown
        self.owner_ids: Set[UserId] = set(owner_ids or ())
        self.clock = clock
        self._handlers: Dict[Command, Callable[..., Awaitable[Optional[str]]]] = {
            Command.DRATE: self._handle_drate,
            Command.QUIT: self._handle_quit,
        }

    def set_owners(self, owner_ids: Iterable[UserId]) -> None:
        self.owner_ids = set(owner_ids)
        logger.info("owners_configured", owner_count=len(self.owner_ids))

    def is_owner(self, user_id: UserId) -> bool:
        return user_id in self.owner_ids

    # ========================================================================
    # Gateway events
    # ========================================================================

    def on_connected(self, name: str) -> None:
        logger.info("gateway_connected", user=name)

    def on_resumed(self) -> None:
        logger.info("gateway_resumed")

    def on_presence_changed(self, user_id: UserId, joined: bool) -> None:
        if joined:
            self.presence.mark_present(user_id)
        else:
            self.presence.mark_absent(user_id)

    # ========================================================================
    # Commands
    # ========================================================================

    async def on_command(
        self,
        command: Command,
        user_id: UserId,
        arg: Optional[str] = None,
        respond: Optional[Responder] = None,
    ) -> Optional[str]:
        """
        Run a command and send its reply.

        Args:
            command: Command to run (a Command or its name)
            user_id: Invoking user
            arg: Optional command argument
            respond: Coroutine function that delivers the reply text

        Returns:
            The reply that was sent, or None when the command was rejected
        """
        command = Command(command)
        handler = self._handlers[command]
        logger.debug("command_invoked", command=command.value, user_id=user_id, arg=arg)

        try:
            return await handler(user_id, arg, respond)
        except AuthorizationError as e:
            logger.warning(
                "command_not_authorized",
                command=e.command,
                user_id=e.user_id,
            )
            return None

    async def _handle_drate(
        self, user_id: UserId, arg: Optional[str], respond: Optional[Responder]
    ) -> str:
        if arg is None or arg == "on":
            reply = self.reminders.opt_in(user_id, self.clock())
        elif arg == "off":
            reply = self.reminders.opt_out(user_id)
        else:
            reply = DRATE_USAGE

        if respond is not None:
            await respond(reply)
        return reply

    async def _handle_quit(
        self, user_id: UserId, arg: Optional[str], respond: Optional[Responder]
    ) -> str:
        if not self.is_owner(user_id):
            raise AuthorizationError(user_id, Command.QUIT.value)

        logger.info("shutdown_requested_by_owner", user_id=user_id)
        # Reply first: the gateway is closed by request_shutdown().
        if respond is not None:
            try:
                await respond(SHUTDOWN_REPLY)
            except Exception as e:
                logger.warning("shutdown_reply_failed", error=str(e))
        await self.shutdown.request_shutdown()
        return SHUTDOWN_REPLY
