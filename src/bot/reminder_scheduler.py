"""Background reminder sweep loop."""

import asyncio
import time
from enum import Enum
from typing import Any, Callable, Optional

import structlog

from .errors import TransientDeliveryError
from .reminders import ReminderRegistry, UserId
from .shutdown import ShutdownCoordinator

logger = structlog.get_logger()

DEFAULT_TICK_INTERVAL = 1.0
DEFAULT_THRESHOLD = 30 * 60.0
DEFAULT_SEND_TIMEOUT = 10.0
DEFAULT_REMINDER_TEMPLATE = "💧 Time for a drink of water! (`{prefix}drate off` to stop these reminders)"


def render_reminder_message(template: str, command_prefix: str) -> str:
    """Fill the ``{prefix}`` placeholder with the bot's command prefix."""
    return template.replace("{prefix}", command_prefix)


DEFAULT_REMINDER_MESSAGE = render_reminder_message(DEFAULT_REMINDER_TEMPLATE, "!")


class SchedulerState(Enum):
    """Lifecycle of the reminder loop."""

    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class ReminderScheduler:
    """Periodically sweep the reminder registry and DM users who are due."""

    def __init__(
        self,
        registry: ReminderRegistry,
        messenger: Any,
        shutdown: ShutdownCoordinator,
        *,
        tick_interval: float = DEFAULT_TICK_INTERVAL,
        threshold: float = DEFAULT_THRESHOLD,
        send_timeout: float = DEFAULT_SEND_TIMEOUT,
        message: str = DEFAULT_REMINDER_MESSAGE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize reminder scheduler.

        Args:
            registry: Opt-in registry to sweep
            messenger: Object with ``async open_private_channel(user_id)``
                returning a channel with ``async send(text, read_aloud)``
            shutdown: Coordinator whose flag ends the loop
            tick_interval: Seconds between sweeps
            threshold: Seconds between reminders for one user
            send_timeout: Upper bound in seconds for one user's delivery
            message: Reminder text
            clock: Monotonic time source
        """
        self.registry = registry
        self.messenger = messenger
        self.shutdown = shutdown
        self.tick_interval = tick_interval
        self.threshold = threshold
        self.send_timeout = send_timeout
        self.message = message
        self.clock = clock
        self.state = SchedulerState.IDLE
        self.ticks = 0
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        """Start the sweep loop if it is not already running."""
        if self._task is None:
            self.state = SchedulerState.RUNNING
            self._task = asyncio.create_task(self._run())
            logger.info(
                "reminder_scheduler_started",
                tick_interval=self.tick_interval,
                threshold=self.threshold,
            )
        else:
            logger.debug("reminder_scheduler_already_started")

    async def join(self) -> None:
        """Wait until the loop has fully exited."""
        if self._task is None:
            return
        await self._task

    @property
    def is_running(self) -> bool:
        return self.state is SchedulerState.RUNNING

    async def _run(self) -> None:
        try:
            while True:
                if self.shutdown.is_stopped:
                    self.state = SchedulerState.STOPPING
                    break

                await self.tick()

                if await self.shutdown.sleep(self.tick_interval):
                    self.state = SchedulerState.STOPPING
                    break
        except asyncio.CancelledError:
            logger.info("reminder_scheduler_cancelled")
            raise
        finally:
            self.state = SchedulerState.STOPPED
            logger.info("reminder_scheduler_stopped", ticks=self.ticks)

    async def tick(self) -> int:
        """
        Run one sweep and deliver reminders.

        Returns:
            Number of reminders delivered successfully
        """
        self.ticks += 1
        due = self.registry.sweep(self.clock(), self.threshold)

        delivered = 0
        for user_id in due:
            if await self._deliver(user_id):
                delivered += 1

        if due:
            logger.info(
                "reminder_sweep_complete",
                due=len(due),
                delivered=delivered,
                failed=len(due) - delivered,
            )
        return delivered

    async def _deliver(self, user_id: UserId) -> bool:
        """Deliver one reminder. Failures are logged and contained."""
        try:
            await asyncio.wait_for(self._send_reminder(user_id), timeout=self.send_timeout)
            logger.debug("reminder_sent", user_id=user_id)
            return True
        except TransientDeliveryError as e:
            logger.warning(
                "reminder_delivery_failed",
                user_id=user_id,
                error_type=type(e).__name__,
                error=str(e),
            )
        except asyncio.TimeoutError:
            logger.warning(
                "reminder_delivery_timeout",
                user_id=user_id,
                timeout=self.send_timeout,
            )
        except Exception as e:
            logger.error(
                "reminder_delivery_unexpected_error",
                user_id=user_id,
                error=str(e),
                exc_info=True,
            )
        return False

    async def _send_reminder(self, user_id: UserId) -> None:
        channel = await self.messenger.open_private_channel(user_id)
        await channel.send(self.message, read_aloud=True)
