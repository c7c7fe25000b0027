"""Discord bot module - presence tracking, reminders and shutdown components."""

from .presence import PresenceRegistry
from .reminders import ReminderRegistry
from .reminder_scheduler import ReminderScheduler, SchedulerState
from .shutdown import ShutdownCoordinator
from .event_handler import EventHandler, Command

__all__ = [
    "PresenceRegistry",
    "ReminderRegistry",
    "ReminderScheduler",
    "SchedulerState",
    "ShutdownCoordinator",
    "EventHandler",
    "Command",
]
