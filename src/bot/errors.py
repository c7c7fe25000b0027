"""Exception types raised across the hydration bot."""


class HydrationBotError(Exception):
    """Base class for all hydration bot errors."""


class TransientDeliveryError(HydrationBotError):
    """A reminder could not be delivered to one user. Never fatal."""

    def __init__(self, user_id: int, message: str) -> None:
        super().__init__(message)
        self.user_id = user_id


class ChannelError(TransientDeliveryError):
    """Opening a private channel to a user failed."""


class SendError(TransientDeliveryError):
    """Sending a message on an open private channel failed."""


class AuthorizationError(HydrationBotError):
    """A restricted command was invoked by someone who is not an owner."""

    def __init__(self, user_id: int, command: str) -> None:
        super().__init__(f"User {user_id} is not allowed to run '{command}'")
        self.user_id = user_id
        self.command = command


class ConfigurationError(HydrationBotError, ValueError):
    """Configuration is missing or invalid. Fatal at startup."""
