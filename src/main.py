"""
Hydration Bot - Main Entry Point

Always-connected Discord bot that tracks who is present and sends opt-in
hydration reminders.

- Configuration from .env / environment / Docker secrets / bot.yml
- Reminder scheduler runs as a background task inside the bot
- `quit` (owners only) or SIGINT/SIGTERM stops gateway and scheduler together
- Health check endpoint for container orchestration
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import Optional, Any

import structlog

try:
    from .config import Config, load_config  # type: ignore
    from .health import HealthCheckServer  # type: ignore
    from .discord_bot import HydrationBot, HydrationBotFactory  # type: ignore
    from .bot.errors import ConfigurationError  # type: ignore
    from .bot.helpers import build_invite_url  # type: ignore
except ImportError:
    from config import Config, load_config  # type: ignore
    from health import HealthCheckServer  # type: ignore
    from discord_bot import HydrationBot, HydrationBotFactory  # type: ignore
    from bot.errors import ConfigurationError  # type: ignore
    from bot.helpers import build_invite_url  # type: ignore

logger = structlog.get_logger()


def setup_logging(log_level: str, log_format: str) -> None:
    """
    Configure structured logging.

    Args:
        log_level: Logging level (debug, info, warning, error, critical)
        log_format: Output format ("json" or "console")
    """
    level_map: dict[str, int] = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
        "critical": logging.CRITICAL,
    }

    min_level = level_map.get(log_level.lower(), logging.INFO)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if log_format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(min_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logger.info("logging_configured", level=log_level, format=log_format)


class Application:
    """Main application orchestrator."""

    def __init__(self) -> None:
        """Initialize application components."""
        self.config: Optional[Config] = None
        self.health_server: Optional[HealthCheckServer] = None
        self.bot: Optional[HydrationBot] = None
        self._stop_requested = False

    async def setup(self) -> None:
        """Load configuration and initialize core components."""
        logger.info("application_starting")

        try:
            self.config = load_config()
        except ConfigurationError as e:
            logger.error("config_load_failed", error=str(e))
            raise

        setup_logging(self.config.log_level, self.config.log_format)

        if self.config.client_id:
            logger.info(
                "bot_authentication_url",
                url=build_invite_url(self.config.client_id),
            )

        self.bot = HydrationBotFactory.create_bot(self.config)

        self.health_server = HealthCheckServer(
            host=self.config.health_check_host,
            port=self.config.health_check_port,
            status_provider=self.bot.status_snapshot,
        )

        logger.info(
            "application_configured",
            health_port=self.config.health_check_port,
            presence_source=self.config.presence_source,
        )

    async def start(self) -> None:
        """Start all application components."""
        assert self.bot is not None, "Bot not initialized"
        assert self.health_server is not None, "Health server not initialized"

        await self.health_server.start()
        await self.bot.connect_bot()

        logger.info("application_running")

    async def wait_for_shutdown(self) -> None:
        """
        Block until shutdown is requested or the gateway connection ends.

        Raises:
            Exception: Whatever ended the gateway connection, if it failed
        """
        assert self.bot is not None

        shutdown_wait = asyncio.create_task(self.bot.shutdown_coordinator.wait())
        waiters = {shutdown_wait}
        connection_task = self.bot.connection_task
        if connection_task is not None:
            waiters.add(connection_task)

        try:
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not shutdown_wait.done():
                shutdown_wait.cancel()

        if self.bot.shutdown_coordinator.is_stopped:
            return

        if connection_task is not None and connection_task.done():
            if connection_task.cancelled():
                logger.warning("gateway_connection_cancelled")
                return
            error = connection_task.exception()
            if error is not None:
                logger.error("gateway_connection_failed", error=str(error))
                raise error
            logger.warning("gateway_connection_closed")

    async def stop(self) -> None:
        """Gracefully stop all components."""
        logger.info("application_stopping")

        # Discord bot (requests shutdown, joins the reminder scheduler)
        if self.bot is not None:
            try:
                await self.bot.disconnect_bot()
            except Exception as e:
                logger.error("discord_bot_stop_failed", error=str(e), exc_info=True)

            logger.debug("discord_disconnected")

        # Health server
        if self.health_server is not None:
            try:
                await self.health_server.stop()
            except Exception as e:
                logger.warning("health_server_stop_failed", error=str(e))

            logger.debug("health_server_stopped")

        logger.info("application_stopped")

    def request_stop(self) -> None:
        """Flag shutdown without awaiting anything (signal-handler safe)."""
        self._stop_requested = True
        if self.bot is not None:
            self.bot.shutdown_coordinator.trigger()

    async def run(self) -> None:
        """Main application run loop."""
        try:
            await self.setup()
            if self._stop_requested:
                # Signal arrived while the bot was still being built
                self.request_stop()
            await self.start()
            await self.wait_for_shutdown()
        except KeyboardInterrupt:
            logger.info("received_keyboard_interrupt")
        except Exception as e:
            logger.error("application_error", error=str(e), exc_info=True)
            raise
        finally:
            await self.stop()


async def main() -> None:
    """Main async entry point."""
    app = Application()

    def _signal_handler(signum: int, frame: Any) -> None:
        logger.info("received_signal", signal=signal.Signals(signum).name)
        app.request_stop()

    try:
        signal.signal(signal.SIGINT, _signal_handler)
        signal.signal(signal.SIGTERM, _signal_handler)
    except (ValueError, OSError) as e:
        logger.debug("signal_handlers_unavailable", error=str(e))

    try:
        await app.run()
    except Exception as e:
        logger.error("fatal_error", error=str(e), exc_info=True)
        sys.exit(1)


def cli() -> None:
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nShutdown complete.")
    sys.exit(0)


if __name__ == "__main__":
    cli()
