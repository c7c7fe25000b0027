"""Process-wide shutdown flag shared by the gateway and the reminder scheduler."""

import asyncio
import threading
from typing import Any, Optional

import structlog

logger = structlog.get_logger()


class ShutdownCoordinator:
    """
    One-way running -> stopped flag with a single gateway stop.

    The gateway is any object exposing ``async stop_all()``; for the
    running bot that is the Discord client itself.
    """

    def __init__(self, gateway: Optional[Any] = None) -> None:
        """
        Initialize shutdown coordinator.

        Args:
            gateway: Object with ``async stop_all()`` (may be attached later)
        """
        self.gateway = gateway
        self._lock = threading.RLock()
        self._stopped = False
        self._gateway_stop_requested = False
        self._event = asyncio.Event()

    def attach_gateway(self, gateway: Any) -> None:
        self.gateway = gateway

    @property
    def is_stopped(self) -> bool:
        return self._stopped

    @property
    def is_running(self) -> bool:
        return not self._stopped

    def trigger(self) -> bool:
        """
        Flip the flag to stopped and wake every waiter.

        Safe to call from a signal handler. Does not touch the gateway.

        Returns:
            True if this call performed the transition, False if already stopped
        """
        with self._lock:
            if self._stopped:
                return False
            self._stopped = True
        self._event.set()
        logger.info("shutdown_flag_set")
        return True

    async def request_shutdown(self) -> None:
        """
        Stop the scheduler and the gateway.

        The flag is flipped before the gateway is stopped, so once this
        returns no new scheduler tick can begin. Repeated calls are no-ops.
        """
        self.trigger()

        with self._lock:
            if self._gateway_stop_requested or self.gateway is None:
                return
            self._gateway_stop_requested = True

        logger.info("gateway_stop_requested")
        try:
            await self.gateway.stop_all()
        except Exception as e:
            logger.error("gateway_stop_failed", error=str(e), exc_info=True)

    async def wait(self) -> None:
        """Block until shutdown has been requested."""
        await self._event.wait()

    async def sleep(self, seconds: float) -> bool:
        """
        Sleep for up to ``seconds``, waking early on shutdown.

        Returns:
            True if shutdown was requested, False if the full interval elapsed
        """
        if self._stopped:
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True
