"""Graceful shutdown handlers for pipeline services."""

import asyncio
import inspect
import signal
import time
from typing import List, Callable, Optional, Dict
from dataclasses import dataclass
from enum import Enum

import structlog

logger = structlog.get_logger()


class ShutdownReason(str, Enum):
    """Shutdown reason enumeration."""
    SIGNAL = "signal"
    MANUAL = "manual"
    ERROR = "error"


@dataclass
class ShutdownHandler:
    """Shutdown handler configuration."""
    name: str
    handler: Callable
    timeout: float = 30.0
    priority: int = 0  # Lower numbers run first
    critical: bool = False  # If True, shutdown fails if this handler fails


class GracefulShutdownManager:
    """
    Runs registered shutdown handlers in priority order.

    Pipeline services register, in order: stop consuming, flush buffered
    rows (critical), close storage clients.
    """

    def __init__(self, shutdown_timeout: float = 60.0):
        self.shutdown_timeout = shutdown_timeout
        self.handlers: List[ShutdownHandler] = []
        self.is_shutting_down = False
        self.shutdown_reason: Optional[ShutdownReason] = None
        self.succeeded: Optional[bool] = None
        self.handler_durations: Dict[str, float] = {}
        self.logger = structlog.get_logger("graceful-shutdown")
        self._shutdown_event = asyncio.Event()
        self._signal_callback: Optional[Callable[[], None]] = None

    def add_handler(self, name: str, handler: Callable, timeout: float = 30.0,
                    priority: int = 0, critical: bool = False) -> None:
        """Add a shutdown handler."""
        shutdown_handler = ShutdownHandler(
            name=name,
            handler=handler,
            timeout=timeout,
            priority=priority,
            critical=critical
        )

        self.handlers.append(shutdown_handler)
        # Stable sort keeps registration order within a priority
        self.handlers.sort(key=lambda h: h.priority)

        self.logger.debug("Shutdown handler added",
                          name=name,
                          timeout=timeout,
                          priority=priority,
                          critical=critical)

    def remove_handler(self, name: str) -> None:
        """Remove a shutdown handler."""
        self.handlers = [h for h in self.handlers if h.name != name]

    def setup_signal_handlers(self, on_signal: Optional[Callable[[], None]] = None) -> None:
        """
        Route SIGINT and SIGTERM through the running event loop.

        ``on_signal`` replaces the default action of starting the shutdown
        sequence directly.
        """
        loop = asyncio.get_running_loop()
        self._signal_callback = on_signal
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._signal_handler, sig)
            except (NotImplementedError, RuntimeError) as e:
                self.logger.warning("Signal handler not installed", signal=sig.name, error=str(e))

        self.logger.info("Signal handlers setup completed")

    def _signal_handler(self, sig: signal.Signals) -> None:
        self.logger.info("Received shutdown signal", signal=sig.name)
        if self.is_shutting_down:
            return

        self.shutdown_reason = ShutdownReason.SIGNAL
        self._shutdown_event.set()
        if self._signal_callback:
            self._signal_callback()
        else:
            asyncio.get_running_loop().create_task(self.shutdown(ShutdownReason.SIGNAL))

    async def shutdown(self, reason: ShutdownReason = ShutdownReason.MANUAL) -> bool:
        """Run every handler once. Returns False if a critical handler failed."""
        if self.is_shutting_down:
            self.logger.warning("Shutdown already in progress")
            return bool(self.succeeded)

        self.is_shutting_down = True
        self.shutdown_reason = reason
        self._shutdown_event.set()

        self.logger.info("Starting graceful shutdown", reason=reason.value)
        start = time.monotonic()

        try:
            self.succeeded = await asyncio.wait_for(
                self._execute_shutdown_handlers(), timeout=self.shutdown_timeout
            )
        except asyncio.TimeoutError:
            self.logger.error("Graceful shutdown timed out", timeout=self.shutdown_timeout)
            self.succeeded = False

        duration = time.monotonic() - start
        if self.succeeded:
            self.logger.info("Graceful shutdown completed", duration=round(duration, 3))
        else:
            self.logger.error("Graceful shutdown completed with errors", duration=round(duration, 3))
        return self.succeeded

    async def _execute_shutdown_handlers(self) -> bool:
        success = True

        for handler in self.handlers:
            started = time.monotonic()
            try:
                self.logger.info("Executing shutdown handler", name=handler.name)
                await asyncio.wait_for(self._execute_handler(handler), timeout=handler.timeout)

            except asyncio.TimeoutError:
                self.logger.error("Shutdown handler timeout",
                                  name=handler.name,
                                  timeout=handler.timeout)
                if handler.critical:
                    success = False

            except Exception as e:
                self.logger.error("Shutdown handler failed",
                                  name=handler.name,
                                  error=str(e))
                if handler.critical:
                    success = False

            finally:
                self.handler_durations[handler.name] = time.monotonic() - started

        return success

    @staticmethod
    async def _execute_handler(handler: ShutdownHandler) -> None:
        result = handler.handler()
        if inspect.isawaitable(result):
            await result

    async def wait_for_shutdown(self) -> None:
        """Wait until shutdown is requested."""
        await self._shutdown_event.wait()

    def is_shutdown_requested(self) -> bool:
        return self._shutdown_event.is_set()
