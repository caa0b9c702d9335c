"""
Base AsyncService class for pipeline services.

Provides lifecycle management, HTTP health and metrics endpoints,
stream consumer supervision and graceful shutdown.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional, List, Tuple

from aiohttp import web
import structlog

from dexpipe.utils.logging import setup_logging
from .config import ServiceConfig
from .consumer import BatchHandler, StreamConsumer
from .graceful_shutdown import GracefulShutdownManager, ShutdownReason
from .health import HealthChecker
from .metrics import MetricsCollector


logger = structlog.get_logger(__name__)


class AsyncService(ABC):
    """
    Base class for pipeline services.

    Provides common functionality:
    - HTTP health and metrics endpoints
    - Stream consumers started after the service hook and stopped first
    - Prioritized shutdown handlers (subclasses register writer flushes)
    """

    def __init__(self, config: ServiceConfig):
        self.config = config
        setup_logging(
            config.service_name,
            log_level=config.observability.log_level,
            format_type=config.observability.log_format,
        )
        self.logger = structlog.get_logger(self.config.service_name)

        # Web components
        self.app: Optional[web.Application] = None
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None

        # Framework components
        self.health_checker = HealthChecker(self.config)
        self.metrics = MetricsCollector(self.config.service_name)
        self.shutdown_manager = GracefulShutdownManager(self.config.shutdown_timeout)

        self.consumers: List[Tuple[StreamConsumer, BatchHandler]] = []

        self.stop_event = asyncio.Event()
        self.metrics_task: Optional[asyncio.Task] = None
        self._stopped = False

    async def startup(self) -> None:
        """Initialize service components."""
        self.logger.info("Starting service", config=self.config.to_dict())

        # Lower priorities run first: stop reading before flushing
        self.shutdown_manager.add_handler("http-server", self._stop_http, timeout=5.0, priority=0)
        self.shutdown_manager.add_handler("stream-consumers", self._stop_consumers, timeout=10.0, priority=10)
        self.shutdown_manager.add_handler(
            "service-hook", self._shutdown_hook, timeout=self.config.shutdown_timeout, priority=20, critical=True
        )

        await self._startup_hook()

        for consumer, handler in self.consumers:
            await consumer.start(handler)

        self.metrics_task = asyncio.create_task(self._update_metrics_periodically())

        if self.config.observability.http_enabled:
            self.app = web.Application()
            self._setup_routes()
            self.runner = web.AppRunner(self.app)
            await self.runner.setup()
            self.site = web.TCPSite(
                self.runner,
                host="0.0.0.0",
                port=self.config.observability.health_port
            )
            await self.site.start()

        self.logger.info(
            "Service started",
            consumers=len(self.consumers),
            port=self.config.observability.health_port if self.site else None,
        )

    async def shutdown(self, reason: ShutdownReason = ShutdownReason.MANUAL) -> bool:
        """Gracefully shutdown service. Safe to call more than once."""
        if self._stopped:
            return bool(self.shutdown_manager.succeeded)
        self._stopped = True

        self.logger.info("Shutting down service", reason=reason.value)
        succeeded = await self.shutdown_manager.shutdown(reason)

        if self.metrics_task:
            self.metrics_task.cancel()
            try:
                await self.metrics_task
            except asyncio.CancelledError:
                pass

        self.stop_event.set()
        self.logger.info("Service shutdown complete", succeeded=succeeded)
        return succeeded

    def request_stop(self) -> None:
        """Ask ``run`` to leave its wait and shut down."""
        self.stop_event.set()

    def add_consumer(self, consumer: StreamConsumer, handler: BatchHandler) -> None:
        """Register a stream consumer and its batch handler."""
        self.consumers.append((consumer, handler))

    async def _stop_consumers(self) -> None:
        await asyncio.gather(*(consumer.stop() for consumer, _ in self.consumers))

    async def _stop_http(self) -> None:
        if self.site:
            await self.site.stop()
        if self.runner:
            await self.runner.cleanup()

    def _setup_routes(self) -> None:
        """Setup HTTP routes."""
        self.app.router.add_get("/health", self._health_handler)
        self.app.router.add_get("/health/ready", self._readiness_handler)
        self.app.router.add_get("/health/live", self._liveness_handler)
        self.app.router.add_get("/metrics", self._metrics_handler)

    async def _health_handler(self, request: web.Request) -> web.Response:
        health_status = await self.health_checker.check_health()
        status_code = 200 if health_status["healthy"] else 503
        return web.json_response(health_status, status=status_code)

    async def _readiness_handler(self, request: web.Request) -> web.Response:
        ready_status = await self.health_checker.check_readiness()
        status_code = 200 if ready_status["ready"] else 503
        return web.json_response(ready_status, status=status_code)

    async def _liveness_handler(self, request: web.Request) -> web.Response:
        return web.json_response({
            "alive": True,
            "consumers": [consumer.get_metrics() for consumer, _ in self.consumers],
        })

    async def _metrics_handler(self, request: web.Request) -> web.Response:
        # prometheus content type carries parameters, so set the header directly
        return web.Response(
            body=self.metrics.get_metrics(),
            headers={"Content-Type": self.metrics.get_content_type()},
        )

    @abstractmethod
    async def _startup_hook(self) -> None:
        """Connect clients and register consumers. Override in subclasses."""

    @abstractmethod
    async def _shutdown_hook(self) -> None:
        """Flush buffers and close clients. Override in subclasses."""

    async def _update_metrics_periodically(self) -> None:
        """Update service info and health gauges."""
        while True:
            try:
                self.metrics.update_service_info(
                    version=getattr(self.config, "version", "0.1.0"),
                    environment=self.config.environment,
                )
                health_status = await self.health_checker.check_health()
                self.metrics.set_health_status(health_status["healthy"])
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error("Error updating metrics", error=str(e))
                await asyncio.sleep(30)

    async def run(self) -> None:
        """Run the service until SIGINT/SIGTERM or ``request_stop``."""
        self.shutdown_manager.setup_signal_handlers(on_signal=self.request_stop)
        reason = ShutdownReason.MANUAL
        try:
            await self.startup()
            await self.stop_event.wait()
            reason = self.shutdown_manager.shutdown_reason or ShutdownReason.MANUAL
        except Exception as e:
            reason = ShutdownReason.ERROR
            self.logger.error("Service error", error=str(e), exc_info=True)
            raise
        finally:
            await self.shutdown(reason)
