"""
Core framework components for stream-driven pipeline services.

Provides the Redis Streams consumer and producer, JSON event dispatch,
and the service base class with health, metrics and shutdown handling.
"""

from .background import BackgroundTaskPool
from .config import ServiceConfig
from .consumer import ConsumerConfig, StreamAcknowledger, StreamConsumer, StreamRecord
from .dispatcher import EventHandler, JsonEventDispatcher
from .graceful_shutdown import GracefulShutdownManager, ShutdownReason
from .health import HealthCheck, HealthChecker
from .metrics import MetricsCollector
from .producer import StreamProducer
from .service import AsyncService

__all__ = [
    "AsyncService",
    "BackgroundTaskPool",
    "ConsumerConfig",
    "EventHandler",
    "GracefulShutdownManager",
    "HealthCheck",
    "HealthChecker",
    "JsonEventDispatcher",
    "MetricsCollector",
    "ServiceConfig",
    "ShutdownReason",
    "StreamAcknowledger",
    "StreamConsumer",
    "StreamProducer",
    "StreamRecord",
]
