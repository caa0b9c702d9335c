"""
Configuration management for pipeline services.

Provides typed configuration classes with environment variable
injection and validation.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Any


@dataclass
class BrokerConfig:
    """Redis connection settings (stream broker and shared key/value store)."""
    url: str = field(default_factory=lambda: os.getenv("DEXPIPE_REDIS_URL", "redis://localhost:6379/0"))
    max_connections: int = field(default_factory=lambda: int(os.getenv("DEXPIPE_REDIS_MAX_CONNECTIONS", "20")))
    timeout: int = field(default_factory=lambda: int(os.getenv("DEXPIPE_REDIS_TIMEOUT", "30")))


@dataclass
class DatabaseConfig:
    """Warehouse configuration."""
    clickhouse_url: str = field(default_factory=lambda: os.getenv("DEXPIPE_CLICKHOUSE_URL", "http://localhost:8123"))
    clickhouse_database: str = field(default_factory=lambda: os.getenv("DEXPIPE_CLICKHOUSE_DATABASE", "dex"))
    clickhouse_user: str = field(default_factory=lambda: os.getenv("DEXPIPE_CLICKHOUSE_USER", "default"))
    clickhouse_password: str = field(default_factory=lambda: os.getenv("DEXPIPE_CLICKHOUSE_PASSWORD", ""))
    postgres_dsn: str = field(default_factory=lambda: os.getenv("DEXPIPE_POSTGRES_DSN", "postgresql://localhost:5432/dex"))


@dataclass
class StreamsConfig:
    """Stream names shared by producer and consumer roles."""
    raw_blocks: str = field(default_factory=lambda: os.getenv("DEXPIPE_STREAM_RAW", "chain:raw_blocks"))
    new_pool: str = field(default_factory=lambda: os.getenv("DEXPIPE_STREAM_NEW_POOL", "events:new_pool"))
    swap: str = field(default_factory=lambda: os.getenv("DEXPIPE_STREAM_SWAP", "events:swap"))
    liquidity: str = field(default_factory=lambda: os.getenv("DEXPIPE_STREAM_LIQUIDITY", "events:liquidity"))


@dataclass
class PricingConfig:
    """Canonical quote asset used for derived prices."""
    quote_denom: str = field(default_factory=lambda: os.getenv("DEXPIPE_QUOTE_DENOM", "uzig"))
    quote_exponent: int = field(default_factory=lambda: int(os.getenv("DEXPIPE_QUOTE_EXPONENT", "6")))
    ohlcv_interval_seconds: int = field(default_factory=lambda: int(os.getenv("DEXPIPE_OHLCV_INTERVAL_SECONDS", "60")))


@dataclass
class ObservabilityConfig:
    """Observability configuration."""
    log_level: str = field(default_factory=lambda: os.getenv("DEXPIPE_LOG_LEVEL", "info"))
    log_format: str = field(default_factory=lambda: os.getenv("DEXPIPE_LOG_FORMAT", "json"))
    health_port: int = field(default_factory=lambda: int(os.getenv("DEXPIPE_HEALTH_PORT", "8080")))
    http_enabled: bool = field(default_factory=lambda: os.getenv("DEXPIPE_HTTP_ENABLED", "true").lower() == "true")


@dataclass
class ServiceConfig:
    """Base service configuration."""
    service_name: str
    environment: str = field(default_factory=lambda: os.getenv("DEXPIPE_ENV", "local"))

    # Sub-configurations
    redis: BrokerConfig = field(default_factory=BrokerConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    streams: StreamsConfig = field(default_factory=StreamsConfig)
    pricing: PricingConfig = field(default_factory=PricingConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    # Consumer loop defaults
    block_ms: int = field(default_factory=lambda: int(os.getenv("DEXPIPE_BLOCK_MS", "5000")))
    error_backoff_seconds: float = field(default_factory=lambda: float(os.getenv("DEXPIPE_ERROR_BACKOFF_SECONDS", "1.0")))
    claim_min_idle_ms: int = field(default_factory=lambda: int(os.getenv("DEXPIPE_CLAIM_MIN_IDLE_MS", "60000")))
    claim_interval_seconds: float = field(default_factory=lambda: float(os.getenv("DEXPIPE_CLAIM_INTERVAL_SECONDS", "30")))
    shutdown_timeout: float = field(default_factory=lambda: float(os.getenv("DEXPIPE_SHUTDOWN_TIMEOUT", "30")))

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.service_name:
            raise ValueError("service_name is required")

        if self.environment not in ["local", "dev", "staging", "prod"]:
            raise ValueError(f"Invalid environment: {self.environment}")

        if self.block_ms <= 0:
            raise ValueError("block_ms must be positive")

    @classmethod
    def from_env(cls, service_name: str) -> "ServiceConfig":
        """Create configuration from environment variables."""
        return cls(service_name=service_name)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "service_name": self.service_name,
            "environment": self.environment,
            "redis": {
                "url": self.redis.url,
                "max_connections": self.redis.max_connections,
                "timeout": self.redis.timeout,
            },
            "database": {
                "clickhouse_url": self.database.clickhouse_url,
                "clickhouse_database": self.database.clickhouse_database,
                "postgres_dsn": self.database.postgres_dsn,
            },
            "streams": {
                "raw_blocks": self.streams.raw_blocks,
                "new_pool": self.streams.new_pool,
                "swap": self.streams.swap,
                "liquidity": self.streams.liquidity,
            },
            "pricing": {
                "quote_denom": self.pricing.quote_denom,
                "quote_exponent": self.pricing.quote_exponent,
                "ohlcv_interval_seconds": self.pricing.ohlcv_interval_seconds,
            },
            "observability": {
                "log_level": self.observability.log_level,
                "log_format": self.observability.log_format,
                "health_port": self.observability.health_port,
                "http_enabled": self.observability.http_enabled,
            },
            "block_ms": self.block_ms,
            "error_backoff_seconds": self.error_backoff_seconds,
            "claim_min_idle_ms": self.claim_min_idle_ms,
            "claim_interval_seconds": self.claim_interval_seconds,
            "shutdown_timeout": self.shutdown_timeout,
        }
