"""
Configuration for the worker-clickhouse service.
"""

from __future__ import annotations

import os
from uuid import uuid4

from dexpipe.framework.config import ServiceConfig


class ClickHouseWorkerConfig(ServiceConfig):
    """Service configuration loaded from environment variables."""

    def __init__(self) -> None:
        super().__init__(service_name="worker-clickhouse")

        # Consumer group settings
        self.consumer_group = os.getenv("DEXPIPE_CLICKHOUSE_GROUP", "clickhouse")
        self.consumer_prefix = os.getenv(
            "DEXPIPE_CLICKHOUSE_CONSUMER_PREFIX",
            f"{self.service_name}-{uuid4().hex[:6]}",
        )
        self.batch_size = int(os.getenv("DEXPIPE_CLICKHOUSE_BATCH", "256"))
        self.block_ms = int(os.getenv("DEXPIPE_CLICKHOUSE_BLOCK_MS", str(self.block_ms)))

        # Table buffers
        self.pool_buffer_rows = int(os.getenv("DEXPIPE_CLICKHOUSE_POOL_BUFFER", "200"))
        self.pool_flush_seconds = float(os.getenv("DEXPIPE_CLICKHOUSE_POOL_FLUSH_SECONDS", "2"))
        self.trade_buffer_rows = int(os.getenv("DEXPIPE_CLICKHOUSE_TRADE_BUFFER", "500"))
        self.trade_flush_seconds = float(os.getenv("DEXPIPE_CLICKHOUSE_TRADE_FLUSH_SECONDS", "2"))
        self.price_buffer_rows = int(os.getenv("DEXPIPE_CLICKHOUSE_PRICE_BUFFER", "500"))
        self.price_flush_seconds = float(os.getenv("DEXPIPE_CLICKHOUSE_PRICE_FLUSH_SECONDS", "2"))

        # Identifier resolution against the mappings the Timescale worker publishes
        self.pool_resolve_retries = int(os.getenv("DEXPIPE_CLICKHOUSE_POOL_RETRIES", "20"))
        self.pool_resolve_delay = float(os.getenv("DEXPIPE_CLICKHOUSE_POOL_DELAY", "0.5"))
        self.trade_resolve_retries = int(os.getenv("DEXPIPE_CLICKHOUSE_TRADE_RETRIES", "10"))
        self.trade_resolve_delay = float(os.getenv("DEXPIPE_CLICKHOUSE_TRADE_DELAY", "0.5"))

        # Contract addresses recorded on pool rows
        self.factory_contract = os.getenv("DEXPIPE_FACTORY_ADDR", "")
        self.router_contract = os.getenv("DEXPIPE_ROUTER_ADDR", "")
