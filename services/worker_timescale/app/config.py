"""
Configuration for the worker-timescale service.
"""

from __future__ import annotations

import os
from uuid import uuid4

from dexpipe.framework.config import ServiceConfig


class TimescaleWorkerConfig(ServiceConfig):
    """Service configuration loaded from environment variables."""

    def __init__(self) -> None:
        super().__init__(service_name="worker-timescale")

        # Consumer group settings
        self.consumer_group = os.getenv("DEXPIPE_TIMESCALE_GROUP", "timescale")
        self.consumer_prefix = os.getenv(
            "DEXPIPE_TIMESCALE_CONSUMER_PREFIX",
            f"{self.service_name}-{uuid4().hex[:6]}",
        )
        self.batch_size = int(os.getenv("DEXPIPE_TIMESCALE_BATCH", "64"))
        self.block_ms = int(os.getenv("DEXPIPE_TIMESCALE_BLOCK_MS", str(self.block_ms)))

        # Trade buffer
        self.trade_buffer_rows = int(os.getenv("DEXPIPE_TIMESCALE_TRADE_BUFFER", "200"))
        self.trade_flush_seconds = float(os.getenv("DEXPIPE_TIMESCALE_TRADE_FLUSH_SECONDS", "2"))

        # Waiting for pools published by the pool consumer of this worker
        self.pool_wait_retries = int(os.getenv("DEXPIPE_TIMESCALE_POOL_WAIT_RETRIES", "10"))
        self.pool_wait_delay = float(os.getenv("DEXPIPE_TIMESCALE_POOL_WAIT_DELAY", "0.5"))

        # Token metadata refresh from the chain LCD; disabled when unset
        self.lcd_url = os.getenv("DEXPIPE_LCD_URL", "")
        self.metadata_concurrency = int(os.getenv("DEXPIPE_METADATA_CONCURRENCY", "4"))
        self.metadata_timeout = float(os.getenv("DEXPIPE_METADATA_TIMEOUT", "10"))
