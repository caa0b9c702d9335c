"""
Configuration for the processor-core service.
"""

from __future__ import annotations

import os
from uuid import uuid4

from dexpipe.framework.config import ServiceConfig


class ProcessorConfig(ServiceConfig):
    """Service configuration loaded from environment variables."""

    def __init__(self) -> None:
        super().__init__(service_name="processor-core")

        # Consumer group settings
        self.consumer_group = os.getenv("DEXPIPE_PROCESSOR_GROUP", "processor")
        self.consumer_name = os.getenv(
            "DEXPIPE_PROCESSOR_CONSUMER",
            f"proc-{uuid4().hex[:6]}",
        )
        self.batch_size = int(os.getenv("DEXPIPE_PROCESSOR_BATCH", "50"))
        self.block_ms = int(os.getenv("DEXPIPE_PROCESSOR_BLOCK_MS", str(self.block_ms)))

        # Dotted path "package.module:attribute" of the block decoder
        self.block_parser = os.getenv("DEXPIPE_BLOCK_PARSER", "")

        # Approximate cap on output stream length; unset keeps everything
        maxlen = os.getenv("DEXPIPE_EVENT_STREAM_MAXLEN")
        self.event_stream_maxlen = int(maxlen) if maxlen else None
