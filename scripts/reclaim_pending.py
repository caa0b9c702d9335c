#!/usr/bin/env python3
"""
Reclaim pending stream entries left behind by a crashed consumer.

Claims every entry of a consumer group that has been idle for at least
the given time and prints the claimed ids. With ``--list`` the pending
entries are only inspected.
"""

import argparse
import asyncio
import sys
from typing import List, Optional

import structlog

from dexpipe.framework.consumer import ConsumerConfig, StreamConsumer
from dexpipe.storage.redis import RedisClient, RedisConfig
from dexpipe.utils.errors import StreamError
from dexpipe.utils.logging import setup_logging


logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Claim stale pending entries of a consumer group")
    parser.add_argument("--stream", required=True, help="Stream name (e.g. events:swap)")
    parser.add_argument("--group", required=True, help="Consumer group name")
    parser.add_argument("--consumer", default="reclaimer", help="Consumer that takes ownership")
    parser.add_argument("--min-idle-ms", type=int, default=60000, help="Minimum idle time before claiming")
    parser.add_argument("--limit", type=int, default=100, help="Maximum entries to inspect")
    parser.add_argument("--redis-url", default="redis://localhost:6379/0", help="Redis URL")
    parser.add_argument("--list", action="store_true", help="Only list pending entries")
    return parser


async def reclaim(args: argparse.Namespace, redis: Optional[RedisClient] = None) -> List[str]:
    """Run one claim pass; returns the claimed ids (or the pending ids with ``--list``)."""
    redis = redis or RedisClient(RedisConfig(url=args.redis_url))
    consumer = StreamConsumer(
        ConsumerConfig(
            stream=args.stream,
            group=args.group,
            consumer_name=args.consumer,
            claim_count=args.limit,
        ),
        redis,
    )

    await redis.connect()
    try:
        if args.list:
            entries = await consumer.pending(args.limit)
            for entry in entries:
                print(f"{entry.id}\t{entry.consumer}\tidle={entry.idle_ms}ms\tdelivered={entry.times_delivered}")
            return [entry.id for entry in entries]

        claimed = await consumer.claim_stale(min_idle_ms=args.min_idle_ms, limit=args.limit)
        for entry_id in claimed:
            print(entry_id)
        logger.info(
            "Reclaim finished",
            stream=args.stream,
            group=args.group,
            consumer=args.consumer,
            claimed=len(claimed),
        )
        return claimed
    finally:
        await redis.close()


async def main() -> None:
    """Main entry point."""
    args = build_parser().parse_args()
    setup_logging("reclaim-pending", format_type="console")

    try:
        await reclaim(args)
    except StreamError as e:
        logger.error("Reclaim failed", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
