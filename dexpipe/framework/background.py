"""
Detached best-effort background work.

Used for low-priority side jobs (token metadata refreshes) that must not
slow down or fail the batch that triggered them.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, Set

import structlog

logger = structlog.get_logger()


class BackgroundTaskPool:
    """Runs submitted coroutines detached from the caller, bounded by a semaphore."""

    def __init__(self, max_concurrency: int = 4, name: str = "background"):
        self.name = name
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._tasks: Set[asyncio.Task] = set()
        self.logger = structlog.get_logger("background-tasks").bind(pool=name)

        self.completed = 0
        self.failed = 0

    def __len__(self) -> int:
        return len(self._tasks)

    def submit(self, coro_factory: Callable[[], Awaitable[Any]], name: Optional[str] = None) -> asyncio.Task:
        """Schedule ``coro_factory()`` and return immediately."""
        task = asyncio.create_task(self._run(coro_factory, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, coro_factory: Callable[[], Awaitable[Any]], name: Optional[str]) -> None:
        async with self._semaphore:
            try:
                await coro_factory()
                self.completed += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.failed += 1
                self.logger.warning("Background task failed", task=name, error=str(e))

    async def drain(self, timeout: float = 10.0) -> None:
        """Wait for outstanding tasks; cancel whatever is left after ``timeout``."""
        if not self._tasks:
            return

        pending = list(self._tasks)
        _done, still_pending = await asyncio.wait(pending, timeout=timeout)
        for task in still_pending:
            task.cancel()
        if still_pending:
            await asyncio.gather(*still_pending, return_exceptions=True)
            self.logger.warning("Background tasks cancelled", count=len(still_pending))

    def get_stats(self) -> Dict[str, int]:
        return {
            "running": len(self._tasks),
            "completed": self.completed,
            "failed": self.failed,
        }
