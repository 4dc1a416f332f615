"""Fire-and-forget side effects (usage counters, audit appends).

Delivery is best effort: a task that fails is logged and dropped, and the
operation that spawned it has already returned by then.
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any

from scimgate.core.logging import get_logger

logger = get_logger(__name__)


class BackgroundTasks:
    """Keeps strong references to spawned tasks so they are not garbage collected."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(
                "Background task failed", task=task.get_name(), error=str(exc)
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float | None = 10.0) -> None:
        """Wait for every in-flight task; cancel the stragglers after *timeout*."""
        if not self._tasks:
            return
        tasks = list(self._tasks)
        _done, still_running = await asyncio.wait(tasks, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            logger.warning("Cancelled background tasks on drain", count=len(still_running))
