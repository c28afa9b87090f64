from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class TaskService:
    """Runs fire-and-forget work off the event handlers and cancels it on shutdown."""

    def __init__(self):
        self._tasks: set[asyncio.Task[Any]] = set()
        self._lock = asyncio.Lock()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task %s failed", task.get_name(), exc_info=exc)

    async def track_task(self, task: asyncio.Task[Any]) -> None:
        async with self._lock:
            self._tasks.add(task)
            task.add_done_callback(self._on_done)

    async def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task[Any]:
        task: asyncio.Task[Any] = asyncio.create_task(coro, name=name)
        await self.track_task(task)
        return task

    async def wait_idle(self) -> None:
        """Wait until every tracked task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        pending: list[asyncio.Task[Any]] = []
        async with self._lock:
            if self._tasks:
                pending = list(self._tasks)
                self._tasks.clear()

        for task in pending:
            task.cancel()

        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
