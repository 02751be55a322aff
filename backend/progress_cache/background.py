"""Tracked fire-and-forget tasks."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, Optional, Set

logger = logging.getLogger(__name__)


class BackgroundTaskSet:
    """Bounded set of detached asyncio tasks.

    Callers never await the work they spawn; ``drain`` exists so tests and
    shutdown can wait for everything in flight. Exceptions raised by a task
    are logged and never propagate. When the set is full new work is
    dropped with a warning.
    """

    def __init__(self, limit: int = 32) -> None:
        if limit < 1:
            raise ValueError("Background task limit must be at least 1.")
        self._limit = limit
        self._tasks: Set[asyncio.Task[None]] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> Optional[asyncio.Task[None]]:
        if len(self._tasks) >= self._limit:
            logger.warning("Background task limit (%s) reached; dropping %s", self._limit, name)
            coro.close()
            return None
        task = asyncio.create_task(self._guard(coro, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @staticmethod
    async def _guard(coro: Coroutine[Any, Any, Any], name: str) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception:  # noqa: BLE001
            logger.exception("Background task %s failed", name)

    async def drain(self) -> None:
        # tasks may spawn follow-up work, so loop until nothing is left
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


__all__ = ["BackgroundTaskSet"]
