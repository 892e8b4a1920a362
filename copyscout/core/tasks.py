"""Detached (fire-and-forget) task submission for side effects off the request path."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class DetachedTaskSpawner:
    """
    Runs side effects such as cache writes and health updates without blocking
    the caller.

    Errors raised by a spawned coroutine are logged and dropped; they never
    reach the code that spawned it. Pending tasks are held by strong reference
    until they finish so the event loop cannot garbage-collect them mid-flight.
    """

    def __init__(self) -> None:
        self._pending: set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def spawn(self, coro: Coroutine[Any, Any, Any], label: str = "detached") -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(self._guard(coro, label))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for every task spawned so far, including ones spawned while draining."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @staticmethod
    async def _guard(coro: Coroutine[Any, Any, Any], label: str) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.warning("Detached task '%s' failed", label, exc_info=True)
