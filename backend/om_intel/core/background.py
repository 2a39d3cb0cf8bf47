"""Fire-and-forget task execution detached from the triggering request."""

import asyncio
from collections.abc import Coroutine
from typing import Any

from om_intel.core.logging import get_logger

logger = get_logger(__name__)


class BackgroundTaskRunner:
    """Unbounded best-effort executor on the running event loop.

    Submitted coroutines outlive the request that scheduled them. Their
    outcome is only observable through the context store; failures are
    logged here and never re-raised.
    """

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    def submit(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        """Schedule ``coro`` without awaiting it."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        logger.debug("background_task_submitted", task=name, pending=len(self._tasks))
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("background_task_cancelled", task=task.get_name())
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "background_task_failed",
                task=task.get_name(),
                error=str(error),
                error_type=type(error).__name__,
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for every submitted task, including ones they submit."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.wait(pending, timeout=timeout)
            if timeout is not None:
                return

    async def shutdown(self) -> None:
        """Cancel whatever is still running."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("background_runner_stopped")
