"""Background task runner - fire-and-forget units of work with tracking.

Hey future me - this is where the "after add" artwork work runs. The contract is narrow:

- submit(name, coro_factory) schedules the coroutine as an asyncio.Task and RETURNS at once.
  The caller (add_item) has already committed and answered the user.
- Failures are logged with the traceback and abandoned. NO retries! A crashed artwork pass
  (provider outages never get this far) leaves the item un-attempted, refresh can retry it.
- Tasks inherit the submitter's contextvars, so the correlation id of the add follows along.
- We keep a strong reference to every running task (asyncio only keeps weak ones - an
  unreferenced task can be garbage collected mid-flight).
- drain() awaits whatever is outstanding: tests use it to observe the end state, shutdown
  uses it for a graceful stop. close() cancels instead.
"""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)


class BackgroundTaskRunner:
    """Tracks fire-and-forget asyncio tasks."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()
        self._completed = 0
        self._failed = 0
        self._closed = False

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(
        self, name: str, coro_factory: Callable[[], Awaitable[Any]]
    ) -> asyncio.Task[Any] | None:
        """Schedule a unit of work. Returns the task (None if the runner is closed)."""
        if self._closed:
            logger.warning(f"Background runner closed, dropping task '{name}'")
            return None

        task = asyncio.get_running_loop().create_task(
            self._run(name, coro_factory), name=name
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug(f"Background task '{name}' scheduled ({len(self._tasks)} pending)")
        return task

    async def _run(self, name: str, coro_factory: Callable[[], Awaitable[Any]]) -> None:
        try:
            await coro_factory()
        except asyncio.CancelledError:
            logger.debug(f"Background task '{name}' cancelled")
            raise
        except Exception:
            self._failed += 1
            logger.exception(f"Background task '{name}' failed")
        else:
            self._completed += 1
            logger.debug(f"Background task '{name}' finished")

    async def drain(self) -> None:
        """Wait until every submitted task (including ones submitted meanwhile) is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel outstanding tasks and refuse new ones."""
        self._closed = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()

    def get_status(self) -> dict[str, Any]:
        """Runner status for monitoring."""
        return {
            "pending": len(self._tasks),
            "completed": self._completed,
            "failed": self._failed,
            "closed": self._closed,
        }
