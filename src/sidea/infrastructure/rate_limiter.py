"""
Per-provider request throttle for external API calls.

Hey future me - this is the ONE place that paces outbound calls! Every provider client
(Discogs, MusicBrainz, Cover Art Archive, vision APIs) owns exactly one RequestThrottle and
routes every request through execute(). Nobody else is allowed to hit a provider's transport.

ALGORITHM: FIFO queue + single worker
- execute() enqueues a zero-arg coroutine factory and awaits its future
- One worker task drains the queue in submission order
- Before starting a call, the worker waits until min_interval has passed since the
  PREVIOUS call finished (60 / requests_per_minute seconds)
- Idle queue + long enough pause → the call starts immediately

FAILURE SEMANTICS:
- The caller's future gets the task's own result or exception, untouched
- A failing task does NOT poison the queue: the next task still runs after the delay
- Throttles for different providers are independent objects, they never block each other

USAGE:
    throttle = RequestThrottle.for_musicbrainz()
    data = await throttle.execute(lambda: client.get("/release-group", params=...))
"""

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass
class ThrottleConfig:
    """Configuration for a request throttle.

    Hey future me - requests_per_minute comes straight from the provider's published
    limit. min_interval is DERIVED, don't configure it separately!
    """

    requests_per_minute: float = 60.0

    @property
    def min_interval(self) -> float:
        """Minimum seconds between two consecutive calls."""
        return 60.0 / self.requests_per_minute


@dataclass
class _QueuedCall:
    task: Callable[[], Awaitable[Any]]
    future: asyncio.Future[Any]
    enqueued_at: float = field(default_factory=time.monotonic)


class RequestThrottle:
    """FIFO request throttle with a minimum inter-call interval.

    Attributes:
        config: Throttle configuration (rate)
        name: Provider name for logging
    """

    def __init__(
        self,
        config: ThrottleConfig | None = None,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.config = config or ThrottleConfig()
        self.name = name
        # Yo, clock + sleep are injectable so tests can run with a fake clock
        # instead of really waiting a second per MusicBrainz call.
        self._clock = clock
        self._sleep = sleep
        self._queue: deque[_QueuedCall] = deque()
        self._worker: asyncio.Task[None] | None = None
        self._last_finished: float | None = None
        self._closed = False

    @classmethod
    def for_rate(cls, name: str, requests_per_minute: float) -> "RequestThrottle":
        """Create a throttle for an arbitrary provider rate."""
        return cls(config=ThrottleConfig(requests_per_minute=requests_per_minute), name=name)

    @classmethod
    def for_discogs(cls, requests_per_minute: float = 60.0) -> "RequestThrottle":
        """Discogs: 60 authenticated requests per minute."""
        return cls.for_rate("discogs", requests_per_minute)

    @classmethod
    def for_musicbrainz(cls, requests_per_minute: float = 60.0) -> "RequestThrottle":
        """MusicBrainz: 1 req/sec, they IP-ban aggressive clients."""
        return cls.for_rate("musicbrainz", requests_per_minute)

    @classmethod
    def for_coverartarchive(cls, requests_per_minute: float = 300.0) -> "RequestThrottle":
        """Cover Art Archive is lenient, we still space calls by 200ms."""
        return cls.for_rate("coverartarchive", requests_per_minute)

    @classmethod
    def for_vision(cls, name: str, requests_per_minute: float = 60.0) -> "RequestThrottle":
        """Vision APIs: generous limits, but each call is expensive."""
        return cls.for_rate(name, requests_per_minute)

    @property
    def min_interval(self) -> float:
        return self.config.min_interval

    @property
    def pending(self) -> int:
        """Number of calls waiting in the queue (for debugging)."""
        return len(self._queue)

    async def execute(self, task: Callable[[], Awaitable[T]]) -> T:
        """Run task through the throttle and return its result.

        Args:
            task: Zero-argument callable returning an awaitable (NOT an awaitable -
                the coroutine must only be created when it's this call's turn)

        Returns:
            Whatever the task returns

        Raises:
            Whatever the task raises
        """
        if self._closed:
            raise RuntimeError(f"RequestThrottle[{self.name}] is closed")

        loop = asyncio.get_running_loop()
        future: asyncio.Future[T] = loop.create_future()
        self._queue.append(_QueuedCall(task=task, future=future))

        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(
                self._drain(), name=f"throttle-{self.name}"
            )

        return await future

    async def _wait_for_slot(self) -> None:
        if self._last_finished is None:
            return
        elapsed = self._clock() - self._last_finished
        remaining = self.min_interval - elapsed
        if remaining > 0:
            logger.debug(
                f"RequestThrottle[{self.name}]: waiting {remaining:.2f}s before next call"
            )
            await self._sleep(remaining)

    # Hey future me, this is THE worker loop. _last_finished is updated AFTER the call
    # completes, not before - a slow response must not shrink the gap to the next call.
    async def _drain(self) -> None:
        worker = asyncio.current_task()
        while self._queue:
            call = self._queue.popleft()
            if call.future.done():
                # Caller gave up (cancelled) before its turn
                continue

            try:
                await self._wait_for_slot()
                result = await call.task()
            except asyncio.CancelledError:
                if not call.future.done():
                    call.future.cancel()
                if worker is not None and worker.cancelling():
                    # close() or loop shutdown - nobody will drain the rest
                    self._cancel_pending()
                    raise
            except Exception as e:
                logger.debug(
                    f"RequestThrottle[{self.name}]: call failed with {type(e).__name__}"
                )
                if not call.future.done():
                    call.future.set_exception(e)
            else:
                if not call.future.done():
                    call.future.set_result(result)
            finally:
                self._last_finished = self._clock()

    def _cancel_pending(self) -> None:
        while self._queue:
            call = self._queue.popleft()
            if not call.future.done():
                call.future.cancel()

    async def close(self) -> None:
        """Stop the worker and cancel queued calls."""
        self._closed = True
        self._cancel_pending()
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None


__all__ = ["RequestThrottle", "ThrottleConfig"]
