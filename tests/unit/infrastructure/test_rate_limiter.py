"""Tests for the per-provider request throttle."""

import asyncio

import pytest

from conftest import FakeClock
from sidea.infrastructure.rate_limiter import RequestThrottle, ThrottleConfig


def make_throttle(clock: FakeClock, rpm: float = 60.0, name: str = "test") -> RequestThrottle:
    return RequestThrottle(
        config=ThrottleConfig(requests_per_minute=rpm),
        name=name,
        clock=clock,
        sleep=clock.sleep,
    )


class TestThrottleConfig:
    """Test derived interval."""

    def test_min_interval_from_rate(self) -> None:
        """Test 60 rpm means one second between calls."""
        assert ThrottleConfig(requests_per_minute=60).min_interval == 1.0
        assert ThrottleConfig(requests_per_minute=300).min_interval == pytest.approx(0.2)

    def test_factories_name_the_provider(self) -> None:
        """Test the provider factories."""
        assert RequestThrottle.for_musicbrainz().name == "musicbrainz"
        assert RequestThrottle.for_discogs(30).min_interval == 2.0
        assert RequestThrottle.for_vision("anthropic").name == "anthropic"


class TestRequestThrottle:
    """Test pacing, ordering and failure isolation."""

    async def test_first_call_runs_immediately(self, fake_clock: FakeClock) -> None:
        """Test an idle throttle doesn't delay the first call."""
        throttle = make_throttle(fake_clock)

        async def work() -> str:
            return "done"

        assert await throttle.execute(work) == "done"
        assert fake_clock.sleeps == []

    async def test_consecutive_calls_are_spaced(self, fake_clock: FakeClock) -> None:
        """Test starts are at least min_interval after the previous call finished."""
        throttle = make_throttle(fake_clock, rpm=60)
        starts: list[float] = []

        async def work() -> None:
            starts.append(fake_clock.now)

        await asyncio.gather(*(throttle.execute(work) for _ in range(3)))

        assert starts == [0.0, 1.0, 2.0]

    async def test_fifo_order(self, fake_clock: FakeClock) -> None:
        """Test calls run in submission order."""
        throttle = make_throttle(fake_clock, rpm=6000)
        order: list[int] = []

        def job(i: int):  # type: ignore[no-untyped-def]
            async def run() -> int:
                order.append(i)
                return i

            return run

        results = await asyncio.gather(*(throttle.execute(job(i)) for i in range(5)))

        assert order == [0, 1, 2, 3, 4]
        assert results == [0, 1, 2, 3, 4]

    async def test_failure_does_not_poison_queue(self, fake_clock: FakeClock) -> None:
        """Test a failing call propagates to its caller and the next call still runs."""
        throttle = make_throttle(fake_clock, rpm=60)

        async def boom() -> None:
            raise ValueError("provider exploded")

        async def ok() -> str:
            return "ok"

        first, second = await asyncio.gather(
            throttle.execute(boom), throttle.execute(ok), return_exceptions=True
        )

        assert isinstance(first, ValueError)
        assert second == "ok"
        # The delay still applies after a failure
        assert fake_clock.sleeps == [1.0]

    async def test_providers_are_independent(self) -> None:
        """Test a busy throttle never blocks another provider's throttle."""
        slow = RequestThrottle.for_rate("slow", 60)
        fast = RequestThrottle.for_rate("fast", 60)
        gate = asyncio.Event()

        blocked = asyncio.create_task(slow.execute(gate.wait))
        await asyncio.sleep(0)

        async def quick() -> str:
            return "fast"

        assert await fast.execute(quick) == "fast"
        assert not blocked.done()

        gate.set()
        await blocked
        await slow.close()
        await fast.close()

    async def test_closed_throttle_rejects_calls(self, fake_clock: FakeClock) -> None:
        """Test execute after close raises."""
        throttle = make_throttle(fake_clock)
        await throttle.close()

        async def work() -> None:
            return None

        with pytest.raises(RuntimeError):
            await throttle.execute(work)
