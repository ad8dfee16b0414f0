"""Tests for the mutation throttle."""

from __future__ import annotations

import asyncio
import gc

import pytest
from fakes import FakeClock

from hubclient.client import throttle as throttle_module
from hubclient.client.throttle import MutationThrottle, shared_throttle


def make_throttle(clock: FakeClock, delay_s: float = 1.0) -> MutationThrottle:
    return MutationThrottle(delay_s=delay_s, _time_fn=clock.monotonic, _sleep_fn=clock.sleep)


class TestMutationThrottle:
    """Tests for MutationThrottle."""

    @pytest.mark.asyncio
    async def test_first_mutation_does_not_wait(self, clock: FakeClock) -> None:
        throttle = make_throttle(clock)
        assert await throttle.wait() == 0.0
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_waits_remaining_spacing(self, clock: FakeClock) -> None:
        throttle = make_throttle(clock)
        throttle.stamp()
        clock.advance(0.25)

        waited = await throttle.wait()

        assert waited == pytest.approx(0.75)
        assert clock.sleeps == [pytest.approx(0.75)]

    @pytest.mark.asyncio
    async def test_no_wait_after_spacing_elapsed(self, clock: FakeClock) -> None:
        throttle = make_throttle(clock)
        throttle.stamp()
        clock.advance(5.0)
        assert await throttle.wait() == 0.0

    def test_get_wait_time(self, clock: FakeClock) -> None:
        throttle = make_throttle(clock, delay_s=2.0)
        assert throttle.get_wait_time_s() == 0.0
        throttle.stamp()
        clock.advance(0.5)
        assert throttle.get_wait_time_s() == pytest.approx(1.5)

    def test_stamp_and_reset(self, clock: FakeClock) -> None:
        throttle = make_throttle(clock)
        clock.advance(12.0)
        throttle.stamp()
        assert throttle.last_mutation == 12.0
        throttle.reset()
        assert throttle.last_mutation is None

    @pytest.mark.asyncio
    async def test_concurrent_waiters_are_serialized(self, clock: FakeClock) -> None:
        """Waiters take the lock one at a time; each stamps before releasing the next."""
        throttle = make_throttle(clock)
        order: list[int] = []

        async def mutate(n: int) -> None:
            await throttle.wait()
            throttle.stamp()
            order.append(n)

        await asyncio.gather(mutate(1), mutate(2), mutate(3))

        assert order == [1, 2, 3]
        assert clock.sleeps == [pytest.approx(1.0), pytest.approx(1.0)]

    @pytest.mark.asyncio
    async def test_zero_delay_never_waits(self, clock: FakeClock) -> None:
        throttle = make_throttle(clock, delay_s=0.0)
        throttle.stamp()
        assert await throttle.wait() == 0.0


class TestSharedThrottle:
    """Tests for process-wide throttles."""

    def test_same_key_same_instance(self) -> None:
        a = shared_throttle("https://api.github.com", "ghp_abc")
        b = shared_throttle("https://api.github.com/", "ghp_abc")
        assert a is b

    def test_different_token_different_instance(self) -> None:
        a = shared_throttle("https://api.github.com", "ghp_abc")
        b = shared_throttle("https://api.github.com", "ghp_xyz")
        c = shared_throttle("https://api.github.com", None)
        assert a is not b
        assert c is not a

    def test_different_host_different_instance(self) -> None:
        a = shared_throttle("https://api.github.com", "ghp_abc")
        b = shared_throttle("https://ghe.example.com/api/v3", "ghp_abc")
        assert a is not b

    def test_first_delay_wins(self) -> None:
        a = shared_throttle("https://api.github.com", "ghp_abc", delay_s=2.0)
        b = shared_throttle("https://api.github.com", "ghp_abc", delay_s=5.0)
        assert b.delay_s == 2.0
        assert a is b

    def test_clock_from_first_caller(self, clock: FakeClock) -> None:
        throttle = shared_throttle(
            "https://api.github.com", "ghp_abc", time_fn=clock.monotonic, sleep_fn=clock.sleep
        )
        clock.advance(3.0)
        throttle.stamp()
        assert throttle.last_mutation == 3.0

    def test_contended_across_event_loops(self, clock: FakeClock) -> None:
        """A shared throttle keeps working when a later asyncio.run() reuses it."""

        async def yielding_sleep(seconds: float) -> None:
            clock.advance(seconds)
            await asyncio.sleep(0)

        throttle = shared_throttle(
            "https://api.github.com",
            "ghp_abc",
            delay_s=0.05,
            time_fn=clock.monotonic,
            sleep_fn=yielding_sleep,
        )

        async def run_once() -> list[float]:
            throttle.stamp()
            return list(await asyncio.gather(throttle.wait(), throttle.wait()))

        first = asyncio.run(run_once())
        second = asyncio.run(run_once())

        assert first == [pytest.approx(0.05), 0.0]
        assert second == [pytest.approx(0.05), 0.0]

    def test_entry_released_with_last_reference(self) -> None:
        throttle = shared_throttle("https://api.github.com", "ghp_abc")
        assert len(throttle_module._SHARED_THROTTLES) == 1

        del throttle
        gc.collect()

        assert len(throttle_module._SHARED_THROTTLES) == 0

    def test_released_entry_starts_fresh(self) -> None:
        throttle = shared_throttle("https://api.github.com", "ghp_abc")
        throttle.stamp()
        del throttle
        gc.collect()

        assert shared_throttle("https://api.github.com", "ghp_abc").last_mutation is None
