"""Tests for the virtual-time scheduler."""

import threading

import pytest

from commsync.network.scheduler import Scheduler


@pytest.fixture
def scheduler() -> Scheduler:
    return Scheduler(start_time=0.0)


class TestCallLater:
    def test_fires_when_due(self, scheduler: Scheduler) -> None:
        fired: list[float] = []
        scheduler.call_later(2.0, lambda: fired.append(scheduler.now()))
        assert scheduler.advance(1.0) == 0
        assert fired == []
        assert scheduler.advance(1.0) == 1
        assert fired == [2.0]

    def test_due_order_then_fifo(self, scheduler: Scheduler) -> None:
        order: list[str] = []
        scheduler.call_later(3.0, lambda: order.append("c"))
        scheduler.call_later(1.0, lambda: order.append("a1"))
        scheduler.call_later(1.0, lambda: order.append("a2"))
        scheduler.call_later(2.0, lambda: order.append("b"))
        scheduler.advance(5.0)
        assert order == ["a1", "a2", "b", "c"]

    def test_now_ends_at_target(self, scheduler: Scheduler) -> None:
        scheduler.call_later(1.0, lambda: None)
        scheduler.advance(4.5)
        assert scheduler.now() == 4.5

    def test_chained_timers_fire_in_same_advance(self, scheduler: Scheduler) -> None:
        fired: list[float] = []

        def first() -> None:
            fired.append(scheduler.now())
            scheduler.call_later(1.0, lambda: fired.append(scheduler.now()))

        scheduler.call_later(1.0, first)
        assert scheduler.advance(3.0) == 2
        assert fired == [1.0, 2.0]

    def test_negative_delay_rejected(self, scheduler: Scheduler) -> None:
        with pytest.raises(ValueError):
            scheduler.call_later(-1.0, lambda: None)

    def test_negative_advance_rejected(self, scheduler: Scheduler) -> None:
        with pytest.raises(ValueError):
            scheduler.advance(-0.5)

    def test_pending_count(self, scheduler: Scheduler) -> None:
        scheduler.call_later(1.0, lambda: None)
        scheduler.call_later(2.0, lambda: None)
        assert scheduler.pending_count == 2
        scheduler.advance(1.5)
        assert scheduler.pending_count == 1


class TestCallEvery:
    def test_recurs_at_interval(self, scheduler: Scheduler) -> None:
        fired: list[float] = []
        scheduler.call_every(2.0, lambda: fired.append(scheduler.now()))
        scheduler.advance(7.0)
        assert fired == [2.0, 4.0, 6.0]

    def test_keeps_running_after_callback_error(self, scheduler: Scheduler) -> None:
        calls: list[float] = []

        def flaky() -> None:
            calls.append(scheduler.now())
            if len(calls) == 1:
                raise RuntimeError("boom")

        scheduler.call_every(1.0, flaky)
        scheduler.advance(2.0)
        assert calls == [1.0, 2.0]

    def test_failing_callback_does_not_block_later_timers(self, scheduler: Scheduler) -> None:
        fired: list[str] = []

        def broken() -> None:
            raise RuntimeError("boom")

        scheduler.call_later(1.0, broken, "broken")
        scheduler.call_later(2.0, lambda: fired.append("after"))
        assert scheduler.advance(5.0) == 2
        assert fired == ["after"]
        assert scheduler.now() == 5.0

    def test_zero_interval_rejected(self, scheduler: Scheduler) -> None:
        with pytest.raises(ValueError):
            scheduler.call_every(0.0, lambda: None)


class TestRealTime:
    def test_start_fires_timers(self) -> None:
        scheduler = Scheduler()
        done = threading.Event()
        scheduler.call_later(0.0, done.set)
        scheduler.start(tick=0.01)
        try:
            assert scheduler.running
            assert done.wait(timeout=2.0)
        finally:
            scheduler.stop()
        assert not scheduler.running

    def test_start_twice_is_noop(self) -> None:
        scheduler = Scheduler()
        scheduler.start(tick=0.01)
        try:
            scheduler.start(tick=0.01)
            assert scheduler.running
        finally:
            scheduler.stop()
