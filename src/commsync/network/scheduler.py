"""Single-owner event loop for the network simulation.

All simulated asynchrony (delivery resolution, acknowledgements, fault
injection, status refresh, server recovery) is posted here as timed
callbacks. Callbacks run one at a time under the scheduler's lock, which
is also the lock callers take for synchronous mutations, so no two
mutations of a node or message ever interleave.

Time is virtual. Tests drive it with advance(); start() runs a daemon
thread that advances it in step with the wall clock.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(order=True)
class _Timer:
    due: float
    seq: int
    callback: Callable[[], None] = field(compare=False)
    label: str = field(compare=False, default="")


class Scheduler:
    """Virtual-time timer queue with one serialization point.

    Usage:
        scheduler = Scheduler(start_time=0.0)
        scheduler.call_later(1.5, deliver)
        scheduler.call_every(5.0, inject_faults)
        scheduler.advance(10.0)   # fires everything due in order
    """

    def __init__(self, start_time: Optional[float] = None) -> None:
        self._now = time.time() if start_time is None else start_time
        self._queue: list[_Timer] = []
        self._seq = itertools.count()
        self._lock = threading.RLock()
        self._running = False
        self._thread: Optional[threading.Thread] = None

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def now(self) -> float:
        with self._lock:
            return self._now

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._queue)

    def call_later(self, delay: float, callback: Callable[[], None], label: str = "") -> None:
        """Run callback once, delay seconds from now. Timers cannot be cancelled."""
        if delay < 0:
            raise ValueError(f"delay must be >= 0, got {delay}")
        with self._lock:
            heapq.heappush(
                self._queue, _Timer(self._now + delay, next(self._seq), callback, label)
            )

    def call_every(self, interval: float, callback: Callable[[], None], label: str = "") -> None:
        """Run callback every interval seconds, first run one interval from now."""
        if interval <= 0:
            raise ValueError(f"interval must be > 0, got {interval}")

        def _recurring() -> None:
            try:
                callback()
            finally:
                self.call_later(interval, _recurring, label)

        self.call_later(interval, _recurring, label)

    def advance(self, seconds: float) -> int:
        """Move virtual time forward, firing due timers in (due, FIFO) order.

        Timers scheduled by a firing callback run in the same advance if
        they fall due before the target time. A callback that raises is
        logged and does not stop later timers. Returns the number fired.
        """
        if seconds < 0:
            raise ValueError(f"seconds must be >= 0, got {seconds}")
        fired = 0
        with self._lock:
            target = self._now + seconds
            while self._queue and self._queue[0].due <= target:
                timer = heapq.heappop(self._queue)
                self._now = timer.due
                try:
                    timer.callback()
                except Exception:
                    logger.exception("Timer %r failed at t=%.3f", timer.label, timer.due)
                fired += 1
            self._now = target
        return fired

    # -- Real-time driver ---------------------------------------------------

    def start(self, tick: float = 0.1) -> None:
        if self._running:
            return
        self._running = True
        self._thread = threading.Thread(
            target=self._tick_loop, args=(tick,), name="commsync-scheduler", daemon=True
        )
        self._thread.start()
        logger.info("Scheduler started (tick=%.2fs)", tick)

    def stop(self) -> None:
        self._running = False
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None
            logger.info("Scheduler stopped")

    @property
    def running(self) -> bool:
        return self._running

    def _tick_loop(self, tick: float) -> None:
        last = time.monotonic()
        while self._running:
            time.sleep(tick)
            current = time.monotonic()
            self.advance(current - last)
            last = current
