"""
Shared fixtures: a hand-stepped clock and scheduler for timer-driven code.
"""
import heapq
import itertools

import pytest

from help_reasoner import Reasoner, ReasonerConfig


class ManualClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


class _Handle:
    def __init__(self, due, fn):
        self.due = due
        self.fn = fn
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """
    Scheduler that queues callbacks until ``advance`` is called.

    Callbacks run in due-time order with the clock set to their due time,
    so chains of rescheduling ticks behave like real timers.
    """

    def __init__(self, clock: ManualClock):
        self.clock = clock
        self._queue = []
        self._seq = itertools.count()

    def __call__(self, delay, fn):
        handle = _Handle(self.clock.now + delay, fn)
        heapq.heappush(self._queue, (handle.due, next(self._seq), handle))
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for _, _, h in self._queue if not h.cancelled)

    def advance(self, seconds: float) -> None:
        target = self.clock.now + seconds
        while self._queue and self._queue[0][0] <= target + 1e-9:
            due, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self.clock.now = max(self.clock.now, due)
            handle.fn()
        self.clock.now = target


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def make_reasoner(clock, scheduler):
    """Build a reasoner on the manual clock; config fields as kwargs."""
    def _make(on_episode_end=None, **overrides):
        overrides.setdefault("prng_seed", 1)
        overrides.setdefault("tick_interval", 0.5)
        return Reasoner(
            ReasonerConfig(**overrides),
            on_episode_end=on_episode_end,
            clock=clock,
            scheduler=scheduler,
            session_id="test-session",
        )
    return _make
