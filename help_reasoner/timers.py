"""
Cancellable deferred checks for the reasoner's timeouts.

Every wait (user feedback, post-action state, auto-unfreeze) is a chain
of ticks on a fixed interval. Each tick compares elapsed time against a
deadline and either fires or reschedules itself. Waits are grouped by
kind; arming a new wait of a kind invalidates the previous one so two
chains of the same kind never run side by side.

Clock and scheduler are injectable so tests can step time by hand.
"""
from __future__ import annotations

import itertools
import logging
import threading
import time
from contextlib import nullcontext
from typing import Any, Callable, ContextManager, Dict, Optional

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Scheduler = Callable[[float, Callable[[], None]], Any]


def thread_scheduler(delay: float, fn: Callable[[], None]) -> threading.Timer:
    """Run ``fn`` after ``delay`` seconds on a daemon timer thread."""
    timer = threading.Timer(delay, fn)
    timer.daemon = True
    timer.start()
    return timer


class DeferredCheck:
    """
    One self-rescheduling wait.

    Attributes:
        kind: Wait category (feedback, estimate, next_state, unfreeze)
        token: Unique id of this wait
        timeout: Seconds before ``on_timeout`` fires
    """

    def __init__(
        self,
        kind: str,
        token: int,
        timeout: float,
        on_timeout: Callable[[], None],
        tick_interval: float = 0.5,
        clock: Clock = time.monotonic,
        scheduler: Scheduler = thread_scheduler,
        still_waiting: Optional[Callable[[], bool]] = None,
        hold: Optional[Callable[[], bool]] = None,
        lock: Optional[ContextManager] = None,
    ):
        """
        Args:
            still_waiting: Chain stops silently once this returns False
            hold: While True the deadline is not honoured (keeps ticking)
            lock: Held for the duration of every tick
        """
        self.kind = kind
        self.token = token
        self.timeout = timeout
        self.tick_interval = tick_interval
        self._on_timeout = on_timeout
        self._clock = clock
        self._scheduler = scheduler
        self._still_waiting = still_waiting
        self._hold = hold
        self._lock = lock

        self.started_at: Optional[float] = None
        self.cancelled = False
        self.fired = False
        self.finished = False
        self.ticks = 0
        self._handle: Any = None

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.fired or self.finished)

    def elapsed(self) -> float:
        if self.started_at is None:
            return 0.0
        return self._clock() - self.started_at

    def start(self) -> "DeferredCheck":
        self.started_at = self._clock()
        self._schedule()
        return self

    def cancel(self) -> None:
        """Stop the chain; a tick already queued observes the flag and exits."""
        self.cancelled = True
        handle = self._handle
        if handle is not None and hasattr(handle, "cancel"):
            handle.cancel()

    def _schedule(self) -> None:
        self._handle = self._scheduler(self.tick_interval, self._tick)

    def _tick(self) -> None:
        with self._lock if self._lock is not None else nullcontext():
            if not self.pending:
                return
            self.ticks += 1

            if self._still_waiting is not None and not self._still_waiting():
                self.finished = True
                return

            held = self._hold is not None and self._hold()
            if not held and self.elapsed() >= self.timeout:
                self.fired = True
                logger.debug(f"Wait {self.kind}#{self.token} timed out after {self.elapsed():.1f}s")
                self._on_timeout()
                return

            self._schedule()


class WaitSlots:
    """
    Keeps at most one live DeferredCheck per kind.

    Example:
        >>> slots = WaitSlots(tick_interval=0.5)
        >>> slots.arm("feedback", 10.0, on_idle)
        >>> slots.cancel("feedback")
    """

    def __init__(
        self,
        tick_interval: float = 0.5,
        clock: Clock = time.monotonic,
        scheduler: Scheduler = thread_scheduler,
        lock: Optional[ContextManager] = None,
    ):
        self.tick_interval = tick_interval
        self.clock = clock
        self.scheduler = scheduler
        self.lock = lock
        self._slots: Dict[str, DeferredCheck] = {}
        self._tokens = itertools.count(1)

    def arm(
        self,
        kind: str,
        timeout: float,
        on_timeout: Callable[[], None],
        still_waiting: Optional[Callable[[], bool]] = None,
        hold: Optional[Callable[[], bool]] = None,
    ) -> DeferredCheck:
        """Start a wait of ``kind``, invalidating any previous one."""
        self.cancel(kind)
        check = DeferredCheck(
            kind=kind,
            token=next(self._tokens),
            timeout=timeout,
            on_timeout=on_timeout,
            tick_interval=self.tick_interval,
            clock=self.clock,
            scheduler=self.scheduler,
            still_waiting=still_waiting,
            hold=hold,
            lock=self.lock,
        )
        self._slots[kind] = check
        return check.start()

    def get(self, kind: str) -> Optional[DeferredCheck]:
        return self._slots.get(kind)

    def is_pending(self, kind: str) -> bool:
        check = self._slots.get(kind)
        return check is not None and check.pending

    def cancel(self, kind: str) -> None:
        check = self._slots.pop(kind, None)
        if check is not None and check.pending:
            check.cancel()

    def cancel_all(self) -> None:
        for kind in list(self._slots):
            self.cancel(kind)
