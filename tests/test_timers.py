"""
Tests for deferred checks and wait slots.
"""
import threading

from help_reasoner.timers import DeferredCheck, WaitSlots, thread_scheduler


class TestDeferredCheck:
    """Self-rescheduling waits."""

    def test_fires_after_timeout(self, clock, scheduler):
        fired = []
        check = DeferredCheck("feedback", 1, 2.0, lambda: fired.append(clock()),
                              tick_interval=0.5, clock=clock, scheduler=scheduler).start()
        scheduler.advance(1.5)
        assert fired == []
        assert check.pending
        scheduler.advance(0.5)
        assert fired == [2.0]
        assert check.fired and not check.pending
        assert check.ticks == 4

    def test_fires_once(self, clock, scheduler):
        fired = []
        DeferredCheck("feedback", 1, 1.0, lambda: fired.append(1),
                      clock=clock, scheduler=scheduler).start()
        scheduler.advance(10.0)
        assert fired == [1]
        assert scheduler.pending == 0

    def test_cancel_stops_chain(self, clock, scheduler):
        fired = []
        check = DeferredCheck("feedback", 1, 1.0, lambda: fired.append(1),
                              clock=clock, scheduler=scheduler).start()
        scheduler.advance(0.5)
        check.cancel()
        scheduler.advance(5.0)
        assert fired == []
        assert check.cancelled

    def test_still_waiting_false_finishes_silently(self, clock, scheduler):
        waiting = {"value": True}
        fired = []
        check = DeferredCheck("next_state", 1, 2.0, lambda: fired.append(1),
                              clock=clock, scheduler=scheduler,
                              still_waiting=lambda: waiting["value"]).start()
        scheduler.advance(1.0)
        waiting["value"] = False
        scheduler.advance(5.0)
        assert fired == []
        assert check.finished

    def test_hold_postpones_deadline(self, clock, scheduler):
        held = {"value": True}
        fired = []
        DeferredCheck("feedback", 1, 1.0, lambda: fired.append(clock()),
                      clock=clock, scheduler=scheduler,
                      hold=lambda: held["value"]).start()
        scheduler.advance(3.0)
        assert fired == []
        held["value"] = False
        scheduler.advance(0.5)
        assert fired == [3.5]

    def test_lock_held_during_tick(self, clock, scheduler):
        lock = threading.RLock()
        seen = []

        def on_timeout():
            result = []
            t = threading.Thread(target=lambda: result.append(lock.acquire(blocking=False)))
            t.start()
            t.join()
            seen.append(result[0])

        DeferredCheck("unfreeze", 1, 0.5, on_timeout, clock=clock,
                      scheduler=scheduler, lock=lock).start()
        scheduler.advance(0.5)
        assert seen == [False]

    def test_elapsed(self, clock, scheduler):
        check = DeferredCheck("feedback", 1, 10.0, lambda: None,
                              clock=clock, scheduler=scheduler)
        assert check.elapsed() == 0.0
        check.start()
        scheduler.advance(2.0)
        assert check.elapsed() == 2.0


class TestWaitSlots:
    """One live wait per kind."""

    def test_rearm_invalidates_previous(self, clock, scheduler):
        slots = WaitSlots(tick_interval=0.5, clock=clock, scheduler=scheduler)
        fired = []
        first = slots.arm("unfreeze", 2.0, lambda: fired.append("first"))
        scheduler.advance(1.0)
        second = slots.arm("unfreeze", 2.0, lambda: fired.append("second"))
        assert first.cancelled
        assert second.token > first.token
        scheduler.advance(1.5)
        assert fired == []
        scheduler.advance(0.5)
        assert fired == ["second"]

    def test_kinds_are_independent(self, clock, scheduler):
        slots = WaitSlots(tick_interval=0.5, clock=clock, scheduler=scheduler)
        fired = []
        slots.arm("feedback", 1.0, lambda: fired.append("feedback"))
        slots.arm("unfreeze", 2.0, lambda: fired.append("unfreeze"))
        scheduler.advance(2.0)
        assert fired == ["feedback", "unfreeze"]

    def test_cancel_and_pending(self, clock, scheduler):
        slots = WaitSlots(tick_interval=0.5, clock=clock, scheduler=scheduler)
        slots.arm("feedback", 1.0, lambda: None)
        assert slots.is_pending("feedback")
        slots.cancel("feedback")
        assert not slots.is_pending("feedback")
        assert slots.get("feedback") is None
        slots.cancel("feedback")

    def test_cancel_all(self, clock, scheduler):
        slots = WaitSlots(tick_interval=0.5, clock=clock, scheduler=scheduler)
        fired = []
        slots.arm("feedback", 1.0, lambda: fired.append(1))
        slots.arm("next_state", 1.0, lambda: fired.append(2))
        slots.cancel_all()
        scheduler.advance(5.0)
        assert fired == []

    def test_fired_wait_not_pending(self, clock, scheduler):
        slots = WaitSlots(tick_interval=0.5, clock=clock, scheduler=scheduler)
        slots.arm("feedback", 0.5, lambda: None)
        scheduler.advance(0.5)
        assert not slots.is_pending("feedback")


class TestThreadScheduler:
    """The default scheduler runs on a daemon timer thread."""

    def test_runs_callback(self):
        done = threading.Event()
        timer = thread_scheduler(0.01, done.set)
        assert timer.daemon
        assert done.wait(2.0)

    def test_cancel(self):
        done = threading.Event()
        timer = thread_scheduler(0.5, done.set)
        timer.cancel()
        assert not done.wait(0.7)
