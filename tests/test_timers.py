"""Tests for dontap.core.timers – the deterministic scheduler."""

from __future__ import annotations

from typing import List

from dontap.core.timers import ManualScheduler


class TestManualScheduler:
    def test_call_later_fires_once(self):
        scheduler = ManualScheduler()
        calls: List[int] = []
        scheduler.call_later(500, lambda: calls.append(scheduler.now))
        scheduler.advance(499)
        assert calls == []
        scheduler.advance(1000)
        assert calls == [500]
        assert scheduler.active_count == 0

    def test_call_every_repeats(self):
        scheduler = ManualScheduler()
        calls: List[int] = []
        scheduler.call_every(100, lambda: calls.append(scheduler.now))
        scheduler.advance(350)
        assert calls == [100, 200, 300]
        assert scheduler.now == 350

    def test_cancel(self):
        scheduler = ManualScheduler()
        calls: List[int] = []
        handle = scheduler.call_every(100, lambda: calls.append(1))
        scheduler.cancel(handle)
        scheduler.advance(1000)
        assert calls == []

    def test_cancel_none_is_noop(self):
        ManualScheduler().cancel(None)

    def test_callback_can_cancel_itself(self):
        scheduler = ManualScheduler()
        calls: List[int] = []
        handles = {}

        def tick() -> None:
            calls.append(scheduler.now)
            if len(calls) == 2:
                scheduler.cancel(handles["tick"])

        handles["tick"] = scheduler.call_every(100, tick)
        scheduler.advance(1000)
        assert calls == [100, 200]

    def test_timers_fire_in_order(self):
        scheduler = ManualScheduler()
        order: List[str] = []
        scheduler.call_later(300, lambda: order.append("late"))
        scheduler.call_later(100, lambda: order.append("early"))
        scheduler.advance(300)
        assert order == ["early", "late"]

    def test_timer_added_in_callback_runs_in_same_advance(self):
        scheduler = ManualScheduler()
        order: List[str] = []
        scheduler.call_later(100, lambda: scheduler.call_later(100, lambda: order.append("second")))
        scheduler.advance(250)
        assert order == ["second"]
