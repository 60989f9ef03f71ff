"""Timer scheduling used by the game session.

The session never talks to a concrete clock. The desktop UI plugs in a
QTimer-backed scheduler; tests and headless runs use :class:`ManualScheduler`,
which only moves when :meth:`ManualScheduler.advance` is called.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Hashable, Optional, Protocol


class Scheduler(Protocol):
    def call_every(self, interval_ms: int, callback: Callable[[], None]) -> Hashable:
        ...

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> Hashable:
        ...

    def cancel(self, handle: Optional[Hashable]) -> None:
        ...


@dataclass
class _Timer:
    due: int
    interval: Optional[int]
    callback: Callable[[], None]


class ManualScheduler:
    """Deterministic scheduler driven by :meth:`advance`."""

    def __init__(self) -> None:
        self._now = 0
        self._next_handle = 0
        self._timers: Dict[int, _Timer] = {}

    @property
    def now(self) -> int:
        return self._now

    @property
    def active_count(self) -> int:
        return len(self._timers)

    def call_every(self, interval_ms: int, callback: Callable[[], None]) -> int:
        return self._add(_Timer(self._now + interval_ms, max(1, interval_ms), callback))

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> int:
        return self._add(_Timer(self._now + delay_ms, None, callback))

    def cancel(self, handle: Optional[Hashable]) -> None:
        if handle is not None:
            self._timers.pop(handle, None)

    def advance(self, ms: int) -> None:
        """Move the clock forward, firing due timers in order."""
        target = self._now + ms
        while True:
            due = [(timer.due, handle) for handle, timer in self._timers.items() if timer.due <= target]
            if not due:
                break
            when, handle = min(due)
            timer = self._timers[handle]
            self._now = when
            if timer.interval is None:
                del self._timers[handle]
            else:
                timer.due += timer.interval
            timer.callback()
        self._now = target

    def _add(self, timer: _Timer) -> int:
        self._next_handle += 1
        self._timers[self._next_handle] = timer
        return self._next_handle
