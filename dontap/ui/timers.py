"""QTimer-backed scheduler for the game session."""

from __future__ import annotations

from typing import Callable, Optional, Set

from PySide6.QtCore import QObject, QTimer


class QtScheduler(QObject):
    """Runs session timers on the Qt event loop.

    Handles are the QTimer objects themselves; cancelled or finished timers
    are stopped and released.
    """

    def __init__(self, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self._timers: Set[QTimer] = set()

    def call_every(self, interval_ms: int, callback: Callable[[], None]) -> QTimer:
        timer = QTimer(self)
        timer.setInterval(max(1, int(interval_ms)))
        timer.timeout.connect(callback)
        self._timers.add(timer)
        timer.start()
        return timer

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> QTimer:
        timer = QTimer(self)
        timer.setSingleShot(True)
        timer.setInterval(max(0, int(delay_ms)))

        def fire() -> None:
            self._release(timer)
            callback()

        timer.timeout.connect(fire)
        self._timers.add(timer)
        timer.start()
        return timer

    def cancel(self, handle: Optional[QTimer]) -> None:
        if handle is not None:
            self._release(handle)

    def cancel_all(self) -> None:
        for timer in list(self._timers):
            self._release(timer)

    def _release(self, timer: QTimer) -> None:
        if timer not in self._timers:
            return
        self._timers.discard(timer)
        timer.stop()
        timer.deleteLater()
