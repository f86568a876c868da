# -*- coding: utf-8 -*-
from __future__ import annotations
"""Timers and worker threads for the capture session.

All coordination happens on the thread owning the QtScheduler (the Qt
main thread). Blocking device calls go through run_in_worker(); their
results are marshaled back with a queued signal, the same way the live
view thread hands frames to the UI.
"""

import logging
import threading
import time
from typing import Any, Callable, Optional, Set

from PySide6.QtCore import QObject, QTimer, Signal, Qt

_log = logging.getLogger("SEQ")

DoneCallback = Callable[[Any, Optional[BaseException]], None]


class TimerHandle:
    def cancel(self) -> None:
        raise NotImplementedError

    @property
    def active(self) -> bool:
        raise NotImplementedError


class Scheduler:
    """Interface used by the controller and the review coordinator."""

    def call_later(self, ms: int, fn: Callable[[], None]) -> TimerHandle:
        raise NotImplementedError

    def run_in_worker(self, work: Callable[[], Any], done: DoneCallback) -> None:
        raise NotImplementedError

    def post(self, fn: Callable[[], None]) -> None:
        raise NotImplementedError

    def sleep(self, seconds: float) -> None:
        raise NotImplementedError

    def monotonic(self) -> float:
        raise NotImplementedError


# ─────────────────────────────────────────────────────────────
# Qt implementation
# ─────────────────────────────────────────────────────────────
class _QtTimerHandle(TimerHandle):
    def __init__(self, owner: "QtScheduler", timer: QTimer):
        self._owner = owner
        self._timer: Optional[QTimer] = timer

    def cancel(self) -> None:
        t, self._timer = self._timer, None
        if t is not None:
            t.stop()
            self._owner._forget(t)

    def _fired(self) -> None:
        t, self._timer = self._timer, None
        if t is not None:
            self._owner._forget(t)

    @property
    def active(self) -> bool:
        return self._timer is not None and self._timer.isActive()


class QtScheduler(QObject, Scheduler):
    _posted = Signal(object)

    def __init__(self, parent: Optional[QObject] = None):
        super().__init__(parent)
        self._timers: Set[QTimer] = set()
        self._posted.connect(self._run_posted, Qt.ConnectionType.QueuedConnection)

    def call_later(self, ms: int, fn: Callable[[], None]) -> TimerHandle:
        t = QTimer(self)
        t.setSingleShot(True)
        handle = _QtTimerHandle(self, t)

        def _fire():
            handle._fired()
            fn()

        t.timeout.connect(_fire)
        self._timers.add(t)
        t.start(max(0, int(ms)))
        return handle

    def _forget(self, t: QTimer) -> None:
        self._timers.discard(t)
        t.deleteLater()

    def post(self, fn: Callable[[], None]) -> None:
        self._posted.emit(fn)

    def _run_posted(self, fn) -> None:
        fn()

    def run_in_worker(self, work: Callable[[], Any], done: DoneCallback) -> None:
        def _work():
            result, error = None, None
            try:
                result = work()
            except Exception as ex:
                error = ex
            self.post(lambda: done(result, error))

        threading.Thread(target=_work, daemon=True).start()

    def sleep(self, seconds: float) -> None:
        time.sleep(max(0.0, float(seconds)))

    def monotonic(self) -> float:
        return time.monotonic()
