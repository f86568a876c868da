"""Shared test fixtures."""

import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import itertools
from dataclasses import dataclass, field
from typing import Any, Callable

import cv2
import numpy as np
import pytest
from PySide6.QtGui import QGuiApplication

from booth.config.settings import CaptureSettings
from booth.models import (
    Bounds, PlaceholderItem, SessionContext, Slot, TemplateDefinition, TextItem, TextAlignment,
)
from booth.services.capture_session import CaptureSessionController
from booth.services.sequence import PhotoSequenceTracker
from booth.services.virtual_camera import VirtualCamera
from booth.utils.scheduling import Scheduler, TimerHandle


@pytest.fixture(scope="session", autouse=True)
def qapp():
    app = QGuiApplication.instance() or QGuiApplication([])
    yield app


@dataclass
class ManualTimer(TimerHandle):
    """Timer on the virtual clock."""

    due_ms: int
    seq: int
    fn: Callable[[], None]
    cancelled: bool = False
    fired: bool = False

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.fired)


@dataclass
class ManualScheduler(Scheduler):
    """Virtual-clock scheduler for tests: workers run inline, sleeps are recorded."""

    now_ms: int = 0
    sleeps: list[float] = field(default_factory=list)
    timers: list[ManualTimer] = field(default_factory=list)
    _seq: Any = field(default_factory=itertools.count)

    def call_later(self, ms: int, fn: Callable[[], None]) -> TimerHandle:
        t = ManualTimer(self.now_ms + max(0, int(ms)), next(self._seq), fn)
        self.timers.append(t)
        return t

    def run_in_worker(self, work, done) -> None:
        try:
            result = work()
        except Exception as ex:
            done(None, ex)
            return
        done(result, None)

    def post(self, fn: Callable[[], None]) -> None:
        fn()

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)

    def monotonic(self) -> float:
        return self.now_ms / 1000.0

    def advance(self, ms: int) -> None:
        end = self.now_ms + int(ms)
        while True:
            due = [t for t in self.timers if t.active and t.due_ms <= end]
            if not due:
                break
            t = min(due, key=lambda x: (x.due_ms, x.seq))
            self.now_ms = t.due_ms
            t.fired = True
            t.fn()
        self.now_ms = end
        self.timers = [t for t in self.timers if t.active]

    @property
    def pending(self) -> int:
        return sum(1 for t in self.timers if t.active)


@dataclass
class DeferredScheduler(ManualScheduler):
    """Workers are queued and run only by run_jobs(), as if the worker thread lagged behind."""

    jobs: list = field(default_factory=list)

    def run_in_worker(self, work, done) -> None:
        self.jobs.append((work, done))

    def run_jobs(self) -> None:
        while self.jobs:
            work, done = self.jobs.pop(0)
            ManualScheduler.run_in_worker(self, work, done)


@dataclass(eq=False)
class Recorder:
    """Collects emissions of one signal."""

    calls: list = field(default_factory=list)

    def __call__(self, *args) -> None:
        self.calls.append(args[0] if len(args) == 1 else args)

    @property
    def last(self):
        return self.calls[-1] if self.calls else None


def record(signal) -> Recorder:
    rec = Recorder()
    signal.connect(rec)
    return rec


def make_template(photos: int = 3, text: str | None = "Thank You", width: int = 600,
                  height: int = 1800, background: str | None = "#FFFFFFFF") -> TemplateDefinition:
    items = []
    slot_h = (height - 400) // max(1, photos)
    for n in range(1, photos + 1):
        items.append(PlaceholderItem(
            bounds=Bounds(40, 40 + (n - 1) * slot_h, width - 80, slot_h - 40),
            z_index=1,
            placeholder_number=n,
        ))
    if text:
        items.append(TextItem(
            bounds=Bounds(40, height - 300, width - 80, 120),
            z_index=2,
            text=text,
            font_size=48,
            alignment=TextAlignment.CENTER,
        ))
    return TemplateDefinition("test", width, height, tuple(items), background)


def make_photo(path, bgr=(0, 0, 255), size=(400, 300)) -> str:
    w, h = size
    img = np.zeros((h, w, 3), dtype=np.uint8)
    img[:] = bgr
    os.makedirs(os.path.dirname(str(path)), exist_ok=True)
    cv2.imwrite(str(path), img)
    return str(path)


def filled_slots(paths) -> list[Slot]:
    return [Slot(i, p, None, p is not None) for i, p in enumerate(paths)]


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def camera(scheduler) -> VirtualCamera:
    return VirtualCamera(scheduler, emit_delay_ms=300, width=320, height=240)


@pytest.fixture
def capture_settings() -> CaptureSettings:
    return CaptureSettings(countdown_seconds=1)


@pytest.fixture
def photo_root(tmp_path) -> str:
    return str(tmp_path / "photos")


def make_controller(camera, scheduler, photo_root, photos=3, settings=None):
    ctx = SessionContext("Test Event", make_template(photos), photo_root)
    tracker = PhotoSequenceTracker(ctx.required_photo_count)
    ctl = CaptureSessionController(camera, tracker, ctx, scheduler,
                                   settings or CaptureSettings(countdown_seconds=1))
    return ctl


@pytest.fixture
def controller(camera, scheduler, photo_root, capture_settings):
    ctl = make_controller(camera, scheduler, photo_root, 3, capture_settings)
    yield ctl
    ctl.close()
