# -*- coding: utf-8 -*-
from __future__ import annotations
"""VirtualCamera: software CameraPort that renders numbered test frames.

Runs the booth without hardware and lets tests script device behaviour
(busy refusals, lost photo events, transfer failures, disconnects).
"""

import itertools
import logging
import os
import threading
from collections import Counter
from typing import Any, Dict, List, Optional

import cv2
import numpy as np

from booth.services.camera_port import (
    CameraPort, CameraDisconnectedError, DeviceBusyError, TransferError,
)
from booth.utils.scheduling import Scheduler

_log = logging.getLogger("CAM")

_LV_SIZE = (640, 424)


def render_test_frame(width: int, height: int, label: str, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    base = rng.integers(40, 200, size=3)
    img = np.zeros((height, width, 3), dtype=np.uint8)
    img[:] = base.astype(np.uint8)
    cv2.rectangle(img, (width // 10, height // 10), (width * 9 // 10, height * 9 // 10), (255, 255, 255), 4)
    scale = max(1.0, width / 400.0)
    cv2.putText(img, label, (width // 6, height // 2), cv2.FONT_HERSHEY_SIMPLEX, scale,
                (255, 255, 255), max(1, int(scale * 2)), cv2.LINE_AA)
    return img


def encode_jpeg(bgr: np.ndarray, quality: int = 90) -> bytes:
    ok, buf = cv2.imencode(".jpg", bgr, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise TransferError("jpeg encode failed")
    return buf.tobytes()


class VirtualCamera(CameraPort):
    def __init__(self, scheduler: Optional[Scheduler] = None, emit_delay_ms: Optional[int] = 300,
                 width: int = 1200, height: int = 800):
        super().__init__()
        self._sched = scheduler
        self.emit_delay_ms = emit_delay_ms
        self.width = width
        self.height = height
        self._lock = threading.RLock()
        self._connected = True
        self._busy = False
        self._handles = itertools.count(1)
        self._pending: Dict[Any, bytes] = {}
        self._dropped: List[Any] = []
        self._lv_frames = itertools.count(1)

        # scripted behaviour
        self.busy_failures = 0                       # next N captures refuse with busy
        self.fail_with: Optional[Exception] = None   # next capture raises this
        self.drop_events = 0                         # next N photos never report ready
        self.empty_filenames = False
        self.busy_locked = False                     # forced reset is ignored
        self.transfer_error: Optional[Exception] = None

        # observations
        self.capture_calls = 0
        self.live_view_on = False
        self.live_view_starts = 0
        self.live_view_stops = 0
        self.released: Counter = Counter()
        self.transferred: List[str] = []

    # ── state
    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def is_busy(self) -> bool:
        return self._busy

    @is_busy.setter
    def is_busy(self, value: bool) -> None:
        if not value and self.busy_locked:
            return
        self._busy = bool(value)

    def disconnect(self) -> None:
        with self._lock:
            self._connected = False
            self.live_view_on = False
        _log.info("[CAM] virtual camera disconnected")
        self._emit_disconnected()

    def reconnect(self) -> None:
        with self._lock:
            self._connected = True
            self._busy = False
        _log.info("[CAM] virtual camera connected")
        self._emit_connected()

    # ── commands
    def capture_photo(self) -> None:
        with self._lock:
            self.capture_calls += 1
            if not self._connected:
                raise CameraDisconnectedError("camera not connected")
            if self.busy_failures > 0:
                self.busy_failures -= 1
                self._busy = True
                raise DeviceBusyError("device busy")
            if self.fail_with is not None:
                ex, self.fail_with = self.fail_with, None
                raise ex
            self._busy = True
            handle = next(self._handles)
            label = f"PHOTO {handle}"
            self._pending[handle] = encode_jpeg(render_test_frame(self.width, self.height, label, handle))
            if self.drop_events > 0:
                self.drop_events -= 1
                self._dropped.append(handle)
                _log.info("[CAM] photo %s ready event dropped", handle)
                return
        self._schedule_ready(handle)

    def _filename_for(self, handle: Any) -> Optional[str]:
        return "" if self.empty_filenames else f"DSC{int(handle):05d}.JPG"

    def _schedule_ready(self, handle: Any) -> None:
        name = self._filename_for(handle)
        if self._sched is None or self.emit_delay_ms is None:
            self._emit_photo_ready(handle, name)
            return
        delay = int(self.emit_delay_ms)
        self._sched.post(lambda: self._sched.call_later(delay, lambda: self._emit_photo_ready(handle, name)))

    def deliver_dropped(self) -> int:
        """Late delivery of photo events that were dropped earlier."""
        with self._lock:
            handles, self._dropped = self._dropped, []
        for h in handles:
            self._emit_photo_ready(h, self._filename_for(h))
        return len(handles)

    def start_live_view(self) -> None:
        if not self._connected:
            raise CameraDisconnectedError("camera not connected")
        self.live_view_on = True
        self.live_view_starts += 1

    def stop_live_view(self) -> None:
        self.live_view_on = False
        self.live_view_stops += 1

    def get_live_view_frame(self) -> Optional[bytes]:
        if not (self._connected and self.live_view_on):
            return None
        n = next(self._lv_frames)
        return encode_jpeg(render_test_frame(_LV_SIZE[0], _LV_SIZE[1], f"LIVE {n}", n % 7), 70)

    def transfer_file(self, handle: Any, dest_path: str) -> None:
        with self._lock:
            if self.transfer_error is not None:
                ex, self.transfer_error = self.transfer_error, None
                raise ex
            data = self._pending.get(handle)
        if data is None:
            raise TransferError(f"unknown handle {handle!r}")
        os.makedirs(os.path.dirname(dest_path) or ".", exist_ok=True)
        with open(dest_path, "wb") as f:
            f.write(data)
        self.transferred.append(dest_path)

    def release_resource(self, handle: Any) -> None:
        with self._lock:
            self._pending.pop(handle, None)
            self.released[handle] += 1
