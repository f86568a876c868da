# -*- coding: utf-8 -*-
"""LiveViewPump: polls CameraPort preview frames (JPEG) and emits QImage."""
from __future__ import annotations

import logging
import time
from typing import Optional

from PySide6.QtCore import QObject, QTimer, Signal
from PySide6.QtGui import QImage

from booth.constants import LIVEVIEW_INTERVAL_MS, LIVEVIEW_MIN_INTERVAL_MS
from booth.services.camera_port import CameraPort
from booth.utils.image_ops import decode_jpeg

_log = logging.getLogger("LV")

LOG_EVERY_MS = 1000


class LiveViewPump(QObject):
    frameReady = Signal(QImage)

    def __init__(self, camera: CameraPort, interval_ms: int = LIVEVIEW_INTERVAL_MS,
                 parent: Optional[QObject] = None):
        super().__init__(parent)
        self._cam = camera
        self._last_log_ms = 0
        self._frames = 0
        self._timer = QTimer(self)
        self._timer.timeout.connect(self._tick)
        self.configure(interval_ms)

    def configure(self, interval_ms: int) -> None:
        try:
            self.ms = max(LIVEVIEW_MIN_INTERVAL_MS, int(interval_ms))
        except (TypeError, ValueError):
            self.ms = LIVEVIEW_INTERVAL_MS
        self._timer.setInterval(self.ms)

    @property
    def is_running(self) -> bool:
        return self._timer.isActive()

    @property
    def frames(self) -> int:
        return self._frames

    def start(self) -> None:
        if not self._timer.isActive():
            _log.info("[LV] pump start %sms", self.ms)
            self._timer.start()

    def stop(self) -> None:
        if self._timer.isActive():
            _log.info("[LV] pump stop frames=%s", self._frames)
        self._timer.stop()

    def _tick(self) -> None:
        # preview is best-effort: every failure is dropped here
        try:
            data = self._cam.get_live_view_frame()
            img = decode_jpeg(data)
        except Exception as ex:
            self._log_limited("[LV] frame err=%s", ex)
            return
        if img.isNull():
            if data:
                self._log_limited("[LV] undecodable frame (%s bytes)", len(data))
            return
        self._frames += 1
        self.frameReady.emit(img)

    def _log_limited(self, msg: str, *args) -> None:
        now = int(time.monotonic() * 1000)
        if now - self._last_log_ms >= LOG_EVERY_MS:
            self._last_log_ms = now
            _log.info(msg, *args)
