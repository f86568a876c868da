# -*- coding: utf-8 -*-
from __future__ import annotations
"""CaptureSessionController: drives one guest session on a tethered camera.

IDLE -> PREPARING -> COUNTDOWN -> CAPTURING(/RETRYING) -> TRANSFERRING
     -> SLOT_FILLED -> (next photo | REVIEW_PENDING)

Device calls that block (busy polling, live view start, capture with
retries, file transfer) run on worker threads through the Scheduler; every
state change happens on the coordinating thread. Timers and worker results
are bound to the session generation that armed them, so abort/disconnect
make everything outstanding inert.
"""

import logging
import math
import os
import datetime as dt
from typing import Callable, Dict, Optional

from PySide6.QtCore import QObject, Signal
from PySide6.QtGui import QImage

from booth import constants as K
from booth.config.settings import CaptureSettings
from booth.models import ACTIVE_STATES, Session, SessionContext, SessionState, StartDecision
from booth.services.camera_port import (
    CameraChannel, CameraDisconnectedError, CameraError, CameraPort, CaptureGaveUp,
    DeviceBusyError, PhotoReadyEvent, TransferError,
)
from booth.services.liveview import LiveViewPump
from booth.services.sequence import PhotoSequenceTracker
from booth.utils.image_ops import load_thumbnail
from booth.utils.scheduling import Scheduler, TimerHandle
from booth.utils.storage import photo_target_path

_log = logging.getLogger("CAP")

MSG_IDLE            = "Touch START to begin"
MSG_NO_CAMERA       = "No camera connected"
MSG_BUSY_SESSION    = "Capture already in progress"
MSG_IN_REVIEW       = "Review in progress"
MSG_WAIT            = "Please wait {n} seconds between photos"
MSG_NOT_READY       = "Camera not ready - Please try again"
MSG_TOO_BUSY        = "Camera too busy - Please try again"
MSG_TIMEOUT         = "Photo capture timeout - Camera reset, please try again"
MSG_CONNECT         = "Please connect a camera"
MSG_CONNECTED       = "Camera connected - Touch START to begin"
MSG_SMILE           = "SMILE!"


class SessionCancelled(Exception):
    """Raised inside a worker when the session it belongs to was abandoned."""


class CaptureSessionController(QObject):
    stateChanged      = Signal(object)       # SessionState
    statusChanged     = Signal(str)
    countdownTick     = Signal(int)
    frameReady        = Signal(QImage)
    photoCaptured     = Signal(int, str)
    thumbnailReady    = Signal(int, QImage)
    sequenceCompleted = Signal(list)
    retakeCompleted   = Signal(int)
    captureFailed     = Signal(str)

    def __init__(self, camera: CameraPort, tracker: PhotoSequenceTracker, context: SessionContext,
                 scheduler: Scheduler, settings: Optional[CaptureSettings] = None,
                 parent: Optional[QObject] = None):
        super().__init__(parent)
        self._cam = camera
        self._tracker = tracker
        self._ctx = context
        self._sched = scheduler
        self._cfg = settings or CaptureSettings()

        self._state = SessionState.IDLE
        self._gen = 0                          # bumped by abort / disconnect
        self._attempt = 0                      # capture attempt id
        self._photo_seen_attempt = 0
        self._capture_in_flight = False
        self._timers: Dict[str, TimerHandle] = {}
        self._countdown_left = 0
        self._last_capture_at: Optional[float] = None

        self._pump = LiveViewPump(camera, self._cfg.liveview_interval_ms, self)
        self._pump.frameReady.connect(self.frameReady)

        self._channel = CameraChannel(self)
        self._channel.photoReady.connect(self._on_photo_ready)
        self._channel.disconnected.connect(self._on_disconnected)
        self._channel.connected.connect(self._on_connected)
        camera.attach_channel(self._channel)

        if not camera.is_connected:
            self._state = SessionState.DISCONNECTED

    # ─────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def tracker(self) -> PhotoSequenceTracker:
        return self._tracker

    @property
    def context(self) -> SessionContext:
        return self._ctx

    @property
    def settings(self) -> CaptureSettings:
        return self._cfg

    @property
    def live_view(self) -> LiveViewPump:
        return self._pump

    @property
    def session(self) -> Session:
        """Snapshot of the running session."""
        return Session(self._tracker.required_count, self._cfg.countdown_seconds,
                       list(self._tracker.slots), self._state, self._cfg.min_interval_ms)

    @property
    def is_capturing(self) -> bool:
        if self._state in ACTIVE_STATES:
            return True
        return any(self._timer_active(k) for k in ("next", "busy_retry"))

    # ─────────────────────────────────────────────────────────
    # Operator commands
    # ─────────────────────────────────────────────────────────
    def start(self) -> StartDecision:
        if not self._cam.is_connected:
            return self._reject(MSG_NO_CAMERA)
        if self.is_capturing:
            return self._reject(MSG_BUSY_SESSION)
        if self._state is SessionState.REVIEW_PENDING:
            return self._reject(MSG_IN_REVIEW)
        if self._last_capture_at is not None:
            elapsed_ms = (self._sched.monotonic() - self._last_capture_at) * 1000.0
            remaining_ms = self._cfg.min_interval_ms - elapsed_ms
            if remaining_ms > 0:
                wait = int(math.ceil(remaining_ms / 1000.0))
                return self._reject(MSG_WAIT.format(n=wait), wait)

        if self._tracker.next_index == 0:
            self._tracker.reset(self._ctx.required_photo_count)
        _log.info("[CAP] start photo %s/%s", self._tracker.next_index + 1, self._tracker.required_count)
        self._begin_preparing()
        return StartDecision(True)

    def start_retake(self, index: int) -> bool:
        if self._state is not SessionState.REVIEW_PENDING:
            _log.info("[CAP] retake refused in state %s", self._state.value)
            return False
        if not self._cam.is_connected:
            self._status(MSG_NO_CAMERA)
            return False
        try:
            self._tracker.begin_retake(index)
        except IndexError as ex:
            _log.info("[CAP] retake refused: %s", ex)
            return False
        _log.info("[CAP] retake slot %s", index)
        self._begin_preparing()
        return True

    def abort(self) -> None:
        _log.info("[CAP] abort in state %s", self._state.value)
        self._invalidate()
        self._release_live_view()
        self.reset_device("abort")
        self._tracker.reset(self._ctx.required_photo_count)
        self._set_state(SessionState.ABORTED)
        self._set_state(SessionState.IDLE if self._cam.is_connected else SessionState.DISCONNECTED)
        self._status(MSG_IDLE if self._cam.is_connected else MSG_CONNECT)

    def finish_session(self) -> None:
        """Composite done (or given up): clear slots for the next guest."""
        self._cancel_all()
        self._pump.stop()
        self._tracker.reset(self._ctx.required_photo_count)
        if self._cam.is_connected:
            self._set_state(SessionState.IDLE)
            self._status(MSG_IDLE)
        else:
            self._set_state(SessionState.DISCONNECTED)
            self._status(MSG_CONNECT)

    def set_context(self, context: SessionContext) -> None:
        if self.is_capturing:
            raise RuntimeError("cannot switch context while capturing")
        self._ctx = context
        self._tracker.reset(context.required_photo_count)

    def configure(self, settings: CaptureSettings) -> None:
        self._cfg = settings
        self._pump.configure(settings.liveview_interval_ms)

    def reset_device(self, reason: str = "") -> None:
        """Clear the device busy flag. The only place the session does so."""
        try:
            self._cam.is_busy = False
        except CameraError as ex:
            _log.warning("[CAP] busy reset failed (%s): %s", reason, ex)
            return
        _log.info("[CAP] busy cleared (%s)", reason)

    def close(self) -> None:
        self.abort()
        self._cam.detach_channel(self._channel)

    # ─────────────────────────────────────────────────────────
    # Preparing
    # ─────────────────────────────────────────────────────────
    def _begin_preparing(self) -> None:
        self._cancel_all()
        self._set_state(SessionState.PREPARING)
        self._status(f"{self._label()} - Get ready!")
        cam = self._cam
        gen = self._gen

        def work():
            self._drain_busy()
            if gen != self._gen:
                raise SessionCancelled()
            try:
                cam.stop_live_view()
            except Exception as ex:
                _log.info("[CAP] stop live view ignored: %s", ex)
            cam.start_live_view()

        self._in_worker(work, self._on_prepared, on_stale=self._stop_orphaned_live_view)

    def _drain_busy(self) -> None:
        for _ in range(K.BUSY_POLL_RETRIES):
            if not self._cam.is_busy:
                return
            self._sched.sleep(K.BUSY_POLL_INTERVAL_MS / 1000.0)
        if self._cam.is_busy:
            self.reset_device("busy before live view")

    def _on_prepared(self, _result, error: Optional[BaseException]) -> None:
        if error is not None:
            _log.warning("[CAP] prepare failed: %s", error)
            if isinstance(error, CameraDisconnectedError) or not self._cam.is_connected:
                self._on_disconnected()
                return
            self._fail(MSG_NOT_READY, SessionState.IDLE)
            return
        self._pump.start()
        self._arm("settle", self._cfg.liveview_settle_ms, self._begin_countdown)

    # ─────────────────────────────────────────────────────────
    # Countdown
    # ─────────────────────────────────────────────────────────
    def _begin_countdown(self) -> None:
        self._countdown_left = self._cfg.countdown_seconds
        self._set_state(SessionState.COUNTDOWN)
        self._countdown_step()

    def _countdown_step(self) -> None:
        n = self._countdown_left
        self.countdownTick.emit(n)
        if n > 0:
            self._status(f"{self._label()} - Get ready! {n}")
            self._countdown_left -= 1
            self._arm("countdown", K.COUNTDOWN_TICK_MS, self._countdown_step)
        else:
            self._status(MSG_SMILE)
            self._arm("grace", self._cfg.grace_delay_ms, self._capture)

    # ─────────────────────────────────────────────────────────
    # Capturing
    # ─────────────────────────────────────────────────────────
    def _capture(self) -> None:
        self._cancel("timeout")
        self._pump.stop()
        self._attempt += 1
        attempt = self._attempt
        self._capture_in_flight = True
        self._set_state(SessionState.CAPTURING)
        gen = self._gen
        _log.info("[CAP] capture attempt id=%s", attempt)

        def done(_result, error: Optional[BaseException]):
            if error is None:
                if attempt == self._attempt and self._capture_in_flight \
                        and self._photo_seen_attempt != attempt:
                    self._arm("timeout", self._cfg.capture_timeout_ms,
                              lambda: self._on_capture_timeout(attempt))
                return
            self._capture_in_flight = False
            if isinstance(error, CaptureGaveUp):
                _log.warning("[CAP] %s", error)
                self.reset_device("gave up")
                self._fail(MSG_TOO_BUSY, SessionState.IDLE)
            elif isinstance(error, CameraDisconnectedError):
                self._on_disconnected()
            else:
                _log.error("[CAP] capture error: %s", error)
                self._fail(f"Capture error: {error}", SessionState.ERROR)

        self._in_worker(lambda: self._capture_with_retry(gen), done)

    def _capture_with_retry(self, gen: int) -> int:
        """Worker side: one capture command, busy refusals retried with backoff."""
        k = 0
        while True:
            k += 1
            if gen != self._gen:
                raise SessionCancelled()
            try:
                self._cam.capture_photo()
            except DeviceBusyError:
                if k >= K.MAX_BUSY_ATTEMPTS:
                    raise CaptureGaveUp(k)
                delay_ms = min(K.BUSY_BACKOFF_STEP_MS * k, K.BUSY_BACKOFF_CAP_MS)
                _log.info("[CAP] busy attempt=%s wait=%sms", k, delay_ms)
                self._sched.post(lambda k=k: self._mark_retrying(gen, k))
                self._sched.sleep(delay_ms / 1000.0)
                # re-read after waiting; only a device still busy gets reset
                if gen == self._gen and k >= K.FORCE_RESET_AFTER and self._cam.is_busy:
                    self.reset_device(f"still busy after attempt {k}")
                continue
            if k > 1:
                _log.info("[CAP] capture accepted after %s attempts", k)
            return k

    def _mark_retrying(self, gen: int, k: int) -> None:
        if gen != self._gen or self._state not in (SessionState.CAPTURING, SessionState.RETRYING):
            return
        self._set_state(SessionState.RETRYING)
        self._status(f"Camera busy - retrying ({k})")

    def _on_capture_timeout(self, attempt: int) -> None:
        if attempt != self._attempt or not self._capture_in_flight \
                or self._state not in (SessionState.CAPTURING, SessionState.RETRYING):
            _log.info("[CAP] stale timeout id=%s ignored", attempt)
            return
        _log.warning("[CAP] capture timeout id=%s", attempt)
        self._capture_in_flight = False
        self._cancel_all()
        self._pump.stop()
        self.reset_device("capture timeout")
        try:
            self._cam.stop_live_view()
            self._cam.start_live_view()
        except Exception as ex:
            _log.warning("[CAP] live view restart failed: %s", ex)
        self._settle(SessionState.IDLE)
        self._status(MSG_TIMEOUT)
        self.captureFailed.emit(MSG_TIMEOUT)

    # ─────────────────────────────────────────────────────────
    # Transfer
    # ─────────────────────────────────────────────────────────
    def _on_photo_ready(self, event: PhotoReadyEvent) -> None:
        if not self._capture_in_flight \
                or self._state not in (SessionState.CAPTURING, SessionState.RETRYING):
            _log.warning("[CAP] photo %r with no capture in flight, released", event.handle)
            self._release(event.handle)
            return
        self._photo_seen_attempt = self._attempt
        self._capture_in_flight = False
        self._cancel("timeout")
        self._set_state(SessionState.TRANSFERRING)
        self._status("Saving photo...")

        cam = self._cam
        target_dir = self._ctx.originals_dir
        when = dt.datetime.now()

        def work():
            try:
                dest = photo_target_path(target_dir, event.filename, when)
                cam.transfer_file(event.handle, dest)
                if not os.path.isfile(dest):
                    raise TransferError(f"file missing after transfer: {dest}")
            finally:
                self._release(event.handle)
            return dest, load_thumbnail(dest)

        self._in_worker(work, self._on_transferred)

    def _release(self, handle) -> None:
        try:
            self._cam.release_resource(handle)
        except Exception as ex:
            _log.warning("[CAP] release %r failed: %s", handle, ex)

    def _on_transferred(self, result, error: Optional[BaseException]) -> None:
        if error is not None:
            _log.error("[CAP] transfer failed: %s", error)
            self._fail(f"Transfer error: {error}", SessionState.IDLE)
            return
        path, thumb = result
        self.reset_device("photo transferred")
        self._last_capture_at = self._sched.monotonic()

        retake = self._tracker.in_retake
        if retake:
            idx = self._tracker.retake_index
            self._tracker.replace(idx, path, thumb)
            self._tracker.end_retake()
        else:
            idx = self._tracker.record(path, thumb)
        self._set_state(SessionState.SLOT_FILLED)
        self.photoCaptured.emit(idx, path)
        if thumb is not None and not thumb.isNull():
            self.thumbnailReady.emit(idx, thumb)

        if retake:
            self._release_live_view()
            self._set_state(SessionState.REVIEW_PENDING)
            self._status(f"Photo {idx + 1} retaken!")
            self.retakeCompleted.emit(idx)
        elif self._tracker.is_complete:
            self._release_live_view()
            self._set_state(SessionState.REVIEW_PENDING)
            self._status("All photos taken!")
            self.sequenceCompleted.emit(self._tracker.paths())
        else:
            n = self._tracker.required_count
            self._status(f"Photo {idx + 1} saved! Photo {idx + 2} of {n} starting soon...")
            self._release_live_view()
            self._arm("next", self._cfg.inter_photo_delay_ms, self._advance)

    # ─────────────────────────────────────────────────────────
    # Between photos
    # ─────────────────────────────────────────────────────────
    def _waiting_message(self, prefix: str) -> str:
        return f"{prefix} - Touch START for photo {self._tracker.next_index + 1} of {self._tracker.required_count}"

    def _advance(self) -> None:
        if not self._cam.is_connected:
            self._set_state(SessionState.IDLE)
            self._status(self._waiting_message("Camera not connected"))
            return
        if self._cam.is_busy:
            self.reset_device("busy before next photo")
            self._arm("busy_retry", K.BUSY_RESET_WAIT_MS, self._advance_after_reset)
            return
        self._begin_preparing()

    def _advance_after_reset(self) -> None:
        if not self._cam.is_connected:
            self._set_state(SessionState.IDLE)
            self._status(self._waiting_message("Camera not connected"))
        elif self._cam.is_busy:
            _log.warning("[CAP] device still busy after reset")
            self._set_state(SessionState.IDLE)
            self._status(self._waiting_message("Camera reset failed"))
        else:
            self._begin_preparing()

    # ─────────────────────────────────────────────────────────
    # Connection events
    # ─────────────────────────────────────────────────────────
    def _on_disconnected(self) -> None:
        _log.warning("[CAP] camera disconnected in state %s", self._state.value)
        if self._state is SessionState.REVIEW_PENDING:
            return
        self._invalidate()
        if self._tracker.in_retake:
            self._settle(SessionState.DISCONNECTED)
            self._status(MSG_CONNECT)
            self.captureFailed.emit(MSG_CONNECT)
            return
        self._set_state(SessionState.DISCONNECTED)
        self._status(MSG_CONNECT)

    def _on_connected(self) -> None:
        _log.info("[CAP] camera connected")
        if self._state is SessionState.DISCONNECTED:
            self._set_state(SessionState.IDLE)
            self._status(MSG_CONNECTED)

    # ─────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────
    def _label(self) -> str:
        i = self._tracker.target_index + 1
        if self._tracker.in_retake:
            return f"Retake photo {i}"
        return f"Photo {i} of {self._tracker.required_count}"

    def _reject(self, reason: str, wait: int = 0) -> StartDecision:
        _log.info("[CAP] start rejected: %s", reason)
        self._status(reason)
        return StartDecision(False, reason, wait)

    def _fail(self, message: str, state: SessionState) -> None:
        self._cancel_all()
        self._capture_in_flight = False
        self._release_live_view()
        self.reset_device("failure")
        self._settle(state)
        self._status(message)
        self.captureFailed.emit(message)

    def _settle(self, state: SessionState) -> None:
        # a failed retake keeps the earlier photo and goes back to review
        if self._tracker.in_retake:
            self._tracker.end_retake()
            state = SessionState.REVIEW_PENDING
        self._set_state(state)

    def _invalidate(self) -> None:
        self._gen += 1
        self._cancel_all()
        self._capture_in_flight = False
        self._pump.stop()

    def _release_live_view(self) -> None:
        self._pump.stop()
        try:
            self._cam.stop_live_view()
        except Exception as ex:
            _log.info("[CAP] stop live view ignored: %s", ex)

    def _stop_orphaned_live_view(self) -> None:
        # an abandoned prepare may have started live view after the session let go of it
        if self._state in ACTIVE_STATES:
            return
        self._release_live_view()

    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        _log.info("[CAP] %s -> %s", self._state.value, state.value)
        self._state = state
        self.stateChanged.emit(state)

    def _status(self, text: str) -> None:
        self.statusChanged.emit(text)

    def _in_worker(self, work: Callable[[], object], done,
                   on_stale: Optional[Callable[[], None]] = None) -> None:
        gen = self._gen

        def _done(result, error):
            if gen != self._gen:
                _log.info("[CAP] result of abandoned session dropped")
                if on_stale is not None:
                    on_stale()
                return
            done(result, error)

        self._sched.run_in_worker(work, _done)

    def _arm(self, key: str, ms: int, fn: Callable[[], None]) -> None:
        self._cancel(key)
        gen = self._gen
        box: Dict[str, TimerHandle] = {}

        def _fire():
            if self._timers.get(key) is box.get("h"):
                self._timers.pop(key, None)
            if gen != self._gen:
                _log.info("[CAP] stale timer %s ignored", key)
                return
            fn()

        box["h"] = self._timers[key] = self._sched.call_later(ms, _fire)

    def _cancel(self, key: str) -> None:
        h = self._timers.pop(key, None)
        if h is not None:
            h.cancel()

    def _cancel_all(self) -> None:
        for key in list(self._timers):
            self._cancel(key)

    def _timer_active(self, key: str) -> bool:
        h = self._timers.get(key)
        return h is not None and h.active
