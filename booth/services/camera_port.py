# -*- coding: utf-8 -*-
from __future__ import annotations
"""CameraPort: the tethered-camera boundary used by the capture session.

A device binding implements CameraPort; the session talks to it through
blocking calls (run on worker threads) and receives device events on a
CameraChannel it owns.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from PySide6.QtCore import QObject, Signal

_log = logging.getLogger("CAM")


# ─────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────
class CameraError(Exception):
    """Device-level failure that is not retryable."""


class DeviceBusyError(CameraError):
    """Device refused the command because it is still busy; retryable."""


class CameraDisconnectedError(CameraError):
    pass


class TransferError(CameraError):
    pass


class CaptureGaveUp(CameraError):
    def __init__(self, attempts: int):
        super().__init__(f"device still busy after {attempts} attempts")
        self.attempts = attempts


# ─────────────────────────────────────────────────────────────
# Events
# ─────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class PhotoReadyEvent:
    handle: Any
    filename: Optional[str] = None


class CameraChannel(QObject):
    """Event channel owned by one session for its whole lifetime."""
    photoReady   = Signal(object)        # PhotoReadyEvent
    disconnected = Signal()
    connected    = Signal()


# ─────────────────────────────────────────────────────────────
# Port
# ─────────────────────────────────────────────────────────────
class CameraPort:
    """Abstract device. Blocking methods are called from worker threads."""

    def __init__(self) -> None:
        self._channel: Optional[CameraChannel] = None

    # events
    def attach_channel(self, channel: CameraChannel) -> None:
        if self._channel is not None and self._channel is not channel:
            _log.info("[CAM] channel replaced")
        self._channel = channel

    def detach_channel(self, channel: CameraChannel) -> None:
        if self._channel is channel:
            self._channel = None

    @property
    def channel(self) -> Optional[CameraChannel]:
        return self._channel

    # state
    @property
    def is_connected(self) -> bool:
        raise NotImplementedError

    @property
    def is_busy(self) -> bool:
        raise NotImplementedError

    @is_busy.setter
    def is_busy(self, value: bool) -> None:
        raise NotImplementedError

    # commands
    def capture_photo(self) -> None:
        raise NotImplementedError

    def start_live_view(self) -> None:
        raise NotImplementedError

    def stop_live_view(self) -> None:
        raise NotImplementedError

    def get_live_view_frame(self) -> Optional[bytes]:
        raise NotImplementedError

    def transfer_file(self, handle: Any, dest_path: str) -> None:
        raise NotImplementedError

    def release_resource(self, handle: Any) -> None:
        raise NotImplementedError

    # helpers for implementations
    def _emit_photo_ready(self, handle: Any, filename: Optional[str]) -> None:
        ch = self._channel
        if ch is not None:
            ch.photoReady.emit(PhotoReadyEvent(handle, filename))

    def _emit_disconnected(self) -> None:
        if self._channel is not None:
            self._channel.disconnected.emit()

    def _emit_connected(self) -> None:
        if self._channel is not None:
            self._channel.connected.emit()
