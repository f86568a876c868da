# -*- coding: utf-8 -*-
from __future__ import annotations

import logging
from typing import Optional

import cv2
import numpy as np
from PySide6.QtCore import Qt
from PySide6.QtGui import QImage

from booth.constants import THUMB_WIDTH

__all__ = ["decode_jpeg", "bgr_to_qimage", "load_thumbnail"]


_log = logging.getLogger("LV")


def bgr_to_qimage(bgr: np.ndarray) -> QImage:
    rgb = cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)
    h_, w_, _ = rgb.shape
    return QImage(rgb.data, w_, h_, 3*w_, QImage.Format_RGB888).copy()


def decode_jpeg(data: Optional[bytes]) -> QImage:
    """JPEG bytes -> QImage; Qt first, OpenCV as fallback. Null image on failure."""
    if not data:
        return QImage()
    img = QImage.fromData(data, "JPG")
    if img.isNull():
        try:
            arr = np.frombuffer(data, dtype=np.uint8)
            bgr = cv2.imdecode(arr, cv2.IMREAD_COLOR)
            if bgr is not None:
                img = bgr_to_qimage(bgr)
        except cv2.error:
            img = QImage()
    return img


def load_thumbnail(path: str, width: int = THUMB_WIDTH) -> QImage:
    """Decode a photo scaled to the given width (aspect kept)."""
    img = QImage(path)
    if img.isNull():
        _log.info("[THUMB] decode failed: %s", path)
        return QImage()
    if img.width() <= width:
        return img
    return img.scaledToWidth(width, Qt.SmoothTransformation)
