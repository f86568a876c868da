# -*- coding: utf-8 -*-
from __future__ import annotations
"""Photo filters applied to captured slots before compositing (OpenCV)."""

import logging
from enum import Enum
from typing import Any, Callable, Dict

import cv2
import numpy as np

from booth.constants import JPEG_QUALITY
from booth.utils.storage import filtered_path

_log = logging.getLogger("FILTER")


class FilterKind(Enum):
    NONE = "none"
    BLACK_AND_WHITE = "black_and_white"
    SEPIA = "sepia"
    VINTAGE = "vintage"
    GLAMOUR = "glamour"
    COOL = "cool"
    WARM = "warm"
    HIGH_CONTRAST = "high_contrast"
    SOFT = "soft"
    VIVID = "vivid"

    @classmethod
    def parse(cls, value: Any) -> "FilterKind":
        if isinstance(value, FilterKind):
            return value
        key = str(value or "").strip().lower().replace(" ", "_").replace("-", "_")
        aliases = {"blackandwhite": "black_and_white", "bw": "black_and_white",
                   "highcontrast": "high_contrast", "": "none"}
        key = aliases.get(key, key)
        for k in cls:
            if k.value == key:
                return k
        _log.info("[FILTER] unknown filter %r -> none", value)
        return cls.NONE


# ─────────────────────────────────────────────────────────────
# Effects: float32 BGR in [0, 255] -> same
# ─────────────────────────────────────────────────────────────
# rows: output B, G, R / cols: input B, G, R
_GRAY = np.array([[0.114, 0.587, 0.299]] * 3, dtype=np.float32)
_SEPIA = np.array([
    [0.131, 0.534, 0.272],
    [0.168, 0.686, 0.349],
    [0.189, 0.769, 0.393],
], dtype=np.float32)


def _gray(img):
    return cv2.transform(img, _GRAY)


def _sepia(img):
    return cv2.transform(img, _SEPIA)


def _vignette(img, strength: float = 0.45):
    h, w = img.shape[:2]
    kx = cv2.getGaussianKernel(w, w * 0.6)
    ky = cv2.getGaussianKernel(h, h * 0.6)
    mask = ky @ kx.T
    mask = mask / mask.max()
    mask = (1.0 - strength) + strength * mask
    return img * mask[:, :, None].astype(np.float32)


def _vintage(img):
    faded = 0.6 * _sepia(img) + 0.4 * img
    faded = faded * 0.9 + 20.0
    return _vignette(faded)


def _glamour(img):
    glow = cv2.GaussianBlur(img, (0, 0), 8)
    screen = 255.0 - (255.0 - img) * (255.0 - glow) / 255.0
    return 0.6 * screen + 0.4 * img


def _tint(b: float, g: float, r: float):
    scale = np.array([b, g, r], dtype=np.float32)
    return lambda img: img * scale


def _high_contrast(img):
    return (img - 128.0) * 1.5 + 128.0


def _soft(img):
    blur = cv2.GaussianBlur(img, (0, 0), 3)
    return 0.5 * img + 0.5 * blur + 8.0


def _vivid(img):
    u8 = np.clip(img, 0, 255).astype(np.uint8)
    hsv = cv2.cvtColor(u8, cv2.COLOR_BGR2HSV).astype(np.float32)
    hsv[:, :, 1] = np.clip(hsv[:, :, 1] * 1.4, 0, 255)
    return cv2.cvtColor(hsv.astype(np.uint8), cv2.COLOR_HSV2BGR).astype(np.float32)


_EFFECTS: Dict[FilterKind, Callable[[np.ndarray], np.ndarray]] = {
    FilterKind.BLACK_AND_WHITE: _gray,
    FilterKind.SEPIA: _sepia,
    FilterKind.VINTAGE: _vintage,
    FilterKind.GLAMOUR: _glamour,
    FilterKind.COOL: _tint(1.12, 1.0, 0.88),
    FilterKind.WARM: _tint(0.88, 1.0, 1.12),
    FilterKind.HIGH_CONTRAST: _high_contrast,
    FilterKind.SOFT: _soft,
    FilterKind.VIVID: _vivid,
}


def apply_filter_array(bgr: np.ndarray, kind: FilterKind, intensity: float = 1.0) -> np.ndarray:
    """Filter a uint8 BGR image, blended with the source by intensity (0..1)."""
    effect = _EFFECTS.get(kind)
    if effect is None:
        return bgr.copy()
    t = float(min(1.0, max(0.0, intensity)))
    src = bgr.astype(np.float32)
    out = effect(src)
    if t < 1.0:
        out = src * (1.0 - t) + out * t
    return np.clip(out, 0, 255).astype(np.uint8)


class PhotoFilterService:
    def __init__(self, quality: int = JPEG_QUALITY):
        self.quality = quality

    def apply(self, path: str, kind: FilterKind, intensity: float = 1.0) -> str:
        """Write <stem>_filtered<ext> and return its path; original path on NONE or failure."""
        if kind is FilterKind.NONE:
            return path
        try:
            bgr = cv2.imread(path, cv2.IMREAD_COLOR)
            if bgr is None:
                raise IOError(f"cannot read {path}")
            out = apply_filter_array(bgr, kind, intensity)
            dst = filtered_path(path)
            if not cv2.imwrite(dst, out, [int(cv2.IMWRITE_JPEG_QUALITY), int(self.quality)]):
                raise IOError(f"cannot write {dst}")
        except Exception as ex:
            _log.warning("[FILTER] %s failed on %s: %s", kind.value, path, ex)
            return path
        _log.info("[FILTER] %s x%.2f -> %s", kind.value, intensity, dst)
        return dst
