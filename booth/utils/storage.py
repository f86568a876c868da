# booth/utils/storage.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import os, re, datetime as dt
from typing import Optional

from PySide6.QtGui import QImage, QImageWriter

from booth.constants import EVENT_NAME_MAX, JPEG_QUALITY

# ─────────────────────────────────────────────────────────────
# Internal utils
# ─────────────────────────────────────────────────────────────
def _ensure_dir(p: str) -> str:
    os.makedirs(p, exist_ok=True); return p

ensure_dir = _ensure_dir

_INVALID = re.compile(r'[<>:"/\\|?*\x00-\x1f\s]')

def sanitize_event_name(name: Optional[str], when: Optional[dt.datetime] = None) -> str:
    """Folder-safe event name: invalid chars and spaces -> '_', capped at 50."""
    safe = _INVALID.sub("_", (name or "").strip())
    safe = safe.strip("._")
    if not safe:
        return f"Event_{(when or dt.datetime.now()).strftime('%Y_%m_%d')}"
    return safe[:EVENT_NAME_MAX]

def unique_path(path: str) -> str:
    """path, or path with _2, _3 ... before the extension when taken."""
    if not os.path.exists(path):
        return path
    stem, ext = os.path.splitext(path)
    i = 2
    while True:
        cand = f"{stem}_{i}{ext}"
        if not os.path.exists(cand):
            return cand
        i += 1

# ── file name rules
def synthesize_photo_name(when: Optional[dt.datetime] = None) -> str:
    return f"IMG_{(when or dt.datetime.now()).strftime('%Y%m%d_%H%M%S')}.jpg"

def photo_target_path(originals_dir: str, filename: Optional[str], when: Optional[dt.datetime] = None) -> str:
    name = os.path.basename((filename or "").strip()) or synthesize_photo_name(when)
    _ensure_dir(originals_dir)
    return unique_path(os.path.join(originals_dir, name))

def composed_output_path(composed_dir: str, event_name: str, when: Optional[dt.datetime] = None) -> str:
    stamp = (when or dt.datetime.now()).strftime("%Y%m%d_%H%M%S")
    _ensure_dir(composed_dir)
    return unique_path(os.path.join(composed_dir, f"{event_name}_{stamp}.jpg"))

def filtered_path(src: str) -> str:
    stem, ext = os.path.splitext(src)
    return f"{stem}_filtered{ext or '.jpg'}"

# ── image save
def qimage_save(img: QImage, path: str, fmt: str = "JPG", quality: int = JPEG_QUALITY) -> bool:
    _ensure_dir(os.path.dirname(path) or ".")
    w = QImageWriter(path, bytes(fmt, "ascii"))
    if quality >= 0: w.setQuality(quality)
    return w.write(img)

def cover_crop_rect(iw: int, ih: int, tw: float, th: float):
    """Centered source rect (x, y, w, h) whose aspect matches tw:th."""
    src_ar = iw / float(ih); dst_ar = tw / float(th)
    if src_ar > dst_ar:
        want_w = int(dst_ar * ih); x = (iw - want_w) // 2
        return x, 0, want_w, ih
    else:
        want_h = int(iw / dst_ar); y = (ih - want_h) // 2
        return 0, y, iw, want_h
