# -*- coding: utf-8 -*-
from __future__ import annotations
"""TemplateCompositor: renders a template's canvas items with the session's
photos into one print-ready JPEG."""

import logging
import os
import datetime as dt
from contextlib import contextmanager
from typing import Optional, Sequence

from PySide6.QtCore import Qt, QPointF, QRectF, QUrl
from PySide6.QtGui import (
    QBrush, QColor, QFont, QFontMetricsF, QImage, QPainter, QPainterPath, QPen,
)

from booth import constants as K
from booth.models import (
    Bounds, CanvasItem, CompositionResult, ImageItem, PlaceholderItem, SessionContext,
    ShapeItem, ShapeKind, Slot, TemplateDefinition, TextAlignment, TextItem,
)
from booth.utils.storage import composed_output_path, cover_crop_rect, qimage_save

_log = logging.getLogger("COMP")

_DPM = int(round(K.CANVAS_DPI / 0.0254))     # dots per meter
_ALIGN = {
    TextAlignment.LEFT: Qt.AlignLeft,
    TextAlignment.CENTER: Qt.AlignHCenter,
    TextAlignment.RIGHT: Qt.AlignRight,
}


def _flags(*parts) -> int:
    out = 0
    for p in parts:
        out |= int(getattr(p, "value", p))
    return out


def _qcolor(value: Optional[str], fallback) -> QColor:
    c = QColor(value) if value else QColor()
    return c if c.isValid() else QColor(fallback)


def resolve_image_path(source: str) -> str:
    s = (source or "").strip()
    if s.lower().startswith("file:///"):
        return QUrl(s).toLocalFile()
    if s.lower().startswith("file://"):
        return s[7:]
    return s


def _rect(b: Bounds) -> QRectF:
    return QRectF(b.x, b.y, b.width, b.height)


def effective_rotation(rotation: float) -> float:
    """Rotation folded into [0, 360); ~0 and ~360 count as none."""
    r = float(rotation or 0.0) % 360.0
    if r < K.ROTATION_EPSILON or 360.0 - r < K.ROTATION_EPSILON:
        return 0.0
    return r


@contextmanager
def _item_transform(p: QPainter, item: CanvasItem):
    p.save()
    try:
        r = effective_rotation(item.rotation)
        if r:
            cx, cy = item.bounds.center
            p.translate(cx, cy)
            p.rotate(r)
            p.translate(-cx, -cy)
        yield
    finally:
        p.restore()


class TemplateCompositor:
    def __init__(self, context: SessionContext, quality: int = K.JPEG_QUALITY):
        self._ctx = context
        self.quality = quality

    # ─────────────────────────────────────────────────────────────
    # Entry
    # ─────────────────────────────────────────────────────────────
    def compose(self, template: Optional[TemplateDefinition], slots: Sequence[Slot],
                when: Optional[dt.datetime] = None) -> CompositionResult:
        if template is None or not template.items:
            return self._failed("No template items to compose")
        if not any(s.filled and s.file_path for s in slots):
            return self._failed("No photos to compose")
        if template.canvas_width <= 0 or template.canvas_height <= 0:
            return self._failed(f"Invalid canvas size {template.canvas_width}x{template.canvas_height}")

        canvas = self.render(template, slots)
        out = composed_output_path(self._ctx.composed_dir, self._ctx.safe_event_name, when)
        rgb = canvas.convertToFormat(QImage.Format_RGB888)
        if not qimage_save(rgb, out, "JPG", self.quality):
            return self._failed(f"Could not write {out}")
        _log.info("[COMP] saved %s (%sx%s)", out, canvas.width(), canvas.height())
        return CompositionResult(out, True, "Composition saved")

    def _failed(self, message: str) -> CompositionResult:
        _log.warning("[COMP] %s", message)
        return CompositionResult(None, False, message)

    def render(self, template: TemplateDefinition, slots: Sequence[Slot]) -> QImage:
        img = QImage(template.canvas_width, template.canvas_height, QImage.Format_ARGB32)
        img.setDotsPerMeterX(_DPM)
        img.setDotsPerMeterY(_DPM)
        img.fill(_qcolor(template.background_color, Qt.white))

        # stable: equal z keeps definition order
        items = sorted(template.items, key=lambda it: it.z_index)
        p = QPainter(img)
        try:
            p.setRenderHint(QPainter.Antialiasing, True)
            p.setRenderHint(QPainter.SmoothPixmapTransform, True)
            p.setRenderHint(QPainter.TextAntialiasing, True)
            for item in items:
                if not item.visible:
                    continue
                try:
                    with _item_transform(p, item):
                        self._draw_item(p, item, slots, img)
                except Exception as ex:
                    _log.error("[COMP] item %s (%s) skipped: %s",
                               item.name or type(item).__name__, item.z_index, ex)
        finally:
            p.end()
        return img

    def _draw_item(self, p: QPainter, item: CanvasItem, slots: Sequence[Slot], device: QImage) -> None:
        if isinstance(item, PlaceholderItem):
            self._draw_placeholder(p, item, slots)
        elif isinstance(item, ImageItem):
            self._draw_image(p, item)
        elif isinstance(item, TextItem):
            self._draw_text(p, item, device)
        elif isinstance(item, ShapeItem):
            self._draw_shape(p, item)
        else:
            _log.info("[COMP] unknown item %s", type(item).__name__)

    # ─────────────────────────────────────────────────────────────
    # Items
    # ─────────────────────────────────────────────────────────────
    def _draw_placeholder(self, p: QPainter, item: PlaceholderItem, slots: Sequence[Slot]) -> None:
        b = item.bounds
        if b.width <= 0 or b.height <= 0:
            return
        idx = item.placeholder_number - 1
        slot = slots[idx] if 0 <= idx < len(slots) else None
        if slot is None or not slot.filled or not slot.file_path:
            _log.info("[COMP] placeholder %s has no photo, left as background", item.placeholder_number)
            return
        photo = QImage(slot.file_path)
        if photo.isNull():
            raise IOError(f"cannot decode {slot.file_path}")

        x, y, w, h = cover_crop_rect(photo.width(), photo.height(), b.width, b.height)
        p.drawImage(_rect(b), photo, QRectF(x, y, w, h))

        if item.border_color and item.border_thickness > 0:
            p.setPen(QPen(_qcolor(item.border_color, Qt.black), item.border_thickness))
            p.setBrush(Qt.NoBrush)
            p.drawRect(_rect(b))

    def _draw_image(self, p: QPainter, item: ImageItem) -> None:
        path = resolve_image_path(item.source_path)
        if not path or not os.path.isfile(path):
            _log.info("[COMP] image missing: %s", item.source_path)
            return
        img = QImage(path)
        if img.isNull():
            raise IOError(f"cannot decode {path}")
        p.drawImage(_rect(item.bounds), img)

    def _draw_text(self, p: QPainter, item: TextItem, device: QImage) -> None:
        if not item.text:
            return
        font = QFont(item.font_family or K.DEFAULT_FONT)
        size = item.font_size if item.font_size and item.font_size > 0 else K.DEFAULT_FONT_SIZE
        font.setPointSizeF(size * K.FONT_SCALE)
        font.setBold(item.bold)
        font.setItalic(item.italic)
        font.setUnderline(item.underline)
        p.setFont(font)

        rect = _rect(item.bounds)
        flags = _flags(_ALIGN.get(item.alignment, Qt.AlignLeft), Qt.AlignTop, Qt.TextSingleLine)

        if item.shadow is not None:
            sc = _qcolor(item.shadow.color, Qt.black)
            sc.setAlpha(K.SHADOW_ALPHA)
            p.setPen(sc)
            p.drawText(rect.translated(item.shadow.offset_x, item.shadow.offset_y), flags, item.text)

        if item.outline is not None and item.outline.thickness > 0:
            fm = QFontMetricsF(font, device)
            tw = fm.horizontalAdvance(item.text)
            if item.alignment is TextAlignment.CENTER:
                x = rect.left() + (rect.width() - tw) / 2.0
            elif item.alignment is TextAlignment.RIGHT:
                x = rect.right() - tw
            else:
                x = rect.left()
            path = QPainterPath()
            path.addText(QPointF(x, rect.top() + fm.ascent()), font, item.text)
            # the fill covers the inner half of the stroke
            pen = QPen(_qcolor(item.outline.color, Qt.black), item.outline.thickness * 2.0,
                       Qt.SolidLine, Qt.RoundCap, Qt.RoundJoin)
            p.setPen(pen)
            p.setBrush(Qt.NoBrush)
            p.drawPath(path)

        p.setPen(_qcolor(item.color, Qt.black))
        p.drawText(rect, flags, item.text)

    def _draw_shape(self, p: QPainter, item: ShapeItem) -> None:
        rect = _rect(item.bounds)
        pen = Qt.NoPen
        if item.stroke is not None:
            thickness = item.stroke.thickness if item.stroke.thickness > 0 else 1.0
            pen = QPen(_qcolor(item.stroke.color, Qt.black), thickness)

        if item.shape_kind is ShapeKind.LINE:
            if item.stroke is None:
                return
            p.setPen(pen)
            p.drawLine(rect.topLeft(), rect.bottomRight())
            return

        p.setPen(pen)
        p.setBrush(QBrush(_qcolor(item.fill, Qt.gray)) if item.fill else Qt.NoBrush)
        if item.shape_kind is ShapeKind.ELLIPSE:
            p.drawEllipse(rect)
        else:
            p.drawRect(rect)
