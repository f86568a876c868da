# -*- coding: utf-8 -*-
# booth/models.py: session / slot / template data model
from __future__ import annotations

import logging
import os
import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from booth.constants import (
    COUNTDOWN_DEFAULT, COUNTDOWN_MAX, COUNTDOWN_MIN, MIN_CAPTURE_INTERVAL_MS,
    ORIGINALS_DIR, COMPOSED_DIR, DEFAULT_FONT, DEFAULT_FONT_SIZE,
)

_log = logging.getLogger("STORE")


# ─────────────────────────────────────────────────────────────
# Session
# ─────────────────────────────────────────────────────────────
class SessionState(Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    COUNTDOWN = "countdown"
    CAPTURING = "capturing"
    RETRYING = "retrying"            # sub-state of CAPTURING
    TRANSFERRING = "transferring"
    SLOT_FILLED = "slot_filled"
    REVIEW_PENDING = "review_pending"
    ABORTED = "aborted"
    ERROR = "error"
    DISCONNECTED = "disconnected"


# states in which a START press is refused
ACTIVE_STATES = frozenset({
    SessionState.PREPARING,
    SessionState.COUNTDOWN,
    SessionState.CAPTURING,
    SessionState.RETRYING,
    SessionState.TRANSFERRING,
    SessionState.SLOT_FILLED,
})


@dataclass
class Slot:
    index: int
    file_path: Optional[str] = None
    thumbnail: Any = None            # QImage
    filled: bool = False

    def clear(self) -> None:
        self.file_path = None
        self.thumbnail = None
        self.filled = False


@dataclass
class Session:
    required_photo_count: int = 1
    countdown_seconds: int = COUNTDOWN_DEFAULT
    slots: List[Slot] = field(default_factory=list)
    state: SessionState = SessionState.IDLE
    min_capture_interval_ms: int = MIN_CAPTURE_INTERVAL_MS

    def __post_init__(self):
        self.required_photo_count = max(1, int(self.required_photo_count))
        self.countdown_seconds = clamp_countdown(self.countdown_seconds)
        if not self.slots:
            self.slots = [Slot(i) for i in range(self.required_photo_count)]


def clamp_countdown(value: Any) -> int:
    try:
        v = int(value)
    except (TypeError, ValueError):
        return COUNTDOWN_DEFAULT
    return max(COUNTDOWN_MIN, min(COUNTDOWN_MAX, v))


@dataclass(frozen=True)
class StartDecision:
    accepted: bool
    reason: str = ""
    wait_seconds: int = 0


# ─────────────────────────────────────────────────────────────
# Canvas items
# ─────────────────────────────────────────────────────────────
class TextAlignment(Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


class ShapeKind(Enum):
    RECTANGLE = "rectangle"
    ELLIPSE = "ellipse"
    LINE = "line"


@dataclass(frozen=True)
class Bounds:
    x: float
    y: float
    width: float
    height: float

    @property
    def center(self):
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)


@dataclass(frozen=True)
class Stroke:
    color: str
    thickness: float = 1.0


@dataclass(frozen=True)
class TextShadow:
    color: str = "#000000"
    offset_x: float = 2.0
    offset_y: float = 2.0


@dataclass(frozen=True)
class TextOutline:
    color: str = "#000000"
    thickness: float = 1.0


@dataclass(frozen=True)
class CanvasItem:
    bounds: Bounds
    z_index: int = 0
    rotation: float = 0.0            # degrees, clockwise about bounds center
    name: str = ""
    visible: bool = True


@dataclass(frozen=True)
class PlaceholderItem(CanvasItem):
    placeholder_number: int = 1      # 1-based
    border_color: Optional[str] = None
    border_thickness: float = 0.0


@dataclass(frozen=True)
class ImageItem(CanvasItem):
    source_path: str = ""


@dataclass(frozen=True)
class TextItem(CanvasItem):
    text: str = ""
    font_family: str = DEFAULT_FONT
    font_size: float = DEFAULT_FONT_SIZE
    bold: bool = False
    italic: bool = False
    underline: bool = False
    color: str = "#000000"
    alignment: TextAlignment = TextAlignment.LEFT
    shadow: Optional[TextShadow] = None
    outline: Optional[TextOutline] = None


@dataclass(frozen=True)
class ShapeItem(CanvasItem):
    shape_kind: ShapeKind = ShapeKind.RECTANGLE
    fill: Optional[str] = None
    stroke: Optional[Stroke] = None


@dataclass(frozen=True)
class TemplateDefinition:
    template_id: str
    canvas_width: int
    canvas_height: int
    items: tuple = ()
    background_color: Optional[str] = None
    name: str = ""

    @property
    def placeholders(self) -> List[PlaceholderItem]:
        return [i for i in self.items if isinstance(i, PlaceholderItem)]

    def photo_count_needed(self) -> int:
        numbers = {p.placeholder_number for p in self.placeholders}
        return max(1, len(numbers))


@dataclass(frozen=True)
class CompositionResult:
    output_path: Optional[str]
    success: bool
    message: str = ""


# ─────────────────────────────────────────────────────────────
# Dict parsing (template store records)
# ─────────────────────────────────────────────────────────────
def _get(d: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for k in keys:
        if k in d and d[k] is not None:
            return d[k]
    return default


def _num(v: Any, default: float = 0.0) -> float:
    try:
        return float(v)
    except (TypeError, ValueError):
        return default


def _color(v: Any) -> Optional[str]:
    s = str(v).strip() if v is not None else ""
    return s or None


def _bool(v: Any) -> bool:
    if isinstance(v, str):
        return v.strip().lower() in ("1", "true", "yes", "on")
    return bool(v)


_ALIGN = {"left": TextAlignment.LEFT, "center": TextAlignment.CENTER, "centre": TextAlignment.CENTER,
          "right": TextAlignment.RIGHT}
_SHAPES = {"rectangle": ShapeKind.RECTANGLE, "rect": ShapeKind.RECTANGLE,
           "ellipse": ShapeKind.ELLIPSE, "circle": ShapeKind.ELLIPSE, "line": ShapeKind.LINE}


def canvas_item_from_dict(d: Dict[str, Any]) -> Optional[CanvasItem]:
    """Build a canvas item from a stored record; unknown types give None."""
    kind = str(_get(d, "ItemType", "item_type", "type", default="")).strip().lower()
    base = dict(
        bounds=Bounds(
            _num(_get(d, "X", "x")), _num(_get(d, "Y", "y")),
            _num(_get(d, "Width", "width")), _num(_get(d, "Height", "height")),
        ),
        z_index=int(_num(_get(d, "ZIndex", "z_index"))),
        rotation=_num(_get(d, "Rotation", "rotation")),
        name=str(_get(d, "Name", "name", default="")),
        visible=_bool(_get(d, "IsVisible", "visible", default=True)),
    )

    if kind == "placeholder":
        thickness = _num(_get(d, "OutlineThickness", "border_thickness"))
        border = _color(_get(d, "OutlineColor", "border_color"))
        if not _bool(_get(d, "HasOutline", "has_border", default=border is not None)):
            border = None
        return PlaceholderItem(
            placeholder_number=int(_num(_get(d, "PlaceholderNumber", "placeholder_number"), 1.0)),
            border_color=border,
            border_thickness=thickness if border else 0.0,
            **base,
        )

    if kind == "image":
        return ImageItem(source_path=str(_get(d, "ImagePath", "source_path", default="")), **base)

    if kind == "text":
        shadow = None
        if _bool(_get(d, "HasShadow", "has_shadow", default=False)):
            shadow = TextShadow(
                color=_color(_get(d, "ShadowColor", "shadow_color")) or "#000000",
                offset_x=_num(_get(d, "ShadowOffsetX", "shadow_offset_x"), 2.0),
                offset_y=_num(_get(d, "ShadowOffsetY", "shadow_offset_y"), 2.0),
            )
        outline = None
        if _bool(_get(d, "HasOutline", "has_outline", default=False)):
            outline = TextOutline(
                color=_color(_get(d, "OutlineColor", "outline_color")) or "#000000",
                thickness=_num(_get(d, "OutlineThickness", "outline_thickness"), 1.0),
            )
        align = str(_get(d, "TextAlignment", "alignment", default="left")).strip().lower()
        return TextItem(
            text=str(_get(d, "Text", "text", default="")),
            font_family=str(_get(d, "FontFamily", "font_family", default=DEFAULT_FONT)),
            font_size=_num(_get(d, "FontSize", "font_size"), DEFAULT_FONT_SIZE),
            bold=_bool(_get(d, "IsBold", "bold", default=False)),
            italic=_bool(_get(d, "IsItalic", "italic", default=False)),
            underline=_bool(_get(d, "IsUnderlined", "underline", default=False)),
            color=_color(_get(d, "TextColor", "color")) or "#000000",
            alignment=_ALIGN.get(align, TextAlignment.LEFT),
            shadow=shadow,
            outline=outline,
            **base,
        )

    if kind == "shape":
        shape = _SHAPES.get(str(_get(d, "ShapeType", "shape_kind", default="rectangle")).strip().lower())
        if shape is None:
            _log.info("[STORE] unknown shape type: %s", _get(d, "ShapeType", "shape_kind"))
            return None
        fill = None
        if not _bool(_get(d, "HasNoFill", "no_fill", default=False)):
            fill = _color(_get(d, "FillColor", "fill"))
        stroke = None
        if not _bool(_get(d, "HasNoStroke", "no_stroke", default=False)):
            stroke = Stroke(
                color=_color(_get(d, "StrokeColor", "stroke_color")) or "#000000",
                thickness=_num(_get(d, "StrokeThickness", "stroke_thickness"), 1.0),
            )
        return ShapeItem(shape_kind=shape, fill=fill, stroke=stroke, **base)

    _log.info("[STORE] unknown item type ignored: %r", kind)
    return None


def template_from_dict(d: Dict[str, Any], template_id: Optional[str] = None) -> TemplateDefinition:
    items = []
    for raw in d.get("items") or d.get("Items") or []:
        if not isinstance(raw, dict):
            continue
        item = canvas_item_from_dict(raw)
        if item is not None:
            items.append(item)
    return TemplateDefinition(
        template_id=str(template_id or _get(d, "id", "Id", "template_id", default="")),
        name=str(_get(d, "name", "Name", default="")),
        canvas_width=int(_num(_get(d, "canvas_width", "CanvasWidth"))),
        canvas_height=int(_num(_get(d, "canvas_height", "CanvasHeight"))),
        background_color=_color(_get(d, "background_color", "BackgroundColor")),
        items=tuple(items),
    )


# ─────────────────────────────────────────────────────────────
# Session context (event + template + output folders)
# ─────────────────────────────────────────────────────────────
@dataclass
class SessionContext:
    event_name: str
    template: Optional[TemplateDefinition]
    photo_root: str
    created: dt.datetime = field(default_factory=dt.datetime.now)

    @property
    def safe_event_name(self) -> str:
        from booth.utils.storage import sanitize_event_name
        return sanitize_event_name(self.event_name, self.created)

    @property
    def event_dir(self) -> str:
        return os.path.join(self.photo_root, self.safe_event_name)

    @property
    def originals_dir(self) -> str:
        return os.path.join(self.event_dir, ORIGINALS_DIR)

    @property
    def composed_dir(self) -> str:
        return os.path.join(self.event_dir, COMPOSED_DIR)

    @property
    def required_photo_count(self) -> int:
        return self.template.photo_count_needed() if self.template else 1
