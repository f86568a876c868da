# -*- coding: utf-8 -*-
# booth/config/settings.py: typed views over the effective settings dict
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict

from booth import constants as K
from booth.models import clamp_countdown
from booth.services.filters import FilterKind


def _int(v: Any, default: int, lo: int | None = None, hi: int | None = None) -> int:
    try:
        n = int(v)
    except (TypeError, ValueError):
        n = default
    if lo is not None:
        n = max(lo, n)
    if hi is not None:
        n = min(hi, n)
    return n


def _path(v: Any, default: str) -> str:
    return os.path.abspath(os.path.expanduser(str(v or default)))


@dataclass
class CaptureSettings:
    countdown_seconds: int = K.COUNTDOWN_DEFAULT
    min_interval_ms: int = K.MIN_CAPTURE_INTERVAL_MS
    capture_timeout_ms: int = K.CAPTURE_TIMEOUT_MS
    inter_photo_delay_ms: int = K.INTER_PHOTO_DELAY_MS
    grace_delay_ms: int = K.GRACE_DELAY_MS
    liveview_settle_ms: int = K.LIVEVIEW_SETTLE_MS
    liveview_interval_ms: int = K.LIVEVIEW_INTERVAL_MS


@dataclass
class ReviewSettings:
    enable_retake: bool = True
    timeout_s: int = K.REVIEW_TIMEOUT_S
    enable_filters: bool = False
    allow_filter_change: bool = True
    default_filter: FilterKind = FilterKind.NONE
    filter_intensity: int = 100                  # 0..100


@dataclass
class PathSettings:
    photo_root: str = ""
    templates: str = ""
    logs: str = ""


@dataclass
class BoothSettings:
    capture: CaptureSettings = field(default_factory=CaptureSettings)
    review: ReviewSettings = field(default_factory=ReviewSettings)
    paths: PathSettings = field(default_factory=PathSettings)
    event_name: str = ""
    template_id: str = ""
    log_level: str = "INFO"

    @classmethod
    def from_effective(cls, eff: Dict[str, Any]) -> "BoothSettings":
        cap = eff.get("capture", {}) or {}
        lv = eff.get("liveview", {}) or {}
        rv = eff.get("review", {}) or {}
        fl = eff.get("filters", {}) or {}
        ph = eff.get("paths", {}) or {}
        ev = eff.get("event", {}) or {}

        capture = CaptureSettings(
            countdown_seconds=clamp_countdown(cap.get("countdown_seconds", K.COUNTDOWN_DEFAULT)),
            min_interval_ms=_int(cap.get("min_interval_ms"), K.MIN_CAPTURE_INTERVAL_MS, 0),
            capture_timeout_ms=_int(cap.get("capture_timeout_ms"), K.CAPTURE_TIMEOUT_MS, 1000),
            inter_photo_delay_ms=_int(cap.get("inter_photo_delay_ms"), K.INTER_PHOTO_DELAY_MS, 0),
            grace_delay_ms=_int(cap.get("grace_delay_ms"), K.GRACE_DELAY_MS, 0),
            liveview_settle_ms=_int(cap.get("liveview_settle_ms"), K.LIVEVIEW_SETTLE_MS, 0),
            liveview_interval_ms=_int(lv.get("interval_ms"), K.LIVEVIEW_INTERVAL_MS, K.LIVEVIEW_MIN_INTERVAL_MS),
        )
        review = ReviewSettings(
            enable_retake=bool(rv.get("enable_retake", True)),
            timeout_s=_int(rv.get("timeout_s"), K.REVIEW_TIMEOUT_S, 1),
            enable_filters=bool(fl.get("enabled", False)),
            allow_filter_change=bool(fl.get("allow_change", True)),
            default_filter=FilterKind.parse(fl.get("default")),
            filter_intensity=_int(fl.get("intensity"), 100, 0, 100),
        )
        root = os.environ.get("BOOTH_ROOT", "").strip() or ph.get("photo_root")
        paths = PathSettings(
            photo_root=_path(root, "~/Pictures/Photobooth"),
            templates=_path(ph.get("templates"), "~/Photobooth/templates"),
            logs=_path(ph.get("logs"), "~/Photobooth/logs"),
        )
        return cls(
            capture=capture,
            review=review,
            paths=paths,
            event_name=str(ev.get("name") or ""),
            template_id=str(ev.get("template") or ""),
            log_level=str((eff.get("logging", {}) or {}).get("level", "INFO")).upper(),
        )
