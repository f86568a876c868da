# -*- coding: utf-8 -*-
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

from PySide6.QtCore import QObject, Signal

from booth.constants import FILTER_ONLY_TIMEOUT_S
from booth.config.settings import ReviewSettings
from booth.models import Slot
from booth.services.filters import FilterKind
from booth.utils.scheduling import Scheduler, TimerHandle

_log = logging.getLogger("REVIEW")


class ReviewMode(Enum):
    RETAKE = "retake"                  # retake grid (+ filter choice when allowed)
    FILTER_ONLY = "filter_only"
    DEFAULT_FILTER = "default_filter"  # no screen, default filter applied
    PROCEED = "proceed"                # no screen


@dataclass(frozen=True)
class ReviewOutcome:
    mode: ReviewMode
    filter_kind: Optional[FilterKind]  # None: leave photos as taken
    intensity: float                   # 0..1

    @property
    def applies_filter(self) -> bool:
        return self.filter_kind is not None and self.filter_kind is not FilterKind.NONE


def resolve_mode(cfg: ReviewSettings) -> ReviewMode:
    if cfg.enable_retake:
        return ReviewMode.RETAKE
    if cfg.enable_filters and cfg.allow_filter_change:
        return ReviewMode.FILTER_ONLY
    if cfg.enable_filters:
        return ReviewMode.DEFAULT_FILTER
    return ReviewMode.PROCEED


class RetakeReviewCoordinator(QObject):
    """Post-sequence review: retake any slot or pick a filter before a timer runs out.

    The review finishes exactly once per begin(); a retake suspends the
    timer and resume() re-enters the review with a fresh one.
    """
    reviewStarted   = Signal(object, list, int)   # ReviewMode, candidate indexes, seconds
    reviewTick      = Signal(int)
    retakeRequested = Signal(int)
    reviewFinished  = Signal(object)              # ReviewOutcome

    def __init__(self, scheduler: Scheduler, settings: Optional[ReviewSettings] = None,
                 parent: Optional[QObject] = None):
        super().__init__(parent)
        self._sched = scheduler
        self._cfg = settings or ReviewSettings()
        self._mode: Optional[ReviewMode] = None
        self._candidates: List[int] = []
        self._selected: Optional[FilterKind] = None
        self._remaining = 0
        self._timer: Optional[TimerHandle] = None
        self._active = False
        self._awaiting_retake = False

    # ── queries
    @property
    def mode(self) -> Optional[ReviewMode]:
        return self._mode

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def remaining(self) -> int:
        return self._remaining

    @property
    def candidates(self) -> List[int]:
        return list(self._candidates)

    @property
    def filter_selectable(self) -> bool:
        return (self._mode in (ReviewMode.RETAKE, ReviewMode.FILTER_ONLY)
                and self._cfg.enable_filters and self._cfg.allow_filter_change)

    def configure(self, settings: ReviewSettings) -> None:
        self._cfg = settings

    # ── flow
    def begin(self, slots: Sequence[Slot]) -> ReviewMode:
        self._cancel_timer()
        self._mode = resolve_mode(self._cfg)
        self._candidates = [s.index for s in slots if s.filled]
        self._selected = None
        self._awaiting_retake = False
        self._active = True
        _log.info("[REVIEW] begin mode=%s candidates=%s", self._mode.value, self._candidates)

        if self._mode in (ReviewMode.DEFAULT_FILTER, ReviewMode.PROCEED):
            self.proceed()
        else:
            self._open()
        return self._mode

    def select_filter(self, kind) -> bool:
        if not self._active or not self.filter_selectable:
            return False
        self._selected = FilterKind.parse(kind)
        _log.info("[REVIEW] filter=%s", self._selected.value)
        return True

    def request_retake(self, index: int) -> bool:
        if not self._active or self._awaiting_retake or self._mode is not ReviewMode.RETAKE:
            return False
        if index not in self._candidates:
            _log.info("[REVIEW] retake refused for slot %s", index)
            return False
        self._cancel_timer()
        self._awaiting_retake = True
        _log.info("[REVIEW] retake slot %s", index)
        self.retakeRequested.emit(index)
        return True

    def resume(self) -> None:
        """Back from a retake (or a failed one): review again with a fresh timer."""
        if not self._active:
            return
        self._awaiting_retake = False
        self._open()

    def proceed(self) -> None:
        if not self._active:
            return
        self._active = False
        self._awaiting_retake = False
        self._cancel_timer()
        outcome = ReviewOutcome(self._mode, self._outcome_filter(), self._cfg.filter_intensity / 100.0)
        _log.info("[REVIEW] finished filter=%s",
                  outcome.filter_kind.value if outcome.filter_kind else None)
        self.reviewFinished.emit(outcome)

    def cancel(self) -> None:
        """Drop the review without an outcome (session aborted)."""
        self._active = False
        self._awaiting_retake = False
        self._cancel_timer()

    # ── internals
    def _outcome_filter(self) -> Optional[FilterKind]:
        if not self._cfg.enable_filters:
            return None
        if self._selected is not None and self.filter_selectable:
            return self._selected
        return self._cfg.default_filter

    def _open(self) -> None:
        seconds = FILTER_ONLY_TIMEOUT_S if self._mode is ReviewMode.FILTER_ONLY else self._cfg.timeout_s
        self._remaining = int(seconds)
        self.reviewStarted.emit(self._mode, list(self._candidates), self._remaining)
        self._tick()

    def _tick(self) -> None:
        self._timer = None
        if not self._active or self._awaiting_retake:
            return
        self.reviewTick.emit(self._remaining)
        if self._remaining <= 0:
            _log.info("[REVIEW] timeout")
            self.proceed()
            return
        self._remaining -= 1
        self._timer = self._sched.call_later(1000, self._tick)

    def _cancel_timer(self) -> None:
        t, self._timer = self._timer, None
        if t is not None:
            t.cancel()
