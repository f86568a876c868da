# -*- coding: utf-8 -*-
from __future__ import annotations

import logging
from typing import List, Optional

from PySide6.QtCore import QObject, Signal

from booth.models import Slot

_log = logging.getLogger("SEQ")


class PhotoSequenceTracker(QObject):
    """Ordered slots of one session: which are filled, which comes next.

    Slots are never removed; retake overwrites one slot in place without
    moving the sequence index.
    """
    progressChanged = Signal(int, int)   # filled, required
    slotUpdated     = Signal(int)
    resetDone       = Signal()

    def __init__(self, required_count: int = 1, parent: Optional[QObject] = None):
        super().__init__(parent)
        self._required = max(1, int(required_count))
        self._slots: List[Slot] = [Slot(i) for i in range(self._required)]
        self._next = 0
        self._retake: Optional[int] = None

    # ── queries
    @property
    def required_count(self) -> int:
        return self._required

    @property
    def slots(self) -> List[Slot]:
        return list(self._slots)

    def slot(self, index: int) -> Slot:
        return self._slots[index]

    @property
    def next_index(self) -> int:
        return self._next

    @property
    def filled_count(self) -> int:
        return sum(1 for s in self._slots if s.filled)

    @property
    def progress(self):
        return self.filled_count, self._required

    @property
    def is_complete(self) -> bool:
        return self._next >= self._required

    @property
    def retake_index(self) -> Optional[int]:
        return self._retake

    @property
    def in_retake(self) -> bool:
        return self._retake is not None

    @property
    def target_index(self) -> int:
        """Slot the next capture will land in."""
        return self._retake if self._retake is not None else self._next

    def paths(self) -> List[Optional[str]]:
        return [s.file_path for s in self._slots]

    # ── mutations
    def reset(self, required_count: Optional[int] = None) -> None:
        if required_count is not None:
            self._required = max(1, int(required_count))
        self._slots = [Slot(i) for i in range(self._required)]
        self._next = 0
        self._retake = None
        _log.info("[SEQ] reset required=%s", self._required)
        self.resetDone.emit()
        self.progressChanged.emit(0, self._required)

    def record(self, path: str, thumbnail=None) -> int:
        if self.is_complete:
            raise IndexError("all slots already filled")
        idx = self._next
        self._fill(idx, path, thumbnail)
        self._next += 1
        return idx

    def replace(self, index: int, path: str, thumbnail=None) -> None:
        if not 0 <= index < self._required:
            raise IndexError(f"slot {index} out of range")
        self._fill(index, path, thumbnail)

    def begin_retake(self, index: int) -> None:
        if not 0 <= index < self._required or not self._slots[index].filled:
            raise IndexError(f"slot {index} is not a filled slot")
        self._retake = index

    def end_retake(self) -> None:
        self._retake = None

    def set_paths(self, paths: List[Optional[str]]) -> None:
        for s, p in zip(self._slots, paths):
            if s.filled and p:
                s.file_path = p

    def _fill(self, idx: int, path: str, thumbnail) -> None:
        s = self._slots[idx]
        s.file_path = path
        s.thumbnail = thumbnail
        s.filled = True
        _log.info("[SEQ] slot %s <- %s", idx, path)
        self.slotUpdated.emit(idx)
        self.progressChanged.emit(self.filled_count, self._required)
