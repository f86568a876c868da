# -*- coding: utf-8 -*-
"""BoothWorkflow: capture -> review/retake -> filters -> composite, for one event."""
from __future__ import annotations

import logging
from typing import List, Optional

from PySide6.QtCore import QObject, Signal

from booth.config.settings import BoothSettings
from booth.models import CompositionResult, SessionContext, Slot, StartDecision, TemplateDefinition
from booth.services.camera_port import CameraPort
from booth.services.capture_session import CaptureSessionController
from booth.services.compositor import TemplateCompositor
from booth.services.filters import PhotoFilterService
from booth.services.retake_review import RetakeReviewCoordinator, ReviewOutcome
from booth.services.sequence import PhotoSequenceTracker
from booth.services.template_store import TemplateStore
from booth.utils.scheduling import Scheduler

_log = logging.getLogger("SEQ")


class BoothWorkflow(QObject):
    compositionStarted  = Signal()
    compositionFinished = Signal(object)      # CompositionResult
    statusChanged       = Signal(str)

    def __init__(self, camera: CameraPort, context: SessionContext, scheduler: Scheduler,
                 settings: Optional[BoothSettings] = None, parent: Optional[QObject] = None):
        super().__init__(parent)
        self._settings = settings or BoothSettings()
        self._ctx = context
        self._sched = scheduler
        self._composing = False

        self.tracker = PhotoSequenceTracker(context.required_photo_count, self)
        self.controller = CaptureSessionController(
            camera, self.tracker, context, scheduler, self._settings.capture, self)
        self.review = RetakeReviewCoordinator(scheduler, self._settings.review, self)
        self.filters = PhotoFilterService()
        self.compositor = TemplateCompositor(context)

        self.controller.statusChanged.connect(self.statusChanged)
        self.controller.sequenceCompleted.connect(self._on_sequence_completed)
        self.controller.retakeCompleted.connect(self._on_retake_completed)
        self.controller.captureFailed.connect(self._on_capture_failed)
        self.review.retakeRequested.connect(self._on_retake_requested)
        self.review.reviewFinished.connect(self._on_review_finished)

    @classmethod
    def from_settings(cls, camera: CameraPort, settings: BoothSettings, store: TemplateStore,
                      scheduler: Scheduler, parent: Optional[QObject] = None) -> "BoothWorkflow":
        template = store.get_template(settings.template_id) if settings.template_id else None
        ctx = SessionContext(settings.event_name, template, settings.paths.photo_root)
        return cls(camera, ctx, scheduler, settings, parent)

    @property
    def context(self) -> SessionContext:
        return self._ctx

    @property
    def is_composing(self) -> bool:
        return self._composing

    # ── commands
    def start(self) -> StartDecision:
        return self.controller.start()

    def abort(self) -> None:
        self.review.cancel()
        self.controller.abort()

    def set_template(self, template: Optional[TemplateDefinition]) -> None:
        ctx = SessionContext(self._ctx.event_name, template, self._ctx.photo_root)
        self.controller.set_context(ctx)
        self.compositor = TemplateCompositor(ctx)
        self._ctx = ctx
        _log.info("[SEQ] template -> %s (%s photos)",
                  template.template_id if template else None, ctx.required_photo_count)

    def close(self) -> None:
        self.review.cancel()
        self.controller.close()

    # ── wiring
    def _on_sequence_completed(self, _paths: List[str]) -> None:
        self.review.begin(self.tracker.slots)

    def _on_retake_requested(self, index: int) -> None:
        if not self.controller.start_retake(index):
            self.review.resume()

    def _on_retake_completed(self, _index: int) -> None:
        self.review.resume()

    def _on_capture_failed(self, _message: str) -> None:
        if self.review.is_active:
            self.review.resume()

    def _on_review_finished(self, outcome: ReviewOutcome) -> None:
        if self._composing:
            return
        self._composing = True
        self.compositionStarted.emit()
        self.statusChanged.emit("Creating your photo...")
        slots = [Slot(s.index, s.file_path, None, s.filled) for s in self.tracker.slots]
        template = self._ctx.template
        compositor, filters = self.compositor, self.filters

        def work() -> CompositionResult:
            if outcome.applies_filter:
                for s in slots:
                    if s.filled and s.file_path:
                        s.file_path = filters.apply(s.file_path, outcome.filter_kind, outcome.intensity)
            return compositor.compose(template, slots)

        def done(result: Optional[CompositionResult], error: Optional[BaseException]) -> None:
            self._composing = False
            if error is not None:
                _log.error("[SEQ] composition failed: %s", error)
                result = CompositionResult(None, False, f"Composition error: {error}")
            self.compositionFinished.emit(result)
            self.controller.finish_session()

        self._sched.run_in_worker(work, done)
