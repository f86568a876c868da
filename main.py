# main.py
# Entry point: runs the booth session loop against the virtual camera (headless)
import sys, os
ROOT = os.path.dirname(os.path.abspath(__file__))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

import logging

from PySide6.QtGui import QGuiApplication

from booth.config.loader import config_bootstrap_settings
from booth.config.settings import BoothSettings
from booth.services.template_store import JsonTemplateStore
from booth.services.virtual_camera import VirtualCamera
from booth.services.workflow import BoothWorkflow
from booth.utils.logsetup import configure_logging
from booth.utils.scheduling import QtScheduler

_log = logging.getLogger("SEQ")


# main(): bootstrap settings/logging, run one guest session, exit with its result
def main():
    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
    app = QGuiApplication(sys.argv)

    effective = config_bootstrap_settings()
    settings = BoothSettings.from_effective(effective)
    configure_logging(settings.paths.logs, settings.log_level)

    scheduler = QtScheduler()
    camera = VirtualCamera(scheduler)
    store = JsonTemplateStore(settings.paths.templates)
    flow = BoothWorkflow.from_settings(camera, settings, store, scheduler)

    result_box = {}

    def _finished(result):
        result_box["result"] = result
        _log.info("[MAIN] %s -> %s", result.message, result.output_path)
        app.quit()

    flow.compositionFinished.connect(_finished)
    flow.statusChanged.connect(lambda s: _log.info("[MAIN] %s", s))
    # unattended: accept whatever the review shows
    flow.review.reviewStarted.connect(lambda *_: flow.review.proceed())

    decision = flow.start()
    if not decision.accepted:
        _log.error("[MAIN] start rejected: %s", decision.reason)
        return 1
    app.exec()
    flow.close()
    res = result_box.get("result")
    return 0 if res is not None and res.success else 1


if __name__ == "__main__":
    sys.exit(main())
