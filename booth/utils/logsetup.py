# -*- coding: utf-8 -*-
from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

LOGGER_NAMES = ("CAP", "LV", "CAM", "SEQ", "REVIEW", "COMP", "FILTER", "STORE", "CONFIG")
LOG_FILE_NAME = "booth.log"
_FMT = "%(asctime)s [%(levelname)s] %(name)s %(message)s"

_installed: list = []


def configure_logging(log_dir: Optional[str] = None, level: str | int = "INFO") -> Optional[str]:
    """Rotating file log (2MB x 3) + console for the booth loggers. Idempotent."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    for h in _installed:
        for name in LOGGER_NAMES:
            logging.getLogger(name).removeHandler(h)
        h.close()
    _installed.clear()

    handlers: list = [logging.StreamHandler()]
    log_file = None
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        log_file = os.path.join(log_dir, LOG_FILE_NAME)
        handlers.append(RotatingFileHandler(log_file, maxBytes=2_000_000, backupCount=3, encoding="utf-8"))

    fmt = logging.Formatter(_FMT)
    for h in handlers:
        h.setFormatter(fmt)
        _installed.append(h)
    for name in LOGGER_NAMES:
        lg = logging.getLogger(name)
        lg.setLevel(level)
        lg.propagate = False
        for h in handlers:
            lg.addHandler(h)
    return log_file
