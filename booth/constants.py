# -*- coding: utf-8 -*-
from __future__ import annotations
import os

# === Paths ===
APP_DIR     = os.path.abspath(os.path.dirname(__file__))     # .../booth
CONFIG_DIR  = os.path.join(APP_DIR, "config")

APP_NAME = "Photobooth"

# === Capture timing (ms) ===
MIN_CAPTURE_INTERVAL_MS = 6000
CAPTURE_TIMEOUT_MS      = 15000
GRACE_DELAY_MS          = 500      # "SMILE!" -> shutter
LIVEVIEW_SETTLE_MS      = 1000
INTER_PHOTO_DELAY_MS    = 4000
BUSY_RESET_WAIT_MS      = 1000
COUNTDOWN_TICK_MS       = 1000

COUNTDOWN_MIN = 1
COUNTDOWN_MAX = 10
COUNTDOWN_DEFAULT = 5

# busy-poll before live view: 20 x 100ms
BUSY_POLL_RETRIES     = 20
BUSY_POLL_INTERVAL_MS = 100

# capture retry: min(200*k, 1000) between attempt k and k+1
BUSY_BACKOFF_STEP_MS = 200
BUSY_BACKOFF_CAP_MS  = 1000
FORCE_RESET_AFTER    = 5
MAX_BUSY_ATTEMPTS    = 20

# === Live view ===
LIVEVIEW_INTERVAL_MS = 33          # ~30Hz
LIVEVIEW_MIN_INTERVAL_MS = 16

# === Review ===
REVIEW_TIMEOUT_S      = 15
FILTER_ONLY_TIMEOUT_S = 10

# === Output ===
JPEG_QUALITY   = 95
THUMB_WIDTH    = 240
CANVAS_DPI     = 96
FONT_SCALE     = 0.65
SHADOW_ALPHA   = 128
DEFAULT_FONT   = "Arial"
DEFAULT_FONT_SIZE = 12.0
ROTATION_EPSILON  = 0.01

ORIGINALS_DIR = "originals"
COMPOSED_DIR  = "Composed"
EVENT_NAME_MAX = 50
