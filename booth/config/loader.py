# -*- coding: utf-8 -*-
# booth/config/loader.py: settings bootstrap / save utils (config_* prefix)
from __future__ import annotations

#─────────────────────────────────────────────
#  Summary
#  - load defaults.json, ensure/load the user settings.json
#  - effective = deep_merge(defaults, settings)
#  - atomic save
#─────────────────────────────────────────────

import json, os, logging
from pathlib import Path
from typing import Any, Dict

from booth.constants import APP_NAME

_log = logging.getLogger("CONFIG")

#─────────────────────────────────────────────
#  User path
#─────────────────────────────────────────────
def config_user_settings_path(app_name: str = APP_NAME) -> Path:
    env = os.environ.get("BOOTH_SETTINGS", "").strip()
    if env:
        return Path(env).expanduser()
    return Path.home() / app_name / "settings.json"

#─────────────────────────────────────────────
# JSON load/save (atomic)
#─────────────────────────────────────────────

def config_load_json(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as ex:
        _log.warning("[CONFIG] unreadable %s: %s", path, ex)
        return {}
    return data if isinstance(data, dict) else {}

# write to a temp file, then replace
def config_save_json_atomic(path: Path, data: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    os.replace(tmp, path)

#─────────────────────────────────────────────
#  defaults
#─────────────────────────────────────────────
DEFAULTS_PATH = Path(__file__).resolve().parent / "defaults.json"

def config_load_defaults(path: Path | None = None) -> Dict[str, Any]:
    target = path or DEFAULTS_PATH
    data = config_load_json(target)
    if data and data.get("capture"):
        return data

    # ---- self-heal: write a minimal template when defaults.json is missing ----
    DEFAULTS_TEMPLATE: Dict[str, Any] = {
        "schema_version": 1,
        "program_info": {"name": APP_NAME, "version": "1.0.0"},
        "capture": {
            "countdown_seconds": 5, "min_interval_ms": 6000, "capture_timeout_ms": 15000,
            "inter_photo_delay_ms": 4000, "grace_delay_ms": 500, "liveview_settle_ms": 1000,
        },
        "liveview": {"interval_ms": 33},
        "review": {"enable_retake": True, "timeout_s": 15},
        "filters": {"enabled": False, "allow_change": True, "default": "none", "intensity": 100},
        "event": {"name": "", "template": "strip3"},
        "paths": {
            "photo_root": "~/Pictures/Photobooth",
            "templates": "~/Photobooth/templates",
            "logs": "~/Photobooth/logs",
        },
        "logging": {"level": "INFO"},
    }
    _log.warning("[CONFIG] defaults missing, writing template to %s", target)
    config_save_json_atomic(target, DEFAULTS_TEMPLATE)
    return DEFAULTS_TEMPLATE

#─────────────────────────────────────────────
#  settings
#─────────────────────────────────────────────
def config_load_settings(path: Path | None = None) -> Dict[str, Any]:
    path = path or config_user_settings_path()
    return config_load_json(path)

# ensure the settings file: create from a defaults snapshot when missing
def config_ensure_settings_file(defaults: Dict[str, Any], path: Path | None = None) -> Dict[str, Any]:
    path = path or config_user_settings_path()
    if not path.exists():
        config_save_json_atomic(path, defaults)
        return defaults
    return config_load_settings(path)

#─────────────────────────────────────────────
#  deep merge: b wins, dicts merged recursively
#─────────────────────────────────────────────
def config_deep_merge(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(a or {})
    for k, v in (b or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = config_deep_merge(out[k], v)
        else:
            out[k] = v
    return out

#─────────────────────────────────────────────
#  bootstrap (once at startup)
#─────────────────────────────────────────────
def config_bootstrap_settings(path: Path | None = None) -> Dict[str, Any]:
    """
    defaults.json -> ensure/load user settings.json -> merge.
    Returns the effective settings dict.
    """
    defaults = config_load_defaults()
    user_settings = config_ensure_settings_file(defaults, path)
    effective = config_deep_merge(defaults, user_settings)
    _log.info("[CONFIG] settings=%s", path or config_user_settings_path())
    return effective

#─────────────────────────────────────────────
#  save
#─────────────────────────────────────────────
def config_save_settings_atomic(settings: Dict[str, Any], path: Path | None = None) -> None:
    path = path or config_user_settings_path()
    config_save_json_atomic(path, settings)
