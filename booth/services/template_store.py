# -*- coding: utf-8 -*-
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from booth.config.loader import config_load_json, config_save_json_atomic
from booth.models import CanvasItem, TemplateDefinition, template_from_dict

_log = logging.getLogger("STORE")


class TemplateStore:
    def get_template(self, template_id: str) -> Optional[TemplateDefinition]:
        raise NotImplementedError

    def get_canvas_items(self, template_id: str) -> List[CanvasItem]:
        t = self.get_template(template_id)
        return list(t.items) if t else []

    def get_photo_count_needed(self, template: Optional[TemplateDefinition]) -> int:
        return template.photo_count_needed() if template else 1


BUNDLED_TEMPLATES = Path(__file__).resolve().parents[1] / "templates"


class JsonTemplateStore(TemplateStore):
    """One <template_id>.json per template in a directory.

    Lookups fall back to the templates bundled with the package.
    """

    def __init__(self, directory: str, fallback_dirs: Sequence[Path] = (BUNDLED_TEMPLATES,)):
        self.directory = Path(os.path.expanduser(directory))
        self._dirs = [self.directory] + [Path(d) for d in fallback_dirs]
        self._cache: Dict[str, TemplateDefinition] = {}

    def _path(self, template_id: str) -> Path:
        return self.directory / f"{template_id}.json"

    def list_ids(self) -> List[str]:
        ids = set()
        for d in self._dirs:
            if d.is_dir():
                ids.update(p.stem for p in d.glob("*.json"))
        return sorted(ids)

    def get_template(self, template_id: str) -> Optional[TemplateDefinition]:
        if not template_id:
            return None
        if template_id in self._cache:
            return self._cache[template_id]
        data = {}
        for d in self._dirs:
            data = config_load_json(d / f"{template_id}.json")
            if data:
                break
        if not data:
            _log.warning("[STORE] template %r not found in %s", template_id, self.directory)
            return None
        t = template_from_dict(data, template_id)
        _log.info("[STORE] template %s: %sx%s items=%s photos=%s",
                  template_id, t.canvas_width, t.canvas_height, len(t.items), t.photo_count_needed())
        self._cache[template_id] = t
        return t

    def save_raw(self, template_id: str, data: dict) -> None:
        config_save_json_atomic(self._path(template_id), data)
        self._cache.pop(template_id, None)
