# src/sheet_omr/config_io.py
from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, Optional
import json

import yaml

from .scoring_defaults import DEFAULTS, ScanSettings, apply_overrides


def load_config_any(path: str | Path) -> Dict[str, Any]:
    """
    Prefer YAML, but transparently accept JSON.
    - If extension is .yml/.yaml -> use YAML
    - If extension is .json -> use JSON
    - Otherwise: try YAML first, then JSON
    """
    p = Path(path)
    data = p.read_text(encoding="utf-8")
    ext = p.suffix.lower()

    if ext in {".yml", ".yaml"}:
        cfg = yaml.safe_load(data)
    elif ext == ".json":
        cfg = json.loads(data)
    else:
        try:
            cfg = yaml.safe_load(data)
        except yaml.YAMLError:
            cfg = json.loads(data)

    if cfg is None:
        cfg = {}
    if not isinstance(cfg, dict):
        raise ValueError("Config root must be a mapping/object.")

    return cfg


def load_settings(path: Optional[str | Path] = None,
                  base: Optional[ScanSettings] = None) -> ScanSettings:
    """
    Build ScanSettings from a YAML/JSON file of overrides.
    A nested `scan:` section is accepted as well as flat keys.
    """
    base = base or DEFAULTS
    if path is None:
        return base
    raw = load_config_any(path)
    if isinstance(raw.get("scan"), dict):
        raw = raw["scan"]
    return apply_overrides(base, **raw)
