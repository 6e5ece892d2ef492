# sheet_omr/scoring_defaults.py
from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Optional, Tuple


@dataclass(frozen=True)
class ScanSettings:
    # Single source of truth for every tuned constant.
    # Values were fitted against one printed template; recalibrate per sheet design.

    # --- input guards ---
    min_bytes: int = 100
    min_dimension: int = 200

    # --- preprocessing (answers + question count) ---
    work_width: int = 1200
    binarize_level: int = 160
    darkness_cutoff: int = 128
    contrast_low_pct: float = 1.0
    contrast_high_pct: float = 99.0

    # --- identifier footer grid ---
    id_crop_x: float = 0.55
    id_crop_y: float = 0.78
    id_min_crop: int = 50
    id_binarize_level: int = 170
    id_upscale: int = 2
    id_digits: int = 10
    ocr_lang: str = "eng"
    digit_ocr_config: str = "--psm 10"
    page_ocr_config: str = ""

    # --- answer block hypotheses (enumerated top -> height -> columns) ---
    block_left: float = 0.07
    block_right: float = 0.93
    top_factors: Tuple[float, ...] = (0.14, 0.18, 0.22, 0.26)
    height_factors: Tuple[float, ...] = (0.28, 0.34, 0.40, 0.46)
    column_counts: Tuple[int, ...] = (4, 6)

    # --- per-question local alignment ---
    cell_pad_x: float = 0.06
    cell_pad_y: float = 0.10
    label_width: float = 0.20       # question-number strip on the left of each cell
    label_gap: float = 0.02
    x_offsets: Tuple[float, ...] = (-0.12, -0.08, -0.04, 0.0, 0.04, 0.08, 0.12)
    x_bands: Tuple[float, ...] = (0.72, 0.80, 0.88)
    y_offsets: Tuple[float, ...] = (-0.1, 0.0, 0.1)
    y_bands: Tuple[float, ...] = (0.5, 0.6, 0.7)
    option_pad: float = 0.12        # keeps bubble outlines out of the fill score
    choices: str = "ABCD"
    blank: str = "-"

    # --- mark decision ---
    min_threshold: float = 0.04
    global_factor: float = 0.25
    min_margin: float = 0.02
    margin_factor: float = 0.12

    # --- question-count estimator ---
    count_candidates: Tuple[int, ...] = (10, 15, 20, 25, 30, 35, 40, 45, 50)
    count_left: float = 0.08
    count_right: float = 0.92
    count_top: float = 0.20
    count_bottom: float = 0.78
    count_inset: float = 0.15
    count_span: float = 0.70
    faint_row_level: float = 0.08
    faint_row_penalty: float = 0.05

    # --- execution limits ---
    workers: int = 1
    max_hypotheses: int = 64
    search_deadline_s: Optional[float] = None


DEFAULTS = ScanSettings()

_TUPLE_FIELDS = {f.name for f in fields(ScanSettings) if f.type.startswith("Tuple")}
FIELD_NAMES = frozenset(f.name for f in fields(ScanSettings))


def apply_overrides(base: Optional[ScanSettings] = None, **overrides) -> ScanSettings:
    """
    Produce an overridden immutable settings object without mutating DEFAULTS.
    `None` values are ignored so CLI options can be passed straight through.
    """
    base = base or DEFAULTS
    unknown = set(overrides) - FIELD_NAMES
    if unknown:
        raise ValueError(f"Unknown setting(s): {', '.join(sorted(unknown))}")
    changes = {}
    for name, value in overrides.items():
        if value is None:
            continue
        if name in _TUPLE_FIELDS:
            value = tuple(value)
        changes[name] = value
    return replace(base, **changes)
