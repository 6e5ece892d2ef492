# src/sheet_omr/tools/question_count.py
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Tuple

import numpy as np

from ..scoring_defaults import DEFAULTS, ScanSettings
from .bubble_score import fill_ratios
from .image_ops import SheetImage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CountEstimate:
    total: int                                  # 0 means "could not tell"
    scores: Tuple[Tuple[int, float], ...]       # (candidate, score) in candidate order
    region: Dict[str, int] = field(default_factory=dict)


def _score_count(sheet: SheetImage, count: int, left: int, right: int, top: int, bottom: int,
                 settings: ScanSettings) -> float:
    """sum(margin) + 0.5 * sum(best) - penalty per faint row, with `count` equal rows x 4 columns."""
    row_h = math.floor((bottom - top) / max(1, count))
    col_w = math.floor((right - left) / 4)

    i = np.arange(count)
    y1 = top + i * row_h + math.floor(row_h * settings.count_inset)
    y2 = np.minimum(bottom, y1 + math.floor(row_h * settings.count_span))
    k = np.arange(4)
    x1 = left + k * col_w + math.floor(col_w * settings.count_inset)
    x2 = np.minimum(right, x1 + math.floor(col_w * settings.count_span))

    scores = fill_ratios(sheet, x1[None, :], y1[:, None], x2[None, :], y2[:, None])  # (count, 4)
    ordered = np.sort(scores, axis=1)
    best, second = ordered[:, -1], ordered[:, -2]
    faint = int(np.count_nonzero(best < settings.faint_row_level))
    return float(np.maximum(0.0, best - second).sum() + 0.5 * best.sum()
                 - settings.faint_row_penalty * faint)


def estimate_question_count(sheet: SheetImage, settings: ScanSettings = DEFAULTS) -> CountEstimate:
    """
    Try each candidate row count over a fixed central region and keep the one
    whose rows look most like "one dark bubble per row". Returns total=0 when
    every candidate scores <= 0 or the region is too small to split.
    """
    W, H = sheet.width, sheet.height
    left = math.floor(W * settings.count_left)
    right = math.floor(W * settings.count_right)
    top = math.floor(H * settings.count_top)
    bottom = math.floor(H * settings.count_bottom)
    region = {"width": W, "height": H, "left": left, "right": right, "top": top, "bottom": bottom}

    if right - left < 4 or not settings.count_candidates:
        logger.info("Question-count region is degenerate")
        return CountEstimate(0, (), region)

    scores = []
    best_count, best_score = 0, -math.inf
    for count in settings.count_candidates:
        if count <= 0 or (bottom - top) < count:
            continue
        score = _score_count(sheet, count, left, right, top, bottom, settings)
        scores.append((count, score))
        if score > best_score:
            best_count, best_score = count, score

    total = best_count if best_score > 0 else 0
    logger.debug("Question-count scores: %s", scores)
    logger.info("Estimated question count: %d", total)
    return CountEstimate(total, tuple(scores), region)
