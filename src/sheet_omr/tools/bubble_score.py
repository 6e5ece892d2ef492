#!/usr/bin/env python3
"""
bubble_score.py
---------------
Per-question bubble location, fill scoring and the final mark decision.

A question's cell comes from a grid hypothesis (see grid_search.py). Inside the
padded cell we try every combination of

    horizontal offset x horizontal band x vertical offset x vertical band

split the horizontal span into one sub-cell per choice, and score each sub-cell
as the fraction of dark pixels. The combination that best separates one
dominant bubble from the rest,

    quality = max(0, best - second) + 0.5 * best

is kept for the row. All combinations are evaluated at once with numpy over the
summed-area table held by SheetImage, so each fill score costs four lookups.

Decision (after every row of the winning hypothesis is scored):
    threshold        = max(min_threshold, global_factor * global_max)
    margin_threshold = max(min_margin, margin_factor * best)
    mark iff best > threshold and (best - second) > margin_threshold
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Sequence, Tuple

import numpy as np

from ..scoring_defaults import DEFAULTS, ScanSettings
from .image_ops import SheetImage

if TYPE_CHECKING:
    from .grid_search import GridHypothesis

Rect = Tuple[int, int, int, int]  # (x0, y0, x1, y1)

# ------------------------------------------------------------------------------
# Geometry
# ------------------------------------------------------------------------------


@dataclass(frozen=True)
class InnerCell:
    index: int
    row: int
    col: int
    x1: int
    y1: int
    x2: int
    y2: int


def question_cell(hyp: "GridHypothesis", index: int, settings: ScanSettings = DEFAULTS) -> InnerCell:
    """Cell of question `index` (row-major across columns), padded away from grid lines."""
    r, c = divmod(index, hyp.columns)
    cx1 = hyp.left + c * hyp.cell_width
    cx2 = min(hyp.right, cx1 + hyp.cell_width)
    cy1 = hyp.top + r * hyp.cell_height
    cy2 = min(hyp.bottom, cy1 + hyp.cell_height)
    pad_x = math.floor((cx2 - cx1) * settings.cell_pad_x)
    pad_y = math.floor((cy2 - cy1) * settings.cell_pad_y)
    return InnerCell(index, r, c, cx1 + pad_x, cy1 + pad_y, cx2 - pad_x, cy2 - pad_y)


def _floor_i(values: np.ndarray) -> np.ndarray:
    return np.floor(values).astype(np.int64)


def _candidate_geometry(cell: InnerCell, settings: ScanSettings):
    """
    Sub-cell bounds for every alignment combination.

    Returns (sx1, sx2) shaped (n_offsets * n_bands, n_choices) and
    (y1, y2) shaped (n_y_offsets * n_y_bands,).
    """
    n = len(settings.choices)
    inner_w = max(1, cell.x2 - cell.x1)
    inner_h = max(1, cell.y2 - cell.y1)

    # skip the printed question number on the left of the cell
    base = cell.x1 + math.floor(inner_w * settings.label_width) + math.floor(inner_w * settings.label_gap)
    offsets = np.asarray(settings.x_offsets, dtype=float)
    bands = np.asarray(settings.x_bands, dtype=float)

    start = base + _floor_i(inner_w * offsets)                       # (O,)
    stop = np.minimum(cell.x2, start[:, None] + _floor_i(inner_w * bands)[None, :])   # (O, B)
    start = np.broadcast_to(start[:, None], stop.shape)
    span = np.maximum(1, stop - start)

    k = np.arange(n + 1)
    edges = start[..., None] + (k * span[..., None]) // n              # (O, B, n+1)
    ox1, ox2 = edges[..., :-1], edges[..., 1:]
    inset = _floor_i(np.maximum(1, ox2 - ox1) * settings.option_pad)
    sx1 = (ox1 + inset).reshape(-1, n)
    sx2 = (ox2 - inset).reshape(-1, n)

    y_center = (cell.y1 + cell.y2) // 2
    half = _floor_i(inner_h * np.asarray(settings.y_bands, dtype=float) / 2)       # (YB,)
    shift = _floor_i(inner_h * np.asarray(settings.y_offsets, dtype=float))         # (YO,)
    y1 = np.maximum(cell.y1, y_center - half[None, :] + shift[:, None]).reshape(-1)
    y2 = np.minimum(cell.y2, y_center + half[None, :] + shift[:, None]).reshape(-1)
    return sx1, sx2, y1, y2


# ------------------------------------------------------------------------------
# Scoring primitives
# ------------------------------------------------------------------------------


def fill_ratios(sheet: SheetImage, x1, y1, x2, y2) -> np.ndarray:
    """
    Fraction of dark pixels in [x1, x2) x [y1, y2) (broadcasting over arrays).
    Coordinates are clamped to the last pixel row/column; empty rects score 0.
    """
    W, H = sheet.width, sheet.height
    x1 = np.clip(np.asarray(x1), 0, W - 1)
    x2 = np.clip(np.asarray(x2), 0, W - 1)
    y1 = np.clip(np.asarray(y1), 0, H - 1)
    y2 = np.clip(np.asarray(y2), 0, H - 1)
    x1, y1, x2, y2 = np.broadcast_arrays(x1, y1, x2, y2)

    valid = (x2 > x1) & (y2 > y1)
    ii = sheet.dark_integral
    dark = ii[y2, x2] - ii[y1, x2] - ii[y2, x1] + ii[y1, x1]
    area = (x2 - x1) * (y2 - y1)
    return np.where(valid, dark / np.maximum(area, 1), 0.0)


def _best_and_second(scores: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    ordered = np.sort(scores, axis=-1)
    best = ordered[..., -1]
    second = ordered[..., -2] if ordered.shape[-1] > 1 else np.zeros_like(best)
    return best, second


def separation_quality(scores: np.ndarray) -> np.ndarray:
    best, second = _best_and_second(scores)
    return np.maximum(0.0, best - second) + 0.5 * best


@dataclass(frozen=True)
class QuestionCellScores:
    index: int
    row: int
    col: int
    scores: Tuple[float, ...]
    x_offset: float
    x_band: float
    y_offset: float
    y_band: float
    combo: int
    quality: float

    @property
    def best_index(self) -> int:
        return int(np.argmax(self.scores))


def score_question(sheet: SheetImage, hyp: "GridHypothesis", index: int,
                   settings: ScanSettings = DEFAULTS) -> QuestionCellScores:
    """Search local alignment for one question and keep the best-separating combination."""
    cell = question_cell(hyp, index, settings)
    sx1, sx2, y1, y2 = _candidate_geometry(cell, settings)

    # (x-combos, y-combos, choices) -> (combos, choices), ordered off > band > yoff > yband
    scores = fill_ratios(sheet, sx1[:, None, :], y1[None, :, None], sx2[:, None, :], y2[None, :, None])
    scores = scores.reshape(-1, len(settings.choices))
    quality = separation_quality(scores)
    pick = int(np.argmax(quality))  # first maximum wins

    oi, bi, yoi, ybi = np.unravel_index(pick, (
        len(settings.x_offsets), len(settings.x_bands),
        len(settings.y_offsets), len(settings.y_bands),
    ))
    return QuestionCellScores(
        index=index, row=cell.row, col=cell.col,
        scores=tuple(float(v) for v in scores[pick]),
        x_offset=settings.x_offsets[oi], x_band=settings.x_bands[bi],
        y_offset=settings.y_offsets[yoi], y_band=settings.y_bands[ybi],
        combo=pick, quality=float(quality[pick]),
    )


def option_rects(hyp: "GridHypothesis", q: QuestionCellScores,
                 settings: ScanSettings = DEFAULTS) -> List[Rect]:
    """Scored sub-cells (x0, y0, x1, y1) for the combination chosen for `q`."""
    cell = question_cell(hyp, q.index, settings)
    sx1, sx2, y1, y2 = _candidate_geometry(cell, settings)
    n_y = len(y1)
    xi, yi = divmod(q.combo, n_y)
    return [(int(a), int(y1[yi]), int(b), int(y2[yi])) for a, b in zip(sx1[xi], sx2[xi])]


# ------------------------------------------------------------------------------
# Mark decision
# ------------------------------------------------------------------------------


@dataclass(frozen=True)
class MarkDecision:
    answers: Tuple[str, ...]
    global_max: float
    threshold: float


def decide_marks(rows: Sequence[Sequence[float]], settings: ScanSettings = DEFAULTS) -> MarkDecision:
    """
    Turn per-row fill scores into letters or blanks.
    The absolute threshold follows the darkest bubble on the page; the margin
    threshold follows each row's own best score.
    """
    if len(rows) == 0:
        return MarkDecision((), 0.0, settings.min_threshold)

    arr = np.asarray(rows, dtype=float)
    global_max = float(arr.max())
    threshold = max(settings.min_threshold, settings.global_factor * global_max)
    best, second = _best_and_second(arr)

    answers: List[str] = []
    for row, b, s in zip(arr, best, second):
        margin_threshold = max(settings.min_margin, settings.margin_factor * b)
        if b > threshold and (b - s) > margin_threshold:
            answers.append(settings.choices[int(np.argmax(row))])
        else:
            answers.append(settings.blank)
    return MarkDecision(tuple(answers), global_max, threshold)
