# src/sheet_omr/tools/grid_search.py
"""
Answer-block geometry search.

The answer block's vertical position and height, and the number of question
columns, are not known in advance. We enumerate a small fixed set of
hypotheses (top factor x height factor x column count, in that nesting order),
score every question under each one, and keep the hypothesis whose rows
resolve bubbles most confidently. Ties go to the earliest hypothesis.
"""
from __future__ import annotations

import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from dataclasses import dataclass
from functools import reduce
from typing import Any, Dict, List, Tuple

from ..scoring_defaults import DEFAULTS, ScanSettings
from .bubble_score import QuestionCellScores, score_question
from .image_ops import SheetImage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GridHypothesis:
    columns: int
    rows: int
    top: int
    bottom: int
    left: int
    right: int
    cell_width: int
    cell_height: int


@dataclass(frozen=True)
class HypothesisResult:
    hypothesis: GridHypothesis
    questions: Tuple[QuestionCellScores, ...]
    quality: float

    def record(self) -> Dict[str, Any]:
        h = self.hypothesis
        return {"columns": h.columns, "rows": h.rows, "top": h.top, "bottom": h.bottom,
                "left": h.left, "right": h.right, "quality": self.quality}


@dataclass(frozen=True)
class SearchOutcome:
    best: HypothesisResult
    ranking: Tuple[HypothesisResult, ...]   # evaluated hypotheses, best first (stable)
    enumerated: int
    truncated: bool


def enumerate_hypotheses(width: int, height: int, total_questions: int,
                         settings: ScanSettings = DEFAULTS) -> List[GridHypothesis]:
    """Candidate answer blocks in the fixed order top -> height -> columns."""
    left = math.floor(width * settings.block_left)
    right = math.floor(width * settings.block_right)
    region_w = max(1, right - left)

    out: List[GridHypothesis] = []
    for tf in settings.top_factors:
        top = math.floor(height * tf)
        for hf in settings.height_factors:
            bottom = min(height - 1, top + math.floor(height * hf))
            region_h = max(1, bottom - top)
            for cols in settings.column_counts:
                rows = max(1, math.ceil(total_questions / cols))
                out.append(GridHypothesis(
                    columns=cols, rows=rows, top=top, bottom=bottom, left=left, right=right,
                    cell_width=region_w // cols, cell_height=region_h // rows,
                ))

    if len(out) > settings.max_hypotheses:
        logger.warning("Hypothesis grid has %d entries; evaluating the first %d",
                       len(out), settings.max_hypotheses)
        out = out[:settings.max_hypotheses]
    return out


def evaluate_hypothesis(sheet: SheetImage, hyp: GridHypothesis, total_questions: int,
                        settings: ScanSettings = DEFAULTS) -> HypothesisResult:
    questions = tuple(score_question(sheet, hyp, i, settings) for i in range(total_questions))
    return HypothesisResult(hyp, questions, sum(q.quality for q in questions))


def _evaluate_all(sheet: SheetImage, hyps: List[GridHypothesis], total_questions: int,
                  settings: ScanSettings) -> Tuple[List[HypothesisResult], bool]:
    deadline = None
    if settings.search_deadline_s is not None:
        deadline = time.monotonic() + settings.search_deadline_s

    results: List[HypothesisResult] = []
    if settings.workers <= 1:
        for hyp in hyps:
            if deadline is not None and results and time.monotonic() > deadline:
                return results, True
            results.append(evaluate_hypothesis(sheet, hyp, total_questions, settings))
        return results, False

    truncated = False
    with ThreadPoolExecutor(max_workers=settings.workers) as pool:
        futures = [pool.submit(evaluate_hypothesis, sheet, h, total_questions, settings) for h in hyps]
        # consume in submission order so selection matches the sequential path
        for fut in futures:
            timeout = None
            if deadline is not None and results:
                timeout = max(0.0, deadline - time.monotonic())
            try:
                results.append(fut.result(timeout=timeout))
            except FuturesTimeout:
                truncated = True
                break
        if truncated:
            for fut in futures:
                fut.cancel()
    return results, truncated


def search_grid(sheet: SheetImage, total_questions: int,
                settings: ScanSettings = DEFAULTS) -> SearchOutcome:
    hyps = enumerate_hypotheses(sheet.width, sheet.height, total_questions, settings)
    if not hyps:
        raise ValueError("No grid hypotheses configured")

    t0 = time.perf_counter()
    results, truncated = _evaluate_all(sheet, hyps, total_questions, settings)
    if truncated:
        logger.warning("Grid search deadline hit after %d/%d hypotheses", len(results), len(hyps))

    best = reduce(lambda a, b: b if b.quality > a.quality else a, results)
    ranking = tuple(sorted(results, key=lambda r: -r.quality))
    h = best.hypothesis
    logger.info("Chosen grid: %d cols x %d rows, y=%d..%d, quality=%.3f",
                h.columns, h.rows, h.top, h.bottom, best.quality)
    logger.debug("Evaluated %d hypotheses in %.3fs", len(results), time.perf_counter() - t0)
    return SearchOutcome(best, ranking, len(hyps), truncated)
