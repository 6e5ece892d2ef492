# src/sheet_omr/visualize_core.py

from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

import cv2 as cv
import numpy as np

from .scoring_defaults import DEFAULTS, ScanSettings
from .tools.bubble_score import QuestionCellScores, decide_marks, option_rects, question_cell
from .tools.grid_search import GridHypothesis, search_grid
from .tools.image_ops import SheetImage, prepare_sheet
from .tools.question_count import estimate_question_count
from .tools.zone_visualizer import draw_cells, draw_label, draw_zone_rect, to_bgr


def _draw_unknown(canvas: np.ndarray) -> np.ndarray:
    draw_label(canvas, "question count unknown", (20, 30), color=(0, 0, 255), scale=0.8)
    return canvas


def draw_scan(sheet: SheetImage, hyp: GridHypothesis, questions: Sequence[QuestionCellScores],
              answers: Sequence[str], quality: float, settings: ScanSettings = DEFAULTS) -> np.ndarray:
    """
    Draw a finished answer search on the working-width page:
    answer block (green), question cells (grey), scored sub-cells (blue),
    marked sub-cell (red).
    """
    canvas = to_bgr(sheet.binary)
    draw_zone_rect(canvas, (hyp.left, hyp.top, hyp.right, hyp.bottom), color=(0, 255, 0), thickness=2)
    for q, letter in zip(questions, answers):
        cell = question_cell(hyp, q.index, settings)
        draw_zone_rect(canvas, (cell.x1, cell.y1, cell.x2, cell.y2), color=(160, 160, 160), thickness=1)
        rects = option_rects(hyp, q, settings)
        draw_cells(canvas, rects, color=(255, 120, 0), thickness=1)
        if letter != settings.blank:
            draw_cells(canvas, [rects[settings.choices.index(letter)]], color=(0, 0, 255), thickness=2)
        draw_label(canvas, f"{q.index + 1}:{letter}", (cell.x1, cell.y1 + 12), scale=0.4)

    draw_label(canvas, f"{hyp.columns} cols x {hyp.rows} rows  q={quality:.2f}", (20, 30), scale=0.8)
    return canvas


def render_overlay(data: bytes, total_questions: Optional[int] = None,
                   settings: ScanSettings = DEFAULTS) -> np.ndarray:
    """Run the answer search and draw what it chose. `None` estimates the count; 0 draws nothing."""
    sheet = prepare_sheet(data, settings)
    if total_questions is None:
        total_questions = estimate_question_count(sheet, settings).total
    if total_questions <= 0:
        return _draw_unknown(to_bgr(sheet.binary))

    best = search_grid(sheet, total_questions, settings).best
    decision = decide_marks([q.scores for q in best.questions], settings)
    return draw_scan(sheet, best.hypothesis, best.questions, decision.answers, best.quality, settings)


def render_result_overlay(data: bytes, answers_debug: Optional[Dict[str, Any]],
                          answers: Sequence[str], settings: ScanSettings = DEFAULTS) -> np.ndarray:
    """
    Draw a result that was already computed, from the answer-stage debug payload
    of scan_filled_sheet (`result.debug["answers"]`); no search is repeated.
    """
    sheet = prepare_sheet(data, settings)
    if not answers_debug:
        return _draw_unknown(to_bgr(sheet.binary))

    rec = dict(answers_debug["hypothesis"])
    quality = rec.pop("quality")
    hyp = GridHypothesis(**rec)
    questions = [QuestionCellScores(**dict(q, scores=tuple(q["scores"]))) for q in answers_debug["questions"]]
    return draw_scan(sheet, hyp, questions, answers, quality, settings)


def overlay_scan(
    image_path: Union[str, Path],
    out_image: Union[str, Path] = "scan_overlay.png",
    total_questions: Optional[int] = None,
    settings: ScanSettings = DEFAULTS,
) -> str:
    """Read an image file, draw the chosen geometry and write a PNG."""
    data = Path(image_path).expanduser().read_bytes()
    canvas = render_overlay(data, total_questions, settings)
    out_path = Path(out_image).expanduser().resolve()
    out_path.parent.mkdir(parents=True, exist_ok=True)
    cv.imwrite(str(out_path), canvas)
    return str(out_path)
