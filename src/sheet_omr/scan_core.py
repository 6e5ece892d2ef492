# src/sheet_omr/scan_core.py
"""
Public scan operations.

    scan_unique_id      -> identifier only (grid, then full-page OCR)
    scan_answers        -> answers for a known question count
    scan_answers_auto   -> estimate the question count, then answers
    scan_filled_sheet   -> identifier + answers merged into one ScanResult

Only InvalidInput is raised; anything the scanner cannot resolve comes back as
None (identifier) or the blank mark (answers).
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from .scoring_defaults import DEFAULTS, ScanSettings
from .tools.bubble_score import decide_marks
from .tools.grid_search import search_grid
from .tools.id_reader import IdResult, detect_unique_number
from .tools.image_ops import SheetImage, decode_image, ensure_image_bytes, prepare_sheet, sheet_from_image
from .tools.ocr import TesseractReader, TextReader
from .tools.question_count import CountEstimate, estimate_question_count

logger = logging.getLogger(__name__)

TotalLookup = Callable[[str], Optional[int]]


@dataclass
class AnswerScan:
    total_questions: int
    answers: List[str]
    debug: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ScanResult:
    unique_number: Optional[str]
    id_method: Optional[str]
    total_questions: int
    answers: List[str]
    needs_total_questions: bool = False
    debug: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------- stages ----------
def _answers_from_sheet(sheet: SheetImage, total: int, settings: ScanSettings) -> AnswerScan:
    outcome = search_grid(sheet, total, settings)
    best = outcome.best
    decision = decide_marks([q.scores for q in best.questions], settings)
    debug = {
        "width": sheet.width,
        "height": sheet.height,
        "hypothesis": dict(best.record(),
                           cell_width=best.hypothesis.cell_width,
                           cell_height=best.hypothesis.cell_height),
        "questions": [asdict(q) for q in best.questions],
        "qualities": [r.record() for r in outcome.ranking[:12]],
        "global_max": decision.global_max,
        "threshold": decision.threshold,
        "truncated": outcome.truncated,
    }
    return AnswerScan(total, list(decision.answers), debug)


def _count_debug(est: CountEstimate) -> Dict[str, Any]:
    return {"total": est.total, "scores": [list(s) for s in est.scores], "region": est.region}


# ---------- public API ----------
def scan_unique_id(data: bytes, reader: Optional[TextReader] = None,
                   settings: ScanSettings = DEFAULTS) -> IdResult:
    img = decode_image(data, settings)
    return detect_unique_number(img, reader or TesseractReader(), settings)


def scan_answers(data: bytes, total_questions: int, settings: ScanSettings = DEFAULTS) -> AnswerScan:
    """Answers for a known question count; a count <= 0 returns no answers without scanning."""
    ensure_image_bytes(data, settings)
    if total_questions <= 0:
        return AnswerScan(0, [])
    return _answers_from_sheet(prepare_sheet(data, settings), total_questions, settings)


def scan_answers_auto(data: bytes, settings: ScanSettings = DEFAULTS) -> AnswerScan:
    sheet = prepare_sheet(data, settings)
    est = estimate_question_count(sheet, settings)
    if est.total <= 0:
        return AnswerScan(0, [], {"count": _count_debug(est)})
    scan = _answers_from_sheet(sheet, est.total, settings)
    scan.debug["count"] = _count_debug(est)
    return scan


def _lookup_total(total_lookup: Optional[TotalLookup], unique_number: Optional[str]) -> int:
    if total_lookup is None or not unique_number:
        return 0
    try:
        return int(total_lookup(unique_number) or 0)
    except Exception as e:
        # lookup is an external collaborator (answer-key store); its failure is a miss
        logger.warning("Question-count lookup for %s failed: %s", unique_number, e)
        return 0


def scan_filled_sheet(
    data: bytes,
    total_questions: Optional[int] = None,
    total_lookup: Optional[TotalLookup] = None,
    auto_count: bool = True,
    detect_answers: bool = True,
    reader: Optional[TextReader] = None,
    settings: ScanSettings = DEFAULTS,
) -> ScanResult:
    """
    Identifier and answers in one pass.

    Question count resolution order:
      explicit `total_questions` -> `total_lookup(unique_number)` -> estimate (if `auto_count`).
    When no count can be found, answers are empty and `needs_total_questions` is set.
    """
    img: np.ndarray = decode_image(data, settings)
    steps = ["grayscale", "normalize"]

    id_res = detect_unique_number(img, reader or TesseractReader(), settings)
    steps.append("id:ok" if id_res.unique_number else "id:none")
    debug: Dict[str, Any] = {
        "steps": steps,
        "id": {"status": id_res.status, "digits": list(id_res.digits)},
    }
    result = ScanResult(id_res.unique_number, id_res.method, 0, [], debug=debug)

    if not detect_answers:
        return result
    if total_questions is not None and total_questions <= 0:
        steps.append("count:explicit")
        return result

    sheet = sheet_from_image(img, settings)
    total, source = int(total_questions or 0), "explicit"
    if total <= 0:
        total, source = _lookup_total(total_lookup, id_res.unique_number), "lookup"
    if total <= 0 and auto_count:
        est = estimate_question_count(sheet, settings)
        debug["count"] = _count_debug(est)
        total, source = est.total, "auto"

    if total <= 0:
        steps.append("count:none")
        result.needs_total_questions = True
        return result

    steps.append(f"count:{source}")
    scan = _answers_from_sheet(sheet, total, settings)
    steps.append("answers")
    debug["answers"] = scan.debug
    result.total_questions = total
    result.answers = scan.answers
    return result
