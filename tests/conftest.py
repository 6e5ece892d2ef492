from __future__ import annotations

import math
from typing import List, Optional

import numpy as np
import pytest

from sheet_omr.errors import BackingCapabilityError
from sheet_omr.scoring_defaults import DEFAULTS, ScanSettings, apply_overrides
from sheet_omr.tools.bubble_score import question_cell
from sheet_omr.tools.grid_search import enumerate_hypotheses
from sheet_omr.tools.image_ops import encode_png

PAGE_W = 1200
PAGE_H = 1600


class FakeReader:
    """
    Stands in for tesseract. Footer-slice calls (digit config) pop from
    `grid_texts`; any other call returns `page_text`.
    """

    def __init__(self, grid_texts: Optional[List[str]] = None, page_text: str = "",
                 fail: Optional[BackingCapabilityError] = None):
        self.grid_texts = list(grid_texts or [])
        self.page_text = page_text
        self.fail = fail
        self.calls = []

    def read(self, image, lang="eng", config=""):
        self.calls.append((image.shape, config))
        if self.fail is not None:
            raise self.fail
        if config == DEFAULTS.digit_ocr_config:
            return self.grid_texts.pop(0) if self.grid_texts else ""
        return self.page_text

    @property
    def grid_calls(self):
        return [c for c in self.calls if c[1] == DEFAULTS.digit_ocr_config]


def blank_page(width: int = PAGE_W, height: int = PAGE_H) -> np.ndarray:
    return np.full((height, width, 3), 255, dtype=np.uint8)


def paint_option(img: np.ndarray, settings: ScanSettings, total: int, index: int, letter: str,
                 offset: float = 0.0, band: float = 0.80) -> None:
    """
    Fill one option sub-cell solid black, using the first enumerated hypothesis
    and the given local alignment. The image must already be at working width.
    """
    hyp = enumerate_hypotheses(img.shape[1], img.shape[0], total, settings)[0]
    cell = question_cell(hyp, index, settings)
    inner_w = cell.x2 - cell.x1
    base = cell.x1 + math.floor(inner_w * settings.label_width) + math.floor(inner_w * settings.label_gap)
    start = base + math.floor(inner_w * offset)
    stop = min(cell.x2, start + math.floor(inner_w * band))
    span = stop - start
    n = len(settings.choices)
    k = settings.choices.index(letter)
    x1 = start + (k * span) // n
    x2 = start + ((k + 1) * span) // n
    img[cell.y1:cell.y2, x1:x2] = 0


@pytest.fixture
def pinned_settings() -> ScanSettings:
    """One answer-block hypothesis: top 0.22, height 0.40, 4 columns."""
    return apply_overrides(top_factors=(0.22,), height_factors=(0.40,), column_counts=(4,))


@pytest.fixture
def white_png() -> bytes:
    return encode_png(blank_page())


@pytest.fixture
def marked_b_png(pinned_settings) -> bytes:
    """25 questions, 4 columns, only question 3 marked B."""
    img = blank_page()
    paint_option(img, pinned_settings, total=25, index=2, letter="B")
    return encode_png(img)
