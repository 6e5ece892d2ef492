# src/sheet_omr/tools/ocr.py
from __future__ import annotations

import logging
from typing import Protocol

import numpy as np
import pytesseract
from PIL import Image

from ..errors import BackingCapabilityError

logger = logging.getLogger(__name__)


class TextReader(Protocol):
    def read(self, image: np.ndarray, lang: str = "eng", config: str = "") -> str:
        ...


class TesseractReader:
    """
    Thin wrapper around pytesseract.

    Every failure is re-raised as BackingCapabilityError; `unavailable` tells
    a missing engine apart from an engine that ran and failed.
    Callers that scan concurrently should give each worker its own reader.
    """

    def __init__(self, tesseract_cmd: str | None = None):
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    def read(self, image: np.ndarray, lang: str = "eng", config: str = "") -> str:
        if image.ndim == 3:
            pil = Image.fromarray(image[:, :, ::-1])  # BGR -> RGB
        else:
            pil = Image.fromarray(image)
        try:
            return pytesseract.image_to_string(pil, lang=lang, config=config) or ""
        except pytesseract.TesseractNotFoundError as e:
            raise BackingCapabilityError(f"tesseract not available: {e}", unavailable=True) from e
        except (pytesseract.TesseractError, RuntimeError, OSError) as e:
            raise BackingCapabilityError(f"tesseract failed: {e}") from e
