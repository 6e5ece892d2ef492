# src/sheet_omr/tools/id_reader.py
"""
Sheet identifier (unique number) recovery.

Two strategies, tried in order:
  1) grid: crop the footer box in the bottom-right corner, binarise, upscale,
     split into one slice per digit and OCR each slice;
  2) ocr:  OCR the full page and look for "#dddddddddd" or a bare 10-digit run.

Neither strategy raises to the caller for reader or OpenCV problems; a failure is a
miss and the next strategy runs.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

import cv2 as cv
import numpy as np

from ..errors import BackingCapabilityError, InvalidInput
from ..scoring_defaults import DEFAULTS, ScanSettings
from .image_ops import RegionRect, crop, normalize, require_geometry, resize_to_width
from .ocr import TextReader

logger = logging.getLogger(__name__)

_WS = re.compile(r"\s+")
_DIGIT = re.compile(r"\d")


@dataclass(frozen=True)
class IdResult:
    unique_number: Optional[str]
    method: str                      # "grid" | "ocr"
    status: str                      # "ok" | "no_match" | "unavailable" | "failed"
    digits: Tuple[str, ...] = ()
    raw_text: Optional[str] = None


def footer_rect(img_w: int, img_h: int, settings: ScanSettings = DEFAULTS) -> RegionRect:
    x = int(np.floor(img_w * settings.id_crop_x))
    y = int(np.floor(img_h * settings.id_crop_y))
    w = max(settings.id_min_crop, img_w - x)
    h = max(settings.id_min_crop, img_h - y)
    return RegionRect.clipped(x, y, w, h, img_w, img_h)


def digit_slices(img: np.ndarray, count: int) -> List[np.ndarray]:
    """Split an image into `count` equal-width vertical slices (remainder dropped)."""
    per = img.shape[1] // count
    if per <= 0:
        return []
    return [img[:, i * per:(i + 1) * per] for i in range(count)]


def read_id_from_grid(img_bgr: np.ndarray, reader: TextReader,
                      settings: ScanSettings = DEFAULTS) -> Tuple[Optional[str], Tuple[str, ...]]:
    """
    Returns (unique_number or None, per-slice digits).
    Raises InvalidInput for images below the minimum geometry and
    BackingCapabilityError when OCR/OpenCV fail.
    """
    require_geometry(img_bgr, settings)
    h, w = img_bgr.shape[:2]
    rect = footer_rect(w, h, settings)
    try:
        region = normalize(crop(img_bgr, rect), level=settings.id_binarize_level, settings=settings)
        scaled = resize_to_width(region, rect.width * settings.id_upscale)
    except cv.error as e:
        raise BackingCapabilityError(f"footer preprocessing failed: {e}") from e

    digits: List[str] = []
    for piece in digit_slices(scaled, settings.id_digits):
        text = _WS.sub("", reader.read(piece, lang=settings.ocr_lang, config=settings.digit_ocr_config))
        m = _DIGIT.search(text)
        digits.append(m.group(0) if m else "")

    number = "".join(digits)
    logger.debug("Footer grid digits: %s", digits)
    if len(number) == settings.id_digits:
        return number, tuple(digits)
    return None, tuple(digits)


def extract_unique_number(text: str, n_digits: int = 10) -> Optional[str]:
    """First '#'-prefixed run wins, then any standalone run of exactly n digits."""
    flat = _WS.sub(" ", text or "").strip()
    m = re.search(r"#\s*(\d{%d})" % n_digits, flat)
    if m is None:
        m = re.search(r"\b(\d{%d})\b" % n_digits, flat)
    return m.group(1) if m else None


def read_id_from_text(img_bgr: np.ndarray, reader: TextReader,
                      settings: ScanSettings = DEFAULTS) -> Tuple[Optional[str], str]:
    text = reader.read(img_bgr, lang=settings.ocr_lang, config=settings.page_ocr_config)
    raw = _WS.sub(" ", text or "").strip()
    return extract_unique_number(raw, settings.id_digits), raw


def _failure_status(e: BackingCapabilityError) -> str:
    return "unavailable" if e.unavailable else "failed"


def detect_unique_number(img_bgr: np.ndarray, reader: TextReader,
                         settings: ScanSettings = DEFAULTS) -> IdResult:
    """Grid first; full-page OCR only when the grid does not give all digits."""
    digits: Tuple[str, ...] = ()
    try:
        number, digits = read_id_from_grid(img_bgr, reader, settings)
        if number:
            logger.info("Unique number %s read from footer grid", number)
            return IdResult(number, "grid", "ok", digits)
        logger.debug("Footer grid incomplete; falling back to full-page OCR")
    except InvalidInput as e:
        logger.debug("Footer grid skipped: %s", e)
    except BackingCapabilityError as e:
        _log_backend(e, "footer grid")
    except Exception as e:
        # any reader error is a miss
        logger.debug("footer grid: reader raised %s: %s", type(e).__name__, e)

    try:
        number, raw = read_id_from_text(img_bgr, reader, settings)
    except BackingCapabilityError as e:
        _log_backend(e, "full-page OCR")
        return IdResult(None, "ocr", _failure_status(e), digits)
    except Exception as e:
        logger.debug("full-page OCR: reader raised %s: %s", type(e).__name__, e)
        return IdResult(None, "ocr", "failed", digits)

    if number:
        logger.info("Unique number %s read by full-page OCR", number)
    return IdResult(number, "ocr", "ok" if number else "no_match", digits, raw)


def _log_backend(e: BackingCapabilityError, stage: str) -> None:
    if e.unavailable:
        logger.warning("%s: OCR engine unavailable (%s)", stage, e)
    else:
        logger.debug("%s: OCR failed (%s)", stage, e)
