# src/sheet_omr/tools/zone_visualizer.py
from __future__ import annotations
from typing import Iterable, List, Tuple

import cv2 as cv
import numpy as np
import fitz  # PyMuPDF

Rect = Tuple[int, int, int, int]


# ---------- I/O ----------
def render_pdf_pages(path: str, dpi: int = 300) -> List[np.ndarray]:
    """Rasterise every page of a PDF at `dpi` into BGR arrays."""
    zoom = dpi / 72.0
    mat = fitz.Matrix(zoom, zoom)
    pages: List[np.ndarray] = []
    with fitz.open(path) as doc:
        for page in doc:
            pix = page.get_pixmap(matrix=mat, alpha=False)
            img = np.frombuffer(pix.samples, dtype=np.uint8).reshape(pix.height, pix.width, pix.n)
            pages.append(cv.cvtColor(img, cv.COLOR_RGB2BGR))
    return pages


# ---------- drawing ----------
def to_bgr(img: np.ndarray) -> np.ndarray:
    if img.ndim == 2:
        return cv.cvtColor(img, cv.COLOR_GRAY2BGR)
    return img.copy()


def draw_zone_rect(img_bgr: np.ndarray, rect: Rect,
                   color=(0, 255, 0), thickness: int = 2) -> None:
    x0, y0, x1, y1 = rect
    cv.rectangle(img_bgr, (x0, y0), (x1, y1), color, thickness)


def draw_cells(img_bgr: np.ndarray, rects: Iterable[Rect],
               color=(0, 255, 0), thickness: int = 1) -> None:
    for (x0, y0, x1, y1) in rects:
        cv.rectangle(img_bgr, (x0, y0), (x1, y1), color, thickness)


def draw_label(img_bgr: np.ndarray, text: str, origin: Tuple[int, int],
               color=(0, 200, 255), scale: float = 0.5) -> None:
    # dark outline first so the label stays readable on any background
    x, y = int(origin[0]), int(origin[1])
    cv.putText(img_bgr, text, (x, y), cv.FONT_HERSHEY_SIMPLEX, scale, (0, 0, 0), 3, cv.LINE_AA)
    cv.putText(img_bgr, text, (x, y), cv.FONT_HERSHEY_SIMPLEX, scale, color, 1, cv.LINE_AA)
