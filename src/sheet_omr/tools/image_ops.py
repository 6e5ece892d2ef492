# src/sheet_omr/tools/image_ops.py
"""
Image normalisation helpers shared by every scan stage.

All functions are pure: they take arrays (or raw bytes) and return new arrays.
The working form used by the bubble stages is a `SheetImage`: a binarised,
width-normalised page plus a summed-area table of its dark pixels.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import cv2 as cv
import numpy as np

from ..errors import InvalidInput
from ..scoring_defaults import DEFAULTS, ScanSettings


# ---------- geometry ----------
@dataclass(frozen=True)
class RegionRect:
    left: int
    top: int
    width: int
    height: int

    @classmethod
    def clipped(cls, left: int, top: int, width: int, height: int,
                img_w: int, img_h: int) -> "RegionRect":
        """Clamp a rectangle into a (img_w x img_h) image, keeping at least 1px."""
        if img_w <= 0 or img_h <= 0:
            raise InvalidInput("Cannot crop an empty image")
        x0 = max(0, min(int(left), img_w - 1))
        y0 = max(0, min(int(top), img_h - 1))
        x1 = max(x0 + 1, min(int(left) + int(width), img_w))
        y1 = max(y0 + 1, min(int(top) + int(height), img_h))
        return cls(x0, y0, x1 - x0, y1 - y0)

    @property
    def right(self) -> int:
        return self.left + self.width

    @property
    def bottom(self) -> int:
        return self.top + self.height


@dataclass(frozen=True)
class SheetImage:
    """Binarised page at working width; `dark_integral` is (H+1, W+1)."""
    width: int
    height: int
    binary: np.ndarray
    dark_integral: np.ndarray
    source_size: Tuple[int, int]

    @classmethod
    def from_binary(cls, binary: np.ndarray, cutoff: int,
                    source_size: Optional[Tuple[int, int]] = None) -> "SheetImage":
        h, w = binary.shape[:2]
        dark = (binary < cutoff).astype(np.uint8)
        integral = cv.integral(dark)
        binary = binary.copy()
        binary.setflags(write=False)
        integral.setflags(write=False)
        return cls(w, h, binary, integral, source_size or (w, h))


# ---------- I/O ----------
def ensure_image_bytes(data: Optional[bytes], settings: ScanSettings = DEFAULTS) -> bytes:
    if not data or len(data) < settings.min_bytes:
        raise InvalidInput("Image missing or too small")
    return bytes(data)


def decode_image(data: Optional[bytes], settings: ScanSettings = DEFAULTS) -> np.ndarray:
    """Decode JPEG/PNG bytes into a BGR array."""
    data = ensure_image_bytes(data, settings)
    try:
        img = cv.imdecode(np.frombuffer(data, dtype=np.uint8), cv.IMREAD_COLOR)
    except cv.error as e:
        raise InvalidInput(f"Could not decode image: {e}") from e
    if img is None or img.size == 0:
        raise InvalidInput("Could not decode image")
    return img


def require_geometry(img: np.ndarray, settings: ScanSettings = DEFAULTS) -> None:
    h, w = img.shape[:2]
    if w < settings.min_dimension or h < settings.min_dimension:
        raise InvalidInput(f"Image too small ({w}x{h})")


def encode_png(img: np.ndarray) -> bytes:
    ok, buf = cv.imencode(".png", img)
    if not ok:
        raise ValueError("PNG encoding failed")
    return buf.tobytes()


# ---------- pixel operations ----------
def to_grayscale(img: np.ndarray) -> np.ndarray:
    if img.ndim == 2:
        return img.copy()
    if img.shape[2] == 4:
        return cv.cvtColor(img, cv.COLOR_BGRA2GRAY)
    return cv.cvtColor(img, cv.COLOR_BGR2GRAY)


def normalize_contrast(gray: np.ndarray, low_pct: float = 1.0, high_pct: float = 99.0) -> np.ndarray:
    """Stretch luminance so the low/high percentiles map to 0/255."""
    lo, hi = np.percentile(gray, (low_pct, high_pct))
    if hi <= lo:
        return gray.copy()
    scaled = (gray.astype(np.float32) - lo) * (255.0 / (hi - lo))
    return np.clip(np.rint(scaled), 0, 255).astype(np.uint8)


def binarize(gray: np.ndarray, level: int) -> np.ndarray:
    """Pixels >= level become 255, the rest 0."""
    _, out = cv.threshold(gray, level - 1, 255, cv.THRESH_BINARY)
    return out


def resize_to_width(img: np.ndarray, width: int) -> np.ndarray:
    h, w = img.shape[:2]
    if width == w:
        return img.copy()
    height = max(1, int(round(h * width / float(w))))
    interp = cv.INTER_AREA if width < w else cv.INTER_CUBIC
    return cv.resize(img, (int(width), height), interpolation=interp)


def crop(img: np.ndarray, rect: RegionRect) -> np.ndarray:
    h, w = img.shape[:2]
    r = RegionRect.clipped(rect.left, rect.top, rect.width, rect.height, w, h)
    return img[r.top:r.bottom, r.left:r.right].copy()


def normalize(img: np.ndarray,
              width: Optional[int] = None,
              level: Optional[int] = None,
              settings: ScanSettings = DEFAULTS) -> np.ndarray:
    """grayscale -> contrast stretch -> optional resize -> optional threshold."""
    out = to_grayscale(img)
    out = normalize_contrast(out, settings.contrast_low_pct, settings.contrast_high_pct)
    if width is not None:
        out = resize_to_width(out, width)
    if level is not None:
        out = binarize(out, level)
    return out


def prepare_sheet(data: bytes, settings: ScanSettings = DEFAULTS) -> SheetImage:
    """Decode and binarise a page for the bubble stages."""
    return sheet_from_image(decode_image(data, settings), settings)


def sheet_from_image(img: np.ndarray, settings: ScanSettings = DEFAULTS) -> SheetImage:
    require_geometry(img, settings)
    h, w = img.shape[:2]
    binary = normalize(img, width=settings.work_width, level=settings.binarize_level, settings=settings)
    return SheetImage.from_binary(binary, settings.darkness_cutoff, source_size=(w, h))
