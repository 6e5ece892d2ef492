# sheet_omr/errors.py
from __future__ import annotations


class ScanError(Exception):
    """Base class for everything the scanner raises."""


class InvalidInput(ScanError, ValueError):
    """Image bytes missing, too small, undecodable, or below the minimum geometry."""


class BackingCapabilityError(ScanError):
    """
    An image/OCR backend failed.

    `unavailable` is True when the backend could not run at all (e.g. the
    tesseract binary is missing), False when it ran and errored.
    """

    def __init__(self, message: str, unavailable: bool = False):
        super().__init__(message)
        self.unavailable = unavailable
