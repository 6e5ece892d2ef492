"""sheet-omr: self-calibrating bubble answer-sheet scanner."""

__version__ = "0.3.0"
