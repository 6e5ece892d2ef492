# src/sheet_omr/batch_core.py
from __future__ import annotations
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple
import csv
import logging
import os

from .errors import InvalidInput
from .scan_core import ScanResult, TotalLookup, scan_filled_sheet
from .scoring_defaults import DEFAULTS, ScanSettings
from .tools.image_ops import encode_png
from .tools.ocr import TextReader
from .tools.zone_visualizer import render_pdf_pages

logger = logging.getLogger(__name__)


def _ensure_dir(path: str) -> None:
    if path and not os.path.isdir(path):
        os.makedirs(path, exist_ok=True)


def load_sources(paths: Sequence[str], dpi: int = 300) -> Iterator[Tuple[str, int, bytes]]:
    """
    Yield (source, page_index, image_bytes).
    PDFs are rasterised page by page; other files are passed through as-is.
    """
    for p in paths:
        if Path(p).suffix.lower() == ".pdf":
            for i, page in enumerate(render_pdf_pages(p, dpi=dpi), start=1):
                yield p, i, encode_png(page)
        else:
            yield p, 1, Path(p).read_bytes()


def scan_batch(
    inputs: Sequence[str],
    out_csv: str,
    total_questions: Optional[int] = None,
    total_lookup: Optional[TotalLookup] = None,
    auto_count: bool = True,
    dpi: int = 300,
    reader: Optional[TextReader] = None,
    settings: ScanSettings = DEFAULTS,
) -> str:
    """
    Scan every page of every input and write one CSV row per page:
      source, page_index, unique_number, id_method, total_questions, Q1..Qn
    Pages that fail input validation are logged and written with empty fields.
    """
    rows: List[Tuple[str, int, Optional[ScanResult]]] = []
    for source, page_idx, data in load_sources(inputs, dpi=dpi):
        try:
            res = scan_filled_sheet(
                data,
                total_questions=total_questions,
                total_lookup=total_lookup,
                auto_count=auto_count,
                reader=reader,
                settings=settings,
            )
        except InvalidInput as e:
            logger.error("%s page %d: %s", source, page_idx, e)
            res = None
        rows.append((source, page_idx, res))

    q_out = max([len(r.answers) for _, _, r in rows if r is not None] or [0])
    header = ["source", "page_index", "unique_number", "id_method", "total_questions"] \
             + [f"Q{i+1}" for i in range(q_out)]

    _ensure_dir(os.path.dirname(out_csv) or ".")
    with open(out_csv, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        for source, page_idx, res in rows:
            if res is None:
                writer.writerow([source, page_idx, "", "", ""] + [""] * q_out)
                continue
            answers = res.answers + [""] * (q_out - len(res.answers))
            writer.writerow([source, page_idx, res.unique_number or "", res.id_method or "",
                             res.total_questions] + answers)

    logger.info("Wrote %d row(s) to %s", len(rows), out_csv)
    return out_csv
