from __future__ import annotations

import json
import logging
import sys
import subprocess
from dataclasses import asdict
from pathlib import Path
from typing import List, Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.logging import RichHandler

from .config_io import load_settings
from .errors import InvalidInput
from .scoring_defaults import ScanSettings, apply_overrides

# Core modules
from .scan_core import scan_answers, scan_answers_auto, scan_filled_sheet, scan_unique_id
from .batch_core import scan_batch
from .visualize_core import overlay_scan
from .tools.ocr import TesseractReader

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help="sheet-omr: read the sheet number and A-D answers from photographed bubble sheets.",
)


class _State:
    settings: ScanSettings
    tesseract_cmd: Optional[str] = None

    def reader(self) -> TesseractReader:
        return TesseractReader(self.tesseract_cmd)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _read_image(path: str) -> bytes:
    try:
        return Path(path).expanduser().read_bytes()
    except OSError as e:
        rprint(f"[red]Cannot read {path}:[/red] {e}")
        raise typer.Exit(code=2)


def _emit(payload) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


# ----------------------------- GLOBAL --------------------------------
@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Settings overrides (.yaml/.yml or .json)"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Threads for the grid search (1 = sequential)"),
    deadline: Optional[float] = typer.Option(None, "--deadline", help="Stop the grid search after this many seconds"),
    tesseract_cmd: Optional[str] = typer.Option(None, "--tesseract-cmd", help="Path to the tesseract binary"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """
    Shared options; they go before the command name.
    """
    _setup_logging(verbose)
    try:
        settings = load_settings(config)
        settings = apply_overrides(settings, workers=workers, search_deadline_s=deadline)
    except (OSError, ValueError) as e:
        rprint(f"[red]Failed to load config {config}:[/red] {e}")
        raise typer.Exit(code=2)
    state = _State()
    state.settings = settings
    state.tesseract_cmd = tesseract_cmd
    ctx.obj = state


# ----------------------------- SCAN-ID -------------------------------
@app.command("scan-id")
def scan_id(
    ctx: typer.Context,
    image: str = typer.Argument(..., help="Sheet photo or scan (PNG/JPEG)"),
):
    """
    Read the 10-digit sheet number (footer grid first, then full-page OCR).
    """
    state: _State = ctx.obj
    try:
        res = scan_unique_id(_read_image(image), reader=state.reader(), settings=state.settings)
    except InvalidInput as e:
        rprint(f"[red]Invalid image:[/red] {e}")
        raise typer.Exit(code=2)
    _emit({"unique_number": res.unique_number, "method": res.method, "status": res.status})


# ----------------------------- ANSWERS -------------------------------
@app.command()
def answers(
    ctx: typer.Context,
    image: str = typer.Argument(..., help="Sheet photo or scan (PNG/JPEG)"),
    questions: Optional[int] = typer.Option(None, "--questions", "-n",
        help="Number of questions. If omitted, it is estimated from the image."),
    debug: bool = typer.Option(False, "--debug", help="Include per-question scores in the output"),
):
    """
    Detect A-D marks per question.
    """
    state: _State = ctx.obj
    data = _read_image(image)
    try:
        if questions is None:
            res = scan_answers_auto(data, settings=state.settings)
        else:
            res = scan_answers(data, questions, settings=state.settings)
    except InvalidInput as e:
        rprint(f"[red]Invalid image:[/red] {e}")
        raise typer.Exit(code=2)
    payload = asdict(res)
    if not debug:
        payload.pop("debug")
    _emit(payload)


# ------------------------------ SHEET --------------------------------
@app.command()
def sheet(
    ctx: typer.Context,
    image: str = typer.Argument(..., help="Sheet photo or scan (PNG/JPEG)"),
    questions: Optional[int] = typer.Option(None, "--questions", "-n", help="Number of questions, if known"),
    auto_count: bool = typer.Option(True, "--auto-count/--no-auto-count",
        help="Estimate the question count when it is not given"),
    out_json: Optional[str] = typer.Option(None, "--out-json", "-o", help="Also write the full result (with debug) here"),
):
    """
    Sheet number and answers in one result.
    """
    state: _State = ctx.obj
    try:
        res = scan_filled_sheet(
            _read_image(image),
            total_questions=questions,
            auto_count=auto_count,
            reader=state.reader(),
            settings=state.settings,
        )
    except InvalidInput as e:
        rprint(f"[red]Invalid image:[/red] {e}")
        raise typer.Exit(code=2)

    payload = res.to_dict()
    if out_json:
        out = Path(out_json).expanduser()
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    payload.pop("debug")
    _emit(payload)
    if res.needs_total_questions:
        rprint("[yellow]Question count not detected;[/yellow] rescan a clearer image or pass --questions.",
               file=sys.stderr)


# ------------------------------ BATCH --------------------------------
@app.command()
def batch(
    ctx: typer.Context,
    inputs: List[str] = typer.Argument(..., help="Images and/or PDFs (every PDF page is one sheet)"),
    out_csv: str = typer.Option("results.csv", "--out-csv", "-o", help="Output CSV, one row per sheet"),
    questions: Optional[int] = typer.Option(None, "--questions", "-n", help="Number of questions, if known"),
    auto_count: bool = typer.Option(True, "--auto-count/--no-auto-count"),
    dpi: int = typer.Option(300, "--dpi", help="Render DPI for PDFs"),
):
    """
    Scan many sheets into a CSV.
    """
    state: _State = ctx.obj
    try:
        scan_batch(inputs, out_csv, total_questions=questions, auto_count=auto_count,
                   dpi=dpi, reader=state.reader(), settings=state.settings)
    except (OSError, RuntimeError) as e:
        rprint(f"[red]Batch scan failed:[/red] {e}")
        raise typer.Exit(code=2)
    rprint(f"[green]Wrote results:[/green] {out_csv}")


# --------------------------- VISUALIZE -------------------------------
@app.command()
def visualize(
    ctx: typer.Context,
    image: str = typer.Argument(..., help="Sheet photo or scan (PNG/JPEG)"),
    questions: Optional[int] = typer.Option(None, "--questions", "-n", help="Number of questions (estimated if omitted)"),
    out_image: str = typer.Option("scan_overlay.png", "--out-image", "-o", help="Output overlay PNG"),
):
    """
    Draw the chosen answer grid and marked bubbles to check the geometry search.
    """
    state: _State = ctx.obj
    try:
        out = overlay_scan(image, out_image, total_questions=questions, settings=state.settings)
    except (InvalidInput, OSError) as e:
        rprint(f"[red]Visualization failed for {image}:[/red] {e}")
        raise typer.Exit(code=2)
    rprint(f"[green]Wrote:[/green] {out}")


# ------------------------------- GUI ---------------------------------
@app.command()
def gui(
    port: int = typer.Option(8501, "--port", help="Port to serve Streamlit GUI"),
    browser: bool = typer.Option(True, "--open-browser/--no-open-browser", help="Open browser automatically"),
):
    """
    Launch the Streamlit GUI.
    """
    app_py = (Path(__file__).resolve().parent / "app_streamlit.py")
    if not app_py.exists():
        rprint(f"[red]Cannot locate app_streamlit.py at {app_py}[/red]")
        raise typer.Exit(code=2)

    cmd = ["streamlit", "run", str(app_py), "--server.port", str(port)]
    if not browser:
        cmd.extend(["--server.headless", "true"])

    rprint(f"[cyan]Launching:[/cyan] {' '.join(cmd)}")
    try:
        subprocess.run(cmd, check=True)
    except FileNotFoundError:
        rprint("[red]Streamlit not found. Install the GUI extra (`pip install sheet-omr[gui]`).[/red]")
        raise typer.Exit(code=3)
    except subprocess.CalledProcessError as e:
        rprint(f"[red]Streamlit exited with error:[/red] {e}")
        raise typer.Exit(code=4)


# ------------------------------- MAIN --------------------------------
def app_main() -> None:
    """Entry point for console_scripts."""
    try:
        app()
    except KeyboardInterrupt:
        rprint("\n[red]Interrupted[/red]")
        sys.exit(130)


if __name__ == "__main__":
    app_main()
