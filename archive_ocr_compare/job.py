from __future__ import annotations

import shutil
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .utils import append_jsonl, ensure_dir, utc_now_iso, write_json


@dataclass
class RunPaths:
    run_dir: Path
    input_dir: Path
    pages_dir: Path
    text_dir: Path
    reports_dir: Path
    result_json: Path
    metrics_json: Path
    errors_jsonl: Path
    events_jsonl: Path


def run_paths(run_dir: str | Path) -> RunPaths:
    """Describe the layout of a run directory without touching the filesystem."""
    run_dir = Path(run_dir)
    return RunPaths(
        run_dir=run_dir,
        input_dir=run_dir / "input",
        pages_dir=run_dir / "pages",
        text_dir=run_dir / "text",
        reports_dir=run_dir / "reports",
        result_json=run_dir / "result.json",
        metrics_json=run_dir / "metrics.json",
        errors_jsonl=run_dir / "errors.jsonl",
        events_jsonl=run_dir / "events.jsonl",
    )


def create_run_dirs(workspace: str | Path, run_id: str) -> RunPaths:
    paths = run_paths(Path(workspace) / "runs" / run_id)
    for p in [paths.input_dir, paths.pages_dir, paths.text_dir, paths.reports_dir]:
        ensure_dir(p)
    return paths


def new_run_id() -> str:
    """Generate a run ID of the form YYYY-MM-DD/HH-MM-SS__<shortid>."""
    now = datetime.now(timezone.utc)
    date_part = now.strftime("%Y-%m-%d")
    time_part = now.strftime("%H-%M-%S")
    short_id = uuid.uuid4().hex[:8]
    return f"{date_part}/{time_part}__{short_id}"


def record_error(paths: RunPaths, stage: str, message: str) -> None:
    append_jsonl(paths.errors_jsonl, {"at": utc_now_iso(), "stage": stage, "message": message})


def record_event(paths: RunPaths | None, stage: str, **fields: Any) -> None:
    if paths is None:
        return
    append_jsonl(paths.events_jsonl, {"at": utc_now_iso(), "stage": stage, **fields})


def init_run_outputs(paths: RunPaths) -> None:
    # Always create output files, even if the run fails early.
    write_json(paths.result_json, {"run": {}, "reports": []})
    write_json(
        paths.metrics_json,
        {
            "created_at": utc_now_iso(),
            "finished": False,
            "completed_at": None,
            "search_results": 0,
            "search_matches": 0,
            "page_number": None,
            "baseline_chars": 0,
            "local_ocr_chars": 0,
            "cloud_ocr_chars": 0,
            "cloud_ocr_polls": 0,
            "match_counts": {},
        },
    )
    for p in (paths.errors_jsonl, paths.events_jsonl):
        p.parent.mkdir(parents=True, exist_ok=True)
        p.touch(exist_ok=True)


def snapshot_input(paths: RunPaths, input_path: str | Path) -> Path:
    """Copy a local PDF into the run's input dir and return the copy."""
    src = Path(input_path)
    dest = paths.input_dir / src.name
    if src.resolve() != dest.resolve():
        shutil.copy2(src, dest)
    return dest
