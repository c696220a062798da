"""Run-manifest utilities for tagging-run reproducibility and comparison."""
from __future__ import annotations

import hashlib
import subprocess
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

from legaltag.io_utils import load_json, save_json

MANIFEST_VERSION = "1.0"


def utc_now_iso() -> str:
    """Return current UTC timestamp in ISO-8601 format."""
    return datetime.now(UTC).isoformat()


def generate_run_id(prefix: str = "legaltag_run") -> str:
    """Generate a compact run id suitable for artifact naming."""
    ts = datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")
    return f"{prefix}_{ts}_{uuid4().hex[:8]}"


def text_sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def git_commit_hash(*, search_from: Path | None = None) -> str | None:
    """Best-effort current git commit hash for reproducibility metadata."""
    cwd = (search_from or Path.cwd())
    if cwd.is_file():
        cwd = cwd.parent
    try:
        proc = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            cwd=str(cwd),
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError:
        return None
    if proc.returncode != 0:
        return None
    out = proc.stdout.strip()
    return out if out else None


def build_manifest(
    *,
    run_id: str,
    input_path: Path | None,
    input_text: str,
    output_text: str,
    stages: list[str],
    accepted_stages: list[str],
    models: dict[str, str],
    chunk_reports: dict[str, list[dict[str, Any]]],
    timings_sec: dict[str, float],
    git_commit: str | None = None,
    notes: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the manifest payload for one tagging run."""
    errors_count = sum(
        1
        for reports in chunk_reports.values()
        for report in reports
        if report.get("status") != "ok"
    )
    return {
        "manifest_version": MANIFEST_VERSION,
        "created_at": utc_now_iso(),
        "run_id": run_id,
        "git_commit": git_commit,
        "input": {
            "path": str(input_path) if input_path is not None else None,
            "sha256": text_sha256(input_text),
            "chars": len(input_text),
        },
        "output": {
            "sha256": text_sha256(output_text),
            "chars": len(output_text),
        },
        "stages": stages,
        "accepted_stages": accepted_stages,
        "models": models,
        "chunk_reports": chunk_reports,
        "timings_sec": timings_sec,
        "errors_count": errors_count,
        "notes": notes or {},
    }


def write_manifest(path: Path, manifest: dict[str, Any]) -> Path:
    save_json(manifest, path, pretty=True)
    return path


def load_manifest(path: Path) -> dict[str, Any]:
    """Load a manifest from JSON."""
    data = load_json(path)
    if not isinstance(data, dict):
        raise ValueError(f"Invalid manifest payload in {path}")
    return data


def compare_manifests(
    current: dict[str, Any],
    previous: dict[str, Any],
) -> dict[str, Any]:
    """Compare two manifests of the same input and report what moved."""
    curr_input = current.get("input", {}) or {}
    prev_input = previous.get("input", {}) or {}
    curr_output = current.get("output", {}) or {}
    prev_output = previous.get("output", {}) or {}

    curr_errors = int(current.get("errors_count", 0) or 0)
    prev_errors = int(previous.get("errors_count", 0) or 0)

    return {
        "current_run_id": current.get("run_id"),
        "previous_run_id": previous.get("run_id"),
        "same_input": curr_input.get("sha256") == prev_input.get("sha256"),
        "output_changed": curr_output.get("sha256") != prev_output.get("sha256"),
        "models_changed": current.get("models") != previous.get("models"),
        "errors_count_delta": curr_errors - prev_errors,
    }
