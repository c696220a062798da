"""Tests for the tag_document and structure_check CLIs."""
from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]

DOCUMENT = "\n".join([
    "{{level0}}Treaty on Things{{-level0}}",
    "",
    "Article 1",
    "",
    "Definitions apply.",
    "",
    "Article 2",
    "",
    "More text.",
])


def _run(script: str, args: list[str], *, check: bool = True) -> subprocess.CompletedProcess[str]:
    env = os.environ.copy()
    env["PYTHONPATH"] = str(ROOT / "src")
    for key in [k for k in env if k.startswith("LEGALTAG_")]:
        del env[key]
    return subprocess.run(
        [sys.executable, str(ROOT / "scripts" / script), *args],
        cwd=str(ROOT),
        env=env,
        capture_output=True,
        text=True,
        check=check,
        stdin=subprocess.DEVNULL,
    )


class TestTagDocument:
    def test_mock_backend_full_run(self, tmp_path: Path) -> None:
        input_path = tmp_path / "treaty.txt"
        output_path = tmp_path / "treaty.tagged.txt"
        report_path = tmp_path / "report.json"
        input_path.write_text(DOCUMENT, encoding="utf-8")

        proc = _run("tag_document.py", [
            "--input", str(input_path),
            "--output", str(output_path),
            "--report", str(report_path),
            "--backend", "mock",
        ])
        payload = json.loads(proc.stdout)
        assert payload["accepted_stages"] == ["headlines", "content", "audit"]
        assert payload["models"] == {"fast": "mock", "strict": "mock"}
        assert payload["errors_count"] == 0
        assert payload["output_path"] == str(output_path)
        assert json.loads(report_path.read_text())["run_id"] == payload["run_id"]

        tagged = output_path.read_text(encoding="utf-8").split("\n")
        assert tagged[0] == "{{level0}}Treaty on Things{{-level0}}"
        assert "{{level1}}Article 1{{-level1}}" in tagged
        assert "{{level1}}Article 2{{-level1}}" in tagged
        assert tagged.count("{{text_level}}") == tagged.count("{{-text_level}}") == 2
        assert "Definitions apply." in tagged

    def test_single_stage(self, tmp_path: Path) -> None:
        input_path = tmp_path / "treaty.txt"
        output_path = tmp_path / "out.txt"
        input_path.write_text(DOCUMENT, encoding="utf-8")
        proc = _run("tag_document.py", [
            "--input", str(input_path),
            "--output", str(output_path),
            "--backend", "mock",
            "--stages", "headlines",
            "--language", "French",
        ])
        payload = json.loads(proc.stdout)
        assert payload["stages"] == ["headlines"]
        assert payload["notes"]["language"] == "French"
        assert "{{text_level}}" in output_path.read_text(encoding="utf-8")

    def test_missing_input(self, tmp_path: Path) -> None:
        proc = _run("tag_document.py", [
            "--input", str(tmp_path / "missing.txt"),
            "--output", str(tmp_path / "out.txt"),
            "--backend", "mock",
        ], check=False)
        assert proc.returncode == 1
        assert "input file not found" in proc.stderr
        assert proc.stdout == ""

    def test_unknown_stage(self, tmp_path: Path) -> None:
        input_path = tmp_path / "treaty.txt"
        input_path.write_text(DOCUMENT, encoding="utf-8")
        proc = _run("tag_document.py", [
            "--input", str(input_path),
            "--output", str(tmp_path / "out.txt"),
            "--backend", "mock",
            "--stages", "ocr",
        ], check=False)
        assert proc.returncode == 1
        assert "Unknown stage" in proc.stderr


class TestStructureCheck:
    def test_normalize(self, tmp_path: Path) -> None:
        input_path = tmp_path / "doc.txt"
        output_path = tmp_path / "doc.norm.txt"
        input_path.write_text(
            "{{level0}}T{{-level0}}\n{{level1+1}}A{{-level2}}\nBody",
            encoding="utf-8",
        )
        proc = _run("structure_check.py", [
            "normalize", "--input", str(input_path), "--output", str(output_path),
        ])
        payload = json.loads(proc.stdout)
        assert payload["changed"] is True
        assert payload["before"]["forbidden_tags"] == ["{{level1+1}}"]
        assert payload["after"]["forbidden_tags"] == []
        assert output_path.read_text(encoding="utf-8") == (
            "{{level0}}T{{-level0}}\n{{text_level}}\n{{level2}}A{{-level2}}\nBody\n{{-text_level}}"
        )

    def test_guard_rejects_dropped_block_close(self, tmp_path: Path) -> None:
        before = tmp_path / "before.txt"
        after = tmp_path / "after.txt"
        before.write_text("{{level0}}T{{-level0}}\n{{text_level}}\n{{level1}}A{{-level1}}\n{{-text_level}}")
        after.write_text("{{level0}}T{{-level0}}\n{{text_level}}\n{{level1}}A{{-level1}}")
        proc = _run("structure_check.py", [
            "guard", "--before", str(before), "--after", str(after),
        ], check=False)
        assert proc.returncode == 1
        payload = json.loads(proc.stdout)
        assert payload["accepted"] is False
        assert payload["issues"] == ["text_level blocks disappeared."]

    def test_guard_accepts_level_change(self, tmp_path: Path) -> None:
        before = tmp_path / "before.txt"
        after = tmp_path / "after.txt"
        before.write_text("{{level0}}T{{-level0}}\n{{text_level}}\n{{level1}}A{{-level1}}\n{{-text_level}}")
        after.write_text("{{level0}}T{{-level0}}\n{{text_level}}\n{{level2}}A{{-level2}}\n{{-text_level}}")
        proc = _run("structure_check.py", [
            "guard", "--before", str(before), "--after", str(after),
        ])
        assert json.loads(proc.stdout)["accepted"] is True

    def test_diff(self, tmp_path: Path) -> None:
        old = tmp_path / "old.txt"
        new = tmp_path / "new.txt"
        old.write_text("a\nb\nc")
        new.write_text("a\nx\nc")
        proc = _run("structure_check.py", ["diff", "--old", str(old), "--new", str(new), "--show"])
        payload = json.loads(proc.stdout)
        assert payload["diff_stats"] == {"added": 1, "common": 2, "removed": 1}
        assert payload["lines"] == [
            {"kind": "removed", "line": "b"},
            {"kind": "added", "line": "x"},
        ]
        assert "-b\n+x" in proc.stderr

    def test_manifest_diff(self, tmp_path: Path) -> None:
        input_path = tmp_path / "treaty.txt"
        input_path.write_text(DOCUMENT, encoding="utf-8")
        for name in ("run1", "run2"):
            _run("tag_document.py", [
                "--input", str(input_path),
                "--output", str(tmp_path / f"{name}.txt"),
                "--report", str(tmp_path / f"{name}.json"),
                "--backend", "mock",
            ])
        proc = _run("structure_check.py", [
            "manifest-diff",
            "--current", str(tmp_path / "run2.json"),
            "--previous", str(tmp_path / "run1.json"),
        ])
        payload = json.loads(proc.stdout)
        assert payload["command"] == "manifest-diff"
        assert payload["same_input"] is True
        assert payload["output_changed"] is False
        assert payload["models_changed"] is False
        assert payload["errors_count_delta"] == 0
        assert payload["current_run_id"] != payload["previous_run_id"]

    def test_manifest_diff_rejects_non_object(self, tmp_path: Path) -> None:
        bad = tmp_path / "bad.json"
        bad.write_text("[1, 2]")
        proc = _run("structure_check.py", [
            "manifest-diff", "--current", str(bad), "--previous", str(bad),
        ], check=False)
        assert proc.returncode == 2
        assert "Invalid manifest payload" in proc.stderr
