#!/usr/bin/env python3
"""Tag a legal document end to end.

Runs the selected LLM stages (headlines, content, audit) over a TXT or JSON
document. Each stage is normalized and guarded, then offered for review as a
line diff. The accepted text is written to ``--output``; a JSON run report
goes to stdout (and to ``--report`` when given).

Backends:
- anthropic (default): Anthropic Messages API, key from ANTHROPIC_API_KEY
- mock: offline deterministic processor (headline patterns + short tags)

Usage:
    python3 scripts/tag_document.py \\
      --input treaty.txt --output treaty.tagged.txt \\
      --stages headlines,content,audit --review -v
"""

from __future__ import annotations

import argparse
import logging
import re
import sys
import time
from dataclasses import replace
from pathlib import Path
from typing import Any

import anthropic

from legaltag.config import PipelineConfig, parse_stages
from legaltag.errors import LegalTagError, PipelineStopped
from legaltag.instructions import content_instructions, headline_instructions
from legaltag.io_utils import dumps_json, load_document, write_text
from legaltag.line_diff import diff_stats, format_diff
from legaltag.llm import AnthropicChunkProcessor, ChunkProcessor, ScriptedChunkProcessor
from legaltag.pipeline import PendingChange, auto_accept, run_pipeline
from legaltag.run_manifest import build_manifest, generate_run_id, git_commit_hash, write_manifest
from legaltag.tag_grammar import is_block_marker_line, render_level_tag, strip_tags

log = logging.getLogger("tag_document")

_MOCK_HEADLINE_RE = re.compile(
    r"^(chapter|part|title|section|article|annex)\s+[0-9IVXLC]+\b", re.IGNORECASE,
)
_LEVEL_LINE_RE = re.compile(r"^\{\{level(\d+)\}\}(.*?)\{\{-level\1\}\}$")


def _log(msg: str) -> None:
    print(msg, file=sys.stderr)


# ---------------------------------------------------------------------------
# Mock backend
# ---------------------------------------------------------------------------


def _mock_headlines(chunk: str) -> str:
    out: list[str] = []
    for line in chunk.split("\n"):
        stripped = line.strip()
        if stripped and "{{" not in stripped and _MOCK_HEADLINE_RE.match(stripped):
            out.append(render_level_tag(1, stripped))
        else:
            out.append(line)
    return "\n".join(out)


def _mock_short_tags(chunk: str) -> str:
    out: list[str] = []
    for line in chunk.split("\n"):
        stripped = line.strip()
        if not stripped:
            out.append("")
            continue
        if is_block_marker_line(stripped):
            continue
        level_line = _LEVEL_LINE_RE.match(stripped)
        if level_line:
            out.append(f">>>H{level_line.group(1)} {level_line.group(2)}")
        else:
            out.append(f">>>TX {strip_tags(stripped)}")
    return "\n".join(out)


def build_mock_processor(language: str) -> ScriptedChunkProcessor:
    """Deterministic offline processor; the audit stage echoes its input."""
    headlines = headline_instructions(language)
    content = content_instructions(language)

    def handler(chunk: str, instructions: str) -> str:
        if instructions == headlines:
            return _mock_headlines(chunk)
        if instructions == content:
            return _mock_short_tags(chunk)
        return chunk

    return ScriptedChunkProcessor(handler=handler, name="mock")


# ---------------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------------


def _interactive_review(change: PendingChange) -> bool:
    stats = diff_stats(list(change.diff))
    _log(f"\n=== {change.stage}: +{stats['added']} -{stats['removed']} ===")
    _log(format_diff(list(change.diff), context=2))
    for report in change.chunk_reports:
        if report.status != "ok":
            _log(f"  chunk {report.index + 1}: {report.status}: {'; '.join(report.issues)}")
    if not change.has_changes:
        _log("No changes.")
        return True
    sys.stderr.write("Accept these changes? [y/N] ")
    sys.stderr.flush()
    answer = sys.stdin.readline().strip().lower()
    return answer in {"y", "yes"}


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the tagging CLI."""
    parser = argparse.ArgumentParser(
        description="Tag a legal document with the hierarchical level/text_level markup",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--input", required=True, type=Path, help="Input .txt or .json document")
    parser.add_argument("--output", required=True, type=Path, help="Path for the tagged text")
    parser.add_argument("--report", type=Path, default=None, help="Optional JSON run manifest path")
    parser.add_argument(
        "--stages",
        default="headlines,content,audit",
        help="Comma-separated stages to run (default: headlines,content,audit)",
    )
    parser.add_argument(
        "--backend",
        choices=("anthropic", "mock"),
        default="anthropic",
        help="LLM backend.",
    )
    parser.add_argument("--language", default=None, help="Document language (default: English)")
    parser.add_argument("--model-fast", default=None, help="Model for headline and content stages")
    parser.add_argument("--model-strict", default=None, help="Model for the audit stage")
    parser.add_argument(
        "--chunk-count",
        type=int,
        default=None,
        metavar="N",
        help="Number of chunks for the content stage",
    )
    parser.add_argument(
        "--review",
        action="store_true",
        help="Show each stage diff on stderr and ask before applying it",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose logging to stderr",
    )
    return parser


def _config_from_args(args: argparse.Namespace) -> PipelineConfig:
    config = PipelineConfig.from_env()
    overrides: dict[str, Any] = {}
    if args.language:
        overrides["language"] = args.language
    if args.model_fast:
        overrides["model_fast"] = args.model_fast
    if args.model_strict:
        overrides["model_strict"] = args.model_strict
    if args.chunk_count is not None:
        overrides["content_chunk_count"] = args.chunk_count
    return replace(config, **overrides) if overrides else config


def _build_processors(
    backend: str,
    config: PipelineConfig,
) -> tuple[ChunkProcessor, ChunkProcessor]:
    if backend == "mock":
        mock = build_mock_processor(config.language)
        return mock, mock
    fast = AnthropicChunkProcessor(
        model=config.model_fast,
        language=config.language,
        max_tokens=config.max_output_tokens,
        timeout_sec=config.default_timeout_sec,
    )
    strict = AnthropicChunkProcessor(
        model=config.model_strict,
        language=config.language,
        max_tokens=config.max_output_tokens,
        timeout_sec=config.strict_timeout_sec,
    )
    return fast, strict


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    logging.getLogger("anthropic").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    input_path: Path = args.input
    if not input_path.exists():
        _log(f"Error: input file not found: {input_path}")
        return 1

    try:
        stages = parse_stages(args.stages)
        config = _config_from_args(args)
        text = load_document(input_path)
    except ValueError as exc:
        _log(f"Error: {exc}")
        return 1

    try:
        fast, strict = _build_processors(args.backend, config)
    except anthropic.AnthropicError as exc:
        _log(f"Error: {exc}")
        return 1
    run_id = generate_run_id()
    log.info("Run %s: %s, stages=%s, backend=%s", run_id, input_path, ",".join(stages), args.backend)

    started = time.perf_counter()
    try:
        result = run_pipeline(
            text,
            fast,
            config,
            stages=stages,
            review=_interactive_review if args.review else auto_accept,
            strict_processor=strict,
            source_name=str(input_path),
        )
    except PipelineStopped as exc:
        _log(f"Stopped: {exc}")
        return 130
    except (LegalTagError, anthropic.AnthropicError) as exc:
        _log(f"Error: {exc}")
        return 1
    elapsed = time.perf_counter() - started

    write_text(result.text, args.output)

    chunk_reports = {
        change.stage: [
            {"index": r.index, "status": r.status, "issues": list(r.issues)}
            for r in change.chunk_reports
        ]
        for change in result.changes
    }
    manifest = build_manifest(
        run_id=run_id,
        input_path=input_path,
        input_text=text,
        output_text=result.text,
        stages=list(stages),
        accepted_stages=result.accepted,
        models={"fast": fast.model_version(), "strict": strict.model_version()},
        chunk_reports=chunk_reports,
        timings_sec={"total": round(elapsed, 3)},
        git_commit=git_commit_hash(search_from=Path(__file__).resolve()),
        notes={
            "backend": args.backend,
            "language": config.language,
            "diff_stats": {c.stage: diff_stats(list(c.diff)) for c in result.changes},
        },
    )
    manifest["output_path"] = str(args.output)
    if args.report is not None:
        write_manifest(args.report, manifest)
        manifest["report_path"] = str(args.report)

    print(dumps_json(manifest))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
