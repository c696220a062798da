#!/usr/bin/env python3
"""Offline structure tools for tagged documents (no LLM involved).

Subcommands:
- normalize: run the structural normalizer + lead-in fixer over a file
- guard: check an audited version against its pre-edit version
- diff: line diff between two versions
- manifest-diff: compare two run manifests written by tag_document.py

All subcommands print JSON to stdout. ``guard`` exits 1 when the edit is
rejected.

Usage:
    python3 scripts/structure_check.py normalize --input doc.txt --output doc.norm.txt
    python3 scripts/structure_check.py guard --before step2.txt --after step3.txt
    python3 scripts/structure_check.py diff --old step2.txt --new step3.txt
    python3 scripts/structure_check.py manifest-diff --current run2.json --previous run1.json
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

from legaltag.guards import guard_conservative_edit
from legaltag.io_utils import dumps_json, load_document, write_text
from legaltag.line_diff import diff_stats, format_diff, generate_diff
from legaltag.normalizer import validate_structural_integrity
from legaltag.run_manifest import compare_manifests, load_manifest
from legaltag.tag_grammar import count_tags, forbidden_tags


def _log(msg: str) -> None:
    print(msg, file=sys.stderr)


def _tag_summary(text: str) -> dict[str, Any]:
    counts = count_tags(text)
    return {
        "tag_counts": {kind: counts[kind] for kind in sorted(counts)},
        "forbidden_tags": forbidden_tags(text)[:10],
    }


def cmd_normalize(args: argparse.Namespace) -> int:
    text = load_document(args.input)
    normalized = validate_structural_integrity(text)
    diff = generate_diff(text, normalized)
    if args.output is not None:
        write_text(normalized, args.output)
    print(dumps_json({
        "command": "normalize",
        "input": str(args.input),
        "output": str(args.output) if args.output is not None else None,
        "changed": normalized != text,
        "diff_stats": diff_stats(diff),
        "before": _tag_summary(text),
        "after": _tag_summary(normalized),
    }))
    return 0


def cmd_guard(args: argparse.Namespace) -> int:
    before = load_document(args.before)
    after = load_document(args.after)
    result = guard_conservative_edit(
        before,
        after,
        allow_content_level_changes=not args.freeze_content_levels,
    )
    print(dumps_json({
        "command": "guard",
        "before": str(args.before),
        "after": str(args.after),
        "accepted": result.accepted,
        "issues": list(result.issues),
    }))
    if not result.accepted:
        _log(f"Rejected: {'; '.join(result.issues)}")
        return 1
    return 0


def cmd_diff(args: argparse.Namespace) -> int:
    old = load_document(args.old)
    new = load_document(args.new)
    diff = generate_diff(old, new)
    if args.show:
        _log(format_diff(diff, context=args.context))
    print(dumps_json({
        "command": "diff",
        "old": str(args.old),
        "new": str(args.new),
        "diff_stats": diff_stats(diff),
        "lines": [{"kind": d.kind, "line": d.line} for d in diff if d.kind != "common"],
    }))
    return 0


def cmd_manifest_diff(args: argparse.Namespace) -> int:
    current = load_manifest(args.current)
    previous = load_manifest(args.previous)
    print(dumps_json({"command": "manifest-diff", **compare_manifests(current, previous)}))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Offline normalize / guard / diff tools for tagged documents and run manifests",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    normalize = sub.add_parser("normalize", help="Normalize tag structure")
    normalize.add_argument("--input", required=True, type=Path)
    normalize.add_argument("--output", type=Path, default=None, help="Write normalized text here")
    normalize.set_defaults(func=cmd_normalize)

    guard = sub.add_parser("guard", help="Check an audit edit with the conservative guard")
    guard.add_argument("--before", required=True, type=Path)
    guard.add_argument("--after", required=True, type=Path)
    guard.add_argument(
        "--freeze-content-levels",
        action="store_true",
        help="Also reject level changes on lines inside content blocks",
    )
    guard.set_defaults(func=cmd_guard)

    diff = sub.add_parser("diff", help="Line diff between two versions")
    diff.add_argument("--old", required=True, type=Path)
    diff.add_argument("--new", required=True, type=Path)
    diff.add_argument("--show", action="store_true", help="Print the rendered diff to stderr")
    diff.add_argument("--context", type=int, default=2, help="Context lines for --show")
    diff.set_defaults(func=cmd_diff)

    manifest_diff = sub.add_parser("manifest-diff", help="Compare two run manifests")
    manifest_diff.add_argument("--current", required=True, type=Path)
    manifest_diff.add_argument("--previous", required=True, type=Path)
    manifest_diff.set_defaults(func=cmd_manifest_diff)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    for name in ("input", "before", "after", "old", "new", "current", "previous"):
        path = getattr(args, name, None)
        if path is not None and not path.exists():
            _log(f"Error: file not found: {path}")
            return 2
    func: Callable[[argparse.Namespace], int] = args.func
    try:
        return func(args)
    except ValueError as exc:
        _log(f"Error: {exc}")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
