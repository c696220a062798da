"""Guards around the LLM passes.

Two checks stand between a model response and the document:

* :func:`guard_content_integrity` validates the classification pass. It
  raises :class:`ContentIntegrityError` so the caller can retry the call.
* :func:`guard_conservative_edit` validates the structural audit pass. It
  never raises. Any doubt rejects the edit, and the result then carries the
  pre-edit text plus an itemized issue list.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from legaltag.errors import ContentIntegrityError
from legaltag.lead_in import fix_lead_in_definition_hierarchy
from legaltag.short_tags import strip_short_prefix
from legaltag.tag_grammar import (
    count_tags,
    extract_level,
    forbidden_tags,
    is_block_close_line,
    is_block_open_line,
    normalize_newlines,
    strip_tags,
)
from legaltag.tag_types import GuardResult


MIN_LINE_RATIO = 0.8
MAX_MISMATCH_RATIO = 0.1
MAX_REPORTED_TAGS = 10

_WHITESPACE_RE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Content-integrity guard (classification pass)
# ---------------------------------------------------------------------------


def _comparable(line: str) -> str:
    return _WHITESPACE_RE.sub("", strip_tags(strip_short_prefix(line.strip())))


def _payload_lines(text: str) -> list[str]:
    # Lines holding only markup (block markers, empty tags) count as blank.
    lines = (_comparable(line) for line in normalize_newlines(text).split("\n"))
    return [line for line in lines if line]


def guard_content_integrity(input_text: str, output_text: str) -> None:
    """Reject a classification output that changed content, not just prefixes.

    Raises:
        ContentIntegrityError: when the output lost more than 20% of the
            non-blank lines, or more than 10% of the aligned lines differ
            once prefixes, tags and whitespace are removed.
    """
    input_lines = _payload_lines(input_text)
    output_lines = _payload_lines(output_text)

    if len(output_lines) < len(input_lines) * MIN_LINE_RATIO:
        raise ContentIntegrityError(
            f"Line count mismatch: input {len(input_lines)}, output {len(output_lines)}",
            input_lines=len(input_lines),
            output_lines=len(output_lines),
        )

    compared = min(len(input_lines), len(output_lines))
    mismatches = 0
    for inp, out in zip(input_lines, output_lines):
        if inp != out:
            mismatches += 1

    if mismatches > compared * MAX_MISMATCH_RATIO:
        raise ContentIntegrityError(
            f"Severe content mismatch in {mismatches} of {compared} lines",
            input_lines=len(input_lines),
            output_lines=len(output_lines),
            mismatches=mismatches,
        )


# ---------------------------------------------------------------------------
# Conservative-edit guard (audit pass)
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PayloadLine:
    """One line of the payload projection plus its structural metadata."""

    text: str
    level: int | None
    in_block: bool


def project_payload(text: str) -> list[PayloadLine]:
    """Strip recognised tags and drop standalone block-marker lines."""
    rows: list[PayloadLine] = []
    in_block = False
    for line in normalize_newlines(text).split("\n"):
        if is_block_open_line(line):
            in_block = True
            continue
        if is_block_close_line(line):
            in_block = False
            continue
        rows.append(PayloadLine(
            text=strip_tags(line).strip(),
            level=extract_level(line),
            in_block=in_block,
        ))
    return rows


def _reject(before: str, issue: str) -> GuardResult:
    return GuardResult(text=before, issues=(issue,))


def guard_conservative_edit(
    before: str,
    after: str,
    *,
    allow_content_level_changes: bool = True,
) -> GuardResult:
    """Accept an audit edit only if it changed level numerals or block bounds.

    Checks, in order: allowed tag grammar, content-block balance, level tag
    counts, footnote tag counts, payload text identity, and per-line level
    wrapper presence. Only when all pass is the lead-in fixer applied to
    *after* and the result returned.
    """
    b = normalize_newlines(before)
    a = normalize_newlines(after)

    bad = forbidden_tags(a)
    if bad:
        shown = ", ".join(bad[:MAX_REPORTED_TAGS])
        return _reject(before, f"Forbidden tags detected: {shown}")

    b_counts = count_tags(b)
    a_counts = count_tags(a)

    b_has_blocks = b_counts["block_open"] > 0 or b_counts["block_close"] > 0
    if b_has_blocks and (a_counts["block_open"] == 0 or a_counts["block_close"] == 0):
        return _reject(before, "text_level blocks disappeared.")
    if a_counts["block_open"] != a_counts["block_close"]:
        return _reject(
            before,
            f"Unbalanced text_level: open={a_counts['block_open']} "
            f"close={a_counts['block_close']}",
        )

    if (
        b_counts["level_open"] != a_counts["level_open"]
        or b_counts["level_close"] != a_counts["level_close"]
    ):
        return _reject(
            before,
            f"level tag count changed (open {b_counts['level_open']}->{a_counts['level_open']}, "
            f"close {b_counts['level_close']}->{a_counts['level_close']}).",
        )

    footnote_kinds = (
        "footnote_open",
        "footnote_close",
        "footnote_ref_open",
        "footnote_ref_close",
    )
    if any(b_counts[kind] != a_counts[kind] for kind in footnote_kinds):
        return _reject(
            before,
            f"footnote tag count changed (footnote {b_counts['footnote_open']}->"
            f"{a_counts['footnote_open']}, footnotenumber {b_counts['footnote_ref_open']}->"
            f"{a_counts['footnote_ref_open']}).",
        )

    b_rows = project_payload(b)
    a_rows = project_payload(a)
    if len(b_rows) != len(a_rows):
        return _reject(before, f"payload line count changed ({len(b_rows)} -> {len(a_rows)}).")

    for idx, (b_row, a_row) in enumerate(zip(b_rows, a_rows)):
        if b_row.text != a_row.text:
            return _reject(
                before,
                f"payload text changed at line index {idx}: "
                f"{b_row.text[:60]!r} -> {a_row.text[:60]!r}",
            )

    for idx, (b_row, a_row) in enumerate(zip(b_rows, a_rows)):
        if (b_row.level is None) != (a_row.level is None):
            return _reject(before, f"level wrapper presence changed at line index {idx}.")
        if (
            not allow_content_level_changes
            and b_row.in_block
            and b_row.level != a_row.level
        ):
            return _reject(
                before,
                f"content level changed inside text_level at line index {idx} "
                f"({b_row.level} -> {a_row.level}).",
            )

    return GuardResult(text=fix_lead_in_definition_hierarchy(after))

