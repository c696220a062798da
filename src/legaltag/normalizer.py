"""Structural normalizer for LLM-tagged documents.

Repairs possibly malformed markup in a single forward pass:

    1. Rewrite computed levels and ``text_level<N>`` variants to canonical form.
    2. Collapse duplicate level tags within one physical line and drop
       content-block tokens that are not on a line of their own.
    3. Balance content blocks against the current structural headline level.
    4. Close a block left open at end of input.
    5. Run the lead-in / definition hierarchy fixer.

The normalizer has no failure path. Prose text is emitted exactly as read;
only tag tokens and standalone block-marker lines are rewritten, added or
dropped.
"""
from __future__ import annotations

from legaltag.lead_in import fix_lead_in_definition_hierarchy
from legaltag.tag_grammar import (
    BLOCK_CLOSE,
    BLOCK_OPEN,
    canonicalize_text_level_variants,
    classify_line,
    collapse_duplicate_level_tags,
    drop_inline_block_markers,
    fix_computed_level_tags,
    normalize_newlines,
)


class _BlockWriter:
    """Output buffer that tracks whether a content block is open."""

    def __init__(self) -> None:
        self.lines: list[str] = []
        self.block_open = False

    def open_block(self) -> None:
        if not self.block_open:
            self.lines.append(BLOCK_OPEN)
            self.block_open = True

    def close_block(self) -> None:
        if self.block_open:
            self.lines.append(BLOCK_CLOSE)
            self.block_open = False

    def emit(self, line: str) -> None:
        self.lines.append(line)


def balance_content_blocks(text: str) -> str:
    """Run steps 1-4 of the normalizer without the lead-in fixer."""
    s = normalize_newlines(text)
    s = fix_computed_level_tags(s)
    s = canonicalize_text_level_variants(s)

    writer = _BlockWriter()
    structural_level = 0

    for raw_line in s.split("\n"):
        line = drop_inline_block_markers(collapse_duplicate_level_tags(raw_line))
        line_class = classify_line(line)

        if line_class.kind == "footnote_open":
            writer.close_block()
            writer.emit(line)
            continue

        if line_class.kind == "block_open":
            # Level 0 is a barrier: content cannot sit directly under the title.
            if not writer.block_open and structural_level > 0:
                writer.open_block()
            continue

        if line_class.kind == "block_close":
            writer.close_block()
            continue

        if line_class.kind == "level_open" and line_class.level is not None:
            if line_class.level <= structural_level:
                writer.close_block()
                structural_level = line_class.level
            else:
                writer.open_block()
            writer.emit(line)
            continue

        if not writer.block_open and line.strip() and structural_level > 0:
            writer.open_block()
        writer.emit(line)

    writer.close_block()
    return "\n".join(writer.lines)


def validate_structural_integrity(text: str) -> str:
    """Normalize tag structure and re-level definition lists.

    Always returns a buffer; malformed markup is repaired or dropped, never
    reported as an error.
    """
    return fix_lead_in_definition_hierarchy(balance_content_blocks(text))
