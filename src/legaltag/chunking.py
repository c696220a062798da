"""Chunk splitting for the LLM passes.

Model output is capped at roughly 32k characters. The headline and content
passes split the document into a configured number of chunks; the structural
audit sends the whole document when it fits in 30,000 chars (output ~= input)
and otherwise splits before each top-level headline.

Splits respect paragraph boundaries (``\\n\\n``) where possible; a single
paragraph larger than the target is force-split by character count.
"""
from __future__ import annotations

import math
import re


MAX_OUTPUT_CHARS_STRICT = 30_000
PARAGRAPH_SEPARATOR = "\n\n"
MIN_CHUNK_CHARS = 2_000

_LEVEL1_HEADLINE_RE = re.compile(r"(\{\{level1\}\}.*?\{\{-level1\}\})", re.DOTALL)


def create_chunks(text: str, target_size: int) -> list[str]:
    """Greedily pack paragraphs into chunks of at most *target_size* chars."""
    if target_size <= 0:
        raise ValueError(f"target_size must be > 0, got {target_size}")
    if len(text) <= target_size:
        return [text]

    chunks: list[str] = []
    current = ""
    for paragraph in text.split(PARAGRAPH_SEPARATOR):
        if current and len(current) + len(PARAGRAPH_SEPARATOR) + len(paragraph) > target_size:
            chunks.append(current.strip())
            current = ""

        if not current and len(paragraph) > target_size:
            chunks.extend(
                paragraph[i:i + target_size]
                for i in range(0, len(paragraph), target_size)
            )
            continue

        current = current + PARAGRAPH_SEPARATOR + paragraph if current else paragraph

    if current.strip():
        chunks.append(current.strip())
    return chunks


def create_chunks_by_count(
    text: str,
    chunk_count: int,
    *,
    min_chars: int = MIN_CHUNK_CHARS,
) -> list[str]:
    """Split into roughly *chunk_count* paragraph-respecting chunks.

    Chunks are never targeted below *min_chars*, so short documents are not
    cut mid-line.
    """
    if chunk_count <= 1 or not text:
        return [text]
    return create_chunks(text, max(math.ceil(len(text) / chunk_count), min_chars, 1))


def create_chunks_by_top_level_headline(text: str) -> list[str]:
    """One chunk per ``{{level1}}`` section; the preamble joins the first."""
    parts = _LEVEL1_HEADLINE_RE.split(text)
    preamble = parts[0]
    chunks: list[str] = []
    for i in range(1, len(parts), 2):
        section = (parts[i] + (parts[i + 1] if i + 1 < len(parts) else "")).strip()
        if not chunks:
            chunks.append((preamble.strip() + PARAGRAPH_SEPARATOR + section).strip())
        else:
            chunks.append(section)

    if not chunks and text.strip():
        return [text]
    return chunks


def group_small_chunks_safe(chunks: list[str], max_chars: int) -> list[str]:
    """Merge adjacent chunks up to *max_chars*; oversized chunks are re-split."""
    if len(chunks) <= 1:
        return chunks

    result: list[str] = []
    group = ""
    for chunk in chunks:
        if len(chunk) >= max_chars:
            if group:
                result.append(group)
                group = ""
            result.extend(create_chunks(chunk, max_chars))
            continue

        if group and len(group) + len(PARAGRAPH_SEPARATOR) + len(chunk) > max_chars:
            result.append(group)
            group = ""
        group = group + PARAGRAPH_SEPARATOR + chunk if group else chunk

    if group:
        result.append(group)
    return result


def chunks_for_audit(text: str) -> list[str]:
    """Chunks for the structural audit pass; one chunk whenever it fits."""
    if len(text) <= MAX_OUTPUT_CHARS_STRICT:
        return [text]
    initial = create_chunks_by_top_level_headline(text)
    if len(initial) == 1:
        return create_chunks(text, MAX_OUTPUT_CHARS_STRICT)
    return group_small_chunks_safe(initial, MAX_OUTPUT_CHARS_STRICT)
