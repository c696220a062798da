"""Tag grammar and line classifier for the hierarchical markup.

Recognised tokens::

    {{level<N>}} ... {{-level<N>}}
    {{text_level}} ... {{-text_level}}
    {{footnote<N>}} ... {{-footnote<N>}}
    {{footnotenumber<N>}} ... {{-footnotenumber<N>}}

Every ``{{...}}`` span is tokenized once by :func:`scan_tags` into a
:class:`TagToken`. Computed levels (``{{level2+1}}``) and ``{{text_level<N>}}``
variants are recognised but flagged non-canonical; anything else is
``forbidden``. The markup is line-oriented: a close tag never ends a line.
"""
from __future__ import annotations

import re
from collections import Counter

from legaltag.tag_types import LineClass, TagKind, TagToken


BLOCK_OPEN = "{{text_level}}"
BLOCK_CLOSE = "{{-text_level}}"

_TAG_SPAN_RE = re.compile(r"\{\{[^}]+\}\}")
_TOKEN_RE = re.compile(
    r"^\{\{(?P<close>-?)"
    r"(?P<name>footnotenumber|footnote|text_level|level)"
    r"(?P<num>\d*)"
    r"(?:\s*\+\s*(?P<addend>\d+))?"
    r"\}\}$"
)
_COMPUTED_LEVEL_RE = re.compile(r"\{\{(-?)level(\d+)\s*\+\s*(\d+)\}\}")
_TEXT_LEVEL_VARIANT_RE = re.compile(r"\{\{(-?)text_level\d+\}\}")
_LEADING_LEVEL_RE = re.compile(r"^\{\{level(\d+)\}\}")
_FIRST_LEVEL_OPEN_RE = re.compile(r"\{\{level\d+\}\}")
_FIRST_LEVEL_CLOSE_RE = re.compile(r"\{\{-level\d+\}\}")

_KIND_BY_NAME: dict[tuple[str, bool], TagKind] = {
    ("level", False): "level_open",
    ("level", True): "level_close",
    ("text_level", False): "block_open",
    ("text_level", True): "block_close",
    ("footnote", False): "footnote_open",
    ("footnote", True): "footnote_close",
    ("footnotenumber", False): "footnote_ref_open",
    ("footnotenumber", True): "footnote_ref_close",
}


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------


def parse_tag(raw: str, start: int = 0) -> TagToken:
    """Parse a single ``{{...}}`` span into a token."""
    end = start + len(raw)
    m = _TOKEN_RE.match(raw)
    if m is None:
        return TagToken(raw=raw, kind="forbidden", number=None, start=start, end=end)

    name = m.group("name")
    closing = m.group("close") == "-"
    num = m.group("num")
    addend = m.group("addend")
    kind = _KIND_BY_NAME[(name, closing)]

    if name == "text_level":
        if addend is not None:
            return TagToken(raw=raw, kind="forbidden", number=None, start=start, end=end)
        token = TagToken(raw=raw, kind=kind, number=None, start=start, end=end)
    else:
        if not num:
            return TagToken(raw=raw, kind="forbidden", number=None, start=start, end=end)
        if addend is not None and name != "level":
            return TagToken(raw=raw, kind="forbidden", number=None, start=start, end=end)
        number = int(num) + (int(addend) if addend is not None else 0)
        token = TagToken(raw=raw, kind=kind, number=number, start=start, end=end)

    if token.canonical_text() != raw:
        return TagToken(
            raw=raw,
            kind=token.kind,
            number=token.number,
            start=start,
            end=end,
            canonical=False,
        )
    return token


def scan_tags(text: str) -> list[TagToken]:
    """Tokenize every ``{{...}}`` span in *text*, in order."""
    return [parse_tag(m.group(0), m.start()) for m in _TAG_SPAN_RE.finditer(text)]


def count_tags(text: str) -> Counter[TagKind]:
    """Count tokens per kind (forbidden included)."""
    return Counter(token.kind for token in scan_tags(text))


def forbidden_tags(text: str) -> list[str]:
    """Raw tokens outside the allowed grammar, including non-canonical forms."""
    return [
        token.raw
        for token in scan_tags(text)
        if token.kind == "forbidden" or not token.canonical
    ]


# ---------------------------------------------------------------------------
# Text-level rewrites
# ---------------------------------------------------------------------------


def normalize_newlines(text: str) -> str:
    """Collapse CRLF and CR to LF."""
    if "\r" not in text:
        return text
    return text.replace("\r\n", "\n").replace("\r", "\n")


def fix_computed_level_tags(text: str) -> str:
    """Rewrite ``{{level2+1}}`` style tags to ``{{level3}}``."""

    def _sum(m: re.Match[str]) -> str:
        total = int(m.group(2)) + int(m.group(3))
        return f"{{{{{m.group(1)}level{total}}}}}"

    return _COMPUTED_LEVEL_RE.sub(_sum, text)


def canonicalize_text_level_variants(text: str) -> str:
    """Rewrite invented ``{{text_level1}}`` markers to the bare form."""
    return _TEXT_LEVEL_VARIANT_RE.sub(
        lambda m: BLOCK_CLOSE if m.group(1) else BLOCK_OPEN,
        text,
    )


def collapse_duplicate_level_tags(line: str) -> str:
    """Merge repeated level open/close tokens on one physical line.

    The single open lands where the first open was (or the first level token
    when there is no open); its number is taken from the first level token.
    One close is appended at the end of the line. Lines with at most one
    open and one close are returned unchanged.
    """
    tokens = [token for token in scan_tags(line) if token.is_level]
    opens = sum(1 for token in tokens if token.kind == "level_open")
    closes = len(tokens) - opens
    if opens <= 1 and closes <= 1:
        return line

    level = tokens[0].number
    anchor = next((token for token in tokens if token.kind == "level_open"), tokens[0])
    parts: list[str] = []
    cursor = 0
    for token in tokens:
        parts.append(line[cursor:token.start])
        if token is anchor:
            parts.append(f"{{{{level{level}}}}}")
        cursor = token.end
    parts.append(line[cursor:])
    return "".join(parts) + f"{{{{-level{level}}}}}"


def drop_inline_block_markers(line: str) -> str:
    """Remove content-block tokens from a line that is not a standalone marker."""
    if is_block_marker_line(line):
        return line
    tokens = [token for token in scan_tags(line) if token.is_block]
    if not tokens:
        return line
    parts: list[str] = []
    cursor = 0
    for token in tokens:
        parts.append(line[cursor:token.start])
        cursor = token.end
    parts.append(line[cursor:])
    return "".join(parts)


def rewrite_line_level(line: str, level: int) -> str:
    """Renumber the first level open and first level close of *line*."""
    line = _FIRST_LEVEL_OPEN_RE.sub(f"{{{{level{level}}}}}", line, count=1)
    return _FIRST_LEVEL_CLOSE_RE.sub(f"{{{{-level{level}}}}}", line, count=1)


def render_level_tag(level: int, text: str) -> str:
    return f"{{{{level{level}}}}}{text}{{{{-level{level}}}}}"


def strip_tags(line: str) -> str:
    """Remove every recognised token from *line*; forbidden tokens stay."""
    pieces: list[str] = []
    cursor = 0
    for token in scan_tags(line):
        if token.kind == "forbidden":
            continue
        pieces.append(line[cursor:token.start])
        cursor = token.end
    pieces.append(line[cursor:])
    return "".join(pieces)


def strip_all_tags(line: str) -> str:
    """Remove every ``{{...}}`` span, recognised or not, and trim."""
    return _TAG_SPAN_RE.sub("", line).strip()


# ---------------------------------------------------------------------------
# Line classifier
# ---------------------------------------------------------------------------


def is_block_open_line(line: str) -> bool:
    return line.strip() == BLOCK_OPEN


def is_block_close_line(line: str) -> bool:
    return line.strip() == BLOCK_CLOSE


def is_block_marker_line(line: str) -> bool:
    return line.strip() in (BLOCK_OPEN, BLOCK_CLOSE)


def extract_level(line: str) -> int | None:
    """Level of a ``{{level<N>}}`` token at the very start of the trimmed line."""
    m = _LEADING_LEVEL_RE.match(line.strip())
    return int(m.group(1)) if m else None


def classify_line(line: str) -> LineClass:
    """Classify one newline-stripped line by its leading token.

    Content-block markers count only as standalone lines; a block token with
    trailing text is plain. A line whose leading token is a computed level
    expression is classified by the evaluated level.
    """
    trimmed = line.strip()
    if trimmed == BLOCK_OPEN:
        return LineClass("block_open")
    if trimmed == BLOCK_CLOSE:
        return LineClass("block_close")
    if not trimmed.startswith("{{"):
        return LineClass("plain")

    m = _TAG_SPAN_RE.match(trimmed)
    if m is None:
        return LineClass("plain")
    token = parse_tag(m.group(0))
    if token.is_block:
        return LineClass("plain")
    if token.kind == "level_open":
        return LineClass("level_open", token.number)
    if token.kind == "level_close":
        return LineClass("level_close", token.number)
    return LineClass(token.kind)
