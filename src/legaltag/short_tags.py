"""Short-tag expander.

The fast classification pass emits one compact prefix per line::

    >>>H1 Article 1            headline, level 1
    >>>TX Definitions          body paragraph
    >>>LI (a) "Term" means X.  list item
    >>>QT “algorithm” means    quoted / definition line

:func:`convert_short_tags_to_full_structure` turns that into the full
notation: headline lines become balanced level tags and every run of
body-like lines is wrapped in exactly one content block.
"""
from __future__ import annotations

import re

from legaltag.tag_grammar import BLOCK_CLOSE, BLOCK_OPEN, normalize_newlines, render_level_tag


SHORT_PREFIX_RE = re.compile(r"^>>>[A-Z0-9]{2}\s?")
BODY_PREFIXES: tuple[str, ...] = ("TX", "LI", "QT")

_HEADLINE_RE = re.compile(r"^>>>H(\d)\s?(.*)$")
_BODY_RE = re.compile(r"^>>>(TX|LI|QT)\s?(.*)$")
_EXISTING_TAG_RE = re.compile(
    r"\{\{-?(?:level\d+|text_level|footnote\d+|footnotenumber\d+)\}\}"
)


def strip_existing_tags(content: str) -> str:
    """Drop full-notation tags already present in a short-tag line."""
    return _EXISTING_TAG_RE.sub("", content).strip()


def strip_short_prefix(line: str) -> str:
    """Remove a leading ``>>>XX`` prefix (and one following space)."""
    return SHORT_PREFIX_RE.sub("", line, count=1)


def convert_short_tags_to_full_structure(text: str) -> str:
    """Expand ``>>>XX`` prefixed lines into level tags and content blocks.

    Lines without a recognised prefix are treated as body text. Blank lines
    pass through without opening or closing a block.
    """
    out: list[str] = []
    in_block = False

    for raw_line in normalize_newlines(text).split("\n"):
        line = raw_line.rstrip()
        if not line.strip():
            out.append(line)
            continue

        headline = _HEADLINE_RE.match(line)
        if headline:
            if in_block:
                out.append(BLOCK_CLOSE)
                in_block = False
            level = int(headline.group(1))
            out.append(render_level_tag(level, strip_existing_tags(headline.group(2))))
            continue

        body = _BODY_RE.match(line)
        content = body.group(2) if body else line
        if not in_block:
            out.append(BLOCK_OPEN)
            in_block = True
        out.append(strip_existing_tags(content))

    if in_block:
        out.append(BLOCK_CLOSE)
    return "\n".join(out)
