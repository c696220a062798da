"""Lead-in / definition hierarchy fixer.

Inside a content block, an introductory clause ending in a colon governs the
level of the lines that follow it::

    {{level2}}For the purposes of this Chapter:{{-level2}}
    {{level3}}“algorithm” means ...{{-level3}}        # lead-in + 1
    {{level4}}(a) a finite sequence ...{{-level4}}    # lead-in + 2

Only level numerals are rewritten. Payload text and the number of tags are
never touched, and level-0 lines are left alone.
"""
from __future__ import annotations

import re

from legaltag.tag_grammar import (
    extract_level,
    is_block_close_line,
    is_block_open_line,
    normalize_newlines,
    rewrite_line_level,
    strip_all_tags,
)


_QUOTE_CHARS = ('"', "“", "”")
_SUB_ITEM_RE = re.compile(r"^\([a-z0-9]+\)", re.IGNORECASE)


def starts_with_quote(payload: str) -> bool:
    return payload.strip().startswith(_QUOTE_CHARS)


def is_sub_item(payload: str) -> bool:
    """True for parenthesized list items such as ``(a)``, ``(iv)``, ``(12)``."""
    return bool(_SUB_ITEM_RE.match(payload.lstrip()))


def is_lead_in(payload: str) -> bool:
    """Heuristic lead-in: ends with a colon, not a quote, not a list item."""
    t = payload.strip()
    if not t.endswith(":"):
        return False
    if starts_with_quote(t):
        return False
    return not is_sub_item(t)


def fix_lead_in_definition_hierarchy(text: str) -> str:
    """Re-level definition and sub-item lines relative to their lead-in."""
    lines = normalize_newlines(text).split("\n")
    out: list[str] = []
    in_block = False
    lead_level: int | None = None

    for line in lines:
        if is_block_open_line(line):
            in_block = True
            out.append(line)
            continue
        if is_block_close_line(line):
            in_block = False
            lead_level = None
            out.append(line)
            continue
        if not in_block:
            lead_level = None
            out.append(line)
            continue

        level = extract_level(line)
        if level is None:
            out.append(line)
            continue

        payload = strip_all_tags(line)
        if is_lead_in(payload):
            lead_level = level
            out.append(line)
            continue

        if lead_level is not None and level > 0:
            if starts_with_quote(payload):
                if level <= lead_level:
                    line = rewrite_line_level(line, lead_level + 1)
            elif is_sub_item(payload):
                target = lead_level + 2
                if level < target:
                    line = rewrite_line_level(line, target)
            elif level <= lead_level:
                lead_level = None

        out.append(line)

    return "\n".join(out)
