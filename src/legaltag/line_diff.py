"""Line-level LCS diff used to put every automated change in front of a reviewer.

Classic O(n*m) longest-common-subsequence table followed by a backtrack from
the end of both sequences. On a tie the backtrack prefers an insertion from
the new side, so the output is fully deterministic.
"""
from __future__ import annotations

from legaltag.tag_types import DiffKind, DiffLine


_PREFIX: dict[DiffKind, str] = {"added": "+", "removed": "-", "common": " "}


def compute_lcs_table(a: list[str], b: list[str]) -> list[list[int]]:
    """LCS lengths; ``table[i][j]`` covers ``a[:i]`` and ``b[:j]``."""
    table = [[0] * (len(b) + 1) for _ in range(len(a) + 1)]
    for i in range(1, len(a) + 1):
        row = table[i]
        prev = table[i - 1]
        for j in range(1, len(b) + 1):
            if a[i - 1] == b[j - 1]:
                row[j] = prev[j - 1] + 1
            else:
                row[j] = max(prev[j], row[j - 1])
    return table


def diff_lines(old_lines: list[str], new_lines: list[str]) -> list[DiffLine]:
    """Diff two line sequences."""
    table = compute_lcs_table(old_lines, new_lines)
    diff: list[DiffLine] = []
    i = len(old_lines)
    j = len(new_lines)

    while i > 0 or j > 0:
        if i > 0 and j > 0 and old_lines[i - 1] == new_lines[j - 1]:
            diff.append(DiffLine("common", old_lines[i - 1]))
            i -= 1
            j -= 1
        elif j > 0 and (i == 0 or table[i][j - 1] >= table[i - 1][j]):
            diff.append(DiffLine("added", new_lines[j - 1]))
            j -= 1
        else:
            diff.append(DiffLine("removed", old_lines[i - 1]))
            i -= 1

    diff.reverse()
    return diff


def generate_diff(old_text: str, new_text: str) -> list[DiffLine]:
    """Line diff of two buffers split on ``\\n``."""
    return diff_lines(old_text.split("\n"), new_text.split("\n"))


def reconstruct_old(diff: list[DiffLine]) -> str:
    return "\n".join(d.line for d in diff if d.kind != "added")


def reconstruct_new(diff: list[DiffLine]) -> str:
    return "\n".join(d.line for d in diff if d.kind != "removed")


def has_changes(diff: list[DiffLine]) -> bool:
    return any(d.kind != "common" for d in diff)


def diff_stats(diff: list[DiffLine]) -> dict[str, int]:
    """Count lines per diff kind."""
    stats = {"added": 0, "removed": 0, "common": 0}
    for d in diff:
        stats[d.kind] += 1
    return stats


def format_diff(diff: list[DiffLine], *, context: int | None = None) -> str:
    """Render a diff with ``+``/``-``/space prefixes.

    With *context* set, runs of common lines farther than *context* lines
    from a change collapse to a single ``...`` marker.
    """
    if context is None:
        return "\n".join(f"{_PREFIX[d.kind]}{d.line}" for d in diff)

    changed = [idx for idx, d in enumerate(diff) if d.kind != "common"]
    keep: set[int] = set()
    for idx in changed:
        keep.update(range(max(0, idx - context), min(len(diff), idx + context + 1)))

    out: list[str] = []
    skipping = False
    for idx, d in enumerate(diff):
        if idx in keep:
            out.append(f"{_PREFIX[d.kind]}{d.line}")
            skipping = False
        elif not skipping:
            out.append("...")
            skipping = True
    return "\n".join(out)
