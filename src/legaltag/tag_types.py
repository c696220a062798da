"""Core types for the tag grammar, guards and line diff."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, TypeAlias


TagKind: TypeAlias = Literal[
    "level_open",
    "level_close",
    "block_open",
    "block_close",
    "footnote_open",
    "footnote_close",
    "footnote_ref_open",
    "footnote_ref_close",
    "forbidden",
]
LineKind: TypeAlias = Literal[
    "level_open",
    "level_close",
    "block_open",
    "block_close",
    "footnote_open",
    "footnote_close",
    "footnote_ref_open",
    "footnote_ref_close",
    "forbidden",
    "plain",
]
DiffKind: TypeAlias = Literal["added", "removed", "common"]

NUMBERED_KINDS: frozenset[str] = frozenset({
    "level_open",
    "level_close",
    "footnote_open",
    "footnote_close",
    "footnote_ref_open",
    "footnote_ref_close",
})

_TAG_NAMES: dict[str, str] = {
    "level_open": "level",
    "level_close": "-level",
    "block_open": "text_level",
    "block_close": "-text_level",
    "footnote_open": "footnote",
    "footnote_close": "-footnote",
    "footnote_ref_open": "footnotenumber",
    "footnote_ref_close": "-footnotenumber",
}


@dataclass(frozen=True, slots=True)
class TagToken:
    """One `{{...}}` token found in a line.

    ``number`` is the level for level tags and the id for footnote tags; for
    computed level expressions it already holds the evaluated sum.
    ``canonical`` is False when the raw token differs from the form this
    grammar emits (computed levels, ``text_level<N>`` variants, zero padding).
    """

    raw: str
    kind: TagKind
    number: int | None
    start: int
    end: int
    canonical: bool = True

    def __post_init__(self) -> None:
        if self.start < 0:
            raise ValueError(f"start must be >= 0, got {self.start}")
        if self.end <= self.start:
            raise ValueError(f"end must be > start, got {self.end} <= {self.start}")
        if self.kind in NUMBERED_KINDS and (self.number is None or self.number < 0):
            raise ValueError(f"{self.kind} token requires a non-negative number")

    @property
    def is_level(self) -> bool:
        return self.kind in ("level_open", "level_close")

    @property
    def is_block(self) -> bool:
        return self.kind in ("block_open", "block_close")

    def canonical_text(self) -> str:
        """Render the token the way the grammar writes it."""
        if self.kind == "forbidden":
            return self.raw
        name = _TAG_NAMES[self.kind]
        if self.kind in NUMBERED_KINDS:
            return f"{{{{{name}{self.number}}}}}"
        return f"{{{{{name}}}}}"


@dataclass(frozen=True, slots=True)
class LineClass:
    """Classification of one newline-stripped line."""

    kind: LineKind
    level: int | None = None

    def __post_init__(self) -> None:
        if self.level is not None and self.level < 0:
            raise ValueError(f"level must be >= 0, got {self.level}")


@dataclass(frozen=True, slots=True)
class GuardResult:
    """Outcome of the conservative-edit guard.

    ``text`` is the accepted edit, or the untouched pre-edit buffer when
    ``issues`` is non-empty.
    """

    text: str
    issues: tuple[str, ...] = ()

    @property
    def accepted(self) -> bool:
        return not self.issues


@dataclass(frozen=True, slots=True)
class DiffLine:
    """One line of a line-level diff."""

    kind: DiffKind
    line: str
