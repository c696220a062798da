"""I/O utilities for JSON and text documents.

JSON goes through orjson. Documents come in as ``.txt`` (or ``.md``) files
read verbatim, or ``.json`` files holding either a string, an object with a
``text`` / ``content`` field, or a list of pages/paragraphs that are joined
with blank lines.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, cast

import orjson

from legaltag.errors import UnsupportedDocumentError

TEXT_SUFFIXES: frozenset[str] = frozenset({".txt", ".md", ".text"})
JSON_SUFFIXES: frozenset[str] = frozenset({".json"})
_JSON_TEXT_KEYS: tuple[str, ...] = ("text", "content", "body")


def load_json(path: Path) -> Any:
    """Load JSON from a file."""
    return orjson.loads(path.read_bytes())


def save_json(obj: Any, path: Path, *, pretty: bool = True) -> None:
    """Save an object as JSON, keys sorted, indented unless *pretty* is False."""
    path.parent.mkdir(parents=True, exist_ok=True)
    opts = orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS if pretty else orjson.OPT_SORT_KEYS
    path.write_bytes(orjson.dumps(obj, option=opts))


def dumps_json(obj: Any, *, pretty: bool = True) -> str:
    """Serialize *obj* to a JSON string (for stdout reports)."""
    opts = orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS if pretty else orjson.OPT_SORT_KEYS
    return orjson.dumps(obj, option=opts).decode()


def json_to_text(data: Any) -> str:
    """Flatten a loaded JSON document into plain text."""
    if isinstance(data, str):
        return data
    if isinstance(data, dict):
        obj = cast(dict[str, Any], data)
        for key in _JSON_TEXT_KEYS:
            if isinstance(obj.get(key), str):
                return cast(str, obj[key])
        for key in ("pages", "paragraphs", "sections"):
            if isinstance(obj.get(key), list):
                return json_to_text(obj[key])
        raise UnsupportedDocumentError(
            f"JSON object has none of the fields {', '.join(_JSON_TEXT_KEYS)}"
        )
    if isinstance(data, list):
        parts = [json_to_text(item) for item in cast(list[Any], data)]
        return "\n\n".join(p.strip() for p in parts if p.strip())
    raise UnsupportedDocumentError(f"Cannot read text from JSON {type(data).__name__}")


def load_document(path: Path) -> str:
    """Read a document as a single string.

    Raises:
        UnsupportedDocumentError: unknown suffix (PDF extraction is not built in)
            or a JSON payload without text.
    """
    suffix = path.suffix.lower()
    if suffix in TEXT_SUFFIXES:
        return path.read_text(encoding="utf-8")
    if suffix in JSON_SUFFIXES:
        return json_to_text(load_json(path))
    raise UnsupportedDocumentError(
        f"Unsupported document type {suffix or '(none)'!r} for {path}; "
        "extract text first and pass a .txt or .json file"
    )


def write_text(text: str, path: Path) -> None:
    """Write *text* as UTF-8, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
