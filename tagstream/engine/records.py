"""Decoding of ctags interactive-mode JSON lines."""

from __future__ import annotations

import json
from typing import Any

from tagstream.core.exceptions import ParseError
from tagstream.core.models import (
    CompletedRecord,
    Entry,
    ErrorRecord,
    ProgramRecord,
    Record,
    TagRecord,
)

_REQUIRED_TAG_FIELDS = ("name", "path", "line", "kind")


def decode_record(line: bytes | str) -> Record:
    """Decode one response line into a tag, completed, error or program record.

    Raises:
        ParseError: (non-fatal) if the line is not a record we understand.
    """
    try:
        data = json.loads(line)
    except (ValueError, RecursionError) as e:
        # ValueError covers JSONDecodeError and UnicodeDecodeError.
        raise ParseError(f"Malformed record {_preview(line)}", inner=e) from e

    if not isinstance(data, dict):
        raise ParseError(f"Expected a JSON object, got {_preview(line)}")

    record_type = data.get("_type")
    if record_type == "tag":
        return TagRecord(_decode_entry(data, line))
    if record_type == "completed":
        return CompletedRecord(
            command=str(data.get("command", "")),
            path=data.get("path") or data.get("filename"),
        )
    if record_type == "error":
        return ErrorRecord(
            message=str(data.get("message", "unknown ctags error")),
            fatal=bool(data.get("fatal", False)),
        )
    if record_type == "program":
        return ProgramRecord(name=str(data.get("name", "")), version=data.get("version"))

    raise ParseError(f"Unknown record type {record_type!r} in {_preview(line)}")


def _decode_entry(data: dict[str, Any], line: bytes | str) -> Entry:
    missing = [field for field in _REQUIRED_TAG_FIELDS if data.get(field) in (None, "")]
    if missing:
        raise ParseError(f"Tag record missing {', '.join(missing)}: {_preview(line)}")

    line_number = data["line"]
    if isinstance(line_number, bool) or not isinstance(line_number, int):
        raise ParseError(f"Tag record has a non-integer line: {_preview(line)}")

    parent = data.get("scope") or None
    parent_kind = data.get("scopeKind") or None
    if parent is None or parent_kind is None:
        parent = parent_kind = None

    return Entry(
        path=data["path"],
        line=line_number,
        language=data.get("language") or "",
        kind=data["kind"],
        name=data["name"],
        signature=data.get("signature") or None,
        pattern=data.get("pattern") or None,
        parent=parent,
        parent_kind=parent_kind,
    )


def encode_entry(entry: Entry) -> str:
    """Render an entry the way ctags prints a tag record."""
    data: dict[str, Any] = {
        "_type": "tag",
        "name": entry.name,
        "path": entry.path,
        "language": entry.language,
        "line": entry.line,
        "kind": entry.kind,
    }
    if entry.signature is not None:
        data["signature"] = entry.signature
    if entry.pattern is not None:
        data["pattern"] = entry.pattern
    if entry.parent is not None and entry.parent_kind is not None:
        data["scope"] = entry.parent
        data["scopeKind"] = entry.parent_kind
    return json.dumps(data)


def _preview(line: bytes | str, limit: int = 200) -> str:
    text = line.decode("utf-8", errors="replace") if isinstance(line, bytes) else line
    if len(text) > limit:
        text = text[: limit - 3] + "..."
    return repr(text)
