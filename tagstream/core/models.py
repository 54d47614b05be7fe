"""Data models for Tagstream."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Union


@dataclass
class Entry:
    """A symbol reported by ctags (class, field, method, package, ...)."""

    path: str
    line: int
    language: str
    kind: str
    name: str
    signature: str | None = None
    pattern: str | None = None
    parent: str | None = None
    parent_kind: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dict."""
        return asdict(self)


@dataclass
class TagRecord:
    """A tag line from the engine."""

    entry: Entry


@dataclass
class CompletedRecord:
    """End of output for one request.

    universal-ctags only echoes the command, so ``path`` is usually None.
    """

    command: str
    path: str | None = None


@dataclass
class ErrorRecord:
    """An error reported by the engine."""

    message: str
    fatal: bool = False


@dataclass
class ProgramRecord:
    """Banner printed once when the engine starts in interactive mode."""

    name: str
    version: str | None = None


Record = Union[TagRecord, CompletedRecord, ErrorRecord, ProgramRecord]
