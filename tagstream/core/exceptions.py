"""Tagstream custom exceptions."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tagstream.core.models import Entry


class TagstreamError(Exception):
    """Base exception for Tagstream errors."""


class ParseError(TagstreamError):
    """A ctags parse failed.

    Fatal errors mean the engine session that produced them can no longer be
    trusted and has to be replaced. Non-fatal errors only concern the file
    being parsed; ``entries`` holds whatever was decoded before the failure.
    """

    def __init__(
        self,
        message: str,
        fatal: bool = False,
        inner: BaseException | None = None,
        entries: list[Entry] | None = None,
    ) -> None:
        self.message = message
        self.fatal = fatal
        self.inner = inner
        self.entries: list[Entry] = entries if entries is not None else []
        super().__init__(message)
        if inner is not None:
            self.__cause__ = inner

    def __str__(self) -> str:
        if self.inner is not None:
            return f"{self.message}: {self.inner}"
        return self.message

    def __repr__(self) -> str:
        return f"ParseError({self.message!r}, fatal={self.fatal})"


class LanguageMappingError(TagstreamError):
    """Listing the engine's language mappings failed."""


def fatal_error(message: str, inner: BaseException | None = None) -> ParseError:
    """Build a fatal ParseError."""
    return ParseError(message, fatal=True, inner=inner)
