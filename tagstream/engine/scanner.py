"""Newline-delimited record scanner over a binary stream."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import BinaryIO

from tagstream.core.config import DEFAULT_BUFFER_SIZE

logger = logging.getLogger(__name__)


class LineScanner:
    """Yields the non-empty lines of a byte stream.

    Unlike ``readline`` on a fixed-size buffer, a line is never cut short: the
    read size grows with the pending line until its newline (or EOF) shows up.
    A ``\\r`` right before the newline is dropped, and blank lines are skipped.

    With ``max_line_size`` set, lines longer than the limit (newline included)
    are skipped whole instead of being buffered, and counted in ``skipped``.

    Usage:
        scanner = LineScanner(proc.stdout)
        while scanner.scan():
            handle(scanner.line)
        if scanner.err is not None:
            raise scanner.err
    """

    def __init__(
        self,
        source: BinaryIO,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        max_line_size: int | None = None,
    ) -> None:
        if buffer_size <= 0:
            raise ValueError(f"buffer_size must be positive, got {buffer_size}")
        if max_line_size is not None and max_line_size <= 0:
            raise ValueError(f"max_line_size must be positive, got {max_line_size}")

        self._source = source
        # read() on a pipe blocks until the full size arrives; read1() does not.
        self._read = getattr(source, "read1", None) or source.read
        self._buffer_size = buffer_size
        self._max_line_size = max_line_size

        self._buf = bytearray()
        self._searched = 0
        self._eof = False
        self._discarding = False

        self.line = b""
        self.err: OSError | None = None
        self.skipped = 0

    def scan(self) -> bool:
        """Advance to the next line. Returns False at EOF or on a read error."""
        while True:
            raw = self._next_raw()
            if raw is None:
                self.line = b""
                return False
            if raw.endswith(b"\r"):
                raw = raw[:-1]
            if raw:
                self.line = raw
                return True

    def __iter__(self) -> Iterator[bytes]:
        while self.scan():
            yield self.line

    def _next_raw(self) -> bytes | None:
        while True:
            newline = self._buf.find(b"\n", self._searched)
            if newline >= 0:
                raw = bytes(self._buf[:newline])
                del self._buf[: newline + 1]
                self._searched = 0
                if self._discarding:
                    self._discarding = False
                    continue
                if self._exceeds_limit(newline + 1):
                    self._skip_line(newline + 1)
                    continue
                return raw

            # Without a newline yet, the line is at least one byte longer
            # than what is buffered, unless the stream already ended.
            pending = len(self._buf) + (0 if self._eof else 1)
            if self._buf and self._exceeds_limit(pending):
                if not self._discarding:
                    self._skip_line(len(self._buf))
                    self._discarding = True
                self._buf.clear()
            self._searched = len(self._buf)

            if self.err is not None:
                return None
            if self._eof:
                if self._discarding or not self._buf:
                    self._discarding = False
                    self._buf.clear()
                    self._searched = 0
                    return None
                raw = bytes(self._buf)
                self._buf.clear()
                self._searched = 0
                return raw

            self._fill()

    def _fill(self) -> None:
        # Read at least as much as is already pending, so a long line doubles
        # the buffer on every pass.
        size = max(self._buffer_size, len(self._buf))
        try:
            chunk = self._read(size)
        except OSError as e:
            self.err = e
            return
        if not chunk:
            self._eof = True
        else:
            self._buf += chunk

    def _exceeds_limit(self, length: int) -> bool:
        return self._max_line_size is not None and length > self._max_line_size

    def _skip_line(self, seen: int) -> None:
        self.skipped += 1
        logger.warning(
            "Skipping response line over %d bytes (%d bytes seen)", self._max_line_size, seen
        )
