"""A long-lived universal-ctags process in interactive mode.

The engine is started once and then fed one file per request:

    {"command": "generate-tags", "filename": "a/B.java", "size": 123}\\n
    <123 raw bytes>

It answers with one JSON record per line (tags, possibly an error) followed
by a ``{"_type": "completed", "command": "generate-tags"}`` sentinel. Only one
request may be in flight; anything that breaks this framing makes the session
unusable.
"""

from __future__ import annotations

import json
import logging
import subprocess
import threading
from collections import deque
from contextlib import suppress

from tagstream.core.config import Options, engine_args
from tagstream.core.exceptions import ParseError, fatal_error
from tagstream.core.models import (
    CompletedRecord,
    Entry,
    ErrorRecord,
    ProgramRecord,
    Record,
    TagRecord,
)
from tagstream.engine.records import decode_record
from tagstream.engine.scanner import LineScanner

logger = logging.getLogger(__name__)

GENERATE_TAGS = "generate-tags"

_STDERR_HISTORY = 50
_EXIT_GRACE = 1.0
_DEBUG_PREVIEW = 1000


class EngineSession:
    """One ctags process and its pipes.

    Use ``EngineSession.start()`` rather than the constructor; it performs the
    startup handshake and never returns a half-started session.
    """

    def __init__(self, proc: subprocess.Popen[bytes], options: Options) -> None:
        if proc.stdin is None or proc.stdout is None or proc.stderr is None:
            raise ValueError("ctags process must be started with stdin, stdout and stderr pipes")

        self._proc = proc
        self._options = options
        self._debug = options.debug or logger
        self._info = options.info or logger

        self._stdin = proc.stdin
        self._scanner = LineScanner(
            proc.stdout,
            buffer_size=options.buffer_size,
            max_line_size=options.max_line_size,
        )

        self._lock = threading.Lock()
        self._close_lock = threading.Lock()
        self._alive = True
        self._closed = False
        self._timed_out = False
        self._watch_lock = threading.Lock()
        self._watch_token: object | None = None

        self._stderr_lines: deque[str] = deque(maxlen=_STDERR_HISTORY)
        self._stderr_thread = threading.Thread(
            target=self._drain_stderr, daemon=True, name="ctags-stderr"
        )
        self._stderr_thread.start()

        self.program: ProgramRecord | None = None

    @classmethod
    def start(cls, options: Options | None = None) -> EngineSession:
        """Launch ctags and wait for its program banner.

        Raises:
            ParseError: (fatal) if the binary cannot be run or does not start
                speaking the interactive protocol.
        """
        options = options or Options()
        command = [options.command, *engine_args()]
        logger.debug("Starting %s", " ".join(command))

        try:
            proc = subprocess.Popen(
                command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise fatal_error(f"Failed to start {command[0]}", inner=e) from e

        session = cls(proc, options)
        try:
            session._handshake()
        except ParseError:
            session.close()
            raise
        return session

    @property
    def alive(self) -> bool:
        """False once the session failed fatally or was closed."""
        return self._alive

    @property
    def pid(self) -> int:
        return self._proc.pid

    def request(self, path: str, content: bytes | str) -> list[Entry]:
        """Generate tags for one file.

        Returns:
            Entries in the order ctags emitted them.

        Raises:
            ParseError: with ``entries`` set to whatever was decoded before the
                failure. Fatal errors leave the session closed.
        """
        data = content.encode("utf-8") if isinstance(content, str) else bytes(content)

        with self._lock:
            if not self._alive:
                raise fatal_error("ctags session is no longer usable")

            watchdog = self._arm_watchdog()
            try:
                self._send(path, data)
                entries = self._drain(path)
            except ParseError as e:
                self._disarm(watchdog)
                if self._timed_out:
                    e = self._timeout_error(path, e.entries, inner=e)
                if e.fatal:
                    self._discard()
                raise e
            except BaseException:
                # The rest of this response is still in the pipe.
                self._disarm(watchdog)
                self._discard()
                raise

            self._disarm(watchdog)
            if self._timed_out:
                self._discard()
                raise self._timeout_error(path, entries)
            return entries

    def close(self) -> None:
        """Stop the process and release its pipes. Safe to call repeatedly."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
            self._alive = False

        proc = self._proc
        with suppress(OSError):
            self._stdin.close()
        try:
            proc.wait(timeout=self._options.close_timeout)
        except subprocess.TimeoutExpired:
            logger.debug("ctags (pid %d) did not exit, killing it", proc.pid)
            proc.kill()
            proc.wait()

        self._stderr_thread.join(timeout=_EXIT_GRACE)
        if proc.stdout is not None:
            proc.stdout.close()
        if proc.stderr is not None and not self._stderr_thread.is_alive():
            proc.stderr.close()
        logger.debug("ctags (pid %d) exited with %s", proc.pid, proc.returncode)

    def __enter__(self) -> EngineSession:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        self.close()

    def _handshake(self) -> None:
        watchdog = self._arm_watchdog()
        try:
            record = self._read_record()
        except ParseError as e:
            raise fatal_error(
                f"{self._options.command} did not start in interactive mode", inner=e
            ) from e
        finally:
            self._disarm(watchdog)

        if record is None:
            reason = "timed out starting" if self._timed_out else "exited before starting"
            raise fatal_error(
                f"{self._options.command} {reason}{self._exit_details()}",
                inner=self._scanner.err,
            )
        if isinstance(record, ErrorRecord):
            raise fatal_error(f"{self._options.command} failed to start: {record.message}")
        if not isinstance(record, ProgramRecord):
            raise fatal_error(
                f"{self._options.command} did not start in interactive mode "
                f"(first record: {type(record).__name__})"
            )

        self.program = record
        logger.debug(
            "ctags (pid %d) ready: %s %s", self._proc.pid, record.name, record.version or ""
        )

    def _send(self, path: str, data: bytes) -> None:
        header = json.dumps({"command": GENERATE_TAGS, "filename": path, "size": len(data)})
        self._debug.debug("request: %s", header)
        try:
            self._stdin.write(header.encode("utf-8") + b"\n")
            self._stdin.write(data)
            self._stdin.flush()
        except OSError as e:
            raise fatal_error(f"Failed to send {path} to ctags", inner=e) from e

    def _drain(self, path: str) -> list[Entry]:
        entries: list[Entry] = []
        error: ParseError | None = None
        engine_failed = False

        while True:
            try:
                record = self._read_record()
            except ParseError as e:
                # A line we cannot decode; keep draining for the sentinel.
                logger.warning("Ignoring malformed ctags output for %s: %s", path, e)
                if error is None:
                    error = e
                continue

            if record is None:
                raise ParseError(
                    f"ctags output ended before {path} completed{self._exit_details()}",
                    fatal=True,
                    inner=self._scanner.err,
                    entries=entries,
                )

            if isinstance(record, TagRecord):
                if record.entry.path != path:
                    raise ParseError(
                        f"ctags tagged {record.entry.path} while {path} was pending",
                        fatal=True,
                        entries=entries,
                    )
                if not engine_failed:
                    entries.append(record.entry)
            elif isinstance(record, ErrorRecord):
                if record.fatal:
                    raise ParseError(record.message, fatal=True, entries=entries)
                if not engine_failed:
                    error = ParseError(record.message)
                engine_failed = True
            elif isinstance(record, CompletedRecord):
                self._check_sentinel(record, path, entries)
                break
            else:
                raise ParseError(
                    f"Unexpected {type(record).__name__} while parsing {path}",
                    fatal=True,
                    entries=entries,
                )

        if error is not None:
            error.entries = entries
            raise error
        return entries

    def _check_sentinel(self, record: CompletedRecord, path: str, entries: list[Entry]) -> None:
        if record.command != GENERATE_TAGS:
            raise ParseError(
                f"Expected completion of {GENERATE_TAGS}, got {record.command!r}",
                fatal=True,
                entries=entries,
            )
        if record.path is not None and record.path != path:
            raise ParseError(
                f"ctags completed {record.path} while {path} was pending",
                fatal=True,
                entries=entries,
            )

    def _read_record(self) -> Record | None:
        if not self._scanner.scan():
            return None
        line = self._scanner.line
        if self._debug.isEnabledFor(logging.DEBUG):
            self._debug.debug("response: %s", line[:_DEBUG_PREVIEW].decode("utf-8", "replace"))
        return decode_record(line)

    def _arm_watchdog(self) -> threading.Timer | None:
        if self._options.timeout is None:
            return None
        token = object()
        timer = threading.Timer(self._options.timeout, self._on_timeout, args=(token,))
        timer.daemon = True
        with self._watch_lock:
            self._watch_token = token
        timer.start()
        return timer

    def _disarm(self, watchdog: threading.Timer | None) -> None:
        """Stop the watchdog. Once this returns, ``_timed_out`` is final."""
        if watchdog is None:
            return
        with self._watch_lock:
            self._watch_token = None
        watchdog.cancel()

    def _on_timeout(self, token: object) -> None:
        with self._watch_lock:
            if token is not self._watch_token:
                return
            # Killing the process ends the blocked read with EOF.
            logger.warning("ctags (pid %d) timed out, killing it", self._proc.pid)
            self._timed_out = True
            with suppress(OSError):
                self._proc.kill()

    def _timeout_error(
        self, path: str, entries: list[Entry], inner: BaseException | None = None
    ) -> ParseError:
        return ParseError(
            f"ctags timed out after {self._options.timeout}s on {path}",
            fatal=True,
            inner=inner,
            entries=entries,
        )

    def _discard(self) -> None:
        self._alive = False
        if self._proc.poll() is None:
            with suppress(OSError):
                self._proc.kill()
        self.close()

    def _drain_stderr(self) -> None:
        stream = self._proc.stderr
        if stream is None:
            return
        try:
            for raw in stream:
                text = raw.decode("utf-8", errors="replace").rstrip()
                if text:
                    self._stderr_lines.append(text)
                    self._info.info("ctags: %s", text)
        except (OSError, ValueError):
            return

    def _exit_details(self) -> str:
        try:
            code: int | None = self._proc.wait(timeout=_EXIT_GRACE)
        except subprocess.TimeoutExpired:
            code = None
        self._stderr_thread.join(timeout=_EXIT_GRACE)

        details = []
        if code is not None:
            details.append(f"exit code {code}")
        if self._stderr_lines:
            details.append("stderr: " + " | ".join(self._stderr_lines))
        return f" ({'; '.join(details)})" if details else ""
