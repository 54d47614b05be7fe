"""Public parser facade over one ctags engine session."""

from __future__ import annotations

import logging
import threading

from tagstream.core.config import Options
from tagstream.core.exceptions import ParseError, fatal_error
from tagstream.core.models import Entry
from tagstream.engine.session import EngineSession

logger = logging.getLogger(__name__)


class Parser:
    """Extracts tags with a single long-lived ctags process.

    Calls are serialized, so one Parser can be shared between threads, but
    only one file is parsed at a time. Run several Parsers for parallelism.

    Usage:
        with Parser(Options(bin="universal-ctags")) as parser:
            entries = parser.parse("com/example/A.java", source)
    """

    def __init__(self, options: Options | None = None) -> None:
        """Start the engine.

        Raises:
            ParseError: (fatal) if ctags cannot be started.
        """
        self._options = options or Options()
        self._lock = threading.Lock()
        self._closed = False
        self._session: EngineSession | None = EngineSession.start(self._options)
        self.generation = 0

    @classmethod
    def from_env(cls) -> Parser:
        """Start a parser using $CTAGS_COMMAND as the binary, if set."""
        return cls(Options.from_env())

    @property
    def options(self) -> Options:
        return self._options

    def parse(self, path: str, content: bytes | str) -> list[Entry]:
        """Generate tags for one file.

        A fatal error replaces the engine before it is raised, so the next call
        runs against a fresh process.

        Returns:
            Entries in the order ctags emitted them.

        Raises:
            ParseError: ``fatal`` tells whether the engine had to be replaced;
                ``entries`` holds the entries decoded before the failure.
        """
        with self._lock:
            if self._closed:
                raise fatal_error("parser is closed")

            session = self._session
            if session is None or not session.alive:
                session = self._restart()

            try:
                return session.request(path, content)
            except ParseError as e:
                if not e.fatal:
                    raise
                logger.warning("Restarting ctags after fatal error on %s: %s", path, e)
                self._discard()
                try:
                    self._restart()
                except ParseError as restart_error:
                    raise restart_error from e
                raise

    def close(self) -> None:
        """Stop the engine. Later parse() calls fail."""
        with self._lock:
            self._closed = True
            self._discard()

    def __enter__(self) -> Parser:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        self.close()

    def _restart(self) -> EngineSession:
        self._session = EngineSession.start(self._options)
        self.generation += 1
        logger.debug("Started ctags generation %d (pid %d)", self.generation, self._session.pid)
        return self._session

    def _discard(self) -> None:
        session, self._session = self._session, None
        if session is not None:
            session.close()


def new_parser(options: Options | None = None) -> Parser:
    """Start a Parser; raises a fatal ParseError if ctags cannot be started."""
    return Parser(options)
