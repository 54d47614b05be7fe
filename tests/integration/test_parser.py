"""Integration tests for the engine session and parser, using a fake ctags."""

import logging
import threading
from pathlib import Path

import pytest

import tagstream.engine.session as session_module
from tagstream.core.config import Options
from tagstream.core.exceptions import ParseError
from tagstream.core.models import Entry, Record
from tagstream.engine import EngineSession, Parser, decode_record, new_parser


def kinds(entries: list[Entry]) -> list[tuple[str, str]]:
    """Reduce entries to (kind, name) pairs."""
    return [(e.kind, e.name) for e in entries]


class TestEndToEnd:
    """Tests for extracting tags from a small Java class."""

    def test_java_class(self, parser: Parser, java_source: str) -> None:
        """Test package, class, field and method entries in source order."""
        entries = parser.parse("com/sourcegraph/A.java", java_source)

        assert kinds(entries) == [
            ("package", "com.sourcegraph"),
            ("class", "A"),
            ("field", "D"),
            ("field", "E"),
            ("method", "A"),
            ("method", "F"),
        ]
        assert [e.line for e in entries] == [2, 4, 5, 6, 7, 10]
        assert all(e.path == "com/sourcegraph/A.java" for e in entries)
        assert all(e.language == "Java" for e in entries)

        package, cls, *members = entries
        assert package.parent is None and package.parent_kind is None
        assert (cls.parent, cls.parent_kind) == ("com.sourcegraph", "package")
        for member in members:
            assert member.parent == "com.sourcegraph.A"
            assert member.parent_kind == "class"

        assert [m.signature for m in members if m.kind == "method"] == ["()", "()"]
        assert [m.signature for m in members if m.kind == "field"] == [None, None]
        assert entries[2].pattern == "/^  public static int D = 1;$/"

    def test_bytes_content(self, parser: Parser) -> None:
        """Test that bytes and str content give the same result."""
        source = "class Ü {\n  int größe;\n}\n"

        assert parser.parse("Ü.java", source.encode("utf-8")) == parser.parse("Ü.java", source)

    def test_no_tags(self, parser: Parser) -> None:
        """Test a file without symbols."""
        assert parser.parse("README.md", "nothing to see\n") == []

    def test_empty_content(self, parser: Parser) -> None:
        """Test an empty file."""
        assert parser.parse("Empty.java", b"") == []

    def test_results_match_requests(self, parser: Parser) -> None:
        """Test that sequential requests never mix their entries."""
        for i in range(25):
            source = f"class C{i} {{\n" + "".join(f"  int f{j};\n" for j in range(i)) + "}\n"
            entries = parser.parse(f"C{i}.java", source)

            assert kinds(entries) == [("class", f"C{i}")] + [("field", f"f{j}") for j in range(i)]
            assert {e.path for e in entries} == {f"C{i}.java"}

    def test_huge_record(self, parser: Parser) -> None:
        """Test a record far larger than the scanner buffer."""
        entries = parser.parse("Big.java", "class Big {\n@@huge\n  int after;\n}\n")

        assert kinds(entries) == [("class", "Big"), ("field", "huge"), ("field", "after")]
        assert entries[1].pattern == "/^" + "x" * (1 << 20) + "$/"

    def test_content_with_newlines_is_not_split(self, parser: Parser) -> None:
        """Test that the request header's size frames content with many newlines."""
        source = "\n" * 500 + "class Late {\n}\n"
        entries = parser.parse("Late.java", source)

        assert kinds(entries) == [("class", "Late")]
        assert entries[0].line == 501


class TestNonFatalErrors:
    """Tests for errors that leave the engine usable."""

    def test_engine_error_keeps_partial_entries(self, parser: Parser) -> None:
        """Test that entries before the error are returned and later ones dropped."""
        source = "class Bad {\n  int a;\n@@nonfatal\n  int b;\n}\n"

        with pytest.raises(ParseError) as exc_info:
            parser.parse("Bad.java", source)

        error = exc_info.value
        assert error.fatal is False
        assert "unbalanced braces" in error.message
        assert kinds(error.entries) == [("class", "Bad"), ("field", "a")]

    def test_session_survives_non_fatal_error(self, parser: Parser, java_source: str) -> None:
        """Test that the same engine serves the next file."""
        with pytest.raises(ParseError):
            parser.parse("Bad.java", "@@nonfatal\n")

        entries = parser.parse("com/sourcegraph/A.java", java_source)

        assert len(entries) == 6
        assert parser.generation == 0

    def test_malformed_line(self, parser: Parser) -> None:
        """Test that an undecodable line is reported without losing framing."""
        source = "class G {\n  int a;\n@@garbage\n  int b;\n}\n"

        with pytest.raises(ParseError) as exc_info:
            parser.parse("G.java", source)

        assert exc_info.value.fatal is False
        assert "Malformed record" in str(exc_info.value)
        assert kinds(exc_info.value.entries) == [("class", "G"), ("field", "a"), ("field", "b")]

        assert kinds(parser.parse("H.java", "class H {\n}\n")) == [("class", "H")]
        assert parser.generation == 0

    def test_deeply_nested_line(self, parser: Parser) -> None:
        """Test that a line too deep to decode does not shift the next result."""
        with pytest.raises(ParseError) as exc_info:
            parser.parse("One.java", "class One {\n@@nested\n  int a;\n}\n")

        assert exc_info.value.fatal is False
        assert kinds(exc_info.value.entries) == [("class", "One"), ("field", "a")]

        entries = parser.parse("Two.java", "class Two {\n}\n")
        assert kinds(entries) == [("class", "Two")]
        assert {e.path for e in entries} == {"Two.java"}
        assert parser.generation == 0


class TestFatalErrors:
    """Tests for errors that replace the engine."""

    def test_fatal_engine_error_restarts(self, parser: Parser) -> None:
        """Test that a fatal engine error is raised once and the next call works."""
        with pytest.raises(ParseError) as exc_info:
            parser.parse("Oom.java", "class Oom {\n@@fatal\n}\n")

        assert exc_info.value.fatal is True
        assert exc_info.value.message == "ctags: out of memory"
        assert kinds(exc_info.value.entries) == [("class", "Oom")]
        assert parser.generation == 1

        assert kinds(parser.parse("Ok.java", "class Ok {\n}\n")) == [("class", "Ok")]

    def test_engine_exit_restarts(self, parser: Parser) -> None:
        """Test that the engine dying mid-request is fatal and recovered from."""
        with pytest.raises(ParseError) as exc_info:
            parser.parse("Crash.java", "class Crash {\n@@exit\n")

        error = exc_info.value
        assert error.fatal is True
        assert "ended before Crash.java completed" in error.message
        assert "exit code 4" in error.message
        assert "fake-ctags: crashed" in error.message

        assert kinds(parser.parse("Ok.java", "class Ok {\n}\n")) == [("class", "Ok")]
        assert parser.generation == 1

    def test_sentinel_for_other_file(self, parser: Parser) -> None:
        """Test that a completed record for another path is a framing error."""
        with pytest.raises(ParseError) as exc_info:
            parser.parse("Mine.java", "@@wrongpath\n")

        assert exc_info.value.fatal is True
        assert "other/Mine.java" in exc_info.value.message

        assert kinds(parser.parse("Ok.java", "class Ok {\n}\n")) == [("class", "Ok")]

    def test_tag_for_other_file(self, parser: Parser) -> None:
        """Test that a tag naming another path is a framing error."""
        with pytest.raises(ParseError) as exc_info:
            parser.parse("Mine.java", "class Mine {\n@@otherpath\n}\n")

        assert exc_info.value.fatal is True
        assert "other/Mine.java" in exc_info.value.message
        assert kinds(exc_info.value.entries) == [("class", "Mine")]
        assert parser.generation == 1

        assert kinds(parser.parse("Ok.java", "class Ok {\n}\n")) == [("class", "Ok")]

    def test_unexpected_exception_discards_engine(
        self, parser: Parser, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that an exception other than ParseError never leaves a half-read response."""
        calls = 0

        def flaky_decode(line: bytes) -> Record:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("decoder bug")
            return decode_record(line)

        monkeypatch.setattr(session_module, "decode_record", flaky_decode)

        with pytest.raises(RuntimeError):
            parser.parse("One.java", "class One {\n  int a;\n}\n")

        entries = parser.parse("Two.java", "class Two {\n}\n")
        assert kinds(entries) == [("class", "Two")]
        assert {e.path for e in entries} == {"Two.java"}
        assert parser.generation == 1

    def test_timeout_discards_engine(self, fake_ctags: str) -> None:
        """Test that a hung engine is killed and replaced."""
        with Parser(Options(bin=fake_ctags, timeout=1.0)) as parser:
            with pytest.raises(ParseError) as exc_info:
                parser.parse("Slow.java", "class Slow {\n@@hang\n}\n")

            assert exc_info.value.fatal is True
            assert "timed out" in exc_info.value.message
            assert kinds(exc_info.value.entries) == [("class", "Slow")]

            assert kinds(parser.parse("Ok.java", "class Ok {\n}\n")) == [("class", "Ok")]
            assert parser.generation == 1

    def test_late_watchdog_leaves_engine_running(
        self, fake_ctags: str, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that a watchdog firing after its request finished does nothing."""
        with EngineSession.start(Options(bin=fake_ctags, timeout=30.0)) as session:
            armed: list[threading.Timer] = []
            arm = session._arm_watchdog

            def record_arm() -> threading.Timer | None:
                timer = arm()
                if timer is not None:
                    armed.append(timer)
                return timer

            monkeypatch.setattr(session, "_arm_watchdog", record_arm)
            assert kinds(session.request("A.java", "class A {\n}\n")) == [("class", "A")]

            # Run the callback the way the timer thread would, after the request.
            timer = armed[0]
            timer.function(*timer.args)

            assert session.alive
            assert session._proc.poll() is None
            assert kinds(session.request("B.java", "class B {\n}\n")) == [("class", "B")]

    def test_restart_failure_is_raised(
        self, parser: Parser, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that a failed restart surfaces, and the next call tries once more."""
        marker = tmp_path / "refuse"
        marker.touch()
        monkeypatch.setenv("FAKE_CTAGS_REFUSE", str(marker))

        with pytest.raises(ParseError) as exc_info:
            parser.parse("Oom.java", "@@fatal\n")
        assert exc_info.value.fatal is True
        assert "exited before starting" in exc_info.value.message
        assert isinstance(exc_info.value.__cause__, ParseError)

        with pytest.raises(ParseError, match="exited before starting"):
            parser.parse("Ok.java", "class Ok {\n}\n")

        marker.unlink()
        assert kinds(parser.parse("Ok.java", "class Ok {\n}\n")) == [("class", "Ok")]


class TestStartup:
    """Tests for starting the engine."""

    def test_missing_binary(self, tmp_path: Path) -> None:
        """Test that a missing binary is a fatal error at construction."""
        with pytest.raises(ParseError) as exc_info:
            Parser(Options(bin=str(tmp_path / "no-such-ctags")))

        assert exc_info.value.fatal is True
        assert isinstance(exc_info.value.inner, FileNotFoundError)

    @pytest.mark.parametrize(
        ("mode", "message"),
        [
            ("exit", "exited before starting"),
            ("error", "failed to start: unknown language"),
            ("tag", "did not start in interactive mode"),
        ],
    )
    def test_bad_startup(
        self, fake_ctags: str, monkeypatch: pytest.MonkeyPatch, mode: str, message: str
    ) -> None:
        """Test engines that do not come up properly."""
        monkeypatch.setenv("FAKE_CTAGS_STARTUP", mode)

        with pytest.raises(ParseError, match=message) as exc_info:
            new_parser(Options(bin=fake_ctags))

        assert exc_info.value.fatal is True

    def test_startup_stderr_in_message(
        self, fake_ctags: str, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that stderr from a failed start is included."""
        monkeypatch.setenv("FAKE_CTAGS_STARTUP", "exit")

        with pytest.raises(ParseError) as exc_info:
            EngineSession.start(Options(bin=fake_ctags))

        assert "exit code 3" in str(exc_info.value)
        assert "fake-ctags: cannot start" in str(exc_info.value)

    def test_program_banner(self, fake_ctags: str) -> None:
        """Test that the session keeps the engine's banner."""
        with EngineSession.start(Options(bin=fake_ctags)) as session:
            assert session.program is not None
            assert session.program.name == "Universal Ctags"
            assert session.alive


class TestLifecycle:
    """Tests for closing and sharing parsers."""

    def test_close_is_idempotent(self, fake_ctags: str) -> None:
        """Test that close can be called twice and parse fails afterwards."""
        parser = Parser(Options(bin=fake_ctags))
        parser.close()
        parser.close()

        with pytest.raises(ParseError, match="closed") as exc_info:
            parser.parse("A.java", "class A {\n}\n")
        assert exc_info.value.fatal is True

    def test_closed_session_refuses_requests(self, fake_ctags: str) -> None:
        """Test that a closed session is no longer alive."""
        session = EngineSession.start(Options(bin=fake_ctags))
        session.close()

        assert not session.alive
        with pytest.raises(ParseError):
            session.request("A.java", "class A {\n}\n")

    def test_concurrent_callers_are_serialized(self, parser: Parser) -> None:
        """Test that threads sharing a parser each get their own results."""
        results: dict[int, list[Entry]] = {}
        errors: list[BaseException] = []

        def work(i: int) -> None:
            try:
                results[i] = parser.parse(f"T{i}.java", f"class T{i} {{\n  int f{i};\n}}\n")
            except ParseError as e:
                errors.append(e)

        threads = [threading.Thread(target=work, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        for i in range(8):
            assert kinds(results[i]) == [("class", f"T{i}"), ("field", f"f{i}")]


class TestLogging:
    """Tests for the debug and info loggers."""

    def test_debug_and_info_loggers(
        self, fake_ctags: str, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that protocol traffic and engine stderr reach the given loggers."""
        debug = logging.getLogger("test.ctags.debug")
        info = logging.getLogger("test.ctags.info")
        caplog.set_level(logging.DEBUG)

        with Parser(Options(bin=fake_ctags, debug=debug, info=info)) as parser:
            parser.parse("Warn.java", "@@stderr\nclass W {\n}\n")

        debug_messages = [r.getMessage() for r in caplog.records if r.name == debug.name]
        assert any('"command": "generate-tags"' in m for m in debug_messages)
        assert any('"_type": "completed"' in m for m in debug_messages)

        info_messages = [r.getMessage() for r in caplog.records if r.name == info.name]
        assert "ctags: fake-ctags: warning for Warn.java" in info_messages
