"""Configuration for the ctags engine."""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass

DEFAULT_BIN = "universal-ctags"
BIN_ENV_VAR = "CTAGS_COMMAND"

DEFAULT_BUFFER_SIZE = 64 * 1024
DEFAULT_CLOSE_TIMEOUT = 5.0

SUPPORTED_LANGUAGES = (
    "Basic",
    "C",
    "C#",
    "C++",
    "Clojure",
    "Cobol",
    "CSS",
    "CUDA",
    "D",
    "Elixir",
    "elm",
    "Erlang",
    "Go",
    "GraphQL",
    "Groovy",
    "haskell",
    "Java",
    "JavaScript",
    "Jsonnet",
    "kotlin",
    "Lisp",
    "Lua",
    "MatLab",
    "ObjectiveC",
    "OCaml",
    "Pascal",
    "Perl",
    "Perl6",
    "PHP",
    "Powershell",
    "Protobuf",
    "Python",
    "R",
    "Ruby",
    "Rust",
    "scala",
    "Scheme",
    "Sh",
    "swift",
    "SystemVerilog",
    "Tcl",
    "Thrift",
    "typescript",
    "tsx",
    "Verilog",
    "VHDL",
    "Vim",
)

_BASE_ARGS = (
    "--_interactive=default",
    "--fields=*",
    "--pattern-length-limit=250",
)


@dataclass
class Options:
    """Options for starting a ctags engine session.

    Attributes:
        bin: Engine binary. Falls back to $CTAGS_COMMAND, then "universal-ctags".
        debug: Logger receiving request headers and raw response lines.
        info: Logger receiving the engine's stderr output.
        timeout: Seconds one request may take before the session is discarded.
        close_timeout: Seconds to wait for the engine to exit on close.
        buffer_size: Initial read size of the response scanner.
        max_line_size: Skip response lines longer than this (unbounded if None).
    """

    bin: str | None = None
    debug: logging.Logger | None = None
    info: logging.Logger | None = None
    timeout: float | None = None
    close_timeout: float = DEFAULT_CLOSE_TIMEOUT
    buffer_size: int = DEFAULT_BUFFER_SIZE
    max_line_size: int | None = None

    @classmethod
    def from_env(cls) -> Options:
        """Options with the binary taken from $CTAGS_COMMAND."""
        return cls(bin=os.environ.get(BIN_ENV_VAR) or None)

    @property
    def command(self) -> str:
        return resolve_bin(self.bin)


def resolve_bin(bin: str | None) -> str:
    """Pick the engine binary: explicit value, $CTAGS_COMMAND, then the default."""
    if bin:
        return bin
    return os.environ.get(BIN_ENV_VAR) or DEFAULT_BIN


def engine_args(extra: Sequence[str] = ()) -> list[str]:
    """Arguments selecting interactive JSON mode and the supported languages."""
    args = list(_BASE_ARGS)
    args.append("--languages=" + ",".join(SUPPORTED_LANGUAGES))
    args.extend(extra)
    return args
