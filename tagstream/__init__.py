"""
Tagstream: symbol extraction for many languages through universal-ctags.

Tagstream keeps one ctags process running in interactive mode and feeds it
files one at a time, enabling you to:
- Extract classes, fields, methods, packages, ... with their nesting
- Parse many files without paying for a process start per file
- Tell recoverable per-file failures apart from a broken engine

Usage:
    from tagstream import Options, Parser

    with Parser(Options(bin="universal-ctags")) as parser:
        entries = parser.parse("com/example/A.java", source)
"""

from tagstream.core import Entry, LanguageMappingError, Options, ParseError, TagstreamError
from tagstream.engine import Parser, list_language_mappings, new_parser

__version__ = "0.1.0"

__all__ = [
    "Entry",
    "Options",
    "Parser",
    "ParseError",
    "LanguageMappingError",
    "TagstreamError",
    "new_parser",
    "list_language_mappings",
]
