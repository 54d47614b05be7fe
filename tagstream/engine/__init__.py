"""
Engine: drives universal-ctags and decodes its interactive output.

Components:
    - LineScanner: Splits the engine's stdout into records without truncating
    - decode_record: Turns one JSON line into a tag/completed/error record
    - EngineSession: One ctags process, one request in flight at a time
    - Parser: Public facade that restarts the engine after fatal errors
    - list_language_mappings: One-shot query of language -> file patterns

Typical use:
    from tagstream.engine import Parser

    with Parser() as parser:
        for entry in parser.parse("src/A.java", source):
            print(entry.kind, entry.name)
"""

from tagstream.engine.languages import (
    SUPPORTED_LANGUAGES,
    list_language_mappings,
    parse_language_mappings,
)
from tagstream.engine.parser import Parser, new_parser
from tagstream.engine.records import decode_record, encode_entry
from tagstream.engine.scanner import LineScanner
from tagstream.engine.session import EngineSession

__all__ = [
    "LineScanner",
    "decode_record",
    "encode_entry",
    "EngineSession",
    "Parser",
    "new_parser",
    "SUPPORTED_LANGUAGES",
    "list_language_mappings",
    "parse_language_mappings",
]
