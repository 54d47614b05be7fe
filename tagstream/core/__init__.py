"""
Core module: data models, exceptions, and configuration.

Models (models.py):
    - Entry: A symbol reported by ctags
    - TagRecord/CompletedRecord/ErrorRecord/ProgramRecord: Decoded engine lines

Exceptions (exceptions.py):
    - TagstreamError: Base exception for all tagstream errors
    - ParseError: A parse failed, fatal or not
    - LanguageMappingError: The language mapping query failed

Configuration (config.py):
    - Options: How to start and talk to the engine
    - resolve_bin/engine_args: Binary lookup and command line
"""

from tagstream.core.config import (
    SUPPORTED_LANGUAGES,
    Options,
    engine_args,
    resolve_bin,
)
from tagstream.core.exceptions import (
    LanguageMappingError,
    ParseError,
    TagstreamError,
)
from tagstream.core.models import (
    CompletedRecord,
    Entry,
    ErrorRecord,
    ProgramRecord,
    Record,
    TagRecord,
)

__all__ = [
    # Models
    "Entry",
    "Record",
    "TagRecord",
    "CompletedRecord",
    "ErrorRecord",
    "ProgramRecord",
    # Exceptions
    "TagstreamError",
    "ParseError",
    "LanguageMappingError",
    # Configuration
    "Options",
    "SUPPORTED_LANGUAGES",
    "engine_args",
    "resolve_bin",
]
