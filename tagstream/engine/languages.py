"""One-shot query of the languages ctags supports and their file patterns."""

from __future__ import annotations

import logging
import subprocess

from tagstream.core.config import SUPPORTED_LANGUAGES, engine_args, resolve_bin
from tagstream.core.exceptions import LanguageMappingError

logger = logging.getLogger(__name__)

__all__ = ["SUPPORTED_LANGUAGES", "list_language_mappings", "parse_language_mappings"]


def list_language_mappings(
    bin: str | None = None, timeout: float | None = None
) -> dict[str, list[str]]:
    """Ask ctags which file patterns map to each supported language.

    Returns:
        Language name -> glob patterns, e.g. {"JavaScript": ["*.js", "*.jsx", "*.mjs"]}

    Raises:
        LanguageMappingError: if ctags cannot be started, times out or exits non-zero.
    """
    command = [resolve_bin(bin), *engine_args(["--list-maps"])]
    logger.debug("Running %s", " ".join(command))

    try:
        result = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        raise LanguageMappingError(f"{command[0]} timed out after {timeout}s") from e
    except OSError as e:
        raise LanguageMappingError(f"failed to start {command[0]}: {e}") from e

    if result.returncode != 0:
        raise LanguageMappingError(
            f"running {command[0]} failed with exit code {result.returncode}: "
            f"{result.stderr.strip()}"
        )

    return parse_language_mappings(result.stdout)


def parse_language_mappings(output: str) -> dict[str, list[str]]:
    """Parse ``--list-maps`` output: one ``Language pattern...`` line per language."""
    mapping: dict[str, list[str]] = {}
    for line in output.splitlines():
        name, sep, patterns = line.partition(" ")
        if not sep or not name:
            continue
        mapping[name] = patterns.split()
    return mapping
