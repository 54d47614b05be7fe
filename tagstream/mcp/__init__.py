"""Model Context Protocol tools backed by a shared tagstream Parser.

``tagstream-mcp`` serves ``tagstream_tags`` and ``tagstream_languages`` over
stdio; the ctags binary comes from $CTAGS_COMMAND.
"""

from tagstream.mcp.server import run

__all__ = ["run"]
