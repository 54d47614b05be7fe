"""CLI entry point for Tagstream."""

import json
import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from tagstream.core.config import Options
from tagstream.core.exceptions import LanguageMappingError, ParseError
from tagstream.core.models import Entry
from tagstream.engine import Parser, list_language_mappings

app = typer.Typer(
    name="tagstream",
    help="Extract symbols from source files with universal-ctags.",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)

_MAX_SIGNATURE_DISPLAY = 40


@app.callback()
def main(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Log ctags traffic to stderr")
    ] = False,
) -> None:
    """Extract symbols from source files with universal-ctags."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


def format_entry(entry: Entry) -> str:
    """Format an entry as a single console line."""
    signature = entry.signature or ""
    if len(signature) > _MAX_SIGNATURE_DISPLAY:
        signature = signature[: _MAX_SIGNATURE_DISPLAY - 3] + "..."
    signature = escape(signature)

    parent = ""
    if entry.parent:
        parent = f" [dim]in {entry.parent_kind} {escape(entry.parent)}[/]"

    return (
        f"  [dim]{entry.line:>5}[/] [yellow]{entry.kind:<10}[/] "
        f"[cyan]{escape(entry.name)}[/]{signature}{parent}"
    )


@app.command()
def tags(
    files: Annotated[list[Path], typer.Argument(help="Files to extract tags from")],
    bin: Annotated[
        str | None, typer.Option("--bin", "-b", help="ctags binary (default: $CTAGS_COMMAND)")
    ] = None,
    timeout: Annotated[
        float | None, typer.Option("--timeout", "-t", help="Seconds allowed per file")
    ] = None,
    output_json: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Print the symbols ctags finds in each file."""
    options = Options(bin=bin, timeout=timeout)
    try:
        parser = Parser(options)
    except ParseError as e:
        err_console.print(f"[red]Cannot start ctags:[/] {escape(str(e))}")
        raise typer.Exit(1) from e

    results: list[dict[str, object]] = []
    failures = 0

    with parser:
        for file in files:
            try:
                content = file.read_bytes()
            except OSError as e:
                err_console.print(f"[red]Cannot read {file}:[/] {escape(str(e))}")
                failures += 1
                continue

            error: ParseError | None = None
            try:
                entries = parser.parse(str(file), content)
            except ParseError as e:
                error = e
                entries = e.entries
                failures += 1

            if output_json:
                results.append(
                    {
                        "path": str(file),
                        "entries": [entry.to_dict() for entry in entries],
                        "error": str(error) if error else None,
                        "fatal": error.fatal if error else False,
                    }
                )
                continue

            console.print(f"\n[bold cyan]{file}[/] [dim]({len(entries)} symbols)[/]")
            for entry in entries:
                console.print(format_entry(entry))
            if error is not None:
                label = "fatal error" if error.fatal else "error"
                console.print(f"  [red]{label}:[/] {escape(str(error))}")

    if output_json:
        print(json.dumps(results))

    if failures:
        raise typer.Exit(1)


@app.command()
def languages(
    bin: Annotated[
        str | None, typer.Option("--bin", "-b", help="ctags binary (default: $CTAGS_COMMAND)")
    ] = None,
    language: Annotated[
        str | None, typer.Option("--language", "-l", help="Only show this language")
    ] = None,
    output_json: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """List the supported languages and their file patterns."""
    try:
        mapping = list_language_mappings(bin)
    except LanguageMappingError as e:
        err_console.print(f"[red]{escape(str(e))}[/]")
        raise typer.Exit(1) from e

    if language is not None:
        if language not in mapping:
            err_console.print(f"No mapping for '[cyan]{language}[/cyan]'")
            raise typer.Exit(1)
        mapping = {language: mapping[language]}

    if output_json:
        print(json.dumps(mapping))
        return

    for name, patterns in mapping.items():
        console.print(f"[cyan]{name}[/] {' '.join(patterns)}")


if __name__ == "__main__":
    app()
