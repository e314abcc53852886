# etch/cli/output.py
import sys
from pathlib import Path
import click
import structlog
from rich.console import Console as RichConsole
from rich.syntax import Syntax

from etch.exceptions import EtchError

log = structlog.get_logger(__name__)

def write_output(text_content: str, output_file_path: Path = None):
    # writes rendered text to the given file, or to stdout.
    if output_file_path is None:
        click.echo(text_content, nl=False)
        return
    log.info("writing_output_to_file", path=str(output_file_path))
    try:
        output_file_path.write_text(text_content, encoding="utf-8")
    except OSError as e:
        raise EtchError(f"failed to write to file '{output_file_path}': {e}") from e

def show_generated_source(source: str):
    # highlights generated code on a terminal; plain text when piped.
    if not sys.stdout.isatty():
        click.echo(source, nl=False)
        return
    RichConsole().print(Syntax(source, "python", line_numbers=True, word_wrap=False))

def show_error(error: Exception):
    log.error("handled_application_error_in_cli", error_type=type(error).__name__, message=str(error))
    console = RichConsole(stderr=True, highlight=False)
    console.print(f"[bold red]Error ({type(error).__name__}):[/bold red]", end=" ")
    console.print(str(error), markup=False)
