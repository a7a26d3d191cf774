"""CLI entrypoint."""

import logging
import os
import shlex
from typing import BinaryIO

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from brename.models.rename import RenameOp, RenameOptions, RenameStatus
from brename.processors.rename_processor import RenameProcessor
from brename.quoting import quote
from brename.rules import Rule, RuleSyntaxError, TransformError


console = Console(soft_wrap=True, highlight=False, emoji=False)
err_console = Console(stderr=True, soft_wrap=True, highlight=False, emoji=False)
log = logging.getLogger(__name__)

EXIT_FAILURE = 1
EXIT_BAD_RULE = 2


def setup_logging(verbosity: int = 0) -> None:
    """Send package logs to stderr through a RichHandler.

    Args:
        verbosity: 0 for warnings and errors, 1 for info, 2 or more for debug.
    """
    if verbosity <= 0:
        level = logging.WARNING
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logger = logging.getLogger("brename")
    logger.setLevel(level)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    logger.addHandler(RichHandler(console=err_console, show_time=False, show_path=False))
    logger.propagate = False


def _string_literal(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


def build_fragments(
    expressions: tuple[str, ...],
    lowercase: bool = False,
    clean: bool = False,
    url_encode: bool = False,
    by_date: bool = False,
    prefix: str | None = None,
    renumber: int | None = None,
    unique: bool = False,
) -> list[str]:
    """Expand explicit expressions and shorthand flags into rule fragments.

    Shorthands follow the explicit expressions; ``unique`` always comes last
    so it probes the final name.
    """
    fragments = list(expressions)
    if lowercase:
        fragments.append("lowercase")
    if clean:
        fragments.append("clean")
    if url_encode:
        fragments.append("url_encode")
    if by_date:
        fragments.append("by_date")
    if prefix is not None:
        fragments.append(f"prefix({_string_literal(prefix)})")
    if renumber is not None:
        fragments.append(f"renumber({renumber})")
    if unique:
        fragments.append("unique")
    return fragments


def read_paths(stream: BinaryIO, null: bool) -> list[str]:
    """Read input paths from a byte stream, one per line or NUL-separated.

    Paths are decoded like argv, so bytes that are not valid in the
    filesystem encoding survive as surrogates.
    """
    data = stream.read()
    separator = b"\0" if null else b"\n"
    return [os.fsdecode(path) for path in data.split(separator) if path]


def _display(text: str) -> str:
    """Make a possibly undecodable path printable."""
    return text.encode("utf-8", "surrogateescape").decode("utf-8", "replace")


def _report(op: RenameOp) -> None:
    source = escape(quote(_display(op.source)))
    arrow = f"{source} -> {escape(quote(_display(op.target)))}"
    if op.status is RenameStatus.RENAMED:
        console.print(arrow)
    elif op.status is RenameStatus.PLANNED:
        console.print(f"[dim](dry run)[/dim] {arrow}")
    elif op.status.is_failure:
        err_console.print(f"[bold red]Error:[/bold red] {escape(_display(op.message))}")
    elif op.status is RenameStatus.UNCHANGED:
        console.print(f"[dim]{source} unchanged[/dim]")


@click.command(context_settings=dict(show_default=True, auto_envvar_prefix="BRENAME"))
@click.argument("args", nargs=-1, metavar="[RULE] [FILES]...")
@click.option(
    "-e",
    "--expression",
    "expressions",
    multiple=True,
    help="Rule fragment. May be repeated; fragments run in the order given.",
)
@click.option("-l", "--lowercase", is_flag=True, default=False, help="Lowercase the names.")
@click.option("-c", "--clean", is_flag=True, default=False, help="Strip characters outside [A-Za-z0-9_./-].")
@click.option("--url-encode", is_flag=True, default=False, help="Percent-encode characters outside [A-Za-z0-9_./-].")
@click.option("--by-date", is_flag=True, default=False, help="Move files into YYYY-MM-DD/ by modification time.")
@click.option("--prefix", type=str, default=None, help="Prepend TEXT to the names.")
@click.option(
    "--renumber",
    type=click.IntRange(min=0),
    default=None,
    metavar="DIGITS",
    help="Replace names with a running number padded to DIGITS.",
)
@click.option("-u", "--unique", is_flag=True, default=False, help="Add #N to names that already exist.")
@click.option("-f", "--force", is_flag=True, default=False, help="Overwrite existing files.")
@click.option("-p", "--mkdir", is_flag=True, default=False, help="Create missing destination directories.")
@click.option("-n", "--dry-run", is_flag=True, default=False, help="Show what would be renamed without doing it.")
@click.option(
    "--command",
    type=str,
    default=None,
    help="Run COMMAND SOURCE TARGET instead of renaming, e.g. 'git mv'.",
)
@click.option(
    "--keep-going",
    is_flag=True,
    default=False,
    help="Report rule errors per file instead of stopping the run.",
)
@click.option("-0", "--null", is_flag=True, default=False, help="Paths read from stdin are NUL-separated.")
@click.option("-v", "--verbose", count=True, help="Log more; repeat for debug output.")
def cli(
    args: tuple[str, ...],
    expressions: tuple[str, ...],
    lowercase: bool,
    clean: bool,
    url_encode: bool,
    by_date: bool,
    prefix: str | None,
    renumber: int | None,
    unique: bool,
    force: bool,
    mkdir: bool,
    dry_run: bool,
    command: str | None,
    keep_going: bool,
    null: bool,
    verbose: int,
) -> None:
    """brename - Rename files by rule.

    The rule is given with -e, with shorthand flags, or as the first
    argument. Files are read from standard input when none are given.

    Examples:

        brename 's/\\.jpeg$/.jpg/' *.jpeg

        brename -l -c --unique 'Holiday Photos'/*

        find . -name '*.log' | brename -e 's/^/old-/' -e 'last if /old-old/'
    """
    setup_logging(verbose)

    fragments = build_fragments(expressions, lowercase, clean, url_encode, by_date, prefix, renumber, unique)
    paths = list(args)
    if not fragments:
        if not paths:
            raise click.UsageError("No rule given.")
        fragments = [paths.pop(0)]

    try:
        options = RenameOptions(
            force=force,
            dry_run=dry_run,
            mkdir=mkdir,
            command=shlex.split(command) if command is not None else None,
            keep_going=keep_going,
        )
    except ValueError as e:
        raise click.UsageError(f"Invalid --command: {command!r}") from e

    try:
        rule = Rule.compile(fragments)
    except RuleSyntaxError as e:
        err_console.print(f"[bold red]Invalid rule:[/bold red] {escape(str(e))}")
        raise SystemExit(EXIT_BAD_RULE) from e

    if not paths:
        paths = read_paths(click.get_binary_stream("stdin"), null)

    processor = RenameProcessor(rule=rule, options=options)
    try:
        report = processor.run(paths, on_result=_report)
    except TransformError as e:
        err_console.print(f"[bold red]Error:[/bold red] {escape(_display(str(e)))}")
        raise SystemExit(EXIT_FAILURE) from e

    done = report.count(RenameStatus.PLANNED if dry_run else RenameStatus.RENAMED)
    log.info("%d of %d file(s) %s", done, len(report), "would be renamed" if dry_run else "renamed")

    if report.failed:
        raise SystemExit(EXIT_FAILURE)
