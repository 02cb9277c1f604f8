"""Command line interface for bsondissect."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TimeElapsedColumn, TimeRemainingColumn
from rich.table import Table

from bsondissect.config import ErrorPolicy, ExportConfig, NameBy, check_output
from bsondissect.errors import ConfigurationError, DissectError
from bsondissect.export.coordinator import Exporter
from bsondissect.export.writer import ProgressCounter
from bsondissect.index.manager import build_index, obtain_index
from bsondissect.index.selection import parse_range, select_range
from bsondissect.index.store import index_path_for
from bsondissect.models import ExportStats


console = Console()
app = typer.Typer(help="bsondissect - split very large BSON files into JSON documents")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _ensure_input(path: Path) -> None:
    if not path.is_file():
        raise typer.BadParameter(f"Input file not found: {path}")


def _progress() -> Progress:
    return Progress(
        "[progress.description]{task.description}",
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        TimeRemainingColumn(),
        console=console,
    )


def _fail(exc: Exception) -> None:
    console.print(f"[red]Error:[/red] {exc}")
    raise typer.Exit(code=1)


def _print_failures(stats: ExportStats) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Record")
    table.add_column("Offset")
    table.add_column("Error")
    for failure in stats.failures:
        table.add_row(str(failure.position), str(failure.offset), failure.error[:180])
    console.print(table)


@app.command()
def index(
    source: Path = typer.Argument(..., help="BSON file to index", resolve_path=True),
    force: bool = typer.Option(False, "--force", help="Rebuild even if an index exists"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Scan a BSON file and persist its document index."""
    _setup_logging(verbose)
    _ensure_input(source)

    index_path = index_path_for(source)
    console.print(f"Inspecting file: [bold]{source}[/bold]")
    try:
        if force:
            records = build_index(source, index_path)
        else:
            records, _ = obtain_index(source, index_path=index_path)
    except (DissectError, OSError) as exc:
        _fail(exc)
    console.print(f"Indexed {len(records)} documents into {index_path}")


@app.command()
def info(
    source: Path = typer.Argument(..., help="BSON file", resolve_path=True),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Show statistics about the documents of a BSON file."""
    _setup_logging(verbose)
    _ensure_input(source)
    try:
        records, _ = obtain_index(source)
    except (DissectError, OSError) as exc:
        _fail(exc)

    sizes = [record.size for record in records]
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Documents")
    table.add_column("Bytes")
    table.add_column("Smallest")
    table.add_column("Largest")
    table.add_column("Mean")
    if sizes:
        table.add_row(
            str(len(sizes)),
            str(sum(sizes)),
            str(min(sizes)),
            str(max(sizes)),
            f"{sum(sizes) / len(sizes):.1f}",
        )
    else:
        table.add_row("0", "0", "-", "-", "-")
    console.print(table)


@app.command()
def export(
    source: Path = typer.Argument(..., help="BSON file to read", resolve_path=True),
    output: Path = typer.Argument(..., help="Output directory (or file with --single)", resolve_path=True),
    threads: int = typer.Option(4, "--threads", "-t", help="Number of worker threads"),
    batch: int = typer.Option(100, "--batch", "-b", help="Documents held in memory per worker batch"),
    pretty: bool = typer.Option(False, "--pretty", help="Pretty JSON output"),
    slice_expr: Optional[str] = typer.Option(None, "--slice", "-s", help="Range of documents, e.g. 100..200"),
    script: Optional[Path] = typer.Option(None, "--script", "-S", help="Lua script to run on each document"),
    single: bool = typer.Option(False, "--single", help="Write all documents to one JSON array"),
    name_by: NameBy = typer.Option(NameBy.SEQUENCE, "--name-by", help="Name per-document files by sequence or offset"),
    on_error: ErrorPolicy = typer.Option(ErrorPolicy.ABORT, "--on-error", help="Abort or skip on a failing document"),
    unordered: bool = typer.Option(False, "--unordered", help="With --single, write batches as they complete"),
    reindex: bool = typer.Option(False, "--reindex", help="Ignore an existing index file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Export every document of a BSON file as JSON."""
    _setup_logging(verbose)
    _ensure_input(source)

    try:
        config = ExportConfig(
            workers=threads,
            batch_size=batch,
            pretty=pretty,
            single=single,
            name_by=name_by,
            on_error=on_error,
            ordered=not unordered,
            script=script.read_text(encoding="utf-8") if script is not None else None,
        )
        check_output(output, config.single)
        selection = parse_range(slice_expr) if slice_expr else None
    except ConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    except OSError as exc:
        raise typer.BadParameter(f"Cannot read script: {exc}") from exc

    try:
        records, rescanned = obtain_index(source, reindex=reindex)
        console.print(
            f"Inspected file: {source}" if rescanned else "Found index file, skipping inspection..."
        )
        start = 0
        if selection is not None:
            try:
                start, records = select_range(records, selection)
            except ConfigurationError as exc:
                raise typer.BadParameter(str(exc)) from exc

        with _progress() as progress:
            task = progress.add_task("Exporting", total=len(records))
            counter = ProgressCounter(lambda amount: progress.advance(task, amount))
            exporter = Exporter(source, config, progress=counter)
            if config.single:
                stats = exporter.export_single(records, output, start_position=start)
            else:
                stats = exporter.export_files(records, output, start_position=start)
    except (DissectError, OSError) as exc:
        _fail(exc)

    console.print(f"Exported {stats.exported} documents to {output}")
    if stats.failed:
        console.print(f"[yellow]Skipped {stats.failed} documents.[/yellow]")
        _print_failures(stats)
