"""Typer-based CLI for codenotes."""

import json
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import NotesConfig
from .errors import NotesError, NotFoundError
from .ledger import read_ledger_tail
from .models.annotation import Annotation, CreateAnnotationParams, LineRange, UpdateAnnotationParams
from .models.search import DateField, DateRange, SearchQuery, TagFilterMode
from .paths import WorkspacePaths
from .workspace import NotesWorkspace, open_workspace

app = typer.Typer(
    name="codenotes",
    help="codenotes - Line-anchored notes for source files that survive edits",
    add_completion=False,
)

console = Console()

DATE_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S"]


def _configure_logging(verbose: bool) -> None:
    if not verbose:
        return
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True))],
        force=True,
    )


@app.callback()
def cli(
    ctx: typer.Context,
    workspace: Optional[str] = typer.Option(
        None,
        "--workspace",
        "-w",
        help="Workspace root (default: CODENOTES_WORKSPACE env or the enclosing repo)",
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging"),
):
    """Attach notes to line ranges of files and find them again."""
    _configure_logging(verbose)
    ctx.obj = {"workspace": workspace}


def _config(ctx: typer.Context, author: Optional[str] = None) -> NotesConfig:
    workspace = (ctx.obj or {}).get("workspace")
    try:
        return NotesConfig.from_env(cli_workspace=workspace, cli_author=author)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)


def _open(ctx: typer.Context, author: Optional[str] = None) -> NotesWorkspace:
    config = _config(ctx, author)
    paths = WorkspacePaths.from_config(config)
    if not paths.is_initialized():
        console.print(f"[red]Error: Workspace not initialized at {config.workspace_root}[/red]")
        console.print("[yellow]Run 'codenotes init' first[/yellow]")
        raise typer.Exit(code=1)
    return open_workspace(config)


def _fail(message: str) -> typer.Exit:
    console.print(f"[red]Error: {message}[/red]")
    return typer.Exit(code=1)


def _resolve_id(ws: NotesWorkspace, file_key: str, prefix: str) -> str:
    """Expand an id prefix (as shown by `list`) to a full annotation id."""
    candidates = [a.id for a in ws.manager.get_for_file(file_key, include_deleted=True) if a.id.startswith(prefix)]
    if not candidates:
        raise NotFoundError(prefix, file_key)
    if len(candidates) > 1:
        raise _fail(f"Ambiguous id prefix {prefix!r} matches {len(candidates)} annotations")
    return candidates[0]


def _user_range(line: int, end: Optional[int]) -> LineRange:
    # CLI lines are 1-based; LineRange is 0-based.
    last = end if end is not None else line
    return LineRange(start=line - 1, end=last - 1)


def _truncate(text: str, width: int = 60) -> str:
    flat = " ".join(text.split())
    return flat if len(flat) <= width else flat[: width - 3] + "..."


def _annotation_table(title: str, annotations: list[Annotation]) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="yellow", no_wrap=True)
    table.add_column("Lines", style="cyan", no_wrap=True)
    table.add_column("Author", style="green")
    table.add_column("Tags", style="magenta")
    table.add_column("Updated (UTC)", style="dim", no_wrap=True)
    table.add_column("Note")
    for a in annotations:
        note = _truncate(a.content)
        if a.is_deleted:
            note = f"[strike]{note}[/strike] [red](deleted)[/red]"
        table.add_row(
            a.id[:8],
            str(a.line_range),
            a.author,
            ", ".join(sorted(a.tags)) or "-",
            a.updated_at.strftime("%Y-%m-%d %H:%M"),
            note,
        )
    return table


@app.command()
def init(
    ctx: typer.Context,
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Rewrite config.toml even if it already exists",
    ),
):
    """Initialize codenotes storage in the workspace.

    This command is idempotent - it will not overwrite existing data.
    """
    config = _config(ctx)
    paths = WorkspacePaths.from_config(config)

    if paths.is_initialized():
        console.print(f"[yellow]Workspace already initialized at:[/yellow] {paths.root}")
    else:
        console.print(f"[green]Initializing codenotes workspace at:[/green] {paths.root}")

    for directory in paths.get_all_directories():
        directory.mkdir(parents=True, exist_ok=True)

    if force or not paths.config_file.exists():
        paths.config_file.write_text(config.to_toml_str(), encoding="utf-8")
        console.print(f"[green]+[/green] Wrote config: {paths.config_file}")
    else:
        console.print(f"[dim]Config already exists: {paths.config_file}[/dim]")

    if not paths.ledger_file.exists():
        paths.ledger_file.touch()
        console.print(f"[green]+[/green] Created ledger: {paths.ledger_file}")
    else:
        console.print(f"[dim]Ledger already exists: {paths.ledger_file}[/dim]")

    # Opening creates the sqlite schemas.
    ws = open_workspace(config)
    ws.close()

    console.print()
    console.print("[bold green]Workspace initialization complete![/bold green]")


@app.command()
def add(
    ctx: typer.Context,
    file: Path = typer.Argument(..., help="File to annotate"),
    line: int = typer.Option(..., "--line", "-l", min=1, help="First line (1-based)"),
    end: Optional[int] = typer.Option(None, "--end", "-e", min=1, help="Last line (1-based, default: --line)"),
    message: str = typer.Option(..., "--message", "-m", help="Note content (markdown)"),
    tags: Optional[List[str]] = typer.Option(None, "--tag", "-t", help="Tag (repeatable)"),
    author: Optional[str] = typer.Option(None, "--author", help="Author name override"),
):
    """Attach a note to a range of lines."""
    ws = _open(ctx, author)
    try:
        document = ws.document(file)
        annotation = ws.manager.create(
            CreateAnnotationParams(
                file_path=document.file_path,
                line_range=_user_range(line, end),
                content=message,
                author=author,
                tags=tags or [],
            ),
            document,
        )
    except (NotesError, OSError, ValueError) as e:
        raise _fail(str(e))

    console.print(f"[green]Added note[/green] {annotation.id} at {annotation.file_path}:{annotation.line_range}")


@app.command()
def edit(
    ctx: typer.Context,
    file: Path = typer.Argument(..., help="Annotated file"),
    annotation_id: str = typer.Argument(..., help="Annotation id (or unique prefix)"),
    message: str = typer.Option(..., "--message", "-m", help="New note content"),
    tags: Optional[List[str]] = typer.Option(None, "--tag", "-t", help="Replace tags (repeatable)"),
    author: Optional[str] = typer.Option(None, "--author", help="Author name override"),
):
    """Edit a note's content and optionally its tags."""
    ws = _open(ctx, author)
    try:
        document = ws.document(file)
        full_id = _resolve_id(ws, document.file_path, annotation_id)
        annotation = ws.manager.update(
            UpdateAnnotationParams(id=full_id, content=message, author=author, tags=tags),
            document,
        )
    except (NotesError, OSError, ValueError) as e:
        raise _fail(str(e))

    console.print(f"[green]Updated note[/green] {annotation.id} ({len(annotation.history)} revisions)")


@app.command()
def delete(
    ctx: typer.Context,
    file: Path = typer.Argument(..., help="Annotated file"),
    annotation_id: str = typer.Argument(..., help="Annotation id (or unique prefix)"),
    author: Optional[str] = typer.Option(None, "--author", help="Author name override"),
):
    """Soft-delete a note. Its history is kept."""
    ws = _open(ctx, author)
    file_key = ws.paths.file_key(file)
    try:
        full_id = _resolve_id(ws, file_key, annotation_id)
        ws.manager.delete(full_id, file_key, author=author)
    except NotesError as e:
        raise _fail(str(e))

    console.print(f"[green]Deleted note[/green] {full_id}")


@app.command("list")
def list_notes(
    ctx: typer.Context,
    file: Path = typer.Argument(..., help="Annotated file"),
    line: Optional[int] = typer.Option(None, "--line", "-l", min=1, help="Only notes covering this line (1-based)"),
    include_deleted: bool = typer.Option(False, "--all", "-a", help="Include deleted notes"),
):
    """List the notes attached to a file."""
    ws = _open(ctx)
    file_key = ws.paths.file_key(file)

    if line is not None:
        annotations = ws.manager.get_at_line(file_key, line - 1)
    else:
        annotations = ws.manager.get_for_file(file_key, include_deleted=include_deleted)

    if not annotations:
        console.print(f"[dim]No notes for {file_key}[/dim]")
        return

    annotations = sorted(annotations, key=lambda a: (a.line_range.start, a.created_at))
    console.print(_annotation_table(f"{len(annotations)} note(s) in {file_key}", annotations))


@app.command()
def history(
    ctx: typer.Context,
    file: Path = typer.Argument(..., help="Annotated file"),
    annotation_id: str = typer.Argument(..., help="Annotation id (or unique prefix)"),
):
    """Show every revision of a note, oldest first."""
    ws = _open(ctx)
    file_key = ws.paths.file_key(file)
    try:
        full_id = _resolve_id(ws, file_key, annotation_id)
        entries = ws.manager.get_history(full_id, file_key)
    except NotesError as e:
        raise _fail(str(e))

    table = Table(title=f"History of {full_id}")
    table.add_column("#", style="dim")
    table.add_column("Timestamp (UTC)", style="cyan", no_wrap=True)
    table.add_column("Action", style="magenta")
    table.add_column("Author", style="green")
    table.add_column("Content")
    for i, entry in enumerate(entries, 1):
        table.add_row(
            str(i),
            entry.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            entry.action.value,
            entry.author,
            _truncate(entry.content, 80),
        )
    console.print(table)


@app.command()
def reconcile(
    ctx: typer.Context,
    file: Path = typer.Argument(..., help="File whose notes should follow its current content"),
):
    """Move notes whose anchored lines changed position."""
    ws = _open(ctx)
    try:
        document = ws.document(file)
        moved = ws.manager.reconcile_positions(document)
    except (NotesError, OSError, ValueError) as e:
        raise _fail(str(e))

    unresolved = [
        a
        for a in ws.manager.get_for_file(document.file_path)
        if not ws.manager.tracker.validate(document, a.line_range, a.content_hash)
    ]

    if moved:
        console.print(f"[green]Relocated {len(moved)} note(s)[/green]")
        for a in moved:
            console.print(f"  {a.id[:8]} -> {a.line_range}")
    else:
        console.print("[dim]No notes needed relocation[/dim]")

    if unresolved:
        console.print(f"[yellow]{len(unresolved)} note(s) could not be located:[/yellow]")
        for a in unresolved:
            console.print(f"  {a.id[:8]} (last seen {a.line_range}): {_truncate(a.content)}")


def _end_of_day(value: Optional[datetime]) -> Optional[datetime]:
    # A date-only upper bound covers the whole day.
    if value is None or (value.hour, value.minute, value.second, value.microsecond) != (0, 0, 0, 0):
        return value
    return value + timedelta(days=1) - timedelta(microseconds=1)


@app.command()
def search(
    ctx: typer.Context,
    text: Optional[str] = typer.Argument(None, help="Full-text terms (all must match)"),
    regex: Optional[str] = typer.Option(None, "--regex", "-r", help="Regular expression over note content"),
    authors: Optional[List[str]] = typer.Option(None, "--author", "-a", help="Author (repeatable, OR)"),
    tags: Optional[List[str]] = typer.Option(None, "--tag", "-t", help="Tag (repeatable)"),
    all_tags: bool = typer.Option(False, "--all-tags", help="Require every --tag instead of any"),
    file_pattern: Optional[str] = typer.Option(None, "--file", "-f", help="Glob over file paths (* and ?)"),
    since: Optional[datetime] = typer.Option(None, "--since", formats=DATE_FORMATS, help="On or after"),
    until: Optional[datetime] = typer.Option(None, "--until", formats=DATE_FORMATS, help="On or before"),
    by_updated: bool = typer.Option(False, "--updated", help="Apply --since/--until to the update time"),
    case_sensitive: bool = typer.Option(False, "--case-sensitive", "-c"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", min=1, help="Maximum results"),
    no_save: bool = typer.Option(False, "--no-save", help="Do not record this search in history"),
):
    """Search notes by text, regex, author, tags, file and date."""
    date_range = None
    if since is not None or until is not None:
        date_range = DateRange(
            start=since,
            end=_end_of_day(until),
            field=DateField.UPDATED if by_updated else DateField.CREATED,
        )

    query = SearchQuery(
        text=text,
        regex=regex,
        authors=authors or [],
        date_range=date_range,
        file_pattern=file_pattern,
        tags=tags or [],
        tag_mode=TagFilterMode.ALL if all_tags else TagFilterMode.ANY,
        case_sensitive=case_sensitive,
        max_results=limit,
    )

    ws = _open(ctx)
    try:
        results = ws.engine.search(query, save_to_history=not no_save)
    except NotesError as e:
        raise _fail(str(e))

    if not results:
        console.print(f"[dim]No notes match {query.label()}[/dim]")
        return

    table = Table(title=f"{len(results)} result(s) for {query.label()}")
    table.add_column("Score", style="cyan", no_wrap=True)
    table.add_column("File", style="yellow")
    table.add_column("Lines", style="cyan", no_wrap=True)
    table.add_column("Author", style="green")
    table.add_column("Context")
    for r in results:
        table.add_row(
            f"{r.score:.2f}",
            r.annotation.file_path,
            str(r.annotation.line_range),
            r.annotation.author,
            _truncate(r.context, 80),
        )
    console.print(table)


@app.command()
def searches(
    ctx: typer.Context,
    clear: bool = typer.Option(False, "--clear", help="Forget saved searches"),
):
    """Show recent searches, most recent first."""
    ws = _open(ctx)
    if clear:
        ws.engine.clear_search_history()
        console.print("[green]Search history cleared[/green]")
        return

    entries = ws.engine.get_search_history()
    if not entries:
        console.print("[dim]No saved searches[/dim]")
        return

    table = Table(title="Recent searches")
    table.add_column("When (UTC)", style="cyan", no_wrap=True)
    table.add_column("Query")
    table.add_column("Results", style="magenta", justify="right")
    for entry in entries:
        table.add_row(entry.timestamp.strftime("%Y-%m-%d %H:%M:%S"), entry.label, str(entry.result_count))
    console.print(table)


@app.command()
def stats(ctx: typer.Context):
    """Show search index statistics."""
    ws = _open(ctx)
    s = ws.engine.get_stats()
    console.print("[bold]Search index[/bold]")
    console.print(f"  Notes:           {s.total_notes}")
    console.print(f"  Terms:           {s.total_terms}")
    console.print(f"  Size (approx):   {s.index_size / 1024:.1f} KiB")
    last = s.last_update.strftime("%Y-%m-%d %H:%M:%S") if s.last_update else "-"
    console.print(f"  Last update:     {last}")
    console.print(f"  Avg search time: {s.average_search_time:.1f} ms")
    console.print(f"  Authors:         {', '.join(ws.engine.get_authors()) or '-'}")
    console.print(f"  Tags:            {', '.join(ws.engine.get_tags()) or '-'}")


ledger_app = typer.Typer(help="Ledger commands")
app.add_typer(ledger_app, name="ledger")


@ledger_app.command("tail")
def ledger_tail(
    ctx: typer.Context,
    n: int = typer.Option(
        20,
        "--n",
        help="Number of recent events to display",
    ),
    full: bool = typer.Option(
        False,
        "--full",
        help="Show full payloads with JSON pretty-print",
    ),
    note: Optional[str] = typer.Option(
        None,
        "--note",
        help="Only events for this annotation id (or prefix)",
    ),
):
    """Display the last N lifecycle events from the ledger.

    Skips malformed lines with warnings.
    Use --full to see complete payloads with JSON formatting.
    """
    config = _config(ctx)
    paths = WorkspacePaths.from_config(config)

    if not paths.is_initialized():
        console.print(f"[red]Error: Workspace not initialized at {config.workspace_root}[/red]")
        console.print("[yellow]Run 'codenotes init' first[/yellow]")
        raise typer.Exit(code=1)

    events = read_ledger_tail(paths.ledger_file, n=n, annotation_id=note)

    if not events:
        console.print("[dim]No events in ledger[/dim]")
        return

    if full:
        console.print(f"[bold]Last {len(events)} Ledger Event(s)[/bold]\n")
        for i, event in enumerate(events, 1):
            console.print(f"[cyan]Event {i}/{len(events)}[/cyan]")
            console.print(f"  [dim]Event ID:[/dim]      {event.event_id}")
            console.print(f"  [dim]Run ID:[/dim]        {event.run_id}")
            console.print(f"  [dim]Timestamp:[/dim]     {event.ts.strftime('%Y-%m-%d %H:%M:%S')} UTC")
            console.print(f"  [dim]Event Type:[/dim]    [magenta]{event.event_type}[/magenta]")
            console.print(f"  [dim]Annotation:[/dim]    {event.annotation_id}")
            console.print(f"  [dim]File:[/dim]          {event.file_path}")
            console.print("  [dim]Payload:[/dim]")
            for payload_line in json.dumps(event.payload, indent=2).split("\n"):
                console.print(f"    {payload_line}")
            console.print()
    else:
        table = Table(title=f"Last {len(events)} Ledger Event(s)")
        table.add_column("Timestamp (UTC)", style="cyan", no_wrap=True)
        table.add_column("Event Type", style="magenta")
        table.add_column("Annotation", style="yellow")
        table.add_column("File")
        table.add_column("Payload", style="dim")

        for event in events:
            payload_str = str(event.payload)
            if len(payload_str) > 60:
                payload_str = payload_str[:57] + "..."
            table.add_row(
                event.ts.strftime("%Y-%m-%d %H:%M:%S"),
                event.event_type,
                event.annotation_id[:8] + "...",
                event.file_path,
                payload_str,
            )

        console.print(table)


@app.command()
def version():
    """Show codenotes version."""
    from . import __version__
    console.print(f"codenotes v{__version__}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
