"""
Typer CLI for Cometode.

Commands:
    cometode list                 - Browse the catalog with filters
    cometode show ID              - Problem details, state and note
    cometode start ID             - Mark a problem as started
    cometode review ID QUALITY    - Rate recall (0 Again, 1 Hard, 2 Good, 3 Easy)
    cometode preview ID           - Interval each rating would produce
    cometode next                 - The one problem to review next
    cometode load-more            - Re-open today's session after the cap
    cometode due                  - Today's due queue
    cometode stats                - Progress statistics
    cometode categories           - Catalog categories
    cometode note ID [TEXT]       - Show or replace a note
    cometode pref get|set         - Read or write a preference
    cometode reset                - Delete all progress and history
    cometode export [PATH]        - Write a snapshot (stdout if no path)
    cometode import PATH          - Merge a snapshot file
    cometode sync configure|check|export|run - Folder-based auto sync

Usage:
    cometode --help
    cometode list --difficulty Easy --due
    cometode review 12 2
    cometode sync configure ~/Dropbox/cometode
    cometode sync run --watch
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from config import get_settings
from cometode.delivery.scheduler import QualityRating
from cometode.delivery.state_store import ProblemFilters, ProblemRecord
from cometode.errors import CometodeError, ProblemNotFoundError, SnapshotValidationError

app = typer.Typer(
    help="Cometode: spaced repetition for coding-practice problems",
    no_args_is_help=True,
)

console = Console()

DIFFICULTY_STYLES = {"Easy": "green", "Medium": "yellow", "Hard": "red"}


# ========================================
# Context Builder (Dependency Injection)
# ========================================


class CLIContext:
    """
    Dependency injection container for CLI commands.

    Lazily initializes the study service so `--help` never touches the database.
    """

    def __init__(self):
        self.settings = get_settings()
        self._service = None

    @property
    def service(self):
        """Lazy load StudyService."""
        if self._service is None:
            from cometode.study import StudyService

            self._service = StudyService.from_settings(self.settings)
        return self._service


def _build_context() -> CLIContext:
    """Build CLI context with dependency injection."""
    return CLIContext()


def _fail(message: str) -> None:
    rprint(f"[red]✗[/red] {escape(message)}")
    raise typer.Exit(code=1)


def _styled_difficulty(difficulty: str) -> str:
    style = DIFFICULTY_STYLES.get(difficulty, "white")
    return f"[{style}]{difficulty}[/{style}]"


def _problem_table(problems: list[ProblemRecord], title: str) -> Table:
    table = Table(title=title, show_header=True)
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Title")
    table.add_column("Difficulty")
    table.add_column("Categories", style="dim")
    table.add_column("Status")
    table.add_column("Ease", justify="right")
    table.add_column("Next review", justify="right")

    for p in problems:
        table.add_row(
            str(p.id),
            p.title,
            _styled_difficulty(p.difficulty),
            ", ".join(p.categories),
            p.status,
            f"{p.ease_factor:.2f}",
            p.next_review_date.isoformat() if p.next_review_date else "-",
        )
    return table


# ========================================
# CATALOG COMMANDS
# ========================================


@app.command("list")
def list_problems(
    difficulty: list[str] = typer.Option(None, "--difficulty", "-d", help="Easy/Medium/Hard (repeatable)"),
    category: str | None = typer.Option(None, "--category", "-c", help="Category substring"),
    status: str | None = typer.Option(None, "--status", "-s", help="new/learning/reviewing/all"),
    search: str | None = typer.Option(None, "--search", "-q", help="Search title or catalog id"),
    due: bool = typer.Option(False, "--due", help="Only problems due today"),
    problem_set: str | None = typer.Option(None, "--set", help="Problem set (e.g. blind75)"),
) -> None:
    """
    List problems: due first, then never reviewed, then the rest.

    Examples:
        cometode list -d Easy -d Medium
        cometode list --set blind75 --status new
    """
    ctx = _build_context()
    filters = ProblemFilters(
        difficulty=difficulty or None,
        category=category,
        status=status,
        search_text=search,
        due_only=due,
        problem_set=problem_set,
    )
    problems = ctx.service.list_problems(filters)
    if not problems:
        rprint("[dim]No problems match these filters.[/dim]")
        return

    console.print(_problem_table(problems, f"Problems ({len(problems)})"))


@app.command("show")
def show_problem(problem_id: int = typer.Argument(..., help="Problem ID")) -> None:
    """Show a problem with its learning state and note."""
    ctx = _build_context()
    problem = ctx.service.get_problem(problem_id)
    if problem is None:
        _fail(f"Problem {problem_id} not found")

    lines = [
        f"[bold]{problem.title}[/bold]  {_styled_difficulty(problem.difficulty)}",
        f"Categories: {', '.join(problem.categories) or '-'}",
        f"Sets: {', '.join(problem.problem_sets) or '-'}",
        "",
        f"Status: {problem.status}   Reviews: {problem.total_reviews}",
        f"Repetitions: {problem.repetitions}   Interval: {problem.interval}d   Ease: {problem.ease_factor:.2f}",
        f"Next review: {problem.next_review_date or '-'}",
    ]
    for name, url in problem.reference_urls.items():
        lines.append(f"{name}: {url}")
    if problem.note:
        lines += ["", f"[italic]{problem.note}[/italic]"]

    console.print(Panel("\n".join(lines), title=f"#{problem.catalog_id}", border_style="cyan"))


@app.command("categories")
def list_categories() -> None:
    """List catalog categories."""
    ctx = _build_context()
    for category in ctx.service.list_categories():
        rprint(f"  {category}")


@app.command("note")
def note(
    problem_id: int = typer.Argument(..., help="Problem ID"),
    text: str | None = typer.Argument(None, help="New note text (omit to show)"),
) -> None:
    """Show or replace the note for a problem."""
    ctx = _build_context()
    if text is None:
        content = ctx.service.get_note(problem_id)
        rprint(content if content else "[dim]No note.[/dim]")
        return

    try:
        ctx.service.save_note(problem_id, text)
    except ProblemNotFoundError as exc:
        _fail(str(exc))
    rprint(f"[green]✓[/green] Note saved for problem {problem_id}")


# ========================================
# REVIEW COMMANDS
# ========================================


@app.command("start")
def start_problem(problem_id: int = typer.Argument(..., help="Problem ID")) -> None:
    """Mark a problem as started (no-op if already started)."""
    ctx = _build_context()
    try:
        result = ctx.service.start_problem(problem_id)
    except ProblemNotFoundError as exc:
        _fail(str(exc))

    if result["created"]:
        rprint(f"[green]✓[/green] Started problem {problem_id}")
    else:
        rprint(f"[dim]Problem {problem_id} already started[/dim]")


@app.command("review")
def review(
    problem_id: int = typer.Argument(..., help="Problem ID"),
    quality: float = typer.Argument(..., help="0 Again, 1 Hard, 2 Good, 3 Easy"),
) -> None:
    """Record a review and show when the problem comes back."""
    ctx = _build_context()
    try:
        result = ctx.service.submit_review(problem_id, quality)
    except ProblemNotFoundError as exc:
        _fail(str(exc))

    label = QualityRating.clamp(quality).label
    rprint(f"[green]✓[/green] {label}: next review {result['next_due_date']} ({result['new_interval']}d)")


@app.command("preview")
def preview(problem_id: int = typer.Argument(..., help="Problem ID")) -> None:
    """Show the interval each rating would produce."""
    ctx = _build_context()
    if ctx.service.get_problem(problem_id) is None:
        _fail(f"Problem {problem_id} not found")

    table = Table(title=f"Interval preview for {problem_id}", show_header=True)
    table.add_column("Rating", style="cyan")
    table.add_column("Next review in", justify="right")
    for label, days in ctx.service.interval_previews(problem_id).items():
        table.add_row(label, "today" if days == 0 else f"{days}d")
    console.print(table)


@app.command("next")
def next_problem(problem_set: str | None = typer.Option(None, "--set", help="Problem set")) -> None:
    """Show the one problem to review next."""
    ctx = _build_context()
    problem = ctx.service.next_due(problem_set)
    if problem is None:
        session = ctx.service.session
        if session.exhausted and ctx.service.get_due_count(problem_set):
            rprint(
                f"[yellow]Session complete[/yellow] ({session.completed}/{session.cap}). "
                "Run `cometode load-more` for another batch."
            )
        else:
            rprint("[green]Nothing due. All caught up![/green]")
        return

    rprint(
        f"[bold cyan]{problem.id}[/bold cyan] {problem.title} "
        f"{_styled_difficulty(problem.difficulty)} (ease {problem.ease_factor:.2f})"
    )


@app.command("load-more")
def load_more() -> None:
    """Re-open today's session for another batch."""
    ctx = _build_context()
    ctx.service.load_more()
    rprint(f"[green]✓[/green] Session re-opened ({ctx.service.session.cap} more)")


@app.command("due")
def due(
    problem_set: str | None = typer.Option(None, "--set", help="Problem set"),
    offset: int = typer.Option(0, "--offset", min=0, help="Skip this many due items"),
) -> None:
    """Show today's due queue (bounded by the session size)."""
    ctx = _build_context()
    total = ctx.service.get_due_count(problem_set)
    items = ctx.service.get_due_queue(problem_set, offset)

    rprint(f"[bold]{total}[/bold] due today")
    if items:
        console.print(_problem_table(items, "Today's session"))


@app.command("stats")
def stats(problem_set: str | None = typer.Option(None, "--set", help="Problem set")) -> None:
    """Show progress statistics."""
    ctx = _build_context()
    summary = ctx.service.get_stats(problem_set)

    rprint("\n[bold cyan]Progress[/bold cyan]")
    rprint(f"  Practiced: {summary.practiced}/{summary.total}")
    rprint(f"  Due today: {summary.today_due}")
    rprint(f"  Total reviews: {summary.total_reviews}")

    table = Table(title="By difficulty", show_header=True)
    table.add_column("Difficulty")
    table.add_column("Total", justify="right")
    table.add_column("Practiced", justify="right")
    table.add_column("Mastered", justify="right")
    for row in summary.by_difficulty:
        table.add_row(
            _styled_difficulty(row["difficulty"]),
            str(row["total"]),
            str(row["practiced"]),
            str(row["mastered"]),
        )
    console.print(table)

    table = Table(title="By category", show_header=True)
    table.add_column("Category")
    table.add_column("Practiced", justify="right")
    for row in summary.by_category:
        table.add_row(row["category"], f"{row['practiced']}/{row['total']}")
    console.print(table)

    if summary.review_history:
        rprint("\n[bold cyan]Recent activity[/bold cyan]")
        for day in summary.review_history[:7]:
            rprint(f"  {day['date']}: {day['count']}")


@app.command("reset")
def reset(yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation")) -> None:
    """Delete all progress and review history (notes are kept)."""
    if not yes:
        typer.confirm("Delete all progress and review history?", abort=True)

    ctx = _build_context()
    ctx.service.reset_all_progress()
    rprint("[green]✓[/green] All progress reset")


# ========================================
# PREFERENCE COMMANDS
# ========================================

pref_app = typer.Typer(help="Read and write preferences")
app.add_typer(pref_app, name="pref")


@pref_app.command("get")
def pref_get(key: str = typer.Argument(..., help="Preference key")) -> None:
    """Print a preference value."""
    ctx = _build_context()
    value = ctx.service.get_preference(key)
    rprint(value if value is not None else "[dim](unset)[/dim]")


@pref_app.command("set")
def pref_set(
    key: str = typer.Argument(..., help="Preference key"),
    value: str = typer.Argument(..., help="Preference value"),
) -> None:
    """Set a preference value."""
    ctx = _build_context()
    ctx.service.set_preference(key, value)
    rprint(f"[green]✓[/green] {key} = {value}")


# ========================================
# SNAPSHOT COMMANDS
# ========================================


@app.command("export")
def export_snapshot(
    path: Path | None = typer.Argument(None, help="Output file (stdout if omitted)"),
) -> None:
    """Export reviewed progress and history as a snapshot."""
    ctx = _build_context()
    data = ctx.service.export_snapshot()
    content = json.dumps(data, indent=2)

    if path is None:
        typer.echo(content)
        return

    path.write_text(content, encoding="utf-8")
    rprint(f"[green]✓[/green] Exported {len(data['progress'])} problems to {path}")


@app.command("import")
def import_snapshot(path: Path = typer.Argument(..., help="Snapshot file")) -> None:
    """Merge a snapshot if it is newer than local progress."""
    ctx = _build_context()
    try:
        result = ctx.service.import_snapshot(path.read_bytes())
    except OSError as exc:
        _fail(f"Cannot read {path}: {exc}")
    except SnapshotValidationError as exc:
        _fail(str(exc))

    if result["imported_count"]:
        rprint(f"[green]✓[/green] Imported {result['imported_count']} problems")
    else:
        rprint("[dim]Nothing imported (snapshot is not newer than local progress)[/dim]")


# ========================================
# SYNC COMMANDS
# ========================================

sync_app = typer.Typer(help="Folder-based auto sync")
app.add_typer(sync_app, name="sync")


def _resolve_folder(ctx: CLIContext, folder: Path | None) -> str:
    resolved = str(folder) if folder else ctx.service.auto_sync.folder
    if not resolved:
        _fail("No sync folder configured. Run `cometode sync configure FOLDER` first.")
    return resolved


@sync_app.command("configure")
def sync_configure(
    folder: Path = typer.Argument(..., help="Folder holding the snapshot file"),
    enable: bool = typer.Option(True, "--enable/--disable", help="Turn auto sync on or off"),
) -> None:
    """Set the sync folder and turn auto sync on or off."""
    ctx = _build_context()
    ctx.service.auto_sync.configure(str(folder.expanduser()), enabled=enable)
    rprint(f"[green]✓[/green] Sync {'enabled' if enable else 'disabled'} ({folder})")


@sync_app.command("check")
def sync_check(folder: Path | None = typer.Option(None, "--folder", help="Override sync folder")) -> None:
    """Check whether the snapshot in the sync folder should be imported."""
    ctx = _build_context()
    result = ctx.service.check_auto_import_needed(_resolve_folder(ctx, folder))

    if result.get("should_import"):
        rprint(f"[yellow]Import needed[/yellow]: snapshot {result['snapshot_date']} is newer")
    elif "reason" in result:
        rprint(f"[dim]{result['reason']}[/dim]")
    else:
        rprint(
            f"[green]Up to date[/green]: snapshot {result['snapshot_date']}, "
            f"local {result['local_max_date']}"
        )


@sync_app.command("export")
def sync_export(folder: Path | None = typer.Option(None, "--folder", help="Override sync folder")) -> None:
    """Write the snapshot into the sync folder now."""
    ctx = _build_context()
    result = ctx.service.perform_auto_export(_resolve_folder(ctx, folder))
    if not result["ok"]:
        _fail(result.get("error", "Export failed"))
    rprint(f"[green]✓[/green] Exported {result['exported_count']} problems to {result['path']}")


@sync_app.command("run")
def sync_run(
    watch: bool = typer.Option(False, "--watch", help="Keep ticking until interrupted"),
) -> None:
    """
    Run a startup sync tick (import if newer, daily export).

    With --watch, keeps syncing periodically and reminds about due problems
    until Ctrl+C.
    """
    ctx = _build_context()
    service = ctx.service

    if not watch:
        result = service.sync_tick("startup")
        if result.get("skipped"):
            rprint(f"[yellow]Sync skipped[/yellow]: {result['reason']}")
        else:
            steps = [step for step in ("import", "export") if step in result]
            rprint(f"[green]✓[/green] Sync complete: {', '.join(steps) or 'nothing to do'}")
        return

    if ctx.settings.sync_interval_minutes == 0:
        _fail("Periodic sync is disabled (COMETODE_SYNC_INTERVAL_MINUTES=0)")

    from cometode.sync import BackgroundSync

    runner = BackgroundSync(
        auto_sync=service.auto_sync,
        due_count=service.get_due_count,
        on_due=lambda count: rprint(f"[bold yellow]{count} problem(s) due for review[/bold yellow]"),
        interval_seconds=ctx.settings.sync_interval_minutes * 60,
        due_check_seconds=ctx.settings.due_check_interval_minutes * 60,
    )
    runner.start()
    rprint("[cyan]Syncing in the background. Press Ctrl+C to stop.[/cyan]")
    try:
        runner.wait()
    except KeyboardInterrupt:
        pass
    finally:
        runner.stop()


# ========================================
# Entry Point
# ========================================


def configure_logging(level: str = "WARNING", log_file: str | None = None) -> None:
    """Replace the default loguru sink with the configured ones."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<level>{message}</level>",
    )
    if log_file:
        logger.add(
            log_file,
            level="DEBUG",
            rotation="1 MB",
            retention=3,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}",
        )


def main() -> None:
    """Entry point for the CLI."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_file)

    try:
        app()
    except CometodeError as exc:
        logger.error(f"{type(exc).__name__}: {exc}")
        sys.exit(1)
    finally:
        from cometode.db import dispose_engine

        dispose_engine()


if __name__ == "__main__":
    main()
