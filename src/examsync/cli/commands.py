"""CLI commands for examsync.

Commands:
- init-db: Create the local database
- status: Show pending/failed counts and the last sync outcome
- sync: Run one sync cycle (optionally retrying every FAILED submission)
- pull: Pull remote stats, streak and history and merge them locally
- history: Show the reconciled exam history
- review: Show the per-question detail of one exam
- exam-date: Set or clear the target exam date
- sign-out: Delete user data, keeping the question bank
"""

import asyncio
from datetime import date
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from examsync.config.app_config import load_app_config
from examsync.context import AppContext, build_context
from examsync.core.history import ReviewNotAvailableError
from examsync.db.stats_repository import get_study_streak, set_exam_date

app = typer.Typer(
    name="examsync",
    help="Offline-first sync and history for exam preparation.",
    no_args_is_help=True,
)

console = Console()

DB_OPTION = typer.Option(None, "--db", help="Database path (default: from config)")
CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Config YAML path")


def _open_context(db: Path | None, config: Path | None) -> AppContext:
    return build_context(config=load_app_config(config_path=config), db_path=db)


def _run(context: AppContext, coro):
    """Run a coroutine, then release the context's HTTP client."""

    async def runner():
        try:
            return await coro
        finally:
            await context.aclose()

    return asyncio.run(runner())


@app.command(name="init-db")
def init_db(
    db: Path | None = DB_OPTION,
    config: Path | None = CONFIG_OPTION,
) -> None:
    """Create the local database (idempotent)."""
    context = _open_context(db, config)
    console.print(f"[green]✓ Database ready[/green] [dim]{context.db.db_path}[/dim]")


@app.command()
def status(
    db: Path | None = DB_OPTION,
    config: Path | None = CONFIG_OPTION,
) -> None:
    """Show sync indicators."""
    context = _open_context(db, config)
    state = context.engine.status()

    console.print(f"  [dim]pending:[/dim]   {state.pending}")
    console.print(f"  [dim]failed:[/dim]    {state.failed}")
    console.print(f"  [dim]last sync:[/dim] {state.last_sync_at or 'never'}")
    if state.last_sync_error:
        console.print(f"  [yellow]⚠ last error: {state.last_sync_error}[/yellow]")


@app.command()
def sync(
    retry_failed: bool = typer.Option(
        False, "--retry-failed", help="Retry FAILED submissions past the retry ceiling"
    ),
    db: Path | None = DB_OPTION,
    config: Path | None = CONFIG_OPTION,
) -> None:
    """Run one sync cycle now."""
    context = _open_context(db, config)

    async def cycle():
        result = await context.engine.sync_now(retry_failed=retry_failed)
        await context.engine.wait_for_background()
        return result

    result = _run(context, cycle())

    if result is None:
        console.print("[yellow]⚠ A sync is already running[/yellow]")
        return
    if result.skipped_reason:
        console.print(f"[yellow]⚠ Sync skipped: {result.skipped_reason}[/yellow]")
        raise typer.Exit(code=1)

    synced = len(result.pushed.synced) + len(result.retried.synced)
    failed = len(result.pushed.failed) + len(result.retried.failed)
    console.print(f"[green]✓ Synced {synced} submission(s)[/green]")
    if failed:
        console.print(f"[red]✗ {failed} submission(s) failed[/red]")
    if result.retried.skipped:
        console.print(
            f"  [dim]{len(result.retried.skipped)} over the retry ceiling "
            "(use --retry-failed)[/dim]"
        )
    if result.error:
        raise typer.Exit(code=1)


@app.command()
def pull(
    db: Path | None = DB_OPTION,
    config: Path | None = CONFIG_OPTION,
) -> None:
    """Pull and merge remote stats, streak and exam history."""
    context = _open_context(db, config)
    report = _run(context, context.engine.pull_now())

    if report is None:
        console.print("[yellow]⚠ A pull is already running[/yellow]")
        return

    for outcome in report.outcomes:
        if outcome.skipped:
            console.print(f"[yellow]- {outcome.operation}: skipped ({outcome.error})[/yellow]")
        elif outcome.ok:
            console.print(f"[green]✓ {outcome.operation}[/green] [dim]{outcome.details}[/dim]")
        else:
            console.print(f"[red]✗ {outcome.operation}: {outcome.error}[/red]")

    if not report.ok:
        raise typer.Exit(code=1)


@app.command()
def history(
    db: Path | None = DB_OPTION,
    config: Path | None = CONFIG_OPTION,
) -> None:
    """Show the exam history, newest first."""
    context = _open_context(db, config)
    entries = context.history.get_history()

    if not entries:
        console.print("[dim]No exams yet.[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID")
    table.add_column("Submitted")
    table.add_column("Score", justify="right")
    table.add_column("Result")
    table.add_column("Sync")
    table.add_column("Review")

    for entry in entries:
        table.add_row(
            entry.id,
            entry.submitted_at,
            f"{entry.score:g}",
            "[green]PASS[/green]" if entry.passed else "[red]FAIL[/red]",
            entry.sync_status or "-",
            "yes" if entry.can_review else "-",
        )

    console.print(table)


@app.command()
def review(
    entry_id: str = typer.Argument(..., help="Submission or attempt id"),
    db: Path | None = DB_OPTION,
    config: Path | None = CONFIG_OPTION,
) -> None:
    """Show the per-question detail of one exam."""
    context = _open_context(db, config)

    try:
        detail = context.history.get_review_detail(entry_id)
    except ReviewNotAvailableError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)

    attempt = detail.attempt
    console.print(f"[bold]{entry_id}[/bold]  score {attempt.score:g}  {'PASS' if attempt.passed else 'FAIL'}")

    for item in detail.items:
        mark = "[green]✓[/green]" if item.is_correct else "[red]✗[/red]"
        flag = " [yellow]⚑[/yellow]" if item.is_flagged else ""
        console.print(f"{mark} {item.order_index + 1}. {item.text or item.question_id}{flag}")
        console.print(f"    [dim]selected:[/dim] {', '.join(item.selected_answers) or '-'}")
        if item.correct_answers:
            console.print(f"    [dim]correct:[/dim]  {', '.join(item.correct_answers)}")


# =============================================================================
# USER DATA
# =============================================================================


@app.command(name="exam-date")
def exam_date(
    day: str | None = typer.Argument(None, help="Target exam date (YYYY-MM-DD)"),
    clear: bool = typer.Option(False, "--clear", help="Remove the target exam date"),
    db: Path | None = DB_OPTION,
    config: Path | None = CONFIG_OPTION,
) -> None:
    """Show, set or clear the target exam date.

    The date travels with the streak on the next sync.
    """
    context = _open_context(db, config)

    if clear:
        set_exam_date(context.db, None)
        console.print("[green]✓ Exam date cleared[/green]")
        return

    if day is None:
        current = get_study_streak(context.db).exam_date
        console.print(f"  [dim]exam date:[/dim] {current or 'not set'}")
        return

    try:
        date.fromisoformat(day)
    except ValueError:
        console.print(f"[red]✗ Not a YYYY-MM-DD date: {day}[/red]")
        raise typer.Exit(code=1)

    set_exam_date(context.db, day)
    console.print(f"[green]✓ Exam date set to {day}[/green]")


@app.command(name="sign-out")
def sign_out(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    db: Path | None = DB_OPTION,
    config: Path | None = CONFIG_OPTION,
) -> None:
    """Delete exams, submissions, stats and streak from this device.

    The question bank is kept. Submissions not yet synced are lost.
    """
    context = _open_context(db, config)
    counts = context.tracker.counts()

    if counts.pending or counts.failed:
        console.print(
            f"[yellow]⚠ {counts.pending + counts.failed} submission(s) have not been synced[/yellow]"
        )

    if not yes:
        confirm = typer.confirm("Delete all user data on this device?")
        if not confirm:
            console.print("[yellow]Cancelled[/yellow]")
            raise typer.Exit(code=0)

    context.db.clear_user_data()
    console.print("[green]✓ User data cleared[/green]")


if __name__ == "__main__":
    app()
