"""
Typer CLI for the band exam session engine.

Commands:
    bandexam db init                 - Initialize database tables
    bandexam content list            - List published tests in the content directory
    bandexam sweep run               - Expire overdue submissions once
    bandexam sweep run --loop        - Keep sweeping every --interval seconds
    bandexam review apply ID SKILL N - Record a writing/speaking band
    bandexam serve                   - Run the HTTP API

Usage:
    bandexam --help
    bandexam sweep run --loop --interval 30
"""

from __future__ import annotations

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from config import get_settings
from bandexam.core.exceptions import ExamEngineError
from bandexam.core.log_setup import configure_logging
from bandexam.session.manager import SessionManager

console = Console()

app = typer.Typer(
    help="bandexam: exam session lifecycle and band scoring engine",
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    settings = get_settings()
    configure_logging("DEBUG" if verbose else settings.log_level, settings.log_file)


# ========================================
# Context Builder (Dependency Injection)
# ========================================


def _build_manager() -> SessionManager:
    """Session manager wired to the configured database and content directory."""
    from bandexam.api.dependencies import get_session_manager

    return get_session_manager()


# ========================================
# DATABASE COMMANDS
# ========================================

db_app = typer.Typer(help="Database management")
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """
    Initialize database tables from SQLAlchemy models.

    Safe to run multiple times (idempotent).
    """
    from bandexam.db.database import init_db

    logger.info("Initializing database tables...")
    init_db()
    rprint("[green]✓[/green] Database initialized!")


# ========================================
# CONTENT COMMANDS
# ========================================

content_app = typer.Typer(help="Published test content")
app.add_typer(content_app, name="content")


@content_app.command("list")
def content_list(
    content_dir: str = typer.Option(None, "--dir", "-d", help="Content directory (default from settings)"),
) -> None:
    """List the tests found in the content directory."""
    from bandexam.content.provider import JsonContentProvider

    provider = JsonContentProvider(content_dir or get_settings().content_dir)
    tests = provider.tests()

    table = Table(title="Published Tests", show_header=True)
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Minutes", justify="right")
    table.add_column("Skills")
    table.add_column("Objective Qs", justify="right")
    table.add_column("Pause", justify="center")

    for test in tests:
        table.add_row(
            test.id,
            test.title,
            str(test.duration_minutes or "-"),
            ", ".join(s.value for s in test.skills) or "-",
            str(test.objective_question_count()),
            "yes" if test.allow_pause else "no",
        )

    console.print(table)
    rprint(f"{len(tests)} test(s)")


# ========================================
# SWEEP COMMANDS
# ========================================

sweep_app = typer.Typer(help="Expiry sweep for overdue submissions")
app.add_typer(sweep_app, name="sweep")


@sweep_app.command("run")
def sweep_run(
    loop: bool = typer.Option(False, "--loop", help="Keep sweeping until interrupted"),
    interval: int = typer.Option(None, "--interval", "-i", help="Seconds between sweeps"),
    limit: int = typer.Option(100, "--limit", help="Maximum submissions per sweep"),
) -> None:
    """Expire every in-progress submission whose deadline has passed."""
    from bandexam.session.sweeper import ExpirySweeper

    sweeper = ExpirySweeper(
        _build_manager(),
        interval_seconds=interval or get_settings().expiry_sweep_interval_seconds,
        batch_size=limit,
    )

    if not loop:
        expired = sweeper.run_once()
        if sweeper.status.error_message:
            rprint(f"[red]✗[/red] Sweep failed: {sweeper.status.error_message}")
            raise typer.Exit(code=1)
        rprint(f"[green]✓[/green] Expired {len(expired)} submission(s)")
        for submission_id in expired:
            rprint(f"  - {submission_id}")
        return

    rprint(f"Sweeping every {sweeper.interval_seconds}s (Ctrl+C to stop)")
    try:
        sweeper.run_forever()
    except KeyboardInterrupt:
        rprint("Stopped.")
    rprint(f"Total expired: {sweeper.status.total_expired}")


# ========================================
# REVIEW COMMANDS
# ========================================

review_app = typer.Typer(help="Manual review of writing/speaking")
app.add_typer(review_app, name="review")


@review_app.command("apply")
def review_apply(
    submission_id: str = typer.Argument(..., help="Submission id"),
    skill: str = typer.Argument(..., help="writing or speaking"),
    score: float = typer.Argument(..., help="Band score (1.0-9.0, 0.5 steps)"),
    reviewer: str = typer.Option(None, "--reviewer", "-r", help="Reviewer name"),
) -> None:
    """Record a reviewer's band and show the recomputed scores."""
    try:
        record = _build_manager().apply_manual_score(submission_id, skill, score, reviewer=reviewer)
    except ExamEngineError as e:
        rprint(f"[red]✗[/red] {e.message}")
        raise typer.Exit(code=1)

    table = Table(title=f"Scores for {record.id}", show_header=True)
    table.add_column("Skill", style="cyan")
    table.add_column("Band", justify="right")
    for key, band in (record.scores or {}).items():
        table.add_row(key, "-" if band is None else f"{band:.1f}")
    console.print(table)
    if record.is_reviewed:
        rprint("[green]✓[/green] Review complete")


# ========================================
# SERVER
# ========================================


@app.command("serve")
def serve(
    host: str = typer.Option(None, "--host", help="Bind address (default from settings)"),
    port: int = typer.Option(None, "--port", help="Port (default from settings)"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "bandexam.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
    )


if __name__ == "__main__":
    app()
