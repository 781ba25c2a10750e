"""CLI interface for clipforge."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from clipforge.config import ClipforgeConfig, load_config
from clipforge.errors import (
    ClipforgeError,
    ConflictFailure,
    NotFoundFailure,
    PipelineReport,
    ValidationFailure,
)
from clipforge.jobs import JobStatus, JobStore
from clipforge.jobs.models import SYSTEM_ACTOR
from clipforge.review import (
    MetadataUpdate,
    PendingReviewQueue,
    PendingReviewStatus,
    PendingReviewStore,
)

app = typer.Typer(
    name="clipforge",
    help="Turn openly-licensed videos into reviewed short-form clips.",
)
review_app = typer.Typer(help="Inspect and decide pending review items.")
jobs_app = typer.Typer(help="Inspect content jobs.")
app.add_typer(review_app, name="review")
app.add_typer(jobs_app, name="jobs")

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to a .clipforge.toml file."),
]


def version_callback(value: bool) -> None:
    if value:
        from clipforge import __version__

        console.print(f"clipforge {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", help="Enable debug logging.")] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """clipforge - AI-assisted short-form content pipeline."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _load(config_path: Path | None) -> ClipforgeConfig:
    config = load_config(config_path)
    config.data_path.mkdir(parents=True, exist_ok=True)
    return config


def _fail(exc: ClipforgeError) -> typer.Exit:
    if isinstance(exc, NotFoundFailure):
        console.print(f"[red]Not found:[/red] {exc}")
        return typer.Exit(3)
    if isinstance(exc, ConflictFailure):
        console.print(f"[yellow]Conflict:[/yellow] {exc}")
        return typer.Exit(4)
    console.print(f"[red]Error:[/red] {exc}")
    return typer.Exit(1)


def _queue(config: ClipforgeConfig) -> PendingReviewQueue:
    from clipforge.publish import JsonPublishRepository, PublishCoordinator

    data_dir = config.data_path
    coordinator = PublishCoordinator(JsonPublishRepository(data_dir), config.publish)
    return PendingReviewQueue(PendingReviewStore(data_dir), JobStore(data_dir), coordinator)


def _print_report(report: PipelineReport) -> None:
    table = Table(title="Pipeline run")
    for column in ("stage", "read", "ok", "skipped", "failed", "write errors"):
        table.add_column(column, justify="left" if column == "stage" else "right")
    for name, c in report.stages.items():
        table.add_row(
            name,
            str(c.read),
            str(c.succeeded),
            str(c.skipped),
            str(c.failed),
            str(c.write_errors),
        )
    console.print(table)
    for error in report.errors:
        job = f" job={error.job_id}" if error.job_id else ""
        console.print(f"  [red]{error.stage}[/red]{job}: {error.message}")


# ── Pipeline ─────────────────────────────────────────────────────


@app.command()
def run(
    stage: Annotated[
        Optional[list[str]],
        typer.Option("--stage", "-s", help="Run only these stages (repeatable)."),
    ] = None,
    config_path: ConfigOption = None,
) -> None:
    """Run one batch of every pipeline stage, in order."""
    from clipforge.pipeline import STAGE_ORDER, ExecutionContext, PipelineRunner

    unknown = [s for s in stage or [] if s not in STAGE_ORDER]
    if unknown:
        console.print(f"[red]Unknown stage(s):[/red] {', '.join(unknown)}")
        raise typer.Exit(2)

    config = _load(config_path)
    try:
        runner = PipelineRunner(ExecutionContext.from_config(config))
        report = runner.run(only=stage)
    except ClipforgeError as exc:
        raise _fail(exc) from exc
    _print_report(report)
    if report.has_errors:
        raise typer.Exit(1)


@app.command()
def crawl(
    query: Annotated[str, typer.Argument(help="Search query.")],
    language: Annotated[str, typer.Option("--language", "-l")] = "ko",
    max_results: Annotated[int, typer.Option("--max-results", "-n")] = 10,
    config_path: ConfigOption = None,
) -> None:
    """Discover licensed videos for QUERY and queue them as jobs."""
    from clipforge.pipeline import ExecutionContext
    from clipforge.pipeline.crawl import CrawlStage

    config = _load(config_path)
    report = PipelineReport()
    try:
        stage = CrawlStage(ExecutionContext.from_config(config))
        created = stage.discover(query, language, max_results, report)
    except ClipforgeError as exc:
        raise _fail(exc) from exc
    console.print(f"Created [bold]{len(created)}[/bold] job(s) for {query!r}")
    for job in created:
        console.print(f"  {job.id}  {job.source_video_id}  {job.source_title}")
    for error in report.errors:
        console.print(f"  [red]{error.message}[/red]")


@app.command()
def dashboard(config_path: ConfigOption = None) -> None:
    """Show review backlog statistics."""
    config = _load(config_path)
    try:
        stats = _queue(config).dashboard()
        counts = JobStore(config.data_path).count_by_status()
    except ClipforgeError as exc:
        raise _fail(exc) from exc

    table = Table(title="Review dashboard", show_header=False)
    table.add_row("Pending review", str(stats.pending_review))
    table.add_row("High priority pending", str(stats.high_priority_pending))
    table.add_row("Created today", str(stats.created_today))
    table.add_row("Approved (7 days)", str(stats.approved_this_week))
    table.add_row("Rejected (7 days)", str(stats.rejected_this_week))
    avg = f"{stats.average_quality_score:.1f}" if stats.average_quality_score is not None else "-"
    table.add_row("Average quality score", avg)
    console.print(table)

    jobs_table = Table(title="Jobs by status")
    jobs_table.add_column("status")
    jobs_table.add_column("count", justify="right")
    for status, count in counts.items():
        if count:
            jobs_table.add_row(status.value, str(count))
    console.print(jobs_table)

    if stats.by_category:
        console.print(
            "Categories: " + ", ".join(f"{c.category.value}={c.count}" for c in stats.by_category)
        )


# ── Review ───────────────────────────────────────────────────────


@review_app.command("list")
def review_list(
    status: Annotated[
        PendingReviewStatus, typer.Option("--status", help="Item status to list.")
    ] = PendingReviewStatus.PENDING_REVIEW,
    page: Annotated[int, typer.Option("--page", "-p")] = 0,
    page_size: Annotated[int, typer.Option("--page-size")] = 20,
    config_path: ConfigOption = None,
) -> None:
    """List review items, highest priority first."""
    try:
        result = _queue(_load(config_path)).list(status, page, page_size)
    except ClipforgeError as exc:
        raise _fail(exc) from exc

    table = Table(title=f"{status.value} (page {page}, {result.total} total)")
    for column in ("id", "priority", "score", "category", "title"):
        table.add_column(column)
    for item in result.items:
        table.add_row(
            item.id,
            item.review_priority.value,
            str(item.quality_score),
            item.metadata.category.value,
            item.metadata.title,
        )
    console.print(table)


@review_app.command("show")
def review_show(item_id: str, config_path: ConfigOption = None) -> None:
    """Show one review item."""
    try:
        item = _queue(_load(config_path)).get(item_id)
    except ClipforgeError as exc:
        raise _fail(exc) from exc
    console.print_json(item.model_dump_json(indent=2))


@review_app.command("edit")
def review_edit(
    item_id: str,
    editor: Annotated[str, typer.Option("--editor", help="Who is editing.")],
    title: Annotated[Optional[str], typer.Option("--title")] = None,
    description: Annotated[Optional[str], typer.Option("--description")] = None,
    tags: Annotated[
        Optional[str], typer.Option("--tags", help="Comma-separated tags.")
    ] = None,
    config_path: ConfigOption = None,
) -> None:
    """Edit the metadata of a pending item."""
    fields = MetadataUpdate(
        title=title,
        description=description,
        tags=[t.strip() for t in tags.split(",") if t.strip()] if tags is not None else None,
    )
    try:
        item = _queue(_load(config_path)).update_metadata(item_id, fields, editor)
    except ClipforgeError as exc:
        raise _fail(exc) from exc
    console.print(f"Updated {item.id}: {item.metadata.title}")


@review_app.command("approve")
def review_approve(
    item_id: str,
    reviewer: Annotated[str, typer.Option("--reviewer", help="Who approves.")],
    config_path: ConfigOption = None,
) -> None:
    """Approve and publish a pending item."""
    try:
        item = _queue(_load(config_path)).approve(item_id, reviewer)
    except ClipforgeError as exc:
        raise _fail(exc) from exc
    console.print(f"[green]Approved[/green] {item.id} -> content {item.published_content_id}")


@review_app.command("reject")
def review_reject(
    item_id: str,
    reviewer: Annotated[str, typer.Option("--reviewer", help="Who rejects.")],
    reason: Annotated[str, typer.Option("--reason", help="Why it is rejected.")],
    config_path: ConfigOption = None,
) -> None:
    """Reject a pending item."""
    try:
        item = _queue(_load(config_path)).reject(item_id, reviewer, reason)
    except ValidationFailure as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(2) from exc
    except ClipforgeError as exc:
        raise _fail(exc) from exc
    console.print(f"[yellow]Rejected[/yellow] {item.id}")


# ── Jobs ─────────────────────────────────────────────────────────


@jobs_app.command("list")
def jobs_list(
    status: Annotated[Optional[JobStatus], typer.Option("--status")] = None,
    limit: Annotated[int, typer.Option("--limit", "-n")] = 50,
    include_deleted: Annotated[bool, typer.Option("--include-deleted")] = False,
    config_path: ConfigOption = None,
) -> None:
    """List jobs, oldest first."""
    try:
        jobs = JobStore(_load(config_path).data_path).list(
            status, limit=limit, include_deleted=include_deleted
        )
    except ClipforgeError as exc:
        raise _fail(exc) from exc

    table = Table(title=f"{len(jobs)} job(s)")
    for column in ("id", "status", "source", "score", "title / error"):
        table.add_column(column)
    for job in jobs:
        detail = job.error_message or job.generated_title or job.source_title
        table.add_row(
            job.id,
            job.status.value,
            job.source_video_id,
            "" if job.quality_score is None else str(job.quality_score),
            detail,
        )
    console.print(table)


@jobs_app.command("show")
def jobs_show(job_id: str, config_path: ConfigOption = None) -> None:
    """Show one job in full."""
    store = JobStore(_load(config_path).data_path)
    job = store.get(job_id, include_deleted=True)
    if job is None:
        raise _fail(NotFoundFailure(f"Job {job_id} not found"))
    console.print_json(job.model_dump_json(indent=2))


@jobs_app.command("delete")
def jobs_delete(
    job_id: str,
    actor: Annotated[str, typer.Option("--actor")] = SYSTEM_ACTOR,
    config_path: ConfigOption = None,
) -> None:
    """Soft-delete a job (sets deleted_at; the record is kept)."""
    try:
        job = JobStore(_load(config_path).data_path).soft_delete(job_id, actor=actor)
    except ClipforgeError as exc:
        raise _fail(exc) from exc
    console.print(f"Deleted {job.id} at {job.audit.deleted_at}")


if __name__ == "__main__":
    app()
