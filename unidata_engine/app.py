"""Typer CLI entrypoint for the UniData engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from .config import (
    ConfigRepository,
    EngineSettings,
    ScheduleConfig,
    ScheduleType,
    SubjectConfig,
)
from .errors import IngestError, InvalidStateError, JobNotFoundError
from .jobs import JobOptions
from .logging_conf import (
    available_subject_logs,
    configure_logging,
    default_log_dir,
    subject_log_path,
    tail_log,
)
from .models import DiffResult, Job, JobStatus
from .scheduler import APSchedulerAdapter
from .services import EngineServices, build_services

app = typer.Typer(
    help="UniData engine command line",
    no_args_is_help=True,
    rich_markup_mode=None,
)
subject_app = typer.Typer(name="subject", help="Manage subject configurations.", no_args_is_help=True)
job_app = typer.Typer(name="job", help="Inspect jobs.", no_args_is_help=True)
queue_app = typer.Typer(name="queue", help="Inspect the job queue.", no_args_is_help=True)
log_app = typer.Typer(name="log", help="Read log files.", no_args_is_help=True)

console = Console()

_STATUS_STYLES = {
    JobStatus.PUBLISHED: "green",
    JobStatus.READY_TO_PUBLISH: "cyan",
    JobStatus.FAILED: "red",
    JobStatus.FAILED_BLOCKED: "bold red",
}


@dataclass
class AppState:
    repository: ConfigRepository
    settings: EngineSettings
    services: EngineServices
    scheduler: APSchedulerAdapter


def build_state(verbose: bool) -> AppState:
    repository = ConfigRepository()
    settings = repository.load_settings()
    configure_logging(verbose=verbose, level=settings.logging.level)
    services = build_services(
        settings, base_dir=repository.locator.project_root, subject_logs=True
    )
    return AppState(
        repository=repository,
        settings=settings,
        services=services,
        scheduler=APSchedulerAdapter(),
    )


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


# ----------------------------------------------------------------------
# Rendering helpers
# ----------------------------------------------------------------------
def _format_schedule(schedule: ScheduleConfig) -> str:
    data = schedule.value
    label = schedule.type.value
    if data in (None, "", [], {}):
        return label
    return f"{label} ({data})"


def _render_subjects_table(subjects: Sequence[SubjectConfig]) -> Table:
    table = Table(title=f"Subjects ({len(subjects)})", box=box.SIMPLE_HEAD)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Country", style="magenta")
    table.add_column("Locations", justify="right")
    table.add_column("Auto publish")
    table.add_column("Schedule", style="yellow", overflow="fold")
    for subject in subjects:
        table.add_row(
            subject.name,
            subject.country,
            str(len(subject.locations)),
            "yes" if subject.auto_publish else "no",
            _format_schedule(subject.schedule),
        )
    return table


def _render_job_table(job: Job, diff: DiffResult | None = None) -> Table:
    table = Table(title=f"Job {job.id}", box=box.SIMPLE_HEAD, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", overflow="fold")
    style = _STATUS_STYLES.get(job.status, "yellow")
    table.add_row("Subject", f"{job.subject_name} ({job.subject_id})")
    table.add_row("Status", f"[{style}]{job.status.value}[/{style}]")
    table.add_row("Locations", f"{len(job.locations_fetched)}/{len(job.locations)} fetched")
    table.add_row("Records", f"{job.records_valid} valid of {job.records_found}")
    table.add_row("Retries", str(job.retry_count))
    if job.approved_by:
        table.add_row("Approved by", job.approved_by)
    if job.error is not None:
        table.add_row("Error", f"{job.error.code}: {job.error.message}")
        table.add_row("Retryable", "yes" if job.error.retryable else "no")
    if diff is not None:
        summary = diff.summary
        table.add_row(
            "Diff",
            f"{summary.new} new, {summary.changed} changed, {summary.unchanged} unchanged, "
            f"{summary.deleted} deleted",
        )
        table.add_row("Needs review", str(summary.requires_review))
    return table


def _render_jobs_table(jobs: Iterable[Job]) -> Table:
    table = Table(title="Jobs", box=box.SIMPLE_HEAD)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Subject")
    table.add_column("Status")
    table.add_column("Created", style="dim")
    for job in jobs:
        style = _STATUS_STYLES.get(job.status, "yellow")
        table.add_row(
            job.id,
            job.subject_name,
            f"[{style}]{job.status.value}[/{style}]",
            job.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    return table


def _run_job(state: AppState, job: Job, locations: Sequence[str], auto_publish: bool) -> None:
    manager = state.services.manager
    try:
        manager.execute_job(job, list(locations), JobOptions(auto_publish=auto_publish))
    except IngestError as exc:
        console.print(_render_job_table(job, manager.get_diff(job.id)))
        hint = " (blocked; retrying will not help without intervention)" if exc.blocked else ""
        console.print(f"Job failed: {exc.code.value}: {exc.message}{hint}", style="red")
        raise typer.Exit(code=1) from exc
    console.print(_render_job_table(job, manager.get_diff(job.id)))
    if job.status is JobStatus.READY_TO_PUBLISH:
        console.print(
            f"Awaiting approval: `unidata-engine approve {job.id} --by NAME`", style="dim"
        )


def _schedule_from_options(cron: Optional[str], interval: Optional[float]) -> ScheduleConfig:
    if cron and interval:
        raise typer.BadParameter("Use either --cron or --interval, not both.")
    if cron:
        return ScheduleConfig(type=ScheduleType.CRON, value=cron)
    if interval:
        return ScheduleConfig(type=ScheduleType.INTERVAL, value=interval)
    return ScheduleConfig()


app.add_typer(subject_app, name="subject")
app.add_typer(job_app, name="job")
app.add_typer(queue_app, name="queue")
app.add_typer(log_app, name="log")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
) -> None:
    ctx.obj = build_state(verbose)


# ----------------------------------------------------------------------
# Jobs
# ----------------------------------------------------------------------
@app.command("run", help="Create a job for a university and run it now.")
def run(
    ctx: typer.Context,
    subject: str = typer.Argument(..., help="University name."),
    country: str = typer.Option("Other", "--country", help="Canada, UK, USA, Australia or Other."),
    location: List[str] = typer.Option([], "--location", "-l", help="Program page URL (repeatable)."),
    auto_publish: bool = typer.Option(False, "--auto-publish", help="Publish without approval."),
    created_by: str = typer.Option("cli", "--by", help="Recorded as the job creator."),
) -> None:
    state = _get_state(ctx)
    job = state.services.manager.create_job(
        subject, country, location, created_by=created_by, auto_publish=auto_publish
    )
    _run_job(state, job, location, auto_publish)


@app.command("approve", help="Approve a job awaiting review and publish its records.")
def approve(
    ctx: typer.Context,
    job_id: str = typer.Argument(...),
    approved_by: str = typer.Option(..., "--by", help="Approver name."),
    record: List[str] = typer.Option([], "--record", help="Only publish these record ids."),
) -> None:
    state = _get_state(ctx)
    try:
        job = state.services.manager.approve_and_publish(job_id, approved_by, record or None)
    except JobNotFoundError as exc:
        console.print(exc.message, style="red")
        raise typer.Exit(code=1) from exc
    except InvalidStateError as exc:
        console.print(exc.message, style="yellow")
        raise typer.Exit(code=2) from exc
    console.print(f"Job {job.id} published by {approved_by}.", style="green")


@job_app.command("show", help="Show a job and its diff summary.")
def job_show(ctx: typer.Context, job_id: str = typer.Argument(...)) -> None:
    manager = _get_state(ctx).services.manager
    try:
        job = manager.get_job(job_id)
    except JobNotFoundError as exc:
        console.print(exc.message, style="red")
        raise typer.Exit(code=1) from exc
    console.print(_render_job_table(job, manager.get_diff(job_id)))


@job_app.command("list", help="List recorded jobs.")
def job_list(ctx: typer.Context) -> None:
    jobs = _get_state(ctx).services.manager.list_jobs()
    if not jobs:
        console.print("No jobs recorded yet.", style="dim")
        return
    console.print(_render_jobs_table(jobs))


@queue_app.command("status", help="Show queue size and the job being processed.")
def queue_status(ctx: typer.Context) -> None:
    status = _get_state(ctx).services.queue.get_status()
    table = Table(box=box.SIMPLE_HEAD, show_header=False)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in status.items():
        table.add_row(key, "-" if value is None else str(value))
    console.print(table)


# ----------------------------------------------------------------------
# Subjects
# ----------------------------------------------------------------------
@subject_app.command("list", help="List configured subjects.")
def subject_list(ctx: typer.Context) -> None:
    subjects = _get_state(ctx).repository.list_subjects()
    if not subjects:
        console.print("No subjects configured; use `unidata-engine subject add`.", style="yellow")
        raise typer.Exit(code=0)
    console.print(_render_subjects_table(subjects))


@subject_app.command("add", help="Create or replace a subject configuration.")
def subject_add(
    ctx: typer.Context,
    name: str = typer.Argument(...),
    country: str = typer.Option("Other", "--country"),
    location: List[str] = typer.Option([], "--location", "-l"),
    auto_publish: bool = typer.Option(False, "--auto-publish"),
    cron: Optional[str] = typer.Option(None, "--cron", help="Crontab expression."),
    interval: Optional[float] = typer.Option(None, "--interval", help="Interval in seconds."),
) -> None:
    state = _get_state(ctx)
    try:
        config = SubjectConfig(
            name=name,
            country=country,
            locations=location,
            auto_publish=auto_publish,
            schedule=_schedule_from_options(cron, interval),
        )
    except ValueError as exc:
        console.print(f"Invalid subject: {exc}", style="red")
        raise typer.Exit(code=1) from exc
    path = state.repository.save_subject(config)
    console.print(f"Saved subject `{config.name}` to {path}", style="green")


@subject_app.command("remove", help="Delete a subject configuration.")
def subject_remove(ctx: typer.Context, name: str = typer.Argument(...)) -> None:
    if not _get_state(ctx).repository.delete_subject(name):
        console.print(f"Subject `{name}` not found.", style="red")
        raise typer.Exit(code=1)
    console.print(f"Subject `{name}` removed.", style="green")


@subject_app.command("run", help="Run a configured subject now.")
def subject_run(
    ctx: typer.Context,
    name: str = typer.Argument(...),
    created_by: str = typer.Option("cli", "--by"),
) -> None:
    state = _get_state(ctx)
    try:
        subject = state.repository.load_subject(name)
    except FileNotFoundError as exc:
        console.print(str(exc), style="red")
        raise typer.Exit(code=1) from exc
    job = state.services.manager.create_job(
        subject.name,
        subject.country,
        subject.locations,
        created_by=created_by,
        auto_publish=subject.auto_publish,
    )
    _run_job(state, job, subject.locations, subject.auto_publish)


# ----------------------------------------------------------------------
# Server
# ----------------------------------------------------------------------
@app.command("serve", help="Start the HTTP API, the queue worker and the scheduler.")
def serve(
    ctx: typer.Context,
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8000, "--port"),
    schedule: bool = typer.Option(True, "--schedule/--no-schedule", help="Schedule configured subjects."),
) -> None:
    import uvicorn

    from .api import create_app

    state = _get_state(ctx)
    services = state.services

    def enqueue_subject(subject: SubjectConfig) -> None:
        job = services.manager.create_job(
            subject.name,
            subject.country,
            subject.locations,
            created_by="scheduler",
            auto_publish=subject.auto_publish,
        )
        services.queue.enqueue(job, subject.locations, JobOptions(auto_publish=subject.auto_publish))

    if schedule:
        for subject in state.repository.list_subjects():
            state.scheduler.schedule_subject(subject, enqueue_subject)
        state.scheduler.start()
    console.print(f"Serving on http://{host}:{port}", style="green")
    try:
        uvicorn.run(create_app(services), host=host, port=port, log_config=None)
    finally:
        state.scheduler.shutdown()
        services.close()


# ----------------------------------------------------------------------
# Logs
# ----------------------------------------------------------------------
@log_app.command("list", help="List per-subject log files.")
def log_list() -> None:
    logs = list(available_subject_logs())
    if not logs:
        console.print("No subject logs yet.", style="dim")
        return
    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("File", style="green")
    for path in logs:
        table.add_row(path.name)
    console.print(table)


@log_app.command("show", help="Show the tail of the engine log or a subject log.")
def log_show(
    subject: Optional[str] = typer.Option(None, "--subject", help="Subject name; engine log if omitted."),
    tail: int = typer.Option(100, "--tail", help="Number of lines."),
) -> None:
    path = subject_log_path(subject) if subject else default_log_dir() / "engine.log"
    lines = tail_log(path, tail)
    if not lines:
        console.print("No log lines yet.", style="dim")
        return
    console.print(f"{path.name} · last {len(lines)} lines", style="cyan")
    console.print("".join(lines), markup=False, highlight=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
