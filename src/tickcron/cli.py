"""Command-line interface for tickcron.

CONCEPTS:
---------
- JOB:      A named unit of work (usually a shell command) with a
            five-field cron schedule and a timeout.
- TICK:     Once per second the scheduler checks every enabled job and
            starts those whose schedule matches the current minute.
- HISTORY:  The ten most recent runs of each job, newest first.

Jobs are stored in ~/.tickcron/jobs.json (override with
TICKCRON_STORAGE_PATH). Changes made with the CLI while a scheduler is
running take effect after the scheduler is restarted.
"""

import argparse
import asyncio
import logging
import signal
import sys
from datetime import datetime
from pathlib import Path
from typing import NoReturn
from zoneinfo import ZoneInfo

import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from tickcron import __version__
from tickcron.config import settings
from tickcron.cron import (
    CronJob,
    CronJobUpdate,
    CronService,
    JobEvent,
    JobEventKind,
    JobStatus,
    JobValidationError,
    ParseError,
    create_executor,
    describe_expression,
    upcoming_fire_times,
    validate_expression,
)

console = Console()

STATUS_STYLES = {
    JobStatus.IDLE: "white",
    JobStatus.RUNNING: "blue",
    JobStatus.SUCCESS: "green",
    JobStatus.FAILED: "red",
    JobStatus.TIMEOUT: "yellow",
    JobStatus.DISABLED: "dim",
}


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.WARNING
    fmt = "%(name)s: %(message)s" if verbose else "%(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        handlers=[RichHandler(rich_tracebacks=True, console=console, show_path=verbose)],
    )


def _make_service(simulate: bool = False) -> CronService:
    """Build a service from the global settings."""
    if simulate:
        settings.executor = "simulated"
    executor = create_executor(settings.executor, **settings.get_executor_options())
    return CronService(
        storage_path=settings.get_storage_path(),
        executor=executor,
        check_interval=settings.check_interval,
        timezone=settings.timezone,
        strict=settings.strict_schedules,
        default_timeout_ms=settings.default_timeout_ms,
    )


def _get_job_or_exit(service: CronService, job_id: str) -> CronJob:
    job = service.get_job(job_id)
    if job is None:
        console.print(f"[red]Job not found:[/red] {job_id}")
        sys.exit(1)
    return job


def _status_text(status: JobStatus) -> str:
    return f"[{STATUS_STYLES[status]}]{status.value}[/{STATUS_STYLES[status]}]"


def _next_run(service: CronService, job: CronJob) -> str:
    if not job.enabled:
        return "-"
    try:
        runs = upcoming_fire_times(validate_expression(job.schedule), service.now(), count=1)
    except ParseError:
        return "invalid"
    return runs[0].strftime("%Y-%m-%d %H:%M") if runs else "-"


def cmd_add(args: argparse.Namespace) -> None:
    """Add a new scheduled job."""
    service = _make_service()

    try:
        job = service.add_job(
            name=args.name,
            schedule=args.schedule,
            action=args.action,
            timeout_ms=args.timeout_ms,
            enabled=not args.disabled,
        )
    except (JobValidationError, ParseError) as e:
        console.print(f"[red]Invalid job:[/red] {e}")
        sys.exit(1)

    console.print(f"[green]Created job:[/green] {job.name}")
    console.print(f"  ID: {job.id}")
    console.print(f"  Schedule: {job.schedule} ({describe_expression(job.schedule)})")
    console.print(f"  Next run: {_next_run(service, job)}")


def cmd_list(args: argparse.Namespace) -> None:
    """List all scheduled jobs."""
    service = _make_service()
    jobs = service.list_jobs()

    if not jobs:
        console.print("[yellow]No scheduled jobs.[/yellow]")
        return

    table = Table(title="Scheduled Jobs")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Schedule", style="yellow")
    table.add_column("Status")
    table.add_column("Timeout", style="magenta")
    table.add_column("Last Run", style="blue")
    table.add_column("Next Run", style="blue")

    for job in jobs:
        last_run = job.last_run_at.strftime("%Y-%m-%d %H:%M") if job.last_run_at else "-"
        table.add_row(
            job.id,
            job.name,
            job.schedule,
            _status_text(job.status),
            f"{job.timeout_ms}ms",
            last_run,
            _next_run(service, job),
        )

    console.print(table)


def cmd_show(args: argparse.Namespace) -> None:
    """Show a job and its execution history."""
    service = _make_service()
    job = _get_job_or_exit(service, args.job_id)

    console.print(f"[bold]{job.name}[/bold] ({job.id})")
    console.print(f"  Schedule: {job.schedule} ({describe_expression(job.schedule)})")
    console.print(f"  Action: {job.action}")
    console.print(f"  Timeout: {job.timeout_ms}ms")
    console.print(f"  Status: {_status_text(job.status)}")
    if job.last_error:
        console.print(f"  Last error: [red]{job.last_error}[/red]")
    elif job.last_result is not None:
        console.print(f"  Last result: {job.last_result}")

    if not job.history:
        console.print("\n[dim]No executions yet.[/dim]")
        return

    table = Table(title="History")
    table.add_column("Finished", style="blue")
    table.add_column("Outcome")
    table.add_column("Duration", style="magenta")
    table.add_column("Result / Error")

    for record in job.history:
        style = STATUS_STYLES[JobStatus(record.outcome.value)]
        detail = record.error if record.error is not None else str(record.result)
        table.add_row(
            record.timestamp.astimezone(service.timezone).strftime("%Y-%m-%d %H:%M:%S"),
            f"[{style}]{record.outcome.value}[/{style}]",
            f"{record.duration_ms:.0f}ms",
            detail[:80],
        )

    console.print(table)


def cmd_edit(args: argparse.Namespace) -> None:
    """Change a job's definition."""
    service = _make_service()
    _get_job_or_exit(service, args.job_id)

    try:
        update = CronJobUpdate(
            name=args.name,
            schedule=args.schedule,
            action=args.action,
            timeout_ms=args.timeout_ms,
        )
        job = service.update_job(args.job_id, update)
    except (ValueError, ParseError) as e:
        console.print(f"[red]Invalid change:[/red] {e}")
        sys.exit(1)

    console.print(f"[green]Updated:[/green] {job.name}")


def cmd_remove(args: argparse.Namespace) -> None:
    """Remove a scheduled job."""
    service = _make_service()
    job = _get_job_or_exit(service, args.job_id)

    if service.delete_job(args.job_id):
        console.print(f"[green]Removed:[/green] {job.name}")
    else:
        console.print(f"[red]Failed to remove:[/red] {args.job_id}")
        sys.exit(1)


def cmd_toggle(args: argparse.Namespace) -> None:
    """Flip a job between enabled and disabled."""
    service = _make_service()
    job = service.toggle_job(args.job_id)
    if job is None:
        console.print(f"[red]Job not found:[/red] {args.job_id}")
        sys.exit(1)

    state = "[green]Enabled[/green]" if job.enabled else "[yellow]Disabled[/yellow]"
    console.print(f"{state}: {job.name}")


def cmd_enable(args: argparse.Namespace) -> None:
    """Enable a scheduled job."""
    service = _make_service()

    if service.enable_job(args.job_id):
        console.print(f"[green]Enabled:[/green] {args.job_id}")
    else:
        console.print(f"[red]Job not found:[/red] {args.job_id}")
        sys.exit(1)


def cmd_disable(args: argparse.Namespace) -> None:
    """Disable a scheduled job."""
    service = _make_service()

    if service.disable_job(args.job_id):
        console.print(f"[yellow]Disabled:[/yellow] {args.job_id}")
    else:
        console.print(f"[red]Job not found:[/red] {args.job_id}")
        sys.exit(1)


def cmd_run(args: argparse.Namespace) -> None:
    """Run a scheduled job immediately."""
    service = _make_service(simulate=args.simulate)
    job = _get_job_or_exit(service, args.job_id)

    async def _run() -> None:
        try:
            record = await service.run_job(args.job_id)
        finally:
            await service.coordinator.shutdown()
        if record is None:
            return
        if record.succeeded:
            console.print(f"[green]Completed[/green] in {record.duration_ms:.0f}ms: {record.result}")
        else:
            console.print(f"[red]{record.outcome.value.capitalize()}:[/red] {record.error}")

    console.print(f"Running: {job.name}")
    asyncio.run(_run())


def cmd_check(args: argparse.Namespace) -> None:
    """Validate a cron expression and show its next fire times."""
    try:
        expression = validate_expression(args.expression, strict=args.strict)
    except ParseError as e:
        console.print(f"[red]Invalid expression:[/red] {e}")
        sys.exit(1)

    console.print(f"[bold]{expression}[/bold]: {describe_expression(args.expression)}")
    now = datetime.now(ZoneInfo(settings.timezone))
    runs = upcoming_fire_times(expression, now, count=args.count)
    if not runs:
        console.print("[yellow]No fire times within the next year.[/yellow]")
    for run in runs:
        console.print(f"  {run.strftime('%a %Y-%m-%d %H:%M %Z')}")


def _yaml_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "on" if value else "off"
    return str(value)


def cmd_import(args: argparse.Namespace) -> None:
    """Import jobs from a YAML configuration file."""
    config_path = Path(args.file)

    if not config_path.exists():
        console.print(f"[red]File not found:[/red] {config_path}")
        sys.exit(1)

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        console.print(f"[red]Invalid YAML:[/red] {e}")
        sys.exit(1)

    jobs_config = data.get("jobs", []) if isinstance(data, dict) else []
    if not jobs_config:
        console.print("[yellow]No jobs found in file.[/yellow]")
        return

    service = _make_service()
    if args.replace:
        cleared = service.clear()
        console.print(f"Cleared {cleared} existing jobs")

    imported = 0
    for job_config in jobs_config:
        if not isinstance(job_config, dict):
            console.print(
                f"[red]Skipping entry:[/red] expected a mapping, got {escape(repr(job_config))}"
            )
            continue

        # YAML turns bare words like "off" or "123" into non-strings
        name, schedule, action = (
            _yaml_text(job_config.get(key)) for key in ("name", "schedule", "action")
        )
        try:
            job = service.add_job(
                name=name,
                schedule=schedule,
                action=action,
                timeout_ms=job_config.get("timeout_ms"),
                enabled=job_config.get("enabled", True),
            )
        except (JobValidationError, ParseError) as e:
            console.print(f"[red]Skipping '{name or '?'}':[/red] {e}")
            continue

        imported += 1
        console.print(f"  [green]+[/green] {job.name} ({job.schedule})")

    console.print(f"\nImported {imported} of {len(jobs_config)} jobs")


def cmd_clear(args: argparse.Namespace) -> None:
    """Delete all scheduled jobs."""
    service = _make_service()
    count = len(service.list_jobs())

    if count == 0:
        console.print("[yellow]No jobs to clear.[/yellow]")
        return

    if not args.yes:
        answer = console.input(f"Delete all {count} jobs? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            console.print("Aborted")
            return

    service.clear()
    console.print(f"[green]Cleared {count} jobs[/green]")


def _print_event(event: JobEvent) -> None:
    job = event.job
    stamp = datetime.now().strftime("%H:%M:%S")
    if event.kind == JobEventKind.EXECUTION_STARTED:
        console.print(f"[dim]{stamp}[/dim] [blue]started[/blue]  {job.name}")
    elif event.kind == JobEventKind.EXECUTION_RECORDED and event.record is not None:
        record = event.record
        style = STATUS_STYLES[JobStatus(record.outcome.value)]
        detail = record.error if record.error is not None else record.result
        console.print(
            f"[dim]{stamp}[/dim] [{style}]{record.outcome.value}[/{style}]  "
            f"{job.name} ({record.duration_ms:.0f}ms) {detail}"
        )


def cmd_start(args: argparse.Namespace) -> None:
    """Run the scheduler in the foreground."""
    service = _make_service(simulate=args.simulate)
    jobs = service.list_jobs()
    enabled = [job for job in jobs if job.enabled]

    if not jobs:
        console.print("[yellow]No jobs registered.[/yellow]")
        console.print("Use [bold]tickcron add[/bold] or [bold]tickcron import[/bold] to add jobs")
        return

    console.print(
        f"[bold]Starting scheduler[/bold] ({len(enabled)} of {len(jobs)} jobs enabled, "
        f"timezone {settings.timezone}, executor {settings.executor})"
    )
    for job in enabled:
        console.print(f"  • {job.name}: {job.schedule} ({describe_expression(job.schedule)})")
    console.print("\nPress Ctrl+C to stop\n")

    async def _print_events(queue: asyncio.Queue[JobEvent]) -> None:
        while True:
            _print_event(await queue.get())

    async def _serve() -> None:
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)

        queue = service.stream()
        printer = asyncio.create_task(_print_events(queue), name="cron_event_printer")
        await service.start()
        try:
            await stop_event.wait()
        finally:
            await service.stop()
            service.close_stream(queue)
            while not queue.empty():
                _print_event(queue.get_nowait())
            printer.cancel()
            try:
                await printer
            except asyncio.CancelledError:
                pass

    asyncio.run(_serve())
    console.print("\n[dim]Scheduler stopped[/dim]")


def cmd_version(args: argparse.Namespace) -> None:
    """Show version information."""
    console.print(f"tickcron v{__version__}")


def main() -> NoReturn:
    """Main entry point for the tickcron CLI."""
    parser = argparse.ArgumentParser(
        prog="tickcron",
        description="tickcron - cron scheduling with timeouts and execution history",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show detailed output")

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    # add
    add_parser = subparsers.add_parser("add", help="Create a new scheduled job")
    add_parser.add_argument("--name", required=True, help="Job name")
    add_parser.add_argument("--schedule", required=True, help="Cron expression (e.g., '*/5 * * * *')")
    add_parser.add_argument("--action", required=True, help="Shell command to run")
    add_parser.add_argument("--timeout-ms", type=int, help="Execution deadline in milliseconds")
    add_parser.add_argument("--disabled", action="store_true", help="Create in disabled state")
    add_parser.set_defaults(func=cmd_add)

    # list
    list_parser = subparsers.add_parser("list", help="List scheduled jobs")
    list_parser.set_defaults(func=cmd_list)

    # show
    show_parser = subparsers.add_parser("show", help="Show a job and its history")
    show_parser.add_argument("job_id", help="Job ID")
    show_parser.set_defaults(func=cmd_show)

    # edit
    edit_parser = subparsers.add_parser("edit", help="Change a job's definition")
    edit_parser.add_argument("job_id", help="Job ID")
    edit_parser.add_argument("--name", help="New job name")
    edit_parser.add_argument("--schedule", help="New cron expression")
    edit_parser.add_argument("--action", help="New shell command")
    edit_parser.add_argument("--timeout-ms", type=int, help="New deadline in milliseconds")
    edit_parser.set_defaults(func=cmd_edit)

    # remove
    remove_parser = subparsers.add_parser("remove", help="Remove a job")
    remove_parser.add_argument("job_id", help="Job ID")
    remove_parser.set_defaults(func=cmd_remove)

    # toggle / enable / disable
    toggle_parser = subparsers.add_parser("toggle", help="Flip a job between enabled and disabled")
    toggle_parser.add_argument("job_id", help="Job ID")
    toggle_parser.set_defaults(func=cmd_toggle)

    enable_parser = subparsers.add_parser("enable", help="Enable a job")
    enable_parser.add_argument("job_id", help="Job ID")
    enable_parser.set_defaults(func=cmd_enable)

    disable_parser = subparsers.add_parser("disable", help="Disable a job")
    disable_parser.add_argument("job_id", help="Job ID")
    disable_parser.set_defaults(func=cmd_disable)

    # run
    run_parser = subparsers.add_parser("run", help="Run a job immediately")
    run_parser.add_argument("job_id", help="Job ID")
    run_parser.add_argument("--simulate", action="store_true", help="Simulate instead of running the command")
    run_parser.set_defaults(func=cmd_run)

    # check
    check_parser = subparsers.add_parser("check", help="Validate a cron expression")
    check_parser.add_argument("expression", help="Cron expression, quoted")
    check_parser.add_argument("-n", "--count", type=int, default=5, help="Number of fire times to show")
    check_parser.add_argument("--strict", action="store_true", help="Check field grammar and value ranges")
    check_parser.set_defaults(func=cmd_check)

    # import
    import_parser = subparsers.add_parser(
        "import",
        help="Import jobs from a YAML configuration file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""YAML file format:
  jobs:
    - name: "Disk usage"
      schedule: "*/15 * * * *"
      action: "df -h /"
      timeout_ms: 5000

    - name: "Nightly backup"
      schedule: "30 2 * * 1-5"
      action: "/usr/local/bin/backup.sh"
      timeout_ms: 600000
      enabled: false""",
    )
    import_parser.add_argument("file", help="Path to YAML configuration file")
    import_parser.add_argument("--replace", action="store_true", help="Clear existing jobs first")
    import_parser.set_defaults(func=cmd_import)

    # clear
    clear_parser = subparsers.add_parser("clear", help="Delete all jobs")
    clear_parser.add_argument("-y", "--yes", action="store_true", help="Skip confirmation")
    clear_parser.set_defaults(func=cmd_clear)

    # start
    start_parser = subparsers.add_parser("start", help="Run the scheduler in the foreground")
    start_parser.add_argument("--simulate", action="store_true", help="Simulate job actions")
    start_parser.set_defaults(func=cmd_start)

    # version
    version_parser = subparsers.add_parser("version", help="Show version information")
    version_parser.set_defaults(func=cmd_version)

    args = parser.parse_args()
    setup_logging(args.verbose)

    if not getattr(args, "func", None):
        parser.print_help()
        sys.exit(0)

    args.func(args)
    sys.exit(0)


if __name__ == "__main__":
    main()
