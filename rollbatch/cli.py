"""
Command line entry point.

    rollbatch run rolls.zip
    rollbatch run --s3-input s3://bucket/2025/rolls.zip --strategy ocr
    rollbatch run rolls.zip --job-id <id>      # resume a failed job
    rollbatch status <job-id>
    rollbatch recover
"""

from __future__ import annotations

import argparse
import signal
import sys
import time
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)
from rich.table import Table

from .config import Config, get_config
from .exceptions import ConfigurationError, RollBatchError
from .logger import get_logger
from .models import Job, JobStatus
from .persistence import JobRepository, JSONJobStore
from .processors import BatchScheduler, get_job_guard
from .utils.s3_utils import download_from_s3
from .utils.timing import format_duration

console = Console()
logger = get_logger("cli")


def get_progress() -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        TimeElapsedColumn(),
        TimeRemainingColumn(),
        console=console,
    )


def build_repository(config: Config, store: str) -> JobRepository:
    """Create the job store selected on the command line."""
    if store == "postgres":
        from .persistence.postgres import PostgresJobStore

        if not config.db.is_configured:
            raise ConfigurationError("DB_HOST, DB_NAME and DB_USER must be set for the postgres store", "DB_HOST")
        repository = PostgresJobStore(config.db)
        repository.init_db()
        return repository
    return JSONJobStore(config.data_dir)


def _resolve_source(args: argparse.Namespace, config: Config) -> Path:
    if args.s3_input:
        return download_from_s3(args.s3_input, config.s3, config.work_dir / "downloads")
    if not args.source:
        raise ConfigurationError("Either SOURCE or --s3-input is required", "source")
    return Path(args.source)


def _get_or_create_job(repository: JobRepository, job_id: Optional[str], source: Path, source_label: str) -> Job:
    if job_id:
        job = repository.get_job(job_id)
        if job is not None:
            logger.info(f"Using existing job {job.id} ({job.status}, {job.processed_units}/{job.eligible_units} done)")
            return job
        return repository.create_job(Job(id=job_id, name=source.name, source=source_label))
    return repository.create_job(Job(name=source.name, source=source_label))


def cmd_run(args: argparse.Namespace, config: Config) -> int:
    if args.strategy:
        config.pipeline.strategy = args.strategy

    repository = build_repository(config, args.store)
    for job_id in repository.recover_interrupted_jobs():
        console.print(f"[yellow]Recovered interrupted job {job_id}[/yellow]")

    guard = get_job_guard()
    progress = get_progress()
    task = progress.add_task("Processing PDFs", total=None)

    def on_progress(current: Job) -> None:
        progress.update(task, completed=current.processed_units, total=current.eligible_units or None)

    # Fails fast on configuration errors (e.g. missing API key)
    scheduler = BatchScheduler(config, repository, guard=guard, on_progress=on_progress)

    source = _resolve_source(args, config)
    job = _get_or_create_job(repository, args.job_id, source, args.s3_input or str(source))
    console.print(f"🗳️  Job [bold]{job.id}[/bold]: {source.name}")

    def on_sigint(signum, frame) -> None:
        if guard.cancel(job.id):
            console.print("[yellow]Cancelling after in-flight PDFs finish...[/yellow]")

    started = time.perf_counter()
    previous_handler = signal.signal(signal.SIGINT, on_sigint)
    try:
        with progress:
            final = scheduler.run_batch(job.id, source)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    if final is None:
        console.print("[yellow]Job is already running[/yellow]")
        return 1

    _print_job(final, config)
    extractor = getattr(scheduler.unit_processor, "page_extractor", None)
    if extractor is not None:
        console.print(f"Recognition {extractor.stats.summary()}")
    console.print(f"⏱️  Finished in {format_duration(time.perf_counter() - started)}")
    return 0 if final.status == JobStatus.COMPLETED else 1


def cmd_status(args: argparse.Namespace, config: Config) -> int:
    repository = build_repository(config, args.store)
    job = repository.get_job(args.job_id)
    if job is None:
        console.print(f"[red]Job not found: {args.job_id}[/red]")
        return 1
    _print_job(job, config)
    return 0


def cmd_recover(args: argparse.Namespace, config: Config) -> int:
    repository = build_repository(config, args.store)
    recovered = repository.recover_interrupted_jobs()
    if not recovered:
        console.print("No interrupted jobs")
    for job_id in recovered:
        console.print(f"[yellow]Recovered {job_id}[/yellow] (run again with --job-id to resume)")
    return 0


def _print_job(job: Job, config: Config) -> None:
    table = Table(title=f"Job {job.id}", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    for key, value in job.snapshot(config.pipeline.doc_concurrency).items():
        table.add_row(key, "" if value is None else str(value))
    console.print(table)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rollbatch",
        description="Extract voter records from batches of scanned electoral roll PDFs",
    )
    parser.add_argument(
        "--store",
        choices=["json", "postgres"],
        default="json",
        help="Job store (default: json files under DATA_DIR)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Process a zip archive or a single PDF")
    run.add_argument("source", nargs="?", help="Local .zip or .pdf")
    run.add_argument("--job-id", help="Existing job to resume, or id for the new job")
    run.add_argument("--s3-input", help="s3:// URL of the input archive")
    run.add_argument("--strategy", choices=["vision", "ocr"], help="Page extraction strategy")
    run.set_defaults(func=cmd_run)

    status = subparsers.add_parser("status", help="Show a job")
    status.add_argument("job_id")
    status.set_defaults(func=cmd_status)

    recover = subparsers.add_parser("recover", help="Mark interrupted jobs as failed (resumable)")
    recover.set_defaults(func=cmd_recover)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = get_config()
        return args.func(args, config)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 2
    except RollBatchError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
