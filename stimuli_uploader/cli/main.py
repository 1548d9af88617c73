"""Stimuli CLI - Upload commands."""
import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TaskProgressColumn
from rich.table import Table

from ..core.config import (
    MB,
    STIMULI_ACCEPTED_TYPES,
    STIMULI_MAX_FILE_SIZE,
    QueueConfig,
    RetryConfig,
    TransportConfig,
    UploadPolicy,
)
from ..core.logging import setup_logging
from ..core.upload import FileInfo, HttpTransport, UploadStatus
from ..core.utils import format_file_size
from ..manager import UploadManager

app = typer.Typer(
    name="stimuli",
    help="Upload study stimuli to the study builder backend",
    add_completion=False
)
console = Console()

STATUS_STYLES = {
    UploadStatus.COMPLETE: "green",
    UploadStatus.ERROR: "red",
    UploadStatus.UPLOADING: "cyan",
    UploadStatus.PENDING: "yellow",
}


def run_async(coro):
    """Run async function."""
    return asyncio.run(coro)


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=console, show_path=False)]
    )
    setup_logging(level)


def build_transport(endpoint: str) -> HttpTransport:
    return HttpTransport(TransportConfig(base_url=endpoint))


@app.callback()
def cli():
    """Upload study stimuli to the study builder backend."""


@app.command()
def upload(
    files: List[Path] = typer.Argument(
        ..., help="Stimulus files to upload", exists=True, dir_okay=False
    ),
    endpoint: str = typer.Option(
        "http://localhost:4000", "--endpoint", "-e", help="Backend base URL"
    ),
    max_concurrent: int = typer.Option(
        3, "--max-concurrent", "-c", min=1, help="Simultaneous uploads"
    ),
    max_size: Optional[float] = typer.Option(
        None, "--max-size", "-s", min=0, help="Maximum file size in MB (default 50)"
    ),
    accept: Optional[List[str]] = typer.Option(
        None, "--accept", "-a", help="Accepted MIME type, e.g. image/* (repeatable)"
    ),
    retries: int = typer.Option(
        0, "--retries", "-r", min=0, help="Automatic retries for transient failures"
    ),
    batch: bool = typer.Option(False, "--batch", "-b", help="Send files through the batch endpoint"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Upload stimulus files with bounded concurrency."""
    configure_logging(verbose)

    policy = UploadPolicy.from_options(
        accepted_types=accept or STIMULI_ACCEPTED_TYPES,
        max_file_size=int(max_size * MB) if max_size is not None else STIMULI_MAX_FILE_SIZE
    )
    config = QueueConfig(
        max_concurrent=max_concurrent,
        policy=policy,
        retry=RetryConfig(max_retries=retries)
    )

    async def do_upload():
        rejected = []

        async with UploadManager(build_transport(endpoint), config) as manager:
            manager.on('rejected', lambda file, error: rejected.append((file, error)))

            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                console=console
            ) as progress:
                bars = {}

                def on_enqueued(task):
                    bars[task.id] = progress.add_task(task.filename, total=100)

                def on_progress(task):
                    progress.update(bars[task.id], completed=task.progress)

                def on_complete(task):
                    progress.update(
                        bars[task.id], completed=100, description=f"[green]{task.filename}[/green]"
                    )

                def on_failed(task, error):
                    progress.update(bars[task.id], description=f"[red]{task.filename}[/red]")

                def on_retry(task):
                    progress.update(
                        bars[task.id], completed=0,
                        description=f"{task.filename} (retry {task.retry_count})"
                    )

                manager.on('enqueued', on_enqueued)
                manager.on('progress', on_progress)
                manager.on('complete', on_complete)
                manager.on('failed', on_failed)
                manager.on('retry', on_retry)

                infos = [FileInfo.from_path(path) for path in files]
                if batch:
                    manager.enqueue_batch(infos)
                else:
                    manager.enqueue_many(infos)

                status = await manager.wait_all()

            tasks = manager.all()
            messages = manager.messages

        table = Table()
        table.add_column("File")
        table.add_column("Size", justify="right")
        table.add_column("Status")
        table.add_column("URL / Error", overflow="fold")

        for task in tasks:
            style = STATUS_STYLES[task.status]
            detail = task.url if task.status is UploadStatus.COMPLETE else (task.error or "")
            table.add_row(
                task.filename,
                format_file_size(task.file.size),
                f"[{style}]{task.status.value}[/{style}]",
                detail
            )
        for file, error in rejected:
            table.add_row(file.name, format_file_size(file.size), "[red]rejected[/red]", str(error))

        console.print(table)
        if messages.warning:
            console.print(f"[yellow]{messages.warning}[/yellow]")
        if messages.success:
            console.print(f"[green]{messages.success}[/green]")
        elif messages.error:
            console.print(f"[red]{messages.error}[/red]")

        if status.failed or rejected:
            raise typer.Exit(1)

    run_async(do_upload())


def main():
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
