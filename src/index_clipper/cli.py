"""Command-line interface for index-clipper.

Uses Typer for a modern, type-hinted CLI experience.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Annotated, Optional

import typer
from dotenv import load_dotenv
from rich.console import Console

# Load environment variables from .env files
# Priority: local .env > ~/.index-clipper/.env
_user_env = Path.home() / ".index-clipper" / ".env"
if _user_env.exists():
    load_dotenv(_user_env)
load_dotenv()  # Load local .env (overrides user-level)
from rich.markup import escape
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from index_clipper import __version__
from index_clipper.config import ClipperConfig, load_config
from index_clipper.errors import ClipperError, format_error_for_display
from index_clipper.ffmpeg import FFmpegInvoker
from index_clipper.ffmpeg_binary import get_ffmpeg_info, verify_ffmpeg
from index_clipper.index_parser import IndexParser, ParseStrategy
from index_clipper.logging import LogContext, LogLevel, enable_file_logging, set_verbosity
from index_clipper.models import JobState, ParseMode
from index_clipper.naming import clip_file_name
from index_clipper.service import ClipService

# Create the main Typer app
app = typer.Typer(
    name="index-clipper",
    help="Split a long video into named clips driven by a timestamp index.",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()

# Seconds between status polls while a split runs
POLL_INTERVAL = 0.2


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"index-clipper version {__version__}")
        raise typer.Exit()


def _fail(error: Exception) -> None:
    console.print(f"[red]Error:[/red] {escape(format_error_for_display(error))}")
    raise typer.Exit(1)


def _load_settings(config_path: Path | None, output_root: Path | None) -> ClipperConfig:
    config = load_config(config_path)
    if output_root is not None:
        config = config.model_copy(update={"output_root": output_root})
    return config


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Show informational log messages")
    ] = False,
    debug: Annotated[bool, typer.Option("--debug", help="Show debug log messages")] = False,
    log_file: Annotated[
        Optional[Path], typer.Option("--log-file", help="Also write full logs to this file")
    ] = None,
) -> None:
    """Index Clipper - cut a recording into clips from a timestamp index.

    [bold]parse[/bold]: preview the segments an index produces.

    [bold]split[/bold]: cut one video into stream-copied clips.

    [bold]bundle[/bold]: zip the clips of earlier runs into one archive.
    """
    if debug:
        set_verbosity(LogLevel.DEBUG)
    elif verbose:
        set_verbosity(LogLevel.VERBOSE)
    if log_file is not None:
        enable_file_logging(log_file)


@app.command()
def parse(
    index_file: Annotated[Path, typer.Argument(help="Index text file (UTF-8)")],
    mode: Annotated[
        ParseMode, typer.Option("--mode", "-m", help="Keep all segments or only flagged ones")
    ] = ParseMode.ALL,
    strategy: Annotated[
        ParseStrategy,
        typer.Option("--strategy", "-s", help="block (default) or line association rules"),
    ] = ParseStrategy.BLOCK,
    as_json: Annotated[bool, typer.Option("--json", help="Print JSON instead of a table")] = False,
    config_path: Annotated[
        Optional[Path], typer.Option("--config", "-c", help="JSON config file")
    ] = None,
) -> None:
    """Show the segments an index file produces."""
    if not index_file.exists():
        console.print(f"[red]Error:[/red] Index file not found: {index_file}")
        raise typer.Exit(1)

    config = load_config(config_path)
    parser = IndexParser(strategy=strategy, flag_pattern=config.flag_pattern)
    segments = parser.parse_file(index_file, mode)

    if as_json:
        console.print_json(json.dumps([s.model_dump(mode="json") for s in segments]))
        return

    if not segments:
        console.print("[yellow]No segments found.[/yellow]")
        return

    table = Table(title=f"Segments ({len(segments)})")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Start", style="cyan")
    table.add_column("End", style="cyan")
    table.add_column("Title", style="white")
    table.add_column("Flagged", style="green")
    table.add_column("Clip file", style="dim")

    for index, segment in enumerate(segments):
        table.add_row(
            str(index + 1),
            segment.start,
            segment.end,
            segment.title or "-",
            "yes" if segment.flagged else "",
            clip_file_name(segment, index, max_title_length=config.title_max_length),
        )

    console.print(table)


async def _run_split(
    service: ClipService,
    video: Path,
    index_text: str,
    mode: ParseMode,
    title: str | None,
    zip_path: Path | None,
) -> str:
    job_id = await service.submit(video, index_text, mode, source_title=title)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        task = progress.add_task(f"Splitting {video.name}", total=100)
        while True:
            status = service.status(job_id)
            progress.update(task, completed=status.progress)
            if status.state in (JobState.DONE, JobState.ERROR):
                break
            await asyncio.sleep(POLL_INTERVAL)

    await service.shutdown()

    if zip_path is not None and service.status(job_id).state == JobState.DONE:
        archive = await service.download(job_id)
        if zip_path.is_dir():
            zip_path = zip_path / archive.filename
        await asyncio.to_thread(archive.write_to, zip_path)
        console.print(f"Archive written: [cyan]{zip_path}[/cyan]")

    return job_id


@app.command()
def split(
    video: Annotated[Path, typer.Argument(help="Source video file")],
    index_file: Annotated[Path, typer.Argument(help="Index text file (UTF-8)")],
    mode: Annotated[
        ParseMode, typer.Option("--mode", "-m", help="Cut all segments or only flagged ones")
    ] = ParseMode.ALL,
    title: Annotated[
        Optional[str], typer.Option("--title", "-t", help="Title used for archive folders")
    ] = None,
    output_root: Annotated[
        Optional[Path], typer.Option("--output-root", "-o", help="Where job output is written")
    ] = None,
    zip_path: Annotated[
        Optional[Path], typer.Option("--zip", help="Also write the clips archive here")
    ] = None,
    config_path: Annotated[
        Optional[Path], typer.Option("--config", "-c", help="JSON config file")
    ] = None,
) -> None:
    """Cut a video into one clip per index segment (stream copy, no re-encode)."""
    if not index_file.exists():
        console.print(f"[red]Error:[/red] Index file not found: {index_file}")
        raise typer.Exit(1)

    config = _load_settings(config_path, output_root)
    service = ClipService(config, invoker=FFmpegInvoker(config.ffmpeg))
    index_text = index_file.read_text(encoding="utf-8")

    try:
        with LogContext(source=video.name):
            job_id = asyncio.run(_run_split(service, video, index_text, mode, title, zip_path))
    except ClipperError as e:
        _fail(e)

    status = service.status(job_id)
    if status.state == JobState.ERROR:
        console.print(f"[red]Split failed:[/red] {escape(status.error or '')}")
        raise typer.Exit(1)

    if status.message:
        console.print(f"[yellow]{status.message}[/yellow]")
    console.print(f"[green]Done.[/green] Job [cyan]{job_id}[/cyan]")
    console.print(f"Clips: {config.clips_dir(job_id)}")


@app.command()
def bundle(
    job_ids: Annotated[list[str], typer.Argument(help="Job ids of earlier runs")],
    output: Annotated[
        Path, typer.Option("--output", "-o", help="Archive file or directory to write into")
    ] = Path("."),
    output_root: Annotated[
        Optional[Path], typer.Option("--output-root", help="Where job output was written")
    ] = None,
    config_path: Annotated[
        Optional[Path], typer.Option("--config", "-c", help="JSON config file")
    ] = None,
) -> None:
    """Zip the clips of several earlier runs into one archive.

    Jobs from earlier processes carry no segment metadata, so every file in
    their clip directory is included. Unknown ids are listed in _errors.txt.
    """
    config = _load_settings(config_path, output_root)
    service = ClipService(config)

    for job_id in job_ids:
        if config.clips_dir(job_id).is_dir() and job_id not in service.store:
            service.store.create(id=job_id, state=JobState.DONE, progress=100)

    try:
        archive = asyncio.run(service.download_batch(job_ids))
        target = output / archive.filename if output.is_dir() else output
        archive.write_to(target)
    except ClipperError as e:
        _fail(e)

    console.print(f"Archive written: [cyan]{target}[/cyan] ({len(archive.entries)} clips)")
    for problem in archive.manifest:
        console.print(f"[yellow]Warning:[/yellow] {escape(str(problem))}")


@app.command()
def doctor() -> None:
    """Check that FFmpeg is available."""
    ffmpeg_config = load_config().ffmpeg
    ok, message = verify_ffmpeg(ffmpeg_config)
    info = get_ffmpeg_info(ffmpeg_config)

    table = Table(title="Dependencies")
    table.add_column("Tool", style="cyan")
    table.add_column("Status")
    table.add_column("Details", style="dim")
    table.add_row(
        "ffmpeg",
        "[green]ok[/green]" if ok else "[red]missing[/red]",
        f"{info.version} ({info.source}) {info.path}" if info.available else message,
    )
    console.print(table)

    if not ok:
        console.print(f"[red]{message}[/red]")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
