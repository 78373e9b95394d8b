# ruff: noqa: B008
"""Command-line interface for AAX to Yoto."""
# we will ignore Ruff B008 here because of how Typer handles args

import re
import signal
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from enum import Enum
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)
from rich.table import Table
from rich.text import Text

from aax_to_yoto import __version__
from aax_to_yoto.aax import AudiobookSource
from aax_to_yoto.builder import YotoCardBuilder, convert_to_single_file
from aax_to_yoto.chapters import format_clock, format_minutes, format_time_human
from aax_to_yoto.config import (
    ACTIVATION_BYTES_ENV,
    DEFAULT_MIN_CHAPTER_SECONDS,
    DEFAULT_YOTO_MIN_CHAPTER_SECONDS,
    setup_logging,
)
from aax_to_yoto.dependencies import check_dependencies, format_dependency_check
from aax_to_yoto.errors import AaxToYotoError, ConversionCancelled, InputError
from aax_to_yoto.ffmpeg import ENCODER_PRESETS, EncoderSettings
from aax_to_yoto.models import ConversionRequest
from aax_to_yoto.progress import PercentProgress, ProgressCallback

_DURATION = re.compile(r"^(?:(\d+(?:\.\d+)?)h)?(?:(\d+(?:\.\d+)?)m)?(?:(\d+(?:\.\d+)?)s?)?$")


def parse_duration(duration_str: str) -> float:
    """
    Parse a duration string into seconds.

    Accepts plain seconds ("10", "2.5"), or any of h/m/s units in that
    order ("10s", "2m", "1m30s", "1h5m").
    """
    value = duration_str.strip().lower()
    match = _DURATION.match(value)
    if not value or not match or not any(match.groups()):
        raise ValueError(f"Invalid duration format: {duration_str}")

    hours, minutes, seconds = (float(g) if g else 0.0 for g in match.groups())
    return hours * 3600 + minutes * 60 + seconds


class FormatChoice(str, Enum):
    mp3 = "mp3"
    m4b = "m4b"


class PresetChoice(str, Enum):
    yoto = "yoto"
    high = "high"


app = typer.Typer(
    name="aax-to-yoto",
    help="Convert Audible .aax files to Yoto-compatible MP3s with chapter splitting.",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()


def _parse_min_chapter(value: str) -> float:
    try:
        seconds = parse_duration(value)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e
    return seconds


def _require_ffmpeg() -> None:
    dep_result = check_dependencies()
    if not dep_result.all_found:
        console.print("[red]Error:[/red] ffmpeg/ffprobe not found or missing encoders!")
        console.print(format_dependency_check(dep_result))
        raise typer.Exit(1)


def _open_source(input_file: Path, activation: str) -> AudiobookSource:
    console.print(f"Opening: [cyan]{input_file.name}[/cyan]")
    source = AudiobookSource.open(input_file, activation)

    info = Text()
    for label, value in (
        ("Title:    ", source.metadata.title),
        ("Author:   ", source.metadata.author),
        ("Narrator: ", source.metadata.narrator),
        ("Duration: ", format_clock(source.duration)),
        ("Chapters: ", str(len(source.chapters))),
    ):
        info.append(label, style="dim")
        info.append(f"{value or 'Unknown'}\n", style="cyan")
    console.print(Panel(info, title="Audiobook", border_style="blue"))
    return source


@contextmanager
def cancel_on_interrupt() -> Iterator[threading.Event]:
    """
    Turn the first Ctrl+C into a cooperative cancellation request.

    A second Ctrl+C raises KeyboardInterrupt as usual.
    """
    event = threading.Event()
    previous = signal.getsignal(signal.SIGINT)

    def handler(signum, frame):
        if event.is_set():
            raise KeyboardInterrupt
        event.set()

    signal.signal(signal.SIGINT, handler)
    try:
        yield event
    finally:
        signal.signal(signal.SIGINT, previous)


def _run_conversion(run: Callable[[ProgressCallback, threading.Event], object]):
    """Run ``run`` under a progress bar, mapping failures to exit code 1."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(bar_width=40),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        TimeRemainingColumn(),
        console=console,
        transient=False,
    ) as progress, cancel_on_interrupt() as cancel_event:
        task = progress.add_task("Converting...", total=100)
        on_progress = PercentProgress(lambda percent: progress.update(task, completed=percent))

        try:
            result = run(on_progress, cancel_event)
        except ConversionCancelled as e:
            progress.stop()
            console.print(f"\n[yellow]Conversion cancelled.[/yellow] {len(e.completed_files)} file(s) kept.")
            raise typer.Exit(1) from e
        except (AaxToYotoError, OSError) as e:
            progress.stop()
            console.print(
                Panel(f"[red bold]Error:[/red bold] {e}", title="Conversion Failed", border_style="red")
            )
            raise typer.Exit(1) from e

        progress.update(task, completed=100, description="[bold green]Conversion complete!")

    return result


@contextmanager
def _input_errors() -> Iterator[None]:
    try:
        yield
    except AaxToYotoError as e:
        kind = "Input error" if isinstance(e, InputError) else "Error"
        console.print(f"[red]{kind}:[/red] {e}")
        raise typer.Exit(1) from e


InputOption = typer.Option(..., "--input", "-i", help="Path to the .aax file to convert")
ActivationOption = typer.Option(
    ...,
    "--activation",
    "-a",
    envvar=ACTIVATION_BYTES_ENV,
    help="Audible activation bytes (8 hex characters, e.g. 'ABCD1234')",
)
OutputOption = typer.Option(None, "--output", "-o", help="Output directory (defaults to current directory)")


@app.command()
def yoto(
    input_file: Path = InputOption,
    activation: str = ActivationOption,
    output_dir: Path = OutputOption,
    min_chapter: str = typer.Option(
        str(int(DEFAULT_YOTO_MIN_CHAPTER_SECONDS)),
        "--min-chapter",
        "-m",
        help="Minimum chapter duration (shorter chapters are merged with the next)",
    ),
    no_playlist: bool = typer.Option(False, "--no-playlist", help="Don't create M3U playlist file"),
    no_cover: bool = typer.Option(False, "--no-cover", help="Don't extract cover art"),
    no_metadata: bool = typer.Option(False, "--no-metadata", help="Don't create metadata info file"),
    include_title: bool = typer.Option(
        False, "--include-title", "-t", help="Include book title in each chapter filename"
    ),
    preset: PresetChoice = typer.Option(PresetChoice.yoto, "--preset", help="MP3 encoding preset"),
):
    """Convert AAX to Yoto card format (chapter-split MP3s)."""
    _require_ffmpeg()
    min_seconds = _parse_min_chapter(min_chapter)

    with _input_errors():
        source = _open_source(input_file, activation)

    request = ConversionRequest(
        output_dir=output_dir or Path.cwd(),
        min_chapter_duration=min_seconds,
        create_playlist=not no_playlist,
        extract_cover=not no_cover,
        create_metadata_file=not no_metadata,
        include_book_title=include_title,
    )
    builder = YotoCardBuilder(ENCODER_PRESETS[preset.value])

    result = _run_conversion(
        lambda on_progress, cancel_event: builder.build(source, request, on_progress, cancel_event)
    )

    table = Table(title="✓ Yoto Card Files", show_header=True, header_style="bold green")
    table.add_column("#", style="cyan", justify="right")
    table.add_column("File")
    for number, path in enumerate(result.chapter_files, 1):
        table.add_row(str(number), path.name)
    console.print(table)

    console.print(f"[bold]Output:[/bold] {result.output_dir}")
    console.print(f"Files created: {result.chapter_count} chapter MP3s")
    if result.playlist_file is not None:
        console.print(f"Playlist: {result.playlist_file.name}")
    if result.cover_file is not None:
        console.print(f"Cover:    {result.cover_file.name}")
    if result.metadata_file is not None:
        console.print(f"Info:     {result.metadata_file.name}")
    console.print("\n[green]Ready for Yoto![/green] Upload these files to the Yoto app to create your card.")


@app.command()
def chapters(
    input_file: Path = InputOption,
    activation: str = ActivationOption,
    output_dir: Path = OutputOption,
    output_format: FormatChoice = typer.Option(FormatChoice.mp3, "--format", "-f", help="Output format"),
    min_chapter: str = typer.Option(
        str(int(DEFAULT_MIN_CHAPTER_SECONDS)),
        "--min-chapter",
        "-m",
        help="Minimum chapter duration (shorter chapters are merged with the next)",
    ),
):
    """Convert AAX to multiple files, one per chapter."""
    _require_ffmpeg()
    min_seconds = _parse_min_chapter(min_chapter)

    with _input_errors():
        source = _open_source(input_file, activation)

    request = ConversionRequest(
        output_dir=output_dir or Path.cwd(),
        min_chapter_duration=min_seconds,
        create_playlist=False,
        extract_cover=False,
        create_metadata_file=False,
    )
    settings = ENCODER_PRESETS["m4b"] if output_format == FormatChoice.m4b else EncoderSettings.yoto()
    builder = YotoCardBuilder(settings)

    result = _run_conversion(
        lambda on_progress, cancel_event: builder.build(source, request, on_progress, cancel_event)
    )

    console.print(f"[bold]Output:[/bold] {result.output_dir}")
    console.print(f"Files created: {result.chapter_count}")


@app.command()
def single(
    input_file: Path = InputOption,
    activation: str = ActivationOption,
    output_dir: Path = OutputOption,
    output_format: FormatChoice = typer.Option(FormatChoice.mp3, "--format", "-f", help="Output format"),
):
    """Convert AAX to a single audio file."""
    _require_ffmpeg()

    with _input_errors():
        source = _open_source(input_file, activation)

    settings = ENCODER_PRESETS["m4b"] if output_format == FormatChoice.m4b else EncoderSettings.yoto()
    output_path = _run_conversion(
        lambda on_progress, cancel_event: convert_to_single_file(
            source, output_dir or Path.cwd(), settings, on_progress, cancel_event
        )
    )

    console.print(f"[bold]Output:[/bold] {output_path}")


@app.command()
def info(
    input_file: Path = InputOption,
    activation: str = ActivationOption,
):
    """Display information about an AAX file without converting."""
    with _input_errors():
        source = AudiobookSource.open(input_file, activation)

    metadata = source.metadata
    details = Table(show_header=False, box=None)
    details.add_column(style="dim")
    details.add_column(style="cyan")
    for label, value in (
        ("Title", metadata.title),
        ("Author", metadata.author),
        ("Narrator", metadata.narrator),
        ("Album", metadata.album),
        ("Duration", format_clock(source.duration)),
        ("Copyright", metadata.copyright),
        ("Chapters", str(len(source.chapters))),
        ("Has Cover", "Yes" if metadata.has_cover else "No"),
    ):
        details.add_row(label, value or "")
    console.print(Panel(details, title="Audiobook Info", border_style="blue"))

    chapter_table = Table(title="Chapters", show_header=True, header_style="bold cyan")
    chapter_table.add_column("#", justify="right")
    chapter_table.add_column("Title")
    chapter_table.add_column("Duration", justify="right", style="yellow")
    for number, chapter in enumerate(source.chapters, 1):
        chapter_table.add_row(str(number), chapter.display_title(number), format_minutes(chapter.duration))
    console.print(chapter_table)


@app.command()
def check():
    """Check if ffmpeg/ffprobe and the required encoders are installed."""
    result = check_dependencies()

    if result.all_found:
        content = Text()
        content.append("✓ ", style="green bold")
        content.append("All dependencies found!\n\n", style="green")
        content.append(f"OS: {result.os_name}\n\n", style="dim")
        content.append(f"ffmpeg:  {result.ffmpeg.path}\n", style="cyan")
        content.append(f"ffprobe: {result.ffprobe.path}\n", style="cyan")
        content.append(f"encoders: {', '.join(result.encoders)}\n", style="cyan")
        console.print(Panel(content, title="Dependency Check", border_style="green"))
    else:
        console.print(format_dependency_check(result))
        raise typer.Exit(1)


@app.command()
def presets():
    """Show available encoding presets."""
    table = Table(title="Encoding Presets", show_header=True, header_style="bold cyan")
    table.add_column("Preset", style="green")
    table.add_column("Format")
    table.add_column("Sample Rate")
    table.add_column("Quality")
    table.add_column("Channels")

    for name, settings in ENCODER_PRESETS.items():
        quality = f"{settings.bitrate} kbps" if settings.bitrate else f"VBR q{settings.vbr_quality}"
        table.add_row(
            name,
            settings.output_format.value,
            f"{settings.sample_rate} Hz",
            quality,
            "Mono" if settings.channels == 1 else "Stereo",
        )

    console.print(table)
    minimum = format_time_human(DEFAULT_YOTO_MIN_CHAPTER_SECONDS)
    console.print(f"Chapters shorter than {minimum} are merged by default.")


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", "-v", help="Show version"),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug logging"),
    log_file: Path = typer.Option(None, "--log-file", help="Also write debug logs to this file"),
):
    """AAX to Yoto - Convert Audible audiobooks for Yoto cards."""
    if version:
        console.print(f"aax-to-yoto version {__version__}")
        raise typer.Exit()

    setup_logging(verbose=verbose, log_file=log_file)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


def main():
    app()


if __name__ == "__main__":
    main()
