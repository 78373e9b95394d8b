"""Assembling chapter files into a Yoto-ready book folder."""

import threading
from pathlib import Path

from loguru import logger

from aax_to_yoto.aax import AudiobookSource
from aax_to_yoto.chapters import format_clock, format_minutes, merge_short_chapters
from aax_to_yoto.config import (
    COVER_FILE_NAME,
    DEFAULT_BOOK_TITLE,
    MAX_RECOMMENDED_FILE_SIZE,
    METADATA_FILE_NAME,
)
from aax_to_yoto.errors import OutputError
from aax_to_yoto.ffmpeg import EncoderSettings, FFmpegEncoder, remux_to_m4b
from aax_to_yoto.models import (
    AudiobookMetadata,
    BuildResult,
    Chapter,
    ChapterTable,
    ConversionRequest,
    OutputFormat,
)
from aax_to_yoto.naming import sanitize_filename
from aax_to_yoto.progress import ProgressCallback
from aax_to_yoto.splitter import ChapterSplitter
from aax_to_yoto.streams import Encoder

log = logger.bind(stage="build")


def book_directory(request: ConversionRequest, metadata: AudiobookMetadata) -> Path:
    """Directory named after the sanitized book title, under the output directory."""
    return request.output_dir / (sanitize_filename(metadata.display_title) or DEFAULT_BOOK_TITLE)


def prepare_book_directory(request: ConversionRequest, metadata: AudiobookMetadata) -> Path:
    """Create the book directory if it doesn't exist yet."""
    book_dir = book_directory(request, metadata)
    try:
        book_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise OutputError(f"Could not create output directory {book_dir}: {e}", book_dir) from e
    return book_dir


def write_playlist(book_dir: Path, book_title: str, files: list[Path]) -> Path:
    """
    Write an extended M3U playlist listing ``files`` in order.

    Entries use the file name relative to the playlist and the name without
    extension as the display title.
    """
    playlist_path = book_dir / f"{book_title}.m3u"
    lines = ["#EXTM3U", f"#PLAYLIST:{book_title}"]
    for file in files:
        lines.append(f"#EXTINF:-1,{file.stem}")
        lines.append(file.name)

    _write_lines(playlist_path, lines)
    return playlist_path


def write_metadata_file(
    book_dir: Path,
    metadata: AudiobookMetadata,
    chapters: ChapterTable,
    total_duration: float,
) -> Path:
    """Write a human-readable summary of the book and its chapters."""
    metadata_path = book_dir / METADATA_FILE_NAME
    lines = [
        f"Title: {metadata.title or 'Unknown'}",
        f"Author: {metadata.author or 'Unknown'}",
        f"Narrator: {metadata.narrator or 'Unknown'}",
        f"Duration: {format_clock(total_duration)}",
        f"Chapters: {len(chapters)}",
        "",
        "Chapter List:",
    ]
    for number, chapter in enumerate(chapters, 1):
        lines.append(f"  {number}. {chapter.display_title(number)} ({format_minutes(chapter.duration)})")

    _write_lines(metadata_path, lines)
    return metadata_path


def write_cover(book_dir: Path, cover: bytes) -> Path:
    """Write cover image bytes verbatim."""
    cover_path = book_dir / COVER_FILE_NAME
    try:
        cover_path.write_bytes(cover)
    except OSError as e:
        raise OutputError(f"Could not write {cover_path}: {e}", cover_path) from e
    return cover_path


def _write_lines(path: Path, lines: list[str]) -> None:
    try:
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    except OSError as e:
        raise OutputError(f"Could not write {path}: {e}", path) from e


def assemble(
    chapter_files: list[Path],
    metadata: AudiobookMetadata,
    request: ConversionRequest,
    chapters: ChapterTable | None = None,
    total_duration: float | None = None,
) -> BuildResult:
    """
    Add the companion files requested by ``request`` and describe the result.

    Args:
        chapter_files: Chapter files in narration order.
        metadata: Book metadata.
        request: Which companion files to create.
        chapters: Chapter table listed in the metadata file; defaults to one
            zero-length entry per file, titled after the file.
        total_duration: Book duration; defaults to the chapter table's total.

    Returns:
        BuildResult; artifacts that weren't created are None.

    Raises:
        OutputError: If a directory or companion file can't be written.
    """
    book_dir = prepare_book_directory(request, metadata)
    book_title = sanitize_filename(metadata.display_title) or DEFAULT_BOOK_TITLE
    if chapters is None:
        chapters = ChapterTable(chapters=tuple(Chapter(title=f.stem, duration=0.0) for f in chapter_files))
    if total_duration is None:
        total_duration = chapters.total_duration

    playlist_path = None
    if request.create_playlist:
        playlist_path = write_playlist(book_dir, book_title, chapter_files)

    metadata_path = None
    if request.create_metadata_file:
        metadata_path = write_metadata_file(book_dir, metadata, chapters, total_duration)

    cover_path = None
    if request.extract_cover and metadata.has_cover:
        cover_path = write_cover(book_dir, metadata.cover)

    for file in chapter_files:
        if file.exists() and file.stat().st_size > MAX_RECOMMENDED_FILE_SIZE:
            log.warning(f"{file.name} is larger than 100MB and may not play well on a Yoto card")

    return BuildResult(
        output_dir=book_dir,
        chapter_files=list(chapter_files),
        total_duration=total_duration,
        chapter_count=len(chapter_files),
        playlist_file=playlist_path,
        metadata_file=metadata_path,
        cover_file=cover_path,
        book_title=metadata.title or book_title,
        author=metadata.author,
        narrator=metadata.narrator,
    )


class YotoCardBuilder:
    """
    Converts an unlocked audiobook into a folder of chapter files for a Yoto card.

    Example:
        >>> source = AudiobookSource.open("book.aax", "1a2b3c4d")
        >>> builder = YotoCardBuilder()
        >>> result = builder.build(source, ConversionRequest(output_dir=Path("out")))
        >>> print(result.chapter_files)
    """

    def __init__(self, settings: EncoderSettings | None = None, encoder: Encoder | None = None) -> None:
        self.settings = settings or EncoderSettings.yoto()
        self.encoder = encoder or FFmpegEncoder(self.settings)

    def build(
        self,
        source: AudiobookSource,
        request: ConversionRequest,
        progress_callback: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> BuildResult:
        """
        Normalize chapters, split the audio and write the companion files.

        Raises:
            ConversionCancelled: If ``cancel_event`` was set.
            ConversionError: If decoding or encoding failed.
            OutputError: If the folder or a companion file couldn't be written.
        """
        book_dir = prepare_book_directory(request, source.metadata)
        chapters = merge_short_chapters(source.chapters, request.min_chapter_duration)
        log.info(
            f"Converting '{source.metadata.display_title}': "
            f"{len(source.chapters)} chapters -> {len(chapters)} files"
        )

        with source.decode(self.settings.pcm_format) as stream:
            files = ChapterSplitter(self.encoder).run(
                stream,
                chapters,
                request,
                book_dir,
                metadata=source.metadata,
                progress_callback=progress_callback,
                cancel_event=cancel_event,
            )

        return assemble(files, source.metadata, request, source.chapters, source.duration)


def convert_to_single_file(
    source: AudiobookSource,
    output_dir: Path,
    settings: EncoderSettings,
    progress_callback: ProgressCallback | None = None,
    cancel_event: threading.Event | None = None,
) -> Path:
    """
    Convert the whole book into one file named after the book.

    M4B output is a lossless remux that keeps the chapter markers; MP3 output
    is encoded as a single track.
    """
    book_title = sanitize_filename(source.metadata.display_title) or DEFAULT_BOOK_TITLE
    output_path = output_dir / (book_title + settings.output_format.extension)

    if settings.output_format == OutputFormat.M4B:
        return remux_to_m4b(
            source.path,
            source.activation_bytes,
            output_path,
            source.duration,
            progress_callback,
            cancel_event,
        )

    output_dir.mkdir(parents=True, exist_ok=True)
    whole_book = ChapterTable(
        chapters=(Chapter(title=source.metadata.display_title, duration=source.duration),)
    )
    request = ConversionRequest(output_dir=output_dir, filename_template="{book}")

    with source.decode(settings.pcm_format) as stream:
        files = ChapterSplitter(FFmpegEncoder(settings)).run(
            stream,
            whole_book,
            request,
            output_dir,
            metadata=source.metadata,
            progress_callback=progress_callback,
            cancel_event=cancel_event,
        )
    return files[0]
