"""Single-pass chapter splitting of a decoded audio stream."""

import threading
from enum import Enum, auto
from pathlib import Path

from loguru import logger

from aax_to_yoto.config import DEFAULT_CHUNK_SIZE, STREAM_TOLERANCE_SECONDS
from aax_to_yoto.errors import ConversionCancelled, TruncatedStreamError
from aax_to_yoto.models import AudiobookMetadata, Chapter, ChapterTable, ConversionRequest, TrackTags
from aax_to_yoto.naming import resolve_output_path
from aax_to_yoto.progress import MonotonicProgress, ProgressCallback
from aax_to_yoto.streams import AudioSink, DecodedStream, Encoder

log = logger.bind(stage="split")


class SplitState(Enum):
    """States of a ChapterSplitter run."""

    IDLE = auto()
    STREAMING = auto()
    FINALIZING = auto()
    DONE = auto()
    ABORTED = auto()


class ChapterSplitter:
    """
    Streams decoded audio into one output file per chapter.

    The splitter reads the decoded stream exactly once, front to back. Each
    chapter gets its own sink, opened with the chapter's track tags before any
    audio reaches it and closed before the next chapter's sink is opened, so
    at most one output file is open at any time.

    A splitter runs once; create a new one per conversion.
    """

    def __init__(
        self,
        encoder: Encoder,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        tolerance_seconds: float = STREAM_TOLERANCE_SECONDS,
    ) -> None:
        self.encoder = encoder
        self.chunk_size = chunk_size
        self.tolerance_seconds = tolerance_seconds
        self.state = SplitState.IDLE
        self.chapter_index = 0
        self._sink: AudioSink | None = None
        self._files: list[Path] = []
        self._completed: list[Path] = []
        self._position = 0
        self._total_bytes = 0

    @property
    def files(self) -> list[Path]:
        """Every path opened so far, in narration order."""
        return list(self._files)

    @property
    def completed_files(self) -> list[Path]:
        """Paths whose sinks were closed successfully."""
        return list(self._completed)

    def run(
        self,
        stream: DecodedStream,
        table: ChapterTable,
        request: ConversionRequest,
        output_dir: Path,
        metadata: AudiobookMetadata | None = None,
        progress_callback: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> list[Path]:
        """
        Split ``stream`` into one file per chapter of ``table``.

        Args:
            stream: Decoded PCM stream positioned at its start.
            table: Normalized chapter table.
            request: Supplies the filename template.
            output_dir: Existing directory receiving the chapter files.
            metadata: Book metadata for the ``{book}`` placeholder and tags.
            progress_callback: Receives the overall completed fraction.
            cancel_event: Checked between chunks and chapters.

        Returns:
            Output paths in narration order, one per chapter.

        Raises:
            ConversionCancelled: ``cancel_event`` was set; finished files stay.
            ConversionError: The decoder or an encoder failed; propagated as-is.
        """
        if self.state != SplitState.IDLE:
            raise RuntimeError("ChapterSplitter instances can only run once")

        metadata = metadata or AudiobookMetadata()
        pcm_format = stream.pcm_format
        progress = MonotonicProgress(progress_callback)
        frame = pcm_format.frame_size
        chunk_size = max(frame, self.chunk_size // frame * frame)

        # Chapter end offsets in bytes, from cumulative durations to avoid drift
        chapter_ends = []
        elapsed = table.start_offset
        for chapter in table:
            elapsed += chapter.duration
            chapter_ends.append(pcm_format.byte_offset(elapsed))
        start = pcm_format.byte_offset(table.start_offset)
        self._total_bytes = chapter_ends[-1] if chapter_ends else start

        self.state = SplitState.STREAMING
        try:
            self._pump(stream, None, start, chunk_size, progress, cancel_event)

            for index, chapter in enumerate(table, 1):
                self._check_cancelled(cancel_event)
                self._enter_chapter(index, chapter, len(table), request, output_dir, metadata, stream)
                end = None if index == len(table) else chapter_ends[index - 1]
                self._pump(stream, self._sink, end, chunk_size, progress, cancel_event)
                self._close_sink()

            self.state = SplitState.FINALIZING
            self._close_sink()
        except BaseException:
            self._abort()
            raise

        self.state = SplitState.DONE
        progress.update(1.0)
        log.info(f"Wrote {len(self._files)} chapter files to {output_dir}")
        return list(self._files)

    def _enter_chapter(
        self,
        index: int,
        chapter: Chapter,
        track_count: int,
        request: ConversionRequest,
        output_dir: Path,
        metadata: AudiobookMetadata,
        stream: DecodedStream,
    ) -> None:
        self._close_sink()
        self.chapter_index = index

        title = chapter.display_title(index)
        path = resolve_output_path(
            output_dir, request.template, index, title, metadata.display_title, self.encoder.extension
        )
        self._files.append(path)

        tags = TrackTags(
            title=title,
            track_number=index,
            track_count=track_count,
            book_tags=metadata.to_ffmpeg_metadata(),
        )
        log.debug(f"Chapter {index}/{track_count}: {path.name}")
        self._sink = self.encoder.open_sink(path, tags, stream.pcm_format)

    def _pump(
        self,
        stream: DecodedStream,
        sink: AudioSink | None,
        end: int | None,
        chunk_size: int,
        progress: MonotonicProgress,
        cancel_event: threading.Event | None,
    ) -> None:
        """Move audio into ``sink`` (or drop it) until ``end`` or end of stream."""
        while end is None or self._position < end:
            size = chunk_size if end is None else min(chunk_size, end - self._position)
            data = stream.read(size)
            if not data:
                break
            if sink is not None:
                sink.write(data)
            self._position += len(data)
            if self._total_bytes:
                progress.update(self._position / self._total_bytes)
            # A chapter's last chunk is checked after its sink closes
            if end is None or self._position < end:
                self._check_cancelled(cancel_event)

        target = self._total_bytes if end is None else end
        if self._position < target:
            self._stream_ended_early(stream)

    def _stream_ended_early(self, stream: DecodedStream) -> None:
        missing = (self._total_bytes - self._position) / stream.pcm_format.bytes_per_second
        if missing > self.tolerance_seconds:
            raise TruncatedStreamError(
                f"Decoded audio ended {missing:.1f}s before the end of the chapter table "
                f"(chapter {self.chapter_index})"
            )
        log.warning(f"Decoded audio is {missing:.2f}s shorter than the chapter table")

    def _check_cancelled(self, cancel_event: threading.Event | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            log.info(f"Cancelled during chapter {self.chapter_index}")
            raise ConversionCancelled(completed_files=self.completed_files, files=self.files)

    def _close_sink(self) -> None:
        if self._sink is None:
            return
        sink, self._sink = self._sink, None
        sink.close()
        self._completed.append(sink.path)

    def _abort(self) -> None:
        self.state = SplitState.ABORTED
        if self._sink is None:
            return
        sink, self._sink = self._sink, None
        try:
            sink.close()
        except Exception as e:
            log.warning(f"Closing {sink.path.name} after failure also failed: {e}")
