"""Data models for AAX to Yoto conversion."""

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from aax_to_yoto.config import (
    BOOK_FILENAME_TEMPLATE,
    DEFAULT_BOOK_TITLE,
    DEFAULT_FILENAME_TEMPLATE,
    DEFAULT_YOTO_MIN_CHAPTER_SECONDS,
)

_UNABRIDGED_SUFFIX = re.compile(r"\s*\(unabridged\)\s*$", re.IGNORECASE)


class OutputFormat(str, Enum):
    """Container format of the produced audio files."""

    MP3 = "mp3"
    M4B = "m4b"

    @property
    def extension(self) -> str:
        return f".{self.value}"


@dataclass(frozen=True)
class Chapter:
    """One semantic unit of narration."""

    title: str | None
    duration: float  # seconds

    def __post_init__(self) -> None:
        if self.duration < 0:
            raise ValueError(f"Chapter duration must be non-negative, got {self.duration}")

    def display_title(self, number: int) -> str:
        """Title to show for this chapter, falling back to 'Chapter N'."""
        return self.title or f"Chapter {number}"

    def __str__(self) -> str:
        return f"{self.title or 'Untitled'} ({self.duration:.1f}s)"


@dataclass(frozen=True)
class ChapterTable:
    """Ordered chapters plus where the first one begins in the source stream."""

    chapters: tuple[Chapter, ...] = ()
    start_offset: float = 0.0

    def __len__(self) -> int:
        return len(self.chapters)

    def __iter__(self):
        return iter(self.chapters)

    def __getitem__(self, index: int) -> Chapter:
        return self.chapters[index]

    @property
    def total_duration(self) -> float:
        """Sum of all chapter durations in seconds."""
        return sum(chapter.duration for chapter in self.chapters)


@dataclass(frozen=True)
class AudiobookMetadata:
    """Descriptive metadata read from the source container."""

    title: str | None = None
    author: str | None = None
    narrator: str | None = None
    album: str | None = None
    copyright: str | None = None
    genre: str | None = None
    date: str | None = None
    comment: str | None = None
    cover: bytes | None = field(default=None, repr=False)

    @property
    def title_sans_unabridged(self) -> str | None:
        """Title with a trailing '(Unabridged)' marker removed."""
        if self.title is None:
            return None
        return _UNABRIDGED_SUFFIX.sub("", self.title) or None

    @property
    def display_title(self) -> str:
        """Title used for directory and file names."""
        return self.title_sans_unabridged or self.title or DEFAULT_BOOK_TITLE

    @property
    def has_cover(self) -> bool:
        return bool(self.cover)

    def to_ffmpeg_metadata(self) -> dict[str, str]:
        """Convert book-level fields to ffmpeg metadata keys."""
        metadata = {}
        if self.author:
            metadata["artist"] = self.author
            metadata["album_artist"] = self.author
        album = self.album or self.title
        if album:
            metadata["album"] = album
        if self.narrator:
            metadata["composer"] = self.narrator
        if self.genre:
            metadata["genre"] = self.genre
        if self.date:
            metadata["date"] = self.date
        if self.copyright:
            metadata["copyright"] = self.copyright
        return metadata


@dataclass(frozen=True)
class TrackTags:
    """Per-chapter tags assigned to a sink before it receives audio."""

    title: str
    track_number: int
    track_count: int
    book_tags: dict[str, str] = field(default_factory=dict)

    def to_ffmpeg_metadata(self) -> dict[str, str]:
        metadata = dict(self.book_tags)
        metadata["title"] = self.title
        metadata["track"] = f"{self.track_number}/{self.track_count}"
        return metadata


@dataclass(frozen=True)
class ConversionRequest:
    """Configuration for one conversion run."""

    output_dir: Path
    filename_template: str = DEFAULT_FILENAME_TEMPLATE
    min_chapter_duration: float = DEFAULT_YOTO_MIN_CHAPTER_SECONDS
    create_playlist: bool = True
    extract_cover: bool = True
    create_metadata_file: bool = True
    include_book_title: bool = False

    @property
    def template(self) -> str:
        """Filename template with the book title prefixed when requested."""
        if not self.include_book_title or "{book}" in self.filename_template:
            return self.filename_template
        if self.filename_template == DEFAULT_FILENAME_TEMPLATE:
            return BOOK_FILENAME_TEMPLATE
        return "{book} - " + self.filename_template


@dataclass
class BuildResult:
    """Everything a successful build produced."""

    output_dir: Path
    chapter_files: list[Path]
    total_duration: float
    chapter_count: int
    playlist_file: Path | None = None
    metadata_file: Path | None = None
    cover_file: Path | None = None
    book_title: str | None = None
    author: str | None = None
    narrator: str | None = None

    def __str__(self) -> str:
        return f"Built '{self.book_title}' with {self.chapter_count} chapter files in {self.output_dir}"
