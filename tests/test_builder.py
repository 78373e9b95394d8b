"""Unit tests for book folder assembly and the Yoto card builder."""

import sys
import threading
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from aax_to_yoto.builder import (
    YotoCardBuilder,
    assemble,
    book_directory,
    write_metadata_file,
    write_playlist,
)
from aax_to_yoto.errors import ConversionCancelled, OutputError
from aax_to_yoto.ffmpeg import EncoderSettings
from aax_to_yoto.models import AudiobookMetadata, Chapter, ChapterTable, ConversionRequest
from tests.test_utils import FakeEncoder, FakeSource

# Low sample rate keeps the fake PCM small
LOW_RATE = EncoderSettings(sample_rate=1000, preset_name="test")


def touch_files(directory: Path, *names: str) -> list[Path]:
    directory.mkdir(parents=True, exist_ok=True)
    paths = [directory / name for name in names]
    for path in paths:
        path.write_bytes(b"\x00" * 16)
    return paths


class TestBookDirectory:
    """Tests for the per-book output directory."""

    def test_named_after_title_without_unabridged(self, sample_metadata, request_for):
        """The folder uses the display title."""
        request = request_for()
        assert book_directory(request, sample_metadata) == request.output_dir / "The Test Book"

    def test_untitled_book(self, request_for):
        """A book without a title gets a generic folder name."""
        request = request_for()
        assert book_directory(request, AudiobookMetadata()).name == "Audiobook"

    def test_unsafe_title_sanitized(self, request_for):
        """Illegal characters in the title don't create subdirectories."""
        request = request_for()
        assert book_directory(request, AudiobookMetadata(title="AC/DC: Live")).name == "AC_DC_ Live"


class TestWritePlaylist:
    """Tests for write_playlist."""

    def test_playlist_contents(self, tmp_path):
        """Extended M3U with one entry per file in order."""
        files = touch_files(tmp_path, "01 - Intro.mp3", "02 - The End.mp3")
        playlist = write_playlist(tmp_path, "My Book", files)

        assert playlist == tmp_path / "My Book.m3u"
        assert playlist.read_text(encoding="utf-8").splitlines() == [
            "#EXTM3U",
            "#PLAYLIST:My Book",
            "#EXTINF:-1,01 - Intro",
            "01 - Intro.mp3",
            "#EXTINF:-1,02 - The End",
            "02 - The End.mp3",
        ]


class TestWriteMetadataFile:
    """Tests for write_metadata_file."""

    def test_summary(self, tmp_path, sample_metadata, sample_chapters):
        """Book fields, duration and the chapter list are written."""
        path = write_metadata_file(tmp_path, sample_metadata, sample_chapters, 3725.0)
        lines = path.read_text(encoding="utf-8").splitlines()

        assert path.name == "info.txt"
        assert lines[:7] == [
            "Title: The Test Book (Unabridged)",
            "Author: Test Author",
            "Narrator: Test Narrator",
            "Duration: 01:02:05",
            "Chapters: 4",
            "",
            "Chapter List:",
        ]
        assert lines[7] == "  1. Opening Credits (00:04)"
        assert lines[9] == "  3. Chapter 2 (00:30)"

    def test_unknown_fields(self, tmp_path):
        """Missing fields are written as Unknown and untitled chapters are numbered."""
        table = ChapterTable(chapters=(Chapter(title=None, duration=65.0),))
        lines = write_metadata_file(tmp_path, AudiobookMetadata(), table, 65.0).read_text().splitlines()

        assert "Author: Unknown" in lines
        assert "Narrator: Unknown" in lines
        assert lines[-1] == "  1. Chapter 1 (01:05)"


class TestAssemble:
    """Tests for assemble."""

    def test_all_companions(self, sample_metadata, sample_chapters, request_for):
        """Playlist, info file and cover are created next to the chapter files."""
        request = request_for()
        book_dir = book_directory(request, sample_metadata)
        files = touch_files(book_dir, "01 - Opening Credits.mp3", "02 - Chapter 2.mp3")

        result = assemble(files, sample_metadata, request, sample_chapters, 56.0)

        assert result.output_dir == book_dir
        assert result.chapter_files == files
        assert result.chapter_count == 2
        assert result.total_duration == 56.0
        assert result.playlist_file == book_dir / "The Test Book.m3u"
        assert result.metadata_file == book_dir / "info.txt"
        assert result.cover_file == book_dir / "cover.jpg"
        assert result.cover_file.read_bytes() == sample_metadata.cover
        assert result.book_title == "The Test Book (Unabridged)"
        assert result.author == "Test Author"
        assert result.narrator == "Test Narrator"

    def test_disabled_companions_are_none(self, sample_metadata, request_for):
        """Artifacts that weren't requested are reported as None."""
        request = request_for(create_playlist=False, extract_cover=False, create_metadata_file=False)
        files = touch_files(book_directory(request, sample_metadata), "01 - A.mp3")

        result = assemble(files, sample_metadata, request)

        assert result.playlist_file is None
        assert result.metadata_file is None
        assert result.cover_file is None
        assert sorted(p.name for p in result.output_dir.iterdir()) == ["01 - A.mp3"]

    def test_no_cover_in_source(self, request_for):
        """Without cover art no cover file is written even when requested."""
        metadata = AudiobookMetadata(title="Plain")
        request = request_for()
        files = touch_files(book_directory(request, metadata), "01 - A.mp3")

        result = assemble(files, metadata, request)

        assert result.cover_file is None
        assert not (result.output_dir / "cover.jpg").exists()

    def test_default_chapter_list_from_files(self, request_for):
        """Without a chapter table the info file lists the chapter files."""
        metadata = AudiobookMetadata(title="Plain")
        request = request_for()
        files = touch_files(book_directory(request, metadata), "01 - A.mp3", "02 - B.mp3")

        result = assemble(files, metadata, request)

        lines = result.metadata_file.read_text().splitlines()
        assert "Chapters: 2" in lines
        assert "  2. 02 - B (00:00)" in lines

    def test_unwritable_output_dir(self, tmp_path, sample_metadata):
        """A file where the output directory should be is an OutputError."""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        request = ConversionRequest(output_dir=blocker)

        with pytest.raises(OutputError):
            assemble([], sample_metadata, request)


class TestYotoCardBuilder:
    """End-to-end tests of YotoCardBuilder with in-memory collaborators."""

    @pytest.fixture
    def source(self, sample_metadata):
        chapters = ChapterTable(
            chapters=(
                Chapter(title="Opening Credits", duration=4.0),
                Chapter(title="Chapter 1", duration=20.0),
                Chapter(title="Chapter 2", duration=30.0),
            )
        )
        return FakeSource(chapters, sample_metadata)

    def test_short_opening_merged(self, source, request_for):
        """Chapters [4, 20, 30] with a 10s minimum become two files."""
        encoder = FakeEncoder()
        builder = YotoCardBuilder(settings=LOW_RATE, encoder=encoder)

        result = builder.build(source, request_for(min_chapter_duration=10.0))

        assert result.chapter_count == 2
        assert [p.name for p in result.chapter_files] == ["01 - Opening Credits.mp3", "02 - Chapter 2.mp3"]
        assert [s.bytes_written for s in encoder.sinks] == [24 * 2000, 30 * 2000]

        playlist_lines = result.playlist_file.read_text().splitlines()
        assert [line for line in playlist_lines if not line.startswith("#")] == [
            "01 - Opening Credits.mp3",
            "02 - Chapter 2.mp3",
        ]
        assert result.total_duration == 54.0
        assert source.streams[0].closed

    def test_metadata_file_lists_source_chapters(self, source, request_for):
        """The info file describes the book's own chapter table."""
        builder = YotoCardBuilder(settings=LOW_RATE, encoder=FakeEncoder())

        result = builder.build(source, request_for())

        assert "Chapters: 3" in result.metadata_file.read_text().splitlines()

    def test_track_tags(self, source, request_for):
        """Tracks are numbered against the merged table."""
        encoder = FakeEncoder()
        YotoCardBuilder(settings=LOW_RATE, encoder=encoder).build(source, request_for())

        assert [(s.tags.track_number, s.tags.track_count) for s in encoder.sinks] == [(1, 2), (2, 2)]
        assert encoder.sinks[0].tags.book_tags["album"] == "The Test Book"

    def test_cancel_skips_companions(self, source, request_for):
        """A cancelled build keeps finished chapters but writes no playlist."""
        cancel = threading.Event()
        encoder = FakeEncoder(on_close=lambda sink: cancel.set())
        request = request_for()

        with pytest.raises(ConversionCancelled) as exc_info:
            YotoCardBuilder(settings=LOW_RATE, encoder=encoder).build(source, request, cancel_event=cancel)

        assert [p.name for p in exc_info.value.completed_files] == ["01 - Opening Credits.mp3"]
        book_dir = book_directory(request, source.metadata)
        assert not (book_dir / "The Test Book.m3u").exists()
        assert source.streams[0].closed

    def test_progress_reaches_one(self, source, request_for):
        """The progress callback ends at 1.0."""
        seen = []
        YotoCardBuilder(settings=LOW_RATE, encoder=FakeEncoder()).build(
            source, request_for(), progress_callback=seen.append
        )

        assert seen[-1] == 1.0
        assert seen == sorted(seen)
