"""Unit tests for chapter table normalization."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from aax_to_yoto.chapters import format_clock, format_minutes, format_time_human, merge_short_chapters
from aax_to_yoto.models import Chapter, ChapterTable


def table(*durations, titles=None, start_offset=0.0) -> ChapterTable:
    titles = titles or [f"Ch{i}" for i in range(1, len(durations) + 1)]
    return ChapterTable(
        chapters=tuple(Chapter(title=t, duration=d) for t, d in zip(titles, durations)),
        start_offset=start_offset,
    )


def durations(result: ChapterTable) -> list[float]:
    return [c.duration for c in result]


class TestMergeShortChapters:
    """Tests for merge_short_chapters."""

    def test_short_run_merges_into_first_title(self):
        """Three short chapters accumulate until the threshold is reached."""
        result = merge_short_chapters(table(2, 2, 2, 9), 5)
        assert durations(result) == [6, 9]
        assert [c.title for c in result] == ["Ch1", "Ch4"]

    def test_trailing_short_chapter_stays_separate(self):
        """A short final chapter is not folded back into the previous one."""
        result = merge_short_chapters(table(8, 2), 5)
        assert durations(result) == [8, 2]
        assert result[1].title == "Ch2"

    def test_opening_credits_merge_forward(self):
        """The typical Audible layout of short credits followed by chapters."""
        result = merge_short_chapters(table(4, 20, 30, titles=["Opening Credits", "One", "Two"]), 10)
        assert durations(result) == [24, 30]
        assert result[0].title == "Opening Credits"

    def test_zero_threshold_is_identity(self):
        """With no minimum every chapter is kept."""
        source = table(1, 0.5, 3)
        assert merge_short_chapters(source, 0) == source

    def test_empty_table(self):
        """An empty table normalizes to an empty table."""
        result = merge_short_chapters(ChapterTable(start_offset=1.5), 10)
        assert len(result) == 0
        assert result.start_offset == 1.5

    def test_all_chapters_short(self):
        """If nothing ever reaches the threshold one group remains."""
        result = merge_short_chapters(table(1, 1, 1), 10)
        assert durations(result) == [3]
        assert result[0].title == "Ch1"

    def test_total_duration_preserved(self):
        """Merging never loses or invents audio."""
        source = table(2, 7, 1, 1, 12, 0.5, 3)
        for minimum in (0, 1, 5, 10, 100):
            result = merge_short_chapters(source, minimum)
            assert result.total_duration == pytest.approx(source.total_duration)

    def test_every_emitted_chapter_except_last_meets_minimum(self):
        """Only the final chapter may be shorter than the threshold."""
        result = merge_short_chapters(table(2, 7, 1, 1, 12, 0.5, 3), 5)
        assert all(c.duration >= 5 for c in list(result)[:-1])

    def test_never_more_chapters_than_input(self):
        """Normalization can only reduce the chapter count."""
        source = table(3, 3, 3, 3)
        assert len(merge_short_chapters(source, 4)) <= len(source)

    def test_start_offset_copied(self):
        """The start offset passes through unchanged."""
        result = merge_short_chapters(table(4, 20, start_offset=0.75), 10)
        assert result.start_offset == 0.75

    def test_untitled_first_chapter_takes_later_title(self):
        """A group whose first chapter has no title uses the closing chapter's title."""
        result = merge_short_chapters(table(2, 9, titles=[None, "Named"]), 5)
        assert result[0].title == "Named"

    def test_zero_length_chapter_starting_a_group(self):
        """A group opened by an empty chapter takes the next chapter's title."""
        result = merge_short_chapters(table(0, 5), 5)
        assert durations(result) == [5]
        assert result[0].title == "Ch2"

    def test_trailing_zero_length_chapter_dropped(self):
        """An empty chapter at the end disappears when a minimum is set."""
        result = merge_short_chapters(table(6, 0), 5)
        assert durations(result) == [6]

    def test_zero_length_chapters_kept_without_minimum(self):
        """With no minimum an empty chapter in the middle is kept."""
        result = merge_short_chapters(table(1, 0, 1), 0)
        assert durations(result) == [1, 0, 1]
        assert [c.title for c in result] == ["Ch1", "Ch2", "Ch3"]

    def test_input_not_modified(self):
        """The source table is left untouched."""
        source = table(2, 2, 9)
        merge_short_chapters(source, 5)
        assert durations(source) == [2, 2, 9]


class TestFormatting:
    """Tests for duration formatting helpers."""

    def test_format_clock(self):
        """HH:MM:SS with zero padding."""
        assert format_clock(0) == "00:00:00"
        assert format_clock(3725.9) == "01:02:05"

    def test_format_minutes(self):
        """MM:SS lets minutes run past an hour."""
        assert format_minutes(65) == "01:05"
        assert format_minutes(3725) == "62:05"

    def test_format_time_human(self):
        """Human readable durations drop leading zero units."""
        assert format_time_human(5) == "5s"
        assert format_time_human(125) == "2m 5s"
        assert format_time_human(3725) == "1h 2m 5s"
