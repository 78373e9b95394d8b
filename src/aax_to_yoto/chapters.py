"""Chapter table normalization and duration formatting."""

from loguru import logger

from aax_to_yoto.models import Chapter, ChapterTable

log = logger.bind(stage="chapters")


def merge_short_chapters(table: ChapterTable, min_duration: float) -> ChapterTable:
    """
    Coalesce chapters shorter than ``min_duration`` with the ones that follow.

    Chapters accumulate into a group until the group reaches ``min_duration``;
    the group keeps the title of its first chapter. A trailing group that never
    reaches the threshold is emitted on its own rather than folded back into
    the previous chapter.

    Args:
        table: Source chapter table (not modified).
        min_duration: Minimum chapter duration in seconds.

    Returns:
        A new ChapterTable with the same start offset.
    """
    merged: list[Chapter] = []
    running = 0.0
    pending_title: str | None = None

    for chapter in table:
        if running == 0:
            pending_title = chapter.title

        running += chapter.duration

        if running >= min_duration:
            merged.append(Chapter(title=pending_title or chapter.title, duration=running))
            running = 0.0
            pending_title = None

    if running > 0:
        merged.append(Chapter(title=pending_title, duration=running))

    if len(merged) != len(table):
        log.debug(f"Merged {len(table)} chapters into {len(merged)} (min {min_duration:.1f}s)")

    return ChapterTable(chapters=tuple(merged), start_offset=table.start_offset)


def format_clock(seconds: float) -> str:
    """Format seconds as HH:MM:SS."""
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_minutes(seconds: float) -> str:
    """Format seconds as MM:SS, letting minutes run past 59."""
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes:02d}:{secs:02d}"


def format_time_human(seconds: float) -> str:
    """Format seconds as human readable string."""
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)

    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    elif minutes > 0:
        return f"{minutes}m {secs}s"
    else:
        return f"{secs}s"
