"""Filesystem-safe output names built from a filename template."""

import re
from pathlib import Path

from aax_to_yoto.config import DEFAULT_BOOK_TITLE

# Characters illegal in a file or directory name on at least one common platform
_ILLEGAL_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')

# Recognized template placeholders; anything else in braces is left alone
PLACEHOLDERS = ("num:D2", "num", "title", "book")
_PLACEHOLDER = re.compile(r"\{([^{}]+)\}")
_TRAILING_JUNK = re.compile(r"[\s.]+$")


def sanitize_filename(name: str) -> str:
    """
    Make a string safe to use as a single path component.

    Every illegal character is replaced with ``_``, then surrounding
    whitespace and trailing dots are trimmed.
    """
    sanitized = _ILLEGAL_CHARS.sub("_", name)
    return _TRAILING_JUNK.sub("", sanitized).strip()


def resolve_file_name(template: str, index: int, title: str, book_title: str) -> str:
    """
    Substitute the known placeholders in ``template``.

    Args:
        template: Filename template, e.g. ``"{num:D2} - {title}"``.
        index: 1-based chapter number.
        title: Chapter title (sanitized here).
        book_title: Book title (sanitized here).

    Returns:
        The file name without extension. Unknown placeholders pass through.
    """
    values = {
        "num:D2": f"{index:02d}",
        "num": str(index),
        "title": sanitize_filename(title) or f"Chapter {index}",
        "book": sanitize_filename(book_title) or DEFAULT_BOOK_TITLE,
    }

    def substitute(match: re.Match) -> str:
        return values.get(match.group(1), match.group(0))

    return _PLACEHOLDER.sub(substitute, template)


def resolve_output_path(
    directory: Path,
    template: str,
    index: int,
    title: str,
    book_title: str,
    extension: str,
) -> Path:
    """Resolve the full output path for one chapter file."""
    return directory / (resolve_file_name(template, index, title, book_title) + extension)
