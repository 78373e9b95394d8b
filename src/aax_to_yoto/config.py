"""Defaults and logging setup."""

import sys
from pathlib import Path

from loguru import logger

DEFAULT_FILENAME_TEMPLATE = "{num:D2} - {title}"
BOOK_FILENAME_TEMPLATE = "{book} - {num:D2} - {title}"

# Very short chapters confuse the Yoto player UI
DEFAULT_YOTO_MIN_CHAPTER_SECONDS = 10.0
DEFAULT_MIN_CHAPTER_SECONDS = 3.0

DEFAULT_BOOK_TITLE = "Audiobook"
COVER_FILE_NAME = "cover.jpg"
METADATA_FILE_NAME = "info.txt"

ACTIVATION_BYTES_ENV = "AUDIBLE_ACTIVATION_BYTES"

# PCM bytes read from the decoder per iteration
DEFAULT_CHUNK_SIZE = 64 * 1024

# How much audio the decoder may come up short of the chapter table
STREAM_TOLERANCE_SECONDS = 2.0

# Files over 100MB may have issues on Yoto cards
MAX_RECOMMENDED_FILE_SIZE = 100 * 1024 * 1024

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level:<8} | {extra[stage]:<8} | {message}"


def _default_extra(record) -> bool:
    record["extra"].setdefault("stage", "")
    return True


def setup_logging(verbose: bool = False, log_file: Path | None = None) -> None:
    """
    Configure loguru for the CLI.

    Args:
        verbose: Log at DEBUG instead of WARNING on stderr.
        log_file: Optional file that receives DEBUG output with rotation.
    """
    logger.remove()
    logger.add(
        sys.stderr,
        format=LOG_FORMAT,
        level="DEBUG" if verbose else "WARNING",
        filter=_default_extra,
    )

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_file),
            format=LOG_FORMAT,
            level="DEBUG",
            rotation="10 MB",
            retention=5,
            filter=_default_extra,
        )
