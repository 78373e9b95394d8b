"""
AAX to Yoto - Convert Audible AAX audiobooks into chapter MP3s for Yoto cards.

This package decrypts an Audible .aax file with your activation bytes,
merges chapters that are too short, splits the audio into one file per
chapter in a single pass, and writes a playlist, cover image and info file
alongside them.

Basic usage:
    >>> from pathlib import Path
    >>> from aax_to_yoto import AudiobookSource, ConversionRequest, YotoCardBuilder
    >>> source = AudiobookSource.open("book.aax", "1a2b3c4d")
    >>> result = YotoCardBuilder().build(source, ConversionRequest(output_dir=Path("out")))
    >>> print(result.chapter_files)

The building blocks can be used on their own:
    >>> from aax_to_yoto import ChapterTable, Chapter, merge_short_chapters
    >>> table = ChapterTable((Chapter("Intro", 4.0), Chapter("One", 20.0)))
    >>> merge_short_chapters(table, 10.0)

Requirements:
    - Python 3.12+
    - ffmpeg (with libmp3lame) and ffprobe installed and in PATH
"""

__version__ = "1.0.0"
__author__ = "AAX to Yoto Contributors"

from aax_to_yoto.aax import AudiobookSource, parse_activation_bytes
from aax_to_yoto.builder import YotoCardBuilder, assemble, convert_to_single_file
from aax_to_yoto.chapters import format_time_human, merge_short_chapters
from aax_to_yoto.dependencies import (
    DependencyCheckResult,
    DependencyStatus,
    OSType,
    check_dependencies,
    format_dependency_check,
    require_dependencies,
)
from aax_to_yoto.errors import (
    AaxToYotoError,
    ConversionCancelled,
    ConversionError,
    DecoderError,
    EncoderError,
    InputError,
    OutputError,
    ProbeError,
    TruncatedStreamError,
)
from aax_to_yoto.ffmpeg import ENCODER_PRESETS, EncoderSettings, FFmpegEncoder
from aax_to_yoto.models import (
    AudiobookMetadata,
    BuildResult,
    Chapter,
    ChapterTable,
    ConversionRequest,
    OutputFormat,
    TrackTags,
)
from aax_to_yoto.naming import resolve_file_name, resolve_output_path, sanitize_filename
from aax_to_yoto.progress import MonotonicProgress, PercentProgress, SilentProgress
from aax_to_yoto.splitter import ChapterSplitter, SplitState
from aax_to_yoto.streams import AudioSink, DecodedStream, Encoder, PcmFormat

__all__ = [
    # Version
    "__version__",
    # Models
    "Chapter",
    "ChapterTable",
    "AudiobookMetadata",
    "ConversionRequest",
    "TrackTags",
    "BuildResult",
    "OutputFormat",
    # Source
    "AudiobookSource",
    "parse_activation_bytes",
    # Chapters and naming
    "merge_short_chapters",
    "format_time_human",
    "sanitize_filename",
    "resolve_file_name",
    "resolve_output_path",
    # Streaming
    "PcmFormat",
    "DecodedStream",
    "AudioSink",
    "Encoder",
    "ChapterSplitter",
    "SplitState",
    # Encoding
    "EncoderSettings",
    "ENCODER_PRESETS",
    "FFmpegEncoder",
    # Building
    "YotoCardBuilder",
    "assemble",
    "convert_to_single_file",
    # Progress
    "MonotonicProgress",
    "PercentProgress",
    "SilentProgress",
    # Errors
    "AaxToYotoError",
    "InputError",
    "ConversionError",
    "ProbeError",
    "DecoderError",
    "EncoderError",
    "TruncatedStreamError",
    "ConversionCancelled",
    "OutputError",
    # Dependency checking
    "check_dependencies",
    "require_dependencies",
    "format_dependency_check",
    "DependencyCheckResult",
    "DependencyStatus",
    "OSType",
]
