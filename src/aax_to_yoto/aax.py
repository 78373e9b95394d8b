"""Opening Audible AAX files with the user's activation bytes."""

import re
from dataclasses import dataclass, replace
from pathlib import Path

from loguru import logger

from aax_to_yoto.errors import InputError, ProbeError
from aax_to_yoto.ffmpeg import FFmpegDecodedStream, build_decode_command
from aax_to_yoto.models import AudiobookMetadata, ChapterTable
from aax_to_yoto.probe import (
    extract_cover_art,
    has_audio_stream,
    has_cover_stream,
    parse_chapters,
    parse_duration,
    parse_metadata,
    probe_file,
)
from aax_to_yoto.streams import PcmFormat

log = logger.bind(stage="aax")

SUPPORTED_EXTENSIONS = (".aax",)

_HEX = re.compile(r"^[0-9a-fA-F]*$")


def parse_activation_bytes(activation_bytes: str) -> str:
    """
    Validate activation bytes and normalize them to lowercase hex.

    Args:
        activation_bytes: 4 bytes written as 8 hex characters, e.g. 'ABCD1234'.

    Returns:
        The 8 hex characters, lowercased.

    Raises:
        InputError: If the value is empty, not hex, or not exactly 4 bytes.
    """
    value = (activation_bytes or "").strip()
    if not value:
        raise InputError("Activation bytes are required")
    if not _HEX.match(value) or len(value) % 2:
        raise InputError(f"Activation bytes must be hexadecimal, got {value!r}")
    if len(value) != 8:
        raise InputError("Activation bytes must be exactly 4 bytes (8 hex characters)")
    return value.lower()


def validate_source_file(file_path: Path) -> None:
    """
    Check that ``file_path`` is an existing, readable AAX file.

    Raises:
        InputError: If it isn't.
    """
    if not file_path.exists():
        raise InputError(f"AAX file not found: {file_path}")
    if not file_path.is_file():
        raise InputError(f"Not a file: {file_path}")
    if file_path.suffix.lower() not in SUPPORTED_EXTENSIONS:
        raise InputError(f"Invalid file extension: {file_path.suffix or '(none)'}")
    try:
        with file_path.open("rb") as f:
            f.read(1)
    except OSError as e:
        raise InputError(f"Cannot read {file_path}: {e}") from e


@dataclass(frozen=True)
class AudiobookSource:
    """
    An unlocked AAX file: its chapters, metadata and a way to decode it.

    Create with :meth:`open`; nothing is decoded until :meth:`decode`.
    """

    path: Path
    activation_bytes: str
    chapters: ChapterTable
    metadata: AudiobookMetadata
    duration: float

    @classmethod
    def open(cls, path: Path | str, activation_bytes: str, load_cover: bool = True) -> "AudiobookSource":
        """
        Validate inputs and read chapters, metadata and cover art.

        Raises:
            InputError: Bad activation bytes or missing/unreadable file.
            ProbeError: ffprobe rejected the file (wrong key, corrupt container).
        """
        path = Path(path)
        key = parse_activation_bytes(activation_bytes)
        validate_source_file(path)

        data = probe_file(path, key)
        if not has_audio_stream(data):
            raise ProbeError(f"No audio stream found in {path.name}")

        metadata = parse_metadata(data)
        if load_cover and has_cover_stream(data):
            metadata = replace(metadata, cover=extract_cover_art(path, key))

        chapters = parse_chapters(data)
        duration = parse_duration(data)
        log.info(f"Opened {path.name}: {len(chapters)} chapters, {duration:.0f}s")

        return cls(
            path=path,
            activation_bytes=key,
            chapters=chapters,
            metadata=metadata,
            duration=duration,
        )

    def decode(self, pcm_format: PcmFormat) -> FFmpegDecodedStream:
        """Start decrypting and decoding the audio into ``pcm_format``."""
        command = build_decode_command(self.path, self.activation_bytes, pcm_format)
        return FFmpegDecodedStream(command, pcm_format)
