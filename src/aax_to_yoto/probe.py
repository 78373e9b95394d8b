"""Module for probing AAX files to extract metadata, chapters and cover art."""

import json
import subprocess
from pathlib import Path

from loguru import logger

from aax_to_yoto.errors import ProbeError
from aax_to_yoto.models import AudiobookMetadata, Chapter, ChapterTable

log = logger.bind(stage="probe")


def probe_file(file_path: Path, activation_bytes: str) -> dict:
    """
    Probe an AAX file using ffprobe and return raw JSON data.

    Args:
        file_path: Path to the AAX file.
        activation_bytes: 8 hex characters used to unlock the container.

    Returns:
        Dictionary containing ffprobe output.

    Raises:
        ProbeError: If ffprobe fails or its output can't be parsed.
    """
    cmd = [
        "ffprobe",
        "-v",
        "error",
        "-activation_bytes",
        activation_bytes,
        "-print_format",
        "json",
        "-show_format",
        "-show_streams",
        "-show_chapters",
        str(file_path),
    ]

    log.debug(f"Probing {file_path.name}")
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=True)
        return json.loads(result.stdout)
    except FileNotFoundError as e:
        raise ProbeError("ffprobe not found in PATH") from e
    except subprocess.CalledProcessError as e:
        raise ProbeError(f"ffprobe failed: {e.stderr.strip()}") from e
    except json.JSONDecodeError as e:
        raise ProbeError(f"Failed to parse ffprobe output: {e}") from e


def parse_chapters(data: dict) -> ChapterTable:
    """
    Build a ChapterTable from ffprobe output.

    Chapters without a title tag keep ``title=None``; callers decide the
    fallback. The table's start offset is the first chapter's start time.
    """
    chapters_data = data.get("chapters", [])
    if not chapters_data:
        return ChapterTable()

    chapters = []
    for ch in chapters_data:
        # ffprobe provides times as strings
        start_time = float(ch.get("start_time", 0))
        end_time = float(ch.get("end_time", 0))
        title = ch.get("tags", {}).get("title") or None
        chapters.append(Chapter(title=title, duration=max(0.0, end_time - start_time)))

    start_offset = max(0.0, float(chapters_data[0].get("start_time", 0)))
    return ChapterTable(chapters=tuple(chapters), start_offset=start_offset)


def parse_metadata(data: dict) -> AudiobookMetadata:
    """Extract descriptive metadata (without cover art) from ffprobe output."""
    format_tags = data.get("format", {}).get("tags", {})
    lowered = {k.lower(): v for k, v in format_tags.items()}

    def get_tag(*keys: str) -> str | None:
        for key in keys:
            value = lowered.get(key)
            if value:
                return value
        return None

    return AudiobookMetadata(
        title=get_tag("title"),
        author=get_tag("artist", "album_artist"),
        # Audible files carry the narrator as the composer
        narrator=get_tag("narrator", "composer"),
        album=get_tag("album"),
        copyright=get_tag("copyright"),
        genre=get_tag("genre"),
        date=get_tag("date"),
        comment=get_tag("comment", "description"),
    )


def parse_duration(data: dict) -> float:
    """Total duration in seconds from ffprobe output."""
    return float(data.get("format", {}).get("duration", 0))


def has_cover_stream(data: dict) -> bool:
    """Check whether the container carries an embedded picture."""
    return any(s.get("codec_type") == "video" for s in data.get("streams", []))


def has_audio_stream(data: dict) -> bool:
    return any(s.get("codec_type") == "audio" for s in data.get("streams", []))


def extract_cover_art(file_path: Path, activation_bytes: str) -> bytes | None:
    """
    Extract the embedded cover image.

    Args:
        file_path: Path to the AAX file.
        activation_bytes: 8 hex characters used to unlock the container.

    Returns:
        The image bytes, or None if the file has no usable cover.
    """
    cmd = [
        "ffmpeg",
        "-nostdin",
        "-v",
        "error",
        "-activation_bytes",
        activation_bytes,
        "-i",
        str(file_path),
        "-map",
        "0:v:0",
        "-an",
        "-c:v",
        "copy",
        "-frames:v",
        "1",
        "-f",
        "image2pipe",
        "pipe:1",
    ]

    try:
        result = subprocess.run(cmd, check=False, capture_output=True)
    except FileNotFoundError as e:
        raise ProbeError("ffmpeg not found in PATH") from e
    if result.returncode != 0 or not result.stdout:
        log.debug(f"No cover art extracted from {file_path.name}")
        return None
    return result.stdout
