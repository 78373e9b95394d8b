"""Exception hierarchy for AAX to Yoto conversion."""

from pathlib import Path


class AaxToYotoError(Exception):
    """Base exception for all conversion errors."""


class InputError(AaxToYotoError):
    """Bad activation bytes or a missing/unreadable source file.

    Always raised before any audio is streamed.
    """


class ConversionError(AaxToYotoError):
    """The decrypt/decode or encode collaborator failed."""


class ProbeError(ConversionError):
    """ffprobe could not read the source container."""


class DecoderError(ConversionError):
    """The decoding ffmpeg process failed (wrong key, corrupt container)."""

    def __init__(self, message: str, exit_code: int | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr


class EncoderError(ConversionError):
    """An encoding ffmpeg process failed while writing a chapter."""

    def __init__(
        self, message: str, output_path: Path, exit_code: int | None = None, stderr: str = ""
    ) -> None:
        super().__init__(message)
        self.output_path = output_path
        self.exit_code = exit_code
        self.stderr = stderr


class TruncatedStreamError(ConversionError):
    """The decoded stream ended well before the chapter table did."""


class ConversionCancelled(AaxToYotoError):
    """The user cancelled the conversion.

    Files completed before the cancellation are left on disk.
    """

    def __init__(self, completed_files: list[Path], files: list[Path]) -> None:
        super().__init__(
            f"Conversion cancelled after {len(completed_files)} of {len(files)} started chapter(s)"
        )
        self.completed_files = completed_files
        self.files = files


class OutputError(AaxToYotoError):
    """Writing a companion artifact (directory, playlist, info, cover) failed."""

    def __init__(self, message: str, path: Path) -> None:
        super().__init__(message)
        self.path = path
