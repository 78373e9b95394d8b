"""Interfaces between the splitter and its decode/encode collaborators."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from aax_to_yoto.models import TrackTags


@dataclass(frozen=True)
class PcmFormat:
    """Raw signed little-endian PCM layout of a decoded stream."""

    sample_rate: int = 44100
    channels: int = 1
    sample_width: int = 2  # bytes per sample

    @property
    def frame_size(self) -> int:
        return self.channels * self.sample_width

    @property
    def bytes_per_second(self) -> int:
        return self.sample_rate * self.frame_size

    def byte_offset(self, seconds: float) -> int:
        """Frame-aligned byte offset of a point in time."""
        return round(seconds * self.sample_rate) * self.frame_size

    @property
    def ffmpeg_format(self) -> str:
        return f"s{self.sample_width * 8}le"


class DecodedStream(ABC):
    """A readable stream of decoded PCM audio."""

    pcm_format: PcmFormat

    @abstractmethod
    def read(self, size: int) -> bytes:
        """
        Read up to ``size`` bytes.

        Returns b"" at end of stream. Raises DecoderError if the decoder
        failed instead of finishing cleanly.
        """

    @abstractmethod
    def close(self) -> None:
        """Release the decoder."""

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class AudioSink(ABC):
    """One output file receiving PCM audio for a single chapter."""

    path: Path

    @abstractmethod
    def write(self, data: bytes) -> None:
        """Encode and write PCM data."""

    @abstractmethod
    def close(self) -> None:
        """Flush the encoder and close the file. Must be safe to call twice."""


class Encoder(ABC):
    """Opens sinks that encode PCM audio into files."""

    @property
    @abstractmethod
    def extension(self) -> str:
        """File extension including the dot, e.g. '.mp3'."""

    @abstractmethod
    def open_sink(self, path: Path, tags: TrackTags, pcm_format: PcmFormat) -> AudioSink:
        """Create ``path`` and return a sink tagged with ``tags``."""
