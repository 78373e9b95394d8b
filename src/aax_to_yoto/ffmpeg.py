"""ffmpeg-backed decoder and encoder collaborators."""

import subprocess
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from aax_to_yoto.errors import ConversionCancelled, DecoderError, EncoderError
from aax_to_yoto.models import OutputFormat, TrackTags
from aax_to_yoto.progress import MonotonicProgress, ProgressCallback
from aax_to_yoto.streams import AudioSink, DecodedStream, Encoder, PcmFormat

log = logger.bind(stage="ffmpeg")


@dataclass
class EncoderSettings:
    """
    Audio encoding settings for chapter files.

    The default matches what Yoto cards handle best: MP3, mono, 44.1kHz,
    LAME VBR quality 5.
    """

    output_format: OutputFormat = OutputFormat.MP3

    # Sample rate in Hz
    sample_rate: int = 44100

    # Audio channels (1=mono, 2=stereo)
    channels: int = 1

    codec: str = "libmp3lame"

    # LAME VBR quality (0 best, 9 worst); ignored when bitrate is set
    vbr_quality: int | None = 5

    # Constant bitrate in kbps
    bitrate: int | None = None

    encoder_options: dict[str, str] = field(default_factory=dict)

    preset_name: str = "custom"

    @classmethod
    def yoto(cls) -> "EncoderSettings":
        """Mono VBR MP3, the format Yoto recommends for MYO cards."""
        return cls(preset_name="yoto")

    @classmethod
    def high_quality(cls) -> "EncoderSettings":
        """Stereo VBR MP3 at a higher quality setting."""
        return cls(channels=2, vbr_quality=2, preset_name="high")

    @classmethod
    def m4b(cls) -> "EncoderSettings":
        """AAC in an iPod-flavoured MP4 container."""
        return cls(
            output_format=OutputFormat.M4B,
            codec="aac",
            vbr_quality=None,
            bitrate=64,
            preset_name="m4b",
        )

    @property
    def pcm_format(self) -> PcmFormat:
        """PCM layout the decoder should produce for this encoder."""
        return PcmFormat(sample_rate=self.sample_rate, channels=self.channels)

    def get_ffmpeg_audio_args(self) -> list[str]:
        """Get ffmpeg arguments for audio encoding."""
        args = ["-c:a", self.codec, "-ar", str(self.sample_rate), "-ac", str(self.channels)]

        if self.bitrate:
            args.extend(["-b:a", f"{self.bitrate}k"])
        elif self.vbr_quality is not None:
            args.extend(["-q:a", str(self.vbr_quality)])

        for key, value in self.encoder_options.items():
            args.extend([f"-{key}", value])

        if self.output_format == OutputFormat.MP3:
            args.extend(["-id3v2_version", "3", "-f", "mp3"])
        else:
            args.extend(["-movflags", "+faststart", "-f", "ipod"])

        return args

    def __str__(self) -> str:
        quality = f"{self.bitrate}kbps CBR" if self.bitrate else f"VBR q{self.vbr_quality}"
        return (
            f"{self.preset_name}: {self.output_format.value}, {self.sample_rate}Hz, {quality}, "
            f"{'mono' if self.channels == 1 else 'stereo'}"
        )


ENCODER_PRESETS: dict[str, EncoderSettings] = {
    "yoto": EncoderSettings.yoto(),
    "high": EncoderSettings.high_quality(),
    "m4b": EncoderSettings.m4b(),
}


def build_decode_command(source: Path, activation_bytes: str, pcm_format: PcmFormat) -> list[str]:
    """ffmpeg command that decrypts ``source`` and writes raw PCM to stdout."""
    return [
        "ffmpeg",
        "-nostdin",
        "-v",
        "error",
        "-activation_bytes",
        activation_bytes,
        "-i",
        str(source),
        "-map",
        "0:a:0",
        "-vn",
        "-f",
        pcm_format.ffmpeg_format,
        "-acodec",
        f"pcm_{pcm_format.ffmpeg_format}",
        "-ar",
        str(pcm_format.sample_rate),
        "-ac",
        str(pcm_format.channels),
        "pipe:1",
    ]


def build_encode_command(
    output_path: Path, tags: TrackTags, pcm_format: PcmFormat, settings: EncoderSettings
) -> list[str]:
    """ffmpeg command that encodes raw PCM from stdin into ``output_path``."""
    cmd = [
        "ffmpeg",
        "-y",
        "-v",
        "error",
        "-f",
        pcm_format.ffmpeg_format,
        "-ar",
        str(pcm_format.sample_rate),
        "-ac",
        str(pcm_format.channels),
        "-i",
        "pipe:0",
    ]

    for key, value in tags.to_ffmpeg_metadata().items():
        cmd.extend(["-metadata", f"{key}={value.replace(chr(10), ' ')}"])

    cmd.extend(settings.get_ffmpeg_audio_args())
    cmd.append(str(output_path))
    return cmd


def build_remux_command(source: Path, activation_bytes: str, output_path: Path) -> list[str]:
    """ffmpeg command that decrypts ``source`` into an M4B without re-encoding."""
    return [
        "ffmpeg",
        "-y",
        "-nostdin",
        "-v",
        "error",
        "-activation_bytes",
        activation_bytes,
        "-i",
        str(source),
        "-map",
        "0:a:0",
        "-map_metadata",
        "0",
        "-map_chapters",
        "0",
        "-c",
        "copy",
        "-movflags",
        "+faststart",
        "-f",
        "ipod",
        str(output_path),
    ]


def _read_stderr(stderr_file) -> str:
    stderr_file.seek(0)
    return stderr_file.read().decode("utf-8", errors="replace").strip()


class FFmpegDecodedStream(DecodedStream):
    """Raw PCM read from a decrypting ffmpeg process."""

    def __init__(self, command: list[str], pcm_format: PcmFormat) -> None:
        self.pcm_format = pcm_format
        self._stderr = tempfile.TemporaryFile()
        log.debug(f"Starting decoder: {' '.join(command)}")
        try:
            self._process = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=self._stderr,
            )
        except OSError as e:
            self._stderr.close()
            raise DecoderError(f"Could not start ffmpeg: {e}") from e
        self._closed = False

    def read(self, size: int) -> bytes:
        data = self._process.stdout.read(size)
        if not data:
            self._check_exit()
        return data

    def _check_exit(self) -> None:
        exit_code = self._process.wait()
        if exit_code != 0:
            stderr = _read_stderr(self._stderr)
            raise DecoderError(
                f"Decoding failed (ffmpeg exited with code {exit_code}): {stderr}",
                exit_code=exit_code,
                stderr=stderr,
            )

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        if self._process.poll() is None:
            log.debug("Stopping decoder before end of stream")
            self._process.terminate()
            try:
                self._process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self._process.kill()
                self._process.wait()

        self._process.stdout.close()
        self._stderr.close()


class FFmpegSink(AudioSink):
    """A chapter file written by its own encoding ffmpeg process."""

    def __init__(self, path: Path, command: list[str]) -> None:
        self.path = path
        # Create the file up front so filesystem errors surface before encoding
        path.open("wb").close()

        self._stderr = tempfile.TemporaryFile()
        log.debug(f"Starting encoder: {' '.join(command)}")
        try:
            self._process = subprocess.Popen(
                command,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=self._stderr,
            )
        except OSError as e:
            self._stderr.close()
            raise EncoderError(f"Could not start ffmpeg: {e}", output_path=path) from e
        self._closed = False

    def write(self, data: bytes) -> None:
        try:
            self._process.stdin.write(data)
        except BrokenPipeError as e:
            exit_code = self._process.wait()
            raise EncoderError(
                f"Encoder for {self.path.name} exited early with code {exit_code}",
                output_path=self.path,
                exit_code=exit_code,
                stderr=_read_stderr(self._stderr),
            ) from e

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        try:
            self._process.stdin.close()
        except BrokenPipeError:
            pass
        exit_code = self._process.wait()
        stderr = _read_stderr(self._stderr)
        self._stderr.close()

        if exit_code != 0:
            raise EncoderError(
                f"Encoding {self.path.name} failed (ffmpeg exited with code {exit_code}): {stderr}",
                output_path=self.path,
                exit_code=exit_code,
                stderr=stderr,
            )


class FFmpegEncoder(Encoder):
    """Encoder that spawns one ffmpeg process per chapter file."""

    def __init__(self, settings: EncoderSettings | None = None) -> None:
        self.settings = settings or EncoderSettings.yoto()

    @property
    def extension(self) -> str:
        return self.settings.output_format.extension

    def open_sink(self, path: Path, tags: TrackTags, pcm_format: PcmFormat) -> FFmpegSink:
        return FFmpegSink(path, build_encode_command(path, tags, pcm_format, self.settings))


def run_ffmpeg_with_progress(
    cmd: list[str],
    total_duration: float,
    progress_callback: ProgressCallback | None = None,
    cancel_event: threading.Event | None = None,
) -> None:
    """
    Run an ffmpeg command, reporting progress as a fraction of ``total_duration``.

    Args:
        cmd: FFmpeg command as list of arguments.
        total_duration: Expected output duration in seconds.
        progress_callback: Optional callback receiving a fraction in [0, 1].
        cancel_event: Optional event; when set the process is terminated.

    Raises:
        DecoderError: If ffmpeg exits with a non-zero code.
        ConversionCancelled: If ``cancel_event`` was set before ffmpeg finished.
    """
    progress = MonotonicProgress(progress_callback)
    cmd_with_progress = [cmd[0], "-progress", "pipe:1", "-stats_period", "0.5", *cmd[1:]]
    output_path = Path(cmd[-1])

    log.debug(f"Running: {' '.join(cmd_with_progress)}")
    with tempfile.TemporaryFile() as stderr_file:
        process = subprocess.Popen(
            cmd_with_progress,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=stderr_file,
            text=True,
            bufsize=1,
        )

        cancelled = False
        for line in process.stdout:
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                process.terminate()
                break
            if "out_time_ms=" in line and total_duration > 0:
                try:
                    # ffmpeg reports out_time_ms in microseconds
                    time_us = int(line.split("=")[1].strip())
                except (ValueError, IndexError):
                    continue
                progress.update(time_us / 1_000_000 / total_duration)

        exit_code = process.wait()
        process.stdout.close()

        if cancelled:
            raise ConversionCancelled(completed_files=[], files=[output_path])
        if exit_code != 0:
            stderr = _read_stderr(stderr_file)
            raise DecoderError(
                f"ffmpeg exited with code {exit_code}: {stderr}", exit_code=exit_code, stderr=stderr
            )

    progress.update(1.0)


def remux_to_m4b(
    source: Path,
    activation_bytes: str,
    output_path: Path,
    total_duration: float,
    progress_callback: ProgressCallback | None = None,
    cancel_event: threading.Event | None = None,
) -> Path:
    """Decrypt ``source`` into a single M4B file, keeping chapters and tags."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    run_ffmpeg_with_progress(
        build_remux_command(source, activation_bytes, output_path),
        total_duration,
        progress_callback,
        cancel_event,
    )
    return output_path
