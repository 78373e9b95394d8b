"""Unit tests for opening AAX files."""

import sys
from pathlib import Path
from unittest.mock import patch

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from aax_to_yoto.aax import AudiobookSource, parse_activation_bytes, validate_source_file
from aax_to_yoto.errors import InputError, ProbeError
from aax_to_yoto.ffmpeg import FFmpegDecodedStream
from aax_to_yoto.streams import PcmFormat

PROBE_DATA = {
    "streams": [
        {"index": 0, "codec_type": "audio", "codec_name": "aac"},
        {"index": 1, "codec_type": "video", "codec_name": "mjpeg"},
    ],
    "chapters": [
        {"start_time": "0.000000", "end_time": "4.000000", "tags": {"title": "Opening Credits"}},
        {"start_time": "4.000000", "end_time": "24.000000", "tags": {"title": "Chapter 1"}},
    ],
    "format": {
        "duration": "24.000000",
        "tags": {"title": "Test Book (Unabridged)", "artist": "Test Author", "composer": "Narrator"},
    },
}


@pytest.fixture
def aax_file(tmp_path):
    path = tmp_path / "book.aax"
    path.write_bytes(b"\x00" * 64)
    return path


class TestParseActivationBytes:
    """Tests for parse_activation_bytes."""

    def test_valid(self):
        """Eight hex characters are accepted and lowercased."""
        assert parse_activation_bytes("ABCD1234") == "abcd1234"
        assert parse_activation_bytes(" 1a2b3c4d ") == "1a2b3c4d"

    @pytest.mark.parametrize("value", ["", "   ", None])
    def test_missing(self, value):
        """Empty activation bytes are rejected."""
        with pytest.raises(InputError, match="required"):
            parse_activation_bytes(value)

    @pytest.mark.parametrize("value", ["ZZZZ1234", "abc", "12 34 56 78"])
    def test_not_hex(self, value):
        """Non-hex or odd-length values are rejected."""
        with pytest.raises(InputError, match="hexadecimal"):
            parse_activation_bytes(value)

    @pytest.mark.parametrize("value", ["abcd", "abcd12345678"])
    def test_wrong_length(self, value):
        """Only exactly 4 bytes are valid."""
        with pytest.raises(InputError, match="4 bytes"):
            parse_activation_bytes(value)


class TestValidateSourceFile:
    """Tests for validate_source_file."""

    def test_valid_file(self, aax_file):
        """An existing readable .aax file passes."""
        validate_source_file(aax_file)

    def test_missing_file(self, tmp_path):
        """A missing file is an input error."""
        with pytest.raises(InputError, match="not found"):
            validate_source_file(tmp_path / "missing.aax")

    def test_directory(self, tmp_path):
        """A directory is not a valid source."""
        directory = tmp_path / "dir.aax"
        directory.mkdir()
        with pytest.raises(InputError, match="Not a file"):
            validate_source_file(directory)

    def test_wrong_extension(self, tmp_path):
        """Only .aax files are accepted."""
        path = tmp_path / "book.mp3"
        path.write_bytes(b"x")
        with pytest.raises(InputError, match="extension"):
            validate_source_file(path)

    def test_extension_case_insensitive(self, tmp_path):
        """Upper-case extensions are accepted."""
        path = tmp_path / "BOOK.AAX"
        path.write_bytes(b"x")
        validate_source_file(path)


class TestAudiobookSource:
    """Tests for AudiobookSource.open."""

    def test_open(self, aax_file):
        """Chapters, metadata, duration and cover are read from the probe."""
        with (
            patch("aax_to_yoto.aax.probe_file", return_value=PROBE_DATA) as mock_probe,
            patch("aax_to_yoto.aax.extract_cover_art", return_value=b"jpeg") as mock_cover,
        ):
            source = AudiobookSource.open(aax_file, "ABCD1234")

        mock_probe.assert_called_once_with(aax_file, "abcd1234")
        mock_cover.assert_called_once_with(aax_file, "abcd1234")
        assert source.activation_bytes == "abcd1234"
        assert [c.title for c in source.chapters] == ["Opening Credits", "Chapter 1"]
        assert source.duration == 24.0
        assert source.metadata.author == "Test Author"
        assert source.metadata.narrator == "Narrator"
        assert source.metadata.cover == b"jpeg"

    def test_open_without_cover(self, aax_file):
        """Cover extraction can be skipped."""
        with (
            patch("aax_to_yoto.aax.probe_file", return_value=PROBE_DATA),
            patch("aax_to_yoto.aax.extract_cover_art") as mock_cover,
        ):
            source = AudiobookSource.open(str(aax_file), "abcd1234", load_cover=False)

        mock_cover.assert_not_called()
        assert not source.metadata.has_cover

    def test_bad_key_checked_before_probe(self, aax_file):
        """Invalid activation bytes fail before ffprobe runs."""
        with patch("aax_to_yoto.aax.probe_file") as mock_probe:
            with pytest.raises(InputError):
                AudiobookSource.open(aax_file, "nothex!!")
        mock_probe.assert_not_called()

    def test_missing_file_checked_before_probe(self, tmp_path):
        """A missing file fails before ffprobe runs."""
        with patch("aax_to_yoto.aax.probe_file") as mock_probe:
            with pytest.raises(InputError):
                AudiobookSource.open(tmp_path / "missing.aax", "abcd1234")
        mock_probe.assert_not_called()

    def test_no_audio_stream(self, aax_file):
        """A container without audio is rejected."""
        data = {**PROBE_DATA, "streams": [{"codec_type": "video"}]}
        with patch("aax_to_yoto.aax.probe_file", return_value=data):
            with pytest.raises(ProbeError, match="No audio stream"):
                AudiobookSource.open(aax_file, "abcd1234")

    def test_decode_builds_decoder(self, aax_file):
        """decode() starts a decrypting ffmpeg process."""
        with (
            patch("aax_to_yoto.aax.probe_file", return_value=PROBE_DATA),
            patch("aax_to_yoto.aax.extract_cover_art", return_value=None),
        ):
            source = AudiobookSource.open(aax_file, "abcd1234")

        with patch("aax_to_yoto.ffmpeg.subprocess.Popen") as mock_popen:
            stream = source.decode(PcmFormat())
            stream.close()

        assert isinstance(stream, FFmpegDecodedStream)
        cmd = mock_popen.call_args[0][0]
        assert cmd[cmd.index("-activation_bytes") + 1] == "abcd1234"
        assert str(aax_file) in cmd
