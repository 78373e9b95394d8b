"""Shared pytest fixtures and configuration."""

import sys
from pathlib import Path

import pytest

# Ensure the package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from aax_to_yoto.dependencies import check_dependencies  # noqa: E402
from aax_to_yoto.models import AudiobookMetadata, Chapter, ChapterTable, ConversionRequest  # noqa: E402
from tests.test_utils import create_test_aax  # noqa: E402


@pytest.fixture
def sample_chapters():
    """Chapter table with a short opening credit and a short trailer."""
    return ChapterTable(
        chapters=(
            Chapter(title="Opening Credits", duration=4.0),
            Chapter(title="Chapter 1", duration=20.0),
            Chapter(title="Chapter 2", duration=30.0),
            Chapter(title="End Credits", duration=2.0),
        ),
        start_offset=0.0,
    )


@pytest.fixture
def sample_metadata():
    """Metadata as read from a typical Audible file."""
    return AudiobookMetadata(
        title="The Test Book (Unabridged)",
        author="Test Author",
        narrator="Test Narrator",
        album="The Test Book",
        copyright="©2024 Test Publisher",
        genre="Audiobook",
        cover=b"\xff\xd8\xff\xe0fake-jpeg",
    )


@pytest.fixture
def request_for(tmp_path):
    """Factory for ConversionRequests rooted in tmp_path."""

    def make(**kwargs) -> ConversionRequest:
        return ConversionRequest(output_dir=tmp_path / "out", **kwargs)

    return make



@pytest.fixture
def test_aax_file(tmp_path):
    """A real (unencrypted) audiobook file with chapters [4s, 20s, 30s]."""
    if not check_dependencies().all_found:
        pytest.skip("ffmpeg not available")

    aax_path = tmp_path / "test.aax"
    if create_test_aax(aax_path, [4.0, 20.0, 30.0]):
        return aax_path
    pytest.skip("Could not create test audiobook file")
