from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest

from whos_there.file_storage.capture_paths import (
    DEFAULT_CAPTURE_DIRECTORY,
    DEFAULT_TEMP_DIRECTORY,
    CapturePathBuilder,
)


@pytest.fixture
def builder(tmp_path: Path) -> CapturePathBuilder:
    return CapturePathBuilder(tmp_path / "images", tmp_path / "scratch")


class TestCapturePathBuilderInit:
    def test_defaults(self) -> None:
        builder = CapturePathBuilder()

        assert builder.capture_directory == DEFAULT_CAPTURE_DIRECTORY
        assert builder.temp_directory == DEFAULT_TEMP_DIRECTORY
        assert builder.last_error_msg is None

    def test_accepts_strings(self, tmp_path: Path) -> None:
        builder = CapturePathBuilder(str(tmp_path / "a"), str(tmp_path / "b"))

        assert builder.capture_directory == tmp_path / "a"
        assert builder.temp_directory == tmp_path / "b"

    def test_expands_user(self) -> None:
        builder = CapturePathBuilder("~/captures", "~/scratch")

        assert builder.capture_directory == Path.home() / "captures"


class TestGetCaptureFilename:
    def test_pattern(self) -> None:
        timestamp = datetime(2024, 1, 15, 10, 30, 5)

        filename = CapturePathBuilder.get_capture_filename(timestamp, 16.0)

        assert filename == "capture_20240115_103005_idle16s.jpg"

    def test_idle_seconds_truncated(self) -> None:
        timestamp = datetime(2024, 12, 31, 23, 59, 59)

        filename = CapturePathBuilder.get_capture_filename(timestamp, 59.99)

        assert filename == "capture_20241231_235959_idle59s.jpg"


class TestGetDestinations:
    def test_two_destinations_share_filename(
        self, builder: CapturePathBuilder, tmp_path: Path
    ) -> None:
        durable, scratch = builder.get_destinations(datetime(2024, 1, 15, 10, 30, 0), 42)

        assert durable == tmp_path / "images" / "capture_20240115_103000_idle42s.jpg"
        assert scratch == tmp_path / "scratch" / "capture_20240115_103000_idle42s.jpg"
        assert durable.name == scratch.name


class TestEnsureDirectories:
    def test_creates_both(self, builder: CapturePathBuilder) -> None:
        builder.ensure_directories()

        assert builder.capture_directory.is_dir()
        assert builder.temp_directory.is_dir()

    def test_idempotent(self, builder: CapturePathBuilder) -> None:
        builder.ensure_directories()
        builder.ensure_directories()

        assert builder.capture_directory.is_dir()

    def test_failure_recorded_not_raised(self, builder: CapturePathBuilder) -> None:
        with patch.object(Path, "mkdir", side_effect=PermissionError("denied")):
            builder.ensure_directories()

        assert builder.last_error_msg is not None
        assert "denied" in builder.last_error_msg
