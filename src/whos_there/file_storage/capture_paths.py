from datetime import datetime
from pathlib import Path

from whos_there.logging import get_logger

logger = get_logger("whos_there.file_storage")

DEFAULT_CAPTURE_DIRECTORY = Path("images")
DEFAULT_TEMP_DIRECTORY = Path("/tmp/whosthere")  # noqa: S108


class CapturePathBuilder:
    """Builds output locations for captured photos.

    Every photo is written twice: once to a durable capture directory and once
    to a transient scratch directory. Both copies share a single filename.
    """

    def __init__(
        self,
        capture_directory: Path | str = DEFAULT_CAPTURE_DIRECTORY,
        temp_directory: Path | str = DEFAULT_TEMP_DIRECTORY,
    ) -> None:
        """Initialize the path builder.

        Args:
            capture_directory: Durable directory for captured photos.
            temp_directory: Scratch directory that may be cleared by the system.
        """
        self._capture_directory = Path(capture_directory).expanduser()
        self._temp_directory = Path(temp_directory).expanduser()
        self.last_error_msg: str | None = None
        logger.debug(
            f"Initialized CapturePathBuilder with directories: "
            f"{self._capture_directory}, {self._temp_directory}"
        )

    @property
    def capture_directory(self) -> Path:
        return self._capture_directory

    @property
    def temp_directory(self) -> Path:
        return self._temp_directory

    def ensure_directories(self) -> None:
        """Create both output directories if they do not exist.

        A failure is logged and recorded but not raised; the writer reports
        the same problem again for each capture that targets the directory.
        """
        for directory in (self._capture_directory, self._temp_directory):
            try:
                directory.mkdir(parents=True, exist_ok=True)
                logger.debug(f"Ensured directory exists: {directory}")
            except OSError as e:
                error_msg = f"Failed to create directory {directory}: {e}"
                logger.error(error_msg)
                self.last_error_msg = error_msg

    @staticmethod
    def get_capture_filename(timestamp: datetime, idle_seconds: float) -> str:
        """Generate a capture filename.

        Args:
            timestamp: Wall-clock time of the capture.
            idle_seconds: Length of the idle period that ended.

        Returns:
            Filename in format capture_YYYYMMDD_HHMMSS_idle<N>s.jpg
        """
        date_str = timestamp.strftime("%Y%m%d_%H%M%S")
        return f"capture_{date_str}_idle{int(idle_seconds)}s.jpg"

    def get_destinations(
        self, timestamp: datetime, idle_seconds: float
    ) -> tuple[Path, Path]:
        """Return the durable and the transient path for one capture."""
        filename = self.get_capture_filename(timestamp, idle_seconds)
        return (
            self._capture_directory / filename,
            self._temp_directory / filename,
        )
