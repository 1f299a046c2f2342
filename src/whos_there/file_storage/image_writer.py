from pathlib import Path

from whos_there.logging import get_logger

logger = get_logger("whos_there.file_storage")


class ImageWriter:
    """Writes encoded image bytes to disk."""

    def __init__(self) -> None:
        self._last_error_msg: str | None = None

    @property
    def last_error_msg(self) -> str | None:
        """Return the last error message, if any."""
        return self._last_error_msg

    def write(self, path: Path | str, data: bytes) -> Path:
        """Write image bytes to a single path.

        The parent directory is created when missing. An existing file at the
        same path is replaced.

        Args:
            path: Destination file path.
            data: Encoded image bytes.

        Returns:
            The path that was written.

        Raises:
            OSError: If the file cannot be written.
        """
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
            logger.debug(f"Wrote {len(data)} bytes to {path}")
            return path
        except PermissionError as e:
            error_msg = f"Permission denied writing to {path}: {e}"
            logger.error(error_msg)
            self._last_error_msg = error_msg
            raise OSError(error_msg) from e
        except OSError as e:
            error_msg = f"Failed to write to {path}: {e}"
            logger.error(error_msg)
            self._last_error_msg = error_msg
            raise OSError(error_msg) from e
