from whos_there.file_storage.capture_paths import (
    DEFAULT_CAPTURE_DIRECTORY,
    DEFAULT_TEMP_DIRECTORY,
    CapturePathBuilder,
)
from whos_there.file_storage.image_writer import ImageWriter

__all__ = [
    "DEFAULT_CAPTURE_DIRECTORY",
    "DEFAULT_TEMP_DIRECTORY",
    "CapturePathBuilder",
    "ImageWriter",
]
