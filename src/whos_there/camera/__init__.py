"""Camera access for single-shot photo capture."""

from whos_there.camera.device import (
    CameraDevice,
    CameraError,
    CameraHandle,
    CameraPosition,
    CameraUnavailableError,
    PhotoOptions,
    PhotoResult,
)

__all__ = [
    "CameraDevice",
    "CameraError",
    "CameraHandle",
    "CameraPosition",
    "CameraUnavailableError",
    "PhotoOptions",
    "PhotoResult",
]
