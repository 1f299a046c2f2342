"""Camera device interface used by the capture controller."""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol


class CameraPosition(Enum):
    FRONT = "front"
    BACK = "back"
    UNSPECIFIED = "unspecified"


class CameraError(Exception):
    """Raised when the camera device cannot perform an operation."""


class CameraUnavailableError(CameraError):
    """Raised when no camera can be acquired or it is held by another process."""


@dataclass(frozen=True)
class PhotoOptions:
    flash_enabled: bool = False
    jpeg_quality: int = 90


@dataclass(frozen=True)
class PhotoResult:
    """Outcome of a single photo request.

    Exactly one of ``data`` and ``error`` is expected to be set; a result with
    neither is treated as missing image data.
    """

    data: bytes | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.data)


@dataclass
class CameraHandle:
    """An acquired camera device.

    ``device`` is the backend-specific object; only the backend that created
    the handle looks inside it.
    """

    device_id: str
    position: CameraPosition
    device: object = None


class CameraDevice(Protocol):
    def acquire(self, preferred_position: CameraPosition) -> CameraHandle: ...

    def start_streaming(self, handle: CameraHandle) -> None: ...

    def stop_streaming(self, handle: CameraHandle) -> None: ...

    def request_photo(
        self,
        handle: CameraHandle,
        options: PhotoOptions,
        on_result: Callable[[PhotoResult], None],
    ) -> None: ...
