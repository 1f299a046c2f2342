from collections.abc import Callable
import io
from threading import Lock, Thread

import cv2
import numpy as np
from PIL import Image

from whos_there.camera.device import (
    CameraError,
    CameraHandle,
    CameraPosition,
    CameraUnavailableError,
    PhotoOptions,
    PhotoResult,
)
from whos_there.logging import get_logger

logger = get_logger("whos_there.camera")

# The built-in FaceTime camera is always enumerated first on Macs.
DEFAULT_POSITION_INDICES: dict[CameraPosition, int] = {CameraPosition.FRONT: 0}
WARMUP_FRAMES = 5


class OpenCVCamera:
    def __init__(
        self,
        device_index: int = 0,
        position_indices: dict[CameraPosition, int] | None = None,
        warmup_frames: int = WARMUP_FRAMES,
    ) -> None:
        self._device_index = device_index
        self._position_indices = (
            DEFAULT_POSITION_INDICES if position_indices is None else position_indices
        )
        self._warmup_frames = warmup_frames
        self.last_error_msg: str | None = None
        # Serializes frame reads with release; OpenCV captures are not thread safe.
        self._device_lock = Lock()

    def _candidate_indices(self, preferred_position: CameraPosition) -> list[int]:
        candidates: list[int] = []
        preferred = self._position_indices.get(preferred_position)
        if preferred is not None:
            candidates.append(preferred)
        if self._device_index not in candidates:
            candidates.append(self._device_index)
        return candidates

    def acquire(self, preferred_position: CameraPosition) -> CameraHandle:
        for index in self._candidate_indices(preferred_position):
            capture = cv2.VideoCapture(index)
            if capture.isOpened():
                position = (
                    preferred_position
                    if self._position_indices.get(preferred_position) == index
                    else CameraPosition.UNSPECIFIED
                )
                logger.debug(f"Acquired camera {index} ({position.value})")
                return CameraHandle(
                    device_id=str(index), position=position, device=capture
                )
            capture.release()
            logger.debug(f"Camera {index} could not be opened")

        msg = (
            "No camera could be opened (it may be missing, in use by another "
            "application, or camera access is denied)"
        )
        self.last_error_msg = msg
        raise CameraUnavailableError(msg)

    @staticmethod
    def _capture_of(handle: CameraHandle) -> cv2.VideoCapture:
        if handle.device is None:
            msg = f"Camera handle {handle.device_id} has no open device"
            raise CameraError(msg)
        return handle.device  # type: ignore[return-value]

    def start_streaming(self, handle: CameraHandle) -> None:
        capture = self._capture_of(handle)
        try:
            capture.set(cv2.CAP_PROP_BUFFERSIZE, 1)
        except cv2.error as e:
            logger.debug(f"Camera {handle.device_id} ignores buffer size: {e}")

        # Early frames are dark until auto exposure settles.
        for _ in range(max(1, self._warmup_frames)):
            ok, _frame = capture.read()
            if not ok:
                capture.release()
                msg = f"Camera {handle.device_id} did not deliver frames"
                self.last_error_msg = msg
                raise CameraUnavailableError(msg)
        logger.debug(f"Camera {handle.device_id} streaming")

    def stop_streaming(self, handle: CameraHandle) -> None:
        capture = self._capture_of(handle)
        with self._device_lock:
            capture.release()
        logger.debug(f"Released camera {handle.device_id}")

    def request_photo(
        self,
        handle: CameraHandle,
        options: PhotoOptions,
        on_result: Callable[[PhotoResult], None],
    ) -> None:
        capture = self._capture_of(handle)
        if options.flash_enabled:
            logger.debug("Flash requested but not supported by OpenCV devices")

        worker = Thread(
            target=self._read_photo,
            args=(capture, options, on_result),
            name="whos-there-photo",
            daemon=True,
        )
        worker.start()

    def _read_photo(
        self,
        capture: cv2.VideoCapture,
        options: PhotoOptions,
        on_result: Callable[[PhotoResult], None],
    ) -> None:
        with self._device_lock:
            result = self._take_photo(capture, options)
        if result.error is not None:
            logger.error(result.error)
            self.last_error_msg = result.error
        on_result(result)

    @staticmethod
    def _take_photo(capture: cv2.VideoCapture, options: PhotoOptions) -> PhotoResult:
        try:
            if not capture.isOpened():
                return PhotoResult(error="Camera was released before the photo was taken")
            # Drop the buffered frame so the photo shows the current scene.
            capture.grab()
            ok, frame = capture.read()
            if not ok or frame is None:
                return PhotoResult(error="Camera returned no frame")
            return PhotoResult(data=encode_jpeg(frame, options.jpeg_quality))
        except Exception as e:  # noqa: BLE001
            return PhotoResult(error=f"Photo capture failed: {e}")


def encode_jpeg(frame: np.ndarray, quality: int = 90) -> bytes:
    """Encode a camera frame as JPEG bytes.

    Accepts BGR and BGRA frames as delivered by OpenCV, and single-channel
    grayscale frames from monochrome devices.
    """
    if frame.ndim == 2 or (frame.ndim == 3 and frame.shape[2] == 1):
        rgb = cv2.cvtColor(frame, cv2.COLOR_GRAY2RGB)
    elif frame.ndim == 3 and frame.shape[2] == 4:
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGRA2RGB)
    elif frame.ndim == 3 and frame.shape[2] == 3:
        rgb = np.ascontiguousarray(frame[:, :, ::-1])
    else:
        msg = f"Unsupported frame shape {frame.shape}"
        raise ValueError(msg)
    buffer = io.BytesIO()
    Image.fromarray(rgb).save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()
