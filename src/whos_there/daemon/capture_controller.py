"""CaptureController - Owns the camera session and takes single photos."""

from collections.abc import Callable, Iterable
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING

from whos_there.camera.device import (
    CameraDevice,
    CameraError,
    CameraHandle,
    CameraPosition,
    PhotoOptions,
    PhotoResult,
)
from whos_there.file_storage.image_writer import ImageWriter
from whos_there.logging import get_logger

if TYPE_CHECKING:
    from whos_there.daemon.main_context import MainContext

logger = get_logger("whos_there.daemon")


class SessionPhase(Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    CAPTURING = "capturing"
    STOPPING = "stopping"


@dataclass(frozen=True)
class CaptureResult:
    """Outcome of one capture request.

    Attributes:
        success: True only if the photo was taken and every destination was written.
        written: Destinations that hold the photo, in request order.
        error: Description of the first problem encountered, if any.
    """

    success: bool
    written: tuple[Path, ...] = ()
    error: str | None = None


class CaptureController:
    """Manages the camera session lifecycle and single-shot photo capture.

    The camera is acquired when a session starts and released when it stops,
    so other applications can use it while no session is active. Phases cycle
    IDLE -> STARTING -> RUNNING -> CAPTURING -> RUNNING -> STOPPING -> IDLE.

    Every public method and every completion runs on the main context.
    Blocking device start/stop work runs on ``executor``; its completion is
    marshalled back with ``main_context.call_soon`` before the phase changes.
    """

    def __init__(  # noqa: PLR0913, PLR0917
        self,
        camera: CameraDevice,
        main_context: "MainContext",
        executor: Executor | None = None,
        image_writer: ImageWriter | None = None,
        preferred_position: CameraPosition = CameraPosition.FRONT,
        photo_options: PhotoOptions | None = None,
    ) -> None:
        """Initialize the capture controller.

        Args:
            camera: Device backend used to acquire the camera and take photos.
            main_context: Context that owns all phase transitions.
            executor: Optional executor for blocking start/stop calls.
            image_writer: Optional ImageWriter instance.
            preferred_position: Camera position to ask the backend for.
            photo_options: Options applied to every photo request.
        """
        self._camera = camera
        self._main_context = main_context
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=2, thread_name_prefix="whos-there-camera"
        )
        self._image_writer = image_writer or ImageWriter()
        self._preferred_position = preferred_position
        self._photo_options = photo_options or PhotoOptions()

        self._phase = SessionPhase.IDLE
        self._handle: CameraHandle | None = None
        self._pending_destinations: tuple[Path, ...] = ()
        self._stop_pending = False
        self._start_pending = False
        self._acquisition_count = 0
        self._shutting_down = False
        self._last_error_msg: str | None = None

        self._on_session_failed_callbacks: list[Callable[[str], None]] = []
        self._on_phase_changed_callbacks: list[Callable[[SessionPhase], None]] = []

        logger.info("CaptureController initialized")

    @property
    def phase(self) -> SessionPhase:
        """Return the current session phase."""
        return self._phase

    @property
    def pending_destinations(self) -> tuple[Path, ...]:
        """Return the destinations of the capture in flight, if any."""
        return self._pending_destinations

    @property
    def last_error_msg(self) -> str | None:
        """Return the last error message, if any."""
        return self._last_error_msg

    @property
    def acquisition_count(self) -> int:
        """Return how many times the camera device has been acquired."""
        return self._acquisition_count

    def add_on_session_failed_callback(self, callback: Callable[[str], None]) -> None:
        """Add a callback to be called when a session fails to start.

        Args:
            callback: Function to call with the error message.
        """
        self._on_session_failed_callbacks.append(callback)

    def add_on_phase_changed_callback(
        self, callback: Callable[[SessionPhase], None]
    ) -> None:
        """Add a callback to be called after every phase transition.

        Args:
            callback: Function to call with the new phase.
        """
        self._on_phase_changed_callbacks.append(callback)

    def _set_phase(self, phase: SessionPhase) -> None:
        previous = self._phase
        self._phase = phase
        logger.debug("Camera session %s -> %s", previous.value, phase.value)

        for callback in self._on_phase_changed_callbacks:
            try:
                callback(phase)
            except Exception as e:  # noqa: BLE001
                logger.error("Error in phase changed callback: %s", e)

    def start_session(self) -> None:
        """Acquire the camera and start streaming in the background.

        Idempotent: a session that is already starting or running is left alone.
        A start requested while a stop is in flight runs once the stop settles.
        """
        if self._phase is SessionPhase.STOPPING:
            logger.debug("Camera session is stopping, start queued")
            self._start_pending = True
            return

        if self._phase is not SessionPhase.IDLE:
            self._stop_pending = False
            return

        self._set_phase(SessionPhase.STARTING)
        self._executor.submit(self._start_worker)

    def _start_worker(self) -> None:
        """Acquire and start the device. Runs on the executor."""
        try:
            handle = self._camera.acquire(self._preferred_position)
        except CameraError as e:
            self._main_context.call_soon(partial(self._on_start_failed, str(e)))
            return
        except Exception as e:  # noqa: BLE001
            error_msg = f"Unexpected camera error: {e}"
            self._main_context.call_soon(partial(self._on_start_failed, error_msg))
            return

        try:
            self._camera.start_streaming(handle)
        except Exception as e:  # noqa: BLE001
            self._release_quietly(handle)
            self._main_context.call_soon(
                partial(self._on_start_failed, str(e), acquired=True)
            )
            return

        if self._shutting_down:
            self._release_quietly(handle)
            return

        self._main_context.call_soon(partial(self._on_started, handle))

    def _on_started(self, handle: CameraHandle) -> None:
        self._acquisition_count += 1
        self._handle = handle
        self._set_phase(SessionPhase.RUNNING)
        logger.info("Camera session started")

        if self._stop_pending:
            self._stop_pending = False
            logger.debug("Honouring stop requested while starting")
            self.stop_session()

    def _on_start_failed(self, error: str, *, acquired: bool = False) -> None:
        if acquired:
            self._acquisition_count += 1
        error_msg = f"Camera session failed to start (may be in use by another app): {error}"
        logger.warning(error_msg)
        self._last_error_msg = error_msg
        self._stop_pending = False
        self._handle = None
        self._set_phase(SessionPhase.IDLE)

        for callback in self._on_session_failed_callbacks:
            try:
                callback(error_msg)
            except Exception as e:  # noqa: BLE001
                logger.error("Error in session failed callback: %s", e)

    def stop_session(self) -> None:
        """Stop streaming and release the camera in the background.

        Idempotent. A stop requested while the session is starting or
        capturing is honoured as soon as the session reaches RUNNING.
        """
        self._start_pending = False

        if self._phase in {SessionPhase.STARTING, SessionPhase.CAPTURING}:
            logger.debug("Camera session is %s, stop queued", self._phase.value)
            self._stop_pending = True
            return

        if self._phase is not SessionPhase.RUNNING:
            return

        handle = self._handle
        self._set_phase(SessionPhase.STOPPING)
        self._executor.submit(self._stop_worker, handle)

    def _stop_worker(self, handle: CameraHandle | None) -> None:
        """Stop the device. Runs on the executor."""
        if handle is not None:
            self._release_quietly(handle)
        self._main_context.call_soon(self._on_stopped)

    def _release_quietly(self, handle: CameraHandle) -> None:
        try:
            self._camera.stop_streaming(handle)
        except Exception as e:  # noqa: BLE001
            error_msg = f"Failed to release camera: {e}"
            logger.error(error_msg)
            self._last_error_msg = error_msg

    def _on_stopped(self) -> None:
        self._handle = None
        self._set_phase(SessionPhase.IDLE)
        logger.info("Camera session stopped")

        if self._start_pending:
            self._start_pending = False
            logger.debug("Honouring start requested while stopping")
            self.start_session()

    def capture(
        self,
        destinations: Iterable[Path | str],
        on_complete: Callable[[CaptureResult], None],
    ) -> None:
        """Take one photo and write it to every destination.

        ``on_complete`` always runs exactly once. When the session is not
        RUNNING it runs immediately with a failed result and the device is not
        touched. The controller never stops the session itself.

        Args:
            destinations: Output paths, written in order.
            on_complete: Continuation receiving the CaptureResult.
        """
        if self._phase is not SessionPhase.RUNNING or self._handle is None:
            error_msg = (
                f"Cannot capture - camera session not running ({self._phase.value})"
            )
            logger.warning(error_msg)
            self._last_error_msg = error_msg
            self._complete(on_complete, CaptureResult(success=False, error=error_msg))
            return

        self._pending_destinations = tuple(Path(d) for d in destinations)
        self._set_phase(SessionPhase.CAPTURING)

        try:
            self._camera.request_photo(
                self._handle,
                self._photo_options,
                partial(self._on_photo_result, on_complete),
            )
        except Exception as e:  # noqa: BLE001
            self._finish_capture(on_complete, PhotoResult(error=str(e)))

    def _on_photo_result(
        self, on_complete: Callable[[CaptureResult], None], result: PhotoResult
    ) -> None:
        """Receive the device result on whichever thread the device uses."""
        self._main_context.call_soon(partial(self._finish_capture, on_complete, result))

    def _finish_capture(
        self, on_complete: Callable[[CaptureResult], None], photo: PhotoResult
    ) -> None:
        destinations = self._pending_destinations
        capture_result = self._persist(photo, destinations)

        self._pending_destinations = ()
        # After shutdown the session is already stopping; leave it there.
        if self._phase is SessionPhase.CAPTURING:
            self._set_phase(SessionPhase.RUNNING)
        self._complete(on_complete, capture_result)

        if self._stop_pending:
            self._stop_pending = False
            logger.debug("Honouring stop requested while capturing")
            self.stop_session()

    def _persist(
        self, photo: PhotoResult, destinations: tuple[Path, ...]
    ) -> CaptureResult:
        if not photo.ok or photo.data is None:
            error_msg = (
                "Failed to get image data from photo"
                if photo.error is None
                else f"Photo capture failed: {photo.error}"
            )
            logger.error(error_msg)
            self._last_error_msg = error_msg
            return CaptureResult(success=False, error=error_msg)

        data = photo.data
        written: list[Path] = []
        first_error: str | None = None
        for path in destinations:
            try:
                written.append(self._image_writer.write(path, data))
            except OSError as e:
                error_msg = f"Failed to save to {path}: {e}"
                logger.error(error_msg)
                self._last_error_msg = error_msg
                first_error = first_error or error_msg

        return CaptureResult(
            success=first_error is None,
            written=tuple(written),
            error=first_error,
        )

    @staticmethod
    def _complete(
        on_complete: Callable[[CaptureResult], None], result: CaptureResult
    ) -> None:
        try:
            on_complete(result)
        except Exception as e:  # noqa: BLE001
            logger.error("Error in capture completion callback: %s", e)

    def shutdown(self) -> None:
        """Release the camera and the executor.

        A capture in flight is not awaited here; the camera backend serializes
        the release with any frame read still in progress, and the late photo
        result completes without reviving the session. A session still
        starting is released by the start worker itself.
        """
        self._shutting_down = True
        handle = self._handle
        if handle is not None and self._phase in {
            SessionPhase.RUNNING,
            SessionPhase.CAPTURING,
        }:
            self._handle = None
            self._set_phase(SessionPhase.STOPPING)
            self._executor.submit(self._stop_worker, handle)

        if self._owns_executor:
            self._executor.shutdown(wait=True)
        logger.info("CaptureController shut down")

    def get_status(self) -> dict[str, object]:
        """Get the current status of the capture controller.

        Returns:
            A dictionary containing the current status.
        """
        return {
            "phase": self._phase.value,
            "pending_destinations": [str(p) for p in self._pending_destinations],
            "acquisition_count": self._acquisition_count,
            "last_error_msg": self._last_error_msg,
        }
