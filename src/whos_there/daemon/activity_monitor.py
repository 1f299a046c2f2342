"""ActivityMonitor - Classifies input activity into active and idle periods."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from functools import partial
from threading import Lock
import time
from typing import TYPE_CHECKING

from whos_there.file_storage.capture_paths import CapturePathBuilder
from whos_there.logging import get_logger

if TYPE_CHECKING:
    from whos_there.daemon.capture_controller import CaptureController, CaptureResult
    from whos_there.daemon.main_context import MainContext, TimerHandle
    from whos_there.input_events.data import ActivityEvent

logger = get_logger("whos_there.daemon")


class ActivityState(Enum):
    ACTIVE = "active"
    IDLE = "idle"


@dataclass(frozen=True)
class MonitorConfig:
    """Timing configuration for the activity monitor.

    Attributes:
        idle_threshold_seconds: Inactivity needed before the camera is armed.
        idle_check_interval_seconds: Period of the idle check. Kept separate
            from the threshold; a coarser period means later idle detection
            and fewer wakeups.
        capture_delay_seconds: Wait between the activity that ends an idle
            period and the photo, giving the camera time to initialize.
    """

    idle_threshold_seconds: float = 10.0
    idle_check_interval_seconds: float = 5.0
    capture_delay_seconds: float = 0.5

    def __post_init__(self) -> None:
        if self.idle_threshold_seconds <= 0:
            msg = "Idle threshold must be positive"
            raise ValueError(msg)
        if self.idle_check_interval_seconds <= 0:
            msg = "Idle check interval must be positive"
            raise ValueError(msg)
        if self.capture_delay_seconds < 0:
            msg = "Capture delay must not be negative"
            raise ValueError(msg)


class ActivityMonitor:
    """Arms the camera when the user goes idle and captures when they return.

    ``on_activity_event`` is called on the input delivery thread. It only
    touches the timestamp/state pair under a lock and schedules work on the
    main context. Everything else runs on the main context.

    The camera is armed solely by the idle check; an activity event never
    starts it. Each capture carries the epoch of the idle period it
    documents, so a late capture does not stop a session that a newer idle
    period has armed.
    """

    def __init__(  # noqa: PLR0913, PLR0917
        self,
        config: MonitorConfig,
        capture_controller: "CaptureController",
        main_context: "MainContext",
        path_builder: CapturePathBuilder | None = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Initialize the activity monitor.

        Args:
            config: Timing configuration.
            capture_controller: Controller that owns the camera session.
            main_context: Context that runs timers and deferred captures.
            path_builder: Optional CapturePathBuilder instance.
            clock: Monotonic time source in seconds.
            wall_clock: Wall-clock source used for capture filenames.
        """
        self._config = config
        self._capture_controller = capture_controller
        self._main_context = main_context
        self._path_builder = path_builder or CapturePathBuilder()
        self._clock = clock
        self._wall_clock = wall_clock

        self._lock = Lock()
        self._last_activity_timestamp = clock()
        self._state = ActivityState.ACTIVE
        self._idle_epoch = 0

        self._idle_timer: TimerHandle | None = None
        self._capture_count = 0
        self._failed_capture_count = 0
        self._last_error_msg: str | None = None

        logger.info("ActivityMonitor initialized")

    @property
    def state(self) -> ActivityState:
        with self._lock:
            return self._state

    @property
    def last_activity_timestamp(self) -> float:
        with self._lock:
            return self._last_activity_timestamp

    @property
    def idle_epoch(self) -> int:
        """Return the number of idle periods entered so far."""
        with self._lock:
            return self._idle_epoch

    @property
    def idle_threshold(self) -> float:
        return self._config.idle_threshold_seconds

    @property
    def is_running(self) -> bool:
        return self._idle_timer is not None

    @property
    def capture_count(self) -> int:
        return self._capture_count

    @property
    def failed_capture_count(self) -> int:
        return self._failed_capture_count

    @property
    def last_error_msg(self) -> str | None:
        """Return the last error message, if any."""
        return self._last_error_msg

    def start(self) -> None:
        """Start the periodic idle check. Must run on the main context."""
        if self._idle_timer is not None:
            logger.warning("Activity monitor is already running")
            return

        self._path_builder.ensure_directories()

        with self._lock:
            self._last_activity_timestamp = self._clock()
            self._state = ActivityState.ACTIVE

        self._idle_timer = self._main_context.call_repeating(
            self._config.idle_check_interval_seconds, self.on_idle_check_tick
        )

        logger.info(
            "WhosThere started - monitoring for idle periods of %ds",
            int(self._config.idle_threshold_seconds),
        )
        logger.info(
            "Images will be saved to: %s and %s",
            self._path_builder.capture_directory,
            self._path_builder.temp_directory,
        )

    def stop(self) -> None:
        """Cancel the idle check and release the camera."""
        if self._idle_timer is None:
            logger.warning("Activity monitor is not running")
            return

        self._idle_timer.cancel()
        self._idle_timer = None
        self._capture_controller.stop_session()
        logger.info("Activity monitor stopped")

    def handle_event(self, event: "ActivityEvent") -> None:
        """Receive an event from the input source."""
        self.on_activity_event(event.timestamp)

    def on_activity_event(self, timestamp: float | None = None) -> None:
        """Record user activity and end the current idle period, if any.

        Safe to call from any thread; never blocks beyond a short lock.

        Args:
            timestamp: Monotonic time of the event; defaults to now.
        """
        now = self._clock() if timestamp is None else timestamp

        with self._lock:
            previous = self._last_activity_timestamp
            self._last_activity_timestamp = now
            if self._state is not ActivityState.IDLE:
                return
            self._state = ActivityState.ACTIVE
            epoch = self._idle_epoch

        idle_duration = now - previous
        logger.info(
            "Activity detected after %ds idle - capturing image...", int(idle_duration)
        )
        self._main_context.call_later(
            self._config.capture_delay_seconds,
            partial(self._capture_after_idle, idle_duration, epoch),
        )

    def on_idle_check_tick(self) -> None:
        """Enter the idle state once the threshold has passed."""
        now = self._clock()

        with self._lock:
            elapsed = now - self._last_activity_timestamp
            if self._state is not ActivityState.ACTIVE:
                return
            if elapsed < self._config.idle_threshold_seconds:
                return
            self._state = ActivityState.IDLE
            self._idle_epoch += 1

        logger.info("System idle for %ds - starting camera...", int(elapsed))
        self._capture_controller.start_session()

    def _capture_after_idle(self, idle_duration: float, epoch: int) -> None:
        """Photograph whoever ended the idle period.

        Runs even if the user has gone idle again in the meantime; the photo
        documents the idle period that ended, not the current state.
        """
        destinations = self._path_builder.get_destinations(
            self._wall_clock(), idle_duration
        )
        filename = destinations[0].name
        self._capture_controller.capture(
            destinations, partial(self._on_capture_complete, filename, epoch)
        )

    def _on_capture_complete(
        self, filename: str, epoch: int, result: "CaptureResult"
    ) -> None:
        if result.success:
            self._capture_count += 1
            logger.info("Image saved: %s", filename)
        else:
            self._failed_capture_count += 1
            self._last_error_msg = result.error
            logger.warning("Failed to capture image: %s", result.error)

        with self._lock:
            newer_idle_period = self._idle_epoch != epoch

        if newer_idle_period:
            logger.info("A new idle period has started, leaving the camera armed")
            return

        self._capture_controller.stop_session()

    def get_status(self) -> dict[str, object]:
        """Get the current status of the activity monitor.

        Returns:
            A dictionary containing the current status.
        """
        with self._lock:
            state = self._state
            idle_for = self._clock() - self._last_activity_timestamp
            epoch = self._idle_epoch

        return {
            "is_running": self.is_running,
            "state": state.value,
            "seconds_since_activity": idle_for,
            "idle_epoch": epoch,
            "idle_threshold_seconds": self._config.idle_threshold_seconds,
            "capture_count": self._capture_count,
            "failed_capture_count": self._failed_capture_count,
            "last_error_msg": self._last_error_msg,
            "session_phase": self._capture_controller.phase.value,
        }
