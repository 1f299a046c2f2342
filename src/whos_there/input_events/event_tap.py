"""QuartzEventTap - delivers keyboard and pointer activity from a CGEventTap."""

from collections.abc import Callable
from threading import Event, Thread
import time

import Quartz  # type: ignore[import-untyped]

from whos_there.input_events.data import ActivityEvent, ActivityKind
from whos_there.input_events.errors import PERMISSION_GUIDANCE, EventTapPermissionError
from whos_there.logging import get_logger

logger = get_logger("whos_there.input_events")

EVENT_KINDS: dict[int, ActivityKind] = {
    Quartz.kCGEventKeyDown: ActivityKind.KEY_DOWN,
    Quartz.kCGEventKeyUp: ActivityKind.KEY_UP,
    Quartz.kCGEventFlagsChanged: ActivityKind.FLAGS_CHANGED,
    Quartz.kCGEventLeftMouseDown: ActivityKind.MOUSE_DOWN,
    Quartz.kCGEventRightMouseDown: ActivityKind.MOUSE_DOWN,
    Quartz.kCGEventMouseMoved: ActivityKind.MOUSE_MOVED,
    Quartz.kCGEventLeftMouseDragged: ActivityKind.MOUSE_DRAGGED,
    Quartz.kCGEventRightMouseDragged: ActivityKind.MOUSE_DRAGGED,
    Quartz.kCGEventScrollWheel: ActivityKind.SCROLL,
}

__all__ = [
    "EVENT_KINDS",
    "PERMISSION_GUIDANCE",
    "EventTapPermissionError",
    "QuartzEventTap",
    "build_event_mask",
]


def build_event_mask() -> int:
    mask = 0
    for event_type in EVENT_KINDS:
        mask |= Quartz.CGEventMaskBit(event_type)
    return mask


class QuartzEventTap:
    """Subscribes to user input events through a listen-only CGEventTap.

    A listen-only tap cannot modify or drop events, so it only needs the
    Input Monitoring permission. Events are delivered on a dedicated thread
    running its own CFRunLoop; ``on_activity`` is called on that thread and
    must return quickly.
    """

    def __init__(
        self,
        on_activity: Callable[[ActivityEvent], None],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._on_activity = on_activity
        self._clock = clock
        self._tap: object | None = None
        self._run_loop: object | None = None
        self._thread: Thread | None = None
        self._ready = Event()
        self.last_error_msg: str | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Create the tap and start delivering events.

        Raises:
            EventTapPermissionError: If the tap cannot be created.
        """
        if self.is_running:
            logger.warning("Event tap is already running")
            return

        tap = Quartz.CGEventTapCreate(
            Quartz.kCGSessionEventTap,
            Quartz.kCGHeadInsertEventTap,
            Quartz.kCGEventTapOptionListenOnly,
            build_event_mask(),
            self._handle_event,
            None,
        )
        if tap is None:
            self.last_error_msg = PERMISSION_GUIDANCE
            logger.error(PERMISSION_GUIDANCE)
            raise EventTapPermissionError(PERMISSION_GUIDANCE)

        self._tap = tap
        self._ready.clear()
        self._thread = Thread(target=self._run, name="whos-there-event-tap", daemon=True)
        self._thread.start()
        self._ready.wait(timeout=5.0)
        logger.info("Event tap started")

    def stop(self) -> None:
        if self._tap is not None:
            Quartz.CGEventTapEnable(self._tap, False)
        if self._run_loop is not None:
            Quartz.CFRunLoopStop(self._run_loop)
        if self._thread is not None:
            self._thread.join(timeout=5.0)
        self._thread = None
        self._run_loop = None
        self._tap = None
        logger.info("Event tap stopped")

    def _run(self) -> None:
        source = Quartz.CFMachPortCreateRunLoopSource(None, self._tap, 0)
        self._run_loop = Quartz.CFRunLoopGetCurrent()
        Quartz.CFRunLoopAddSource(self._run_loop, source, Quartz.kCFRunLoopCommonModes)
        Quartz.CGEventTapEnable(self._tap, True)
        self._ready.set()
        Quartz.CFRunLoopRun()

    def _handle_event(
        self, proxy: object, event_type: int, event: object, refcon: object  # noqa: ARG002
    ) -> object:
        if event_type in {
            Quartz.kCGEventTapDisabledByTimeout,
            Quartz.kCGEventTapDisabledByUserInput,
        }:
            logger.warning("Event tap was disabled by the system, re-enabling")
            if self._tap is not None:
                Quartz.CGEventTapEnable(self._tap, True)
            return event

        kind = EVENT_KINDS.get(event_type)
        if kind is None:
            return event

        try:
            self._on_activity(ActivityEvent(kind=kind, timestamp=self._clock()))
        except Exception as e:  # noqa: BLE001
            logger.error("Error in activity callback: %s", e)
        return event
