"""Main execution context for the daemon.

All activity-state transitions, the idle-check timer and capture session phase
changes run on one thread. Other threads hand work to it with ``call_soon`` or
``call_later``.
"""

from collections.abc import Callable
from functools import partial
import sys
from typing import Protocol

from PyQt6.QtCore import QCoreApplication, QObject, Qt, QTimer, pyqtSignal

from whos_there.logging import get_logger

logger = get_logger("whos_there.daemon")


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class MainContext(Protocol):
    def call_soon(self, callback: Callable[[], None]) -> None: ...

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> None: ...

    def call_repeating(
        self, interval_seconds: float, callback: Callable[[], None]
    ) -> TimerHandle: ...


class QtTimerHandle:
    def __init__(self, timer: QTimer) -> None:
        self._timer = timer

    @property
    def is_active(self) -> bool:
        return self._timer.isActive()

    def cancel(self) -> None:
        self._timer.stop()


class QtMainContext(QObject):
    """MainContext backed by the Qt event loop of a QCoreApplication.

    ``call_soon`` and ``call_later`` may be called from any thread: the request
    travels through a queued signal to the thread that owns this object.
    ``call_repeating`` must be called from the main thread.
    """

    _dispatch = pyqtSignal(float, object)

    def __init__(self, app: QCoreApplication | None = None) -> None:
        super().__init__()
        self._app = app or QCoreApplication.instance() or QCoreApplication(sys.argv)
        self._dispatch.connect(
            self._on_dispatch, Qt.ConnectionType.QueuedConnection
        )
        self._timers: list[QTimer] = []

    def call_soon(self, callback: Callable[[], None]) -> None:
        self._dispatch.emit(0.0, callback)

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> None:
        self._dispatch.emit(float(delay_seconds), callback)

    def call_repeating(
        self, interval_seconds: float, callback: Callable[[], None]
    ) -> QtTimerHandle:
        timer = QTimer(self)
        timer.setInterval(round(interval_seconds * 1000))
        timer.timeout.connect(partial(self._invoke, callback))
        timer.start()
        self._timers.append(timer)
        return QtTimerHandle(timer)

    def run(self) -> int:
        """Run the event loop until ``quit`` is called."""
        return self._app.exec()

    def quit(self) -> None:
        for timer in self._timers:
            timer.stop()
        self._app.quit()

    def _on_dispatch(self, delay_seconds: float, callback: Callable[[], None]) -> None:
        if delay_seconds <= 0:
            self._invoke(callback)
            return
        QTimer.singleShot(round(delay_seconds * 1000), partial(self._invoke, callback))

    @staticmethod
    def _invoke(callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception as e:  # noqa: BLE001
            logger.error("Error in main context callback: %s", e)
