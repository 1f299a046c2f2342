from collections.abc import Callable, Generator
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
import itertools
import logging
from pathlib import Path

import pytest

from whos_there.camera.device import (
    CameraHandle,
    CameraPosition,
    CameraUnavailableError,
    PhotoOptions,
    PhotoResult,
)

JPEG_BYTES = b"\xff\xd8\xff\xe0fake-jpeg-payload\xff\xd9"


@pytest.fixture(autouse=True)
def clear_logger_cache() -> Generator[None, None, None]:
    """Clear the logger cache before and after each test to prevent test interference."""
    from whos_there import logging as wt_logging

    def reset() -> None:
        wt_logging.COMPONENT_LOGGERS.clear()
        for logger_name in list(logging.Logger.manager.loggerDict.keys()):
            if logger_name.startswith("whos_there") or logger_name.startswith("test_"):
                logger = logging.getLogger(logger_name)
                # Close all handlers before clearing
                for handler in logger.handlers[:]:
                    handler.close()
                    logger.removeHandler(handler)
                logger.propagate = True

    reset()
    yield
    reset()


class FakeClock:
    """Monotonic clock under test control."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


@dataclass
class _Scheduled:
    due: float
    seq: int
    callback: Callable[[], None]
    interval: float | None = None
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualMainContext:
    """Main context driven by a FakeClock instead of a real event loop."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self._entries: list[_Scheduled] = []
        self._seq = itertools.count()

    def call_soon(self, callback: Callable[[], None]) -> None:
        self.call_later(0.0, callback)

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> None:
        self._entries.append(
            _Scheduled(self.clock.now + delay_seconds, next(self._seq), callback)
        )

    def call_repeating(
        self, interval_seconds: float, callback: Callable[[], None]
    ) -> _Scheduled:
        entry = _Scheduled(
            self.clock.now + interval_seconds,
            next(self._seq),
            callback,
            interval=interval_seconds,
        )
        self._entries.append(entry)
        return entry

    @property
    def pending_count(self) -> int:
        return sum(
            1 for e in self._entries if not e.cancelled and e.interval is None
        )

    def advance(self, seconds: float) -> None:
        """Move time forward, running every callback that falls due on the way."""
        target = self.clock.now + seconds
        while True:
            self._entries = [e for e in self._entries if not e.cancelled]
            due = [e for e in self._entries if e.due <= target]
            if not due:
                break
            entry = min(due, key=lambda e: (e.due, e.seq))
            self.clock.now = max(self.clock.now, entry.due)
            if entry.interval is None:
                self._entries.remove(entry)
            else:
                entry.due += entry.interval
                entry.seq = next(self._seq)
            entry.callback()
        self.clock.now = target

    def run_pending(self) -> None:
        self.advance(0.0)


class QueuedExecutor:
    """Executor that runs submitted work only when asked to."""

    def __init__(self) -> None:
        self.queue: list[Callable[[], object]] = []
        self.shutdown_called = False

    def submit(self, fn: Callable[..., object], /, *args: object, **kwargs: object) -> None:
        self.queue.append(partial(fn, *args, **kwargs))

    def run_all(self) -> None:
        while self.queue:
            self.queue.pop(0)()

    def shutdown(self, wait: bool = True) -> None:  # noqa: FBT001, FBT002, ARG002
        self.shutdown_called = True


@dataclass
class FakeCamera:
    """CameraDevice that records calls and returns scripted results."""

    acquire_error: Exception | None = None
    start_error: Exception | None = None
    photo_result: PhotoResult = field(
        default_factory=lambda: PhotoResult(data=JPEG_BYTES)
    )
    deliver_immediately: bool = True
    acquire_calls: list[CameraPosition] = field(default_factory=list)
    start_calls: int = 0
    stop_calls: int = 0
    photo_requests: list[PhotoOptions] = field(default_factory=list)
    pending_results: list[Callable[[PhotoResult], None]] = field(default_factory=list)

    def acquire(self, preferred_position: CameraPosition) -> CameraHandle:
        self.acquire_calls.append(preferred_position)
        if self.acquire_error is not None:
            raise self.acquire_error
        return CameraHandle(device_id="fake", position=preferred_position, device=object())

    def start_streaming(self, handle: CameraHandle) -> None:  # noqa: ARG002
        self.start_calls += 1
        if self.start_error is not None:
            raise self.start_error

    def stop_streaming(self, handle: CameraHandle) -> None:  # noqa: ARG002
        self.stop_calls += 1

    def request_photo(
        self,
        handle: CameraHandle,  # noqa: ARG002
        options: PhotoOptions,
        on_result: Callable[[PhotoResult], None],
    ) -> None:
        self.photo_requests.append(options)
        if self.deliver_immediately:
            on_result(self.photo_result)
        else:
            self.pending_results.append(on_result)

    def deliver_photo(self, result: PhotoResult | None = None) -> None:
        on_result = self.pending_results.pop(0)
        on_result(result or self.photo_result)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock(start=1000.0)


@pytest.fixture
def main_context(fake_clock: FakeClock) -> ManualMainContext:
    return ManualMainContext(fake_clock)


@pytest.fixture
def executor() -> QueuedExecutor:
    return QueuedExecutor()


@pytest.fixture
def fake_camera() -> FakeCamera:
    return FakeCamera()


@pytest.fixture
def unavailable_camera() -> FakeCamera:
    return FakeCamera(acquire_error=CameraUnavailableError("camera in use"))


@pytest.fixture
def fixed_wall_clock() -> Callable[[], datetime]:
    return lambda: datetime(2024, 1, 15, 10, 30, 0)


@pytest.fixture
def output_dirs(tmp_path: Path) -> tuple[Path, Path]:
    return tmp_path / "images", tmp_path / "tmp" / "whosthere"
