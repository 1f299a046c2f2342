"""Tests for the Qt-backed main context."""

from collections.abc import Callable, Generator
import threading
import time

from PyQt6.QtCore import QCoreApplication, QEventLoop
import pytest

from whos_there.daemon.main_context import QtMainContext


@pytest.fixture(scope="module")
def qt_app() -> Generator[QCoreApplication, None, None]:
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app  # type: ignore[misc]


@pytest.fixture
def context(qt_app: QCoreApplication) -> QtMainContext:
    return QtMainContext(qt_app)


def process_until(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while not predicate() and time.monotonic() < deadline:
        QCoreApplication.processEvents(QEventLoop.ProcessEventsFlag.AllEvents, 50)
        time.sleep(0.005)
    return predicate()


class TestQtMainContext:
    def test_call_soon_is_deferred(self, context: QtMainContext) -> None:
        calls: list[str] = []

        context.call_soon(lambda: calls.append("ran"))

        assert calls == []
        assert process_until(lambda: calls == ["ran"])

    def test_call_soon_preserves_order(self, context: QtMainContext) -> None:
        calls: list[int] = []

        for i in range(5):
            context.call_soon(lambda i=i: calls.append(i))

        assert process_until(lambda: len(calls) == 5)
        assert calls == [0, 1, 2, 3, 4]

    def test_call_later_waits_for_delay(self, context: QtMainContext) -> None:
        calls: list[float] = []
        started = time.monotonic()

        context.call_later(0.2, lambda: calls.append(time.monotonic() - started))

        QCoreApplication.processEvents()
        assert calls == []
        assert process_until(lambda: len(calls) == 1)
        assert calls[0] >= 0.15

    def test_call_soon_from_worker_thread_runs_on_main_thread(
        self, context: QtMainContext
    ) -> None:
        main_thread = threading.get_ident()
        ran_on: list[int] = []

        worker = threading.Thread(
            target=context.call_soon,
            args=(lambda: ran_on.append(threading.get_ident()),),
        )
        worker.start()
        worker.join()

        assert process_until(lambda: len(ran_on) == 1)
        assert ran_on == [main_thread]

    def test_callback_exception_does_not_escape(self, context: QtMainContext) -> None:
        calls: list[str] = []

        def fail() -> None:
            msg = "boom"
            raise RuntimeError(msg)

        context.call_soon(fail)
        context.call_soon(lambda: calls.append("after"))

        assert process_until(lambda: calls == ["after"])

    def test_call_repeating_until_cancelled(self, context: QtMainContext) -> None:
        ticks: list[int] = []

        handle = context.call_repeating(0.02, lambda: ticks.append(1))

        assert process_until(lambda: len(ticks) >= 3)
        assert handle.is_active
        handle.cancel()
        assert not handle.is_active
        count = len(ticks)
        process_until(lambda: False, timeout=0.1)
        assert len(ticks) == count

    def test_run_returns_after_quit(self, context: QtMainContext) -> None:
        context.call_later(0.05, context.quit)

        assert context.run() == 0
