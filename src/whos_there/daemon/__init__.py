"""Daemon module for activity monitoring and camera capture."""

from whos_there.daemon.activity_monitor import (
    ActivityMonitor,
    ActivityState,
    MonitorConfig,
)
from whos_there.daemon.capture_controller import (
    CaptureController,
    CaptureResult,
    SessionPhase,
)

__all__ = [
    "ActivityMonitor",
    "ActivityState",
    "CaptureController",
    "CaptureResult",
    "MonitorConfig",
    "SessionPhase",
]
