"""Input activity events.

The Quartz event tap lives in ``whos_there.input_events.event_tap`` and is
imported on demand because it requires pyobjc on macOS.
"""

from whos_there.input_events.data import ActivityEvent, ActivityKind
from whos_there.input_events.errors import EventTapPermissionError

__all__ = ["ActivityEvent", "ActivityKind", "EventTapPermissionError"]
