from dataclasses import dataclass
from enum import Enum


class ActivityKind(Enum):
    KEY_DOWN = "key_down"
    KEY_UP = "key_up"
    FLAGS_CHANGED = "flags_changed"
    MOUSE_DOWN = "mouse_down"
    MOUSE_MOVED = "mouse_moved"
    MOUSE_DRAGGED = "mouse_dragged"
    SCROLL = "scroll"


@dataclass(frozen=True)
class ActivityEvent:
    """A single piece of evidence that a user is at the machine.

    Attributes:
        kind: The class of input that was observed.
        timestamp: Monotonic time in seconds when the event was delivered.
    """

    kind: ActivityKind
    timestamp: float
