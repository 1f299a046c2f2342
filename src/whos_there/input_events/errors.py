PERMISSION_GUIDANCE = (
    "Failed to create event tap. Grant Input Monitoring permission to the "
    "terminal or Python interpreter running WhosThere: "
    "System Settings > Privacy & Security > Input Monitoring"
)


class EventTapPermissionError(PermissionError):
    """Raised when the system refuses to create the activity event tap."""
