"""Per-device coordination of commands, schedules and periodic ticks."""

__all__ = [
    "DeviceLifecycleController",
    "DeviceTopics",
]
