"""Operation engine services: schedule evaluation and telemetry simulation."""

__all__ = [
    "should_run",
    "TelemetryEngine",
]
