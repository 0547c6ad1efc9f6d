"""Core collaborators for the fleet simulator.

This package contains the infrastructure around the operation engine:
- MQTT client for commands, schedules and status
- HTTP API client for telemetry delivery
- Inbound payload parser
- Recurring task timers
- Custom exceptions
"""

__all__ = [
    "FleetMqttClient",
    "TelemetryApiClient",
    "RecurringTask",
    "FleetSimulatorException",
    "ApiException",
    "AuthException",
    "MqttException",
    "ParseException",
    "ConfigurationException",
]
