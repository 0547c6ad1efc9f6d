"""Custom exceptions for the fleet simulator."""


class FleetSimulatorException(Exception):
    """Base exception for the fleet simulator."""

    pass


class ApiException(FleetSimulatorException):
    """Exception for telemetry API errors."""

    pass


class AuthException(ApiException):
    """Exception for authentication errors."""

    pass


class MqttException(FleetSimulatorException):
    """Exception for MQTT-related errors."""

    pass


class ParseException(FleetSimulatorException):
    """Exception for inbound payload parsing errors."""

    pass


class ConfigurationException(FleetSimulatorException):
    """Exception for invalid fleet configuration."""

    pass
