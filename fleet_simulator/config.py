"""Fleet configuration for the simulator."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import voluptuous as vol

from .const import (
    COMPONENT_KINDS,
    DEFAULT_BROKER_HOST,
    DEFAULT_BROKER_PORT,
    DEFAULT_DEVICE_COUNT,
    DEFAULT_DEVICE_ID_FORMAT,
    DEFAULT_HEARTBEAT_INTERVAL,
    DEFAULT_MQTT_KEEPALIVE,
    DEFAULT_MQTT_PASSWORD,
    DEFAULT_MQTT_USERNAME,
    DEFAULT_SCHEDULE_CHECK_INTERVAL,
    DEFAULT_SIMULATION_SECONDS_PER_HOUR,
    DEFAULT_TELEMETRY_INTERVAL,
    DEFAULT_TOPIC_PREFIX,
    KIND_ACTUATOR,
    KIND_INDICATOR,
    KIND_SENSOR,
)
from .core.exceptions import ConfigurationException
from .models import Component

_LOGGER = logging.getLogger(__name__)

_POSITIVE_FLOAT = vol.All(vol.Coerce(float), vol.Range(min=0, min_included=False))
_OPTIONAL_FLOAT = vol.Any(None, vol.Coerce(float))

COMPONENT_SCHEMA = vol.Schema(
    {
        vol.Required("name"): vol.All(str, vol.Length(min=1)),
        vol.Required("kind"): vol.In(COMPONENT_KINDS),
        vol.Optional("subtype", default=""): str,
        vol.Optional("variance", default=0.0): vol.All(vol.Coerce(float), vol.Range(min=0)),
        vol.Optional("range_min", default=None): _OPTIONAL_FLOAT,
        vol.Optional("range_max", default=None): _OPTIONAL_FLOAT,
        vol.Optional("initial_value", default=0.0): vol.Coerce(float),
        vol.Optional("initial_spread", default=0.0): vol.All(vol.Coerce(float), vol.Range(min=0)),
        vol.Optional("min_threshold", default=None): _OPTIONAL_FLOAT,
        vol.Optional("max_threshold", default=None): _OPTIONAL_FLOAT,
        vol.Optional("max_running_hours", default=None): vol.Any(
            None, vol.All(vol.Coerce(float), vol.Range(min=0))
        ),
    }
)

CONFIG_SCHEMA = vol.Schema(
    {
        vol.Optional("broker_host", default=DEFAULT_BROKER_HOST): str,
        vol.Optional("broker_port", default=DEFAULT_BROKER_PORT): vol.All(
            vol.Coerce(int), vol.Range(min=1, max=65535)
        ),
        vol.Optional("mqtt_username", default=DEFAULT_MQTT_USERNAME): vol.Any(None, str),
        vol.Optional("mqtt_password", default=DEFAULT_MQTT_PASSWORD): vol.Any(None, str),
        vol.Optional("mqtt_keepalive", default=DEFAULT_MQTT_KEEPALIVE): vol.All(
            vol.Coerce(int), vol.Range(min=1)
        ),
        vol.Optional("topic_prefix", default=DEFAULT_TOPIC_PREFIX): vol.All(str, vol.Length(min=1)),
        vol.Optional("device_ids"): [vol.All(str, vol.Length(min=1))],
        vol.Optional("device_count", default=DEFAULT_DEVICE_COUNT): vol.All(
            vol.Coerce(int), vol.Range(min=0)
        ),
        vol.Optional("device_id_format", default=DEFAULT_DEVICE_ID_FORMAT): str,
        vol.Optional("enable_schedule_following", default=True): bool,
        vol.Optional("telemetry_url", default=None): vol.Any(None, vol.Url()),
        vol.Optional("telemetry_token", default=None): vol.Any(None, str),
        vol.Optional("heartbeat_interval", default=DEFAULT_HEARTBEAT_INTERVAL): _POSITIVE_FLOAT,
        vol.Optional("telemetry_interval", default=DEFAULT_TELEMETRY_INTERVAL): _POSITIVE_FLOAT,
        vol.Optional(
            "schedule_check_interval", default=DEFAULT_SCHEDULE_CHECK_INTERVAL
        ): _POSITIVE_FLOAT,
        vol.Optional(
            "simulation_seconds_per_hour", default=DEFAULT_SIMULATION_SECONDS_PER_HOUR
        ): _POSITIVE_FLOAT,
        vol.Optional("emit_resolved_alerts", default=False): bool,
        vol.Optional("component_set"): vol.All([COMPONENT_SCHEMA], vol.Length(min=1)),
    }
)


@dataclass(frozen=True)
class ComponentSpec:
    """Blueprint for a component created with every device."""

    name: str
    kind: str
    subtype: str = ""
    variance: float = 0.0
    range_min: Optional[float] = None
    range_max: Optional[float] = None
    initial_value: float = 0.0
    initial_spread: float = 0.0
    min_threshold: Optional[float] = None
    max_threshold: Optional[float] = None
    max_running_hours: Optional[float] = None

    def create(self, device_id: str, rng: Optional[random.Random] = None) -> Component:
        """Instantiate a fresh component for the given device."""
        rng = rng or random
        value = 0.0
        if self.kind == KIND_SENSOR:
            value = self.initial_value + rng.random() * self.initial_spread
        component = Component(
            component_id=Component.make_id(device_id, self.name),
            name=self.name,
            kind=self.kind,
            subtype=self.subtype,
            variance=self.variance,
            range_min=self.range_min,
            range_max=self.range_max,
            min_threshold=self.min_threshold,
            max_threshold=self.max_threshold,
            max_running_hours=self.max_running_hours,
        )
        component.current_value = component.clamp(value)
        return component


DEFAULT_COMPONENT_SET: Tuple[ComponentSpec, ...] = (
    ComponentSpec(
        name="temp-sim-001",
        kind=KIND_SENSOR,
        subtype="temperature",
        variance=0.5,
        range_min=-5.0,
        range_max=40.0,
        initial_value=20.0,
        initial_spread=15.0,
    ),
    ComponentSpec(
        name="hum-sim-001",
        kind=KIND_SENSOR,
        subtype="humidity",
        variance=2.0,
        range_min=0.0,
        range_max=100.0,
        initial_value=40.0,
        initial_spread=40.0,
    ),
    ComponentSpec(name="fan-sim-001", kind=KIND_ACTUATOR, subtype="fan"),
    ComponentSpec(name="led-sim-001", kind=KIND_INDICATOR, subtype="LED"),
)


@dataclass(frozen=True)
class FleetConfig:
    """Validated process-wide settings."""

    device_ids: Tuple[str, ...]
    broker_host: str = DEFAULT_BROKER_HOST
    broker_port: int = DEFAULT_BROKER_PORT
    mqtt_username: Optional[str] = DEFAULT_MQTT_USERNAME
    mqtt_password: Optional[str] = DEFAULT_MQTT_PASSWORD
    mqtt_keepalive: int = DEFAULT_MQTT_KEEPALIVE
    topic_prefix: str = DEFAULT_TOPIC_PREFIX
    enable_schedule_following: bool = True
    telemetry_url: Optional[str] = None
    telemetry_token: Optional[str] = field(default=None, repr=False)
    heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL
    telemetry_interval: float = DEFAULT_TELEMETRY_INTERVAL
    schedule_check_interval: float = DEFAULT_SCHEDULE_CHECK_INTERVAL
    simulation_seconds_per_hour: float = DEFAULT_SIMULATION_SECONDS_PER_HOUR
    emit_resolved_alerts: bool = False
    component_set: Tuple[ComponentSpec, ...] = DEFAULT_COMPONENT_SET

    @property
    def hours_per_tick(self) -> float:
        """Simulated running hours accrued per telemetry tick."""
        return self.telemetry_interval / self.simulation_seconds_per_hour


def load_config(data: Optional[Dict[str, Any]] = None) -> FleetConfig:
    """Validate a raw mapping and build a FleetConfig.

    Args:
        data: Raw settings (e.g. parsed from a JSON/YAML file)

    Returns:
        Validated configuration

    Raises:
        ConfigurationException: If the mapping does not match the schema
    """
    try:
        validated = CONFIG_SCHEMA(dict(data or {}))
    except vol.Invalid as err:
        _LOGGER.error(f"Invalid fleet configuration: {err}")
        raise ConfigurationException(f"Invalid configuration: {err}") from err

    device_ids = validated.pop("device_ids", None)
    device_count = validated.pop("device_count")
    device_id_format = validated.pop("device_id_format")
    if device_ids is None:
        try:
            device_ids = [
                device_id_format.format(index=index) for index in range(1, device_count + 1)
            ]
        except (KeyError, IndexError, ValueError) as err:
            raise ConfigurationException(
                f"Invalid device_id_format '{device_id_format}': {err}"
            ) from err
    if len(set(device_ids)) != len(device_ids):
        raise ConfigurationException("Device ids must be unique")

    raw_components: Optional[List[Dict[str, Any]]] = validated.pop("component_set", None)
    if raw_components is None:
        component_set = DEFAULT_COMPONENT_SET
    else:
        component_set = tuple(ComponentSpec(**item) for item in raw_components)
        names = [spec.name for spec in component_set]
        if len(set(names)) != len(names):
            raise ConfigurationException("Component names must be unique")

    config = FleetConfig(device_ids=tuple(device_ids), component_set=component_set, **validated)
    if _LOGGER.isEnabledFor(logging.DEBUG):
        _LOGGER.debug("Loaded fleet configuration: %s", config)
    return config
