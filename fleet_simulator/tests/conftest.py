"""Pytest configuration and fixtures for fleet simulator tests."""

from __future__ import annotations

import json
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List
from unittest.mock import AsyncMock, MagicMock

import pytest

from fleet_simulator.config import ComponentSpec, FleetConfig, load_config
from fleet_simulator.const import KIND_ACTUATOR, KIND_INDICATOR, KIND_SENSOR
from fleet_simulator.models import Schedule

DEVICE_ID = "DEV-001"

# Monday
MONDAY_0900 = datetime(2024, 6, 10, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def fleet_config() -> FleetConfig:
    """Single-device config with the default (unconfigured) component set."""
    return load_config({"device_ids": [DEVICE_ID]})


@pytest.fixture
def configured_config() -> FleetConfig:
    """Single-device config whose components are ready to run."""
    return load_config(
        {
            "device_ids": [DEVICE_ID],
            "component_set": [
                {
                    "name": "temp",
                    "kind": KIND_SENSOR,
                    "subtype": "temperature",
                    "variance": 0,
                    "range_min": -5,
                    "range_max": 40,
                    "initial_value": 20,
                    "min_threshold": 10,
                    "max_threshold": 35,
                    "max_running_hours": 87600,
                },
                {
                    "name": "fan",
                    "kind": KIND_ACTUATOR,
                    "subtype": "fan",
                    "max_running_hours": 30000,
                },
            ],
        }
    )


@pytest.fixture
def sensor_spec() -> ComponentSpec:
    return ComponentSpec(
        name="temp",
        kind=KIND_SENSOR,
        subtype="temperature",
        variance=0.0,
        range_min=-5.0,
        range_max=40.0,
        initial_value=20.0,
        min_threshold=10.0,
        max_threshold=35.0,
    )


@pytest.fixture
def indicator_spec() -> ComponentSpec:
    return ComponentSpec(name="led", kind=KIND_INDICATOR, subtype="LED")


@pytest.fixture
def mock_transport():
    """Mock MQTT transport."""
    transport = MagicMock()
    transport.is_connected = True
    transport.subscribe = MagicMock(return_value=True)
    transport.async_publish = AsyncMock(return_value=True)
    return transport


@pytest.fixture
def mock_api_client():
    """Mock telemetry HTTP client."""
    client = MagicMock()
    client.send_telemetry = AsyncMock(return_value=True)
    return client


@pytest.fixture
def fixed_clock():
    """Clock frozen on a Monday morning."""
    return lambda: MONDAY_0900


def make_schedule(
    start: str = "08:00:00",
    end: str = "18:00:00",
    rule: str = "FREQ=DAILY",
    start_date: date = date(2024, 1, 1),
    end_date: date = date(2024, 12, 31),
    is_exception: bool = False,
    name: str = "test",
) -> Schedule:
    return Schedule(
        schedule_id=name,
        start_time=time.fromisoformat(start),
        end_time=time.fromisoformat(end),
        start_date=start_date,
        end_date=end_date,
        recurrence_rule=rule,
        is_exception=is_exception,
        name=name,
    )


def encode(payload: Dict[str, Any]) -> bytes:
    return json.dumps(payload).encode("utf-8")


def published(transport, topic: str) -> List[Dict[str, Any]]:
    """Payloads the controller published on `topic`, in order."""
    return [c.args[1] for c in transport.async_publish.call_args_list if c.args[0] == topic]
