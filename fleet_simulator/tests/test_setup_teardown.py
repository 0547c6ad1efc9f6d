"""Tests for setup and teardown of the fleet."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from fleet_simulator import async_setup_fleet, async_unload_fleet
from fleet_simulator.config import load_config
from fleet_simulator.const import STATUS_OFFLINE
from fleet_simulator.core.api_client import TelemetryApiClient
from fleet_simulator.core.exceptions import MqttException
from fleet_simulator.core.mqtt_client import FleetMqttClient


@pytest.mark.asyncio
async def test_setup_fleet_success():
    """Test every configured device is created and connected."""
    config = load_config({"device_ids": ["A", "B"]})
    with patch.object(FleetMqttClient, "connect", new_callable=AsyncMock) as mock_connect:
        runtime = await async_setup_fleet(config)

    assert set(runtime.controllers) == {"A", "B"}
    assert mock_connect.await_count == 2
    assert runtime.session is None
    assert runtime.controllers["A"].device.status == STATUS_OFFLINE


@pytest.mark.asyncio
async def test_setup_fleet_skips_unreachable_device():
    config = load_config({"device_ids": ["A", "B"]})
    with patch.object(
        FleetMqttClient, "connect", new_callable=AsyncMock, side_effect=[None, MqttException("refused")]
    ):
        runtime = await async_setup_fleet(config)

    assert len(runtime.controllers) == 1


@pytest.mark.asyncio
async def test_setup_fleet_with_telemetry_backend():
    config = load_config(
        {"device_ids": ["A"], "telemetry_url": "https://telemetry.example.com/ingest", "telemetry_token": "t"}
    )
    session = MagicMock()
    with patch.object(FleetMqttClient, "connect", new_callable=AsyncMock):
        runtime = await async_setup_fleet(config, session=session)

    sink = runtime.controllers["A"]._telemetry_sink
    assert isinstance(sink, TelemetryApiClient)
    assert sink.url == "https://telemetry.example.com/ingest"
    assert runtime.owns_session is False


@pytest.mark.asyncio
async def test_unload_fleet():
    """Test unload disconnects every client and clears the runtime."""
    config = load_config({"device_ids": ["A"]})
    with patch.object(FleetMqttClient, "connect", new_callable=AsyncMock):
        runtime = await async_setup_fleet(config)
    controller = runtime.controllers["A"]
    controller.handle_connect()

    with patch.object(FleetMqttClient, "disconnect", new_callable=AsyncMock) as mock_disconnect:
        await async_unload_fleet(runtime)

    mock_disconnect.assert_awaited_once()
    assert controller.device.status == STATUS_OFFLINE
    assert controller.device.timers() == []
    assert runtime.controllers == {}
    assert runtime.clients == {}
