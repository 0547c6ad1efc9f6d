"""Schedule-driven device fleet simulator."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Dict, Optional

import aiohttp

from .config import FleetConfig, load_config
from .const import DOMAIN, STATUS_OFFLINE
from .coordinators.lifecycle import DeviceLifecycleController, DeviceTopics
from .core.api_client import TelemetryApiClient
from .core.dt import as_iso
from .core.exceptions import MqttException
from .core.mqtt_client import FleetMqttClient
from .models import Device

_LOGGER = logging.getLogger(__name__)


@dataclass
class FleetRuntime:
    """Everything started for a fleet, kept for teardown."""

    config: FleetConfig
    session: Optional[aiohttp.ClientSession] = None
    owns_session: bool = False
    controllers: Dict[str, DeviceLifecycleController] = field(default_factory=dict)
    clients: Dict[str, FleetMqttClient] = field(default_factory=dict)


def create_device(device_id: str, config: FleetConfig, rng: Optional[random.Random] = None) -> Device:
    """Create a device record with the configured component set."""
    return Device(
        device_id=device_id,
        components=[spec.create(device_id, rng) for spec in config.component_set],
    )


async def async_setup_device(
    runtime: FleetRuntime, device_id: str, api_client: Optional[TelemetryApiClient]
) -> bool:
    """Create, wire and connect one simulated device."""
    config = runtime.config
    device = create_device(device_id, config)
    mqtt_client = FleetMqttClient(config, device_id)
    controller = DeviceLifecycleController(device, config, mqtt_client, telemetry_sink=api_client)

    mqtt_client.set_handlers(
        controller.handle_connect, controller.handle_disconnect, controller.handle_message
    )
    mqtt_client.set_will(
        DeviceTopics.build(config.topic_prefix, device_id).status,
        {"device_id": device_id, "status": STATUS_OFFLINE, "timestamp": as_iso()},
    )

    try:
        await mqtt_client.connect()
    except MqttException as err:
        _LOGGER.error(f"Device {device_id} could not connect: {err}")
        return False

    runtime.controllers[device_id] = controller
    runtime.clients[device_id] = mqtt_client
    return True


async def async_setup_fleet(
    config: FleetConfig, session: Optional[aiohttp.ClientSession] = None
) -> FleetRuntime:
    """Set up every configured device."""
    _LOGGER.info(f"Setting up {DOMAIN}: {len(config.device_ids)} devices")
    runtime = FleetRuntime(config=config, session=session)

    api_client: Optional[TelemetryApiClient] = None
    if config.telemetry_url:
        if runtime.session is None:
            runtime.session = aiohttp.ClientSession()
            runtime.owns_session = True
        api_client = TelemetryApiClient(runtime.session, config.telemetry_url, config.telemetry_token)
    else:
        _LOGGER.warning("No telemetry_url configured, telemetry batches are only logged")

    results = await asyncio.gather(
        *(async_setup_device(runtime, device_id, api_client) for device_id in config.device_ids)
    )
    _LOGGER.info(f"{sum(results)}/{len(results)} devices connected")
    return runtime


async def async_unload_fleet(runtime: FleetRuntime) -> None:
    """Disconnect every device and release the HTTP session."""
    for device_id, client in list(runtime.clients.items()):
        controller = runtime.controllers.get(device_id)
        try:
            await client.disconnect()
        except Exception as err:
            _LOGGER.warning(f"Error disconnecting {device_id}: {err}")
        if controller is not None:
            if controller.device.status != STATUS_OFFLINE:
                controller.handle_disconnect()
            await controller.async_shutdown()
    runtime.clients.clear()
    runtime.controllers.clear()

    if runtime.owns_session and runtime.session is not None:
        await runtime.session.close()
        runtime.session = None
    _LOGGER.info(f"{DOMAIN} unloaded")


async def async_run_fleet(config: FleetConfig) -> None:
    """Run the fleet until cancelled."""
    runtime = await async_setup_fleet(config)
    try:
        await asyncio.Event().wait()
    finally:
        await async_unload_fleet(runtime)


__all__ = [
    "FleetConfig",
    "FleetRuntime",
    "load_config",
    "create_device",
    "async_setup_fleet",
    "async_unload_fleet",
    "async_run_fleet",
]
