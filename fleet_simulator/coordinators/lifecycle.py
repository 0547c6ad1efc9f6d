"""Operational state machine of one simulated device.

States: offline -> online on transport connect; online/stopped_plan ->
running on a manual Start; any state -> running_plan / stopped_plan while
following the schedule; back to offline on disconnect. Manual commands
always take the device off its schedule.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set

from ..config import FleetConfig
from ..const import (
    ALERT_CONFIGURATION_INCOMPLETE,
    CMD_FOLLOW_SCHEDULE,
    CMD_RESET,
    CMD_SET_HOURS,
    CMD_START,
    CMD_STOP,
    COMPONENT_OK,
    QOS_AT_LEAST_ONCE,
    QOS_AT_MOST_ONCE,
    STATUS_OFFLINE,
    STATUS_ONLINE,
    STATUS_RUNNING,
    STATUS_RUNNING_PLAN,
    STATUS_STOPPED_PLAN,
    TOPIC_ALERT_FORMAT,
    TOPIC_AVAILABILITY_FORMAT,
    TOPIC_COMMANDS_FORMAT,
    TOPIC_CONFIG_FORMAT,
    TOPIC_HEARTBEAT_FORMAT,
    TOPIC_RESET_RESPONSE_SUFFIX,
    TOPIC_RUNNING_HOURS_FORMAT,
    TOPIC_SCHEDULES_FORMAT,
    TOPIC_SET_HOURS_RESPONSE_SUFFIX,
    TOPIC_STATUS_FORMAT,
)
from ..core.dt import as_iso, utcnow
from ..core.payload_parser import parse_command, parse_configuration, parse_schedules
from ..core.timer import RecurringTask
from ..models import Component, Device, Schedule
from ..services.schedule_evaluator import should_run
from ..services.telemetry import ComponentAlert, TelemetryEngine

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceTopics:
    """MQTT topics of one device."""

    availability: str
    status: str
    heartbeat: str
    config: str
    commands: str
    schedules: str
    alert: str
    running_hours: str

    @classmethod
    def build(cls, prefix: str, device_id: str) -> "DeviceTopics":
        fmt = {"prefix": prefix, "device_id": device_id}
        return cls(
            availability=TOPIC_AVAILABILITY_FORMAT.format(**fmt),
            status=TOPIC_STATUS_FORMAT.format(**fmt),
            heartbeat=TOPIC_HEARTBEAT_FORMAT.format(**fmt),
            config=TOPIC_CONFIG_FORMAT.format(**fmt),
            commands=TOPIC_COMMANDS_FORMAT.format(**fmt),
            schedules=TOPIC_SCHEDULES_FORMAT.format(**fmt),
            alert=TOPIC_ALERT_FORMAT.format(**fmt),
            running_hours=TOPIC_RUNNING_HOURS_FORMAT.format(**fmt),
        )

    @property
    def reset_response(self) -> str:
        return f"{self.status}/{TOPIC_RESET_RESPONSE_SUFFIX}"

    @property
    def set_hours_response(self) -> str:
        return f"{self.status}/{TOPIC_SET_HOURS_RESPONSE_SUFFIX}"


class DeviceLifecycleController:
    """Reconciles manual commands and schedule decisions for one device.

    Every handler runs synchronously on the event loop: state is mutated
    first, then outbound publishes are spawned as background tasks whose
    outcome never feeds back into the state machine.
    """

    def __init__(
        self,
        device: Device,
        config: FleetConfig,
        transport: Any,
        telemetry_sink: Optional[Any] = None,
        engine: Optional[TelemetryEngine] = None,
        evaluator: Callable[[datetime, Sequence[Schedule]], bool] = should_run,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the controller.

        Args:
            device: Device record owned by this controller
            config: Fleet configuration (intervals, topic prefix, feature flags)
            transport: Object providing subscribe() and async_publish()
            telemetry_sink: Object providing async send_telemetry(batch), or None
            engine: Telemetry engine (a default one is created if omitted)
            evaluator: Schedule decision function
            clock: Returns the current UTC time
        """
        self.device = device
        self.config = config
        self.topics = DeviceTopics.build(config.topic_prefix, device.device_id)
        self._transport = transport
        self._telemetry_sink = telemetry_sink
        self._engine = engine or TelemetryEngine(
            clock=clock, emit_resolved=config.emit_resolved_alerts
        )
        self._evaluator = evaluator
        self._clock = clock
        self._pending: Set[asyncio.Task] = set()

    @property
    def device_id(self) -> str:
        return self.device.device_id

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _LOGGER.error(f"{self.device_id} outbound delivery failed: {exc}")

    def _publish(
        self, topic: str, payload: Dict[str, Any], qos: int = QOS_AT_LEAST_ONCE, retain: bool = False
    ) -> None:
        self._spawn(self._transport.async_publish(topic, payload, qos=qos, retain=retain))

    def _timestamp(self) -> str:
        return as_iso(self._clock())

    def publish_status(self, retain: bool = False) -> None:
        self._publish(
            self.topics.status,
            {"device_id": self.device_id, "status": self.device.status, "timestamp": self._timestamp()},
            retain=retain,
        )

    def publish_availability(self) -> None:
        self._publish(
            self.topics.availability,
            {
                "device_id": self.device_id,
                "status": self.device.status,
                "timestamp": self._timestamp(),
                "components": [c.as_capability() for c in self.device.components],
            },
            retain=True,
        )

    def send_heartbeat(self) -> None:
        self._publish(
            self.topics.heartbeat,
            {"device_id": self.device_id, "status": self.device.status, "timestamp": self._timestamp()},
            qos=QOS_AT_MOST_ONCE,
        )

    def _publish_alert(self, alert: ComponentAlert) -> None:
        self._publish(self.topics.alert, alert.as_payload())

    def _set_status(self, status: str, retain: bool = False) -> None:
        previous = self.device.status
        self.device.status = status
        if previous != status:
            _LOGGER.info(f"{self.device_id} status {previous} -> {status}")
        self.publish_status(retain=retain)

    async def async_drain(self) -> None:
        """Wait for outbound publishes spawned so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------
    # Transport events
    # ------------------------------------------------------------------

    def handle_connect(self) -> None:
        """Transport connected: announce the device and start the heartbeat."""
        _LOGGER.info(f"{self.device_id} connected to MQTT broker")
        self.device.status = STATUS_ONLINE
        self.publish_availability()
        self.publish_status(retain=True)

        self._transport.subscribe(self.topics.config, QOS_AT_LEAST_ONCE)
        self._transport.subscribe(self.topics.commands, QOS_AT_LEAST_ONCE)
        if self.config.enable_schedule_following:
            self._transport.subscribe(self.topics.schedules, QOS_AT_LEAST_ONCE)

        if self.device.heartbeat_timer is None:
            self.device.heartbeat_timer = RecurringTask(
                f"{self.device_id} heartbeat", self.config.heartbeat_interval, self.send_heartbeat
            )
        self.device.heartbeat_timer.start()

    def handle_disconnect(self) -> None:
        """Transport lost: cancel every timer and go offline."""
        _LOGGER.info(f"{self.device_id} disconnected from MQTT broker")
        self.cancel_timers()
        self.device.following_schedule = False
        self.device.location = ""
        self.device.status = STATUS_OFFLINE

    def cancel_timers(self) -> None:
        for timer in self.device.timers():
            timer.cancel()
        self.device.heartbeat_timer = None
        self.device.telemetry_timer = None
        self.device.schedule_timer = None

    def handle_message(self, topic: str, payload: bytes) -> None:
        """Dispatch one inbound message. Failures are contained to this message."""
        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug("%s message on %s: %s", self.device_id, topic, payload[:200])
        try:
            if topic == self.topics.config:
                update = parse_configuration(payload)
                if update is not None:
                    self.apply_configuration(update)
            elif topic == self.topics.commands:
                command = parse_command(payload)
                if command is not None:
                    self.handle_command(command)
            elif topic == self.topics.schedules and self.config.enable_schedule_following:
                schedules = parse_schedules(payload)
                if schedules is not None:
                    self.update_schedules(schedules)
            else:
                _LOGGER.warning(f"{self.device_id} unexpected topic: {topic}")
        except Exception:
            _LOGGER.exception(f"{self.device_id} error handling message on {topic}")

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def handle_command(self, command: Dict[str, Any]) -> None:
        name = command.get("command")
        component_id = command.get("component_id")

        if name == CMD_START:
            self.start(command.get("location_id"))
        elif name == CMD_STOP:
            self.stop()
        elif name == CMD_FOLLOW_SCHEDULE and self.config.enable_schedule_following:
            self.follow_schedule()
        elif name == CMD_RESET:
            self.reset_component(component_id)
        elif name == CMD_SET_HOURS:
            self.set_component_hours(component_id, command.get("hours"))
        else:
            _LOGGER.warning(f"{self.device_id} unknown command received: {name}")

    def start(self, location_id: Optional[str]) -> bool:
        """Manual start of a monitoring session at `location_id`."""
        if not location_id:
            _LOGGER.error(f"{self.device_id} '{CMD_START}' command received without 'location_id'")
            return False

        self._cancel_schedule_following()
        if self.device.status == STATUS_RUNNING:
            self.device.location = str(location_id)
            _LOGGER.info(f"{self.device_id} already running, location now {self.device.location}")
            return True
        if not self.check_configuration():
            _LOGGER.error(f"{self.device_id} start refused, configuration incomplete")
            return False

        self.device.location = str(location_id)
        if not self.device.is_running:
            self._start_telemetry()
        self._set_status(STATUS_RUNNING)
        _LOGGER.info(f"{self.device_id} started manually at location {self.device.location}")
        return True

    def stop(self) -> None:
        """Manual stop: ends the monitoring session and schedule control."""
        self._cancel_schedule_following()
        if self.device.status == STATUS_OFFLINE:
            _LOGGER.warning(f"{self.device_id} stop ignored, device offline")
            return
        if self._stop_telemetry():
            _LOGGER.info(f"{self.device_id} stopped manually")
        else:
            _LOGGER.info(f"{self.device_id} already stopped")
        self.device.location = ""
        self._set_status(STATUS_ONLINE)

    def follow_schedule(self) -> None:
        """Hand run/stop decisions to the schedule evaluator."""
        self.device.following_schedule = True
        _LOGGER.info(f"{self.device_id} now following schedule plan")
        if self.device.schedule_timer is None:
            self.device.schedule_timer = RecurringTask(
                f"{self.device_id} schedule check",
                self.config.schedule_check_interval,
                self.check_schedule,
            )
        self.device.schedule_timer.start()
        self._apply_schedule_decision()

    def _cancel_schedule_following(self) -> None:
        self.device.following_schedule = False
        if self.device.schedule_timer is not None:
            self.device.schedule_timer.cancel()
            self.device.schedule_timer = None

    def reset_component(self, component_id: Optional[str]) -> bool:
        """Maintenance reset of a component's running-hour counter."""
        if not component_id:
            _LOGGER.error(f"{self.device_id} '{CMD_RESET}' command received without 'component_id'")
            return False

        component = self.device.get_component(component_id)
        error = self._component_error(component, component_id, "reset")
        if error is not None:
            self._publish(
                self.topics.reset_response,
                self._response(component_id, "reset_failed", error=error),
            )
            return False

        component.running_hours = 0.0
        component.value_alert_active = False
        component.hours_alert_active = False
        component.status = COMPONENT_OK
        _LOGGER.info(f"{self.device_id} running hours reset for {component_id}")
        self._publish(self.topics.reset_response, self._response(component_id, "reset_success"))
        return True

    def set_component_hours(self, component_id: Optional[str], hours: Any) -> bool:
        """Overwrite a component's running-hour counter."""
        if (
            not component_id
            or isinstance(hours, bool)
            or not isinstance(hours, (int, float))
            or hours < 0
        ):
            _LOGGER.error(
                f"{self.device_id} invalid '{CMD_SET_HOURS}' command, "
                f"'component_id' and non-negative 'hours' are required"
            )
            return False

        component = self.device.get_component(component_id)
        error = self._component_error(component, component_id, "set hours")
        if error is not None:
            self._publish(
                self.topics.set_hours_response,
                self._response(component_id, "set_failed", error=error),
            )
            return False

        component.running_hours = float(hours)
        _LOGGER.info(f"{self.device_id} running hours of {component_id} set to {hours}")
        self._publish(
            self.topics.set_hours_response,
            self._response(component_id, "set_success", running_hours=component.running_hours),
        )
        return True

    def _component_error(self, component: Optional[Component], component_id: str, action: str) -> Optional[str]:
        if component is None:
            _LOGGER.warning(f"{self.device_id} cannot {action}: component '{component_id}' not found")
            return "Component not found"
        if component.is_obsolete:
            _LOGGER.warning(f"{self.device_id} cannot {action}: component '{component_id}' is obsolete")
            return "Component is obsolete"
        return None

    def _response(self, component_id: str, status: str, **extra: Any) -> Dict[str, Any]:
        payload = {
            "device_id": self.device_id,
            "component_id": component_id,
            "status": status,
            "timestamp": self._timestamp(),
        }
        payload.update(extra)
        return payload

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def apply_configuration(self, update: Dict[str, Any]) -> bool:
        """Merge a partial configuration into one component. Never changes run state."""
        component_id = update.get("component_id")
        component = self.device.get_component(component_id)
        if component is None:
            _LOGGER.warning(f"{self.device_id} component '{component_id}' not found for configuration")
            return False

        if "min_threshold" in update or "max_threshold" in update:
            if not component.is_sensor:
                _LOGGER.warning(
                    f"{self.device_id} thresholds received for non-sensor component '{component_id}'"
                )
            else:
                low = update.get("min_threshold", component.min_threshold)
                high = update.get("max_threshold", component.max_threshold)
                if low is not None and high is not None and low > high:
                    _LOGGER.error(
                        f"{self.device_id} rejected thresholds for '{component_id}': min {low} > max {high}"
                    )
                else:
                    component.min_threshold = low
                    component.max_threshold = high
                    _LOGGER.info(
                        f"{self.device_id} thresholds of '{component_id}' set to min={low}, max={high}"
                    )

        if "max_running_hours" in update:
            component.max_running_hours = update["max_running_hours"]
            _LOGGER.info(
                f"{self.device_id} max_running_hours of '{component_id}' set to {component.max_running_hours}"
            )

        if "status" in update:
            if component.is_obsolete:
                _LOGGER.warning(f"{self.device_id} '{component_id}' is obsolete, status update ignored")
            else:
                component.status = update["status"]
                _LOGGER.info(f"{self.device_id} status of '{component_id}' set to {component.status}")
        return True

    def check_configuration(self) -> bool:
        """Raise a configuration alert per incomplete component.

        Returns:
            True if every component is configured well enough to run
        """
        complete = True
        timestamp = self._timestamp()
        for component in self.device.components:
            missing = component.missing_configuration()
            if not missing:
                continue
            complete = False
            _LOGGER.warning(
                f"{self.device_id} component '{component.component_id}' missing {', '.join(missing)}"
            )
            self._publish_alert(
                ComponentAlert(
                    device_id=self.device_id,
                    component_id=component.component_id,
                    alert=f"Component '{component.name}' is missing configuration: {', '.join(missing)}.",
                    alert_type=ALERT_CONFIGURATION_INCOMPLETE,
                    timestamp=timestamp,
                )
            )
        return complete

    # ------------------------------------------------------------------
    # Schedules
    # ------------------------------------------------------------------

    def update_schedules(self, schedules: List[Schedule]) -> None:
        """Replace the schedule set wholesale."""
        self.device.schedules = list(schedules)
        _LOGGER.info(f"{self.device_id} schedules updated. Total schedules: {len(schedules)}")
        if self.device.following_schedule:
            self._apply_schedule_decision()

    def check_schedule(self) -> None:
        """Periodic schedule tick."""
        if not self.device.following_schedule:
            return
        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug("%s checking schedule", self.device_id)
        self._apply_schedule_decision()

    def _apply_schedule_decision(self) -> None:
        run = self._evaluator(self._clock(), self.device.schedules)
        running = self.device.is_running

        if run:
            if not running:
                if not self.check_configuration():
                    _LOGGER.error(f"{self.device_id} scheduled start refused, configuration incomplete")
                    return
                self._start_telemetry()
                self._set_status(STATUS_RUNNING_PLAN)
                _LOGGER.info(f"{self.device_id} starting based on schedule")
            elif self.device.status != STATUS_RUNNING_PLAN:
                self._set_status(STATUS_RUNNING_PLAN)
            elif _LOGGER.isEnabledFor(logging.DEBUG):
                _LOGGER.debug("%s remains running as per schedule", self.device_id)
        else:
            if running:
                self._stop_telemetry()
                self.device.location = ""
                _LOGGER.info(f"{self.device_id} stopping as it's outside of a schedule")
            if self.device.status != STATUS_STOPPED_PLAN:
                self._set_status(STATUS_STOPPED_PLAN)
            elif _LOGGER.isEnabledFor(logging.DEBUG):
                _LOGGER.debug("%s remains stopped as per schedule", self.device_id)

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------

    def _start_telemetry(self) -> None:
        if self.device.telemetry_timer is not None:
            self.device.telemetry_timer.cancel()
        _LOGGER.info(f"{self.device_id} starting data monitoring")
        self.device.telemetry_timer = RecurringTask(
            f"{self.device_id} telemetry", self.config.telemetry_interval, self.run_telemetry_tick
        ).start()

    def _stop_telemetry(self) -> bool:
        timer = self.device.telemetry_timer
        self.device.telemetry_timer = None
        if timer is None:
            return False
        timer.cancel()
        return True

    def run_telemetry_tick(self) -> None:
        """One telemetry interval: mutate components, then publish what changed."""
        result = self._engine.tick(self.device, self.config.hours_per_tick)

        for alert in result.alerts:
            self._publish_alert(alert)
        for report in result.running_hours:
            self._publish(self.topics.running_hours, report.as_payload())

        batch = result.telemetry_batch()
        if self._telemetry_sink is not None:
            self._spawn(self._telemetry_sink.send_telemetry(batch))
        elif _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug("%s telemetry batch (no sink): %s", self.device_id, batch)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def async_shutdown(self) -> None:
        """Cancel all timers and wait for in-flight publishes."""
        self.cancel_timers()
        await self.async_drain()
