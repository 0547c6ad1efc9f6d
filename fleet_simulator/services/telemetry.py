"""Per-component telemetry simulation, running-hour accrual and alerting."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ..const import (
    ALERT_OBSOLESCENCE,
    ALERT_THRESHOLD_EXCEEDED,
    ALERT_THRESHOLD_RESOLVED,
    COMPONENT_OBSOLETE,
    COMPONENT_OK,
    COMPONENT_WARNING,
)
from ..core.dt import as_iso, utcnow
from ..models import Component, Device

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class TelemetrySample:
    """One component reading destined for the storage backend."""

    device_id: str
    location_id: str
    component_id: str
    field_name: str
    value: float
    running_hours: int
    timestamp: str
    min_threshold: Optional[float] = None
    max_threshold: Optional[float] = None

    def as_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "time": self.timestamp,
            "device_id": self.device_id,
            "location_id": self.location_id,
            "component_id": self.component_id,
            "field": self.field_name,
            "value": self.value,
            "running_hours": self.running_hours,
            "timestamp": self.timestamp,
        }
        if self.min_threshold is not None:
            payload["min_threshold"] = self.min_threshold
        if self.max_threshold is not None:
            payload["max_threshold"] = self.max_threshold
        return payload


@dataclass(frozen=True)
class ComponentAlert:
    """Alert raised on a component state transition."""

    device_id: str
    component_id: str
    alert: str
    alert_type: str
    timestamp: str

    def as_payload(self) -> Dict[str, Any]:
        return {
            "device_id": self.device_id,
            "component_id": self.component_id,
            "alert": self.alert,
            "alert_type": self.alert_type,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class RunningHoursReport:
    """Rounded running-hour counter of one component."""

    device_id: str
    component_id: str
    running_hours: int
    timestamp: str

    def as_payload(self) -> Dict[str, Any]:
        return {
            "device_id": self.device_id,
            "component_id": self.component_id,
            "running_hours": self.running_hours,
            "timestamp": self.timestamp,
        }


@dataclass
class TickResult:
    """Everything one telemetry tick wants published."""

    samples: List[TelemetrySample] = field(default_factory=list)
    alerts: List[ComponentAlert] = field(default_factory=list)
    running_hours: List[RunningHoursReport] = field(default_factory=list)

    def telemetry_batch(self) -> List[Dict[str, Any]]:
        return [sample.as_payload() for sample in self.samples]


class TelemetryEngine:
    """Advances component values and counters of a device, one tick at a time.

    The engine only mutates the device's components and returns the events
    to publish; it never talks to the network. Obsolete components keep
    appearing in the running-hours report but produce no samples or alerts.
    """

    __slots__ = ("_rng", "_clock", "_emit_resolved")

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utcnow,
        emit_resolved: bool = False,
    ) -> None:
        """Initialize the engine.

        Args:
            rng: Random source for value drift (uniform() is used)
            clock: Returns the current UTC time
            emit_resolved: Emit a threshold_resolved event when a value returns in range
        """
        self._rng = rng or random.Random()
        self._clock = clock
        self._emit_resolved = emit_resolved

    def tick(self, device: Device, hours_per_tick: float) -> TickResult:
        """Run one telemetry interval over every component of `device`."""
        timestamp = as_iso(self._clock())
        result = TickResult()

        for component in device.components:
            if not component.is_obsolete:
                if component.is_sensor:
                    self._update_sensor(device, component, timestamp, result)
                else:
                    result.samples.append(
                        self._sample(
                            device, component, 1 if component.status == COMPONENT_OK else 0, timestamp
                        )
                    )
                self._accrue_hours(device, component, hours_per_tick, timestamp, result)

            result.running_hours.append(
                RunningHoursReport(
                    device_id=device.device_id,
                    component_id=component.component_id,
                    running_hours=round(component.running_hours),
                    timestamp=timestamp,
                )
            )

        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug(
                "%s tick: %d samples, %d alerts",
                device.device_id,
                len(result.samples),
                len(result.alerts),
            )
        return result

    def _sample(self, device: Device, component: Component, value: float, timestamp: str) -> TelemetrySample:
        return TelemetrySample(
            device_id=device.device_id,
            location_id=device.location,
            component_id=component.component_id,
            field_name=component.subtype,
            value=value,
            running_hours=round(component.running_hours),
            timestamp=timestamp,
            min_threshold=component.min_threshold if component.is_sensor else None,
            max_threshold=component.max_threshold if component.is_sensor else None,
        )

    def _update_sensor(
        self, device: Device, component: Component, timestamp: str, result: TickResult
    ) -> None:
        half = component.variance / 2
        delta = self._rng.uniform(-half, half) if half else 0.0
        component.current_value = component.clamp(component.current_value + delta)
        value = component.current_value

        if component.has_thresholds:
            out_of_range = value < component.min_threshold or value > component.max_threshold
            if out_of_range and not component.value_alert_active:
                component.value_alert_active = True
                if component.status == COMPONENT_OK:
                    component.status = COMPONENT_WARNING
                result.alerts.append(
                    ComponentAlert(
                        device_id=device.device_id,
                        component_id=component.component_id,
                        alert=(
                            f"Value ({round(value, 2)}) is outside thresholds "
                            f"[{component.min_threshold}, {component.max_threshold}] "
                            f"for {component.subtype}."
                        ),
                        alert_type=ALERT_THRESHOLD_EXCEEDED,
                        timestamp=timestamp,
                    )
                )
                _LOGGER.warning(
                    f"{device.device_id} {component.component_id} value {value:.2f} out of range"
                )
            elif not out_of_range and component.value_alert_active:
                component.value_alert_active = False
                if component.status == COMPONENT_WARNING:
                    component.status = COMPONENT_OK
                _LOGGER.info(f"{device.device_id} {component.component_id} value back in range")
                if self._emit_resolved:
                    result.alerts.append(
                        ComponentAlert(
                            device_id=device.device_id,
                            component_id=component.component_id,
                            alert=f"Value ({round(value, 2)}) is back within thresholds for {component.subtype}.",
                            alert_type=ALERT_THRESHOLD_RESOLVED,
                            timestamp=timestamp,
                        )
                    )

        result.samples.append(self._sample(device, component, round(value, 2), timestamp))

    def _accrue_hours(
        self,
        device: Device,
        component: Component,
        hours_per_tick: float,
        timestamp: str,
        result: TickResult,
    ) -> None:
        if component.status == COMPONENT_OK:
            component.accrue_hours(hours_per_tick)

        limit = component.max_running_hours
        if limit is None or component.running_hours < limit or component.hours_alert_active:
            return

        component.status = COMPONENT_OBSOLETE
        component.hours_alert_active = True
        result.alerts.append(
            ComponentAlert(
                device_id=device.device_id,
                component_id=component.component_id,
                alert=f"Component '{component.name}' has exceeded its max running hours.",
                alert_type=ALERT_OBSOLESCENCE,
                timestamp=timestamp,
            )
        )
        _LOGGER.warning(
            f"{device.device_id} {component.component_id} obsolete after "
            f"{component.running_hours:.1f}h (max {limit})"
        )
