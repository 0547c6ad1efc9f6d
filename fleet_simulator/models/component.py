"""Component model for simulated devices."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..const import COMPONENT_OBSOLETE, COMPONENT_OK, KIND_SENSOR


@dataclass
class Component:
    """A sensor, actuator or indicator owned by one device."""

    component_id: str
    name: str
    kind: str
    subtype: str
    status: str = COMPONENT_OK
    current_value: float = 0.0
    variance: float = 0.0
    range_min: Optional[float] = None
    range_max: Optional[float] = None
    min_threshold: Optional[float] = None
    max_threshold: Optional[float] = None
    running_hours: float = 0.0
    max_running_hours: Optional[float] = None
    value_alert_active: bool = False
    hours_alert_active: bool = False
    # running_hours == _accrual_base + _accrual_ticks * _accrual_step while ticks accrue
    _accrual_base: float = field(default=0.0, init=False, repr=False, compare=False)
    _accrual_ticks: int = field(default=0, init=False, repr=False, compare=False)
    _accrual_step: float = field(default=0.0, init=False, repr=False, compare=False)

    @staticmethod
    def make_id(device_id: str, name: str) -> str:
        return f"{device_id}-{name}"

    @property
    def is_sensor(self) -> bool:
        return self.kind == KIND_SENSOR

    @property
    def is_obsolete(self) -> bool:
        return self.status == COMPONENT_OBSOLETE

    @property
    def has_thresholds(self) -> bool:
        return self.min_threshold is not None and self.max_threshold is not None

    def missing_configuration(self) -> list[str]:
        """Return the names of settings required before the device may run."""
        missing = []
        if self.max_running_hours is None:
            missing.append("max_running_hours")
        if self.is_sensor:
            if self.min_threshold is None:
                missing.append("min_threshold")
            if self.max_threshold is None:
                missing.append("max_threshold")
        return missing

    def accrue_hours(self, step: float) -> None:
        """Add one tick of `step` hours without accumulating float error.

        Hours are recomputed from a base and a tick count. The base is taken
        again whenever the step changes or the counter was set from outside.
        """
        expected = self._accrual_base + self._accrual_ticks * self._accrual_step
        if step != self._accrual_step or self.running_hours != expected:
            self._accrual_base = self.running_hours
            self._accrual_ticks = 0
            self._accrual_step = step
        self._accrual_ticks += 1
        self.running_hours = self._accrual_base + self._accrual_ticks * step

    def clamp(self, value: float) -> float:
        """Clamp a value into the physical range of the component."""
        if self.range_min is not None:
            value = max(self.range_min, value)
        if self.range_max is not None:
            value = min(self.range_max, value)
        return value

    def as_capability(self) -> Dict[str, Any]:
        return {
            "component_id": self.component_id,
            "component_name": self.name,
            "component_type": self.kind,
            "component_subtype": self.subtype,
            "status": self.status,
            "running_hours": round(self.running_hours),
            "max_running_hours": self.max_running_hours,
            "min_threshold": self.min_threshold,
            "max_threshold": self.max_threshold,
        }
