"""Device record shared by the lifecycle controller and telemetry engine."""

from dataclasses import dataclass, field
from typing import List, Optional, TYPE_CHECKING

from ..const import RUNNING_STATUSES, STATUS_OFFLINE
from .component import Component
from .schedule import Schedule

if TYPE_CHECKING:
    from ..core.timer import RecurringTask


@dataclass
class Device:
    """Mutable state of one simulated device.

    The timer handles are owned here so that every periodic task of a
    device can be cancelled from a single place.
    """

    device_id: str
    components: List[Component] = field(default_factory=list)
    status: str = STATUS_OFFLINE
    location: str = ""
    following_schedule: bool = False
    schedules: List[Schedule] = field(default_factory=list)
    heartbeat_timer: Optional["RecurringTask"] = None
    telemetry_timer: Optional["RecurringTask"] = None
    schedule_timer: Optional["RecurringTask"] = None

    @property
    def is_running(self) -> bool:
        return self.status in RUNNING_STATUSES

    def get_component(self, component_id: Optional[str]) -> Optional[Component]:
        if not component_id:
            return None
        for component in self.components:
            if component.component_id == component_id:
                return component
        return None

    def timers(self) -> List["RecurringTask"]:
        return [
            timer
            for timer in (self.heartbeat_timer, self.telemetry_timer, self.schedule_timer)
            if timer is not None
        ]
