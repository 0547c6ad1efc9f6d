"""Recurring schedule model."""

from dataclasses import dataclass
from datetime import date, time
from typing import Dict, Optional


@dataclass(frozen=True)
class Schedule:
    """One operating window, or an exception window when is_exception is set.

    Times of day are UTC. An end_time earlier than start_time wraps past
    midnight into the following day.
    """

    schedule_id: str
    start_time: time
    end_time: time
    start_date: date
    end_date: date
    recurrence_rule: str = "FREQ=DAILY"
    is_exception: bool = False
    name: Optional[str] = None

    @property
    def wraps_midnight(self) -> bool:
        return self.end_time < self.start_time

    @property
    def rule_parts(self) -> Dict[str, str]:
        """Split "FREQ=WEEKLY;BYDAY=MO,WE" into {"FREQ": "WEEKLY", "BYDAY": "MO,WE"}."""
        parts: Dict[str, str] = {}
        for chunk in self.recurrence_rule.split(";"):
            key, sep, value = chunk.partition("=")
            if sep:
                parts[key.strip().upper()] = value.strip().upper()
        return parts

    @property
    def frequency(self) -> Optional[str]:
        return self.rule_parts.get("FREQ")

    @property
    def by_day(self) -> frozenset:
        days = self.rule_parts.get("BYDAY", "")
        return frozenset(d.strip() for d in days.split(",") if d.strip())

    def covers_date(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    def __str__(self) -> str:
        return self.name or self.schedule_id
