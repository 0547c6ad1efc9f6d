"""Decide from a device's schedule set whether it should currently be running.

Exception schedules win over everything: if any active exception window
contains the instant, the device must not run. Otherwise the device runs
when at least one normal schedule matches both its time window and its
recurrence rule.

All evaluation happens in UTC. A window whose end time is earlier than its
start time runs past midnight; such a window is anchored on the day it
starts, so 22:00-02:00 on Monday also covers Tuesday 01:30, and date
validity and weekday matching are checked against Monday. A window whose
start equals its end only contains that exact instant.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Iterator, Optional, Sequence, Tuple

from ..const import DAY_CODES, FREQ_DAILY, FREQ_MONTHLY, FREQ_ONCE, FREQ_WEEKLY
from ..models import Schedule

_LOGGER = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)


def to_utc(now: datetime) -> datetime:
    """Normalize an instant to aware UTC. Naive datetimes are taken as UTC."""
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def day_code(day: date) -> str:
    """Two-letter iCalendar code of a date ("MO" ... "SU")."""
    return DAY_CODES[day.weekday()]


def project_window(schedule: Schedule, anchor: date) -> Tuple[datetime, datetime]:
    """Project the schedule's time of day onto a calendar date."""
    start = datetime.combine(anchor, schedule.start_time, tzinfo=timezone.utc)
    end = datetime.combine(anchor, schedule.end_time, tzinfo=timezone.utc)
    if end < start:
        end += ONE_DAY
    return start, end


def active_anchors(schedule: Schedule, now: datetime) -> Iterator[date]:
    """Yield the dates whose projected window of this schedule contains `now`.

    Only today's window can contain `now`, except for overnight windows
    which may still be open from yesterday.
    """
    today = now.date()
    anchors = (today - ONE_DAY, today) if schedule.wraps_midnight else (today,)
    for anchor in anchors:
        if not schedule.covers_date(anchor):
            continue
        start, end = project_window(schedule, anchor)
        if start <= now <= end:
            yield anchor


def matches_recurrence(schedule: Schedule, anchor: date) -> bool:
    """Check the recurrence rule against the day a window starts on."""
    frequency = schedule.frequency
    if frequency == FREQ_DAILY:
        return True
    if frequency == FREQ_WEEKLY:
        return day_code(anchor) in schedule.by_day
    if frequency == FREQ_MONTHLY:
        # No day-of-month refinement: a monthly rule matches every day.
        return True
    if frequency == FREQ_ONCE:
        return anchor == schedule.start_date
    if _LOGGER.isEnabledFor(logging.DEBUG):
        _LOGGER.debug("Unsupported recurrence rule '%s' in %s", schedule.recurrence_rule, schedule)
    return False


def active_exception(schedules: Iterable[Schedule], now: datetime) -> Optional[Schedule]:
    """Return the first exception schedule whose window contains `now`."""
    now = to_utc(now)
    for schedule in schedules:
        if schedule.is_exception and any(True for _ in active_anchors(schedule, now)):
            return schedule
    return None


def matching_schedule(schedules: Iterable[Schedule], now: datetime) -> Optional[Schedule]:
    """Return the first normal schedule that allows running at `now`."""
    now = to_utc(now)
    for schedule in schedules:
        if schedule.is_exception:
            continue
        for anchor in active_anchors(schedule, now):
            if matches_recurrence(schedule, anchor):
                return schedule
    return None


def should_run(now: datetime, schedules: Sequence[Schedule]) -> bool:
    """Decide whether a device following `schedules` should be running at `now`.

    Pure function: the schedule list is not modified.
    """
    now = to_utc(now)

    blocking = active_exception(schedules, now)
    if blocking is not None:
        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug("Exception '%s' active at %s, must not run", blocking, now.isoformat())
        return False

    match = matching_schedule(schedules, now)
    if _LOGGER.isEnabledFor(logging.DEBUG):
        if match is not None:
            _LOGGER.debug("Schedule '%s' active at %s (%s)", match, now.isoformat(), day_code(now.date()))
        else:
            _LOGGER.debug("No active schedule at %s among %d", now.isoformat(), len(schedules))
    return match is not None
