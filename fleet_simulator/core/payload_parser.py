"""Validation of inbound command, configuration and schedule payloads."""

from __future__ import annotations

import json
import logging
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Optional, Union

import voluptuous as vol

from ..const import COMPONENT_STATUSES
from ..models import Schedule
from .exceptions import ParseException

_LOGGER = logging.getLogger(__name__)

_ANCHOR_DATE = date(2000, 1, 1)


def _to_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def parse_time_of_day(value: Any) -> time:
    """Accept "HH:MM[:SS]" or a full ISO timestamp and keep the UTC time of day."""
    if isinstance(value, datetime):
        return _to_utc(value).time()
    if isinstance(value, time):
        return _to_utc(datetime.combine(_ANCHOR_DATE, value)).time()
    if not isinstance(value, str) or not value.strip():
        raise vol.Invalid(f"expected a time of day, got {value!r}")
    text = value.strip().replace("Z", "+00:00")
    try:
        if "T" in text or " " in text:
            return _to_utc(datetime.fromisoformat(text)).time()
        return _to_utc(datetime.combine(_ANCHOR_DATE, time.fromisoformat(text))).time()
    except ValueError as err:
        raise vol.Invalid(f"invalid time of day {value!r}") from err


def parse_calendar_date(value: Any) -> date:
    """Accept "YYYY-MM-DD" or a full ISO timestamp and keep the UTC date."""
    if isinstance(value, datetime):
        return _to_utc(value).date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise vol.Invalid(f"expected a date, got {value!r}")
    text = value.strip().replace("Z", "+00:00")
    try:
        if "T" in text or " " in text:
            return _to_utc(datetime.fromisoformat(text)).date()
        return date.fromisoformat(text)
    except ValueError as err:
        raise vol.Invalid(f"invalid date {value!r}") from err


_NUMBER = vol.All(vol.Any(int, float), vol.Coerce(float))

COMMAND_SCHEMA = vol.Schema(
    {
        vol.Required("command"): vol.All(str, vol.Length(min=1)),
        vol.Optional("component_id"): vol.Any(None, str),
        vol.Optional("location_id"): vol.Any(None, vol.All(vol.Any(str, int), vol.Coerce(str))),
        vol.Optional("hours"): vol.Any(None, int, float),
    },
    extra=vol.ALLOW_EXTRA,
)

CONFIGURATION_SCHEMA = vol.Schema(
    {
        vol.Required("component_id"): vol.All(str, vol.Length(min=1)),
        vol.Optional("min_threshold"): _NUMBER,
        vol.Optional("max_threshold"): _NUMBER,
        vol.Optional("max_running_hours"): vol.All(_NUMBER, vol.Range(min=0)),
        vol.Optional("status"): vol.In(COMPONENT_STATUSES),
    },
    extra=vol.ALLOW_EXTRA,
)

SCHEDULE_SCHEMA = vol.Schema(
    {
        vol.Optional("recurring_schedule_id"): vol.Any(str, int),
        vol.Optional("id"): vol.Any(str, int),
        vol.Optional("schedule_name"): vol.Any(None, str),
        vol.Optional("name"): vol.Any(None, str),
        vol.Optional("is_exception", default=False): vol.Any(bool, None),
        vol.Required("start_time"): parse_time_of_day,
        vol.Required("end_time"): parse_time_of_day,
        vol.Required("start_date"): parse_calendar_date,
        vol.Required("end_date"): parse_calendar_date,
        vol.Optional("recurrence_rule", default="FREQ=DAILY"): vol.All(str, vol.Length(min=1)),
    },
    extra=vol.ALLOW_EXTRA,
)

SCHEDULES_MESSAGE_SCHEMA = vol.Schema(
    {vol.Required("schedules"): vol.Any(None, [dict])},
    extra=vol.ALLOW_EXTRA,
)


def decode_json(payload: Union[bytes, str]) -> Optional[Dict[str, Any]]:
    """Decode a JSON object from an MQTT payload.

    Returns:
        The decoded object, or None if the payload is not a JSON object
    """
    try:
        text = payload.decode("utf-8") if isinstance(payload, (bytes, bytearray)) else payload
        data = json.loads(text)
    except (UnicodeDecodeError, ValueError, TypeError) as exc:
        _LOGGER.error(f"Malformed payload, not JSON: {exc}")
        return None
    if not isinstance(data, dict):
        _LOGGER.error(f"Malformed payload, expected a JSON object: {type(data).__name__}")
        return None
    return data


def _validate(schema: vol.Schema, payload: Union[bytes, str], kind: str) -> Optional[Dict[str, Any]]:
    data = decode_json(payload)
    if data is None:
        return None
    try:
        return schema(data)
    except vol.Invalid as err:
        _LOGGER.error(f"Invalid {kind} payload: {err}")
        return None


def parse_command(payload: Union[bytes, str]) -> Optional[Dict[str, Any]]:
    """Parse a command message. Unknown command names are passed through."""
    return _validate(COMMAND_SCHEMA, payload, "command")


def parse_configuration(payload: Union[bytes, str]) -> Optional[Dict[str, Any]]:
    """Parse a partial component configuration update."""
    return _validate(CONFIGURATION_SCHEMA, payload, "configuration")


def build_schedule(item: Dict[str, Any], index: int = 0) -> Schedule:
    """Build a Schedule from one validated schedule mapping.

    Raises:
        ParseException: If the mapping is not a valid schedule
    """
    try:
        data = SCHEDULE_SCHEMA(item)
    except vol.Invalid as err:
        raise ParseException(f"Invalid schedule #{index}: {err}") from err

    schedule_id = data.get("recurring_schedule_id", data.get("id", index))
    if data["end_date"] < data["start_date"]:
        raise ParseException(f"Invalid schedule #{index}: end_date before start_date")
    return Schedule(
        schedule_id=str(schedule_id),
        start_time=data["start_time"],
        end_time=data["end_time"],
        start_date=data["start_date"],
        end_date=data["end_date"],
        recurrence_rule=data["recurrence_rule"],
        is_exception=bool(data.get("is_exception")),
        name=data.get("schedule_name") or data.get("name"),
    )


def parse_schedules(payload: Union[bytes, str]) -> Optional[List[Schedule]]:
    """Parse a wholesale schedule replacement.

    Any invalid entry rejects the whole message so that a device never
    runs on a partially applied schedule set.
    """
    data = _validate(SCHEDULES_MESSAGE_SCHEMA, payload, "schedules")
    if data is None:
        return None
    try:
        return [build_schedule(item, index) for index, item in enumerate(data["schedules"] or [])]
    except ParseException as err:
        _LOGGER.error(str(err))
        return None
