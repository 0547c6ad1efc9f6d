"""Tests for inbound payload validation."""

from __future__ import annotations

from datetime import date, time

import pytest
import voluptuous as vol

from fleet_simulator.core.exceptions import ParseException
from fleet_simulator.core.payload_parser import (
    build_schedule,
    decode_json,
    parse_command,
    parse_configuration,
    parse_schedules,
    parse_time_of_day,
)

from conftest import encode


def _schedule_item(**overrides):
    item = {
        "recurring_schedule_id": "abc",
        "schedule_name": "Office hours",
        "start_time": "08:00:00",
        "end_time": "18:00:00",
        "start_date": "2024-01-01",
        "end_date": "2024-12-31",
        "recurrence_rule": "FREQ=WEEKLY;BYDAY=MO,TU",
        "is_exception": False,
    }
    item.update(overrides)
    return item


def test_decode_json_rejects_non_objects():
    assert decode_json(b'{"a": 1}') == {"a": 1}
    assert decode_json("[1, 2]") is None
    assert decode_json(b"not json") is None
    assert decode_json(b"\xff") is None
    assert decode_json("") is None


def test_parse_command():
    command = parse_command(encode({"command": "Start", "location_id": 12, "extra": True}))

    assert command["command"] == "Start"
    assert command["location_id"] == "12"
    assert command["extra"] is True


def test_parse_command_requires_name():
    assert parse_command(encode({"location_id": "x"})) is None
    assert parse_command(encode({"command": ""})) is None


def test_parse_configuration():
    update = parse_configuration(encode({"component_id": "c1", "max_threshold": 30}))
    assert update == {"component_id": "c1", "max_threshold": 30.0}

    assert parse_configuration(encode({"component_id": "c1", "status": "broken"})) is None
    assert parse_configuration(encode({"component_id": "c1", "max_running_hours": -1})) is None
    assert parse_configuration(encode({"max_threshold": 30})) is None


def test_parse_time_of_day_formats():
    assert parse_time_of_day("08:30") == time(8, 30)
    assert parse_time_of_day("08:30:15") == time(8, 30, 15)
    assert parse_time_of_day("2024-06-10T22:00:00Z") == time(22, 0)
    assert parse_time_of_day("2024-06-10T22:00:00+02:00") == time(20, 0)
    with pytest.raises(vol.Invalid):
        parse_time_of_day("25:00")


def test_build_schedule():
    schedule = build_schedule(_schedule_item())

    assert schedule.schedule_id == "abc"
    assert schedule.name == "Office hours"
    assert schedule.start_time == time(8, 0)
    assert schedule.end_date == date(2024, 12, 31)
    assert schedule.frequency == "WEEKLY"
    assert schedule.by_day == frozenset({"MO", "TU"})
    assert schedule.is_exception is False


def test_build_schedule_defaults_and_aliases():
    item = _schedule_item(id=5, name="alt", start_date="2024-03-01T00:00:00.000Z")
    del item["recurring_schedule_id"]
    del item["schedule_name"]
    del item["recurrence_rule"]

    schedule = build_schedule(item)

    assert schedule.schedule_id == "5"
    assert schedule.name == "alt"
    assert schedule.start_date == date(2024, 3, 1)
    assert schedule.recurrence_rule == "FREQ=DAILY"


def test_build_schedule_rejects_inverted_dates():
    with pytest.raises(ParseException):
        build_schedule(_schedule_item(start_date="2024-12-31", end_date="2024-01-01"))


def test_parse_schedules_is_all_or_nothing():
    good = _schedule_item()
    bad = _schedule_item(end_time=None)

    assert len(parse_schedules(encode({"schedules": [good, good]}))) == 2
    assert parse_schedules(encode({"schedules": [good, bad]})) is None
    assert parse_schedules(encode({"schedules": []})) == []
    assert parse_schedules(encode({"other": []})) is None
