"""Tests for the recurring task used by heartbeat, telemetry and schedule ticks."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from fleet_simulator.core.timer import RecurringTask


@pytest.mark.asyncio
async def test_ticks_repeat_until_cancelled():
    """Test the callback fires every interval and never after cancel()."""
    callback = MagicMock()
    task = RecurringTask("test", 0.01, callback).start()

    await asyncio.sleep(0.1)
    task.cancel()
    fired = callback.call_count

    await asyncio.sleep(0.05)

    assert fired >= 3
    assert callback.call_count == fired
    assert not task.active


@pytest.mark.asyncio
async def test_first_tick_waits_one_interval():
    callback = MagicMock()
    task = RecurringTask("test", 10, callback).start()

    await asyncio.sleep(0.01)

    assert task.active
    callback.assert_not_called()
    task.cancel()


@pytest.mark.asyncio
async def test_failing_tick_does_not_stop_the_task():
    calls = []

    def _callback():
        calls.append(len(calls))
        if len(calls) == 1:
            raise RuntimeError("boom")

    task = RecurringTask("test", 0.01, _callback).start()
    await asyncio.sleep(0.1)

    assert len(calls) >= 3
    assert task.active
    task.cancel()


@pytest.mark.asyncio
async def test_restart_replaces_previous_run():
    task = RecurringTask("test", 10, MagicMock())
    task.start()
    first = task._task

    task.start()
    await asyncio.sleep(0.01)

    assert first.cancelled()
    assert task._task is not first
    assert task.active
    task.cancel()
    task.cancel()
    assert not task.active
