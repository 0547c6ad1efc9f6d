"""Data models for the fleet simulator.

This package contains the per-device record and its owned state.
"""

from .component import Component
from .device import Device
from .schedule import Schedule

__all__ = [
    "Component",
    "Device",
    "Schedule",
]
