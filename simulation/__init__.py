"""Synthetic telemetry and AI/sensor feeds for the operations center.

Package layout:
  scheduler.py - TickScheduler, MonotonicClock, VirtualClock
  catalogue.py - sensor sources, camera detection kinds, message templates
  feed.py      - SimulationFeed (telemetry + event ticks, pure tick functions)
  seed.py      - demo scenario and JSON scenario loader
"""

from .feed import SimulationFeed, pick_event, telemetry_tick
from .scheduler import MonotonicClock, TickScheduler, VirtualClock
from .seed import build_snapshot, demo_snapshot, load_scenario

__all__ = [
    "MonotonicClock",
    "SimulationFeed",
    "TickScheduler",
    "VirtualClock",
    "build_snapshot",
    "demo_snapshot",
    "load_scenario",
    "pick_event",
    "telemetry_tick",
]
