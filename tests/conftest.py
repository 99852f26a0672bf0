"""Shared fixtures: a fixed clock, the demo store, a wired operations center."""
from __future__ import annotations

import random

import pytest

from comms.event_bus import EventBus
from coordination.alerts import AlertLifecycle
from coordination.dispatch import DispatchCoordinator
from simulation.seed import demo_snapshot
from state.store import EntityStore
from tests.lib.clock import FIXED_NOW, fixed_clock


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def store(bus) -> EntityStore:
    """Store seeded with the demo festival scenario."""
    return EntityStore(demo_snapshot(FIXED_NOW), event_bus=bus, clock=fixed_clock)


@pytest.fixture
def dispatcher(store, bus) -> DispatchCoordinator:
    return DispatchCoordinator(store, bus)


@pytest.fixture
def alerts(store, bus) -> AlertLifecycle:
    return AlertLifecycle(store, bus)


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)
