"""OperationsCenter - the command surface the presentation layer talks to.

One OperationsCenter owns one EntityStore, the coordinators that mutate it,
an EventBus, and (optionally) the SimulationFeed.  It replaces ambient
module state: everything is created in ``create()`` and torn down in
``shutdown()``.

Reads return immutable Snapshots.  Commands return ``Result`` values;
nothing here raises for NotFound or ValidationFailed.
"""

from __future__ import annotations

import random
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Optional

from loguru import logger

from comms.event_bus import EventBus
from coordination.alerts import AlertDraft, AlertLifecycle, MessageDraft
from coordination.dispatch import DispatchCoordinator
from simulation.feed import SimulationFeed
from simulation.scheduler import Clock
from simulation.seed import demo_snapshot, load_scenario
from state.models import (
    Alert,
    Incident,
    IncidentSeverity,
    IncidentType,
    Message,
    Position,
    Unit,
    UnitStatus,
)
from state.results import Result
from state.snapshot import Snapshot
from state.store import EntityStore

if TYPE_CHECKING:
    from app.config import Settings


class OperationsCenter:
    """Facade over the store, the coordinators and the simulation feed."""

    def __init__(
        self,
        store: EntityStore,
        event_bus: EventBus,
        feed: Optional[SimulationFeed] = None,
        operator_id: str = "Command Center",
    ) -> None:
        self.store = store
        self.event_bus = event_bus
        self.dispatcher = DispatchCoordinator(store, event_bus)
        self.alerts = AlertLifecycle(store, event_bus)
        self.feed = feed
        self.operator_id = operator_id
        self._shut_down = False

    # -- Lifecycle ----------------------------------------------------------

    @classmethod
    def create(
        cls,
        settings: Optional[Settings] = None,
        *,
        initial: Optional[Snapshot] = None,
        clock: Optional[Callable[[], datetime]] = None,
        tick_clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
        start_feed: bool = True,
    ) -> OperationsCenter:
        """Build a fully wired center.

        *initial* overrides the configured scenario.  *clock* supplies entity
        timestamps, *tick_clock* drives the simulation timers.
        """
        if settings is None:
            from app.config import settings as default_settings
            settings = default_settings

        if initial is None:
            if settings.scenario_path:
                initial = load_scenario(settings.scenario_path)
                logger.info(f"Loaded scenario from {settings.scenario_path}")
            else:
                initial = demo_snapshot()

        event_bus = EventBus()
        store = EntityStore(
            initial,
            event_bus=event_bus,
            clock=clock,
            message_retention=settings.message_retention,
        )
        center = cls(store, event_bus, operator_id=settings.operator_id)

        if settings.simulation_enabled:
            center.feed = SimulationFeed(
                store,
                center.alerts,
                event_bus=event_bus,
                clock=tick_clock,
                rng=rng or random.Random(settings.simulation_seed),
                telemetry_interval=settings.telemetry_interval,
                event_interval=settings.event_interval,
                event_probability=settings.event_probability,
                alert_probability=settings.alert_probability,
            )
            if start_feed:
                center.feed.start()

        snap = store.snapshot()
        logger.info(
            f"Operations center ready: {len(snap.units)} units, "
            f"{len(snap.incidents)} incidents, {len(snap.alerts)} alerts"
        )
        return center

    def shutdown(self) -> None:
        """Stop scheduling ticks.  Safe to call more than once."""
        if self._shut_down:
            return
        self._shut_down = True
        if self.feed is not None:
            self.feed.stop()
        logger.info(f"Operations center shut down at v{self.store.version}")

    # -- Reads --------------------------------------------------------------

    def get_snapshot(self) -> Snapshot:
        return self.store.snapshot()

    # -- Commands -----------------------------------------------------------

    def dispatch_unit(self, unit_id: str, incident_id: Optional[str] = None) -> Result[Unit]:
        return self.dispatcher.dispatch(unit_id, incident_id)

    def release_unit(self, unit_id: str) -> Result[Unit]:
        return self.dispatcher.release(unit_id)

    def set_unit_status(self, unit_id: str, status: UnitStatus) -> Result[Unit]:
        return self.dispatcher.set_unit_status(unit_id, status)

    def move_unit(
        self, unit_id: str, x: float, y: float, location: Optional[str] = None
    ) -> Result[Unit]:
        return self.dispatcher.move_unit(unit_id, x, y, location)

    def report_incident(
        self,
        type: IncidentType,
        severity: IncidentSeverity,
        description: str,
        location: str,
        position: Position,
        incident_id: Optional[str] = None,
    ) -> Result[Incident]:
        return self.dispatcher.report_incident(
            type, severity, description, location, position, incident_id
        )

    def resolve_incident(self, incident_id: str) -> Result[Incident]:
        return self.dispatcher.resolve_incident(incident_id)

    def raise_alert(self, draft: AlertDraft) -> Result[Alert]:
        return self.alerts.raise_alert(draft)

    def acknowledge_alert(self, alert_id: str) -> Result[Alert]:
        return self.alerts.acknowledge(alert_id)

    def clear_all_alerts(self) -> Result[int]:
        return self.alerts.clear_all()

    def compose_message(self, draft: MessageDraft) -> Result[Message]:
        return self.alerts.compose(draft)

    def acknowledge_message(self, message_id: str, actor_id: Optional[str] = None) -> Result[Message]:
        return self.alerts.acknowledge_message(message_id, actor_id or self.operator_id)

    def report_camera_event(self, camera_id: str, event_type: str) -> Result[Alert]:
        return self.alerts.report_camera_event(camera_id, event_type)
