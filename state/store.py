"""EntityStore - single owner of all operations-center state.

Architecture
------------
The store holds one immutable ``Snapshot`` and a single store-scoped lock.
Every change goes through ``transact()``:

  1. take the lock
  2. run the mutation: a total function Snapshot -> Snapshot (or a
     recoverable failure value, which aborts without committing)
  3. check cross-entity invariants on the candidate snapshot
  4. commit it with ``version + 1`` and publish ``state_changed``

Locking is per store, not per entity, because the Unit <-> Incident
back-reference must be updated in the same commit.  Readers never take
the lock for longer than a reference read; ``snapshot()`` returns the
committed object itself, which is immutable.

An ``InvariantViolation`` means a coordinator produced a broken state.
It is logged at error level and the mutation is rejected; the committed
snapshot is untouched.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Optional, Union

from loguru import logger

from state.models import (
    MAP_MAX,
    MAP_MIN,
    CrowdAnalytics,
    Incident,
    SensorSource,
    Unit,
    utcnow,
)
from state.results import (
    InvariantViolation,
    NotFound,
    Rejected,
    Result,
    ValidationFailed,
)
from state.snapshot import Snapshot

if TYPE_CHECKING:
    from comms.event_bus import EventBus

Mutation = Callable[[Snapshot], Union[Snapshot, NotFound, ValidationFailed]]

DEFAULT_MESSAGE_RETENTION = 50


class EntityStore:
    """Thread-safe owner of units, incidents, alerts, messages and analytics."""

    def __init__(
        self,
        initial: Optional[Snapshot] = None,
        event_bus: Optional[EventBus] = None,
        clock: Optional[Callable[[], datetime]] = None,
        message_retention: int = DEFAULT_MESSAGE_RETENTION,
    ) -> None:
        self._lock = threading.RLock()
        self._event_bus = event_bus
        self._clock = clock or utcnow
        self.message_retention = message_retention
        self._state = Snapshot()
        if initial is not None:
            result = self.load(initial)
            if not result.ok:
                raise ValueError(f"Initial state rejected: {result.error.detail}")

    # -- Read side ----------------------------------------------------------

    def snapshot(self) -> Snapshot:
        with self._lock:
            return self._state

    @property
    def version(self) -> int:
        return self.snapshot().version

    def now(self) -> datetime:
        return self._clock()

    def set_event_bus(self, event_bus: Optional[EventBus]) -> None:
        self._event_bus = event_bus

    # -- Write side ---------------------------------------------------------

    def transact(self, mutation: Mutation, reason: str = "update") -> Result[Snapshot]:
        """Apply *mutation* atomically.

        Returns the committed snapshot on success.  A mutation returning its
        input unchanged is a no-op (``changed=False``, no version bump).
        """
        with self._lock:
            current = self._state
            try:
                candidate = mutation(current)
                if isinstance(candidate, (NotFound, ValidationFailed)):
                    return Result.failure(candidate)
                if candidate is current:
                    return Result.success(current, changed=False)
                self._check_invariants(current, candidate)
            except InvariantViolation as e:
                logger.error(f"Store rejected '{reason}' (v{current.version}): {e}")
                return Result.failure(Rejected(str(e)))

            committed = replace(candidate, version=current.version + 1)
            self._state = committed
            logger.debug(f"Store v{committed.version}: {reason}")
            if self._event_bus is not None:
                self._event_bus.publish("state_changed", {
                    "version": committed.version,
                    "reason": reason,
                })
            return Result.success(committed)

    def load(self, snapshot: Snapshot) -> Result[Snapshot]:
        """Replace the whole state (seeding).  Subject to the same invariants."""
        def _load(current: Snapshot) -> Snapshot:
            return replace(snapshot, version=current.version)
        return self.transact(_load, reason="load")

    def add_unit(self, unit: Unit) -> Result[Snapshot]:
        def _add(state: Snapshot):
            if state.unit(unit.id) is not None:
                return ValidationFailed(f"unit {unit.id!r} already exists", "id")
            return state.with_unit(replace(unit, position=unit.position.clamped()))
        return self.transact(_add, reason=f"add_unit:{unit.id}")

    def add_incident(self, incident: Incident) -> Result[Snapshot]:
        def _add(state: Snapshot):
            if state.incident(incident.id) is not None:
                return ValidationFailed(f"incident {incident.id!r} already exists", "id")
            return state.with_incident(
                replace(incident, position=incident.position.clamped())
            )
        return self.transact(_add, reason=f"add_incident:{incident.id}")

    def replace_unit(self, unit: Unit) -> Result[Snapshot]:
        def _replace(state: Snapshot):
            if state.unit(unit.id) is None:
                return NotFound("unit", unit.id)
            return state.with_unit(unit)
        return self.transact(_replace, reason=f"unit:{unit.id}")

    def replace_incident(self, incident: Incident) -> Result[Snapshot]:
        def _replace(state: Snapshot):
            if state.incident(incident.id) is None:
                return NotFound("incident", incident.id)
            return state.with_incident(incident)
        return self.transact(_replace, reason=f"incident:{incident.id}")

    def update_analytics(
        self, fn: Callable[[CrowdAnalytics], CrowdAnalytics], reason: str = "analytics"
    ) -> Result[Snapshot]:
        return self.transact(lambda s: replace(s, analytics=fn(s.analytics)), reason=reason)

    def update_sources(self, sources: tuple[SensorSource, ...]) -> Result[Snapshot]:
        return self.transact(lambda s: replace(s, sources=tuple(sources)), reason="sources")

    # -- Invariants ---------------------------------------------------------

    def _check_invariants(self, previous: Snapshot, state: Snapshot) -> None:
        for kind, items in (
            ("unit", state.units),
            ("incident", state.incidents),
            ("alert", state.alerts),
            ("message", state.messages),
            ("source", state.sources),
        ):
            ids = [item.id for item in items]
            if len(ids) != len(set(ids)):
                raise InvariantViolation(f"duplicate {kind} id")

        for unit in state.units:
            self._check_position(f"unit {unit.id}", unit.position)
            if unit.assigned_incident is None:
                continue
            incident = state.incident(unit.assigned_incident)
            if incident is None:
                raise InvariantViolation(
                    f"unit {unit.id} assigned to missing incident {unit.assigned_incident}"
                )
            if unit.id not in incident.assigned_units:
                raise InvariantViolation(
                    f"unit {unit.id} -> {incident.id} has no back-reference"
                )

        for incident in state.incidents:
            self._check_position(f"incident {incident.id}", incident.position)
            if incident.resolved:
                # Resolved incidents keep historical assignments
                continue
            for unit_id in incident.assigned_units:
                unit = state.unit(unit_id)
                if unit is None:
                    raise InvariantViolation(
                        f"incident {incident.id} references missing unit {unit_id}"
                    )
                if unit.assigned_incident != incident.id:
                    raise InvariantViolation(
                        f"incident {incident.id} lists {unit_id} but unit points at "
                        f"{unit.assigned_incident}"
                    )

        previously_acked = {a.id for a in previous.alerts if a.acknowledged}
        for alert in state.alerts:
            if alert.id in previously_acked and not alert.acknowledged:
                raise InvariantViolation(f"alert {alert.id} un-acknowledged")

        if len(state.messages) > self.message_retention:
            raise InvariantViolation(
                f"{len(state.messages)} messages exceeds retention {self.message_retention}"
            )

        analytics = state.analytics
        for label, value in (
            ("crowd density", analytics.density),
            ("predicted density", analytics.predicted_density),
        ):
            if not MAP_MIN <= value <= MAP_MAX:
                raise InvariantViolation(f"{label} {value} outside [0, 100]")
        for prediction in analytics.predictions:
            if not (0.0 <= prediction.risk <= 1.0 and 0.0 <= prediction.confidence <= 1.0):
                raise InvariantViolation(f"prediction for {prediction.location} out of range")

    @staticmethod
    def _check_position(label: str, position) -> None:
        if not (MAP_MIN <= position.x <= MAP_MAX and MAP_MIN <= position.y <= MAP_MAX):
            raise InvariantViolation(f"{label} position {position} outside map")
