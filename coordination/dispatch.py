"""Unit dispatch - assigning units to incidents and reconciling both sides.

DispatchCoordinator is the only writer of the Unit <-> Incident
back-reference.  Every operation builds the new unit *and* the affected
incidents inside a single store transaction, so a reader never sees an
incident listing a unit that does not point back at it.

Dispatch rules:
    - A unit serves at most one incident.  Dispatching it elsewhere first
      detaches it from the previous (non-resolved) incident; nothing else on
      that incident changes, not even its status.
    - A unit already responding to the requested incident (or responding
      with no incident requested) is left alone: the call is idempotent.
    - Resolved incidents accept no further assignment.  Their
      ``assigned_units`` is kept as history.
    - An active incident becomes responding when its first unit attaches.
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from typing import TYPE_CHECKING, Optional

from loguru import logger

from state.models import (
    Incident,
    IncidentSeverity,
    IncidentStatus,
    IncidentType,
    Position,
    Unit,
    UnitStatus,
)
from state.results import NotFound, Result, ValidationFailed, parse_enum
from state.snapshot import Snapshot

if TYPE_CHECKING:
    from comms.event_bus import EventBus
    from state.store import EntityStore


def _detach(state: Snapshot, unit: Unit) -> Snapshot:
    """Remove *unit* from its current incident's roster (if still open)."""
    if unit.assigned_incident is None:
        return state
    previous = state.incident(unit.assigned_incident)
    if previous is None or previous.resolved:
        return state
    return state.with_incident(
        replace(previous, assigned_units=previous.assigned_units - {unit.id})
    )


class DispatchCoordinator:
    """Applies dispatch, release and incident lifecycle rules to the store."""

    def __init__(self, store: EntityStore, event_bus: Optional[EventBus] = None) -> None:
        self._store = store
        self._event_bus = event_bus

    def _publish(self, event_type: str, data: dict) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(event_type, data)

    # -- Dispatch -----------------------------------------------------------

    def dispatch(self, unit_id: str, incident_id: Optional[str] = None) -> Result[Unit]:
        """Send *unit_id* to respond, optionally attaching it to *incident_id*."""
        previous_incident = None

        def _dispatch(state: Snapshot):
            nonlocal previous_incident
            unit = state.unit(unit_id)
            if unit is None:
                return NotFound("unit", unit_id)
            previous_incident = unit.assigned_incident

            incident = None
            if incident_id is not None:
                incident = state.incident(incident_id)
                if incident is None:
                    return NotFound("incident", incident_id)
                if incident.resolved:
                    return ValidationFailed(
                        f"incident {incident_id} is resolved", "incident_id"
                    )

            if unit.status == UnitStatus.RESPONDING and (
                incident_id is None or unit.assigned_incident == incident_id
            ):
                return state

            now = self._store.now()
            if incident is None:
                return state.with_unit(
                    replace(unit, status=UnitStatus.RESPONDING, last_update=now)
                )

            state = _detach(state, unit)
            # Re-read: detaching may have touched this very incident
            incident = state.incident(incident_id)
            status = incident.status
            if status == IncidentStatus.ACTIVE:
                status = IncidentStatus.RESPONDING
            state = state.with_incident(
                replace(
                    incident,
                    status=status,
                    assigned_units=incident.assigned_units | {unit.id},
                )
            )
            return state.with_unit(
                replace(
                    unit,
                    status=UnitStatus.RESPONDING,
                    assigned_incident=incident.id,
                    last_update=now,
                )
            )

        result = self._store.transact(
            _dispatch, reason=f"dispatch:{unit_id}->{incident_id or '-'}"
        )
        if not result.ok:
            logger.warning(f"Dispatch {unit_id} -> {incident_id} failed: {result.error.detail}")
            return Result.failure(result.error)

        unit = result.value.unit(unit_id)
        if result.changed:
            logger.info(
                f"Dispatched {unit.name} ({unit_id})"
                + (f" to {incident_id}" if incident_id else "")
            )
            self._publish("unit_dispatched", {
                "unit_id": unit_id,
                "incident_id": unit.assigned_incident,
                "previous_incident": previous_incident,
            })
        return Result.success(unit, changed=result.changed)

    def release(self, unit_id: str) -> Result[Unit]:
        """Return a unit to service: available, detached from its incident."""

        def _release(state: Snapshot):
            unit = state.unit(unit_id)
            if unit is None:
                return NotFound("unit", unit_id)
            if unit.status == UnitStatus.AVAILABLE and unit.assigned_incident is None:
                return state
            state = _detach(state, unit)
            return state.with_unit(
                replace(
                    unit,
                    status=UnitStatus.AVAILABLE,
                    assigned_incident=None,
                    last_update=self._store.now(),
                )
            )

        result = self._store.transact(_release, reason=f"release:{unit_id}")
        if not result.ok:
            return Result.failure(result.error)
        if result.changed:
            self._publish("unit_released", {"unit_id": unit_id})
        return Result.success(result.value.unit(unit_id), changed=result.changed)

    def set_unit_status(self, unit_id: str, status: UnitStatus) -> Result[Unit]:
        """Operator status override.

        ``available`` releases the unit; ``responding`` goes through
        ``dispatch``; ``busy`` keeps any current assignment.
        """
        status = parse_enum(UnitStatus, status, "status")
        if isinstance(status, ValidationFailed):
            return Result.failure(status)
        if status == UnitStatus.AVAILABLE:
            return self.release(unit_id)
        if status == UnitStatus.RESPONDING:
            return self.dispatch(unit_id)

        def _set(state: Snapshot):
            unit = state.unit(unit_id)
            if unit is None:
                return NotFound("unit", unit_id)
            if unit.status == status:
                return state
            return state.with_unit(
                replace(unit, status=status, last_update=self._store.now())
            )

        result = self._store.transact(_set, reason=f"status:{unit_id}={status.value}")
        if not result.ok:
            return Result.failure(result.error)
        return Result.success(result.value.unit(unit_id), changed=result.changed)

    def move_unit(
        self, unit_id: str, x: float, y: float, location: Optional[str] = None
    ) -> Result[Unit]:
        """Operator-set position, clamped to the full map."""

        def _move(state: Snapshot):
            unit = state.unit(unit_id)
            if unit is None:
                return NotFound("unit", unit_id)
            return state.with_unit(
                replace(
                    unit,
                    position=Position(x, y).clamped(),
                    location=unit.location if location is None else location,
                    last_update=self._store.now(),
                )
            )

        result = self._store.transact(_move, reason=f"move:{unit_id}")
        if not result.ok:
            return Result.failure(result.error)
        return Result.success(result.value.unit(unit_id))

    # -- Incidents ----------------------------------------------------------

    def report_incident(
        self,
        type: IncidentType,
        severity: IncidentSeverity,
        description: str,
        location: str,
        position: Position,
        incident_id: Optional[str] = None,
    ) -> Result[Incident]:
        """Open a new active incident with no assigned units."""
        if not description or not description.strip():
            return Result.failure(ValidationFailed("description must not be empty", "description"))
        type = parse_enum(IncidentType, type, "type")
        if isinstance(type, ValidationFailed):
            return Result.failure(type)
        severity = parse_enum(IncidentSeverity, severity, "severity")
        if isinstance(severity, ValidationFailed):
            return Result.failure(severity)

        incident = Incident(
            id=incident_id or f"INC-{uuid.uuid4().hex[:8].upper()}",
            type=type,
            severity=severity,
            description=description.strip(),
            location=location,
            position=position.clamped(),
            time=self._store.now(),
        )
        result = self._store.add_incident(incident)
        if not result.ok:
            return Result.failure(result.error)
        logger.info(f"Incident {incident.id} reported ({incident.type.value}, {incident.severity.value})")
        self._publish("incident_reported", incident.to_dict())
        return Result.success(result.value.incident(incident.id))

    def resolve_incident(self, incident_id: str) -> Result[Incident]:
        """Close an incident and release every unit still pointing at it."""

        def _resolve(state: Snapshot):
            incident = state.incident(incident_id)
            if incident is None:
                return NotFound("incident", incident_id)
            if incident.resolved:
                return state
            now = self._store.now()
            state = state.with_incident(replace(incident, status=IncidentStatus.RESOLVED))
            for unit in state.units:
                if unit.assigned_incident == incident_id:
                    state = state.with_unit(
                        replace(
                            unit,
                            status=UnitStatus.AVAILABLE,
                            assigned_incident=None,
                            last_update=now,
                        )
                    )
            return state

        result = self._store.transact(_resolve, reason=f"resolve:{incident_id}")
        if not result.ok:
            return Result.failure(result.error)
        if result.changed:
            logger.info(f"Incident {incident_id} resolved")
            self._publish("incident_resolved", {"incident_id": incident_id})
        return Result.success(result.value.incident(incident_id), changed=result.changed)
