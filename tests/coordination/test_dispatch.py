"""Unit tests for DispatchCoordinator - dispatch, release, incident lifecycle.

Every test ends by checking the Unit <-> Incident back-reference holds for
all non-resolved incidents, whatever sequence of commands ran.
"""
from __future__ import annotations

import random

import pytest

from state.models import (
    IncidentSeverity,
    IncidentStatus,
    IncidentType,
    Position,
    UnitStatus,
)
from state.results import NotFound, ValidationFailed
from tests.lib.clock import FIXED_NOW


def assert_consistent(snapshot) -> None:
    """Both sides of every open assignment agree."""
    for unit in snapshot.units:
        if unit.assigned_incident is not None:
            incident = snapshot.incident(unit.assigned_incident)
            assert incident is not None
            assert unit.id in incident.assigned_units
    for incident in snapshot.incidents:
        if incident.status == IncidentStatus.RESOLVED:
            continue
        for unit_id in incident.assigned_units:
            assert snapshot.unit(unit_id).assigned_incident == incident.id


@pytest.mark.unit
class TestDispatch:

    def test_dispatch_to_active_incident(self, dispatcher, store):
        result = dispatcher.dispatch("MED-001", "INC-002")
        assert result.ok and result.changed
        snap = store.snapshot()
        unit = snap.unit("MED-001")
        incident = snap.incident("INC-002")
        assert unit.status == UnitStatus.RESPONDING
        assert unit.assigned_incident == "INC-002"
        assert unit.last_update == FIXED_NOW
        assert incident.status == IncidentStatus.RESPONDING
        assert incident.assigned_units == frozenset({"MED-001"})
        assert_consistent(snap)

    def test_dispatch_without_incident(self, dispatcher, store):
        result = dispatcher.dispatch("POL-001")
        assert result.ok
        unit = store.snapshot().unit("POL-001")
        assert unit.status == UnitStatus.RESPONDING
        assert unit.assigned_incident is None

    def test_redispatch_same_incident_is_noop(self, dispatcher, store):
        version = store.version
        result = dispatcher.dispatch("SEC-002", "INC-001")
        assert result.ok
        assert not result.changed
        assert store.version == version

    def test_responding_unit_without_incident_is_noop(self, dispatcher, store):
        version = store.version
        result = dispatcher.dispatch("SEC-002")
        assert not result.changed
        assert store.snapshot().unit("SEC-002").assigned_incident == "INC-001"
        assert store.version == version

    def test_reassignment_detaches_previous(self, dispatcher, store):
        result = dispatcher.dispatch("SEC-002", "INC-002")
        assert result.ok
        snap = store.snapshot()
        assert snap.unit("SEC-002").assigned_incident == "INC-002"
        assert "SEC-002" not in snap.incident("INC-001").assigned_units
        # Previous incident keeps its status
        assert snap.incident("INC-001").status == IncidentStatus.RESPONDING
        assert "SEC-002" in snap.incident("INC-002").assigned_units
        assert_consistent(snap)

    def test_busy_unit_can_be_dispatched(self, dispatcher, store):
        result = dispatcher.dispatch("MED-002", "INC-002")
        assert result.ok
        assert store.snapshot().unit("MED-002").status == UnitStatus.RESPONDING

    def test_unknown_unit(self, dispatcher):
        result = dispatcher.dispatch("NOPE-001", "INC-002")
        assert result.error == NotFound("unit", "NOPE-001")

    def test_unknown_incident(self, dispatcher, store):
        version = store.version
        result = dispatcher.dispatch("MED-001", "INC-404")
        assert result.error == NotFound("incident", "INC-404")
        assert store.version == version

    def test_resolved_incident_rejected(self, dispatcher, store):
        result = dispatcher.dispatch("MED-001", "INC-003")
        assert isinstance(result.error, ValidationFailed)
        assert store.snapshot().unit("MED-001").status == UnitStatus.AVAILABLE

    def test_publishes_unit_dispatched(self, dispatcher, bus):
        q = bus.subscribe(_filter="unit_")
        dispatcher.dispatch("SEC-002", "INC-002")
        msg = q.get_nowait()
        assert msg["type"] == "unit_dispatched"
        assert msg["data"] == {
            "unit_id": "SEC-002",
            "incident_id": "INC-002",
            "previous_incident": "INC-001",
        }

    def test_previous_incident_read_inside_transaction(self, dispatcher, store, bus, monkeypatch):
        transact = store.transact

        def release_first(mutation, reason="update"):
            # Another operator releases the unit just before this dispatch commits
            monkeypatch.setattr(store, "transact", transact)
            dispatcher.release("SEC-002")
            return transact(mutation, reason=reason)

        monkeypatch.setattr(store, "transact", release_first)
        q = bus.subscribe(_filter="unit_dispatched")
        assert dispatcher.dispatch("SEC-002", "INC-002").ok
        assert q.get_nowait()["data"]["previous_incident"] is None
        assert_consistent(store.snapshot())


@pytest.mark.unit
class TestRelease:

    def test_release_detaches(self, dispatcher, store):
        result = dispatcher.release("SEC-002")
        assert result.ok
        snap = store.snapshot()
        assert snap.unit("SEC-002").status == UnitStatus.AVAILABLE
        assert snap.unit("SEC-002").assigned_incident is None
        assert "SEC-002" not in snap.incident("INC-001").assigned_units
        assert_consistent(snap)

    def test_release_available_unit_is_noop(self, dispatcher):
        result = dispatcher.release("SEC-001")
        assert result.ok
        assert not result.changed

    def test_release_unknown_unit(self, dispatcher):
        assert dispatcher.release("GHOST").error == NotFound("unit", "GHOST")


@pytest.mark.unit
class TestUnitStatus:

    def test_busy_keeps_assignment(self, dispatcher, store):
        result = dispatcher.set_unit_status("SEC-002", UnitStatus.BUSY)
        assert result.ok
        unit = store.snapshot().unit("SEC-002")
        assert unit.status == UnitStatus.BUSY
        assert unit.assigned_incident == "INC-001"
        assert_consistent(store.snapshot())

    def test_available_releases(self, dispatcher, store):
        dispatcher.set_unit_status("SEC-002", "available")
        assert store.snapshot().unit("SEC-002").assigned_incident is None

    def test_responding_dispatches(self, dispatcher, store):
        dispatcher.set_unit_status("FIRE-001", UnitStatus.RESPONDING)
        assert store.snapshot().unit("FIRE-001").status == UnitStatus.RESPONDING

    def test_unknown_status_is_validation_failure(self, dispatcher, store):
        version = store.version
        result = dispatcher.set_unit_status("FIRE-001", "on_break")
        assert isinstance(result.error, ValidationFailed)
        assert result.error.field == "status"
        assert "on_break" in result.error.detail
        assert store.version == version


@pytest.mark.unit
class TestMoveUnit:

    def test_move_clamps_to_map(self, dispatcher, store):
        result = dispatcher.move_unit("FIRE-001", 120, -4, location="Backstage")
        assert result.ok
        unit = store.snapshot().unit("FIRE-001")
        assert unit.position == Position(100, 0)
        assert unit.location == "Backstage"

    def test_move_keeps_location_when_omitted(self, dispatcher, store):
        dispatcher.move_unit("FIRE-001", 50, 50)
        assert store.snapshot().unit("FIRE-001").location == "Emergency Station"


@pytest.mark.unit
class TestIncidentLifecycle:

    def test_report_incident(self, dispatcher, store, bus):
        q = bus.subscribe(_filter="incident_")
        result = dispatcher.report_incident(
            IncidentType.FIRE, IncidentSeverity.HIGH, "  Smoke near generator ",
            "Backstage", Position(90, 105),
        )
        assert result.ok
        incident = result.value
        assert incident.id.startswith("INC-")
        assert incident.description == "Smoke near generator"
        assert incident.position == Position(90, 100)
        assert incident.status == IncidentStatus.ACTIVE
        assert incident.assigned_units == frozenset()
        assert incident.time == FIXED_NOW
        assert store.snapshot().incident(incident.id) == incident
        assert q.get_nowait()["type"] == "incident_reported"

    def test_report_incident_requires_description(self, dispatcher):
        result = dispatcher.report_incident(
            IncidentType.MEDICAL, IncidentSeverity.LOW, "   ", "Food Court", Position(1, 1)
        )
        assert result.error.field == "description"

    @pytest.mark.parametrize("field, kwargs", [
        ("type", {"type": "alien", "severity": "low"}),
        ("severity", {"type": "medical", "severity": "apocalyptic"}),
    ])
    def test_report_incident_unknown_enum(self, dispatcher, store, field, kwargs):
        version = store.version
        result = dispatcher.report_incident(
            description="Odd report", location="Food Court", position=Position(1, 1), **kwargs
        )
        assert isinstance(result.error, ValidationFailed)
        assert result.error.field == field
        assert store.version == version

    def test_report_incident_duplicate_id(self, dispatcher):
        result = dispatcher.report_incident(
            IncidentType.MEDICAL, IncidentSeverity.LOW, "again", "Food Court",
            Position(1, 1), incident_id="INC-001",
        )
        assert isinstance(result.error, ValidationFailed)

    def test_resolve_releases_units_and_keeps_history(self, dispatcher, store):
        result = dispatcher.resolve_incident("INC-001")
        assert result.ok
        snap = store.snapshot()
        assert snap.incident("INC-001").status == IncidentStatus.RESOLVED
        assert snap.incident("INC-001").assigned_units == frozenset({"SEC-002"})
        assert snap.unit("SEC-002").status == UnitStatus.AVAILABLE
        assert snap.unit("SEC-002").assigned_incident is None

    def test_resolve_is_idempotent(self, dispatcher, store):
        dispatcher.resolve_incident("INC-001")
        version = store.version
        result = dispatcher.resolve_incident("INC-001")
        assert result.ok
        assert not result.changed
        assert store.version == version

    def test_resolve_unknown(self, dispatcher):
        assert dispatcher.resolve_incident("INC-404").error == NotFound("incident", "INC-404")

    def test_festival_scenario(self, dispatcher, store):
        """Report, dispatch two units, move one away, resolve."""
        incident = dispatcher.report_incident(
            IncidentType.CROWD_SURGE, IncidentSeverity.HIGH, "Pressure at barrier",
            "Main Stage", Position(45, 58),
        ).value
        dispatcher.dispatch("SEC-001", incident.id)
        dispatcher.dispatch("POL-001", incident.id)
        dispatcher.dispatch("POL-001", "INC-002")
        snap = store.snapshot()
        assert snap.incident(incident.id).assigned_units == frozenset({"SEC-001"})
        assert snap.incident("INC-002").status == IncidentStatus.RESPONDING
        dispatcher.resolve_incident(incident.id)
        snap = store.snapshot()
        assert snap.unit("SEC-001").status == UnitStatus.AVAILABLE
        assert snap.unit("POL-001").assigned_incident == "INC-002"
        assert_consistent(snap)


@pytest.mark.unit
class TestRandomCommandSequences:

    def test_back_reference_holds(self, dispatcher, store):
        rng = random.Random(7)
        unit_ids = [u.id for u in store.snapshot().units] + ["GHOST"]
        for step in range(300):
            incident_ids = [i.id for i in store.snapshot().incidents] + ["INC-404", None]
            op = rng.random()
            if op < 0.45:
                dispatcher.dispatch(rng.choice(unit_ids), rng.choice(incident_ids))
            elif op < 0.65:
                dispatcher.release(rng.choice(unit_ids))
            elif op < 0.75:
                dispatcher.set_unit_status(rng.choice(unit_ids), rng.choice(list(UnitStatus)))
            elif op < 0.85:
                target = rng.choice(incident_ids)
                if target is not None:
                    dispatcher.resolve_incident(target)
            else:
                dispatcher.report_incident(
                    IncidentType.SECURITY, IncidentSeverity.LOW, f"event {step}",
                    "Grounds", Position(rng.uniform(0, 100), rng.uniform(0, 100)),
                )
            assert_consistent(store.snapshot())
