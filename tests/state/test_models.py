"""Unit tests for the entity models - enums, clamping, serialisation."""
from __future__ import annotations

import dataclasses
from datetime import datetime, timezone

import pytest

from state.models import (
    Alert,
    AlertSeverity,
    Incident,
    IncidentStatus,
    Message,
    MessagePriority,
    MessageStatus,
    MessageType,
    Position,
    RiskPrediction,
    Unit,
    UnitStatus,
    UnitType,
    ZoneStatus,
    clamp,
)

NOW = datetime(2025, 7, 12, 18, 0, tzinfo=timezone.utc)


def _unit(**overrides) -> Unit:
    fields = dict(
        id="SEC-009",
        name="Security Kilo",
        type=UnitType.SECURITY,
        status=UnitStatus.AVAILABLE,
        position=Position(10, 20),
        location="West Gate",
        last_update=NOW,
    )
    fields.update(overrides)
    return Unit(**fields)


@pytest.mark.unit
class TestClamp:

    def test_inside_range_unchanged(self):
        assert clamp(42.0, 0.0, 100.0) == 42.0

    def test_below_and_above(self):
        assert clamp(-5.0, 0.0, 100.0) == 0.0
        assert clamp(105.0, 0.0, 100.0) == 100.0

    def test_position_clamped_default_map(self):
        assert Position(-3, 140).clamped() == Position(0, 100)

    def test_position_clamped_drift_margin(self):
        assert Position(5, 95).clamped(10, 90) == Position(10, 90)


@pytest.mark.unit
class TestUnit:

    def test_frozen(self):
        unit = _unit()
        with pytest.raises(dataclasses.FrozenInstanceError):
            unit.status = UnitStatus.BUSY  # type: ignore[misc]

    def test_engaged(self):
        assert not _unit().engaged
        assert _unit(status=UnitStatus.BUSY).engaged
        assert _unit(status=UnitStatus.RESPONDING).engaged

    def test_to_dict_writes_enum_values(self):
        d = _unit().to_dict()
        assert d["type"] == "security"
        assert d["status"] == "available"
        assert d["position"] == {"x": 10, "y": 20}
        assert d["last_update"] == NOW.isoformat()
        assert d["assigned_incident"] is None

    def test_from_dict_clamps_position(self):
        unit = Unit.from_dict({
            "id": "X", "name": "X", "type": "fire",
            "position": {"x": 130, "y": -1},
        })
        assert unit.position == Position(100, 0)
        assert unit.status == UnitStatus.AVAILABLE

    def test_from_dict_rejects_unknown_type(self):
        with pytest.raises(ValueError):
            Unit.from_dict({"id": "X", "name": "X", "type": "janitor"})

    def test_from_dict_parses_zulu_timestamp(self):
        unit = Unit.from_dict({
            "id": "X", "name": "X", "type": "police",
            "last_update": "2025-07-12T18:00:00Z",
        })
        assert unit.last_update == NOW


@pytest.mark.unit
class TestIncident:

    def test_defaults(self):
        inc = Incident(
            id="INC-9", type="medical", severity="low", description="d",
            location="Food Court", position=Position(1, 1),
        )
        assert inc.status == IncidentStatus.ACTIVE
        assert inc.assigned_units == frozenset()
        assert not inc.resolved

    def test_to_dict_sorts_assigned_units(self):
        inc = Incident.from_dict({
            "id": "INC-9", "type": "fire", "severity": "high",
            "assigned_units": ["SEC-002", "FIRE-001"],
        })
        assert inc.to_dict()["assigned_units"] == ["FIRE-001", "SEC-002"]


@pytest.mark.unit
class TestAlertAndMessage:

    def test_alert_round_trip_keeps_acknowledged(self):
        alert = Alert.from_dict({
            "id": "A", "type": "system", "title": "t", "message": "m",
            "severity": "critical", "acknowledged": True, "timestamp": NOW.isoformat(),
        })
        assert alert.acknowledged
        assert alert.severity == AlertSeverity.CRITICAL
        assert alert.to_dict()["timestamp"] == NOW.isoformat()

    def test_message_pending_only_while_unacknowledged(self):
        msg = Message(
            id="M", type=MessageType.DISPATCH, title="t", body="b", sender="s",
            recipients=("all-units",), priority=MessagePriority.HIGH,
            requires_acknowledgment=True, timestamp=NOW,
        )
        assert msg.pending
        acked = dataclasses.replace(msg, acknowledged_by=("SEC-001",))
        assert not acked.pending
        assert acked.status == MessageStatus.SENT

    def test_message_without_ack_requirement_never_pending(self):
        msg = Message(
            id="M", type=MessageType.UPDATE, title="t", body="b", sender="s",
            recipients=("all-units",), priority=MessagePriority.LOW,
            requires_acknowledgment=False, timestamp=NOW,
        )
        assert not msg.pending


@pytest.mark.unit
class TestAnalyticsModels:

    def test_zone_occupancy_ratio(self):
        zone = ZoneStatus.from_dict({"zone": "Main Stage", "capacity": 5000, "occupancy": 4200})
        assert zone.occupancy_ratio == pytest.approx(0.84)

    def test_zero_capacity_zone(self):
        zone = ZoneStatus.from_dict({"zone": "Closed", "capacity": 0, "occupancy": 10})
        assert zone.occupancy_ratio == 0.0

    def test_prediction_fractions_clamped(self):
        p = RiskPrediction.from_dict({"location": "X", "risk": 1.7, "confidence": -0.2})
        assert p.risk == 1.0
        assert p.confidence == 0.0
