"""Snapshot - the immutable state of the operations center at one version.

The store keeps exactly one Snapshot as its current state and replaces it
wholesale on every commit.  All collections are tuples of frozen
dataclasses, so a reader holding an old snapshot keeps a consistent view
no matter what is committed afterwards.

Ordering:
  units, incidents  - insertion order
  alerts, messages  - newest first
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Optional

from state.models import (
    Alert,
    CrowdAnalytics,
    Incident,
    IncidentStatus,
    Message,
    SensorSource,
    Unit,
    UnitStatus,
)


def _replace_by_id(items: tuple, item) -> tuple:
    return tuple(item if existing.id == item.id else existing for existing in items)


@dataclass(frozen=True)
class Snapshot:
    units: tuple[Unit, ...] = ()
    incidents: tuple[Incident, ...] = ()
    alerts: tuple[Alert, ...] = ()
    messages: tuple[Message, ...] = ()
    analytics: CrowdAnalytics = field(default_factory=CrowdAnalytics)
    sources: tuple[SensorSource, ...] = ()
    version: int = 0

    # -- Lookup -------------------------------------------------------------

    def unit(self, unit_id: str) -> Optional[Unit]:
        return next((u for u in self.units if u.id == unit_id), None)

    def incident(self, incident_id: str) -> Optional[Incident]:
        return next((i for i in self.incidents if i.id == incident_id), None)

    def alert(self, alert_id: str) -> Optional[Alert]:
        return next((a for a in self.alerts if a.id == alert_id), None)

    def message(self, message_id: str) -> Optional[Message]:
        return next((m for m in self.messages if m.id == message_id), None)

    def source(self, source_id: str) -> Optional[SensorSource]:
        return next((s for s in self.sources if s.id == source_id), None)

    # -- Functional updates -------------------------------------------------

    def with_unit(self, unit: Unit) -> Snapshot:
        if self.unit(unit.id) is None:
            return replace(self, units=self.units + (unit,))
        return replace(self, units=_replace_by_id(self.units, unit))

    def with_incident(self, incident: Incident) -> Snapshot:
        if self.incident(incident.id) is None:
            return replace(self, incidents=self.incidents + (incident,))
        return replace(self, incidents=_replace_by_id(self.incidents, incident))

    def with_alert(self, alert: Alert) -> Snapshot:
        if self.alert(alert.id) is None:
            return replace(self, alerts=(alert,) + self.alerts)
        return replace(self, alerts=_replace_by_id(self.alerts, alert))

    def with_message(self, message: Message, retention: Optional[int] = None) -> Snapshot:
        if self.message(message.id) is None:
            messages = (message,) + self.messages
            if retention is not None:
                messages = messages[:retention]
            return replace(self, messages=messages)
        return replace(self, messages=_replace_by_id(self.messages, message))

    # -- Derived metrics ----------------------------------------------------

    @property
    def unacknowledged_alerts(self) -> int:
        return sum(1 for a in self.alerts if not a.acknowledged)

    @property
    def pending_messages(self) -> int:
        return sum(1 for m in self.messages if m.pending)

    @property
    def active_incidents(self) -> int:
        return sum(1 for i in self.incidents if i.status == IncidentStatus.ACTIVE)

    def units_by_status(self) -> dict[str, int]:
        counts = {s.value: 0 for s in UnitStatus}
        for u in self.units:
            counts[u.status.value] += 1
        return counts

    def zone_occupancy(self) -> dict[str, float]:
        return {z.zone: z.occupancy_ratio for z in self.analytics.zones}

    def metrics(self) -> dict:
        return {
            "total_units": len(self.units),
            "units_by_status": self.units_by_status(),
            "active_incidents": self.active_incidents,
            "unacknowledged_alerts": self.unacknowledged_alerts,
            "pending_messages": self.pending_messages,
            "crowd_density": round(self.analytics.density, 2),
            "zone_occupancy": {k: round(v, 4) for k, v in self.zone_occupancy().items()},
        }

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "units": [u.to_dict() for u in self.units],
            "incidents": [i.to_dict() for i in self.incidents],
            "alerts": [a.to_dict() for a in self.alerts],
            "messages": [m.to_dict() for m in self.messages],
            "analytics": self.analytics.to_dict(),
            "sources": [s.to_dict() for s in self.sources],
            "metrics": self.metrics(),
        }
