"""Entity models for the operations center.

Every entity is a frozen dataclass.  Mutation always produces a new
instance via ``dataclasses.replace`` so a snapshot handed to a reader can
never change underneath it.  Kinds (unit type, incident status, message
priority, ...) are closed ``str`` enums; serialisation writes the enum
value, parsing accepts either the enum or its value.

Units and Incidents reference each other by id only.  The store owns the
collections; nothing here holds a reference to another entity object.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def clamp(value: float, low: float, high: float) -> float:
    """Clamp *value* into ``[low, high]``."""
    return max(low, min(high, value))


# Coordinate domains (percentage-of-map)
MAP_MIN = 0.0
MAP_MAX = 100.0
# Simulated drift keeps icons inside a visible margin
DRIFT_MIN = 10.0
DRIFT_MAX = 90.0


# ==================
# Enumerations
# ==================

class UnitType(str, Enum):
    SECURITY = "security"
    MEDICAL = "medical"
    FIRE = "fire"
    POLICE = "police"


class UnitStatus(str, Enum):
    AVAILABLE = "available"
    BUSY = "busy"
    RESPONDING = "responding"


class IncidentType(str, Enum):
    CROWD_SURGE = "crowd_surge"
    MEDICAL = "medical"
    FIRE = "fire"
    SECURITY = "security"


class IncidentSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class IncidentStatus(str, Enum):
    ACTIVE = "active"
    RESPONDING = "responding"
    RESOLVED = "resolved"


class AlertType(str, Enum):
    PREDICTION = "prediction"
    SYSTEM = "system"
    EMERGENCY = "emergency"
    INFO = "info"


class AlertSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class MessageType(str, Enum):
    DISPATCH = "dispatch"
    EMERGENCY = "emergency"
    UPDATE = "update"
    BROADCAST = "broadcast"
    MEDICAL = "medical"
    SECURITY = "security"


class MessagePriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class MessageStatus(str, Enum):
    SENT = "sent"
    DELIVERED = "delivered"
    ACKNOWLEDGED = "acknowledged"
    FAILED = "failed"


class Trend(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SourceKind(str, Enum):
    CAMERA = "camera"
    MESSAGE_FEED = "message_feed"


class CameraModel(str, Enum):
    FIXED = "fixed"
    PTZ = "ptz"
    DRONE = "drone"


class SourceStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    MAINTENANCE = "maintenance"


# Priorities that require an explicit acknowledgment on operator messages
ACK_PRIORITIES = frozenset({MessagePriority.HIGH, MessagePriority.CRITICAL})


def _parse_time(value) -> datetime:
    if isinstance(value, datetime):
        return value
    if value is None:
        return utcnow()
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


# ==================
# Entities
# ==================

@dataclass(frozen=True)
class Position:
    """Percentage-of-map coordinates."""

    x: float
    y: float

    def clamped(self, low: float = MAP_MIN, high: float = MAP_MAX) -> Position:
        return Position(clamp(self.x, low, high), clamp(self.y, low, high))

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data: dict) -> Position:
        return cls(x=float(data.get("x", 0.0)), y=float(data.get("y", 0.0)))


@dataclass(frozen=True)
class Unit:
    """A field unit (security team, medical team, fire crew, police car)."""

    id: str
    name: str
    type: UnitType
    status: UnitStatus
    position: Position
    location: str
    last_update: datetime = field(default_factory=utcnow)
    assigned_incident: Optional[str] = None

    @property
    def engaged(self) -> bool:
        return self.status in (UnitStatus.RESPONDING, UnitStatus.BUSY)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "status": self.status.value,
            "position": self.position.to_dict(),
            "location": self.location,
            "last_update": self.last_update.isoformat(),
            "assigned_incident": self.assigned_incident,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Unit:
        return cls(
            id=data["id"],
            name=data["name"],
            type=UnitType(data["type"]),
            status=UnitStatus(data.get("status", UnitStatus.AVAILABLE)),
            position=Position.from_dict(data.get("position", {})).clamped(),
            location=data.get("location", ""),
            last_update=_parse_time(data.get("last_update")),
            assigned_incident=data.get("assigned_incident"),
        )


@dataclass(frozen=True)
class Incident:
    """A reported incident.  ``assigned_units`` is a set of Unit ids."""

    id: str
    type: IncidentType
    severity: IncidentSeverity
    description: str
    location: str
    position: Position
    time: datetime = field(default_factory=utcnow)
    status: IncidentStatus = IncidentStatus.ACTIVE
    assigned_units: frozenset[str] = frozenset()

    @property
    def resolved(self) -> bool:
        return self.status == IncidentStatus.RESOLVED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "severity": self.severity.value,
            "description": self.description,
            "time": self.time.isoformat(),
            "location": self.location,
            "position": self.position.to_dict(),
            "status": self.status.value,
            "assigned_units": sorted(self.assigned_units),
        }

    @classmethod
    def from_dict(cls, data: dict) -> Incident:
        return cls(
            id=data["id"],
            type=IncidentType(data["type"]),
            severity=IncidentSeverity(data.get("severity", IncidentSeverity.MEDIUM)),
            description=data.get("description", ""),
            location=data.get("location", ""),
            position=Position.from_dict(data.get("position", {})).clamped(),
            time=_parse_time(data.get("time")),
            status=IncidentStatus(data.get("status", IncidentStatus.ACTIVE)),
            assigned_units=frozenset(data.get("assigned_units", ())),
        )


@dataclass(frozen=True)
class Alert:
    """An alert raised by a subsystem; acknowledgment is one-way."""

    id: str
    type: AlertType
    title: str
    message: str
    severity: AlertSeverity
    source: str
    timestamp: datetime = field(default_factory=utcnow)
    acknowledged: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "severity": self.severity.value,
            "acknowledged": self.acknowledged,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Alert:
        return cls(
            id=data["id"],
            type=AlertType(data["type"]),
            title=data["title"],
            message=data["message"],
            severity=AlertSeverity(data["severity"]),
            source=data.get("source", ""),
            timestamp=_parse_time(data.get("timestamp")),
            acknowledged=bool(data.get("acknowledged", False)),
        )


@dataclass(frozen=True)
class Message:
    """An operator or system message sent to recipient groups.

    ``status`` tracks delivery and is independent of ``acknowledged_by``;
    a message is pending while it requires acknowledgment and nobody has
    acknowledged it yet.
    """

    id: str
    type: MessageType
    title: str
    body: str
    sender: str
    recipients: tuple[str, ...]
    priority: MessagePriority
    requires_acknowledgment: bool
    timestamp: datetime = field(default_factory=utcnow)
    status: MessageStatus = MessageStatus.SENT
    acknowledged_by: tuple[str, ...] = ()

    @property
    def pending(self) -> bool:
        return self.requires_acknowledgment and not self.acknowledged_by

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "body": self.body,
            "sender": self.sender,
            "recipients": list(self.recipients),
            "timestamp": self.timestamp.isoformat(),
            "priority": self.priority.value,
            "status": self.status.value,
            "requires_acknowledgment": self.requires_acknowledgment,
            "acknowledged_by": list(self.acknowledged_by),
            "pending": self.pending,
        }


@dataclass(frozen=True)
class ZoneStatus:
    zone: str
    risk_level: RiskLevel
    capacity: int
    occupancy: int

    @property
    def occupancy_ratio(self) -> float:
        if self.capacity <= 0:
            return 0.0
        return self.occupancy / self.capacity

    def to_dict(self) -> dict:
        return {
            "zone": self.zone,
            "risk_level": self.risk_level.value,
            "capacity": self.capacity,
            "occupancy": self.occupancy,
            "occupancy_ratio": round(self.occupancy_ratio, 4),
        }

    @classmethod
    def from_dict(cls, data: dict) -> ZoneStatus:
        return cls(
            zone=data["zone"],
            risk_level=RiskLevel(data.get("risk_level", RiskLevel.LOW)),
            capacity=max(0, int(data.get("capacity", 0))),
            occupancy=max(0, int(data.get("occupancy", 0))),
        )


@dataclass(frozen=True)
class RiskPrediction:
    """AI risk forecast for a location.  ``risk`` and ``confidence`` are fractions."""

    location: str
    risk: float
    timeframe: str
    confidence: float

    def to_dict(self) -> dict:
        return {
            "location": self.location,
            "risk": self.risk,
            "timeframe": self.timeframe,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: dict) -> RiskPrediction:
        return cls(
            location=data["location"],
            risk=clamp(float(data.get("risk", 0.0)), 0.0, 1.0),
            timeframe=data.get("timeframe", ""),
            confidence=clamp(float(data.get("confidence", 0.0)), 0.0, 1.0),
        )


@dataclass(frozen=True)
class CrowdAnalytics:
    """Crowd density (percent), response times and zone occupancy."""

    density: float = 50.0
    predicted_density: float = 50.0
    trend: Trend = Trend.STABLE
    time_to_max: str = ""
    response_average: float = 0.0
    response_target: float = 5.0
    zones: tuple[ZoneStatus, ...] = ()
    predictions: tuple[RiskPrediction, ...] = ()

    def to_dict(self) -> dict:
        return {
            "crowd_density": {
                "current": round(self.density, 2),
                "prediction": round(self.predicted_density, 2),
                "trend": self.trend.value,
                "time_to_max": self.time_to_max,
            },
            "response_time": {
                "average": self.response_average,
                "target": self.response_target,
            },
            "zones": [z.to_dict() for z in self.zones],
            "predictions": [p.to_dict() for p in self.predictions],
        }


@dataclass(frozen=True)
class SensorSource:
    """A camera or message feed that can originate simulated events."""

    id: str
    name: str
    location: str
    kind: SourceKind
    status: SourceStatus = SourceStatus.ONLINE
    camera_model: Optional[CameraModel] = None

    @property
    def online(self) -> bool:
        return self.status == SourceStatus.ONLINE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "kind": self.kind.value,
            "status": self.status.value,
            "camera_model": self.camera_model.value if self.camera_model else None,
        }
