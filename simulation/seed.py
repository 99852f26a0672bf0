"""Seed scenarios - the demo festival dataset and JSON scenario files.

A scenario file is a JSON object with optional ``units``, ``incidents``,
``alerts``, ``analytics`` and ``sources`` keys, each in the same shape
the snapshot serialises to.  Relative times may be given as
``"minutes_ago"`` instead of an absolute ISO timestamp.  Missing
``sources`` fall back to the default sensor catalogue.

The loader only builds a Snapshot; EntityStore.load() validates it, so a
scenario with a broken Unit <-> Incident reference is rejected as a whole.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

from state.models import (
    Alert,
    CameraModel,
    CrowdAnalytics,
    Incident,
    RiskLevel,
    RiskPrediction,
    SensorSource,
    SourceKind,
    SourceStatus,
    Trend,
    Unit,
    ZoneStatus,
    clamp,
    utcnow,
)
from state.snapshot import Snapshot
from simulation.catalogue import DEFAULT_SOURCES

DEMO_SCENARIO: dict = {
    "units": [
        {"id": "SEC-001", "name": "Security Alpha", "type": "security", "status": "available",
         "position": {"x": 25, "y": 30}, "location": "North Gate", "minutes_ago": 5},
        {"id": "SEC-002", "name": "Security Beta", "type": "security", "status": "responding",
         "position": {"x": 45, "y": 60}, "location": "Main Stage", "minutes_ago": 2,
         "assigned_incident": "INC-001"},
        {"id": "MED-001", "name": "Medical Team 1", "type": "medical", "status": "available",
         "position": {"x": 70, "y": 40}, "location": "Medical Tent", "minutes_ago": 1},
        {"id": "MED-002", "name": "Medical Team 2", "type": "medical", "status": "busy",
         "position": {"x": 35, "y": 80}, "location": "Food Court", "minutes_ago": 3},
        {"id": "FIRE-001", "name": "Fire Response", "type": "fire", "status": "available",
         "position": {"x": 80, "y": 20}, "location": "Emergency Station", "minutes_ago": 4},
        {"id": "POL-001", "name": "Police Unit A", "type": "police", "status": "available",
         "position": {"x": 60, "y": 70}, "location": "South Gate", "minutes_ago": 0},
    ],
    "incidents": [
        {"id": "INC-001", "type": "crowd_surge", "severity": "high",
         "description": "Crowd surge detected near main stage area", "minutes_ago": 10,
         "location": "Main Stage", "status": "responding", "assigned_units": ["SEC-002"],
         "position": {"x": 45, "y": 60}},
        {"id": "INC-002", "type": "medical", "severity": "medium",
         "description": "Medical emergency reported", "minutes_ago": 15,
         "location": "Food Court", "status": "active", "assigned_units": [],
         "position": {"x": 35, "y": 80}},
        {"id": "INC-003", "type": "security", "severity": "low",
         "description": "Minor disturbance at entrance", "minutes_ago": 30,
         "location": "North Gate", "status": "resolved", "assigned_units": ["SEC-001"],
         "position": {"x": 25, "y": 30}},
    ],
    "alerts": [
        {"id": "ALERT-001", "type": "prediction", "title": "Crowd Surge Predicted",
         "message": "AI model predicts potential crowd surge at Main Stage in 15 minutes",
         "minutes_ago": 5, "severity": "high", "acknowledged": False, "source": "AI Predictor"},
        {"id": "ALERT-002", "type": "system", "title": "Camera Offline",
         "message": "CCTV Camera 12 has gone offline",
         "minutes_ago": 10, "severity": "medium", "acknowledged": False, "source": "System Monitor"},
        {"id": "ALERT-003", "type": "emergency", "title": "Emergency Response Required",
         "message": "Medical emergency requires immediate attention",
         "minutes_ago": 15, "severity": "critical", "acknowledged": True, "source": "Field Report"},
    ],
    "analytics": {
        "crowd_density": {"current": 72, "trend": "up", "prediction": 85, "time_to_max": "15 min"},
        "response_time": {"average": 4.2, "target": 5.0},
        "zones": [
            {"zone": "Main Stage", "risk_level": "high", "capacity": 5000, "occupancy": 4200},
            {"zone": "Food Court", "risk_level": "medium", "capacity": 2000, "occupancy": 1200},
            {"zone": "North Gate", "risk_level": "low", "capacity": 1000, "occupancy": 300},
            {"zone": "South Gate", "risk_level": "low", "capacity": 1000, "occupancy": 450},
        ],
        "predictions": [
            {"location": "Main Stage", "risk": 0.85, "timeframe": "15 min", "confidence": 0.92},
            {"location": "Food Court", "risk": 0.65, "timeframe": "20 min", "confidence": 0.78},
            {"location": "North Gate", "risk": 0.35, "timeframe": "30 min", "confidence": 0.65},
        ],
    },
}


def _with_time(entry: dict, key: str, now: datetime) -> dict:
    """Resolve ``minutes_ago`` into an absolute timestamp under *key*."""
    entry = dict(entry)
    minutes = entry.pop("minutes_ago", None)
    if key not in entry:
        entry[key] = now - timedelta(minutes=float(minutes or 0))
    return entry


def _analytics_from_dict(data: dict) -> CrowdAnalytics:
    density = data.get("crowd_density", {})
    response = data.get("response_time", {})
    return CrowdAnalytics(
        density=clamp(float(density.get("current", 50.0)), 0.0, 100.0),
        predicted_density=clamp(float(density.get("prediction", 50.0)), 0.0, 100.0),
        trend=Trend(density.get("trend", Trend.STABLE)),
        time_to_max=density.get("time_to_max", ""),
        response_average=float(response.get("average", 0.0)),
        response_target=float(response.get("target", 5.0)),
        zones=tuple(ZoneStatus.from_dict(z) for z in data.get("zones", [])),
        predictions=tuple(RiskPrediction.from_dict(p) for p in data.get("predictions", [])),
    )


def _source_from_dict(data: dict) -> SensorSource:
    model = data.get("camera_model")
    return SensorSource(
        id=data["id"],
        name=data.get("name", data["id"]),
        location=data.get("location", ""),
        kind=SourceKind(data.get("kind", SourceKind.CAMERA)),
        status=SourceStatus(data.get("status", SourceStatus.ONLINE)),
        camera_model=CameraModel(model) if model else None,
    )


def build_snapshot(scenario: dict, now: Optional[datetime] = None) -> Snapshot:
    """Build an (unvalidated) Snapshot from a scenario dict."""
    now = now or utcnow()
    units = tuple(
        Unit.from_dict(_with_time(u, "last_update", now)) for u in scenario.get("units", [])
    )
    incidents = tuple(
        Incident.from_dict(_with_time(i, "time", now)) for i in scenario.get("incidents", [])
    )
    alerts = tuple(
        Alert.from_dict(_with_time(a, "timestamp", now)) for a in scenario.get("alerts", [])
    )
    alerts = tuple(sorted(alerts, key=lambda a: a.timestamp, reverse=True))
    if "sources" in scenario:
        sources = tuple(_source_from_dict(s) for s in scenario["sources"])
    else:
        sources = DEFAULT_SOURCES
    return Snapshot(
        units=units,
        incidents=incidents,
        alerts=alerts,
        analytics=_analytics_from_dict(scenario.get("analytics", {})),
        sources=sources,
    )


def demo_snapshot(now: Optional[datetime] = None) -> Snapshot:
    """The built-in festival scenario: six units, three incidents, three alerts."""
    return build_snapshot(DEMO_SCENARIO, now)


def load_scenario(path: str | Path, now: Optional[datetime] = None) -> Snapshot:
    """Read a JSON scenario file."""
    with open(path) as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Scenario {path} must be a JSON object")
    return build_snapshot(data, now)
