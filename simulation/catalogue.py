"""Fixed catalogues for the synthetic sensor and AI feeds.

Camera sources emit detection kinds from CAMERA_EVENT_TYPES (their alert
text lives with AlertLifecycle).  Message feeds emit one of
MESSAGE_TEMPLATES, each carrying an explicit acknowledgment requirement
instead of the priority-derived default used for operator messages.
"""

from __future__ import annotations

from coordination.alerts import CAMERA_EVENT_MESSAGES, MessageDraft
from state.models import (
    CameraModel,
    MessagePriority,
    MessageType,
    SensorSource,
    SourceKind,
    SourceStatus,
)

CAMERA_EVENT_TYPES: tuple[str, ...] = tuple(CAMERA_EVENT_MESSAGES)

DEFAULT_SOURCES: tuple[SensorSource, ...] = (
    SensorSource("CAM-001", "Main Stage View", "Main Stage", SourceKind.CAMERA,
                 SourceStatus.ONLINE, CameraModel.PTZ),
    SensorSource("CAM-002", "North Gate Entry", "North Gate", SourceKind.CAMERA,
                 SourceStatus.ONLINE, CameraModel.FIXED),
    SensorSource("CAM-003", "Food Court Overview", "Food Court", SourceKind.CAMERA,
                 SourceStatus.ONLINE, CameraModel.PTZ),
    SensorSource("CAM-004", "Emergency Exit 1", "Emergency Exit 1", SourceKind.CAMERA,
                 SourceStatus.OFFLINE, CameraModel.FIXED),
    SensorSource("CAM-005", "Parking Area", "Parking Lot A", SourceKind.CAMERA,
                 SourceStatus.ONLINE, CameraModel.FIXED),
    SensorSource("DRONE-001", "Aerial Overview", "Airborne", SourceKind.CAMERA,
                 SourceStatus.ONLINE, CameraModel.DRONE),
    SensorSource("FEED-DISPATCH", "AI Dispatch System", "Command Center",
                 SourceKind.MESSAGE_FEED),
    SensorSource("FEED-DETECTION", "AI Detection System", "Command Center",
                 SourceKind.MESSAGE_FEED),
    SensorSource("FEED-CROWD", "Crowd Analytics AI", "Command Center",
                 SourceKind.MESSAGE_FEED),
)

MESSAGE_TEMPLATES: tuple[MessageDraft, ...] = (
    MessageDraft(
        type=MessageType.MEDICAL,
        title="Medical Team Dispatched",
        body="Medical Team 1 dispatched to Food Court for reported injury. ETA 3 minutes.",
        sender="AI Dispatch System",
        recipients=("medical-team", "command-center"),
        priority=MessagePriority.HIGH,
        requires_acknowledgment=True,
    ),
    MessageDraft(
        type=MessageType.SECURITY,
        title="Security Alert",
        body="Suspicious activity detected at North Gate. Security Team Alpha responding.",
        sender="AI Detection System",
        recipients=("security-team",),
        priority=MessagePriority.MEDIUM,
        requires_acknowledgment=False,
    ),
    MessageDraft(
        type=MessageType.UPDATE,
        title="Crowd Density Update",
        body="Main Stage area reaching 80% capacity. Consider crowd flow management.",
        sender="Crowd Analytics AI",
        recipients=("all-units",),
        priority=MessagePriority.MEDIUM,
        requires_acknowledgment=False,
    ),
)
