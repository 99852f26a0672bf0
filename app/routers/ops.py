"""Operations-center command API.

Thin HTTP mapping of the OperationsCenter command set.  Failure values map
to status codes: NotFound -> 404, ValidationFailed -> 400, a store
rejection (internal invariant breach) -> 500.
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from loguru import logger
from pydantic import BaseModel, Field

from coordination.alerts import RECIPIENT_GROUPS, AlertDraft, MessageDraft
from coordination.center import OperationsCenter
from state.models import (
    AlertSeverity,
    AlertType,
    IncidentSeverity,
    IncidentStatus,
    IncidentType,
    MessagePriority,
    MessageType,
    Position,
    UnitStatus,
    UnitType,
)
from state.results import NotFound, Result, ValidationFailed

router = APIRouter(prefix="/api/ops", tags=["operations"])


def get_center(request: Request) -> OperationsCenter:
    center = getattr(request.app.state, "ops", None)
    if center is None:
        raise HTTPException(status_code=503, detail="Operations center is not running")
    return center


def _unwrap(result: Result) -> dict:
    if result.ok:
        return result.to_dict()
    error = result.error
    if isinstance(error, NotFound):
        raise HTTPException(status_code=404, detail=error.detail)
    if isinstance(error, ValidationFailed):
        raise HTTPException(status_code=400, detail=error.detail)
    logger.error(f"Command rejected by store: {error.detail}")
    raise HTTPException(status_code=500, detail=error.detail)


# ==================
# Request Models
# ==================

class DispatchRequest(BaseModel):
    """Optional incident to attach the unit to."""
    incident_id: Optional[str] = None


class MoveUnitRequest(BaseModel):
    x: float
    y: float
    location: Optional[str] = None


class UnitStatusRequest(BaseModel):
    status: UnitStatus


class ReportIncidentRequest(BaseModel):
    type: IncidentType
    severity: IncidentSeverity
    description: str
    location: str
    x: float = 50.0
    y: float = 50.0
    id: Optional[str] = None


class RaiseAlertRequest(BaseModel):
    type: AlertType
    title: str
    message: str
    severity: AlertSeverity
    source: str = "Operator"
    id: Optional[str] = None


class ComposeMessageRequest(BaseModel):
    """Operator message.  ``requires_acknowledgment`` defaults from priority."""
    type: MessageType = MessageType.DISPATCH
    title: Optional[str] = None
    body: str
    sender: Optional[str] = None
    recipients: list[str] = Field(default_factory=lambda: ["all-units"])
    priority: MessagePriority = MessagePriority.MEDIUM
    requires_acknowledgment: Optional[bool] = None


class AcknowledgeMessageRequest(BaseModel):
    actor_id: Optional[str] = None


class CameraEventRequest(BaseModel):
    event_type: str


# ==================
# Reads
# ==================

@router.get("/snapshot")
async def get_snapshot(request: Request):
    """Full immutable view plus derived metrics."""
    return get_center(request).get_snapshot().to_dict()


@router.get("/metrics")
async def get_metrics(request: Request):
    return get_center(request).get_snapshot().metrics()


@router.get("/units")
async def list_units(
    request: Request,
    status: Optional[UnitStatus] = None,
    type: Optional[UnitType] = None,
):
    """List units, optionally filtered by status and type."""
    units = get_center(request).get_snapshot().units
    if status is not None:
        units = tuple(u for u in units if u.status == status)
    if type is not None:
        units = tuple(u for u in units if u.type == type)
    return {"units": [u.to_dict() for u in units]}


@router.get("/incidents")
async def list_incidents(request: Request, status: Optional[IncidentStatus] = None):
    incidents = get_center(request).get_snapshot().incidents
    if status is not None:
        incidents = tuple(i for i in incidents if i.status == status)
    return {"incidents": [i.to_dict() for i in incidents]}


@router.get("/alerts")
async def list_alerts(request: Request, unacknowledged: bool = False):
    snapshot = get_center(request).get_snapshot()
    alerts = snapshot.alerts
    if unacknowledged:
        alerts = tuple(a for a in alerts if not a.acknowledged)
    return {
        "alerts": [a.to_dict() for a in alerts],
        "unacknowledged": snapshot.unacknowledged_alerts,
    }


@router.get("/messages")
async def list_messages(request: Request, pending: bool = False):
    snapshot = get_center(request).get_snapshot()
    messages = snapshot.messages
    if pending:
        messages = tuple(m for m in messages if m.pending)
    return {
        "messages": [m.to_dict() for m in messages],
        "pending": snapshot.pending_messages,
    }


@router.get("/recipients")
async def list_recipients():
    """Recipient groups a message can be addressed to."""
    return {
        "recipients": [
            {"id": token, "name": name} for token, name in RECIPIENT_GROUPS.items()
        ]
    }


# ==================
# Unit Commands
# ==================

@router.post("/units/{unit_id}/dispatch")
async def dispatch_unit(unit_id: str, request: Request, body: Optional[DispatchRequest] = None):
    incident_id = body.incident_id if body else None
    return _unwrap(get_center(request).dispatch_unit(unit_id, incident_id))


@router.post("/units/{unit_id}/release")
async def release_unit(unit_id: str, request: Request):
    return _unwrap(get_center(request).release_unit(unit_id))


@router.post("/units/{unit_id}/position")
async def move_unit(unit_id: str, body: MoveUnitRequest, request: Request):
    return _unwrap(get_center(request).move_unit(unit_id, body.x, body.y, body.location))


@router.post("/units/{unit_id}/status")
async def set_unit_status(unit_id: str, body: UnitStatusRequest, request: Request):
    return _unwrap(get_center(request).set_unit_status(unit_id, body.status))


# ==================
# Incident Commands
# ==================

@router.post("/incidents")
async def report_incident(body: ReportIncidentRequest, request: Request):
    return _unwrap(get_center(request).report_incident(
        body.type,
        body.severity,
        body.description,
        body.location,
        Position(body.x, body.y),
        incident_id=body.id,
    ))


@router.post("/incidents/{incident_id}/resolve")
async def resolve_incident(incident_id: str, request: Request):
    return _unwrap(get_center(request).resolve_incident(incident_id))


# ==================
# Alert Commands
# ==================

@router.post("/alerts")
async def raise_alert(body: RaiseAlertRequest, request: Request):
    return _unwrap(get_center(request).raise_alert(AlertDraft(
        type=body.type,
        title=body.title,
        message=body.message,
        severity=body.severity,
        source=body.source,
        id=body.id,
    )))


@router.post("/alerts/clear")
async def clear_all_alerts(request: Request):
    return _unwrap(get_center(request).clear_all_alerts())


@router.post("/alerts/{alert_id}/acknowledge")
async def acknowledge_alert(alert_id: str, request: Request):
    return _unwrap(get_center(request).acknowledge_alert(alert_id))


@router.post("/cameras/{camera_id}/events")
async def report_camera_event(camera_id: str, body: CameraEventRequest, request: Request):
    """Forward a camera-feed detection into the alert lifecycle."""
    return _unwrap(get_center(request).report_camera_event(camera_id, body.event_type))


# ==================
# Message Commands
# ==================

@router.post("/messages")
async def compose_message(body: ComposeMessageRequest, request: Request):
    center = get_center(request)
    title = body.title or (
        f"{body.type.value.replace('_', ' ').title()} - {body.priority.value.upper()}"
    )
    return _unwrap(center.compose_message(MessageDraft(
        type=body.type,
        title=title,
        body=body.body,
        sender=body.sender or center.operator_id,
        recipients=tuple(body.recipients),
        priority=body.priority,
        requires_acknowledgment=body.requires_acknowledgment,
    )))


@router.post("/messages/{message_id}/acknowledge")
async def acknowledge_message(
    message_id: str, request: Request, body: Optional[AcknowledgeMessageRequest] = None
):
    actor_id = body.actor_id if body else None
    return _unwrap(get_center(request).acknowledge_message(message_id, actor_id))
