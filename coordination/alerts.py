"""Alert and message lifecycle.

Alerts
    raised unacknowledged, newest first; acknowledgment is one-way and
    idempotent.  ``clear_all`` acknowledges everything in one commit.

Messages
    composed with status ``sent`` and prepended; the store keeps at most
    ``message_retention`` of them (oldest evicted).  Delivery status and
    acknowledgment are separate fields: acknowledging appends the actor to
    ``acknowledged_by`` and never touches ``status``.

    status:   sent -> delivered            (delivery sweep)
              sent | delivered -> failed   (terminal)
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import TYPE_CHECKING, Iterable, Optional

from loguru import logger

from state.models import (
    ACK_PRIORITIES,
    Alert,
    AlertSeverity,
    AlertType,
    Message,
    MessagePriority,
    MessageStatus,
    MessageType,
)
from state.results import NotFound, Result, ValidationFailed, parse_enum
from state.snapshot import Snapshot

if TYPE_CHECKING:
    from comms.event_bus import EventBus
    from state.store import EntityStore

# Camera detection kinds -> alert text
CAMERA_EVENT_MESSAGES: dict[str, str] = {
    "crowd_surge_detected": "AI detected potential crowd surge in camera feed",
    "suspicious_activity": "Suspicious activity detected by AI analysis",
    "abandoned_object": "Abandoned object detected in monitored area",
    "fight_detected": "Physical altercation detected by AI",
    "medical_emergency": "Potential medical emergency detected",
}
UNKNOWN_CAMERA_EVENT = "Unknown alert detected"

# Recipient groups operators can address
RECIPIENT_GROUPS: dict[str, str] = {
    "all-units": "All Units",
    "security-team": "Security Team",
    "medical-team": "Medical Team",
    "fire-team": "Fire Team",
    "command-center": "Command Center",
    "field-supervisors": "Field Supervisors",
}


@dataclass(frozen=True)
class AlertDraft:
    """Alert fields supplied by the caller; id and timestamp are optional."""

    type: AlertType
    title: str
    message: str
    severity: AlertSeverity
    source: str
    id: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class MessageDraft:
    """Message fields supplied by the caller.

    ``requires_acknowledgment`` of None means "derive from priority".
    """

    type: MessageType
    title: str
    body: str
    sender: str
    recipients: tuple[str, ...]
    priority: MessagePriority = MessagePriority.MEDIUM
    requires_acknowledgment: Optional[bool] = None
    id: Optional[str] = None
    timestamp: Optional[datetime] = None


def _dedupe(tokens: Iterable[str]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for token in tokens:
        token = token.strip()
        if token:
            seen.setdefault(token, None)
    return tuple(seen)


class AlertLifecycle:
    """Creates, acknowledges and delivers alerts and messages."""

    def __init__(self, store: EntityStore, event_bus: Optional[EventBus] = None) -> None:
        self._store = store
        self._event_bus = event_bus

    def _publish(self, event_type: str, data: dict) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(event_type, data)

    # -- Alerts -------------------------------------------------------------

    def raise_alert(self, draft: AlertDraft) -> Result[Alert]:
        if not draft.title.strip():
            return Result.failure(ValidationFailed("title must not be empty", "title"))
        if not draft.message.strip():
            return Result.failure(ValidationFailed("message must not be empty", "message"))
        alert_type = parse_enum(AlertType, draft.type, "type")
        if isinstance(alert_type, ValidationFailed):
            return Result.failure(alert_type)
        severity = parse_enum(AlertSeverity, draft.severity, "severity")
        if isinstance(severity, ValidationFailed):
            return Result.failure(severity)

        alert = Alert(
            id=draft.id or f"ALERT-{uuid.uuid4().hex[:8].upper()}",
            type=alert_type,
            title=draft.title,
            message=draft.message,
            severity=severity,
            source=draft.source,
            timestamp=draft.timestamp or self._store.now(),
        )

        def _raise(state: Snapshot):
            if state.alert(alert.id) is not None:
                return ValidationFailed(f"alert {alert.id!r} already exists", "id")
            return state.with_alert(alert)

        result = self._store.transact(_raise, reason=f"alert:{alert.id}")
        if not result.ok:
            return Result.failure(result.error)
        logger.info(f"Alert {alert.id} raised [{alert.severity.value}] {alert.title} ({alert.source})")
        self._publish("alert_raised", alert.to_dict())
        return Result.success(alert)

    def acknowledge(self, alert_id: str) -> Result[Alert]:
        def _ack(state: Snapshot):
            alert = state.alert(alert_id)
            if alert is None:
                return NotFound("alert", alert_id)
            if alert.acknowledged:
                return state
            return state.with_alert(replace(alert, acknowledged=True))

        result = self._store.transact(_ack, reason=f"ack_alert:{alert_id}")
        if not result.ok:
            return Result.failure(result.error)
        if result.changed:
            self._publish("alert_acknowledged", {"alert_id": alert_id})
        return Result.success(result.value.alert(alert_id), changed=result.changed)

    def clear_all(self) -> Result[int]:
        """Acknowledge every alert in one commit.  Returns how many changed."""
        cleared = 0

        def _clear(state: Snapshot):
            nonlocal cleared
            pending = [a for a in state.alerts if not a.acknowledged]
            cleared = len(pending)
            if not pending:
                return state
            return replace(
                state,
                alerts=tuple(replace(a, acknowledged=True) for a in state.alerts),
            )

        result = self._store.transact(_clear, reason="clear_alerts")
        if not result.ok:
            return Result.failure(result.error)
        if result.changed:
            logger.info(f"Cleared {cleared} alerts")
            self._publish("alerts_cleared", {"count": cleared})
        return Result.success(cleared, changed=result.changed)

    def report_camera_event(self, camera_id: str, event_type: str) -> Result[Alert]:
        """Turn a camera detection into a high-severity prediction alert."""
        if not camera_id or not camera_id.strip():
            return Result.failure(ValidationFailed("camera id must not be empty", "camera_id"))
        return self.raise_alert(AlertDraft(
            type=AlertType.PREDICTION,
            title=f"Camera Alert - {camera_id}",
            message=CAMERA_EVENT_MESSAGES.get(event_type, UNKNOWN_CAMERA_EVENT),
            severity=AlertSeverity.HIGH,
            source=f"Camera {camera_id}",
        ))

    # -- Messages -----------------------------------------------------------

    def compose(
        self, draft: MessageDraft, status: MessageStatus = MessageStatus.SENT
    ) -> Result[Message]:
        recipients = _dedupe(draft.recipients)
        if not recipients:
            return Result.failure(ValidationFailed("at least one recipient is required", "recipients"))
        unknown = [r for r in recipients if r not in RECIPIENT_GROUPS]
        if unknown:
            return Result.failure(ValidationFailed(
                f"unknown recipient group: {', '.join(unknown)}", "recipients"
            ))
        if not draft.body or not draft.body.strip():
            return Result.failure(ValidationFailed("body must not be empty", "body"))
        status = parse_enum(MessageStatus, status, "status")
        if isinstance(status, ValidationFailed):
            return Result.failure(status)
        if status not in (MessageStatus.SENT, MessageStatus.DELIVERED):
            return Result.failure(ValidationFailed(f"cannot compose as {status.value}", "status"))

        priority = parse_enum(MessagePriority, draft.priority, "priority")
        if isinstance(priority, ValidationFailed):
            return Result.failure(priority)
        message_type = parse_enum(MessageType, draft.type, "type")
        if isinstance(message_type, ValidationFailed):
            return Result.failure(message_type)

        requires_ack = draft.requires_acknowledgment
        if requires_ack is None:
            requires_ack = priority in ACK_PRIORITIES

        message = Message(
            id=draft.id or f"MSG-{uuid.uuid4().hex[:8].upper()}",
            type=message_type,
            title=draft.title,
            body=draft.body,
            sender=draft.sender,
            recipients=recipients,
            priority=priority,
            requires_acknowledgment=requires_ack,
            timestamp=draft.timestamp or self._store.now(),
            status=status,
        )
        retention = self._store.message_retention

        def _compose(state: Snapshot):
            if state.message(message.id) is not None:
                return ValidationFailed(f"message {message.id!r} already exists", "id")
            return state.with_message(message, retention=retention)

        result = self._store.transact(_compose, reason=f"message:{message.id}")
        if not result.ok:
            return Result.failure(result.error)
        logger.info(
            f"Message {message.id} [{priority.value}] from {message.sender} "
            f"to {', '.join(recipients)}"
        )
        self._publish("message_composed", message.to_dict())
        return Result.success(message)

    def acknowledge_message(self, message_id: str, actor_id: str) -> Result[Message]:
        """Record that *actor_id* acknowledged the message.  Repeats are kept."""
        if not actor_id or not actor_id.strip():
            return Result.failure(ValidationFailed("actor id must not be empty", "actor_id"))

        def _ack(state: Snapshot):
            message = state.message(message_id)
            if message is None:
                return NotFound("message", message_id)
            return state.with_message(
                replace(message, acknowledged_by=message.acknowledged_by + (actor_id,))
            )

        result = self._store.transact(_ack, reason=f"ack_message:{message_id}")
        if not result.ok:
            return Result.failure(result.error)
        self._publish("message_acknowledged", {"message_id": message_id, "actor_id": actor_id})
        return Result.success(result.value.message(message_id))

    def deliver_pending(self) -> Result[int]:
        """Delivery sweep: every ``sent`` message becomes ``delivered``."""
        delivered = 0

        def _deliver(state: Snapshot):
            nonlocal delivered
            delivered = sum(1 for m in state.messages if m.status == MessageStatus.SENT)
            if not delivered:
                return state
            return replace(state, messages=tuple(
                replace(m, status=MessageStatus.DELIVERED)
                if m.status == MessageStatus.SENT else m
                for m in state.messages
            ))

        result = self._store.transact(_deliver, reason="deliver")
        if not result.ok:
            return Result.failure(result.error)
        return Result.success(delivered, changed=result.changed)

    def mark_failed(self, message_id: str) -> Result[Message]:
        def _fail(state: Snapshot):
            message = state.message(message_id)
            if message is None:
                return NotFound("message", message_id)
            if message.status == MessageStatus.FAILED:
                return state
            if message.status not in (MessageStatus.SENT, MessageStatus.DELIVERED):
                return ValidationFailed(
                    f"cannot fail a message in state {message.status.value}", "status"
                )
            return state.with_message(replace(message, status=MessageStatus.FAILED))

        result = self._store.transact(_fail, reason=f"fail_message:{message_id}")
        if not result.ok:
            return Result.failure(result.error)
        if result.changed:
            logger.warning(f"Message {message_id} delivery failed")
        return Result.success(result.value.message(message_id), changed=result.changed)
