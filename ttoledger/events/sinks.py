"""Mini README: Audit-log and notification sinks.

Structure:
    * AuditEvent / Notification - payloads handed to the sinks.
    * AuditSink / NotificationSink - abstract collaborators.
    * LoggingAuditSink / LoggingNotificationSink - write to the application log.
    * RecordingAuditSink / RecordingNotificationSink - keep payloads in memory.
    * dispatch_audit / dispatch_notification - best-effort delivery helpers.

Sinks are side effects of an operation that already succeeded. Delivery
failures are logged with the traceback and never reach the caller.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..logging_utils import get_logger

LOGGER = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class AuditEvent:
    """Who changed which entity, with its state before and after."""

    actor_id: str
    action: str
    entity_type: str
    entity_id: str
    after: Dict[str, Any]
    before: Optional[Dict[str, Any]] = None
    recorded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True, slots=True)
class Notification:
    """Message for one user, optionally pointing at the entity it is about."""

    person_id: str
    type: str
    title: str
    message: str
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None


class AuditSink(ABC):
    """Receives audit events for every successful write."""

    @abstractmethod
    def record(self, event: AuditEvent) -> None:
        """Persist or forward the audit event."""


class NotificationSink(ABC):
    """Delivers user-facing notifications."""

    @abstractmethod
    def notify(self, notification: Notification) -> None:
        """Deliver the notification."""


class LoggingAuditSink(AuditSink):
    """Audit sink that writes one INFO line per event."""

    def record(self, event: AuditEvent) -> None:
        """Write the event to the application log."""

        LOGGER.info(
            "AUDIT actor=%s action=%s entity=%s:%s",
            event.actor_id,
            event.action,
            event.entity_type,
            event.entity_id,
        )


class LoggingNotificationSink(NotificationSink):
    """Notification sink for deployments without a delivery channel."""

    def notify(self, notification: Notification) -> None:
        """Write the notification to the application log."""

        LOGGER.info("NOTIFY person=%s type=%s title=%s", notification.person_id, notification.type, notification.title)


class RecordingAuditSink(AuditSink):
    """Keep events in a list so callers can inspect what was audited."""

    def __init__(self) -> None:
        self.events: List[AuditEvent] = []

    def record(self, event: AuditEvent) -> None:
        self.events.append(event)


class RecordingNotificationSink(NotificationSink):
    """Keep notifications in a list so callers can inspect what was sent."""

    def __init__(self) -> None:
        self.notifications: List[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)


def dispatch_audit(sink: Optional[AuditSink], event: AuditEvent) -> bool:
    """Deliver ``event``; return ``False`` instead of raising on failure."""

    if sink is None:
        return False
    try:
        sink.record(event)
    except Exception as exc:
        LOGGER.exception("Audit sink failed for %s %s:%s: %s", event.action, event.entity_type, event.entity_id, exc)
        return False
    return True


def dispatch_notification(sink: Optional[NotificationSink], notification: Notification) -> bool:
    """Deliver ``notification``; return ``False`` instead of raising on failure."""

    if sink is None:
        return False
    try:
        sink.notify(notification)
    except Exception as exc:
        LOGGER.exception("Notification sink failed for person %s: %s", notification.person_id, exc)
        return False
    return True
