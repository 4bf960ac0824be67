"""Mini README: Side-effect sinks fed by the ledger engines.

Audit events and notifications are fire-and-forget: engines call the
``dispatch_*`` helpers after their writes succeeded, and a failing sink is
logged rather than raised.
"""

from .sinks import (
    AuditEvent,
    AuditSink,
    LoggingAuditSink,
    LoggingNotificationSink,
    Notification,
    NotificationSink,
    RecordingAuditSink,
    RecordingNotificationSink,
    dispatch_audit,
    dispatch_notification,
)

__all__ = [
    "AuditEvent",
    "AuditSink",
    "LoggingAuditSink",
    "LoggingNotificationSink",
    "Notification",
    "NotificationSink",
    "RecordingAuditSink",
    "RecordingNotificationSink",
    "dispatch_audit",
    "dispatch_notification",
]
