"""Consistency reactions downstream of committed mutations."""

from ehr_guard.triggers.appointments import build_followup, ensure_completion_note, is_completion_transition
from ehr_guard.triggers.assessments import high_risk_notification, is_high_risk
from ehr_guard.triggers.notes import as_utc, lock_due, lock_expired_notes, lock_note
from ehr_guard.triggers.notifications import (
    HIGH_RISK_TOPIC,
    InMemorySink,
    LoggingSink,
    Notification,
    NotificationDispatcher,
    WebhookSink,
    build_dispatcher,
)
from ehr_guard.triggers.sweeper import NoteLockSweeper

__all__ = [
    "HIGH_RISK_TOPIC",
    "InMemorySink",
    "LoggingSink",
    "NoteLockSweeper",
    "Notification",
    "NotificationDispatcher",
    "WebhookSink",
    "as_utc",
    "build_dispatcher",
    "build_followup",
    "ensure_completion_note",
    "high_risk_notification",
    "is_completion_transition",
    "is_high_risk",
    "lock_due",
    "lock_expired_notes",
    "lock_note",
]
