"""Structured observability events for access decisions and notifications."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of observability events."""

    ACCESS_ALLOWED = "access_allowed"
    ACCESS_DENIED = "access_denied"
    NOTIFICATION_SENT = "notification_sent"
    NOTIFICATION_FAILED = "notification_failed"
    LOCK_SWEEP = "lock_sweep"


class ObservabilityEvent(BaseModel):
    """Base class for all observability events."""

    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    request_id: Optional[str] = None
    duration_ms: Optional[float] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class AccessDecisionEvent(ObservabilityEvent):
    """One policy decision on a single row."""

    auth_ref: str
    role: str
    resource_type: str
    operation: str
    record_id: Optional[str] = None
    decision: str
    clause: Optional[str] = None  # name of the granting clause, if any
    reason: Optional[str] = None


class NotificationEvent(ObservabilityEvent):
    """A post-commit notification and where it went."""

    topic: str
    sink: str
    payload: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None


class LockSweepEvent(ObservabilityEvent):
    """Result of one note-lock sweep."""

    locked_count: int = 0
    note_ids: list[str] = Field(default_factory=list)
