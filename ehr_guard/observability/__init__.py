"""Observability module for access-decision telemetry."""

from ehr_guard.observability.events import (
    AccessDecisionEvent,
    EventType,
    LockSweepEvent,
    NotificationEvent,
    ObservabilityEvent,
)
from ehr_guard.observability.logger import ObservabilityLogger, get_observability_logger

__all__ = [
    "AccessDecisionEvent",
    "EventType",
    "LockSweepEvent",
    "NotificationEvent",
    "ObservabilityEvent",
    "ObservabilityLogger",
    "get_observability_logger",
]
