"""Observability logger for access-decision telemetry."""

import json
import logging
import uuid
from pathlib import Path
from typing import Any, Callable, Optional

from ehr_guard.observability.events import (
    AccessDecisionEvent,
    EventType,
    LockSweepEvent,
    NotificationEvent,
    ObservabilityEvent,
)

logger = logging.getLogger(__name__)


class ObservabilityLogger:
    """Central logger for access decisions, notifications and lock sweeps.

    Writes structured events to JSON Lines files for later analysis.
    Failures while writing are logged and never reach the caller.
    """

    _instance: Optional["ObservabilityLogger"] = None

    def __init__(
        self,
        log_dir: Optional[Path] = None,
        enabled: bool = True,
    ):
        """Initialize observability logger.

        Args:
            log_dir: Directory for log files (default: data/logs)
            enabled: Whether logging is enabled
        """
        self.enabled = enabled

        if log_dir is None:
            log_dir = Path("data/logs")
        self.log_dir = log_dir
        if self.enabled:
            self.log_dir.mkdir(parents=True, exist_ok=True)

        # Separate files for different event types
        self._log_files: dict[str, Path] = {
            "access": self.log_dir / "access_decisions.jsonl",
            "notifications": self.log_dir / "notifications.jsonl",
            "sweeps": self.log_dir / "lock_sweeps.jsonl",
        }

        # Event callbacks for real-time monitoring
        self._callbacks: list[Callable[[ObservabilityEvent], None]] = []

    @classmethod
    def get_instance(cls) -> "ObservabilityLogger":
        """Get or create singleton instance."""
        if cls._instance is None:
            from ehr_guard.config import get_settings

            settings = get_settings()
            cls._instance = cls(
                log_dir=settings.decision_log_dir,
                enabled=settings.decision_log_enabled,
            )
        return cls._instance

    @classmethod
    def reset_instance(cls, instance: Optional["ObservabilityLogger"] = None) -> None:
        """Replace (or clear) the singleton. Used by tests and the CLI."""
        cls._instance = instance

    def generate_request_id(self) -> str:
        """Generate a unique request ID."""
        return str(uuid.uuid4())[:8]

    def add_callback(self, callback: Callable[[ObservabilityEvent], None]) -> None:
        """Add callback for real-time event monitoring."""
        self._callbacks.append(callback)

    def _write_event(self, event: ObservabilityEvent, log_type: str) -> None:
        """Write event to appropriate log file."""
        if not self.enabled:
            return

        try:
            log_file = self._log_files.get(log_type)
            if log_file:
                with open(log_file, "a") as f:
                    f.write(event.model_dump_json() + "\n")

            for callback in self._callbacks:
                try:
                    callback(event)
                except Exception as e:
                    logger.warning(f"Observability callback failed: {e}")

        except Exception as e:
            logger.warning(f"Failed to write observability event: {e}")

    # Access decisions

    def log_access_decision(
        self,
        auth_ref: str,
        role: str,
        resource_type: str,
        operation: str,
        allowed: bool,
        record_id: Optional[str] = None,
        clause: Optional[str] = None,
        reason: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> None:
        event = AccessDecisionEvent(
            event_type=EventType.ACCESS_ALLOWED if allowed else EventType.ACCESS_DENIED,
            auth_ref=auth_ref,
            role=role,
            resource_type=resource_type,
            operation=operation,
            record_id=record_id,
            decision="allow" if allowed else "deny",
            clause=clause,
            reason=reason,
            request_id=request_id,
        )
        self._write_event(event, "access")

    # Notifications

    def log_notification(
        self,
        topic: str,
        sink: str,
        payload: dict[str, Any],
        error: Optional[str] = None,
        duration_ms: Optional[float] = None,
    ) -> None:
        event = NotificationEvent(
            event_type=EventType.NOTIFICATION_FAILED if error else EventType.NOTIFICATION_SENT,
            topic=topic,
            sink=sink,
            payload=payload,
            error_message=error,
            duration_ms=duration_ms,
        )
        self._write_event(event, "notifications")

    # Lock sweeps

    def log_lock_sweep(self, note_ids: list[str], duration_ms: Optional[float] = None) -> None:
        event = LockSweepEvent(
            event_type=EventType.LOCK_SWEEP,
            locked_count=len(note_ids),
            note_ids=note_ids,
            duration_ms=duration_ms,
        )
        self._write_event(event, "sweeps")

    # Utility methods

    def get_recent_events(
        self,
        log_type: str,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """Read recent events from a log file."""
        log_file = self._log_files.get(log_type)
        if not log_file or not log_file.exists():
            return []

        events = []
        with open(log_file) as f:
            for line in f:
                try:
                    events.append(json.loads(line))
                except json.JSONDecodeError:
                    continue

        return events[-limit:]

    def get_stats(self) -> dict[str, Any]:
        """Allow/deny counts over recent access decisions."""
        events = self.get_recent_events("access", limit=1000)
        if not events:
            return {"total": 0}

        total = len(events)
        denied = sum(1 for e in events if e.get("decision") == "deny")
        by_resource: dict[str, int] = {}
        for e in events:
            by_resource[e.get("resource_type", "unknown")] = by_resource.get(e.get("resource_type", "unknown"), 0) + 1

        return {
            "total": total,
            "denied": denied,
            "deny_rate": denied / total if total > 0 else 0,
            "by_resource": by_resource,
        }


def get_observability_logger() -> ObservabilityLogger:
    """Get the global observability logger instance."""
    return ObservabilityLogger.get_instance()
