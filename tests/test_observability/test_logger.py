"""Tests for observability logger."""

import json

import pytest

from ehr_guard.observability import (
    AccessDecisionEvent,
    EventType,
    ObservabilityLogger,
    get_observability_logger,
)


@pytest.fixture
def temp_log_dir(tmp_path):
    """Create temporary log directory."""
    log_dir = tmp_path / "decision_logs"
    log_dir.mkdir()
    return log_dir


@pytest.fixture
def decision_logger(temp_log_dir):
    """Create observability logger with temp directory."""
    return ObservabilityLogger(log_dir=temp_log_dir, enabled=True)


class TestObservabilityLogger:
    """Tests for ObservabilityLogger."""

    def test_init_creates_log_directory(self, tmp_path):
        log_dir = tmp_path / "new_logs"
        ObservabilityLogger(log_dir=log_dir)

        assert log_dir.exists()

    def test_disabled_logger_writes_nothing(self, temp_log_dir):
        logger = ObservabilityLogger(log_dir=temp_log_dir, enabled=False)
        logger.log_access_decision("auth-x", "staff", "patients", "read", allowed=True)

        assert not (temp_log_dir / "access_decisions.jsonl").exists()

    def test_access_decision_written_as_jsonl(self, decision_logger, temp_log_dir):
        decision_logger.log_access_decision(
            auth_ref="auth-dr-a",
            role="provider",
            resource_type="clinical_notes",
            operation="update",
            allowed=False,
            record_id="n-1",
            request_id="req-1",
        )

        lines = (temp_log_dir / "access_decisions.jsonl").read_text().splitlines()
        assert len(lines) == 1
        event = json.loads(lines[0])
        assert event["event_type"] == "access_denied"
        assert event["decision"] == "deny"
        assert event["clause"] is None
        assert event["record_id"] == "n-1"
        assert event["request_id"] == "req-1"

    def test_notification_and_sweep_events_go_to_separate_files(self, decision_logger, temp_log_dir):
        decision_logger.log_notification("high_risk_assessment", "log", {"score": 18}, duration_ms=1.5)
        decision_logger.log_notification("high_risk_assessment", "webhook", {"score": 18}, error="timeout")
        decision_logger.log_lock_sweep(["a", "b"], duration_ms=12.0)

        notifications = decision_logger.get_recent_events("notifications")
        assert [e["event_type"] for e in notifications] == ["notification_sent", "notification_failed"]
        assert notifications[1]["error_message"] == "timeout"

        (sweep,) = decision_logger.get_recent_events("sweeps")
        assert sweep["locked_count"] == 2
        assert sweep["note_ids"] == ["a", "b"]

    def test_callbacks_receive_events(self, decision_logger):
        received = []
        decision_logger.add_callback(received.append)

        decision_logger.log_access_decision("auth-admin", "admin", "users", "delete", allowed=True, clause="users.delete.admin")

        assert len(received) == 1
        assert isinstance(received[0], AccessDecisionEvent)
        assert received[0].event_type == EventType.ACCESS_ALLOWED

    def test_failing_callback_does_not_raise(self, decision_logger):
        def broken(event):
            raise ValueError("boom")

        decision_logger.add_callback(broken)
        decision_logger.log_access_decision("auth-admin", "admin", "users", "read", allowed=True)

        assert len(decision_logger.get_recent_events("access")) == 1

    def test_recent_events_limit_and_missing_file(self, decision_logger):
        assert decision_logger.get_recent_events("access") == []
        for i in range(5):
            decision_logger.log_access_decision(f"auth-{i}", "staff", "patients", "read", allowed=True)

        recent = decision_logger.get_recent_events("access", limit=2)
        assert [e["auth_ref"] for e in recent] == ["auth-3", "auth-4"]

    def test_stats(self, decision_logger):
        assert decision_logger.get_stats() == {"total": 0}

        decision_logger.log_access_decision("a", "staff", "patients", "read", allowed=True)
        decision_logger.log_access_decision("b", "patient", "patients", "read", allowed=False)
        decision_logger.log_access_decision("c", "provider", "clinical_notes", "update", allowed=False)
        decision_logger.log_access_decision("d", "admin", "clinical_notes", "read", allowed=True)

        stats = decision_logger.get_stats()
        assert stats["total"] == 4
        assert stats["denied"] == 2
        assert stats["deny_rate"] == 0.5
        assert stats["by_resource"] == {"patients": 2, "clinical_notes": 2}

    def test_generate_request_id(self, decision_logger):
        request_id = decision_logger.generate_request_id()
        assert len(request_id) == 8
        assert request_id != decision_logger.generate_request_id()


class TestSingleton:
    def test_reset_instance_replaces_global_logger(self, decision_logger):
        ObservabilityLogger.reset_instance(decision_logger)
        assert get_observability_logger() is decision_logger
