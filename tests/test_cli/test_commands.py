"""Tests for CLI commands."""

from unittest.mock import AsyncMock, MagicMock, patch

from typer.testing import CliRunner

from ehr_guard.cli.commands import app
from ehr_guard.core.auth import claims_from_token


runner = CliRunner()


class TestExplainCommand:
    """Tests for the explain command."""

    def test_prints_policy_table(self):
        result = runner.invoke(app, ["explain"])

        assert result.exit_code == 0
        assert "Access policy" in result.stdout
        assert "Anything not listed is denied." in result.stdout

    def test_filters_by_resource(self):
        result = runner.invoke(app, ["explain", "--resource", "users"])

        assert result.exit_code == 0
        assert "users" in result.stdout
        assert "assessments" not in result.stdout

    def test_unknown_resource_exits_with_error(self):
        result = runner.invoke(app, ["explain", "--resource", "billing"])

        assert result.exit_code == 1
        assert "Unknown resource" in result.stdout


class TestIssueTokenCommand:
    """Tests for the issue-token command."""

    def test_token_carries_auth_ref_and_role(self):
        result = runner.invoke(app, ["issue-token", "auth-dr-a", "--role", "provider"])

        assert result.exit_code == 0
        claims = claims_from_token(result.stdout.strip())
        assert claims is not None
        assert claims.auth_ref == "auth-dr-a"
        assert claims.claimed_role == "provider"

    def test_token_without_role(self):
        result = runner.invoke(app, ["issue-token", "auth-staff"])

        claims = claims_from_token(result.stdout.strip())
        assert claims.auth_ref == "auth-staff"
        assert claims.claimed_role is None


class TestSweepLocksCommand:
    """Tests for the sweep-locks command."""

    def test_reports_locked_count(self):
        with patch("ehr_guard.core.database.get_session_factory", MagicMock()), \
             patch("ehr_guard.core.database.dispose_engine", AsyncMock()), \
             patch("ehr_guard.triggers.sweeper.NoteLockSweeper.run_once", AsyncMock(return_value=3)):
            result = runner.invoke(app, ["sweep-locks", "--days", "10"])

        assert result.exit_code == 0
        assert "Locked 3 clinical note(s) signed more than 10 days ago" in result.stdout

    def test_defaults_to_configured_lock_days(self):
        with patch("ehr_guard.core.database.get_session_factory", MagicMock()), \
             patch("ehr_guard.core.database.dispose_engine", AsyncMock()), \
             patch("ehr_guard.triggers.sweeper.NoteLockSweeper.run_once", AsyncMock(return_value=0)):
            result = runner.invoke(app, ["sweep-locks"])

        assert result.exit_code == 0
        assert "more than 7 days ago" in result.stdout


class TestDecisionsCommand:
    """Tests for the decisions command."""

    def test_empty_log(self):
        result = runner.invoke(app, ["decisions"])

        assert result.exit_code == 0
        assert "No access decisions logged yet" in result.stdout

    def test_summarizes_logged_decisions(self, obs_logger):
        obs_logger.log_access_decision("auth-dr-a", "provider", "patients", "read", allowed=True)
        obs_logger.log_access_decision("auth-dr-b", "provider", "patients", "read", allowed=False)
        obs_logger.log_access_decision("auth-staff", "staff", "clinical_notes", "update", allowed=False)

        result = runner.invoke(app, ["decisions"])

        assert result.exit_code == 0
        assert "Decisions: 3" in result.stdout
        assert "denied: 2" in result.stdout
        assert "clinical_notes" in result.stdout


class TestHelp:
    def test_lists_commands(self):
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        for command in ("init-db", "sweep-locks", "issue-token", "explain", "decisions", "serve"):
            assert command in result.stdout
