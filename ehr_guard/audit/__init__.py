"""Append-only audit trail for clinical record mutations."""

from ehr_guard.audit.recorder import AuditImmutableError, AuditRecorder, diff_rows, snapshot

__all__ = ["AuditImmutableError", "AuditRecorder", "diff_rows", "snapshot"]
