"""ehr-guard: row-level access control, audit trail and consistency triggers for clinical records."""

__version__ = "0.1.0"
