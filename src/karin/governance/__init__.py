"""Governance: hash-chained audit logging of case process mutations."""

from karin.governance.audit import AuditEntry, AuditLogger

__all__ = ["AuditEntry", "AuditLogger"]
