"""Persistence layer — SQLite escalation store and JSONL audit trail."""

from vouch.persistence.audit import AuditLog
from vouch.persistence.database import close_db, init_db
from vouch.persistence.escalations import EscalationStore

__all__ = [
    "AuditLog",
    "EscalationStore",
    "close_db",
    "init_db",
]
