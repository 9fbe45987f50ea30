"""HotelHub Audit Package.

Append-only, hash-chained audit log for role and grant administration,
impersonation, data mutations and security violations.

Usage:
    from hotelhub.audit import AuditLog, InMemoryAuditStorage

    audit = AuditLog(InMemoryAuditStorage())
    await audit.record(organization_id="org-a", event_type=..., actor_id=..., action=...)
    valid, error = await audit.verify_chain("org-a")
"""

from hotelhub.audit.models import (
    PLATFORM_CHAIN,
    ActorType,
    AuditEventType,
    AuditLogEntry,
    AuditQuery,
    AuditSeverity,
)
from hotelhub.audit.chain import AuditLog
from hotelhub.audit.storage import FileAuditStorage, InMemoryAuditStorage, get_audit_storage

__all__ = [
    "PLATFORM_CHAIN",
    "ActorType",
    "AuditEventType",
    "AuditLogEntry",
    "AuditQuery",
    "AuditSeverity",
    "AuditLog",
    "FileAuditStorage",
    "InMemoryAuditStorage",
    "get_audit_storage",
]
