"""Audit data models.

Append-only audit log entries with hash chaining for tamper-evident logging.
"""

from datetime import datetime, UTC
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

# Chain used for events that belong to no single organization
PLATFORM_CHAIN = "platform"


class AuditEventType(str, Enum):
    """Types of auditable events."""

    # Role and permission administration
    ROLE_CREATED = "role_created"
    ROLE_CLONED = "role_cloned"
    ROLE_DELETED = "role_deleted"
    GRANT_ADDED = "grant_added"
    GRANT_REVOKED = "grant_revoked"
    GRANT_EXPIRED = "grant_expired"
    ROLE_ASSIGNED = "role_assigned"
    ROLE_UNASSIGNED = "role_unassigned"
    ASSIGNMENT_EXPIRED = "assignment_expired"
    SYSTEM_ROLE_CHANGED = "system_role_changed"

    # Authorization events
    AUTHZ_DENIED = "authz_denied"
    IMPERSONATION = "impersonation"

    # Data mutation events
    DATA_CREATE = "data_create"
    DATA_UPDATE = "data_update"
    DATA_DELETE = "data_delete"

    # Security events
    SECURITY_VIOLATION = "security_violation"


class AuditSeverity(str, Enum):
    """Severity levels for audit events."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ActorType(str, Enum):
    """Types of actors that can perform actions."""

    USER = "user"
    SYSTEM = "system"
    SERVICE = "service"


class AuditLogEntry(BaseModel):
    """Tamper-evident audit log entry.

    Entries are frozen once created. Chain integrity:
    - `record_hash` is computed from the entry's contents and `previous_hash`
    - `previous_hash` links to the prior entry of the same organization
    - The genesis entry has an empty `previous_hash`
    """

    model_config = ConfigDict(frozen=True)

    # Identity
    record_id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Unique identifier for this entry"
    )
    sequence_number: int = Field(
        description="Monotonically increasing sequence within the organization"
    )
    organization_id: str = Field(description="Organization chain this entry belongs to")
    property_id: str | None = Field(default=None, description="Property affected, if any")

    # Timing
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When this event occurred"
    )

    # Event details
    event_type: AuditEventType = Field(description="Type of auditable event")
    severity: AuditSeverity = Field(default=AuditSeverity.INFO)

    # Actor information
    actor_id: str = Field(description="Who performed the action")
    actor_type: ActorType = Field(default=ActorType.USER)

    # Action details
    action: str = Field(description="Human-readable action description")
    entity_type: str | None = Field(default=None, description="Type of entity affected")
    entity_id: str | None = Field(default=None, description="ID of entity affected")
    before: dict[str, Any] | None = Field(default=None, description="State before the change")
    after: dict[str, Any] | None = Field(default=None, description="State after the change")
    source: str = Field(default="api", description="Subsystem that emitted the entry")
    payload: dict[str, Any] = Field(default_factory=dict)
    correlation_id: str | None = Field(default=None, description="Request correlation ID")

    # Chain integrity
    previous_hash: str = Field(default="", description="Hash of previous entry")
    record_hash: str = Field(default="", description="Computed hash of this entry")

    def to_hash_content(self) -> dict[str, Any]:
        """Deterministic content used for hashing. Excludes `record_hash`."""
        return {
            "record_id": self.record_id,
            "sequence_number": self.sequence_number,
            "organization_id": self.organization_id,
            "property_id": self.property_id,
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "actor_id": self.actor_id,
            "actor_type": self.actor_type.value,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "before": self.before,
            "after": self.after,
            "source": self.source,
            "payload": self.payload,
            "correlation_id": self.correlation_id,
            "previous_hash": self.previous_hash,
        }


class AuditChainStatus(BaseModel):
    """Status of an organization's audit chain."""

    organization_id: str
    total_records: int
    last_record_id: str | None
    last_sequence: int
    last_timestamp: datetime | None
    chain_valid: bool
    last_verified_at: datetime | None
    error_message: str | None = None


class AuditQuery(BaseModel):
    """Query parameters for audit log search."""

    organization_id: str
    event_types: list[AuditEventType] | None = None
    actor_id: str | None = None
    entity_type: str | None = None
    entity_id: str | None = None
    # Exact matches against entry payload keys
    payload: dict[str, Any] | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    limit: int = 100
    offset: int = 0

    def matches(self, entry: AuditLogEntry) -> bool:
        if self.event_types and entry.event_type not in self.event_types:
            return False
        if self.actor_id and entry.actor_id != self.actor_id:
            return False
        if self.entity_type and entry.entity_type != self.entity_type:
            return False
        if self.entity_id and entry.entity_id != self.entity_id:
            return False
        if self.payload and any(entry.payload.get(k) != v for k, v in self.payload.items()):
            return False
        if self.start_time and entry.timestamp < self.start_time:
            return False
        if self.end_time and entry.timestamp > self.end_time:
            return False
        return True
