"""Audit hash chain implementation.

Provides tamper-evident audit logging through cryptographic hash chaining.
Each organization has its own chain; every entry links to its predecessor.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from collections import defaultdict
from datetime import datetime, UTC
from typing import Any, Protocol

from pydantic_core import to_jsonable_python

from hotelhub.audit.models import (
    ActorType,
    AuditChainStatus,
    AuditEventType,
    AuditLogEntry,
    AuditQuery,
    AuditSeverity,
)

logger = logging.getLogger(__name__)


class AuditStorage(Protocol):
    """Protocol for audit storage backends.

    Implementations must provide append-only semantics.
    """

    async def append(self, record: AuditLogEntry) -> None:
        ...

    async def get_latest(self, organization_id: str) -> AuditLogEntry | None:
        ...

    async def get_range(
        self, organization_id: str, start_sequence: int, end_sequence: int
    ) -> list[AuditLogEntry]:
        ...

    async def get_all(self, organization_id: str, limit: int = 10000) -> list[AuditLogEntry]:
        ...

    async def count(self, organization_id: str) -> int:
        ...

    async def query(self, query: AuditQuery) -> list[AuditLogEntry]:
        ...


class AuditLog:
    """Append-only, hash-chained audit log.

    Usage:
        audit = AuditLog(InMemoryAuditStorage())

        await audit.record(
            organization_id="org-a",
            event_type=AuditEventType.GRANT_ADDED,
            actor_id="owner-1",
            action="Granted payslip.read.property to role front-desk",
            entity_type="role",
            entity_id="front-desk",
            after={...},
        )

        valid, error = await audit.verify_chain("org-a")
    """

    def __init__(self, storage: AuditStorage):
        self.storage = storage
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @staticmethod
    def compute_record_hash(record: AuditLogEntry) -> str:
        """SHA-256 over canonical JSON of the entry, including previous_hash."""
        canonical = json.dumps(
            record.to_hash_content(), sort_keys=True, separators=(",", ":")
        )
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    async def record(
        self,
        organization_id: str,
        event_type: AuditEventType,
        actor_id: str,
        action: str,
        *,
        property_id: str | None = None,
        entity_type: str | None = None,
        entity_id: str | None = None,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
        source: str = "api",
        payload: dict[str, Any] | None = None,
        actor_type: ActorType = ActorType.USER,
        severity: AuditSeverity = AuditSeverity.INFO,
        correlation_id: str | None = None,
    ) -> AuditLogEntry:
        """Create and append a new entry.

        Sequence assignment and hash linking are serialized per organization.
        """
        async with self._locks[organization_id]:
            previous = await self.storage.get_latest(organization_id)
            if previous:
                previous_hash = previous.record_hash
                sequence = previous.sequence_number + 1
            else:
                previous_hash = ""  # Genesis entry
                sequence = 1

            record = AuditLogEntry(
                sequence_number=sequence,
                organization_id=organization_id,
                property_id=property_id,
                event_type=event_type,
                severity=severity,
                actor_id=actor_id,
                actor_type=actor_type,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                before=to_jsonable_python(before) if before is not None else None,
                after=to_jsonable_python(after) if after is not None else None,
                source=source,
                payload=to_jsonable_python(payload or {}),
                correlation_id=correlation_id,
                previous_hash=previous_hash,
            )
            record = record.model_copy(update={"record_hash": self.compute_record_hash(record)})

            await self.storage.append(record)

        logger.debug(
            "Appended audit entry: org=%s seq=%d type=%s hash=%s",
            organization_id,
            sequence,
            event_type.value,
            record.record_hash[:16] + "...",
        )
        return record

    async def entries(self, query: AuditQuery) -> list[AuditLogEntry]:
        return await self.storage.query(query)

    async def verify_chain(
        self,
        organization_id: str,
        start_sequence: int = 1,
        end_sequence: int | None = None,
    ) -> tuple[bool, str | None]:
        """Verify integrity of an organization's chain.

        Checks that hashes match contents, links match the prior entry and
        sequence numbers are continuous.

        Returns:
            (True, None) if valid, (False, "description") if tampering detected
        """
        if end_sequence:
            records = await self.storage.get_range(organization_id, start_sequence, end_sequence)
        else:
            records = await self.storage.get_all(organization_id)
            records = [r for r in records if r.sequence_number >= start_sequence]

        if not records:
            return True, None

        records.sort(key=lambda r: r.sequence_number)

        first = records[0]
        if first.sequence_number == 1 and first.previous_hash != "":
            return False, "Genesis entry (seq=1) has non-empty previous_hash"

        if self.compute_record_hash(first) != first.record_hash:
            return False, f"Hash mismatch at sequence {first.sequence_number}"

        previous_hash = first.record_hash
        previous_sequence = first.sequence_number

        for record in records[1:]:
            if record.sequence_number != previous_sequence + 1:
                return False, (
                    f"Sequence gap: expected {previous_sequence + 1}, "
                    f"got {record.sequence_number}"
                )

            if record.previous_hash != previous_hash:
                return False, (
                    f"Chain break at sequence {record.sequence_number}: "
                    f"previous_hash mismatch"
                )

            if self.compute_record_hash(record) != record.record_hash:
                return False, (
                    f"Hash mismatch at sequence {record.sequence_number}: "
                    f"tampering detected"
                )

            previous_hash = record.record_hash
            previous_sequence = record.sequence_number

        logger.info(
            "Chain verification passed: org=%s records=%d",
            organization_id,
            len(records),
        )
        return True, None

    async def get_chain_status(self, organization_id: str) -> AuditChainStatus:
        count = await self.storage.count(organization_id)
        latest = await self.storage.get_latest(organization_id)

        # Quick verification of the tail
        valid, error = True, None
        if latest is not None:
            start = max(1, latest.sequence_number - 10)
            valid, error = await self.verify_chain(organization_id, start_sequence=start)

        return AuditChainStatus(
            organization_id=organization_id,
            total_records=count,
            last_record_id=latest.record_id if latest else None,
            last_sequence=latest.sequence_number if latest else 0,
            last_timestamp=latest.timestamp if latest else None,
            chain_valid=valid,
            last_verified_at=datetime.now(UTC),
            error_message=error,
        )
