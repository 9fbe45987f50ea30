"""Audit storage backends.

Append-only storage implementations for audit log entries.
"""

from __future__ import annotations

import logging
from pathlib import Path

from hotelhub.audit.models import AuditLogEntry, AuditQuery

logger = logging.getLogger(__name__)


class InMemoryAuditStorage:
    """Process-local storage for tests and development."""

    def __init__(self):
        self._chains: dict[str, list[AuditLogEntry]] = {}

    async def append(self, record: AuditLogEntry) -> None:
        self._chains.setdefault(record.organization_id, []).append(record)

    async def get_latest(self, organization_id: str) -> AuditLogEntry | None:
        chain = self._chains.get(organization_id)
        return chain[-1] if chain else None

    async def get_range(
        self, organization_id: str, start_sequence: int, end_sequence: int
    ) -> list[AuditLogEntry]:
        return [
            r for r in self._chains.get(organization_id, [])
            if start_sequence <= r.sequence_number <= end_sequence
        ]

    async def get_all(self, organization_id: str, limit: int = 10000) -> list[AuditLogEntry]:
        return list(self._chains.get(organization_id, [])[:limit])

    async def count(self, organization_id: str) -> int:
        return len(self._chains.get(organization_id, []))

    async def query(self, query: AuditQuery) -> list[AuditLogEntry]:
        filtered = [r for r in self._chains.get(query.organization_id, []) if query.matches(r)]
        return filtered[query.offset:query.offset + query.limit]


class FileAuditStorage:
    """File-based audit storage for development and small deployments.

    Stores entries in JSONL format, one file per organization.
    """

    def __init__(self, storage_path: str | Path):
        self.storage_path = Path(storage_path)
        self.storage_path.mkdir(parents=True, exist_ok=True)
        logger.info("FileAuditStorage initialized at %s", self.storage_path)

    def _chain_file(self, organization_id: str) -> Path:
        # Sanitize to prevent path traversal
        safe_id = "".join(c for c in organization_id if c.isalnum() or c in "-_")
        return self.storage_path / f"audit_{safe_id}.jsonl"

    def _read(self, organization_id: str) -> list[AuditLogEntry]:
        file_path = self._chain_file(organization_id)
        if not file_path.exists():
            return []

        records = []
        with open(file_path, "r", encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    records.append(AuditLogEntry.model_validate_json(line))
        return records

    async def append(self, record: AuditLogEntry) -> None:
        file_path = self._chain_file(record.organization_id)
        with open(file_path, "a", encoding="utf-8") as f:
            f.write(record.model_dump_json() + "\n")

        logger.debug(
            "Appended audit entry: org=%s seq=%d",
            record.organization_id,
            record.sequence_number,
        )

    async def get_latest(self, organization_id: str) -> AuditLogEntry | None:
        records = self._read(organization_id)
        return records[-1] if records else None

    async def get_range(
        self, organization_id: str, start_sequence: int, end_sequence: int
    ) -> list[AuditLogEntry]:
        records = [
            r for r in self._read(organization_id)
            if start_sequence <= r.sequence_number <= end_sequence
        ]
        return sorted(records, key=lambda r: r.sequence_number)

    async def get_all(self, organization_id: str, limit: int = 10000) -> list[AuditLogEntry]:
        return self._read(organization_id)[:limit]

    async def count(self, organization_id: str) -> int:
        return len(self._read(organization_id))

    async def query(self, query: AuditQuery) -> list[AuditLogEntry]:
        filtered = [r for r in self._read(query.organization_id) if query.matches(r)]
        return filtered[query.offset:query.offset + query.limit]


def get_audit_storage(storage_type: str = "memory", storage_path: str | None = None):
    """Create a storage backend from settings values."""
    if storage_type == "memory":
        return InMemoryAuditStorage()
    if storage_type == "file":
        return FileAuditStorage(storage_path or "data/audit")
    raise ValueError(f"Unknown audit storage type: {storage_type}")
