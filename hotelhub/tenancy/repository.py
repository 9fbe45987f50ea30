"""Tenant-scoped repository.

The only path handlers should use to reach tenant data. Reads are filtered
and post-validated; writes get their tenant fields forced; updates and
deletes first load their target through the filtered read path, so a
record outside the tenant is indistinguishable from a missing one.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import uuid4

from hotelhub.audit import AuditEventType, AuditLog
from hotelhub.authz.models import ResourceAttributes, Scope
from hotelhub.errors import NotFoundError
from hotelhub.tenancy.context import TenantContext
from hotelhub.tenancy.datasource import TenantDataSource
from hotelhub.tenancy.entities import EntityDescriptor
from hotelhub.tenancy.query_filter import TenantQueryFilter, Where

logger = logging.getLogger(__name__)


class TenantScopedRepository:
    """CRUD access to one entity, scoped to the caller's tenant.

    Usage:
        staff = TenantScopedRepository(get_entity("user"), source, query_filter, audit)
        rows = await staff.list(context, {"status": "active"})
        row = await staff.get(context, "u-42")  # NotFoundError if outside the tenant
    """

    def __init__(
        self,
        entity: EntityDescriptor,
        source: TenantDataSource,
        query_filter: TenantQueryFilter,
        audit: AuditLog | None = None,
    ):
        self.entity = entity
        self.source = source
        self.query_filter = query_filter
        self.audit = audit

    def attributes(self, row: dict[str, Any]) -> ResourceAttributes:
        """Tenancy attributes of a row, for target-aware authorization."""
        e = self.entity
        return ResourceAttributes(
            resource_id=_as_str(row.get(e.id_field)),
            organization_id=_as_str(row.get(e.organization_field)),
            property_id=_as_str(row.get(e.property_field)) if e.property_field else None,
            department_id=_as_str(row.get(e.department_field)) if e.department_field else None,
            owner_id=_as_str(row.get(e.owner_field)) if e.owner_field else None,
        )

    async def list(
        self,
        context: TenantContext,
        where: Where | None = None,
        *,
        scope: Scope | None = None,
        limit: int | None = None,
        offset: int = 0,
        order_by: str | None = None,
    ) -> list[dict[str, Any]]:
        filtered = self.query_filter.with_tenant_filter(where, context, self.entity, scope)
        rows = await self.source.find_many(
            self.entity.name, filtered, limit=limit, offset=offset, order_by=order_by
        )
        return await self.query_filter.validate_tenant_ownership(rows, context, self.entity, scope)

    async def get(
        self,
        context: TenantContext,
        record_id: Any,
        *,
        scope: Scope | None = None,
    ) -> dict[str, Any]:
        """Load one record.

        Raises:
            NotFoundError: for missing records and records outside the tenant alike
        """
        filtered = self.query_filter.with_tenant_filter(
            {self.entity.id_field: record_id}, context, self.entity, scope
        )
        row = await self.source.find_one(self.entity.name, filtered)
        if row is None:
            raise NotFoundError()
        await self.query_filter.validate_tenant_ownership([row], context, self.entity, scope)
        return row

    async def create(self, context: TenantContext, data: dict[str, Any]) -> dict[str, Any]:
        payload = self.query_filter.ensure_tenant_fields(data, context, self.entity)
        payload.setdefault(self.entity.id_field, uuid4().hex)

        row = await self.source.insert(self.entity.name, payload)
        logger.info(
            "Created %s %s in org=%s by user=%s",
            self.entity.name,
            row[self.entity.id_field],
            row.get(self.entity.organization_field),
            context.user_id,
        )
        await self._audit(AuditEventType.DATA_CREATE, context, row, after=row)
        return row

    async def update(
        self,
        context: TenantContext,
        record_id: Any,
        changes: dict[str, Any],
        *,
        scope: Scope | None = None,
    ) -> dict[str, Any]:
        before = await self.get(context, record_id, scope=scope)
        if not any(field != self.entity.id_field for field in changes):
            return before

        if context.unscoped:
            payload = dict(changes)
        else:
            payload = self.query_filter.ensure_tenant_fields(changes, context, self.entity)
        payload.pop(self.entity.id_field, None)

        filtered = self.query_filter.with_tenant_filter(
            {self.entity.id_field: record_id}, context, self.entity, scope
        )
        if await self.source.update(self.entity.name, filtered, payload) == 0:
            raise NotFoundError()

        after = {**before, **payload}
        await self._audit(AuditEventType.DATA_UPDATE, context, after, before=before, after=after)
        return after

    async def delete(
        self,
        context: TenantContext,
        record_id: Any,
        *,
        scope: Scope | None = None,
    ) -> dict[str, Any]:
        before = await self.get(context, record_id, scope=scope)

        filtered = self.query_filter.with_tenant_filter(
            {self.entity.id_field: record_id}, context, self.entity, scope
        )
        if await self.source.delete(self.entity.name, filtered) == 0:
            raise NotFoundError()

        await self._audit(AuditEventType.DATA_DELETE, context, before, before=before)
        return before

    async def _audit(
        self,
        event_type: AuditEventType,
        context: TenantContext,
        row: dict[str, Any],
        *,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
    ) -> None:
        if self.audit is None:
            return
        e = self.entity
        await self.audit.record(
            organization_id=row.get(e.organization_field) or context.organization_id,
            property_id=row.get(e.property_field) if e.property_field else None,
            event_type=event_type,
            actor_id=context.user_id,
            action=f"{event_type.value.split('_')[1].capitalize()} {e.name}",
            entity_type=e.name,
            entity_id=_as_str(row.get(e.id_field)),
            before=before,
            after=after,
            source="tenancy.repository",
        )


def _as_str(value: Any) -> str | None:
    return None if value is None else str(value)
