"""Tenant query filter.

Every read against tenant data goes through `with_tenant_filter`, every
result set through `validate_tenant_ownership` and every write payload
through `ensure_tenant_fields`.

Filters are plain dicts:
    {"field": value}                equality (None matches missing/null)
    {"field": {"in": [a, b]}}       membership
    {"field": {"not": value}}       inequality
    {"AND": [...]}, {"OR": [...]}, {"NOT": {...}}
Multiple keys in one dict are ANDed.
"""

from __future__ import annotations

import inspect
import logging
from datetime import datetime, UTC
from typing import Any, Awaitable, Callable, Union

from pydantic import BaseModel, Field

from hotelhub.audit import AuditEventType, AuditLog, AuditSeverity
from hotelhub.authz.models import SCOPE_BREADTH, Scope, narrowest
from hotelhub.errors import InvalidRequestError, MissingTenantAssignment, SecurityViolation
from hotelhub.tenancy.context import TenantContext
from hotelhub.tenancy.entities import EntityDescriptor

logger = logging.getLogger(__name__)

Where = dict[str, Any]


# =============================================================================
# Filter Language
# =============================================================================


def matches(where: Where, row: dict[str, Any]) -> bool:
    """Evaluate a filter against one row."""
    for key, condition in where.items():
        if key == "AND":
            if not all(matches(w, row) for w in condition):
                return False
        elif key == "OR":
            if not any(matches(w, row) for w in condition):
                return False
        elif key == "NOT":
            if matches(condition, row):
                return False
        elif not _field_matches(row.get(key), condition):
            return False
    return True


def _field_matches(value: Any, condition: Any) -> bool:
    if not isinstance(condition, dict):
        return value == condition
    for op, operand in condition.items():
        if op == "in":
            if value not in operand:
                return False
        elif op == "not":
            if value == operand:
                return False
        elif op == "equals":
            if value != operand:
                return False
        else:
            raise ValueError(f"Unsupported filter operator: {op}")
    return True


# =============================================================================
# Predicates
# =============================================================================


def required_predicates(
    context: TenantContext,
    entity: EntityDescriptor,
    scope: Scope | None = None,
) -> Where:
    """Tenant predicates for a context, derived from its widest permitted breadth.

    `scope` may only narrow the breadth, never widen it.

    Raises:
        MissingTenantAssignment: the breadth needs an assignment the context lacks
    """
    breadth = context.enforced_scope
    if scope is not None:
        breadth = narrowest(breadth, scope)

    if breadth == Scope.PLATFORM:
        return {}

    predicates: Where = {entity.organization_field: context.organization_id}
    if breadth == Scope.ORGANIZATION:
        return predicates

    if breadth == Scope.OWN and entity.owner_field is not None:
        predicates[entity.owner_field] = context.user_id
        return predicates

    # Property and department breadth; own-scoped entities without an owner
    # column fall back to the narrowest tenant columns available.
    if entity.property_field is not None:
        if context.property_id is None:
            raise MissingTenantAssignment(context.user_id, "property_id")
        predicates[entity.property_field] = context.property_id

    if SCOPE_BREADTH[breadth] <= SCOPE_BREADTH[Scope.DEPARTMENT] and entity.department_field is not None:
        if context.department_id is None:
            raise MissingTenantAssignment(context.user_id, "department_id")
        predicates[entity.department_field] = context.department_id

    return predicates


class SecurityViolationEvent(BaseModel):
    """Records that a filtered read returned out-of-tenant rows."""

    entity: str
    organization_id: str
    user_id: str
    leaked_ids: list[Any] = Field(default_factory=list)
    detected_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


AlertHook = Callable[[SecurityViolationEvent], Union[None, Awaitable[None]]]


class TenantQueryFilter:
    """Applies and verifies tenant isolation for data access.

    Usage:
        qf = TenantQueryFilter(audit=audit)
        where = qf.with_tenant_filter({"status": "active"}, context, entity)
        rows = await qf.validate_tenant_ownership(await source.find_many(...), context, entity)
    """

    def __init__(self, audit: AuditLog | None = None, alert_hooks: list[AlertHook] | None = None):
        self.audit = audit
        self.alert_hooks = list(alert_hooks or [])

    def with_tenant_filter(
        self,
        query: Where | None,
        context: TenantContext,
        entity: EntityDescriptor,
        scope: Scope | None = None,
    ) -> Where:
        """AND the caller's filter with the tenant predicate.

        The caller's filter is nested as one conjunct, so nothing it contains
        can widen or replace the tenant predicate.
        """
        tenant = required_predicates(context, entity, scope)
        if not tenant:
            return dict(query or {})
        if not query:
            return tenant
        return {"AND": [query, tenant]}

    async def validate_tenant_ownership(
        self,
        rows: list[dict[str, Any]],
        context: TenantContext,
        entity: EntityDescriptor,
        scope: Scope | None = None,
    ) -> list[dict[str, Any]]:
        """Re-check every returned row against the tenant predicate.

        Raises:
            SecurityViolation: when any row falls outside the tenant
        """
        tenant = required_predicates(context, entity, scope)
        if not tenant:
            return rows

        leaked = [row for row in rows if not matches(tenant, row)]
        if not leaked:
            return rows

        event = SecurityViolationEvent(
            entity=entity.name,
            organization_id=context.organization_id,
            user_id=context.user_id,
            leaked_ids=[row.get(entity.id_field) for row in leaked],
        )
        await self._report_violation(event, context)
        raise SecurityViolation(entity.name, len(leaked))

    def ensure_tenant_fields(
        self,
        data: dict[str, Any],
        context: TenantContext,
        entity: EntityDescriptor,
    ) -> dict[str, Any]:
        """Return a copy of a write payload with tenant fields forced from the context.

        Caller-supplied values for enforced fields are overwritten. Unscoped
        platform callers must name the organization themselves.
        """
        result = dict(data)

        if context.unscoped:
            if not result.get(entity.organization_field):
                raise InvalidRequestError(f"{entity.organization_field} is required")
            return result

        for field, value in required_predicates(context, entity).items():
            if field == entity.id_field:
                continue
            result[field] = value

        # Own-scoped writes still land in the caller's tenant
        if context.enforced_scope == Scope.OWN:
            if entity.property_field and entity.property_field != entity.id_field and context.property_id:
                result[entity.property_field] = context.property_id
            if entity.department_field and entity.department_field != entity.id_field and context.department_id:
                result[entity.department_field] = context.department_id

        return result

    async def _report_violation(self, event: SecurityViolationEvent, context: TenantContext) -> None:
        logger.error(
            "SECURITY VIOLATION: %d %s record(s) outside tenant org=%s returned to user=%s",
            len(event.leaked_ids),
            event.entity,
            event.organization_id,
            event.user_id,
        )

        if self.audit is not None:
            await self.audit.record(
                organization_id=context.organization_id,
                property_id=context.property_id,
                event_type=AuditEventType.SECURITY_VIOLATION,
                severity=AuditSeverity.CRITICAL,
                actor_id=context.user_id,
                action=f"Tenant filter leak on {event.entity}",
                entity_type=event.entity,
                source="tenancy.query_filter",
                payload={"leaked_ids": event.leaked_ids},
            )

        for hook in self.alert_hooks:
            try:
                result = hook(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Security alert hook failed")
