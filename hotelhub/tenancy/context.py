"""Tenant context resolution.

A TenantContext is built once per request from the verified principal and
passed explicitly to every evaluator and repository call. It is immutable
and is never stored in process-wide or thread-local state.
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from hotelhub.audit import AuditEventType, AuditSeverity
from hotelhub.auth.models import AuthenticatedUser
from hotelhub.authz.models import DenyReason, ResourceAttributes, Scope, SystemRole
from hotelhub.errors import MissingTenantAssignment, PermissionDenied

if TYPE_CHECKING:
    from hotelhub.audit import AuditLog
    from hotelhub.authz.engine import AuthzEngine

logger = logging.getLogger(__name__)


# Tenant assignments each system role must carry beyond its organization
REQUIRED_ASSIGNMENTS: dict[SystemRole, tuple[str, ...]] = {
    SystemRole.PLATFORM_ADMIN: (),
    SystemRole.ORGANIZATION_OWNER: (),
    SystemRole.ORGANIZATION_ADMIN: (),
    SystemRole.PROPERTY_MANAGER: ("property_id",),
    SystemRole.DEPARTMENT_ADMIN: ("property_id", "department_id"),
    SystemRole.STAFF: ("property_id",),
}


class TenantContext(BaseModel):
    """Resolved tenant identity for one request."""

    model_config = ConfigDict(frozen=True)

    organization_id: str
    property_id: str | None = None
    department_id: str | None = None
    user_id: str
    effective_role: SystemRole
    custom_role_ids: tuple[str, ...] = ()

    # Platform role without an act-as: no tenant restriction applies
    unscoped: bool = False
    # Platform role acting as a specific organization/property
    acting_as: bool = False

    @classmethod
    def for_principal(cls, principal: AuthenticatedUser) -> TenantContext:
        """Build the context for a principal without any act-as override.

        Raises:
            MissingTenantAssignment: when the role needs an assignment the
                principal does not have
        """
        if not principal.organization_id:
            raise MissingTenantAssignment(principal.user_id, "organization_id")

        for field in REQUIRED_ASSIGNMENTS[principal.role]:
            if not getattr(principal, field):
                raise MissingTenantAssignment(principal.user_id, field)

        return cls(
            organization_id=principal.organization_id,
            property_id=principal.property_id,
            department_id=principal.department_id,
            user_id=principal.user_id,
            effective_role=principal.role,
            custom_role_ids=tuple(sorted(set(principal.custom_role_ids))),
            unscoped=principal.role == SystemRole.PLATFORM_ADMIN,
        )

    @property
    def enforced_scope(self) -> Scope:
        """Widest breadth of data this context may touch."""
        if self.unscoped:
            return Scope.PLATFORM
        if self.acting_as:
            return Scope.PROPERTY if self.property_id else Scope.ORGANIZATION
        return self.effective_role.max_scope

    def scope_of(self, target: ResourceAttributes) -> Scope:
        """Narrowest breadth at which this context contains `target`."""
        if target.organization_id != self.organization_id:
            return Scope.PLATFORM
        if target.owner_id is not None and target.owner_id == self.user_id:
            return Scope.OWN
        if self.property_id is None or target.property_id != self.property_id:
            return Scope.ORGANIZATION
        if self.department_id is not None and target.department_id == self.department_id:
            return Scope.DEPARTMENT
        return Scope.PROPERTY

    def fingerprint(self) -> str:
        """Stable digest of every field that can influence a decision."""
        content = json.dumps(self.model_dump(mode="json"), sort_keys=True)
        return hashlib.sha256(content.encode()).hexdigest()[:32]


class ActAs(BaseModel):
    """Platform act-as request: the tenant a platform admin operates within."""

    organization_id: str
    property_id: str | None = None


class TenantContextResolver:
    """Turns a verified principal into a TenantContext.

    Act-as overrides are only honoured for platform administrators, must be
    authorized by the evaluator and are always audit-logged.
    """

    def __init__(self, engine: AuthzEngine, audit: AuditLog | None = None):
        self.engine = engine
        self.audit = audit

    async def resolve(
        self,
        principal: AuthenticatedUser,
        act_as: ActAs | None = None,
        *,
        correlation_id: str | None = None,
    ) -> TenantContext:
        # A system role assigned in this organization replaces the token's role
        assigned = self.engine.registry.system_role_of(principal.user_id, principal.organization_id)
        if assigned is not None and assigned != principal.role:
            logger.debug(
                "Using assigned role %s for user=%s (token role %s)",
                assigned.value,
                principal.user_id,
                principal.role.value,
            )
            principal = principal.model_copy(update={"role": assigned})

        context = TenantContext.for_principal(principal)
        if act_as is None:
            return context

        if principal.role != SystemRole.PLATFORM_ADMIN:
            logger.warning(
                "Act-as rejected for non-platform user=%s role=%s",
                principal.user_id,
                principal.role.value,
            )
            raise PermissionDenied(DenyReason.NO_MATCHING_PERMISSION, "tenant.impersonate.platform")

        await self.engine.enforce(
            principal, "tenant", "impersonate", Scope.PLATFORM, context=context
        )

        scoped = context.model_copy(
            update={
                "organization_id": act_as.organization_id,
                "property_id": act_as.property_id,
                "department_id": None,
                "unscoped": False,
                "acting_as": True,
            }
        )

        logger.info(
            "Platform user=%s acting as org=%s property=%s",
            principal.user_id,
            act_as.organization_id,
            act_as.property_id,
        )
        if self.audit is not None:
            await self.audit.record(
                organization_id=act_as.organization_id,
                property_id=act_as.property_id,
                event_type=AuditEventType.IMPERSONATION,
                severity=AuditSeverity.WARNING,
                actor_id=principal.user_id,
                action=f"Platform user acted as organization {act_as.organization_id}",
                entity_type="organization",
                entity_id=act_as.organization_id,
                source="tenancy",
                payload={"home_organization_id": principal.organization_id},
                correlation_id=correlation_id,
            )
        return scoped
