"""Permission and role administration endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from hotelhub.audit import AuditEventType, AuditQuery
from hotelhub.auth.middleware import get_current_user
from hotelhub.auth.models import AuthenticatedUser
from hotelhub.authz.engine import PermissionCheck, require_permission
from hotelhub.authz.models import Role, Scope, SystemRole
from hotelhub.authz.registry import assignable_system_roles
from hotelhub.errors import UnknownPermissionError
from hotelhub.tenancy.context import TenantContext
from hotelhub.tenancy.middleware import get_tenant_context

router = APIRouter(prefix="/permissions", tags=["Permissions"])

# Audit events that make up a role history
ROLE_HISTORY_EVENTS = [
    AuditEventType.ROLE_CREATED,
    AuditEventType.ROLE_CLONED,
    AuditEventType.ROLE_DELETED,
    AuditEventType.GRANT_ADDED,
    AuditEventType.GRANT_REVOKED,
    AuditEventType.GRANT_EXPIRED,
    AuditEventType.ROLE_ASSIGNED,
    AuditEventType.ROLE_UNASSIGNED,
    AuditEventType.ASSIGNMENT_EXPIRED,
    AuditEventType.SYSTEM_ROLE_CHANGED,
]


def _services(request: Request):
    return request.app.state.services


# =============================================================================
# Request/Response Models
# =============================================================================


class PermissionResponse(BaseModel):
    key: str
    resource: str
    action: str
    scope: str
    name: str
    category: str


class CheckRequest(BaseModel):
    checks: list[PermissionCheck] = Field(min_length=1, max_length=100)


class CheckResult(BaseModel):
    permission: str
    allowed: bool


class GrantResponse(BaseModel):
    grant_id: str
    permission: str
    condition: dict[str, Any] | None = None
    expires_at: datetime | None = None


class RoleResponse(BaseModel):
    role_id: str
    name: str
    description: str
    system_role: str | None
    organization_id: str | None
    cloned_from: str | None
    lineage: list[str]
    grants: list[GrantResponse]

    @classmethod
    def from_role(cls, role: Role) -> RoleResponse:
        return cls(
            role_id=role.role_id,
            name=role.name,
            description=role.description,
            system_role=role.system_role.value if role.system_role else None,
            organization_id=role.organization_id,
            cloned_from=role.cloned_from,
            lineage=role.lineage,
            grants=[
                GrantResponse(
                    grant_id=g.grant_id,
                    permission=g.permission.key,
                    condition=g.condition,
                    expires_at=g.expires_at,
                )
                for g in role.grants
            ],
        )


class CreateRoleRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str = ""


class CloneRoleRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None


class GrantRequest(BaseModel):
    permission: str = Field(description="resource.action.scope, `*` allowed for resource/action")
    condition: dict[str, Any] | None = None
    expires_at: datetime | None = None


class AssignmentRequest(BaseModel):
    user_id: str
    expires_at: datetime | None = None


class SystemRoleRequest(BaseModel):
    role: SystemRole
    reason: str | None = Field(default=None, max_length=500)


class SystemRoleResponse(BaseModel):
    user_id: str
    organization_id: str
    role: SystemRole
    previous_role: SystemRole | None = None


class HistoryEntry(BaseModel):
    record_id: str
    timestamp: datetime
    event_type: AuditEventType
    actor_id: str
    action: str
    entity_type: str | None = None
    entity_id: str | None = None
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None


class PermissionSummary(BaseModel):
    user_id: str
    organization_id: str
    property_id: str | None
    department_id: str | None
    role: str
    custom_role_ids: list[str]
    acting_as: bool
    assignable_roles: list[str]


# =============================================================================
# Catalog & Self-Service
# =============================================================================


@router.get("/catalog", response_model=list[PermissionResponse])
async def list_catalog(request: Request, category: str | None = None) -> list[PermissionResponse]:
    """List the permission catalog."""
    catalog = _services(request).catalog
    return [
        PermissionResponse(
            key=d.key,
            resource=d.permission.resource,
            action=d.permission.action,
            scope=d.permission.scope.value,
            name=d.name,
            category=d.category,
        )
        for d in catalog.list(category)
    ]


@router.post("/check", response_model=list[CheckResult])
async def check_permissions(
    body: CheckRequest,
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    context: TenantContext = Depends(get_tenant_context),
) -> list[CheckResult]:
    """Bulk-check the caller's own permissions. Deny reasons are not disclosed."""
    decisions = await _services(request).engine.check_many(user, body.checks, context=context)
    return [CheckResult(permission=d.permission.key, allowed=d.allowed) for d in decisions]


@router.get("/me", response_model=PermissionSummary)
async def my_permissions(
    request: Request,
    context: TenantContext = Depends(get_tenant_context),
) -> PermissionSummary:
    registry = _services(request).registry
    custom = sorted(set(context.custom_role_ids) | registry.assigned_role_ids(context.user_id))
    return PermissionSummary(
        user_id=context.user_id,
        organization_id=context.organization_id,
        property_id=context.property_id,
        department_id=context.department_id,
        role=context.effective_role.value,
        custom_role_ids=custom,
        acting_as=context.acting_as,
        assignable_roles=[r.value for r in assignable_system_roles(context.effective_role)],
    )


# =============================================================================
# Roles
# =============================================================================


@router.get("/roles", response_model=list[RoleResponse])
async def list_roles(
    request: Request,
    context: TenantContext = Depends(require_permission("role", "read", Scope.PROPERTY)),
) -> list[RoleResponse]:
    roles = _services(request).registry.list_roles(context.organization_id)
    return [RoleResponse.from_role(r) for r in roles]


@router.post("/roles", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    body: CreateRoleRequest,
    request: Request,
    context: TenantContext = Depends(require_permission("role", "create", Scope.ORGANIZATION)),
) -> RoleResponse:
    role = await _services(request).registry.create_role(
        context.organization_id,
        body.name,
        actor_id=context.user_id,
        description=body.description,
    )
    return RoleResponse.from_role(role)


@router.post(
    "/roles/{role_id}/clone", response_model=RoleResponse, status_code=status.HTTP_201_CREATED
)
async def clone_role(
    role_id: str,
    body: CloneRoleRequest,
    request: Request,
    context: TenantContext = Depends(require_permission("role", "create", Scope.ORGANIZATION)),
) -> RoleResponse:
    clone = await _services(request).registry.clone_role(
        role_id,
        context.organization_id,
        body.name,
        actor_id=context.user_id,
        description=body.description,
    )
    return RoleResponse.from_role(clone)


@router.delete("/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: str,
    request: Request,
    context: TenantContext = Depends(require_permission("role", "delete", Scope.ORGANIZATION)),
) -> None:
    registry = _services(request).registry
    role = registry.get_org_role(role_id, context.organization_id)
    if role.is_system:
        raise HTTPException(status_code=400, detail="System roles cannot be deleted")
    await registry.delete_role(role_id, actor_id=context.user_id)


@router.post(
    "/roles/{role_id}/grants", response_model=GrantResponse, status_code=status.HTTP_201_CREATED
)
async def add_grant(
    role_id: str,
    body: GrantRequest,
    request: Request,
    context: TenantContext = Depends(require_permission("role", "update", Scope.ORGANIZATION)),
) -> GrantResponse:
    registry = _services(request).registry
    role = registry.get_org_role(role_id, context.organization_id)
    is_platform = context.effective_role == SystemRole.PLATFORM_ADMIN
    if role.is_system and not is_platform:
        raise HTTPException(status_code=400, detail="System roles are managed by the platform")

    try:
        grant = await registry.grant(
            role_id,
            body.permission,
            actor_id=context.user_id,
            condition=body.condition,
            expires_at=body.expires_at,
            allow_platform_scope=is_platform,
        )
    except (UnknownPermissionError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    return GrantResponse(
        grant_id=grant.grant_id,
        permission=grant.permission.key,
        condition=grant.condition,
        expires_at=grant.expires_at,
    )


@router.delete("/roles/{role_id}/grants/{grant_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_grant(
    role_id: str,
    grant_id: str,
    request: Request,
    context: TenantContext = Depends(require_permission("role", "update", Scope.ORGANIZATION)),
) -> None:
    registry = _services(request).registry
    role = registry.get_org_role(role_id, context.organization_id)
    if role.is_system and context.effective_role != SystemRole.PLATFORM_ADMIN:
        raise HTTPException(status_code=400, detail="System roles are managed by the platform")
    await registry.revoke(role_id, grant_id, actor_id=context.user_id)


@router.post("/roles/{role_id}/assignments", status_code=status.HTTP_204_NO_CONTENT)
async def assign_role(
    role_id: str,
    body: AssignmentRequest,
    request: Request,
    context: TenantContext = Depends(require_permission("role", "assign", Scope.ORGANIZATION)),
) -> None:
    services = _services(request)
    # Users outside the caller's tenant are reported as missing
    await services.repository("user").get(context, body.user_id)

    try:
        await services.registry.assign_role(
            body.user_id,
            role_id,
            actor_id=context.user_id,
            organization_id=context.organization_id,
            expires_at=body.expires_at,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/roles/{role_id}/assignments/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unassign_role(
    role_id: str,
    user_id: str,
    request: Request,
    context: TenantContext = Depends(require_permission("role", "assign", Scope.ORGANIZATION)),
) -> None:
    await _services(request).registry.unassign_role(
        user_id,
        role_id,
        actor_id=context.user_id,
        organization_id=context.organization_id,
    )


# =============================================================================
# System Roles & History
# =============================================================================


@router.put("/users/{user_id}/system-role", response_model=SystemRoleResponse)
async def assign_system_role(
    user_id: str,
    body: SystemRoleRequest,
    request: Request,
    context: TenantContext = Depends(require_permission("role", "assign", Scope.PROPERTY)),
) -> SystemRoleResponse:
    """Change a user's system role. Only roles below the caller's own can be handed out."""
    services = _services(request)
    row = await services.repository("user").get(context, user_id)
    organization_id = row["organization_id"]

    try:
        previous = await services.registry.assign_system_role(
            context,
            user_id,
            body.role,
            organization_id=organization_id,
            reason=body.reason,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return SystemRoleResponse(
        user_id=user_id,
        organization_id=organization_id,
        role=body.role,
        previous_role=previous,
    )


@router.get("/history", response_model=list[HistoryEntry])
async def role_history(
    request: Request,
    user_id: str | None = None,
    role_id: str | None = None,
    actor_id: str | None = None,
    organization_id: str | None = Query(default=None, description="Platform callers only"),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    context: TenantContext = Depends(require_permission("audit", "read", Scope.PROPERTY)),
) -> list[HistoryEntry]:
    """Role, grant and assignment changes in the caller's organization, oldest first."""
    chain = context.organization_id
    if context.unscoped and organization_id:
        chain = organization_id

    audit = _services(request).audit
    if audit is None:
        return []

    payload: dict[str, str] = {}
    if user_id:
        payload["user_id"] = user_id
    if role_id:
        payload["role_id"] = role_id

    entries = await audit.entries(
        AuditQuery(
            organization_id=chain,
            event_types=ROLE_HISTORY_EVENTS,
            actor_id=actor_id,
            payload=payload or None,
            limit=limit,
            offset=offset,
        )
    )
    return [
        HistoryEntry(
            record_id=e.record_id,
            timestamp=e.timestamp,
            event_type=e.event_type,
            actor_id=e.actor_id,
            action=e.action,
            entity_type=e.entity_type,
            entity_id=e.entity_id,
            before=e.before,
            after=e.after,
        )
        for e in entries
    ]
