"""Authorization data models.

Defines scopes, the system role hierarchy, permissions, grants, roles and
authorization decisions.
"""

from __future__ import annotations

from datetime import datetime, UTC
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

WILDCARD = "*"


class Scope(str, Enum):
    """Breadth of data a permission covers.

    Naming convention for permissions: {resource}.{action}.{scope}
    """

    OWN = "own"
    DEPARTMENT = "department"
    PROPERTY = "property"
    ORGANIZATION = "organization"
    PLATFORM = "platform"

    @property
    def breadth(self) -> int:
        return SCOPE_BREADTH[self]


# Explicit ordering, narrowest first. Do not rely on enum declaration order.
SCOPE_BREADTH: dict[Scope, int] = {
    Scope.OWN: 1,
    Scope.DEPARTMENT: 2,
    Scope.PROPERTY: 3,
    Scope.ORGANIZATION: 4,
    Scope.PLATFORM: 5,
}


def scope_covers(granted: Scope, required: Scope) -> bool:
    """A grant valid at a broad scope is valid at every narrower scope."""
    return SCOPE_BREADTH[granted] >= SCOPE_BREADTH[required]


def narrowest(*scopes: Scope) -> Scope:
    return min(scopes, key=lambda s: SCOPE_BREADTH[s])


class SystemRole(str, Enum):
    """Built-in roles, from most to least privileged."""

    PLATFORM_ADMIN = "platform_admin"
    ORGANIZATION_OWNER = "organization_owner"
    ORGANIZATION_ADMIN = "organization_admin"
    PROPERTY_MANAGER = "property_manager"
    DEPARTMENT_ADMIN = "department_admin"
    STAFF = "staff"

    @property
    def level(self) -> int:
        return ROLE_LEVELS[self]

    @property
    def max_scope(self) -> Scope:
        return ROLE_MAX_SCOPE[self]


ROLE_LEVELS: dict[SystemRole, int] = {
    SystemRole.PLATFORM_ADMIN: 10,
    SystemRole.ORGANIZATION_OWNER: 9,
    SystemRole.ORGANIZATION_ADMIN: 8,
    SystemRole.PROPERTY_MANAGER: 7,
    SystemRole.DEPARTMENT_ADMIN: 6,
    SystemRole.STAFF: 5,
}

ROLE_MAX_SCOPE: dict[SystemRole, Scope] = {
    SystemRole.PLATFORM_ADMIN: Scope.PLATFORM,
    SystemRole.ORGANIZATION_OWNER: Scope.ORGANIZATION,
    SystemRole.ORGANIZATION_ADMIN: Scope.ORGANIZATION,
    SystemRole.PROPERTY_MANAGER: Scope.PROPERTY,
    SystemRole.DEPARTMENT_ADMIN: Scope.DEPARTMENT,
    SystemRole.STAFF: Scope.OWN,
}


def role_outranks(role: SystemRole, other: SystemRole) -> bool:
    """True when `role` sits strictly above `other` in the hierarchy."""
    return ROLE_LEVELS[role] > ROLE_LEVELS[other]


def role_at_least(role: SystemRole, minimum: SystemRole) -> bool:
    return ROLE_LEVELS[role] >= ROLE_LEVELS[minimum]


SYSTEM_ROLE_INFO: dict[SystemRole, dict[str, Any]] = {
    SystemRole.PLATFORM_ADMIN: {
        "name": "Platform Administrator",
        "description": "Operates the platform across every organization",
        "capabilities": [
            "Manage all organizations",
            "Act as any organization or property",
            "Configure platform settings",
        ],
    },
    SystemRole.ORGANIZATION_OWNER: {
        "name": "Organization Owner",
        "description": "Full control of a hotel organization",
        "capabilities": [
            "Manage all properties",
            "Create and assign custom roles",
            "Manage organization settings",
        ],
    },
    SystemRole.ORGANIZATION_ADMIN: {
        "name": "Organization Administrator",
        "description": "Administers an organization on behalf of its owner",
        "capabilities": [
            "Manage properties and staff",
            "Assign roles below organization level",
        ],
    },
    SystemRole.PROPERTY_MANAGER: {
        "name": "Property Manager",
        "description": "Runs a single property",
        "capabilities": [
            "Manage property staff and departments",
            "Approve vacations and payroll for the property",
        ],
    },
    SystemRole.DEPARTMENT_ADMIN: {
        "name": "Department Administrator",
        "description": "Leads a department within a property",
        "capabilities": [
            "Manage department staff",
            "Assign training and documents",
        ],
    },
    SystemRole.STAFF: {
        "name": "Staff",
        "description": "Hotel employee",
        "capabilities": [
            "View own profile, payslips and documents",
            "Request vacation",
        ],
    },
}


class Permission(BaseModel):
    """An immutable (resource, action, scope) triple.

    Grant patterns may use `*` for resource or action.
    """

    model_config = ConfigDict(frozen=True)

    resource: str
    action: str
    scope: Scope

    @property
    def key(self) -> str:
        return f"{self.resource}.{self.action}.{self.scope.value}"

    @property
    def is_pattern(self) -> bool:
        return WILDCARD in (self.resource, self.action)

    @classmethod
    def parse(cls, value: str) -> Permission:
        """Parse `resource.action.scope`."""
        parts = value.split(".")
        if len(parts) != 3 or not all(parts):
            raise ValueError(f"Invalid permission format: {value!r}")
        resource, action, scope = parts
        return cls(resource=resource, action=action, scope=Scope(scope))

    def matches(self, resource: str, action: str) -> bool:
        """Check whether this (possibly wildcard) permission names resource/action."""
        return (
            self.resource in (WILDCARD, resource)
            and self.action in (WILDCARD, action)
        )

    def __str__(self) -> str:
        return self.key


class Grant(BaseModel):
    """Association of a permission with a role.

    `condition` is kept in its stored JSON shape and interpreted by the
    condition engine at evaluation time.
    """

    grant_id: str = Field(default_factory=lambda: f"grant-{uuid4().hex[:12]}")
    role_id: str
    permission: Permission
    condition: dict[str, Any] | None = None
    expires_at: datetime | None = None
    granted_by: str | None = None
    granted_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class Role(BaseModel):
    """A named set of grants.

    System roles carry a `system_role` and no organization. Custom roles
    belong to exactly one organization and may be cloned from another role.
    """

    role_id: str = Field(description="Unique role identifier")
    name: str = Field(description="Human-readable role name")
    description: str = Field(default="", description="Role description")
    system_role: SystemRole | None = Field(
        default=None,
        description="Built-in role this definition backs"
    )
    organization_id: str | None = Field(
        default=None,
        description="Owning organization (None for system roles)"
    )
    grants: list[Grant] = Field(default_factory=list)
    cloned_from: str | None = Field(
        default=None,
        description="Role this one was cloned from"
    )
    lineage: list[str] = Field(
        default_factory=list,
        description="Ancestor role ids, nearest first"
    )
    priority: int = Field(default=0)
    created_by: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_system(self) -> bool:
        return self.system_role is not None

    def find_grant(self, grant_id: str) -> Grant | None:
        for grant in self.grants:
            if grant.grant_id == grant_id:
                return grant
        return None


class ResourceAttributes(BaseModel):
    """Tenancy and ownership attributes of the resource being acted on."""

    model_config = ConfigDict(frozen=True)

    resource_id: str | None = None
    organization_id: str | None = None
    property_id: str | None = None
    department_id: str | None = None
    owner_id: str | None = None
    attributes: dict[str, Any] = Field(default_factory=dict)


class DenyReason(str, Enum):
    """Why an authorization check was denied. Never shown to callers."""

    NO_MATCHING_PERMISSION = "no_matching_permission"
    CONDITION_FAILED = "condition_failed"
    TENANT_BOUNDARY_VIOLATION = "tenant_boundary_violation"
    EXPIRED = "expired"


class AuthzDecision(BaseModel):
    """Result of an authorization decision."""

    allowed: bool = Field(description="Whether access is allowed")
    permission: Permission = Field(description="Permission that was checked")
    reason: DenyReason | None = Field(
        default=None,
        description="Deny reason (None when allowed)"
    )
    matched_role: str | None = Field(
        default=None,
        description="Role whose grant allowed the action"
    )
    matched_grant: str | None = Field(
        default=None,
        description="Grant that allowed the action"
    )
    bypass: bool = Field(
        default=False,
        description="Allowed by the platform-admin bypass"
    )
    cached: bool = Field(default=False)

    @classmethod
    def allow(cls, permission: Permission, **kwargs: Any) -> AuthzDecision:
        return cls(allowed=True, permission=permission, **kwargs)

    @classmethod
    def deny(cls, permission: Permission, reason: DenyReason) -> AuthzDecision:
        return cls(allowed=False, permission=permission, reason=reason)
