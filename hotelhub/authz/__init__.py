"""HotelHub Authorization Package.

Hybrid role-based (RBAC) and attribute-based (ABAC) access control over a
versioned permission catalog of (resource, action, scope) triples.

The evaluator lives in `hotelhub.authz.engine`:

    from hotelhub.authz.engine import AuthzEngine

    engine = AuthzEngine(registry, cache=PermissionCache())
    decision = await engine.evaluate(user, "payslip", "read", Scope.DEPARTMENT, target)
"""

from hotelhub.authz.models import (
    AuthzDecision,
    DenyReason,
    Grant,
    Permission,
    ResourceAttributes,
    Role,
    Scope,
    SystemRole,
    role_at_least,
    role_outranks,
    scope_covers,
)
from hotelhub.authz.catalog import PermissionCatalog, PermissionDefinition, get_permission_catalog
from hotelhub.authz.conditions import ConditionEngine
from hotelhub.authz.cache import PermissionCache
from hotelhub.authz.registry import RoleRegistry

__all__ = [
    "AuthzDecision",
    "DenyReason",
    "Grant",
    "Permission",
    "ResourceAttributes",
    "Role",
    "Scope",
    "SystemRole",
    "role_at_least",
    "role_outranks",
    "scope_covers",
    "PermissionCatalog",
    "PermissionDefinition",
    "get_permission_catalog",
    "ConditionEngine",
    "PermissionCache",
    "RoleRegistry",
]
