"""Permission catalog.

The catalog is the set of (resource, action, scope) triples the platform
knows about. It is seeded once at startup and never mutated; a change in
the permission set produces a new catalog version via `supersede()`.
"""

from __future__ import annotations

import logging
from typing import Iterable

from pydantic import BaseModel, Field

from hotelhub.authz.models import Permission, Scope, SystemRole

logger = logging.getLogger(__name__)


class PermissionDefinition(BaseModel):
    """Catalog metadata for one permission."""

    permission: Permission
    name: str
    description: str = ""
    category: str = Field(description="Functional area, e.g. hr or payroll")

    @property
    def key(self) -> str:
        return self.permission.key


# =============================================================================
# Seed Data
# =============================================================================

_CRUD = ("create", "read", "update", "delete")
_PERSONAL = (Scope.OWN, Scope.DEPARTMENT, Scope.PROPERTY, Scope.ORGANIZATION)
_SITE = (Scope.PROPERTY, Scope.ORGANIZATION)

# resource -> (category, actions, scopes)
CATALOG_SEED: dict[str, tuple[str, tuple[str, ...], tuple[Scope, ...]]] = {
    # HR
    "user": ("hr", _CRUD + ("purge",), _PERSONAL + (Scope.PLATFORM,)),
    "profile": ("hr", ("read", "update"), _PERSONAL),
    "department": ("hr", _CRUD, _SITE),
    "documents": ("hr", _CRUD, _PERSONAL),
    "training": ("hr", _CRUD + ("assign",), _PERSONAL),
    # Payroll & benefits
    "payslip": ("payroll", _CRUD + ("approve",), _PERSONAL),
    "vacation": ("payroll", _CRUD + ("approve",), _PERSONAL),
    "benefits": ("payroll", ("read", "update"), (Scope.OWN, Scope.PROPERTY, Scope.ORGANIZATION)),
    # Hotel operations
    "units": ("operations", _CRUD, _SITE),
    "guests": ("operations", _CRUD, _SITE),
    "reservations": ("operations", _CRUD, _SITE),
    "concierge": ("operations", _CRUD, _SITE),
    "vendors": ("operations", _CRUD, _SITE),
    # Administration
    "role": ("admin", _CRUD + ("assign",), (Scope.PROPERTY, Scope.ORGANIZATION, Scope.PLATFORM)),
    "organization": ("admin", _CRUD, (Scope.ORGANIZATION, Scope.PLATFORM)),
    "property": ("admin", _CRUD, (Scope.PROPERTY, Scope.ORGANIZATION, Scope.PLATFORM)),
    "audit": ("admin", ("read", "export", "purge"), (Scope.PROPERTY, Scope.ORGANIZATION, Scope.PLATFORM)),
    "tenant": ("platform", ("impersonate",), (Scope.PLATFORM,)),
    "system": ("platform", ("configure",), (Scope.PLATFORM,)),
}


def build_default_definitions() -> list[PermissionDefinition]:
    definitions = []
    for resource, (category, actions, scopes) in CATALOG_SEED.items():
        for action in actions:
            for scope in scopes:
                definitions.append(
                    PermissionDefinition(
                        permission=Permission(resource=resource, action=action, scope=scope),
                        name=f"{action.capitalize()} {resource} ({scope.value})",
                        description=f"{action.capitalize()} {resource} records at {scope.value} scope",
                        category=category,
                    )
                )
    return definitions


# Default grant patterns per system role. The platform role does not list
# destructive platform actions: those are reachable only through an explicit
# grant when they are configured as non-bypassable.
SYSTEM_ROLE_GRANTS: dict[SystemRole, list[str]] = {
    SystemRole.PLATFORM_ADMIN: [
        "organization.create.platform",
        "organization.read.platform",
        "organization.update.platform",
        "property.create.platform",
        "property.read.platform",
        "property.update.platform",
        "role.*.platform",
        "user.read.platform",
        "audit.read.platform",
        "audit.export.platform",
        "tenant.impersonate.platform",
        "system.configure.platform",
    ],
    SystemRole.ORGANIZATION_OWNER: [
        "*.*.organization",
    ],
    SystemRole.ORGANIZATION_ADMIN: [
        "*.read.organization",
        "*.create.organization",
        "*.update.organization",
        "*.approve.organization",
        "*.assign.organization",
        "*.delete.property",
    ],
    SystemRole.PROPERTY_MANAGER: [
        "*.*.property",
    ],
    SystemRole.DEPARTMENT_ADMIN: [
        "*.read.property",
        "*.*.department",
    ],
    SystemRole.STAFF: [
        "*.read.own",
        "profile.update.own",
        "vacation.create.own",
        "vacation.update.own",
        "documents.create.own",
        "profile.read.department",
        "documents.read.department",
        "training.read.department",
        "vacation.read.department",
        "benefits.read.property",
        "units.read.property",
        "guests.read.property",
        "reservations.read.property",
    ],
}


# =============================================================================
# Catalog
# =============================================================================


class PermissionCatalog:
    """Versioned, read-only permission catalog."""

    def __init__(self, definitions: Iterable[PermissionDefinition], version: int = 1):
        self.version = version
        self._entries: dict[str, PermissionDefinition] = {}
        for definition in definitions:
            if definition.permission.is_pattern:
                raise ValueError(f"Catalog entries cannot be patterns: {definition.key}")
            self._entries[definition.key] = definition

        logger.info(
            "PermissionCatalog v%d loaded with %d permissions",
            self.version,
            len(self._entries),
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries.values())

    def get(self, resource: str, action: str, scope: Scope) -> PermissionDefinition | None:
        return self._entries.get(f"{resource}.{action}.{scope.value}")

    def contains(self, permission: Permission) -> bool:
        """Check a permission or grant pattern against the catalog.

        A wildcard pattern is known when it matches at least one entry.
        """
        if not permission.is_pattern:
            return permission.key in self._entries
        return any(
            entry.permission.scope == permission.scope
            and permission.matches(entry.permission.resource, entry.permission.action)
            for entry in self._entries.values()
        )

    def list(self, category: str | None = None) -> list[PermissionDefinition]:
        entries = sorted(self._entries.values(), key=lambda d: d.key)
        if category is None:
            return entries
        return [d for d in entries if d.category == category]

    def categories(self) -> list[str]:
        return sorted({d.category for d in self._entries.values()})

    def supersede(self, definitions: Iterable[PermissionDefinition]) -> PermissionCatalog:
        """Return a new catalog version. This catalog is left untouched."""
        return PermissionCatalog(definitions, version=self.version + 1)


_catalog: PermissionCatalog | None = None


def get_permission_catalog() -> PermissionCatalog:
    """Get the process-wide catalog."""
    global _catalog
    if _catalog is None:
        _catalog = PermissionCatalog(build_default_definitions())
    return _catalog
