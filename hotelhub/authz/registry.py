"""Role registry.

Holds system and custom roles, their grants and custom-role assignments.
Every mutation is audit-logged and invalidates affected cached decisions.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, UTC
from typing import TYPE_CHECKING, Any, Callable
from uuid import uuid4

from pydantic import ValidationError

from hotelhub.audit import PLATFORM_CHAIN, ActorType, AuditEventType, AuditLog
from hotelhub.authz.cache import PermissionCache
from hotelhub.authz.catalog import SYSTEM_ROLE_GRANTS, PermissionCatalog
from hotelhub.authz.conditions import parse_condition
from hotelhub.authz.models import (
    ROLE_LEVELS,
    DenyReason,
    Grant,
    Permission,
    Role,
    Scope,
    SystemRole,
    SYSTEM_ROLE_INFO,
    role_outranks,
)
from hotelhub.errors import (
    NotFoundError,
    PermissionDenied,
    RoleNotFoundError,
    UnknownPermissionError,
)

if TYPE_CHECKING:
    from hotelhub.tenancy.context import TenantContext

logger = logging.getLogger(__name__)


def can_assign_system_role(actor_role: SystemRole, target_role: SystemRole) -> bool:
    """Platform admins may assign any role, everyone else only strictly lower ones."""
    if actor_role == SystemRole.PLATFORM_ADMIN:
        return True
    return role_outranks(actor_role, target_role)


def assignable_system_roles(actor_role: SystemRole) -> list[SystemRole]:
    roles = [r for r in SystemRole if can_assign_system_role(actor_role, r)]
    return sorted(roles, key=lambda r: ROLE_LEVELS[r], reverse=True)


def _slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-") or "role"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _aware(value: datetime | None) -> datetime | None:
    # Naive datetimes are taken as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class RoleRegistry:
    """System and custom role store.

    Usage:
        registry = RoleRegistry(catalog, cache=cache, audit=audit)
        role = await registry.create_role("org-a", "Night Auditor", actor_id="owner-1")
        await registry.grant(role.role_id, "payslip.read.property", actor_id="owner-1")
        await registry.assign_role(
            "user-7", role.role_id, actor_id="owner-1", organization_id="org-a"
        )
    """

    def __init__(
        self,
        catalog: PermissionCatalog,
        cache: PermissionCache | None = None,
        audit: AuditLog | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.catalog = catalog
        self.cache = cache
        self.audit = audit
        self._clock = clock or (lambda: datetime.now(UTC))

        self.roles: dict[str, Role] = {}
        # user_id -> {custom role id: assignment expiry}
        self._assignments: dict[str, dict[str, datetime | None]] = {}
        # user_id -> (organization_id, system role) set through assign_system_role
        self._system_roles: dict[str, tuple[str, SystemRole]] = {}

        self._seed_system_roles()
        logger.info("RoleRegistry initialized with %d system roles", len(self.roles))

    def _seed_system_roles(self) -> None:
        for system_role, patterns in SYSTEM_ROLE_GRANTS.items():
            role_id = system_role.value
            grants = []
            for pattern in patterns:
                permission = Permission.parse(pattern)
                if not self.catalog.contains(permission):
                    raise UnknownPermissionError(f"System grant not in catalog: {pattern}")
                grants.append(Grant(role_id=role_id, permission=permission, granted_by="system"))

            info = SYSTEM_ROLE_INFO[system_role]
            self.roles[role_id] = Role(
                role_id=role_id,
                name=info["name"],
                description=info["description"],
                system_role=system_role,
                grants=grants,
                priority=ROLE_LEVELS[system_role],
                created_by="system",
            )

    # =========================================================================
    # Lookup
    # =========================================================================

    def get_role(self, role_id: str) -> Role:
        role = self.roles.get(role_id)
        if role is None:
            raise RoleNotFoundError(role_id)
        return role

    def get_org_role(self, role_id: str, organization_id: str) -> Role:
        """Get a role visible to an organization: system roles or its own custom roles.

        Custom roles of other organizations are reported as missing.
        """
        role = self.roles.get(role_id)
        if role is None or (not role.is_system and role.organization_id != organization_id):
            raise RoleNotFoundError(role_id)
        return role

    def list_roles(self, organization_id: str | None = None) -> list[Role]:
        """System roles plus the custom roles of one organization."""
        roles = [
            r for r in self.roles.values()
            if r.is_system or (organization_id is not None and r.organization_id == organization_id)
        ]
        return sorted(roles, key=lambda r: (-r.priority, r.name))

    def assigned_role_ids(self, user_id: str) -> set[str]:
        """Custom roles currently assigned to a user, expired assignments excluded."""
        now = self._clock()
        return {
            role_id
            for role_id, expires_at in self._assignments.get(user_id, {}).items()
            if expires_at is None or now < expires_at
        }

    def system_role_of(self, user_id: str, organization_id: str | None) -> SystemRole | None:
        """System role assigned to a user inside an organization, if any."""
        entry = self._system_roles.get(user_id)
        if entry is None or entry[0] != organization_id:
            return None
        return entry[1]

    def grants_for(self, context: TenantContext) -> list[tuple[Role, Grant]]:
        """All (role, grant) pairs reachable from a tenant context.

        Custom roles only count inside the organization that owns them.
        """
        pairs = []
        system = self.roles.get(context.effective_role.value)
        if system is not None:
            pairs.extend((system, grant) for grant in system.grants)

        assigned = self._assignments.get(context.user_id, {})
        custom_ids = set(context.custom_role_ids) | set(assigned)
        for role_id in sorted(custom_ids):
            role = self.roles.get(role_id)
            if role is None or role.is_system:
                continue
            if role.organization_id != context.organization_id:
                continue

            # A timed assignment caps the expiry of every grant it confers
            until = None if role_id in context.custom_role_ids else assigned.get(role_id)
            for grant in role.grants:
                if until is not None and (grant.expires_at is None or until < grant.expires_at):
                    grant = grant.model_copy(update={"expires_at": until})
                pairs.append((role, grant))
        return pairs

    # =========================================================================
    # Custom Roles
    # =========================================================================

    async def create_role(
        self,
        organization_id: str,
        name: str,
        *,
        actor_id: str,
        description: str = "",
        role_id: str | None = None,
    ) -> Role:
        role_id = role_id or f"{_slugify(name)}-{uuid4().hex[:8]}"
        if role_id in self.roles:
            raise ValueError(f"Role already exists: {role_id}")

        role = Role(
            role_id=role_id,
            name=name,
            description=description,
            organization_id=organization_id,
            created_by=actor_id,
        )
        self.roles[role_id] = role

        logger.info("Created custom role %s in org=%s", role_id, organization_id)
        await self._audit(
            organization_id,
            AuditEventType.ROLE_CREATED,
            actor_id,
            f"Created role {name}",
            entity_id=role_id,
            after=self._snapshot(role),
        )
        return role

    async def clone_role(
        self,
        source_role_id: str,
        organization_id: str,
        name: str,
        *,
        actor_id: str,
        description: str | None = None,
    ) -> Role:
        """Copy a system role or one of the organization's own roles.

        Grants are copied with fresh ids; the clone records its lineage.
        """
        source = self.get_org_role(source_role_id, organization_id)
        role_id = f"{_slugify(name)}-{uuid4().hex[:8]}"

        clone = Role(
            role_id=role_id,
            name=name,
            description=source.description if description is None else description,
            organization_id=organization_id,
            cloned_from=source.role_id,
            lineage=[source.role_id, *source.lineage],
            created_by=actor_id,
        )
        clone.grants = [
            Grant(
                role_id=role_id,
                permission=g.permission,
                condition=g.condition,
                expires_at=g.expires_at,
                granted_by=actor_id,
            )
            for g in source.grants
            # Platform-wide grants never leave the platform role
            if g.permission.scope != Scope.PLATFORM
        ]
        self.roles[role_id] = clone

        logger.info("Cloned role %s -> %s in org=%s", source.role_id, role_id, organization_id)
        await self._audit(
            organization_id,
            AuditEventType.ROLE_CLONED,
            actor_id,
            f"Cloned role {source.name} as {name}",
            entity_id=role_id,
            after=self._snapshot(clone),
            payload={"cloned_from": source.role_id},
        )
        return clone

    async def delete_role(self, role_id: str, *, actor_id: str) -> Role:
        role = self.get_role(role_id)
        if role.is_system:
            raise ValueError(f"Cannot remove system role: {role_id}")

        del self.roles[role_id]
        for assigned in self._assignments.values():
            assigned.pop(role_id, None)

        await self._invalidate_all()
        logger.info("Deleted custom role %s", role_id)
        await self._audit(
            role.organization_id,
            AuditEventType.ROLE_DELETED,
            actor_id,
            f"Deleted role {role.name}",
            entity_id=role_id,
            before=self._snapshot(role),
        )
        return role

    def lineage(self, role_id: str) -> list[Role]:
        """Ancestors of a role that still exist, nearest first."""
        role = self.get_role(role_id)
        return [self.roles[r] for r in role.lineage if r in self.roles]

    # =========================================================================
    # Grants
    # =========================================================================

    async def grant(
        self,
        role_id: str,
        permission: Permission | str,
        *,
        actor_id: str,
        condition: dict[str, Any] | None = None,
        expires_at: datetime | None = None,
        allow_platform_scope: bool = False,
    ) -> Grant:
        """Attach a permission to a role.

        Raises:
            UnknownPermissionError: permission not in the catalog
            ValueError: malformed condition or disallowed platform scope
        """
        role = self.get_role(role_id)
        if isinstance(permission, str):
            permission = Permission.parse(permission)

        if not self.catalog.contains(permission):
            raise UnknownPermissionError(f"Unknown permission: {permission.key}")

        if permission.scope == Scope.PLATFORM and not (role.is_system or allow_platform_scope):
            raise ValueError("Platform scope can only be granted by a platform administrator")

        if condition is not None:
            try:
                parse_condition(condition)
            except ValidationError as e:
                raise ValueError(f"Invalid condition: {e.error_count()} errors") from e

        grant = Grant(
            role_id=role_id,
            permission=permission,
            condition=condition,
            expires_at=_aware(expires_at),
            granted_by=actor_id,
            granted_at=self._clock(),
        )
        role.grants.append(grant)

        await self._invalidate_all()
        logger.info("Granted %s to role %s", permission.key, role_id)
        await self._audit(
            role.organization_id,
            AuditEventType.GRANT_ADDED,
            actor_id,
            f"Granted {permission.key} to role {role.name}",
            entity_id=role_id,
            entity_type="grant",
            after=grant.model_dump(mode="json"),
        )
        return grant

    async def revoke(self, role_id: str, grant_id: str, *, actor_id: str) -> Grant:
        role = self.get_role(role_id)
        grant = role.find_grant(grant_id)
        if grant is None:
            raise NotFoundError()

        role.grants.remove(grant)

        await self._invalidate_all()
        logger.info("Revoked %s from role %s", grant.permission.key, role_id)
        await self._audit(
            role.organization_id,
            AuditEventType.GRANT_REVOKED,
            actor_id,
            f"Revoked {grant.permission.key} from role {role.name}",
            entity_id=role_id,
            entity_type="grant",
            before=grant.model_dump(mode="json"),
        )
        return grant

    async def sweep_expired(self, now: datetime | None = None) -> list[Grant]:
        """Remove grants and role assignments whose expiry has passed.

        Returns the expired grants; expired assignments are audited as they go.
        """
        now = now or self._clock()
        await self._sweep_assignments(now)

        removed: list[tuple[Role, Grant]] = []
        for role in self.roles.values():
            expired = [g for g in role.grants if g.is_expired(now)]
            for grant in expired:
                role.grants.remove(grant)
                removed.append((role, grant))

        if not removed:
            return []

        await self._invalidate_all()
        for role, grant in removed:
            await self._audit(
                role.organization_id,
                AuditEventType.GRANT_EXPIRED,
                "system",
                f"Grant {grant.permission.key} on role {role.name} expired",
                entity_id=role.role_id,
                entity_type="grant",
                before=grant.model_dump(mode="json"),
                actor_type=ActorType.SYSTEM,
            )
        logger.info("Swept %d expired grants", len(removed))
        return [grant for _, grant in removed]

    # =========================================================================
    # Assignments
    # =========================================================================

    async def assign_role(
        self,
        user_id: str,
        role_id: str,
        *,
        actor_id: str,
        organization_id: str,
        expires_at: datetime | None = None,
    ) -> None:
        """Assign a custom role of `organization_id` to a user.

        Re-assigning an already assigned role replaces its expiry.

        Raises:
            RoleNotFoundError: role unknown or owned by another organization
            ValueError: system role, or an expiry that has already passed
        """
        role = self.get_org_role(role_id, organization_id)
        if role.is_system:
            raise ValueError("System roles are assigned with assign_system_role")
        expires_at = _aware(expires_at)
        if expires_at is not None and expires_at <= self._clock():
            raise ValueError("Assignment expiry must be in the future")

        assigned = self._assignments.setdefault(user_id, {})
        before = (
            {"role_id": role_id, "expires_at": _iso(assigned[role_id])} if role_id in assigned else None
        )
        assigned[role_id] = expires_at

        await self._invalidate_user(user_id)
        await self._audit(
            organization_id,
            AuditEventType.ROLE_ASSIGNED,
            actor_id,
            f"Assigned role {role.name} to user {user_id}",
            entity_type="user",
            entity_id=user_id,
            before=before,
            after={"role_id": role_id, "expires_at": _iso(expires_at)},
            payload={"role_id": role_id, "user_id": user_id},
        )

    async def unassign_role(
        self, user_id: str, role_id: str, *, actor_id: str, organization_id: str
    ) -> bool:
        role = self.get_org_role(role_id, organization_id)
        assigned = self._assignments.get(user_id, {})
        if role_id not in assigned:
            return False

        expires_at = assigned.pop(role_id)
        await self._invalidate_user(user_id)
        await self._audit(
            organization_id,
            AuditEventType.ROLE_UNASSIGNED,
            actor_id,
            f"Removed role {role.name} from user {user_id}",
            entity_type="user",
            entity_id=user_id,
            before={"role_id": role_id, "expires_at": _iso(expires_at)},
            payload={"role_id": role_id, "user_id": user_id},
        )
        return True

    async def assign_system_role(
        self,
        actor: TenantContext,
        user_id: str,
        role: SystemRole,
        *,
        organization_id: str | None = None,
        reason: str | None = None,
    ) -> SystemRole | None:
        """Change the system role of a user inside an organization.

        The new role takes effect on the user's next request. Returns the
        role previously assigned here, if any.

        Raises:
            ValueError: the actor tried to raise their own role
            PermissionDenied: the actor may not hand out `role`
        """
        organization_id = organization_id or actor.organization_id

        if user_id == actor.user_id and role_outranks(role, actor.effective_role):
            raise ValueError("Cannot assign yourself a role higher than your current role")

        if not can_assign_system_role(actor.effective_role, role):
            logger.warning(
                "User %s (%s) may not assign system role %s",
                actor.user_id,
                actor.effective_role.value,
                role.value,
            )
            raise PermissionDenied(DenyReason.NO_MATCHING_PERMISSION, f"role.assign:{role.value}")

        previous = self.system_role_of(user_id, organization_id)
        self._system_roles[user_id] = (organization_id, role)

        await self._invalidate_user(user_id)
        logger.info(
            "System role %s assigned to user=%s in org=%s by %s",
            role.value,
            user_id,
            organization_id,
            actor.user_id,
        )
        await self._audit(
            organization_id,
            AuditEventType.SYSTEM_ROLE_CHANGED,
            actor.user_id,
            f"Assigned system role {SYSTEM_ROLE_INFO[role]['name']} to user {user_id}",
            entity_type="user",
            entity_id=user_id,
            before={"role": previous.value if previous else None},
            after={"role": role.value, "reason": reason},
            payload={"role_id": role.value, "user_id": user_id},
        )
        return previous

    async def _sweep_assignments(self, now: datetime) -> int:
        expired: list[tuple[str, str, datetime]] = []
        for user_id, assigned in self._assignments.items():
            for role_id, expires_at in list(assigned.items()):
                if expires_at is not None and now >= expires_at:
                    del assigned[role_id]
                    expired.append((user_id, role_id, expires_at))

        for user_id, role_id, expires_at in expired:
            await self._invalidate_user(user_id)
            role = self.roles.get(role_id)
            await self._audit(
                role.organization_id if role else None,
                AuditEventType.ASSIGNMENT_EXPIRED,
                "system",
                f"Assignment of role {role_id} to user {user_id} expired",
                entity_type="user",
                entity_id=user_id,
                before={"role_id": role_id, "expires_at": _iso(expires_at)},
                payload={"role_id": role_id, "user_id": user_id},
                actor_type=ActorType.SYSTEM,
            )
        if expired:
            logger.info("Swept %d expired role assignments", len(expired))
        return len(expired)

    # =========================================================================
    # Internals
    # =========================================================================

    async def _invalidate_all(self) -> None:
        if self.cache is not None:
            await self.cache.invalidate_all()

    async def _invalidate_user(self, user_id: str) -> None:
        if self.cache is not None:
            await self.cache.invalidate_user(user_id)

    @staticmethod
    def _snapshot(role: Role) -> dict[str, Any]:
        return role.model_dump(mode="json")

    async def _audit(
        self,
        organization_id: str | None,
        event_type: AuditEventType,
        actor_id: str,
        action: str,
        *,
        entity_id: str,
        entity_type: str = "role",
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
        actor_type: ActorType = ActorType.USER,
    ) -> None:
        if self.audit is None:
            return
        if entity_type in ("role", "grant"):
            payload = {"role_id": entity_id, **(payload or {})}
        await self.audit.record(
            organization_id=organization_id or PLATFORM_CHAIN,
            event_type=event_type,
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            before=before,
            after=after,
            source="authz.registry",
            payload=payload,
            actor_type=actor_type,
        )
