"""Tests for the permission catalog and role registry."""

from datetime import datetime, timedelta, UTC

import pytest

from hotelhub.audit import PLATFORM_CHAIN, AuditEventType, AuditLog, AuditQuery, InMemoryAuditStorage
from hotelhub.authz import (
    PermissionCache,
    PermissionCatalog,
    PermissionDefinition,
    RoleRegistry,
    get_permission_catalog,
)
from hotelhub.authz.conditions import department_match
from hotelhub.authz.models import Permission, Scope, SystemRole, role_at_least
from hotelhub.authz.registry import assignable_system_roles, can_assign_system_role
from hotelhub.errors import NotFoundError, PermissionDenied, RoleNotFoundError, UnknownPermissionError
from hotelhub.tenancy.context import TenantContext

NOW = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)


def make_context(role: SystemRole, user_id: str = "u-1", **overrides) -> TenantContext:
    fields = {
        "organization_id": "org-x",
        "property_id": "p-1",
        "department_id": "d-1",
        "user_id": user_id,
        "effective_role": role,
    }
    fields.update(overrides)
    return TenantContext(**fields)


@pytest.fixture
def audit() -> AuditLog:
    return AuditLog(InMemoryAuditStorage())


@pytest.fixture
def registry(audit) -> RoleRegistry:
    return RoleRegistry(get_permission_catalog(), audit=audit, clock=lambda: NOW)


class TestPermissionCatalog:
    """The catalog is the closed set of grantable permissions."""

    def test_default_catalog_contents(self):
        catalog = get_permission_catalog()

        assert catalog.contains(Permission.parse("payslip.approve.property"))
        assert catalog.contains(Permission.parse("tenant.impersonate.platform"))
        assert not catalog.contains(Permission.parse("payslip.approve.platform"))
        assert "payroll" in catalog.categories()

    def test_wildcard_pattern_must_match_an_entry(self):
        catalog = get_permission_catalog()

        assert catalog.contains(Permission.parse("*.read.own"))
        assert catalog.contains(Permission.parse("vendors.*.organization"))
        assert not catalog.contains(Permission.parse("vendors.*.own"))

    def test_patterns_cannot_be_catalog_entries(self):
        with pytest.raises(ValueError, match="patterns"):
            PermissionCatalog(
                [
                    PermissionDefinition(
                        permission=Permission.parse("*.read.own"),
                        name="Everything",
                        category="misc",
                    )
                ]
            )

    def test_supersede_creates_new_version(self):
        catalog = get_permission_catalog()
        extra = PermissionDefinition(
            permission=Permission.parse("minibar.restock.property"),
            name="Restock minibar",
            category="operations",
        )

        newer = catalog.supersede([*catalog, extra])

        assert newer.version == catalog.version + 1
        assert len(newer) == len(catalog) + 1
        assert not catalog.contains(extra.permission)

    def test_permission_parse_rejects_bad_format(self):
        with pytest.raises(ValueError):
            Permission.parse("payslip.read")
        with pytest.raises(ValueError):
            Permission.parse("payslip.read.galaxy")


class TestRoleHierarchy:
    """System roles can only hand out roles below their own."""

    def test_platform_admin_can_assign_everything(self):
        assert assignable_system_roles(SystemRole.PLATFORM_ADMIN) == list(SystemRole)

    def test_strictly_lower_only(self):
        assert can_assign_system_role(SystemRole.PROPERTY_MANAGER, SystemRole.STAFF)
        assert not can_assign_system_role(SystemRole.PROPERTY_MANAGER, SystemRole.PROPERTY_MANAGER)
        assert not can_assign_system_role(SystemRole.ORGANIZATION_ADMIN, SystemRole.ORGANIZATION_OWNER)

    def test_staff_assigns_nothing(self):
        assert assignable_system_roles(SystemRole.STAFF) == []

    def test_role_at_least(self):
        assert role_at_least(SystemRole.PROPERTY_MANAGER, SystemRole.PROPERTY_MANAGER)
        assert role_at_least(SystemRole.ORGANIZATION_OWNER, SystemRole.DEPARTMENT_ADMIN)
        assert not role_at_least(SystemRole.STAFF, SystemRole.DEPARTMENT_ADMIN)

    def test_system_roles_are_seeded(self, registry):
        roles = registry.list_roles()

        assert [r.system_role for r in roles] == list(SystemRole)
        assert all(r.organization_id is None for r in roles)


class TestCustomRoles:
    """Custom roles are organization-local, cloneable and audited."""

    @pytest.mark.asyncio
    async def test_create_role_is_audited(self, registry, audit):
        role = await registry.create_role("org-x", "Night Auditor", actor_id="owner-1")

        assert role.role_id.startswith("night-auditor-")
        entries = await audit.entries(AuditQuery(organization_id="org-x"))
        assert [e.event_type for e in entries] == [AuditEventType.ROLE_CREATED]
        assert entries[0].after["name"] == "Night Auditor"

    @pytest.mark.asyncio
    async def test_roles_are_isolated_per_organization(self, registry):
        role = await registry.create_role("org-x", "Night Auditor", actor_id="owner-1")

        assert role in registry.list_roles("org-x")
        assert role not in registry.list_roles("org-y")
        with pytest.raises(RoleNotFoundError):
            registry.get_org_role(role.role_id, "org-y")

    @pytest.mark.asyncio
    async def test_clone_records_lineage(self, registry):
        supervisor = await registry.clone_role(
            SystemRole.DEPARTMENT_ADMIN.value, "org-x", "Housekeeping Supervisor", actor_id="owner-1"
        )
        night = await registry.clone_role(
            supervisor.role_id, "org-x", "Night Supervisor", actor_id="owner-1"
        )

        assert night.cloned_from == supervisor.role_id
        assert night.lineage == [supervisor.role_id, SystemRole.DEPARTMENT_ADMIN.value]
        assert [r.role_id for r in registry.lineage(night.role_id)] == night.lineage

    @pytest.mark.asyncio
    async def test_clone_copies_grants_with_fresh_ids(self, registry):
        source = registry.get_role(SystemRole.STAFF.value)

        clone = await registry.clone_role(source.role_id, "org-x", "Trainee", actor_id="owner-1")

        assert [g.permission for g in clone.grants] == [g.permission for g in source.grants]
        assert not {g.grant_id for g in clone.grants} & {g.grant_id for g in source.grants}
        assert all(g.role_id == clone.role_id for g in clone.grants)

    @pytest.mark.asyncio
    async def test_clone_drops_platform_grants(self, registry):
        clone = await registry.clone_role(
            SystemRole.PLATFORM_ADMIN.value, "org-x", "Wannabe", actor_id="owner-1"
        )

        assert clone.grants == []

    @pytest.mark.asyncio
    async def test_clone_is_independent_of_source(self, registry):
        source = await registry.create_role("org-x", "Front Desk", actor_id="owner-1")
        await registry.grant(source.role_id, "guests.read.property", actor_id="owner-1")
        clone = await registry.clone_role(source.role_id, "org-x", "Front Desk Lead", actor_id="owner-1")

        await registry.grant(clone.role_id, "guests.update.property", actor_id="owner-1")

        assert len(source.grants) == 1
        assert len(clone.grants) == 2

    @pytest.mark.asyncio
    async def test_system_roles_cannot_be_deleted(self, registry):
        with pytest.raises(ValueError):
            await registry.delete_role(SystemRole.STAFF.value, actor_id="root")

    @pytest.mark.asyncio
    async def test_delete_role_drops_assignments(self, registry):
        role = await registry.create_role("org-x", "Temp", actor_id="owner-1")
        await registry.assign_role("u-1", role.role_id, actor_id="owner-1", organization_id="org-x")

        await registry.delete_role(role.role_id, actor_id="owner-1")

        assert registry.assigned_role_ids("u-1") == set()
        with pytest.raises(RoleNotFoundError):
            registry.get_role(role.role_id)


class TestGrants:
    """Grants are validated against the catalog and audited."""

    @pytest.mark.asyncio
    async def test_unknown_permission_is_rejected(self, registry):
        role = await registry.create_role("org-x", "Spa", actor_id="owner-1")

        with pytest.raises(UnknownPermissionError):
            await registry.grant(role.role_id, "spa.book.property", actor_id="owner-1")

    @pytest.mark.asyncio
    async def test_platform_scope_needs_platform_admin(self, registry):
        role = await registry.create_role("org-x", "Ambitious", actor_id="owner-1")

        with pytest.raises(ValueError, match="Platform scope"):
            await registry.grant(role.role_id, "user.read.platform", actor_id="owner-1")

        grant = await registry.grant(
            role.role_id, "user.read.platform", actor_id="root", allow_platform_scope=True
        )
        assert grant.permission.scope == Scope.PLATFORM

    @pytest.mark.asyncio
    async def test_malformed_condition_is_rejected(self, registry):
        role = await registry.create_role("org-x", "Spa", actor_id="owner-1")

        with pytest.raises(ValueError, match="Invalid condition"):
            await registry.grant(
                role.role_id, "guests.read.property", actor_id="owner-1", condition={"kind": "nope"}
            )

    @pytest.mark.asyncio
    async def test_grant_and_revoke_are_audited(self, registry, audit):
        role = await registry.create_role("org-x", "Front Desk", actor_id="owner-1")
        grant = await registry.grant(
            role.role_id, "guests.read.property", actor_id="owner-1", condition=department_match()
        )

        await registry.revoke(role.role_id, grant.grant_id, actor_id="owner-1")

        entries = await audit.entries(AuditQuery(organization_id="org-x"))
        assert [e.event_type for e in entries] == [
            AuditEventType.ROLE_CREATED,
            AuditEventType.GRANT_ADDED,
            AuditEventType.GRANT_REVOKED,
        ]
        assert entries[1].after["condition"] == {"kind": "department_match"}
        assert role.grants == []

    @pytest.mark.asyncio
    async def test_revoke_unknown_grant(self, registry):
        role = await registry.create_role("org-x", "Front Desk", actor_id="owner-1")

        with pytest.raises(NotFoundError):
            await registry.revoke(role.role_id, "grant-missing", actor_id="owner-1")

    @pytest.mark.asyncio
    async def test_system_role_changes_use_platform_chain(self, registry, audit):
        await registry.grant(
            SystemRole.PLATFORM_ADMIN.value, "audit.purge.platform", actor_id="root"
        )

        entries = await audit.entries(AuditQuery(organization_id=PLATFORM_CHAIN))
        assert [e.event_type for e in entries] == [AuditEventType.GRANT_ADDED]

    @pytest.mark.asyncio
    async def test_sweep_removes_expired_grants(self, registry, audit):
        role = await registry.create_role("org-x", "Seasonal", actor_id="owner-1")
        await registry.grant(
            role.role_id, "guests.read.property", actor_id="owner-1",
            expires_at=NOW + timedelta(hours=1),
        )
        await registry.grant(role.role_id, "units.read.property", actor_id="owner-1")

        removed = await registry.sweep_expired(NOW + timedelta(hours=2))

        assert [g.permission.key for g in removed] == ["guests.read.property"]
        assert [g.permission.key for g in role.grants] == ["units.read.property"]
        expired = await audit.entries(
            AuditQuery(organization_id="org-x", event_types=[AuditEventType.GRANT_EXPIRED])
        )
        assert expired[0].actor_id == "system"

    @pytest.mark.asyncio
    async def test_grant_change_invalidates_cache(self):
        cache = PermissionCache()
        registry = RoleRegistry(get_permission_catalog(), cache=cache)
        role = await registry.create_role("org-x", "Front Desk", actor_id="owner-1")
        before = cache.make_key("u-1", "guests", "read", "property", "fp")

        await registry.grant(role.role_id, "guests.read.property", actor_id="owner-1")

        assert cache.make_key("u-1", "guests", "read", "property", "fp") != before


class TestAssignments:
    @pytest.mark.asyncio
    async def test_assign_and_unassign(self, registry, audit):
        role = await registry.create_role("org-x", "Front Desk", actor_id="owner-1")

        await registry.assign_role("u-1", role.role_id, actor_id="owner-1", organization_id="org-x")
        assert registry.assigned_role_ids("u-1") == {role.role_id}

        assert await registry.unassign_role(
            "u-1", role.role_id, actor_id="owner-1", organization_id="org-x"
        )
        assert not await registry.unassign_role(
            "u-1", role.role_id, actor_id="owner-1", organization_id="org-x"
        )

        entries = await audit.entries(AuditQuery(organization_id="org-x", entity_type="user"))
        assert [e.event_type for e in entries] == [
            AuditEventType.ROLE_ASSIGNED,
            AuditEventType.ROLE_UNASSIGNED,
        ]

    @pytest.mark.asyncio
    async def test_cannot_assign_other_organizations_role(self, registry):
        role = await registry.create_role("org-y", "Front Desk", actor_id="owner-y")

        with pytest.raises(RoleNotFoundError):
            await registry.assign_role(
                "u-1", role.role_id, actor_id="owner-1", organization_id="org-x"
            )

    @pytest.mark.asyncio
    async def test_system_roles_are_not_assignable(self, registry):
        with pytest.raises(ValueError):
            await registry.assign_role(
                "u-1", SystemRole.STAFF.value, actor_id="owner-1", organization_id="org-x"
            )

    @pytest.mark.asyncio
    async def test_timed_assignment_lapses(self, audit):
        clock = {"now": NOW}
        registry = RoleRegistry(get_permission_catalog(), audit=audit, clock=lambda: clock["now"])
        role = await registry.create_role("org-x", "Relief Cover", actor_id="owner-1")
        await registry.grant(role.role_id, "vendors.read.property", actor_id="owner-1")
        await registry.assign_role(
            "u-1", role.role_id, actor_id="owner-1", organization_id="org-x",
            expires_at=NOW + timedelta(hours=8),
        )
        context = make_context(SystemRole.STAFF)

        custom = [g for r, g in registry.grants_for(context) if r.role_id == role.role_id]
        assert [g.expires_at for g in custom] == [NOW + timedelta(hours=8)]
        assert registry.assigned_role_ids("u-1") == {role.role_id}

        clock["now"] = NOW + timedelta(hours=9)
        assert registry.assigned_role_ids("u-1") == set()

        await registry.sweep_expired()
        assert not [r for r, _ in registry.grants_for(context) if r.role_id == role.role_id]
        expired = await audit.entries(
            AuditQuery(organization_id="org-x", event_types=[AuditEventType.ASSIGNMENT_EXPIRED])
        )
        assert [(e.actor_id, e.entity_id) for e in expired] == [("system", "u-1")]

    @pytest.mark.asyncio
    async def test_expiry_in_the_past_is_rejected(self, registry):
        role = await registry.create_role("org-x", "Relief Cover", actor_id="owner-1")

        with pytest.raises(ValueError):
            await registry.assign_role(
                "u-1", role.role_id, actor_id="owner-1", organization_id="org-x",
                expires_at=NOW - timedelta(minutes=1),
            )


class TestSystemRoleAssignment:
    """System roles are handed out down the hierarchy only."""

    @pytest.mark.asyncio
    async def test_manager_assigns_lower_role(self, registry, audit):
        manager = make_context(SystemRole.PROPERTY_MANAGER, user_id="pm-1", department_id=None)

        previous = await registry.assign_system_role(
            manager, "u-2", SystemRole.DEPARTMENT_ADMIN, reason="Covering housekeeping"
        )

        assert previous is None
        assert registry.system_role_of("u-2", "org-x") == SystemRole.DEPARTMENT_ADMIN
        assert registry.system_role_of("u-2", "org-y") is None

        await registry.assign_system_role(manager, "u-2", SystemRole.STAFF)
        entries = await audit.entries(
            AuditQuery(organization_id="org-x", event_types=[AuditEventType.SYSTEM_ROLE_CHANGED])
        )
        assert [(e.before, e.after["role"]) for e in entries] == [
            ({"role": None}, "department_admin"),
            ({"role": "department_admin"}, "staff"),
        ]
        assert entries[0].after["reason"] == "Covering housekeeping"

    @pytest.mark.asyncio
    async def test_equal_or_higher_role_is_denied(self, registry):
        manager = make_context(SystemRole.PROPERTY_MANAGER, user_id="pm-1")

        for role in (SystemRole.PROPERTY_MANAGER, SystemRole.ORGANIZATION_ADMIN):
            with pytest.raises(PermissionDenied):
                await registry.assign_system_role(manager, "u-2", role)
        assert registry.system_role_of("u-2", "org-x") is None

    @pytest.mark.asyncio
    async def test_self_elevation_is_rejected(self, registry):
        owner = make_context(SystemRole.ORGANIZATION_OWNER, user_id="owner-1", property_id=None)

        with pytest.raises(ValueError, match="yourself"):
            await registry.assign_system_role(owner, "owner-1", SystemRole.PLATFORM_ADMIN)

    @pytest.mark.asyncio
    async def test_self_demotion_is_allowed(self, registry):
        owner = make_context(SystemRole.ORGANIZATION_OWNER, user_id="owner-1", property_id=None)

        await registry.assign_system_role(owner, "owner-1", SystemRole.STAFF)

        assert registry.system_role_of("owner-1", "org-x") == SystemRole.STAFF

    @pytest.mark.asyncio
    async def test_assignment_invalidates_cached_decisions(self, audit):
        cache = PermissionCache()
        registry = RoleRegistry(get_permission_catalog(), cache=cache, audit=audit)
        owner = make_context(SystemRole.ORGANIZATION_OWNER, user_id="owner-1", property_id=None)
        before = cache.make_key("u-2", "guests", "read", "property", "fp")

        await registry.assign_system_role(owner, "u-2", SystemRole.PROPERTY_MANAGER)

        assert cache.make_key("u-2", "guests", "read", "property", "fp") != before
