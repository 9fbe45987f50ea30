"""Tests for the tenant-scoped repository over the in-memory data source."""

import pytest

from hotelhub.audit import AuditEventType, AuditLog, AuditQuery, InMemoryAuditStorage
from hotelhub.authz.models import SystemRole
from hotelhub.errors import NotFoundError, SecurityViolation
from hotelhub.tenancy.context import TenantContext
from hotelhub.tenancy.datasource import InMemoryDataSource
from hotelhub.tenancy.entities import get_entity
from hotelhub.tenancy.query_filter import TenantQueryFilter
from hotelhub.tenancy.repository import TenantScopedRepository

VACATIONS = [
    {"id": "v-1", "organization_id": "org-x", "property_id": "p-1", "department_id": "d-1",
     "user_id": "u-1", "status": "requested"},
    {"id": "v-2", "organization_id": "org-x", "property_id": "p-1", "department_id": "d-2",
     "user_id": "u-2", "status": "approved"},
    {"id": "v-3", "organization_id": "org-x", "property_id": "p-2", "department_id": "d-3",
     "user_id": "u-3", "status": "requested"},
    {"id": "v-4", "organization_id": "org-y", "property_id": "p-9", "department_id": "d-9",
     "user_id": "u-9", "status": "requested"},
]


def make_context(role: SystemRole, **overrides) -> TenantContext:
    fields = {
        "organization_id": "org-x",
        "property_id": "p-1",
        "department_id": "d-1",
        "user_id": "u-1",
        "effective_role": role,
    }
    fields.update(overrides)
    return TenantContext(**fields)


@pytest.fixture
def source() -> InMemoryDataSource:
    source = InMemoryDataSource()
    source.seed("vacation", VACATIONS)
    return source


@pytest.fixture
def audit() -> AuditLog:
    return AuditLog(InMemoryAuditStorage())


@pytest.fixture
def repository(source, audit) -> TenantScopedRepository:
    return TenantScopedRepository(get_entity("vacation"), source, TenantQueryFilter(audit=audit), audit)


class TestReads:
    """Reads only ever see the caller's tenant."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "role,expected",
        [
            (SystemRole.ORGANIZATION_OWNER, ["v-1", "v-2", "v-3"]),
            (SystemRole.PROPERTY_MANAGER, ["v-1", "v-2"]),
            (SystemRole.DEPARTMENT_ADMIN, ["v-1"]),
            (SystemRole.STAFF, ["v-1"]),
        ],
    )
    async def test_list_by_role(self, repository, role, expected):
        rows = await repository.list(make_context(role), order_by="id")

        assert [r["id"] for r in rows] == expected

    @pytest.mark.asyncio
    async def test_unscoped_platform_sees_everything(self, repository):
        context = make_context(SystemRole.PLATFORM_ADMIN, unscoped=True)

        rows = await repository.list(context, order_by="id")

        assert len(rows) == 4

    @pytest.mark.asyncio
    async def test_caller_filter_is_combined(self, repository):
        context = make_context(SystemRole.PROPERTY_MANAGER)

        rows = await repository.list(context, {"status": "approved"})

        assert [r["id"] for r in rows] == ["v-2"]

    @pytest.mark.asyncio
    async def test_pagination(self, repository):
        context = make_context(SystemRole.ORGANIZATION_OWNER)

        rows = await repository.list(context, order_by="id", limit=1, offset=1)

        assert [r["id"] for r in rows] == ["v-2"]

    @pytest.mark.asyncio
    async def test_get_out_of_tenant_is_not_found(self, repository):
        context = make_context(SystemRole.PROPERTY_MANAGER)

        assert (await repository.get(context, "v-2"))["user_id"] == "u-2"
        with pytest.raises(NotFoundError):
            await repository.get(context, "v-3")
        with pytest.raises(NotFoundError):
            await repository.get(context, "v-4")
        with pytest.raises(NotFoundError):
            await repository.get(context, "v-missing")

    @pytest.mark.asyncio
    async def test_attributes(self, repository):
        context = make_context(SystemRole.STAFF)

        target = repository.attributes(await repository.get(context, "v-1"))

        assert target.organization_id == "org-x"
        assert target.department_id == "d-1"
        assert target.owner_id == "u-1"

    @pytest.mark.asyncio
    async def test_leaky_source_raises_security_violation(self, audit):
        class LeakySource(InMemoryDataSource):
            async def find_many(self, entity, where, **kwargs):
                return [dict(row) for row in self._tables[entity].values()]

        leaky = LeakySource()
        leaky.seed("vacation", VACATIONS)
        repository = TenantScopedRepository(
            get_entity("vacation"), leaky, TenantQueryFilter(audit=audit), audit
        )

        with pytest.raises(SecurityViolation):
            await repository.list(make_context(SystemRole.PROPERTY_MANAGER))

        assert await audit.storage.count("org-x") == 1


class TestWrites:
    """Writes are stamped, scoped and audited."""

    @pytest.mark.asyncio
    async def test_create_forces_tenant_fields(self, repository, source, audit):
        context = make_context(SystemRole.DEPARTMENT_ADMIN)

        row = await repository.create(
            context,
            {"organization_id": "org-y", "user_id": "u-5", "status": "requested"},
        )

        assert row["organization_id"] == "org-x"
        assert row["property_id"] == "p-1"
        assert row["department_id"] == "d-1"
        assert row["id"]
        stored = await source.find_one("vacation", {"id": row["id"]})
        assert stored["organization_id"] == "org-x"

        entries = await audit.entries(
            AuditQuery(organization_id="org-x", event_types=[AuditEventType.DATA_CREATE])
        )
        assert entries[0].entity_id == row["id"]
        assert entries[0].actor_id == "u-1"

    @pytest.mark.asyncio
    async def test_update_in_tenant(self, repository, audit):
        context = make_context(SystemRole.PROPERTY_MANAGER)

        row = await repository.update(context, "v-2", {"status": "rejected"})

        assert row["status"] == "rejected"
        entries = await audit.entries(
            AuditQuery(organization_id="org-x", event_types=[AuditEventType.DATA_UPDATE])
        )
        assert entries[0].before["status"] == "approved"
        assert entries[0].after["status"] == "rejected"

    @pytest.mark.asyncio
    async def test_update_cannot_move_record_out_of_tenant(self, repository, source):
        context = make_context(SystemRole.PROPERTY_MANAGER)

        row = await repository.update(context, "v-2", {"organization_id": "org-y"})

        assert row["organization_id"] == "org-x"
        assert (await source.find_one("vacation", {"id": "v-2"}))["organization_id"] == "org-x"

    @pytest.mark.asyncio
    async def test_update_out_of_tenant_is_not_found(self, repository, source):
        context = make_context(SystemRole.PROPERTY_MANAGER)

        with pytest.raises(NotFoundError):
            await repository.update(context, "v-4", {"status": "rejected"})

        assert (await source.find_one("vacation", {"id": "v-4"}))["status"] == "requested"

    @pytest.mark.asyncio
    async def test_delete(self, repository, source, audit):
        context = make_context(SystemRole.PROPERTY_MANAGER)

        await repository.delete(context, "v-1")

        assert await source.find_one("vacation", {"id": "v-1"}) is None
        with pytest.raises(NotFoundError):
            await repository.delete(context, "v-4")
        assert await source.find_one("vacation", {"id": "v-4"}) is not None

        entries = await audit.entries(
            AuditQuery(organization_id="org-x", event_types=[AuditEventType.DATA_DELETE])
        )
        assert [e.entity_id for e in entries] == ["v-1"]

    @pytest.mark.asyncio
    async def test_staff_only_touch_own_records(self, repository):
        context = make_context(SystemRole.STAFF)

        await repository.update(context, "v-1", {"status": "cancelled"})
        with pytest.raises(NotFoundError):
            await repository.update(context, "v-2", {"status": "cancelled"})
