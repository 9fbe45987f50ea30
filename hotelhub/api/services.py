"""Service wiring for the API.

Builds the authorization and tenancy services once per application and
hangs them on `app.state.services`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from hotelhub.api.config import Settings
from hotelhub.audit import AuditLog, get_audit_storage
from hotelhub.authz.cache import PermissionCache
from hotelhub.authz.catalog import PermissionCatalog, get_permission_catalog
from hotelhub.authz.engine import AuthzEngine
from hotelhub.authz.registry import RoleRegistry
from hotelhub.tenancy.context import TenantContextResolver
from hotelhub.tenancy.datasource import InMemoryDataSource, SQLAlchemyDataSource, TenantDataSource
from hotelhub.tenancy.entities import get_entity
from hotelhub.tenancy.query_filter import TenantQueryFilter
from hotelhub.tenancy.repository import TenantScopedRepository
from hotelhub.tenancy.schema import TABLES, metadata

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Application-wide services. None of these hold per-request state."""

    settings: Settings
    catalog: PermissionCatalog
    cache: PermissionCache
    audit: AuditLog | None
    registry: RoleRegistry
    engine: AuthzEngine
    resolver: TenantContextResolver
    query_filter: TenantQueryFilter
    source: TenantDataSource

    def repository(self, entity: str) -> TenantScopedRepository:
        return TenantScopedRepository(get_entity(entity), self.source, self.query_filter, self.audit)

    async def run_maintenance(self) -> None:
        """Drop expired cache entries and expired grants."""
        swept = await self.cache.sweep_expired()
        expired = await self.registry.sweep_expired()
        logger.info(
            "Maintenance: %d cache entries swept, %d grants expired",
            swept,
            len(expired),
        )


def build_data_source(settings: Settings) -> TenantDataSource:
    if not settings.database_url:
        return InMemoryDataSource()

    url = settings.database_url
    kwargs = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # In-memory databases must share one connection across worker threads
            kwargs["poolclass"] = StaticPool

    engine = create_engine(url, **kwargs)
    metadata.create_all(engine)
    return SQLAlchemyDataSource(engine, TABLES)


def build_services(
    settings: Settings,
    *,
    source: TenantDataSource | None = None,
    clock: Callable[[], datetime] | None = None,
) -> Services:
    catalog = get_permission_catalog()
    cache = PermissionCache(
        ttl_seconds=settings.permission_cache_ttl_seconds,
        max_entries=settings.permission_cache_max_entries,
        enabled=settings.permission_cache_enabled,
    )

    audit = None
    if settings.audit_enabled:
        audit = AuditLog(get_audit_storage(settings.audit_storage_type, settings.audit_storage_path))

    registry = RoleRegistry(catalog, cache=cache, audit=audit, clock=clock)
    engine = AuthzEngine(
        registry,
        cache=cache,
        non_bypassable=settings.non_bypassable_actions,
        audit=audit,
        audit_denials=settings.audit_authz_denials,
        clock=clock,
    )

    return Services(
        settings=settings,
        catalog=catalog,
        cache=cache,
        audit=audit,
        registry=registry,
        engine=engine,
        resolver=TenantContextResolver(engine, audit),
        query_filter=TenantQueryFilter(audit=audit),
        source=source or build_data_source(settings),
    )
