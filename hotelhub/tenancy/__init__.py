"""HotelHub Tenancy Package.

Per-request tenant context resolution and tenant-scoped data access:
- TenantContext: immutable tenant identity of one request
- TenantQueryFilter: predicate injection, post-validation, write stamping
- TenantScopedRepository: the data access path for handlers
"""

from hotelhub.tenancy.context import ActAs, TenantContext, TenantContextResolver
from hotelhub.tenancy.entities import ENTITY_DESCRIPTORS, EntityDescriptor, get_entity
from hotelhub.tenancy.query_filter import (
    SecurityViolationEvent,
    TenantQueryFilter,
    matches,
    required_predicates,
)
from hotelhub.tenancy.datasource import InMemoryDataSource, SQLAlchemyDataSource
from hotelhub.tenancy.repository import TenantScopedRepository

__all__ = [
    "ActAs",
    "TenantContext",
    "TenantContextResolver",
    "ENTITY_DESCRIPTORS",
    "EntityDescriptor",
    "get_entity",
    "SecurityViolationEvent",
    "TenantQueryFilter",
    "matches",
    "required_predicates",
    "InMemoryDataSource",
    "SQLAlchemyDataSource",
    "TenantScopedRepository",
]
