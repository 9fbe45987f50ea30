"""Entity descriptors.

Tell the query filter which columns of an entity carry tenancy and
ownership. A `None` field means the entity is not partitioned at that level.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class EntityDescriptor:
    """Tenancy columns of a persisted entity."""

    name: str
    id_field: str = "id"
    organization_field: str = "organization_id"
    property_field: str | None = "property_id"
    department_field: str | None = "department_id"
    owner_field: str | None = "user_id"

    @property
    def tenant_fields(self) -> tuple[str, ...]:
        fields = [self.organization_field, self.property_field, self.department_field]
        return tuple(f for f in fields if f is not None)


ENTITY_DESCRIPTORS: dict[str, EntityDescriptor] = {
    # A user record is owned by the user it describes
    "user": EntityDescriptor("user", owner_field="id"),
    "department": EntityDescriptor("department", department_field="id", owner_field=None),
    "documents": EntityDescriptor("documents"),
    "payslip": EntityDescriptor("payslip"),
    "vacation": EntityDescriptor("vacation"),
    "training": EntityDescriptor("training"),
    "benefits": EntityDescriptor("benefits", department_field=None),
    "guests": EntityDescriptor("guests", department_field=None, owner_field=None),
    "reservations": EntityDescriptor("reservations", department_field=None, owner_field=None),
    "units": EntityDescriptor("units", department_field=None, owner_field=None),
    "concierge": EntityDescriptor("concierge", department_field=None, owner_field="created_by"),
    "vendors": EntityDescriptor("vendors", department_field=None, owner_field=None),
    "property": EntityDescriptor(
        "property", property_field="id", department_field=None, owner_field=None
    ),
}


def get_entity(name: str) -> EntityDescriptor:
    try:
        return ENTITY_DESCRIPTORS[name]
    except KeyError:
        raise ValueError(f"Unknown entity: {name}") from None
