"""SQLAlchemy table definitions for tenant data served by the API."""

from sqlalchemy import Column, DateTime, MetaData, String, Table

metadata = MetaData()

staff_table = Table(
    "user",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("organization_id", String(64), nullable=False, index=True),
    Column("property_id", String(64), index=True),
    Column("department_id", String(64), index=True),
    Column("name", String(200), nullable=False),
    Column("email", String(320)),
    Column("position", String(120)),
    Column("status", String(32), nullable=False, default="active"),
    Column("hired_at", DateTime(timezone=True)),
)

vacation_table = Table(
    "vacation",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("organization_id", String(64), nullable=False, index=True),
    Column("property_id", String(64), index=True),
    Column("department_id", String(64), index=True),
    Column("user_id", String(64), nullable=False, index=True),
    Column("starts_on", String(10), nullable=False),
    Column("ends_on", String(10), nullable=False),
    Column("status", String(32), nullable=False, default="requested"),
)

TABLES = {
    "user": staff_table,
    "vacation": vacation_table,
}
