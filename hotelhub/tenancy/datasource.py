"""Data sources for tenant-scoped repositories.

A data source executes already-filtered queries. It knows nothing about
tenants; the repository hands it the complete filter.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Protocol

from sqlalchemy import Table, and_, delete, insert, not_, or_, select, true, update
from sqlalchemy.engine import Engine
from starlette.concurrency import run_in_threadpool

from hotelhub.tenancy.query_filter import Where, matches

logger = logging.getLogger(__name__)


class TenantDataSource(Protocol):
    """Protocol for repository backends."""

    async def find_many(
        self,
        entity: str,
        where: Where,
        *,
        limit: int | None = None,
        offset: int = 0,
        order_by: str | None = None,
    ) -> list[dict[str, Any]]:
        ...

    async def find_one(self, entity: str, where: Where) -> dict[str, Any] | None:
        ...

    async def insert(self, entity: str, data: dict[str, Any]) -> dict[str, Any]:
        ...

    async def update(self, entity: str, where: Where, changes: dict[str, Any]) -> int:
        ...

    async def delete(self, entity: str, where: Where) -> int:
        ...


class InMemoryDataSource:
    """Dict-backed data source for tests and development."""

    def __init__(self, id_field: str = "id"):
        self.id_field = id_field
        self._tables: dict[str, dict[Any, dict[str, Any]]] = {}

    def seed(self, entity: str, rows: list[dict[str, Any]]) -> None:
        table = self._tables.setdefault(entity, {})
        for row in rows:
            table[row[self.id_field]] = dict(row)

    def _select(self, entity: str, where: Where) -> list[dict[str, Any]]:
        return [row for row in self._tables.get(entity, {}).values() if matches(where, row)]

    async def find_many(
        self,
        entity: str,
        where: Where,
        *,
        limit: int | None = None,
        offset: int = 0,
        order_by: str | None = None,
    ) -> list[dict[str, Any]]:
        rows = self._select(entity, where)
        if order_by:
            rows.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by)))
        end = None if limit is None else offset + limit
        return [copy.deepcopy(r) for r in rows[offset:end]]

    async def find_one(self, entity: str, where: Where) -> dict[str, Any] | None:
        rows = self._select(entity, where)
        return copy.deepcopy(rows[0]) if rows else None

    async def insert(self, entity: str, data: dict[str, Any]) -> dict[str, Any]:
        table = self._tables.setdefault(entity, {})
        key = data[self.id_field]
        if key in table:
            raise ValueError(f"Duplicate {entity} id: {key}")
        table[key] = copy.deepcopy(data)
        return copy.deepcopy(data)

    async def update(self, entity: str, where: Where, changes: dict[str, Any]) -> int:
        rows = self._select(entity, where)
        for row in rows:
            row.update(copy.deepcopy(changes))
        return len(rows)

    async def delete(self, entity: str, where: Where) -> int:
        table = self._tables.get(entity, {})
        doomed = [row[self.id_field] for row in self._select(entity, where)]
        for key in doomed:
            del table[key]
        return len(doomed)


# =============================================================================
# SQLAlchemy
# =============================================================================


def compile_where(table: Table, where: Where):
    """Translate the filter language into a SQLAlchemy boolean clause."""
    clauses = []
    for key, condition in where.items():
        if key == "AND":
            clauses.append(and_(true(), *(compile_where(table, w) for w in condition)))
        elif key == "OR":
            clauses.append(or_(*(compile_where(table, w) for w in condition)))
        elif key == "NOT":
            clauses.append(not_(compile_where(table, condition)))
        else:
            if key not in table.c:
                raise ValueError(f"Unknown column {table.name}.{key}")
            clauses.append(_compile_field(table.c[key], condition))
    return and_(true(), *clauses)


def _compile_field(column, condition: Any):
    if not isinstance(condition, dict):
        return column.is_(None) if condition is None else column == condition

    parts = []
    for op, operand in condition.items():
        if op == "in":
            parts.append(column.in_(list(operand)))
        elif op == "not":
            if operand is None:
                parts.append(column.is_not(None))
            else:
                # NULL is "not equal" too, as in the in-memory matcher
                parts.append(or_(column != operand, column.is_(None)))
        elif op == "equals":
            parts.append(column.is_(None) if operand is None else column == operand)
        else:
            raise ValueError(f"Unsupported filter operator: {op}")
    return and_(true(), *parts)


class SQLAlchemyDataSource:
    """SQLAlchemy Core data source.

    Statements run on a worker thread so request handlers never block the
    event loop.
    """

    def __init__(self, engine: Engine, tables: dict[str, Table]):
        self.engine = engine
        self.tables = tables

    def _table(self, entity: str) -> Table:
        try:
            return self.tables[entity]
        except KeyError:
            raise ValueError(f"No table mapped for entity: {entity}") from None

    async def find_many(
        self,
        entity: str,
        where: Where,
        *,
        limit: int | None = None,
        offset: int = 0,
        order_by: str | None = None,
    ) -> list[dict[str, Any]]:
        table = self._table(entity)
        stmt = select(table).where(compile_where(table, where))
        if order_by:
            stmt = stmt.order_by(table.c[order_by])
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return await run_in_threadpool(self._fetch, stmt)

    async def find_one(self, entity: str, where: Where) -> dict[str, Any] | None:
        rows = await self.find_many(entity, where, limit=1)
        return rows[0] if rows else None

    async def insert(self, entity: str, data: dict[str, Any]) -> dict[str, Any]:
        table = self._table(entity)
        await run_in_threadpool(self._execute, insert(table).values(**data))
        return dict(data)

    async def update(self, entity: str, where: Where, changes: dict[str, Any]) -> int:
        table = self._table(entity)
        stmt = update(table).where(compile_where(table, where)).values(**changes)
        return await run_in_threadpool(self._execute, stmt)

    async def delete(self, entity: str, where: Where) -> int:
        table = self._table(entity)
        stmt = delete(table).where(compile_where(table, where))
        return await run_in_threadpool(self._execute, stmt)

    def _fetch(self, stmt) -> list[dict[str, Any]]:
        with self.engine.connect() as conn:
            return [dict(row._mapping) for row in conn.execute(stmt)]

    def _execute(self, stmt) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(stmt)
            return result.rowcount
