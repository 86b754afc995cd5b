"""Bulk upsert/delete helpers over SQLAlchemy Core."""

from __future__ import annotations

from typing import Any, Iterable, Iterator, Sequence, TypeVar

from sqlalchemy import Column, Table, delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection

CHUNK_SIZE = 500

T = TypeVar("T")


def chunked(items: Sequence[T], size: int = CHUNK_SIZE) -> Iterator[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def insert_for(conn: Connection, table: Table):
    """Dialect insert supporting ``ON CONFLICT`` clauses."""
    if conn.dialect.name == "postgresql":
        return postgresql.insert(table)
    if conn.dialect.name == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"Upserts are not supported on {conn.dialect.name}")


def upsert(conn: Connection, table: Table, rows: Sequence[dict[str, Any]], keys: Sequence[str]) -> int:
    """Insert ``rows`` and overwrite every non-key column on key conflicts."""
    if not rows:
        return 0
    stmt = insert_for(conn, table)
    updates = {name: stmt.excluded[name] for name in rows[0] if name not in keys}
    stmt = stmt.on_conflict_do_update(index_elements=list(keys), set_=updates)
    for chunk in chunked(rows):
        conn.execute(stmt, list(chunk))
    return len(rows)


def insert_ignore(
    conn: Connection, table: Table, rows: Sequence[dict[str, Any]], keys: Sequence[str] | None = None
) -> int:
    """Insert ``rows``, silently skipping any that hit a uniqueness conflict."""
    if not rows:
        return 0
    stmt = insert_for(conn, table)
    stmt = stmt.on_conflict_do_nothing(index_elements=list(keys) if keys else None)
    for chunk in chunked(rows):
        conn.execute(stmt, list(chunk))
    return len(rows)


def delete_in(conn: Connection, column: Column, values: Iterable[Any]) -> int:
    values = list(values)
    removed = 0
    for chunk in chunked(values):
        result = conn.execute(delete(column.table).where(column.in_(chunk)))
        removed += max(result.rowcount, 0)
    return removed


def existing_keys(conn: Connection, column: Column) -> set[Any]:
    return set(conn.execute(select(column)).scalars())
