"""Dialect-aware INSERT construction for upserts and conflict-tolerant inserts."""

from __future__ import annotations

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


def dialect_insert(session: AsyncSession, table):
    """Return the ``insert`` construct supporting ``ON CONFLICT`` for the bound engine."""

    dialect_name = session.get_bind().dialect.name
    if dialect_name == "sqlite":
        return sqlite.insert(table)
    if dialect_name == "postgresql":
        return postgresql.insert(table)
    raise RuntimeError(f"Unsupported database dialect for conflict-tolerant insert: {dialect_name}")


__all__ = ["dialect_insert"]
