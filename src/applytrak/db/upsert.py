"""Dialect-native INSERT ... ON CONFLICT statements.

PostgreSQL runs in production and SQLite in local runs and tests; both
support ``ON CONFLICT`` with the same SQLAlchemy construct, imported from
the matching dialect module.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def dialect_insert(db: AsyncSession, model: Any) -> Any:
    """Return an ``INSERT`` for ``model`` that supports ``on_conflict_*``."""
    dialect = db.get_bind().dialect.name
    try:
        insert = _INSERTS[dialect]
    except KeyError:
        msg = f"Unsupported database dialect for upserts: {dialect}"
        raise RuntimeError(msg) from None
    return insert(model)
