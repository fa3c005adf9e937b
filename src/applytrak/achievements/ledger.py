"""Unlock ledger with exactly-once inserts.

The UNIQUE(user_id, achievement_id) constraint is the only coordination
point between concurrent cycles: ``try_unlock`` is a single
``INSERT ... ON CONFLICT DO NOTHING`` and the first writer wins.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from applytrak.db.models import UnlockRecord
from applytrak.db.upsert import dialect_insert

logger = structlog.get_logger()


class UnlockOutcome(str, Enum):
    INSERTED = "inserted"
    ALREADY_UNLOCKED = "already_unlocked"


async def try_unlock(
    db: AsyncSession,
    user_id: str,
    achievement_id: str,
    now: datetime | None = None,
) -> UnlockOutcome:
    """Record an unlock if none exists for (user_id, achievement_id).

    The caller owns the transaction and must commit.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    stmt = (
        dialect_insert(db, UnlockRecord)
        .values(user_id=user_id, achievement_id=achievement_id, unlocked_at=now)
        .on_conflict_do_nothing(index_elements=[UnlockRecord.user_id, UnlockRecord.achievement_id])
        .returning(UnlockRecord.id)
    )
    result = await db.execute(stmt)
    if result.scalar_one_or_none() is None:
        return UnlockOutcome.ALREADY_UNLOCKED
    return UnlockOutcome.INSERTED


async def list_unlocks(db: AsyncSession, user_id: str) -> list[UnlockRecord]:
    """All ledger rows for a user, oldest first."""
    result = await db.execute(
        select(UnlockRecord)
        .where(UnlockRecord.user_id == user_id)
        .order_by(UnlockRecord.unlocked_at, UnlockRecord.id)
    )
    return list(result.scalars())


async def ledger_achievement_ids(db: AsyncSession, user_id: str) -> list[str]:
    """Achievement id of every ledger row for a user, one entry per row."""
    result = await db.execute(
        select(UnlockRecord.achievement_id)
        .where(UnlockRecord.user_id == user_id)
        .order_by(UnlockRecord.id)
    )
    return list(result.scalars())


async def unlocked_ids(db: AsyncSession, user_id: str) -> set[str]:
    return set(await ledger_achievement_ids(db, user_id))


async def dedupe(db: AsyncSession, user_id: str) -> int:
    """Delete duplicate rows for a user, keeping the earliest per achievement.

    Earliest is by ``unlocked_at`` with the row id breaking ties. Returns
    the number of rows removed. The caller commits and recomputes
    progression.
    """
    seen: set[str] = set()
    duplicate_ids: list[int] = []
    for row in await list_unlocks(db, user_id):
        if row.achievement_id in seen:
            duplicate_ids.append(row.id)
        else:
            seen.add(row.achievement_id)

    if not duplicate_ids:
        return 0

    await db.execute(delete(UnlockRecord).where(UnlockRecord.id.in_(duplicate_ids)))
    logger.warning("ledger_deduped", user_id=user_id, removed=len(duplicate_ids))
    return len(duplicate_ids)
