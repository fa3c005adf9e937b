"""Progression aggregation: total XP, level and unlock count.

Progression is a pure function of a user's ledger rows. The stored row
in ``user_progression`` is a cache of that function and is overwritten,
never patched, whenever the ledger changes.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from applytrak.achievements.catalog import DEFAULT_CATALOG, AchievementCatalog
from applytrak.achievements.errors import AggregationMismatch, CatalogLookupError
from applytrak.achievements.ledger import ledger_achievement_ids
from applytrak.achievements.levels import level_for_xp
from applytrak.db.models import UserProgression
from applytrak.db.upsert import dialect_insert

logger = structlog.get_logger()


@dataclass(frozen=True)
class ProgressionState:
    total_xp: int = 0
    level: int = 1
    achievements_unlocked: int = 0


def _xp_for(achievement_id: str, catalog: AchievementCatalog, user_id: str | None) -> int:
    try:
        return catalog.get(achievement_id).xp_reward
    except CatalogLookupError:
        logger.warning("catalog_lookup_failed", user_id=user_id, achievement_id=achievement_id)
        return 0


def progression_from_ids(
    achievement_ids: Iterable[str],
    catalog: AchievementCatalog = DEFAULT_CATALOG,
    *,
    user_id: str | None = None,
) -> ProgressionState:
    """Aggregate one entry per ledger row.

    Ids missing from the catalog add no XP but still count as unlocked rows.
    """
    ids = list(achievement_ids)
    total_xp = sum(_xp_for(achievement_id, catalog, user_id) for achievement_id in ids)
    return ProgressionState(
        total_xp=total_xp,
        level=level_for_xp(total_xp),
        achievements_unlocked=len(ids),
    )


def apply_unlock(
    state: ProgressionState,
    achievement_id: str,
    catalog: AchievementCatalog = DEFAULT_CATALOG,
    *,
    user_id: str | None = None,
) -> ProgressionState:
    """Incremental fast path: add one freshly inserted unlock to a state."""
    total_xp = state.total_xp + _xp_for(achievement_id, catalog, user_id)
    return replace(
        state,
        total_xp=total_xp,
        level=level_for_xp(total_xp),
        achievements_unlocked=state.achievements_unlocked + 1,
    )


async def load_progression(db: AsyncSession, user_id: str) -> ProgressionState:
    """Return the stored progression (level 1 and zero XP if none)."""
    result = await db.execute(select(UserProgression).where(UserProgression.user_id == user_id))
    row = result.scalar_one_or_none()
    if row is None:
        return ProgressionState()
    return ProgressionState(
        total_xp=row.total_xp,
        level=row.level,
        achievements_unlocked=row.achievements_unlocked,
    )


async def save_progression(
    db: AsyncSession,
    user_id: str,
    state: ProgressionState,
    now: datetime | None = None,
) -> None:
    if now is None:
        now = datetime.now(timezone.utc)

    values = {
        "total_xp": state.total_xp,
        "level": state.level,
        "achievements_unlocked": state.achievements_unlocked,
        "updated_at": now,
    }
    stmt = dialect_insert(db, UserProgression).values(user_id=user_id, **values)
    stmt = stmt.on_conflict_do_update(index_elements=[UserProgression.user_id], set_=values)
    await db.execute(stmt)


async def compute_progression(
    db: AsyncSession,
    user_id: str,
    catalog: AchievementCatalog = DEFAULT_CATALOG,
) -> ProgressionState:
    """From-scratch progression over the user's current ledger rows."""
    ids = await ledger_achievement_ids(db, user_id)
    return progression_from_ids(ids, catalog, user_id=user_id)


async def recompute(
    db: AsyncSession,
    user_id: str,
    catalog: AchievementCatalog = DEFAULT_CATALOG,
) -> ProgressionState:
    """Rebuild progression from the ledger and store it. Caller commits."""
    state = await compute_progression(db, user_id, catalog)
    await save_progression(db, user_id, state)
    return state


async def refresh(
    db: AsyncSession,
    user_id: str,
    inserted_ids: Iterable[str],
    catalog: AchievementCatalog = DEFAULT_CATALOG,
) -> ProgressionState:
    """Apply a cycle's inserted unlocks and store the authoritative result.

    The stored state plus ``inserted_ids`` is checked against the
    from-scratch aggregation. A disagreement (a concurrent cycle, a
    deleted duplicate, a stale cache) is logged and the recomputed value
    wins. Caller commits.
    """
    incremental = await load_progression(db, user_id)
    for achievement_id in inserted_ids:
        incremental = apply_unlock(incremental, achievement_id, catalog, user_id=user_id)

    fresh = await compute_progression(db, user_id, catalog)
    if incremental != fresh:
        mismatch = AggregationMismatch(user_id, incremental.total_xp, fresh.total_xp)
        logger.warning(
            "aggregation_mismatch",
            user_id=user_id,
            incremental_xp=mismatch.expected_xp,
            recomputed_xp=mismatch.actual_xp,
            incremental_count=incremental.achievements_unlocked,
            recomputed_count=fresh.achievements_unlocked,
            error=str(mismatch),
        )

    await save_progression(db, user_id, fresh)
    return fresh
