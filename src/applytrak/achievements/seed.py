"""Catalog seeding: mirror the in-code catalog into the achievements table."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from applytrak.achievements.catalog import DEFAULT_CATALOG, AchievementCatalog, AchievementDefinition
from applytrak.db.models import AchievementRow
from applytrak.db.upsert import dialect_insert

logger = logging.getLogger(__name__)


def definition_to_row(definition: AchievementDefinition, sort_order: int) -> dict[str, Any]:
    return {
        "id": definition.id,
        "name": definition.name,
        "description": definition.description,
        "category": definition.category.value,
        "tier": definition.tier.value,
        "rarity": definition.rarity.value,
        "icon": definition.icon,
        "xp_reward": definition.xp_reward,
        "requirements": [r.to_dict() for r in definition.requirements],
        "sort_order": sort_order,
    }


async def seed_catalog(db: AsyncSession, catalog: AchievementCatalog = DEFAULT_CATALOG) -> int:
    """Upsert every catalog definition. Returns number of definitions seeded."""
    now = datetime.now(timezone.utc)
    seeded = 0
    for sort_order, definition in enumerate(catalog, start=1):
        stmt = dialect_insert(db, AchievementRow).values(
            **definition_to_row(definition, sort_order), updated_at=now
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={
                "name": stmt.excluded.name,
                "description": stmt.excluded.description,
                "category": stmt.excluded.category,
                "tier": stmt.excluded.tier,
                "rarity": stmt.excluded.rarity,
                "icon": stmt.excluded.icon,
                "xp_reward": stmt.excluded.xp_reward,
                "requirements": stmt.excluded.requirements,
                "sort_order": stmt.excluded.sort_order,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await db.execute(stmt)
        seeded += 1

    await db.commit()
    logger.info("Seeded %d achievement definitions", seeded)
    return seeded
