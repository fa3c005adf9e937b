"""Enforce one unlock row per (user_id, achievement_id).

Ledgers written before this revision may hold duplicate unlocks. Keep the
earliest row per user and achievement (by unlocked_at, then id), delete
the rest, add the unique index, and rebuild user_progression from the
cleaned ledger. The catalog is upserted first so the rebuild prices every
row; app startup would otherwise be the first to fill `achievements`.

Revision ID: 002_enforce_unique_unlocks
Revises: 001_achievement_tables
Create Date: 2026-10-18
"""

import json
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

from applytrak.achievements.catalog import DEFAULT_CATALOG
from applytrak.achievements.seed import definition_to_row

revision: str = "002_enforce_unique_unlocks"
down_revision: str | None = "001_achievement_tables"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_UPSERT_ACHIEVEMENT = sa.text("""
    INSERT INTO achievements
        (id, name, description, category, tier, rarity, icon, xp_reward, requirements, sort_order, updated_at)
    VALUES
        (:id, :name, :description, :category, :tier, :rarity, :icon, :xp_reward,
         CAST(:requirements AS JSONB), :sort_order, NOW())
    ON CONFLICT (id) DO UPDATE SET
        name = EXCLUDED.name,
        description = EXCLUDED.description,
        category = EXCLUDED.category,
        tier = EXCLUDED.tier,
        rarity = EXCLUDED.rarity,
        icon = EXCLUDED.icon,
        xp_reward = EXCLUDED.xp_reward,
        requirements = EXCLUDED.requirements,
        sort_order = EXCLUDED.sort_order,
        updated_at = EXCLUDED.updated_at
""")


def _seed_catalog() -> None:
    bind = op.get_bind()
    for sort_order, definition in enumerate(DEFAULT_CATALOG, start=1):
        row = definition_to_row(definition, sort_order)
        row["requirements"] = json.dumps(row["requirements"])
        bind.execute(_UPSERT_ACHIEVEMENT, row)


def upgrade() -> None:
    op.execute("""
        DELETE FROM user_achievements
        WHERE id NOT IN (
            SELECT DISTINCT ON (user_id, achievement_id) id
            FROM user_achievements
            ORDER BY user_id, achievement_id, unlocked_at ASC, id ASC
        )
    """)

    op.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS user_achievements_user_id_achievement_id_key
        ON user_achievements(user_id, achievement_id)
    """)

    _seed_catalog()

    # Progression is a cache of the ledger; rebuild it after the cleanup.
    op.execute("""
        INSERT INTO user_progression (user_id, total_xp, level, achievements_unlocked, updated_at)
        SELECT
            ua.user_id,
            COALESCE(SUM(a.xp_reward), 0) AS total_xp,
            FLOOR(COALESCE(SUM(a.xp_reward), 0) / 100) + 1 AS level,
            COUNT(*) AS achievements_unlocked,
            NOW()
        FROM user_achievements ua
        LEFT JOIN achievements a ON a.id = ua.achievement_id
        GROUP BY ua.user_id
        ON CONFLICT (user_id) DO UPDATE SET
            total_xp = EXCLUDED.total_xp,
            level = EXCLUDED.level,
            achievements_unlocked = EXCLUDED.achievements_unlocked,
            updated_at = EXCLUDED.updated_at
    """)


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS user_achievements_user_id_achievement_id_key")
