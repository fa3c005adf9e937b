"""Achievement engine tables.

Creates achievements, user_achievements, user_progression and
user_streaks, plus the applications and user_goals tables read for
fact collection when they do not already exist.

user_achievements is created without its uniqueness constraint here;
002_enforce_unique_unlocks removes legacy duplicates and adds it.

Revision ID: 001_achievement_tables
Revises:
Create Date: 2026-10-18
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_achievement_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Catalog reference copy ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS achievements (
            id VARCHAR(64) PRIMARY KEY,
            name VARCHAR(128) NOT NULL,
            description TEXT NOT NULL,
            category VARCHAR(16) NOT NULL,
            tier VARCHAR(16) NOT NULL,
            rarity VARCHAR(16) NOT NULL,
            icon VARCHAR(32) NOT NULL DEFAULT '',
            xp_reward INTEGER NOT NULL CHECK (xp_reward >= 0),
            requirements JSONB NOT NULL DEFAULT '[]',
            sort_order INTEGER NOT NULL DEFAULT 0,
            updated_at TIMESTAMPTZ
        )
    """)

    # --- Unlock ledger (no FK: rows outlive catalog renames) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_achievements (
            id SERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            achievement_id VARCHAR(64) NOT NULL,
            unlocked_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_achievements_user
        ON user_achievements(user_id)
    """)

    # --- Progression ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_progression (
            user_id VARCHAR(64) PRIMARY KEY,
            total_xp BIGINT NOT NULL DEFAULT 0,
            level INTEGER NOT NULL DEFAULT 1,
            achievements_unlocked INTEGER NOT NULL DEFAULT 0,
            updated_at TIMESTAMPTZ
        )
    """)

    # --- Streaks ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_streaks (
            user_id VARCHAR(64) PRIMARY KEY,
            daily_streak INTEGER NOT NULL DEFAULT 0,
            longest_streak INTEGER NOT NULL DEFAULT 0,
            last_activity_date DATE,
            streak_start_date DATE,
            updated_at TIMESTAMPTZ
        )
    """)

    # --- Application tracking (fact sources) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS applications (
            id SERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            company VARCHAR(256) NOT NULL DEFAULT '',
            position VARCHAR(256) NOT NULL DEFAULT '',
            date_applied TIMESTAMPTZ NOT NULL,
            status VARCHAR(32) NOT NULL DEFAULT 'Applied',
            type VARCHAR(16) NOT NULL DEFAULT 'Onsite',
            notes TEXT,
            attachments JSONB NOT NULL DEFAULT '[]',
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_applications_user
        ON applications(user_id)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_goals (
            user_id VARCHAR(64) PRIMARY KEY,
            weekly_goal INTEGER NOT NULL DEFAULT 0,
            monthly_goal INTEGER NOT NULL DEFAULT 0,
            updated_at TIMESTAMPTZ
        )
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS user_streaks CASCADE")
    op.execute("DROP TABLE IF EXISTS user_progression CASCADE")
    op.execute("DROP TABLE IF EXISTS user_achievements CASCADE")
    op.execute("DROP TABLE IF EXISTS achievements CASCADE")
