"""Unlock ledger integration tests: exactly-once inserts and dedupe repair."""

from __future__ import annotations

import asyncio
import random
from datetime import timedelta

import pytest
from sqlalchemy import func, insert, select, text

from conftest import NOW

from applytrak.achievements import ledger
from applytrak.achievements.catalog import DEFAULT_CATALOG
from applytrak.achievements.ledger import UnlockOutcome
from applytrak.achievements.progression import load_progression, recompute
from applytrak.db.models import UnlockRecord


async def _row_count(session_factory, user_id: str, achievement_id: str | None = None) -> int:
    async with session_factory() as db:
        stmt = select(func.count(UnlockRecord.id)).where(UnlockRecord.user_id == user_id)
        if achievement_id is not None:
            stmt = stmt.where(UnlockRecord.achievement_id == achievement_id)
        return await db.scalar(stmt)


async def _unlock(session_factory, user_id: str, achievement_id: str) -> UnlockOutcome:
    async with session_factory() as db:
        outcome = await ledger.try_unlock(db, user_id, achievement_id, NOW)
        await db.commit()
        return outcome


class TestTryUnlock:

    async def test_second_unlock_is_already_unlocked(self, session_factory):
        assert await _unlock(session_factory, "u1", "first_application") is UnlockOutcome.INSERTED
        assert await _unlock(session_factory, "u1", "first_application") is UnlockOutcome.ALREADY_UNLOCKED
        assert await _row_count(session_factory, "u1", "first_application") == 1

    async def test_users_are_independent(self, session_factory):
        assert await _unlock(session_factory, "u1", "first_application") is UnlockOutcome.INSERTED
        assert await _unlock(session_factory, "u2", "first_application") is UnlockOutcome.INSERTED

    async def test_concurrent_attempts_insert_once(self, session_factory):
        outcomes = await asyncio.gather(
            *(_unlock(session_factory, "u1", "week_streak") for _ in range(8))
        )
        assert outcomes.count(UnlockOutcome.INSERTED) == 1
        assert outcomes.count(UnlockOutcome.ALREADY_UNLOCKED) == 7
        assert await _row_count(session_factory, "u1") == 1

    async def test_unlocked_ids_and_list(self, session_factory):
        await _unlock(session_factory, "u1", "first_application")
        await _unlock(session_factory, "u1", "early_bird")
        async with session_factory() as db:
            assert await ledger.unlocked_ids(db, "u1") == {"first_application", "early_bird"}
            rows = await ledger.list_unlocks(db, "u1")
        assert [r.achievement_id for r in rows] == ["first_application", "early_bird"]


class TestAggregationConsistency:

    @pytest.mark.parametrize("seed", range(5))
    async def test_recompute_matches_ledger_for_random_orderings(self, session_factory, seed):
        rng = random.Random(seed)
        ids = [d.id for d in DEFAULT_CATALOG]
        chosen = rng.sample(ids, k=rng.randint(1, len(ids)))
        attempts = chosen + rng.sample(chosen, k=len(chosen) // 2)
        rng.shuffle(attempts)

        await asyncio.gather(*(_unlock(session_factory, "u1", a) for a in attempts))

        async with session_factory() as db:
            state = await recompute(db, "u1")
            await db.commit()
            rows = await ledger.ledger_achievement_ids(db, "u1")

        assert sorted(rows) == sorted(chosen)
        assert state.total_xp == sum(DEFAULT_CATALOG.get(a).xp_reward for a in chosen)
        assert state.achievements_unlocked == len(chosen)


class TestDedupe:

    @pytest.fixture
    async def legacy_ledger(self, engine):
        """Replace the ledger with a pre-constraint table that allows duplicates."""
        async with engine.begin() as conn:
            await conn.execute(text("DROP TABLE user_achievements"))
            await conn.execute(text("""
                CREATE TABLE user_achievements (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id VARCHAR(64) NOT NULL,
                    achievement_id VARCHAR(64) NOT NULL,
                    unlocked_at DATETIME NOT NULL
                )
            """))
        return engine

    async def _seed_duplicates(self, session_factory):
        earliest = NOW - timedelta(days=3)
        async with session_factory() as db:
            await db.execute(insert(UnlockRecord), [
                {"user_id": "u1", "achievement_id": "first_application", "unlocked_at": NOW},
                {"user_id": "u1", "achievement_id": "first_application", "unlocked_at": earliest},
                {"user_id": "u1", "achievement_id": "first_application", "unlocked_at": NOW - timedelta(days=1)},
                {"user_id": "u1", "achievement_id": "ten_applications", "unlocked_at": NOW},
                {"user_id": "u2", "achievement_id": "first_application", "unlocked_at": NOW},
                {"user_id": "u2", "achievement_id": "first_application", "unlocked_at": NOW},
            ])
            await db.commit()
        return earliest

    async def test_keeps_earliest_row(self, legacy_ledger, session_factory):
        earliest = await self._seed_duplicates(session_factory)

        async with session_factory() as db:
            assert (await recompute(db, "u1")).total_xp == 55
            removed = await ledger.dedupe(db, "u1")
            state = await recompute(db, "u1")
            await db.commit()

        assert removed == 2
        assert await _row_count(session_factory, "u1", "first_application") == 1
        async with session_factory() as db:
            rows = await ledger.list_unlocks(db, "u1")
            stored = await load_progression(db, "u1")
        kept = next(r for r in rows if r.achievement_id == "first_application")
        assert kept.unlocked_at.replace(tzinfo=None) == earliest.replace(tzinfo=None)
        assert state.total_xp == 35
        assert state.achievements_unlocked == 2
        assert stored == state

    async def test_only_touches_the_given_user(self, legacy_ledger, session_factory):
        await self._seed_duplicates(session_factory)
        async with session_factory() as db:
            await ledger.dedupe(db, "u1")
            await db.commit()
        assert await _row_count(session_factory, "u2") == 2

    async def test_clean_ledger_is_a_no_op(self, session_factory):
        await _unlock(session_factory, "u1", "first_application")
        async with session_factory() as db:
            assert await ledger.dedupe(db, "u1") == 0
