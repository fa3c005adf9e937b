"""Recomputation orchestrator.

One cycle per trigger:

    IDLE -> COLLECTING_FACTS -> EVALUATING -> UNLOCKING -> AGGREGATING -> IDLE

Cycles are at-least-once and may overlap for the same user. Nothing in
this module holds a lock; the ledger's unique constraint decides which
concurrent cycle inserts an unlock, and every later attempt observes
``ALREADY_UNLOCKED``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from applytrak.achievements import ledger
from applytrak.achievements.catalog import DEFAULT_CATALOG, AchievementCatalog
from applytrak.achievements.errors import FactCollectionError
from applytrak.achievements.evaluator import achievement_progress, evaluate
from applytrak.achievements.facts import FactSource, collect_facts
from applytrak.achievements.notifier import UnlockDispatcher, UnlockEvent
from applytrak.achievements.progression import ProgressionState, recompute, refresh
from applytrak.achievements.requirements import EvaluationContext
from applytrak.achievements.streak import StreakState, save_streak
from applytrak.config import Settings

logger = structlog.get_logger()


class CycleState(str, Enum):
    IDLE = "idle"
    COLLECTING_FACTS = "collecting_facts"
    EVALUATING = "evaluating"
    UNLOCKING = "unlocking"
    AGGREGATING = "aggregating"


class Trigger(str, Enum):
    APPLICATION_CREATED = "application_created"
    APPLICATION_UPDATED = "application_updated"
    ATTACHMENT_ADDED = "attachment_added"
    NOTE_ADDED = "note_added"
    GOAL_COMPLETED = "goal_completed"
    DAILY_ROLLOVER = "daily_rollover"
    MANUAL = "manual"


@dataclass(frozen=True)
class CycleResult:
    """Outcome of one cycle. ``unlocked`` holds only rows this cycle inserted."""

    user_id: str
    trigger: Trigger
    unlocked: tuple[UnlockEvent, ...] = ()
    failed: tuple[str, ...] = ()
    progression: ProgressionState | None = None
    streak: StreakState = field(default_factory=StreakState)

    @property
    def unlocked_ids(self) -> list[str]:
        return [event.achievement_id for event in self.unlocked]

    @property
    def xp_awarded(self) -> int:
        return sum(event.xp_reward for event in self.unlocked)


@dataclass(frozen=True)
class DedupeResult:
    user_id: str
    removed: int
    progression: ProgressionState


@dataclass(frozen=True)
class RecomputeResult:
    user_id: str
    progression: ProgressionState
    streak: StreakState


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecomputationOrchestrator:
    """Runs recomputation cycles and the maintenance repairs for users."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        fact_source: FactSource,
        *,
        catalog: AchievementCatalog = DEFAULT_CATALOG,
        dispatcher: UnlockDispatcher | None = None,
        tz: str = "UTC",
        target_companies: Iterable[str] = (),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._fact_source = fact_source
        self._catalog = catalog
        self._dispatcher = dispatcher
        self._tz = ZoneInfo(tz)
        self._target_companies = tuple(target_companies)
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        fact_source: FactSource,
        *,
        dispatcher: UnlockDispatcher | None = None,
        catalog: AchievementCatalog = DEFAULT_CATALOG,
    ) -> RecomputationOrchestrator:
        return cls(
            session_factory,
            fact_source,
            catalog=catalog,
            dispatcher=dispatcher,
            tz=settings.activity_timezone,
            target_companies=settings.target_companies,
        )

    @property
    def catalog(self) -> AchievementCatalog:
        return self._catalog

    def _transition(self, user_id: str, state: CycleState) -> None:
        logger.debug("cycle_state", user_id=user_id, state=state.value)

    async def run_cycle(self, user_id: str, trigger: Trigger = Trigger.MANUAL) -> CycleResult:
        """Run one full cycle and return the unlocks it actually inserted.

        Raises:
            FactCollectionError: If facts or the ledger cannot be read.
                Nothing has been written when this is raised.
        """
        now = self._clock()

        self._transition(user_id, CycleState.COLLECTING_FACTS)
        collected = await collect_facts(
            self._fact_source,
            user_id,
            now=now,
            tz=self._tz,
            target_companies=self._target_companies,
        )

        self._transition(user_id, CycleState.EVALUATING)
        try:
            async with self._session_factory() as db:
                already_unlocked = await ledger.unlocked_ids(db, user_id)
        except SQLAlchemyError as exc:
            logger.warning("fact_collection_failed", user_id=user_id, error=str(exc))
            raise FactCollectionError(user_id, "unlock ledger unavailable") from exc
        eligible = evaluate(collected.facts, already_unlocked, self._catalog)

        self._transition(user_id, CycleState.UNLOCKING)
        inserted: list[UnlockEvent] = []
        failed: list[str] = []
        # Catalog ids known to be in the ledger, for unlock-count requirements.
        recorded = {a for a in already_unlocked if a in self._catalog}
        for achievement_id in eligible:
            definition = self._catalog.get(achievement_id)
            if not definition.is_satisfied(collected.facts, EvaluationContext(unlocked_count=len(recorded))):
                # Counted on an earlier unlock in this pass that did not land.
                logger.info("achievement_deferred", user_id=user_id, achievement_id=achievement_id)
                continue
            try:
                async with self._session_factory() as db:
                    outcome = await ledger.try_unlock(db, user_id, achievement_id, now)
                    await db.commit()
            except Exception:
                logger.exception("achievement_unlock_failed", user_id=user_id, achievement_id=achievement_id)
                failed.append(achievement_id)
                continue

            recorded.add(achievement_id)
            if outcome is ledger.UnlockOutcome.INSERTED:
                event = UnlockEvent(
                    user_id=user_id,
                    achievement_id=achievement_id,
                    xp_reward=definition.xp_reward,
                    unlocked_at=now,
                )
                inserted.append(event)
                logger.info(
                    "achievement_unlocked",
                    user_id=user_id,
                    achievement_id=achievement_id,
                    xp_reward=event.xp_reward,
                    trigger=trigger.value,
                )

        self._transition(user_id, CycleState.AGGREGATING)
        progression = await self._aggregate(user_id, collected.streak, [e.achievement_id for e in inserted], now)

        self._transition(user_id, CycleState.IDLE)
        if inserted and self._dispatcher is not None:
            try:
                await self._dispatcher.dispatch(inserted)
            except Exception:
                logger.warning("unlock_dispatch_failed", user_id=user_id, exc_info=True)

        return CycleResult(
            user_id=user_id,
            trigger=trigger,
            unlocked=tuple(inserted),
            failed=tuple(failed),
            progression=progression,
            streak=collected.streak,
        )

    async def _aggregate(
        self,
        user_id: str,
        streak: StreakState,
        inserted_ids: list[str],
        now: datetime,
    ) -> ProgressionState | None:
        # Unlocks are already committed; a failure here is corrected by the next
        # cycle and must not stop their events from being dispatched.
        try:
            async with self._session_factory() as db:
                await save_streak(db, user_id, streak, now)
                progression = await refresh(db, user_id, inserted_ids, self._catalog)
                await db.commit()
        except Exception:
            logger.exception("aggregation_failed", user_id=user_id)
            return None
        return progression

    async def progress(self, user_id: str, already_unlocked: Iterable[str]) -> dict[str, tuple[int, int]]:
        """(current, target) per catalog entry from fresh facts. Read-only."""
        collected = await collect_facts(
            self._fact_source,
            user_id,
            now=self._clock(),
            tz=self._tz,
            target_companies=self._target_companies,
        )
        return achievement_progress(collected.facts, set(already_unlocked), self._catalog)

    async def dedupe(self, user_id: str) -> DedupeResult:
        """Remove duplicate ledger rows for a user and rebuild progression."""
        async with self._session_factory() as db:
            removed = await ledger.dedupe(db, user_id)
            progression = await recompute(db, user_id, self._catalog)
            await db.commit()
        return DedupeResult(user_id=user_id, removed=removed, progression=progression)

    async def recompute_all(self, user_id: str) -> RecomputeResult:
        """Rebuild the stored streak and progression for a user from scratch.

        No unlocks are attempted.

        Raises:
            FactCollectionError: If the application records cannot be read.
        """
        collected = await collect_facts(
            self._fact_source,
            user_id,
            now=self._clock(),
            tz=self._tz,
            target_companies=self._target_companies,
        )
        async with self._session_factory() as db:
            await save_streak(db, user_id, collected.streak, self._clock())
            progression = await recompute(db, user_id, self._catalog)
            await db.commit()
        return RecomputeResult(user_id=user_id, progression=progression, streak=collected.streak)
