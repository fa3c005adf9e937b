"""User fact derivation and collection.

Facts are recomputed from the authoritative application and goal records
on every cycle; nothing here reads from a cache.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Protocol
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from applytrak.achievements.errors import FactCollectionError
from applytrak.achievements.streak import StreakState, compute_streak
from applytrak.db.models import ApplicationRow, UserGoals

logger = structlog.get_logger()

INTERVIEW_STATUS_MARKERS = ("interview", "phone", "video", "onsite")
OFFER_STATUS_MARKERS = ("offer", "accepted")
COVER_LETTER_MARKERS = ("cover", "letter", "cl_")
RESUME_MARKERS = ("resume", "cv")

EARLY_BIRD_HOUR = 9
NIGHT_OWL_HOUR = 20
OVERACHIEVE_RATIO = 1.5


@dataclass(frozen=True)
class ApplicationRecord:
    """One job application as exposed by the application store."""

    applied_at: datetime
    status: str = "Applied"
    type: str = "Onsite"
    has_cover_letter_attachment: bool = False
    has_resume_attachment: bool = False
    has_notes: bool = False
    company_name: str = ""


@dataclass(frozen=True)
class GoalStatus:
    """Goal completion flags as exposed by the goal store."""

    weekly_goal_met: bool = False
    monthly_goal_met: bool = False
    weekly_overachieved: bool = False


@dataclass(frozen=True)
class UserFacts:
    """Numeric and boolean summary of a user's activity, consumed by the evaluator."""

    application_count: int = 0
    interview_count: int = 0
    offer_count: int = 0
    remote_count: int = 0
    cover_letter_count: int = 0
    resume_count: int = 0
    note_count: int = 0
    target_company_count: int = 0
    daily_streak: int = 0
    weekly_goal_met: bool = False
    monthly_goal_met: bool = False
    weekly_overachieved: bool = False
    # Distinct local hours (reference timezone) at which applications were made.
    application_hours: frozenset[int] = frozenset()

    @property
    def early_bird_application(self) -> bool:
        return any(hour < EARLY_BIRD_HOUR for hour in self.application_hours)

    @property
    def night_owl_application(self) -> bool:
        return any(hour >= NIGHT_OWL_HOUR for hour in self.application_hours)


@dataclass(frozen=True)
class CollectedFacts:
    """Everything a cycle derives from the raw records."""

    facts: UserFacts
    streak: StreakState


# ---------------------------------------------------------------------------
# Pure derivation
# ---------------------------------------------------------------------------


def _contains_any(value: str, markers: Iterable[str]) -> bool:
    lowered = value.lower()
    return any(marker in lowered for marker in markers)


def classify_attachments(file_names: Iterable[str]) -> tuple[bool, bool]:
    """Return (has_cover_letter, has_resume) for a list of attachment file names."""
    names = [name for name in file_names if name]
    has_cover_letter = any(_contains_any(name, COVER_LETTER_MARKERS) for name in names)
    has_resume = any(_contains_any(name, RESUME_MARKERS) for name in names)
    return has_cover_letter, has_resume


def to_local(dt: datetime, tz: ZoneInfo) -> datetime:
    """Convert to the reference timezone. Naive datetimes are taken as UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(tz)


def activity_dates(records: Iterable[ApplicationRecord], tz: ZoneInfo) -> list[date]:
    """Distinct local calendar dates with at least one application, newest first."""
    return sorted({to_local(r.applied_at, tz).date() for r in records}, reverse=True)


def derive_facts(
    records: Sequence[ApplicationRecord],
    goals: GoalStatus,
    *,
    daily_streak: int,
    tz: ZoneInfo,
    target_companies: Iterable[str] = (),
) -> UserFacts:
    """Fold application records and goal flags into UserFacts."""
    targets = [t.lower() for t in target_companies if t]
    return UserFacts(
        application_count=len(records),
        interview_count=sum(1 for r in records if _contains_any(r.status, INTERVIEW_STATUS_MARKERS)),
        offer_count=sum(1 for r in records if _contains_any(r.status, OFFER_STATUS_MARKERS)),
        remote_count=sum(1 for r in records if r.type.strip().lower() == "remote"),
        cover_letter_count=sum(1 for r in records if r.has_cover_letter_attachment),
        resume_count=sum(1 for r in records if r.has_resume_attachment),
        note_count=sum(1 for r in records if r.has_notes),
        target_company_count=sum(1 for r in records if targets and _contains_any(r.company_name, targets)),
        daily_streak=daily_streak,
        weekly_goal_met=goals.weekly_goal_met,
        monthly_goal_met=goals.monthly_goal_met,
        weekly_overachieved=goals.weekly_overachieved,
        application_hours=frozenset(to_local(r.applied_at, tz).hour for r in records),
    )


def period_starts(now: datetime, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """UTC instants at which the current ISO week (Monday) and month begin locally."""
    today = to_local(now, tz).date()
    monday = today - timedelta(days=today.weekday())
    first_of_month = today.replace(day=1)
    week_start = datetime.combine(monday, time.min, tzinfo=tz).astimezone(timezone.utc)
    month_start = datetime.combine(first_of_month, time.min, tzinfo=tz).astimezone(timezone.utc)
    return week_start, month_start


def goal_status_from_counts(
    weekly_count: int,
    monthly_count: int,
    weekly_goal: int,
    monthly_goal: int,
) -> GoalStatus:
    """Evaluate goal flags. A target of zero or less is treated as unset."""
    weekly_met = weekly_goal > 0 and weekly_count >= weekly_goal
    return GoalStatus(
        weekly_goal_met=weekly_met,
        monthly_goal_met=monthly_goal > 0 and monthly_count >= monthly_goal,
        weekly_overachieved=weekly_met and weekly_count >= weekly_goal * OVERACHIEVE_RATIO,
    )


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


class FactSource(Protocol):
    """Read contract the engine needs from the application and goal stores."""

    async def application_records(self, user_id: str) -> Sequence[ApplicationRecord]: ...

    async def goal_status(self, user_id: str, now: datetime) -> GoalStatus: ...


def record_from_row(row: ApplicationRow) -> ApplicationRecord:
    """Build an ApplicationRecord from a stored application."""
    has_cover_letter, has_resume = classify_attachments(row.attachments or [])
    return ApplicationRecord(
        applied_at=row.date_applied,
        status=row.status or "",
        type=row.type or "",
        has_cover_letter_attachment=has_cover_letter,
        has_resume_attachment=has_resume,
        has_notes=bool(row.notes and row.notes.strip()),
        company_name=row.company or "",
    )


class SqlFactSource:
    """FactSource backed by the applications and user_goals tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], *, tz: str = "UTC") -> None:
        self._session_factory = session_factory
        self._tz = ZoneInfo(tz)

    async def application_records(self, user_id: str) -> list[ApplicationRecord]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(ApplicationRow)
                .where(ApplicationRow.user_id == user_id)
                .order_by(ApplicationRow.date_applied, ApplicationRow.id)
            )
            return [record_from_row(row) for row in result.scalars()]

    async def goal_status(self, user_id: str, now: datetime) -> GoalStatus:
        week_start, month_start = period_starts(now, self._tz)
        async with self._session_factory() as db:
            goals = await db.get(UserGoals, user_id)
            if goals is None:
                return GoalStatus()

            weekly = await db.scalar(
                select(func.count(ApplicationRow.id)).where(
                    ApplicationRow.user_id == user_id,
                    ApplicationRow.date_applied >= week_start,
                )
            )
            monthly = await db.scalar(
                select(func.count(ApplicationRow.id)).where(
                    ApplicationRow.user_id == user_id,
                    ApplicationRow.date_applied >= month_start,
                )
            )
        return goal_status_from_counts(weekly or 0, monthly or 0, goals.weekly_goal, goals.monthly_goal)

    async def active_user_ids(self) -> list[str]:
        """Users with at least one application; the daily rollover visits each."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(ApplicationRow.user_id).distinct().order_by(ApplicationRow.user_id)
            )
            return list(result.scalars())


async def collect_facts(
    source: FactSource,
    user_id: str,
    *,
    now: datetime,
    tz: ZoneInfo,
    target_companies: Iterable[str] = (),
) -> CollectedFacts:
    """Read fresh records for a user and derive facts and streak.

    Raises:
        FactCollectionError: If either store cannot be read.
    """
    try:
        records = list(await source.application_records(user_id))
        goals = await source.goal_status(user_id, now)
    except FactCollectionError:
        raise
    except Exception as exc:
        logger.warning("fact_collection_failed", user_id=user_id, error=str(exc))
        raise FactCollectionError(user_id, str(exc)) from exc

    streak = compute_streak(activity_dates(records, tz))
    facts = derive_facts(
        records,
        goals,
        daily_streak=streak.daily_streak,
        tz=tz,
        target_companies=target_companies,
    )
    return CollectedFacts(facts=facts, streak=streak)
