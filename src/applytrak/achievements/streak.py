"""Daily streak computation and persistence.

The streak is always recomputed from the full, de-duplicated set of
activity dates; stored values are never patched incrementally.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from applytrak.db.models import UserStreak
from applytrak.db.upsert import dialect_insert

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class StreakState:
    """Derived streak values for one user."""

    daily_streak: int = 0
    longest_streak: int = 0
    last_activity_date: date | None = None
    streak_start_date: date | None = None


def compute_streak(dates: Iterable[date]) -> StreakState:
    """Compute current and longest streak from activity dates.

    The current streak is the run of consecutive calendar days ending at
    the most recent date. The longest streak is the longest such run
    anywhere in the history. Duplicate dates collapse to one.
    """
    ordered = sorted(set(dates), reverse=True)
    if not ordered:
        return StreakState()

    current = 1
    start = ordered[0]
    for newer, older in zip(ordered, ordered[1:]):
        if newer - older != ONE_DAY:
            break
        current += 1
        start = older

    longest = run = 1
    for newer, older in zip(ordered, ordered[1:]):
        if newer - older == ONE_DAY:
            run += 1
            longest = max(longest, run)
        else:
            run = 1

    return StreakState(
        daily_streak=current,
        longest_streak=longest,
        last_activity_date=ordered[0],
        streak_start_date=start,
    )


async def load_streak(db: AsyncSession, user_id: str) -> StreakState:
    """Return the stored streak for a user (zeros if never computed)."""
    result = await db.execute(select(UserStreak).where(UserStreak.user_id == user_id))
    row = result.scalar_one_or_none()
    if row is None:
        return StreakState()
    return StreakState(
        daily_streak=row.daily_streak,
        longest_streak=row.longest_streak,
        last_activity_date=row.last_activity_date,
        streak_start_date=row.streak_start_date,
    )


async def save_streak(
    db: AsyncSession,
    user_id: str,
    state: StreakState,
    now: datetime | None = None,
) -> None:
    """Overwrite the stored streak for a user with a freshly computed state."""
    if now is None:
        now = datetime.now(timezone.utc)

    values = {
        "daily_streak": state.daily_streak,
        "longest_streak": state.longest_streak,
        "last_activity_date": state.last_activity_date,
        "streak_start_date": state.streak_start_date,
        "updated_at": now,
    }
    stmt = dialect_insert(db, UserStreak).values(user_id=user_id, **values)
    stmt = stmt.on_conflict_do_update(index_elements=[UserStreak.user_id], set_=values)
    await db.execute(stmt)
