"""Achievement catalog: the static registry of every achievement definition.

The catalog is built once at import time and never mutated per user;
changing it is a deployment concern. Iteration order is
(category, tier, xp_reward), with definition order breaking ties.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum

from applytrak.achievements.errors import CatalogLookupError, InvalidRequirementError
from applytrak.achievements.facts import EARLY_BIRD_HOUR, NIGHT_OWL_HOUR, UserFacts
from applytrak.achievements.requirements import (
    ApplicationCountAtLeast,
    AttachmentCountAtLeast,
    AttachmentKind,
    EvaluationContext,
    GoalCompleted,
    GoalKind,
    InterviewCountAtLeast,
    NoteCountAtLeast,
    OfferCountAtLeast,
    RemoteCountAtLeast,
    Requirement,
    StreakDaysAtLeast,
    TargetCompanyCountAtLeast,
    TimeOfDayAfter,
    TimeOfDayBefore,
    UnlockedCountAtLeast,
)


class _Ranked(str, Enum):
    @property
    def rank(self) -> int:
        return list(type(self)).index(self)


class Category(_Ranked):
    MILESTONE = "milestone"
    STREAK = "streak"
    GOAL = "goal"
    TIME = "time"
    QUALITY = "quality"
    SPECIAL = "special"


class Tier(_Ranked):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"
    DIAMOND = "diamond"
    LEGENDARY = "legendary"


class Rarity(_Ranked):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


@dataclass(frozen=True)
class AchievementDefinition:
    """One catalog entry. Satisfied when every requirement holds."""

    id: str
    name: str
    description: str
    category: Category
    tier: Tier
    rarity: Rarity
    xp_reward: int
    requirements: tuple[Requirement, ...]
    icon: str = "Trophy"

    def __post_init__(self) -> None:
        if not self.id:
            msg = "Achievement id must not be empty"
            raise InvalidRequirementError(msg)
        if isinstance(self.xp_reward, bool) or not isinstance(self.xp_reward, int) or self.xp_reward < 0:
            msg = f"{self.id}: xp_reward must be a non-negative integer"
            raise InvalidRequirementError(msg)
        if not self.requirements:
            msg = f"{self.id}: at least one requirement is needed"
            raise InvalidRequirementError(msg)
        for requirement in self.requirements:
            if not isinstance(requirement, Requirement):
                msg = f"{self.id}: {requirement!r} is not a Requirement"
                raise InvalidRequirementError(msg)

    @property
    def sort_key(self) -> tuple[int, int, int]:
        return self.category.rank, self.tier.rank, self.xp_reward

    def is_satisfied(self, facts: UserFacts, ctx: EvaluationContext) -> bool:
        return all(requirement.is_met(facts, ctx) for requirement in self.requirements)

    def progress(self, facts: UserFacts, ctx: EvaluationContext) -> tuple[int, int]:
        """Progress of the least-complete requirement as (current, target)."""
        return min(
            (requirement.progress(facts, ctx) for requirement in self.requirements),
            key=lambda p: p[0] / p[1],
        )


class AchievementCatalog:
    """Read-only, ordered registry of achievement definitions."""

    def __init__(self, definitions: Iterable[AchievementDefinition]) -> None:
        ordered = sorted(definitions, key=lambda d: d.sort_key)
        by_id: dict[str, AchievementDefinition] = {}
        for definition in ordered:
            if definition.id in by_id:
                msg = f"Duplicate achievement id: {definition.id}"
                raise InvalidRequirementError(msg)
            by_id[definition.id] = definition
        self._ordered = tuple(ordered)
        self._by_id = by_id

    def get(self, achievement_id: str) -> AchievementDefinition:
        """Look up a definition.

        Raises:
            CatalogLookupError: If the id is not in the catalog.
        """
        try:
            return self._by_id[achievement_id]
        except KeyError:
            raise CatalogLookupError(achievement_id) from None

    def all(self) -> tuple[AchievementDefinition, ...]:
        return self._ordered

    @property
    def max_total_xp(self) -> int:
        """XP a user would hold with every achievement unlocked exactly once."""
        return sum(d.xp_reward for d in self._ordered)

    def __contains__(self, achievement_id: object) -> bool:
        return achievement_id in self._by_id

    def __iter__(self) -> Iterator[AchievementDefinition]:
        return iter(self._ordered)

    def __len__(self) -> int:
        return len(self._ordered)


def _milestone(id_: str, name: str, description: str, tier: Tier, rarity: Rarity, xp: int,
               requirement: Requirement, icon: str = "Target") -> AchievementDefinition:
    return AchievementDefinition(id_, name, description, Category.MILESTONE, tier, rarity, xp, (requirement,), icon)


ACHIEVEMENT_DEFINITIONS: tuple[AchievementDefinition, ...] = (
    # Milestones
    _milestone("first_application", "First Steps", "Submit your first job application",
               Tier.BRONZE, Rarity.COMMON, 10, ApplicationCountAtLeast(1)),
    _milestone("ten_applications", "Getting Started", "Submit 10 job applications",
               Tier.BRONZE, Rarity.COMMON, 25, ApplicationCountAtLeast(10)),
    _milestone("fifty_applications", "Job Hunter", "Submit 50 job applications",
               Tier.SILVER, Rarity.UNCOMMON, 50, ApplicationCountAtLeast(50)),
    _milestone("hundred_applications", "Application Master", "Submit 100 job applications",
               Tier.GOLD, Rarity.RARE, 100, ApplicationCountAtLeast(100)),
    _milestone("five_hundred_applications", "Job Search Legend", "Submit 500 job applications",
               Tier.PLATINUM, Rarity.EPIC, 250, ApplicationCountAtLeast(500)),
    _milestone("thousand_applications", "Legendary Job Seeker",
               "Submit 1000 job applications - The ultimate achievement!",
               Tier.LEGENDARY, Rarity.LEGENDARY, 1000, ApplicationCountAtLeast(1000), icon="Crown"),
    _milestone("first_interview", "First Interview", "Get your first job interview",
               Tier.SILVER, Rarity.UNCOMMON, 75, InterviewCountAtLeast(1), icon="Video"),
    _milestone("first_offer", "First Offer", "Receive your first job offer",
               Tier.GOLD, Rarity.RARE, 150, OfferCountAtLeast(1), icon="Award"),
    # Streaks
    AchievementDefinition("three_day_streak", "Getting Started", "Maintain a 3-day application streak",
                          Category.STREAK, Tier.BRONZE, Rarity.COMMON, 15, (StreakDaysAtLeast(3),), "Flame"),
    AchievementDefinition("week_streak", "Consistent", "Maintain a 7-day application streak",
                          Category.STREAK, Tier.SILVER, Rarity.UNCOMMON, 30, (StreakDaysAtLeast(7),), "Flame"),
    AchievementDefinition("month_streak", "Dedicated", "Maintain a 30-day application streak",
                          Category.STREAK, Tier.GOLD, Rarity.RARE, 75, (StreakDaysAtLeast(30),), "Flame"),
    # Goals
    AchievementDefinition("weekly_goal_achiever", "Weekly Warrior", "Complete your weekly goal",
                          Category.GOAL, Tier.BRONZE, Rarity.COMMON, 25,
                          (GoalCompleted(GoalKind.WEEKLY),), "Award"),
    AchievementDefinition("monthly_goal_achiever", "Monthly Crusher", "Complete your monthly goal",
                          Category.GOAL, Tier.SILVER, Rarity.UNCOMMON, 50,
                          (GoalCompleted(GoalKind.MONTHLY),), "Award"),
    AchievementDefinition("goal_overachiever", "Overachiever", "Exceed your weekly goal by 50%",
                          Category.GOAL, Tier.GOLD, Rarity.RARE, 75,
                          (GoalCompleted(GoalKind.WEEKLY_OVERACHIEVED),), "TrendingUp"),
    # Time of day
    AchievementDefinition("early_bird", "Early Bird", "Submit an application before 9 AM",
                          Category.TIME, Tier.BRONZE, Rarity.COMMON, 10,
                          (TimeOfDayBefore(EARLY_BIRD_HOUR),), "Sunrise"),
    AchievementDefinition("night_owl", "Night Owl", "Submit an application after 8 PM",
                          Category.TIME, Tier.BRONZE, Rarity.COMMON, 10,
                          (TimeOfDayAfter(NIGHT_OWL_HOUR),), "Moon"),
    # Quality
    AchievementDefinition("note_taker", "Note Taker", "Add notes to 10 applications",
                          Category.QUALITY, Tier.BRONZE, Rarity.COMMON, 30, (NoteCountAtLeast(10),), "FileText"),
    AchievementDefinition("remote_seeker", "Remote Seeker", "Apply to 10 remote positions",
                          Category.QUALITY, Tier.SILVER, Rarity.UNCOMMON, 25, (RemoteCountAtLeast(10),), "Home"),
    AchievementDefinition("cover_letter_pro", "Cover Letter Pro",
                          "Upload cover letter attachments to 10 applications",
                          Category.QUALITY, Tier.SILVER, Rarity.UNCOMMON, 30,
                          (AttachmentCountAtLeast(10, AttachmentKind.COVER_LETTER),), "FileText"),
    AchievementDefinition("resume_optimizer", "Resume Optimizer", "Upload resume attachments to 10 applications",
                          Category.QUALITY, Tier.GOLD, Rarity.RARE, 40,
                          (AttachmentCountAtLeast(10, AttachmentKind.RESUME),), "FileEdit"),
    # Special
    AchievementDefinition("faang_hunter", "FAANG Hunter", "Apply to 5 FAANG companies",
                          Category.SPECIAL, Tier.GOLD, Rarity.RARE, 100, (TargetCompanyCountAtLeast(5),)),
    AchievementDefinition("achievement_collector", "Achievement Collector", "Unlock 5 achievements",
                          Category.SPECIAL, Tier.PLATINUM, Rarity.EPIC, 150, (UnlockedCountAtLeast(5),)),
)

DEFAULT_CATALOG = AchievementCatalog(ACHIEVEMENT_DEFINITIONS)
