"""Requirement variants, the closed set of conditions an achievement can demand.

Each variant is a frozen dataclass that carries its own pure predicate
(``is_met``) and progress function. Variants register themselves by
``tag`` so serialized requirements are parsed without a conditional
chain; the evaluator never branches on achievement ids.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from enum import Enum
from typing import Any, ClassVar

from applytrak.achievements.errors import InvalidRequirementError
from applytrak.achievements.facts import UserFacts


class AttachmentKind(str, Enum):
    COVER_LETTER = "cover_letter"
    RESUME = "resume"


class GoalKind(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    WEEKLY_OVERACHIEVED = "weekly_overachieved"


@dataclass(frozen=True)
class EvaluationContext:
    """Per-definition evaluation input that is not a user fact."""

    unlocked_count: int = 0


_REGISTRY: dict[str, type[Requirement]] = {}


@dataclass(frozen=True)
class Requirement:
    """Base class for all requirement variants."""

    tag: ClassVar[str] = ""

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if not cls.tag:
            msg = f"{cls.__name__} must declare a tag"
            raise TypeError(msg)
        if cls.tag in _REGISTRY:
            msg = f"Duplicate requirement tag: {cls.tag}"
            raise TypeError(msg)
        _REGISTRY[cls.tag] = cls

    def is_met(self, facts: UserFacts, ctx: EvaluationContext) -> bool:
        current, target = self.progress(facts, ctx)
        return current >= target

    def progress(self, facts: UserFacts, ctx: EvaluationContext) -> tuple[int, int]:
        """Return (current, target), with current capped at target."""
        raise NotImplementedError

    def to_dict(self) -> dict[str, Any]:
        data = {"type": self.tag}
        for key, value in asdict(self).items():
            data[key] = value.value if isinstance(value, Enum) else value
        return data


@dataclass(frozen=True)
class _CountAtLeast(Requirement):
    """Shared shape for "fact >= count" variants."""

    tag: ClassVar[str] = "_count"
    count: int = 1

    def __post_init__(self) -> None:
        if isinstance(self.count, bool) or not isinstance(self.count, int) or self.count < 1:
            msg = f"{type(self).__name__}.count must be a positive integer, got {self.count!r}"
            raise InvalidRequirementError(msg)

    def current(self, facts: UserFacts, ctx: EvaluationContext) -> int:
        raise NotImplementedError

    def progress(self, facts: UserFacts, ctx: EvaluationContext) -> tuple[int, int]:
        return min(self.current(facts, ctx), self.count), self.count


# _CountAtLeast is abstract; keep its placeholder tag out of the registry.
_REGISTRY.pop(_CountAtLeast.tag)


@dataclass(frozen=True)
class ApplicationCountAtLeast(_CountAtLeast):
    tag: ClassVar[str] = "application_count"

    def current(self, facts: UserFacts, ctx: EvaluationContext) -> int:
        return facts.application_count


@dataclass(frozen=True)
class InterviewCountAtLeast(_CountAtLeast):
    tag: ClassVar[str] = "interview_count"

    def current(self, facts: UserFacts, ctx: EvaluationContext) -> int:
        return facts.interview_count


@dataclass(frozen=True)
class OfferCountAtLeast(_CountAtLeast):
    tag: ClassVar[str] = "offer_count"

    def current(self, facts: UserFacts, ctx: EvaluationContext) -> int:
        return facts.offer_count


@dataclass(frozen=True)
class RemoteCountAtLeast(_CountAtLeast):
    tag: ClassVar[str] = "remote_count"

    def current(self, facts: UserFacts, ctx: EvaluationContext) -> int:
        return facts.remote_count


@dataclass(frozen=True)
class NoteCountAtLeast(_CountAtLeast):
    tag: ClassVar[str] = "note_count"

    def current(self, facts: UserFacts, ctx: EvaluationContext) -> int:
        return facts.note_count


@dataclass(frozen=True)
class StreakDaysAtLeast(_CountAtLeast):
    tag: ClassVar[str] = "streak_days"

    def current(self, facts: UserFacts, ctx: EvaluationContext) -> int:
        return facts.daily_streak


@dataclass(frozen=True)
class TargetCompanyCountAtLeast(_CountAtLeast):
    tag: ClassVar[str] = "target_company_count"

    def current(self, facts: UserFacts, ctx: EvaluationContext) -> int:
        return facts.target_company_count


@dataclass(frozen=True)
class UnlockedCountAtLeast(_CountAtLeast):
    tag: ClassVar[str] = "unlocked_count"

    def current(self, facts: UserFacts, ctx: EvaluationContext) -> int:
        return ctx.unlocked_count


@dataclass(frozen=True)
class AttachmentCountAtLeast(_CountAtLeast):
    tag: ClassVar[str] = "attachment_count"
    kind: AttachmentKind = AttachmentKind.COVER_LETTER

    def __post_init__(self) -> None:
        super().__post_init__()
        object.__setattr__(self, "kind", _coerce(AttachmentKind, self.kind))

    def current(self, facts: UserFacts, ctx: EvaluationContext) -> int:
        if self.kind is AttachmentKind.COVER_LETTER:
            return facts.cover_letter_count
        return facts.resume_count


@dataclass(frozen=True)
class GoalCompleted(Requirement):
    tag: ClassVar[str] = "goal_completed"
    kind: GoalKind = GoalKind.WEEKLY

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", _coerce(GoalKind, self.kind))

    def progress(self, facts: UserFacts, ctx: EvaluationContext) -> tuple[int, int]:
        flags = {
            GoalKind.WEEKLY: facts.weekly_goal_met,
            GoalKind.MONTHLY: facts.monthly_goal_met,
            GoalKind.WEEKLY_OVERACHIEVED: facts.weekly_overachieved,
        }
        return int(flags[self.kind]), 1


@dataclass(frozen=True)
class _TimeOfDay(Requirement):
    tag: ClassVar[str] = "_time_of_day"
    hour: int = 0

    def __post_init__(self) -> None:
        if isinstance(self.hour, bool) or not isinstance(self.hour, int) or not 0 <= self.hour <= 24:
            msg = f"{type(self).__name__}.hour must be within 0..24, got {self.hour!r}"
            raise InvalidRequirementError(msg)

    def matches(self, hour: int) -> bool:
        raise NotImplementedError

    def progress(self, facts: UserFacts, ctx: EvaluationContext) -> tuple[int, int]:
        return int(any(self.matches(h) for h in facts.application_hours)), 1


_REGISTRY.pop(_TimeOfDay.tag)


@dataclass(frozen=True)
class TimeOfDayBefore(_TimeOfDay):
    """At least one application made before ``hour`` (local time)."""

    tag: ClassVar[str] = "time_before"

    def matches(self, hour: int) -> bool:
        return hour < self.hour


@dataclass(frozen=True)
class TimeOfDayAfter(_TimeOfDay):
    """At least one application made at or after ``hour`` (local time)."""

    tag: ClassVar[str] = "time_after"

    def matches(self, hour: int) -> bool:
        return hour >= self.hour


def _coerce(enum_cls: type[Enum], value: Any) -> Any:
    try:
        return enum_cls(value)
    except ValueError:
        msg = f"Invalid {enum_cls.__name__}: {value!r}"
        raise InvalidRequirementError(msg) from None


def requirement_types() -> dict[str, type[Requirement]]:
    """All concrete requirement variants by tag."""
    return dict(_REGISTRY)


def requirement_from_dict(data: dict[str, Any]) -> Requirement:
    """Parse a tagged requirement dict, e.g. ``{"type": "streak_days", "count": 7}``."""
    payload = dict(data)
    tag = payload.pop("type", None)
    cls = _REGISTRY.get(tag) if isinstance(tag, str) else None
    if cls is None:
        msg = f"Unknown requirement type: {tag!r}"
        raise InvalidRequirementError(msg)

    allowed = {f.name for f in fields(cls)}
    unknown = set(payload) - allowed
    if unknown:
        msg = f"Unexpected fields for {tag}: {sorted(unknown)}"
        raise InvalidRequirementError(msg)
    try:
        return cls(**payload)
    except TypeError as exc:
        raise InvalidRequirementError(str(exc)) from exc
