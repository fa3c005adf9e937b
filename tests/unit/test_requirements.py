"""Requirement variant tests: predicates, progress and serialization."""

import pytest

from applytrak.achievements.errors import InvalidRequirementError
from applytrak.achievements.facts import UserFacts
from applytrak.achievements.requirements import (
    ApplicationCountAtLeast,
    AttachmentCountAtLeast,
    AttachmentKind,
    EvaluationContext,
    GoalCompleted,
    GoalKind,
    StreakDaysAtLeast,
    TimeOfDayAfter,
    TimeOfDayBefore,
    UnlockedCountAtLeast,
    requirement_from_dict,
    requirement_types,
)

CTX = EvaluationContext()


class TestPredicates:

    def test_count_threshold_is_inclusive(self):
        req = ApplicationCountAtLeast(10)
        assert not req.is_met(UserFacts(application_count=9), CTX)
        assert req.is_met(UserFacts(application_count=10), CTX)

    def test_attachment_kind_selects_fact(self):
        facts = UserFacts(cover_letter_count=10, resume_count=3)
        assert AttachmentCountAtLeast(10, AttachmentKind.COVER_LETTER).is_met(facts, CTX)
        assert not AttachmentCountAtLeast(10, AttachmentKind.RESUME).is_met(facts, CTX)

    def test_goal_completed(self):
        facts = UserFacts(weekly_goal_met=True)
        assert GoalCompleted(GoalKind.WEEKLY).is_met(facts, CTX)
        assert not GoalCompleted(GoalKind.MONTHLY).is_met(facts, CTX)
        assert not GoalCompleted(GoalKind.WEEKLY_OVERACHIEVED).is_met(facts, CTX)

    def test_time_of_day_boundaries(self):
        early = TimeOfDayBefore(9)
        late = TimeOfDayAfter(20)
        assert early.is_met(UserFacts(application_hours=frozenset({8})), CTX)
        assert not early.is_met(UserFacts(application_hours=frozenset({9})), CTX)
        assert late.is_met(UserFacts(application_hours=frozenset({20})), CTX)
        assert not late.is_met(UserFacts(application_hours=frozenset({19})), CTX)

    def test_unlocked_count_reads_context(self):
        req = UnlockedCountAtLeast(5)
        assert not req.is_met(UserFacts(), EvaluationContext(unlocked_count=4))
        assert req.is_met(UserFacts(), EvaluationContext(unlocked_count=5))

    def test_progress_is_capped_at_target(self):
        assert StreakDaysAtLeast(7).progress(UserFacts(daily_streak=3), CTX) == (3, 7)
        assert StreakDaysAtLeast(7).progress(UserFacts(daily_streak=40), CTX) == (7, 7)


class TestValidation:

    @pytest.mark.parametrize("count", [0, -1, True, 2.5])
    def test_bad_counts_rejected(self, count):
        with pytest.raises(InvalidRequirementError):
            ApplicationCountAtLeast(count)

    @pytest.mark.parametrize("hour", [-1, 25])
    def test_bad_hours_rejected(self, hour):
        with pytest.raises(InvalidRequirementError):
            TimeOfDayBefore(hour)

    def test_unknown_kind_rejected(self):
        with pytest.raises(InvalidRequirementError):
            AttachmentCountAtLeast(count=1, kind="portfolio")


class TestSerialization:

    def test_registry_holds_concrete_variants_only(self):
        assert set(requirement_types()) == {
            "application_count",
            "interview_count",
            "offer_count",
            "remote_count",
            "note_count",
            "streak_days",
            "target_company_count",
            "unlocked_count",
            "attachment_count",
            "goal_completed",
            "time_before",
            "time_after",
        }

    def test_to_dict_unwraps_enums(self):
        req = AttachmentCountAtLeast(10, AttachmentKind.RESUME)
        assert req.to_dict() == {"type": "attachment_count", "count": 10, "kind": "resume"}

    def test_from_dict_parses_tagged_payload(self):
        req = requirement_from_dict({"type": "goal_completed", "kind": "monthly"})
        assert req == GoalCompleted(GoalKind.MONTHLY)

    def test_from_dict_inverts_to_dict_for_catalog_shapes(self):
        for req in (StreakDaysAtLeast(30), TimeOfDayAfter(20), AttachmentCountAtLeast(10, AttachmentKind.COVER_LETTER)):
            assert requirement_from_dict(req.to_dict()) == req

    def test_unknown_type_rejected(self):
        with pytest.raises(InvalidRequirementError, match="Unknown requirement type"):
            requirement_from_dict({"type": "applications", "value": 5})

    def test_missing_type_rejected(self):
        with pytest.raises(InvalidRequirementError):
            requirement_from_dict({"count": 5})

    def test_unexpected_field_rejected(self):
        with pytest.raises(InvalidRequirementError, match="Unexpected fields"):
            requirement_from_dict({"type": "streak_days", "count": 3, "value": 3})
