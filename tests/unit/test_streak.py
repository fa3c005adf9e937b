"""Daily streak computation tests."""

from datetime import date, timedelta

import pytest

from applytrak.achievements.streak import StreakState, compute_streak

MON = date(2026, 3, 16)
TUE = MON + timedelta(days=1)
WED = MON + timedelta(days=2)


class TestCurrentStreak:
    """Current streak counts back from the most recent date."""

    def test_no_dates(self):
        assert compute_streak([]) == StreakState()

    def test_single_date(self):
        state = compute_streak([MON])
        assert state.daily_streak == 1
        assert state.last_activity_date == MON
        assert state.streak_start_date == MON

    def test_three_consecutive_days(self):
        state = compute_streak([MON, TUE, WED])
        assert state.daily_streak == 3
        assert state.streak_start_date == MON
        assert state.last_activity_date == WED

    def test_gap_counts_from_most_recent(self):
        """Mon, Wed with Tue missing: the streak is Wed alone."""
        state = compute_streak([MON, WED])
        assert state.daily_streak == 1
        assert state.streak_start_date == WED

    def test_input_order_does_not_matter(self):
        assert compute_streak([WED, MON, TUE]) == compute_streak([MON, TUE, WED])

    def test_same_day_duplicates_collapse(self):
        state = compute_streak([MON, MON, TUE, TUE, TUE])
        assert state.daily_streak == 2
        assert state.longest_streak == 2

    def test_month_boundary(self):
        state = compute_streak([date(2026, 2, 27), date(2026, 2, 28), date(2026, 3, 1)])
        assert state.daily_streak == 3


class TestLongestStreak:
    """Longest streak scans the whole history."""

    def test_longest_run_in_the_past(self):
        old_run = [date(2026, 1, 1) + timedelta(days=i) for i in range(5)]
        state = compute_streak([*old_run, MON, TUE])
        assert state.daily_streak == 2
        assert state.longest_streak == 5

    def test_longest_equals_current_when_only_run(self):
        state = compute_streak([MON, TUE, WED])
        assert state.longest_streak == 3

    @pytest.mark.parametrize("length", [1, 7, 30, 45])
    def test_unbroken_runs(self, length):
        dates = [MON - timedelta(days=i) for i in range(length)]
        state = compute_streak(dates)
        assert state.daily_streak == length
        assert state.longest_streak == length
