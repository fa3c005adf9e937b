"""Level computation tests: 100 XP per level, uncapped."""

import pytest

from applytrak.achievements.levels import LEVEL_TITLES, XP_PER_LEVEL, compute_level, level_for_xp


class TestLevelFormula:

    @pytest.mark.parametrize(
        "xp,expected_level",
        [
            (0, 1),
            (99, 1),
            (100, 2),
            (250, 3),
            (2325, 24),
            (100_000, 1001),
        ],
    )
    def test_level_for_xp(self, xp, expected_level):
        assert level_for_xp(xp) == expected_level

    def test_negative_xp_rejected(self):
        with pytest.raises(ValueError):
            level_for_xp(-1)


class TestComputeLevel:

    def test_level_1_at_zero_xp(self):
        result = compute_level(0)
        assert result["level"] == 1
        assert result["title"] == "Job Seeker"
        assert result["xp_into_level"] == 0
        assert result["xp_for_level"] == XP_PER_LEVEL

    def test_xp_into_level(self):
        result = compute_level(250)
        assert result["level"] == 3
        assert result["xp_into_level"] == 50
        assert result["next_level"] == 4

    def test_title_changes_every_five_levels(self):
        assert compute_level(400)["title"] == "Job Seeker"  # level 5
        assert compute_level(500)["title"] == "Application Novice"  # level 6
        assert compute_level(499)["next_title"] == "Application Novice"

    def test_title_caps_at_last_band(self):
        assert compute_level(1_000_000)["title"] == LEVEL_TITLES[-1]
        assert compute_level(1_000_000)["next_title"] == LEVEL_TITLES[-1]
