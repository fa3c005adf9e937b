"""Level thresholds and computation.

A level spans a fixed band of XP_PER_LEVEL points and every five levels
share a title. These values MUST match the dashboard's level badge.
"""

from __future__ import annotations

XP_PER_LEVEL = 100
LEVELS_PER_TITLE = 5

LEVEL_TITLES: list[str] = [
    "Job Seeker",
    "Application Novice",
    "Career Explorer",
    "Job Hunter",
    "Application Expert",
    "Career Strategist",
    "Job Search Master",
    "Career Champion",
    "Application Legend",
    "Ultimate Job Seeker",
]


def level_for_xp(total_xp: int) -> int:
    """Level for a total XP value: floor(xp / 100) + 1."""
    if total_xp < 0:
        msg = f"total_xp must be non-negative, got {total_xp}"
        raise ValueError(msg)
    return total_xp // XP_PER_LEVEL + 1


def title_for_level(level: int) -> str:
    index = min((level - 1) // LEVELS_PER_TITLE, len(LEVEL_TITLES) - 1)
    return LEVEL_TITLES[max(index, 0)]


def compute_level(total_xp: int) -> dict:
    """Compute level info from total XP."""
    level = level_for_xp(total_xp)
    return {
        "level": level,
        "title": title_for_level(level),
        "xp_into_level": total_xp - (level - 1) * XP_PER_LEVEL,
        "xp_for_level": XP_PER_LEVEL,
        "next_level": level + 1,
        "next_title": title_for_level(level + 1),
    }
