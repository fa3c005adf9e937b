"""Achievement engine error taxonomy.

Only FactCollectionError leaves a recomputation cycle; the others are
handled inside the engine and surface as log events.
"""

from __future__ import annotations


class AchievementEngineError(Exception):
    """Base class for achievement engine errors."""


class FactCollectionError(AchievementEngineError):
    """The application or goal records could not be read for a user."""

    def __init__(self, user_id: str, reason: str = "") -> None:
        self.user_id = user_id
        self.reason = reason
        msg = f"Failed to collect facts for user {user_id}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class CatalogLookupError(AchievementEngineError, KeyError):
    """An achievement id is not present in the catalog."""

    def __init__(self, achievement_id: str) -> None:
        self.achievement_id = achievement_id
        super().__init__(achievement_id)

    def __str__(self) -> str:
        return f"Achievement not in catalog: {self.achievement_id}"


class AggregationMismatch(AchievementEngineError):
    """Incremental progression disagreed with the from-scratch recompute."""

    def __init__(self, user_id: str, expected_xp: int, actual_xp: int) -> None:
        self.user_id = user_id
        self.expected_xp = expected_xp
        self.actual_xp = actual_xp
        super().__init__(
            f"Progression mismatch for user {user_id}: incremental={expected_xp} recomputed={actual_xp}"
        )


class InvalidRequirementError(AchievementEngineError, ValueError):
    """A requirement definition or payload is malformed."""
