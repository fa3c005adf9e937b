"""Pydantic request and response models for achievement endpoints."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel

from applytrak.achievements.orchestrator import Trigger


# --- Catalog ---


class AchievementResponse(BaseModel):
    id: str
    name: str
    description: str
    category: str
    tier: str
    rarity: str
    icon: str
    xp_reward: int
    requirements: list[dict]


class CatalogResponse(BaseModel):
    achievements: list[AchievementResponse]
    total: int
    max_total_xp: int


class UserAchievementResponse(AchievementResponse):
    unlocked: bool = False
    unlocked_at: datetime | None = None
    progress_current: int = 0
    progress_target: int = 1


class UserAchievementsResponse(BaseModel):
    achievements: list[UserAchievementResponse]
    total_available: int
    total_unlocked: int


# --- Progression ---


class ProgressionResponse(BaseModel):
    total_xp: int
    level: int
    level_title: str
    xp_into_level: int
    xp_for_level: int
    next_level: int
    next_title: str
    achievements_unlocked: int


# --- Streak ---


class StreakResponse(BaseModel):
    daily_streak: int
    longest_streak: int
    last_activity_date: date | None = None
    streak_start_date: date | None = None


# --- Evaluation ---


class EvaluateRequest(BaseModel):
    trigger: Trigger = Trigger.MANUAL


class UnlockEventResponse(BaseModel):
    achievement_id: str
    xp_reward: int
    unlocked_at: datetime


class EvaluateResponse(BaseModel):
    user_id: str
    trigger: Trigger
    unlocked: list[UnlockEventResponse]
    failed: list[str] = []
    progression: ProgressionResponse | None = None


# --- Maintenance ---


class DedupeResponse(BaseModel):
    user_id: str
    removed: int
    progression: ProgressionResponse


class RecomputeResponse(BaseModel):
    user_id: str
    progression: ProgressionResponse
    streak: StreakResponse
