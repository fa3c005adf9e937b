"""Achievement API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from applytrak.achievements.catalog import AchievementDefinition
from applytrak.achievements.ledger import list_unlocks
from applytrak.achievements.levels import compute_level
from applytrak.achievements.orchestrator import RecomputationOrchestrator, Trigger
from applytrak.achievements.progression import ProgressionState, load_progression
from applytrak.achievements.schemas import (
    AchievementResponse,
    CatalogResponse,
    DedupeResponse,
    EvaluateRequest,
    EvaluateResponse,
    ProgressionResponse,
    RecomputeResponse,
    StreakResponse,
    UnlockEventResponse,
    UserAchievementResponse,
    UserAchievementsResponse,
)
from applytrak.achievements.streak import StreakState, load_streak
from applytrak.dependencies import get_db, get_orchestrator, require_maintenance_token

router = APIRouter(prefix="/api/v1", tags=["Achievements"])


def _definition_fields(definition: AchievementDefinition) -> dict:
    return {
        "id": definition.id,
        "name": definition.name,
        "description": definition.description,
        "category": definition.category.value,
        "tier": definition.tier.value,
        "rarity": definition.rarity.value,
        "icon": definition.icon,
        "xp_reward": definition.xp_reward,
        "requirements": [r.to_dict() for r in definition.requirements],
    }


def _progression_response(state: ProgressionState) -> ProgressionResponse:
    level_info = compute_level(state.total_xp)
    return ProgressionResponse(
        total_xp=state.total_xp,
        level=state.level,
        level_title=level_info["title"],
        xp_into_level=level_info["xp_into_level"],
        xp_for_level=level_info["xp_for_level"],
        next_level=level_info["next_level"],
        next_title=level_info["next_title"],
        achievements_unlocked=state.achievements_unlocked,
    )


def _streak_response(state: StreakState) -> StreakResponse:
    return StreakResponse(
        daily_streak=state.daily_streak,
        longest_streak=state.longest_streak,
        last_activity_date=state.last_activity_date,
        streak_start_date=state.streak_start_date,
    )


# ── Catalog ──


@router.get("/achievements", response_model=CatalogResponse)
async def list_achievements(orchestrator: RecomputationOrchestrator = Depends(get_orchestrator)):
    """Get every achievement definition in catalog order."""
    catalog = orchestrator.catalog
    return CatalogResponse(
        achievements=[AchievementResponse(**_definition_fields(d)) for d in catalog],
        total=len(catalog),
        max_total_xp=catalog.max_total_xp,
    )


# ── Per-user views ──


@router.get("/users/{user_id}/achievements", response_model=UserAchievementsResponse)
async def get_user_achievements(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    orchestrator: RecomputationOrchestrator = Depends(get_orchestrator),
):
    """Get the catalog with the user's unlock status and progress."""
    unlocks = await list_unlocks(db, user_id)

    unlocked_at = {}
    for row in unlocks:
        unlocked_at.setdefault(row.achievement_id, row.unlocked_at)

    progress = await orchestrator.progress(user_id, unlocked_at)
    items = []
    for definition in orchestrator.catalog:
        current, target = progress[definition.id]
        items.append(UserAchievementResponse(
            **_definition_fields(definition),
            unlocked=definition.id in unlocked_at,
            unlocked_at=unlocked_at.get(definition.id),
            progress_current=current,
            progress_target=target,
        ))

    return UserAchievementsResponse(
        achievements=items,
        total_available=len(orchestrator.catalog),
        total_unlocked=sum(1 for item in items if item.unlocked),
    )


@router.get("/users/{user_id}/progression", response_model=ProgressionResponse)
async def get_user_progression(user_id: str, db: AsyncSession = Depends(get_db)):
    """Get the user's last computed XP, level and unlock count."""
    return _progression_response(await load_progression(db, user_id))


@router.get("/users/{user_id}/streak", response_model=StreakResponse)
async def get_user_streak(user_id: str, db: AsyncSession = Depends(get_db)):
    """Get the user's last computed daily streak."""
    return _streak_response(await load_streak(db, user_id))


@router.post("/users/{user_id}/achievements/evaluate", response_model=EvaluateResponse)
async def evaluate_user(
    user_id: str,
    body: EvaluateRequest | None = None,
    orchestrator: RecomputationOrchestrator = Depends(get_orchestrator),
):
    """Run one recomputation cycle and return the unlocks it inserted."""
    trigger = body.trigger if body is not None else Trigger.MANUAL
    result = await orchestrator.run_cycle(user_id, trigger)
    return EvaluateResponse(
        user_id=user_id,
        trigger=result.trigger,
        unlocked=[
            UnlockEventResponse(
                achievement_id=e.achievement_id,
                xp_reward=e.xp_reward,
                unlocked_at=e.unlocked_at,
            )
            for e in result.unlocked
        ],
        failed=list(result.failed),
        progression=_progression_response(result.progression) if result.progression else None,
    )


# ── Maintenance ──


@router.post(
    "/maintenance/users/{user_id}/dedupe",
    response_model=DedupeResponse,
    dependencies=[Depends(require_maintenance_token)],
)
async def dedupe_user(user_id: str, orchestrator: RecomputationOrchestrator = Depends(get_orchestrator)):
    """Remove duplicate unlock rows and rebuild progression."""
    result = await orchestrator.dedupe(user_id)
    return DedupeResponse(
        user_id=user_id,
        removed=result.removed,
        progression=_progression_response(result.progression),
    )


@router.post(
    "/maintenance/users/{user_id}/recompute",
    response_model=RecomputeResponse,
    dependencies=[Depends(require_maintenance_token)],
)
async def recompute_user(user_id: str, orchestrator: RecomputationOrchestrator = Depends(get_orchestrator)):
    """Rebuild stored streak and progression from scratch."""
    result = await orchestrator.recompute_all(user_id)
    return RecomputeResponse(
        user_id=user_id,
        progression=_progression_response(result.progression),
        streak=_streak_response(result.streak),
    )
