"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator

from fastapi import Header, HTTPException

from applytrak.achievements.facts import SqlFactSource
from applytrak.achievements.notifier import RedisUnlockPublisher
from applytrak.achievements.orchestrator import RecomputationOrchestrator
from applytrak.config import get_settings
from applytrak.database import get_session as _get_session
from applytrak.database import get_session_factory
from applytrak.redis_client import get_redis as _get_redis

get_db = _get_session


async def get_redis_dep() -> AsyncGenerator[object, None]:
    """Yield the Redis client as a FastAPI dependency."""
    yield _get_redis()


def build_orchestrator() -> RecomputationOrchestrator:
    """Wire an orchestrator from settings and the initialized DB and Redis pools."""
    settings = get_settings()
    session_factory = get_session_factory()
    return RecomputationOrchestrator.from_settings(
        settings,
        session_factory,
        SqlFactSource(session_factory, tz=settings.activity_timezone),
        dispatcher=RedisUnlockPublisher(_get_redis(), settings.unlock_channel),
    )


async def get_orchestrator() -> RecomputationOrchestrator:
    """Yield the recomputation orchestrator (FastAPI dependency)."""
    return build_orchestrator()


async def require_maintenance_token(
    x_maintenance_token: str | None = Header(default=None),
) -> None:
    """Guard operator endpoints with the shared maintenance token."""
    expected = get_settings().maintenance_token
    if not expected:
        raise HTTPException(status_code=404, detail="Maintenance endpoints are disabled")
    if x_maintenance_token != expected:
        raise HTTPException(status_code=403, detail="Invalid maintenance token")
