"""Shared test fixtures.

Integration tests run against a throwaway SQLite file per test (via
aiosqlite); the engine's upserts use the same ON CONFLICT construct on
SQLite as on PostgreSQL.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Sequence
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from applytrak.achievements.facts import ApplicationRecord, GoalStatus
from applytrak.achievements.notifier import UnlockEvent
from applytrak.achievements.orchestrator import RecomputationOrchestrator
from applytrak.config import get_settings
from applytrak.db import models  # noqa: F401
from applytrak.db.base import Base

# Wednesday of ISO week 12, 2026.
NOW = datetime(2026, 3, 18, 12, 0, tzinfo=timezone.utc)


def make_record(
    applied_at: datetime = NOW,
    *,
    status: str = "Applied",
    type: str = "Onsite",  # noqa: A002
    cover_letter: bool = False,
    resume: bool = False,
    notes: bool = False,
    company: str = "Acme Corp",
) -> ApplicationRecord:
    return ApplicationRecord(
        applied_at=applied_at,
        status=status,
        type=type,
        has_cover_letter_attachment=cover_letter,
        has_resume_attachment=resume,
        has_notes=notes,
        company_name=company,
    )


class StaticFactSource:
    """In-memory FactSource; set ``fail`` to simulate an unavailable store."""

    def __init__(self) -> None:
        self.records: dict[str, list[ApplicationRecord]] = {}
        self.goals: dict[str, GoalStatus] = {}
        self.fail = False
        self.reads = 0

    def set_applications(self, user_id: str, count: int, applied_at: datetime = NOW, **kwargs) -> None:
        self.records[user_id] = [make_record(applied_at, **kwargs) for _ in range(count)]

    async def application_records(self, user_id: str) -> Sequence[ApplicationRecord]:
        self.reads += 1
        if self.fail:
            raise ConnectionError("application store unavailable")
        return list(self.records.get(user_id, []))

    async def goal_status(self, user_id: str, now: datetime) -> GoalStatus:
        if self.fail:
            raise ConnectionError("goal store unavailable")
        return self.goals.get(user_id, GoalStatus())


class CollectingDispatcher:
    """UnlockDispatcher that records every batch it receives."""

    def __init__(self) -> None:
        self.batches: list[list[UnlockEvent]] = []

    @property
    def events(self) -> list[UnlockEvent]:
        return [event for batch in self.batches for event in batch]

    async def dispatch(self, events: Sequence[UnlockEvent]) -> None:
        self.batches.append(list(events))


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh SQLite database with every table created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'applytrak.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def fact_source() -> StaticFactSource:
    return StaticFactSource()


@pytest.fixture
def dispatcher() -> CollectingDispatcher:
    return CollectingDispatcher()


@pytest.fixture
def orchestrator(session_factory, fact_source, dispatcher) -> RecomputationOrchestrator:
    return RecomputationOrchestrator(
        session_factory,
        fact_source,
        dispatcher=dispatcher,
        clock=lambda: NOW,
    )


@pytest_asyncio.fixture
async def client(session_factory, orchestrator) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app, wired to the test database and orchestrator."""
    from applytrak.database import get_session
    from applytrak.dependencies import get_orchestrator
    from applytrak.main import create_app

    app = create_app()

    async def _session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    async def _orchestrator() -> RecomputationOrchestrator:
        return orchestrator

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_orchestrator] = _orchestrator

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
