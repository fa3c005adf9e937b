"""Achievement arq worker: consumes application activity from Redis Streams.

Each stream entry triggers one recomputation cycle for its user. Entries
are acked only after the cycle finishes; a FactCollectionError leaves the
entry pending so it is redelivered. Cycles are idempotent, so redelivery
never double-awards.

Import path for arq CLI: arq applytrak.workers.settings.WorkerSettings
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

import redis.asyncio as aioredis
from arq import cron, func
from arq.connections import RedisSettings

from applytrak.achievements.errors import FactCollectionError
from applytrak.achievements.facts import SqlFactSource
from applytrak.achievements.notifier import RedisUnlockPublisher
from applytrak.achievements.orchestrator import CycleResult, RecomputationOrchestrator, Trigger
from applytrak.config import Settings, get_settings
from applytrak.database import close_db, get_session_factory, init_db
from applytrak.workers.events import InvalidActivityEvent, parse_activity

logger = logging.getLogger(__name__)


async def ensure_group(redis_client: aioredis.Redis, stream: str, group: str) -> None:
    """Create the consumer group (idempotent)."""
    try:
        await redis_client.xgroup_create(stream, group, id="0", mkstream=True)
        logger.info("Created consumer group %s for %s", group, stream)
    except aioredis.ResponseError as e:
        if "BUSYGROUP" not in str(e):
            raise


async def handle_message(
    orchestrator: RecomputationOrchestrator,
    msg_id: str,
    raw_data: dict[str, Any],
) -> CycleResult | None:
    """Run the cycle for one stream entry.

    Returns None for entries that cannot be parsed; those are acked and
    dropped since redelivery cannot fix them.

    Raises:
        FactCollectionError: The cycle could not read its inputs.
    """
    try:
        event = parse_activity(raw_data)
    except InvalidActivityEvent as e:
        logger.warning("Dropping malformed activity event %s: %s", msg_id, e)
        return None

    result = await orchestrator.run_cycle(event.user_id, event.trigger)
    if result.unlocked:
        logger.info(
            "Unlocked achievements: %s (user=%s, trigger=%s, event=%s)",
            result.unlocked_ids, event.user_id, event.trigger.value, msg_id,
        )
    return result


async def process_messages(
    redis_client: aioredis.Redis,
    orchestrator: RecomputationOrchestrator,
    stream: str,
    group: str,
    messages: list[tuple[str, dict[str, Any]]],
) -> int:
    """Handle a batch of entries from one stream. Returns the number acked."""
    acked = 0
    for msg_id, raw_data in messages:
        try:
            await handle_message(orchestrator, msg_id, raw_data)
        except FactCollectionError as e:
            logger.warning("Leaving %s pending, facts unavailable: %s", msg_id, e)
            continue
        except Exception:
            logger.exception("Failed to process %s from %s", msg_id, stream)
            continue

        await redis_client.xack(stream, group, msg_id)
        acked += 1
    return acked


async def retry_pending(
    redis_client: aioredis.Redis,
    orchestrator: RecomputationOrchestrator,
    settings: Settings,
) -> int:
    """Re-run entries delivered to this consumer but never acked. Returns the number acked."""
    try:
        events = await redis_client.xreadgroup(
            groupname=settings.consumer_group,
            consumername=settings.consumer_name,
            streams={settings.activity_stream: "0"},
            count=100,
        )
    except aioredis.ResponseError as e:
        logger.error("XREADGROUP pending error: %s", e)
        return 0

    acked = 0
    for stream_name, messages in events or []:
        stream_str = stream_name if isinstance(stream_name, str) else stream_name.decode()
        # Entries trimmed from the stream come back without fields; they fail
        # parsing and are acked as malformed.
        pending = [(msg_id, raw_data or {}) for msg_id, raw_data in messages]
        if pending:
            logger.info("Retrying %d pending entries from %s", len(pending), stream_str)
        acked += await process_messages(redis_client, orchestrator, stream_str, settings.consumer_group, pending)
    return acked


async def consume(
    redis_client: aioredis.Redis,
    orchestrator: RecomputationOrchestrator,
    settings: Settings,
    running: Callable[[], bool] = lambda: True,
) -> None:
    """Main consumer loop: reads activity events and runs cycles.

    Entries left pending by this consumer are retried on start and then
    every ``pending_retry_seconds``.
    """
    streams = {settings.activity_stream: ">"}
    loop = asyncio.get_running_loop()
    next_pending_retry = loop.time()

    while running():
        if loop.time() >= next_pending_retry:
            await retry_pending(redis_client, orchestrator, settings)
            next_pending_retry = loop.time() + settings.pending_retry_seconds

        try:
            events = await redis_client.xreadgroup(
                groupname=settings.consumer_group,
                consumername=settings.consumer_name,
                streams=streams,
                count=100,
                block=5000,
            )
        except aioredis.ResponseError as e:
            logger.error("XREADGROUP error: %s", e)
            await asyncio.sleep(1)
            continue

        if not events:
            continue

        for stream_name, messages in events:
            stream_str = stream_name if isinstance(stream_name, str) else stream_name.decode()
            await process_messages(redis_client, orchestrator, stream_str, settings.consumer_group, messages)


def build_worker_orchestrator(settings: Settings, redis_client: aioredis.Redis) -> tuple[RecomputationOrchestrator, SqlFactSource]:
    session_factory = get_session_factory()
    fact_source = SqlFactSource(session_factory, tz=settings.activity_timezone)
    orchestrator = RecomputationOrchestrator.from_settings(
        settings,
        session_factory,
        fact_source,
        dispatcher=RedisUnlockPublisher(redis_client, settings.unlock_channel),
    )
    return orchestrator, fact_source


async def startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize Redis + DB connections on worker startup."""
    settings = get_settings()
    await init_db(settings.database_url)

    redis_client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )
    await ensure_group(redis_client, settings.activity_stream, settings.consumer_group)

    orchestrator, fact_source = build_worker_orchestrator(settings, redis_client)
    ctx["redis_client"] = redis_client
    ctx["orchestrator"] = orchestrator
    ctx["fact_source"] = fact_source
    logger.info("Achievement worker started (consumer=%s)", settings.consumer_name)


async def shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Clean up on worker shutdown."""
    redis_client: aioredis.Redis | None = ctx.get("redis_client")
    if redis_client:
        await redis_client.aclose()
    await close_db()
    logger.info("Achievement worker shut down")


async def consume_activity_events(ctx: dict) -> None:  # type: ignore[type-arg]
    """Long-running job: consume the activity stream until cancelled."""
    await consume(ctx["redis_client"], ctx["orchestrator"], get_settings())


async def daily_rollover(ctx: dict) -> int:  # type: ignore[type-arg]
    """Scheduled task: re-run a cycle for every user with applications.

    Streaks and goal windows change with the calendar even when a user
    does nothing. Returns the number of users whose cycle completed.
    """
    orchestrator: RecomputationOrchestrator = ctx["orchestrator"]
    fact_source: SqlFactSource = ctx["fact_source"]

    completed = 0
    for user_id in await fact_source.active_user_ids():
        try:
            await orchestrator.run_cycle(user_id, Trigger.DAILY_ROLLOVER)
        except FactCollectionError as e:
            logger.warning("Daily rollover skipped user %s: %s", user_id, e)
            continue
        except Exception:
            logger.exception("Daily rollover failed for user %s", user_id)
            continue
        completed += 1

    logger.info("Daily rollover completed for %d users", completed)
    return completed


async def dedupe_user(ctx: dict, user_id: str) -> int:  # type: ignore[type-arg]
    """Job: remove duplicate ledger rows for a user. Returns rows removed."""
    orchestrator: RecomputationOrchestrator = ctx["orchestrator"]
    result = await orchestrator.dedupe(user_id)
    logger.info("Deduped user %s: removed %d rows, total_xp=%d", user_id, result.removed, result.progression.total_xp)
    return result.removed


async def recompute_user(ctx: dict, user_id: str) -> int:  # type: ignore[type-arg]
    """Job: rebuild streak and progression for a user. Returns total XP."""
    orchestrator: RecomputationOrchestrator = ctx["orchestrator"]
    result = await orchestrator.recompute_all(user_id)
    logger.info(
        "Recomputed user %s: total_xp=%d level=%d streak=%d",
        user_id, result.progression.total_xp, result.progression.level, result.streak.daily_streak,
    )
    return result.progression.total_xp


_settings = get_settings()

# consume_activity_events only returns when cancelled.
CONSUMER_TIMEOUT_SECONDS = 365 * 24 * 3600
ROLLOVER_TIMEOUT_SECONDS = 3600


class WorkerSettings:
    """arq worker settings for the achievement consumer."""

    functions = [
        func(consume_activity_events, timeout=CONSUMER_TIMEOUT_SECONDS),
        func(daily_rollover, timeout=ROLLOVER_TIMEOUT_SECONDS),
        dedupe_user,
        recompute_user,
    ]
    cron_jobs = [
        cron(
            daily_rollover,
            hour={_settings.rollover_hour},
            minute={0},
            run_at_startup=False,
            timeout=ROLLOVER_TIMEOUT_SECONDS,
        ),
    ]
    redis_settings = RedisSettings.from_dsn(_settings.redis_url or "redis://localhost:6379/0")
    on_startup = startup
    on_shutdown = shutdown
    max_jobs = 4
    job_timeout = 300  # 5 minutes max per maintenance job
    allow_abort_jobs = True
