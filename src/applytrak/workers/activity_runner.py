"""Standalone runner for the achievement activity consumer.

Reads activity events from the Redis stream in its own consumer group
and runs a recomputation cycle per event, without the arq scheduler.

Usage: python -m applytrak.workers.activity_runner
"""

from __future__ import annotations

import asyncio
import logging
import signal

import redis.asyncio as aioredis

from applytrak.config import get_settings
from applytrak.database import close_db, init_db
from applytrak.workers.activity_worker import build_worker_orchestrator, consume, ensure_group

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)

_running = True


def _is_running() -> bool:
    return _running


async def main() -> None:
    """Run the achievement activity consumer."""
    settings = get_settings()
    await init_db(settings.database_url)

    redis_client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )
    await ensure_group(redis_client, settings.activity_stream, settings.consumer_group)
    orchestrator, _ = build_worker_orchestrator(settings, redis_client)

    loop = asyncio.get_running_loop()

    def _stop() -> None:
        global _running  # noqa: PLW0603
        _running = False

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _stop)

    logger.info("Starting achievement consumer (consumer=%s)", settings.consumer_name)

    try:
        await consume(redis_client, orchestrator, settings, running=_is_running)
    finally:
        await redis_client.aclose()
        await close_db()
        logger.info("Achievement consumer stopped")


if __name__ == "__main__":
    asyncio.run(main())
