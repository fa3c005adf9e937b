"""Operator CLI for ledger repairs.

Usage:
    python -m applytrak.maintenance dedupe USER_ID [USER_ID ...]
    python -m applytrak.maintenance recompute USER_ID [USER_ID ...]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from applytrak.achievements.errors import FactCollectionError
from applytrak.achievements.facts import SqlFactSource
from applytrak.achievements.orchestrator import RecomputationOrchestrator
from applytrak.config import get_settings
from applytrak.database import close_db, get_session_factory, init_db

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="applytrak.maintenance", description=__doc__.splitlines()[0])
    sub = parser.add_subparsers(dest="command", required=True)

    dedupe = sub.add_parser("dedupe", help="Remove duplicate unlock rows and rebuild progression")
    dedupe.add_argument("user_ids", nargs="+", metavar="USER_ID")

    recompute = sub.add_parser("recompute", help="Rebuild streak and progression from scratch")
    recompute.add_argument("user_ids", nargs="+", metavar="USER_ID")
    return parser


async def run(command: str, user_ids: list[str]) -> int:
    """Run a repair for each user. Returns the process exit code."""
    settings = get_settings()
    await init_db(settings.database_url)
    session_factory = get_session_factory()
    orchestrator = RecomputationOrchestrator.from_settings(
        settings,
        session_factory,
        SqlFactSource(session_factory, tz=settings.activity_timezone),
    )

    exit_code = 0
    try:
        for user_id in user_ids:
            if command == "dedupe":
                result = await orchestrator.dedupe(user_id)
                print(f"{user_id}: removed {result.removed} duplicate rows, total_xp={result.progression.total_xp}")
                continue
            try:
                recomputed = await orchestrator.recompute_all(user_id)
            except FactCollectionError as e:
                logger.error("Recompute failed for %s: %s", user_id, e)
                exit_code = 1
                continue
            print(
                f"{user_id}: total_xp={recomputed.progression.total_xp} "
                f"level={recomputed.progression.level} streak={recomputed.streak.daily_streak}"
            )
    finally:
        await close_db()
    return exit_code


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    args = build_parser().parse_args(argv)
    return asyncio.run(run(args.command, args.user_ids))


if __name__ == "__main__":
    sys.exit(main())
