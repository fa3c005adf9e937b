"""Unlock events and their delivery to the notification layer."""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class UnlockEvent:
    """One newly inserted ledger row, emitted once per cycle that created it."""

    user_id: str
    achievement_id: str
    xp_reward: int
    unlocked_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "achievement_id": self.achievement_id,
            "xp_reward": self.xp_reward,
            "unlocked_at": self.unlocked_at.isoformat(),
        }


class UnlockDispatcher(Protocol):
    async def dispatch(self, events: Sequence[UnlockEvent]) -> None: ...


class RedisUnlockPublisher:
    """Publish unlock events as JSON on a Redis pub/sub channel.

    Delivery is best effort; the ledger is already committed when this runs.
    """

    def __init__(self, redis: Any, channel: str) -> None:
        self._redis = redis
        self._channel = channel

    async def dispatch(self, events: Sequence[UnlockEvent]) -> None:
        if self._redis is None:
            return
        for event in events:
            try:
                await self._redis.publish(self._channel, json.dumps(event.to_dict()))
            except Exception:
                logger.warning(
                    "unlock_publish_failed",
                    user_id=event.user_id,
                    achievement_id=event.achievement_id,
                    exc_info=True,
                )
