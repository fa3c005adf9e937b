"""Activity events read from the Redis stream."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from applytrak.achievements.orchestrator import Trigger


class ActivityEvent(BaseModel):
    """A user action in the application tracker that may unlock achievements."""

    user_id: str = Field(min_length=1, max_length=64)
    trigger: Trigger
    occurred_at: datetime | None = None


class InvalidActivityEvent(ValueError):
    """A stream message that cannot be parsed into an ActivityEvent."""


def parse_activity(raw_data: dict[str, Any]) -> ActivityEvent:
    """Parse a stream entry.

    Producers either send a JSON document in a ``data`` field or the event
    fields flat on the entry.
    """
    data_str = raw_data.get("data")
    if isinstance(data_str, str):
        try:
            data = json.loads(data_str)
        except json.JSONDecodeError as exc:
            raise InvalidActivityEvent(f"data is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise InvalidActivityEvent("data must be a JSON object")
    else:
        data = dict(raw_data)

    try:
        return ActivityEvent.model_validate(data)
    except ValidationError as exc:
        raise InvalidActivityEvent(str(exc)) from exc
