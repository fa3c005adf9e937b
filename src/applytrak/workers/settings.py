"""arq worker settings module.

Import path for arq CLI: arq applytrak.workers.settings.WorkerSettings
"""

from __future__ import annotations

from applytrak.workers.activity_worker import WorkerSettings

__all__ = ["WorkerSettings"]
