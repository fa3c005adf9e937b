"""Migration revision tests that run without a database."""

from __future__ import annotations

import importlib.util
import json
from pathlib import Path
from unittest.mock import MagicMock

from applytrak.achievements.catalog import DEFAULT_CATALOG

VERSIONS = Path(__file__).resolve().parents[2] / "alembic" / "versions"


def _load_revision(filename: str):
    spec = importlib.util.spec_from_file_location(filename.removesuffix(".py"), VERSIONS / filename)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestEnforceUniqueUnlocks:
    def test_catalog_seeded_before_progression_rebuild(self, monkeypatch) -> None:
        revision = _load_revision("002_enforce_unique_unlocks.py")
        calls = MagicMock()
        calls.op.get_bind.return_value = calls.bind
        monkeypatch.setattr(revision, "op", calls.op)

        revision.upgrade()

        seeds = [i for i, c in enumerate(calls.mock_calls) if c[0] == "bind.execute"]
        rebuild = next(
            i for i, c in enumerate(calls.mock_calls)
            if c[0] == "op.execute" and "INSERT INTO user_progression" in c.args[0]
        )
        assert len(seeds) == len(DEFAULT_CATALOG)
        assert max(seeds) < rebuild

        first_row = calls.mock_calls[seeds[0]].args[1]
        assert first_row["id"] == "first_application"
        assert first_row["xp_reward"] == 10
        assert json.loads(first_row["requirements"]) == [{"type": "application_count", "count": 1}]

    def test_duplicates_removed_before_unique_index(self, monkeypatch) -> None:
        revision = _load_revision("002_enforce_unique_unlocks.py")
        calls = MagicMock()
        monkeypatch.setattr(revision, "op", calls.op)

        revision.upgrade()

        statements = [c.args[0] for c in calls.mock_calls if c[0] == "op.execute"]
        assert "DELETE FROM user_achievements" in statements[0]
        assert "CREATE UNIQUE INDEX" in statements[1]
