"""HTTP API tests through the FastAPI app with an in-process transport."""

from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import NOW, make_record

from applytrak.config import get_settings


class TestHealth:

    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy"}

    async def test_version_reports_catalog_size(self, client):
        resp = await client.get("/version")
        assert resp.status_code == 200
        assert resp.json()["achievements"] == 22

    async def test_request_id_echoed(self, client):
        resp = await client.get("/health", headers={"X-Request-Id": "abc-123"})
        assert resp.headers["X-Request-Id"] == "abc-123"


class TestCatalog:

    async def test_lists_full_catalog_in_order(self, client):
        resp = await client.get("/api/v1/achievements")
        assert resp.status_code == 200
        body = resp.json()
        assert body["total"] == 22
        assert body["max_total_xp"] == 2325
        assert body["achievements"][0]["id"] == "first_application"
        assert body["achievements"][-1]["id"] == "achievement_collector"
        assert body["achievements"][0]["requirements"] == [
            {"type": "application_count", "count": 1},
        ]


class TestEvaluate:

    async def test_first_application(self, client, fact_source):
        fact_source.set_applications("u1", 1)

        resp = await client.post("/api/v1/users/u1/achievements/evaluate", json={"trigger": "application_created"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["trigger"] == "application_created"
        assert [u["achievement_id"] for u in body["unlocked"]] == ["first_application"]
        assert body["failed"] == []
        assert body["progression"]["total_xp"] == 10
        assert body["progression"]["level"] == 1
        assert body["progression"]["level_title"] == "Job Seeker"

    async def test_without_body_defaults_to_manual(self, client, fact_source):
        fact_source.set_applications("u1", 1)

        resp = await client.post("/api/v1/users/u1/achievements/evaluate")
        assert resp.status_code == 200
        assert resp.json()["trigger"] == "manual"

    async def test_repeat_evaluation_unlocks_nothing(self, client, fact_source):
        fact_source.set_applications("u1", 10)

        first = await client.post("/api/v1/users/u1/achievements/evaluate")
        second = await client.post("/api/v1/users/u1/achievements/evaluate")
        assert len(first.json()["unlocked"]) == 2
        assert second.json()["unlocked"] == []
        assert second.json()["progression"]["total_xp"] == 35

    async def test_unknown_trigger_rejected(self, client):
        resp = await client.post("/api/v1/users/u1/achievements/evaluate", json={"trigger": "bogus"})
        assert resp.status_code == 422
        assert resp.json()["detail"] == "Validation error"

    async def test_fact_store_unavailable_returns_503(self, client, fact_source):
        fact_source.fail = True

        resp = await client.post("/api/v1/users/u1/achievements/evaluate")
        assert resp.status_code == 503
        assert resp.headers["Retry-After"] == "30"

        progression = await client.get("/api/v1/users/u1/progression")
        assert progression.json()["total_xp"] == 0


class TestUserViews:

    async def test_progression_defaults_for_unknown_user(self, client):
        resp = await client.get("/api/v1/users/nobody/progression")
        assert resp.status_code == 200
        body = resp.json()
        assert body["total_xp"] == 0
        assert body["level"] == 1
        assert body["achievements_unlocked"] == 0
        assert body["next_level"] == 2

    async def test_streak_after_evaluation(self, client, fact_source):
        fact_source.records["u1"] = [make_record(NOW - timedelta(days=1)), make_record(NOW)]

        await client.post("/api/v1/users/u1/achievements/evaluate")

        resp = await client.get("/api/v1/users/u1/streak")
        assert resp.status_code == 200
        body = resp.json()
        assert body["daily_streak"] == 2
        assert body["longest_streak"] == 2
        assert body["last_activity_date"] == "2026-03-18"
        assert body["streak_start_date"] == "2026-03-17"

    async def test_user_achievements_with_progress(self, client, fact_source):
        fact_source.set_applications("u1", 4)
        await client.post("/api/v1/users/u1/achievements/evaluate")

        resp = await client.get("/api/v1/users/u1/achievements")
        assert resp.status_code == 200
        body = resp.json()
        assert body["total_available"] == 22
        assert body["total_unlocked"] == 1

        by_id = {a["id"]: a for a in body["achievements"]}
        assert by_id["first_application"]["unlocked"] is True
        assert by_id["first_application"]["unlocked_at"] is not None
        assert by_id["ten_applications"]["unlocked"] is False
        assert (by_id["ten_applications"]["progress_current"], by_id["ten_applications"]["progress_target"]) == (4, 10)


class TestMaintenance:

    async def test_disabled_without_token(self, client):
        resp = await client.post("/api/v1/maintenance/users/u1/dedupe")
        assert resp.status_code == 404

    @pytest.fixture
    def token(self, monkeypatch):
        monkeypatch.setenv("APPLYTRAK_MAINTENANCE_TOKEN", "s3cret")
        # The app was built before the token existed; the guard reads settings per request.
        get_settings.cache_clear()
        return "s3cret"

    async def test_wrong_token_rejected(self, client, token):
        resp = await client.post(
            "/api/v1/maintenance/users/u1/dedupe",
            headers={"X-Maintenance-Token": "nope"},
        )
        assert resp.status_code == 403

    async def test_dedupe(self, client, fact_source, token):
        fact_source.set_applications("u1", 1)
        await client.post("/api/v1/users/u1/achievements/evaluate")

        resp = await client.post(
            "/api/v1/maintenance/users/u1/dedupe",
            headers={"X-Maintenance-Token": token},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["removed"] == 0
        assert body["progression"]["total_xp"] == 10

    async def test_recompute(self, client, fact_source, token):
        fact_source.set_applications("u1", 1)
        await client.post("/api/v1/users/u1/achievements/evaluate")

        resp = await client.post(
            "/api/v1/maintenance/users/u1/recompute",
            headers={"X-Maintenance-Token": token},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["progression"]["achievements_unlocked"] == 1
        assert body["streak"]["daily_streak"] == 1
