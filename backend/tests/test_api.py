"""Tests for the HTTP surface."""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from conftest import add_mapping

from gitcache.dtos import ScanOptions
from gitcache.main import create_app
from gitcache.services.exceptions import StoreError


@pytest.fixture
def client(container):
    app = create_app(container)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def seeded(container, fake_git, store):
    fake_git.add_repo("/repos/alpha", commits=3)
    add_mapping(store, "m-alpha", "/repos/alpha", repository_name="alpha")
    container.coordinator.scan_all(store.find_project_mappings("p1"), ScanOptions(force_refresh=True))


class TestProjectRoutes:
    """Tests for /api/projects."""

    def test_snapshot_missing_returns_error_envelope(self, client):
        response = client.get("/api/projects/p1/snapshot")

        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "NOT_FOUND"

    def test_initialize_then_snapshot(self, client, seeded):
        response = client.post("/api/projects/p1/initialize", params={"auto_refresh": False})

        assert response.status_code == 200
        assert response.json() == {"project_id": "p1", "from_cache": True, "auto_refresh": False}

        snapshot = client.get("/api/projects/p1/snapshot").json()
        assert len(snapshot["commits"]) == 3
        assert snapshot["commits"][0]["repository"] == "alpha"

    def test_refresh(self, client, seeded):
        response = client.post("/api/projects/p1/refresh")

        assert response.status_code == 200
        assert response.json()["started"] is True

    def test_auto_refresh_start_and_stop(self, client, container):
        started = client.post("/api/projects/p1/auto-refresh", params={"interval_ms": 60000})
        again = client.post("/api/projects/p1/auto-refresh", params={"interval_ms": 60000})
        stopped = client.delete("/api/projects/p1/auto-refresh")

        assert started.json()["started"] is True
        assert again.json()["started"] is False
        assert stopped.json()["stopped"] is True
        assert container.manager.is_auto_refresh_running("p1") is False

    def test_cache_health_and_scan_stats(self, client, seeded):
        health = client.get("/api/projects/p1/cache-health").json()
        stats = client.get("/api/projects/p1/scan-stats").json()

        assert health["total_repositories"] == 1
        assert health["healthy_repositories"] == 1
        assert stats["total_commits"] == 3

    def test_rescan(self, client, seeded, fake_git):
        fake_git.history_calls.clear()

        response = client.post("/api/projects/p1/rescan")

        assert response.json() == {"project_id": "p1", "success": True}
        assert fake_git.history_calls == ["/repos/alpha"]

    def test_store_failure_maps_to_503(self, client, store):
        with patch.object(store, "find_project_records", side_effect=StoreError("down")):
            response = client.get("/api/projects/p1/scan-stats")

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "STORE_UNAVAILABLE"

    def test_invalid_query_returns_validation_error(self, client):
        response = client.post("/api/projects/p1/auto-refresh", params={"interval_ms": 10})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


class TestRefreshRoutes:
    """Tests for /api/refresh and /api/health."""

    def test_run_and_stats(self, client, container, fake_git, store):
        fake_git.add_repo("/repos/alpha", commits=2)
        add_mapping(store, "m-alpha", "/repos/alpha")

        run = client.post("/api/refresh/run", params={"max_repositories_per_batch": 1})
        stats = client.get("/api/refresh/stats").json()

        assert run.status_code == 200
        assert run.json()["refreshed_repositories"] == 1
        assert stats["running"] is False
        assert stats["stats"]["stale_repositories"] == 1

    def test_health(self, client, store):
        add_mapping(store, "m1", "/repos/a")

        body = client.get("/api/health").json()

        assert body["status"] == "ok"
        assert body["repositories"] == 1
        assert body["git_available"] is True
