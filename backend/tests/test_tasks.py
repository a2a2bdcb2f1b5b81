"""Tests for the Celery task entry points (run inline, no broker)."""

import pytest

from conftest import add_mapping

from gitcache.tasks.scheduler import refresh_project_repositories, refresh_stale_repositories


@pytest.fixture
def bound_container(container):
    refresh_stale_repositories._container = container
    refresh_project_repositories._container = container
    yield container
    refresh_stale_repositories._container = None
    refresh_project_repositories._container = None


def test_refresh_stale_repositories_returns_json_stats(bound_container, fake_git, store):
    for i in range(3):
        fake_git.add_repo(f"/repos/r{i}", commits=1)
        add_mapping(store, f"m{i}", f"/repos/r{i}")

    result = refresh_stale_repositories.run(max_repositories_per_batch=2)

    assert result["total_repositories"] == 3
    assert result["stale_repositories"] == 3
    assert result["refreshed_repositories"] == 2
    assert isinstance(result["last_refresh_time"], str)


def test_refresh_project_repositories(bound_container, fake_git, store):
    fake_git.add_repo("/repos/a", commits=2)
    add_mapping(store, "m1", "/repos/a")

    result = refresh_project_repositories.run("p1")

    assert result == {"project_id": "p1", "success": True}
    assert len(store.get("m1").commits) == 2
