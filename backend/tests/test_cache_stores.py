"""Tests for the cache store implementations."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from pymongo.errors import AutoReconnect, OperationFailure

from conftest import add_mapping

from gitcache.config import Settings
from gitcache.entities import RepositoryMapping
from gitcache.repositories import (
    InMemoryGitCacheStore,
    MongoGitCacheStore,
    create_store,
)
from gitcache.services.exceptions import StoreError

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class TestInMemoryStore:
    """Tests for InMemoryGitCacheStore semantics."""

    def test_get_unknown_mapping(self, store):
        assert store.get("missing") is None

    def test_upsert_merges_fields(self, store):
        add_mapping(store, "m1", "/r/a")
        store.upsert("m1", {"current_branch": "main", "scan_error": None}, NOW)
        store.upsert("m1", {"scan_error": "boom"}, NOW + timedelta(minutes=1))

        entry = store.get("m1")
        assert entry.current_branch == "main"
        assert entry.scan_error == "boom"
        assert entry.last_updated_at == NOW + timedelta(minutes=1)

    def test_older_write_is_discarded(self, store):
        add_mapping(store, "m1", "/r/a")
        assert store.upsert("m1", {"current_head": "new"}, NOW) is True

        assert store.upsert("m1", {"current_head": "old"}, NOW - timedelta(seconds=5)) is False

        entry = store.get("m1")
        assert entry.current_head == "new"
        assert entry.last_updated_at == NOW

    def test_write_with_equal_timestamp_wins(self, store):
        add_mapping(store, "m1", "/r/a")
        store.upsert("m1", {"current_head": "first"}, NOW)

        assert store.upsert("m1", {"current_head": "second"}, NOW) is True
        assert store.get("m1").current_head == "second"

    def test_list_older_than_excludes_recent_entries(self, store):
        add_mapping(store, "never", "/r/never")
        add_mapping(store, "old", "/r/old")
        add_mapping(store, "older", "/r/older")
        add_mapping(store, "fresh", "/r/fresh")
        add_mapping(store, "invalid", "/r/invalid")
        store.upsert("old", {}, NOW - timedelta(hours=30))
        store.upsert("older", {}, NOW - timedelta(hours=50))
        store.upsert("fresh", {}, NOW - timedelta(hours=1))
        store.upsert("invalid", {"is_valid_repository": False}, NOW - timedelta(hours=72))

        stale = store.list_older_than(24, now=NOW)

        assert [e.id for e in stale] == ["never", "older", "old"]
        assert stale[0].last_updated_at is None
        assert stale[1].project_id == "p1"

    def test_stale_entry_converts_to_mapping(self, store):
        add_mapping(store, "m1", "/r/one", project_id="p9", user_id="u1")

        mapping = store.list_older_than(24, now=NOW)[0].to_mapping()

        assert mapping.id == "m1"
        assert mapping.local_path == "/r/one"
        assert mapping.project_id == "p9"

    def test_project_records_filter_by_user(self, store):
        add_mapping(store, "m1", "/r/b", user_id="u1", repository_name="beta")
        add_mapping(store, "m2", "/r/a", user_id="u2", repository_name="alpha")
        add_mapping(store, "m3", "/r/c", project_id="other")
        store.upsert("m1", {"current_branch": "main"}, NOW)

        records = store.find_project_records("p1")
        assert [r.mapping.id for r in records] == ["m2", "m1"]
        assert records[1].cache.current_branch == "main"
        assert records[0].cache is None

        assert [r.mapping.id for r in store.find_project_records("p1", user_id="u1")] == ["m1"]

    def test_find_project_mappings_only_valid(self, store):
        add_mapping(store, "m1", "/r/a")
        add_mapping(store, "m2", "/r/b")
        store.upsert("m2", {"is_valid_repository": False}, NOW)

        assert [m.id for m in store.find_project_mappings("p1")] == ["m1", "m2"]
        assert [m.id for m in store.find_project_mappings("p1", only_valid=True)] == ["m1"]

    def test_delete_mapping_removes_cache(self, store):
        add_mapping(store, "m1", "/r/a")
        store.upsert("m1", {}, NOW)

        assert store.delete_mapping("m1") is True
        assert store.get("m1") is None
        assert store.count_mappings() == 0
        assert store.delete_mapping("m1") is False

    def test_write_for_unknown_mapping_is_discarded(self, store):
        assert store.upsert("ghost", {"current_branch": "main"}, NOW) is False

        assert store.get("ghost") is None
        assert store.list_older_than(0, now=NOW) == []

    def test_write_after_mapping_deleted_is_discarded(self, store):
        add_mapping(store, "m1", "/r/a")
        store.delete_mapping("m1")

        assert store.upsert("m1", {"scan_error": None}, NOW) is False
        assert store.find_project_records("p1") == []


class TestMongoStore:
    """Tests for MongoGitCacheStore query shapes against a mocked collection."""

    def _store(self):
        db = MagicMock()
        collection = MagicMock()
        db.__getitem__.return_value = collection
        return MongoGitCacheStore(db, "repository_local_mappings"), collection

    def test_upsert_is_conditional_on_timestamp(self):
        store, collection = self._store()
        collection.update_one.return_value = MagicMock(matched_count=1)

        assert store.upsert("m1", {"scan_error": None, "current_branch": "main"}, NOW) is True

        query, update = collection.update_one.call_args.args
        assert query == {
            "_id": "m1",
            "$or": [
                {"git_cache.last_updated_at": None},
                {"git_cache.last_updated_at": {"$lte": NOW}},
            ],
        }
        assert update == {
            "$set": {
                "git_cache.scan_error": None,
                "git_cache.current_branch": "main",
                "git_cache.last_updated_at": NOW,
            }
        }
        # Never inserts: the mapping row must already exist
        assert collection.update_one.call_args.kwargs == {}

    def test_upsert_against_newer_or_missing_row_returns_false(self):
        store, collection = self._store()
        collection.update_one.return_value = MagicMock(matched_count=0)

        assert store.upsert("m1", {}, NOW) is False

    def test_driver_errors_become_store_errors(self):
        store, collection = self._store()
        collection.find_one.side_effect = OperationFailure("not authorized")

        with pytest.raises(StoreError):
            store.get("m1")

    def test_transient_reconnect_is_retried(self):
        store, collection = self._store()
        collection.find_one.side_effect = [
            AutoReconnect("primary stepped down"),
            {"_id": "m1", "git_cache": {"current_branch": "main"}},
        ]

        entry = store.get("m1")

        assert entry.current_branch == "main"
        assert collection.find_one.call_count == 2

    def test_get_without_cache_document(self):
        store, collection = self._store()
        collection.find_one.return_value = {"_id": "m1"}

        assert store.get("m1") is None

    def test_list_older_than_query(self):
        store, collection = self._store()
        cursor = MagicMock()
        collection.find.return_value = cursor
        cursor.sort.return_value = cursor
        cursor.__iter__.return_value = iter(
            [{"_id": "m1", "local_path": "/r/a", "project_id": "p1", "git_cache": {}}]
        )

        entries = store.list_older_than(24, now=NOW)

        query, projection = collection.find.call_args.args
        assert query["git_cache.is_valid_repository"] == {"$ne": False}
        assert query["$or"] == [
            {"git_cache.last_updated_at": None},
            {"git_cache.last_updated_at": {"$lt": NOW - timedelta(hours=24)}},
        ]
        cursor.sort.assert_called_once_with([("git_cache.last_updated_at", 1)])
        assert entries[0].id == "m1"
        assert entries[0].last_updated_at is None

    def test_save_mapping_leaves_cache_untouched(self):
        store, collection = self._store()
        collection.update_one.return_value = MagicMock(matched_count=0, upserted_id="m1")
        mapping = RepositoryMapping(id="m1", local_path="/r/a", project_id="p1", user_id="u1")

        store.save_mapping(mapping)

        query, update = collection.update_one.call_args.args
        assert query == {"_id": "m1"}
        assert update == {
            "$set": {
                "local_path": "/r/a",
                "project_id": "p1",
                "user_id": "u1",
                "repository_name": None,
            }
        }


class TestCreateStore:
    """Tests for store backend selection."""

    def test_memory_backend(self):
        store = create_store(Settings(STORE_BACKEND="memory"))

        assert isinstance(store, InMemoryGitCacheStore)

    def test_mongo_backend_with_injected_database(self):
        db = MagicMock()

        store = create_store(Settings(STORE_BACKEND="mongo"), db=db)

        assert isinstance(store, MongoGitCacheStore)
        db.__getitem__.assert_called_once_with("repository_local_mappings")
