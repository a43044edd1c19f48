"""Unit tests for the local data store and change feed."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from gemfinder.config import Config
from gemfinder.lib.paths import get_table_path
from gemfinder.services.seed import seed_store
from gemfinder.services.store import (
    ChangeFeed,
    DuplicateRecordError,
    LocalStore,
    RecordNotFoundError,
    StoreError,
    open_store,
    row_matches,
)


class TestRowMatches:
    """Tests for filter matching."""

    @pytest.mark.ai_generated
    def test_equality_and_membership(self) -> None:
        """Verify equality and list filters."""
        row = {"id": "2", "user_id": "alice"}
        assert row_matches(row, None)
        assert row_matches(row, {"user_id": "alice"})
        assert row_matches(row, {"id": ["1", "2"]})
        assert not row_matches(row, {"id": ["3"]})
        assert not row_matches(row, {"user_id": "bob"})


class TestLocalStore:
    """Tests for the JSON file store."""

    @pytest.mark.ai_generated
    def test_insert_assigns_id_and_timestamps(self, temp_data_dir: Path) -> None:
        """Verify inserted rows get an id and created/updated stamps."""
        store = LocalStore(temp_data_dir)
        row = store.insert("categories", {"name": "Bakery"})

        assert row["id"]
        assert row["created_at"]
        assert row["updated_at"]
        on_disk = json.loads(get_table_path(temp_data_dir, "categories").read_text())
        assert on_disk[0]["name"] == "Bakery"

    @pytest.mark.ai_generated
    def test_unique_visit_per_user_and_location(self, temp_data_dir: Path) -> None:
        """Verify a second visit row for the same user and location is refused."""
        store = LocalStore(temp_data_dir)
        store.insert("location_visits", {"user_id": "alice", "location_id": "1"})
        store.insert("location_visits", {"user_id": "bob", "location_id": "1"})

        with pytest.raises(DuplicateRecordError):
            store.insert("location_visits", {"user_id": "alice", "location_id": "1"})

    @pytest.mark.ai_generated
    def test_select_order_and_limit(self, temp_data_dir: Path) -> None:
        """Verify ordering puts missing values last and limit applies."""
        store = LocalStore(temp_data_dir)
        for name, rank in (("a", 2), ("b", None), ("c", 5)):
            store.insert("badges", {"name": name, "rank": rank})

        rows = store.select("badges", order_by="rank", descending=True)
        assert [r["name"] for r in rows] == ["c", "a", "b"]
        assert len(store.select("badges", limit=1)) == 1

    @pytest.mark.ai_generated
    def test_select_one_not_found(self, temp_data_dir: Path) -> None:
        """Verify select_one raises the not-found error."""
        store = LocalStore(temp_data_dir)
        with pytest.raises(RecordNotFoundError):
            store.select_one("category_stats", {"user_id": "alice"})

    @pytest.mark.ai_generated
    def test_update_and_delete(self, temp_data_dir: Path) -> None:
        """Verify update and delete return the affected rows."""
        store = LocalStore(temp_data_dir)
        row = store.insert("category_stats", {"user_id": "alice", "category_id": "park", "visit_count": 1})

        updated = store.update("category_stats", {"id": row["id"]}, {"visit_count": 2})
        assert updated[0]["visit_count"] == 2

        removed = store.delete("category_stats", {"id": row["id"]})
        assert [r["id"] for r in removed] == [row["id"]]
        assert store.select("category_stats") == []

    @pytest.mark.ai_generated
    def test_delete_requires_filters(self, temp_data_dir: Path) -> None:
        """Verify an unfiltered delete is refused and keeps every row."""
        store = LocalStore(temp_data_dir)
        seed_store(store)

        with pytest.raises(StoreError, match="every row"):
            store.delete("locations", {})

        assert len(store.select("locations")) == 8

    @pytest.mark.ai_generated
    def test_unknown_table(self, temp_data_dir: Path) -> None:
        """Verify unknown tables are rejected."""
        with pytest.raises(StoreError, match="Unknown table"):
            LocalStore(temp_data_dir).select("users")

    @pytest.mark.ai_generated
    def test_corrupt_table(self, temp_data_dir: Path) -> None:
        """Verify an unreadable table surfaces as StoreError."""
        path = get_table_path(temp_data_dir, "locations")
        path.parent.mkdir(parents=True)
        path.write_text("{not json")
        with pytest.raises(StoreError):
            LocalStore(temp_data_dir).select("locations")

    @pytest.mark.ai_generated
    def test_seed_is_idempotent(self, temp_data_dir: Path) -> None:
        """Verify seeding twice does not duplicate rows."""
        store = LocalStore(temp_data_dir)
        first = seed_store(store)
        second = seed_store(store)

        assert first["locations"] == 8
        assert second == {"categories": 0, "locations": 0, "badges": 0}
        assert len(store.select("locations")) == 8


class TestChangeFeed:
    """Tests for change notifications."""

    @pytest.mark.ai_generated
    def test_writes_notify_matching_user(self, temp_data_dir: Path) -> None:
        """Verify subscribers see writes for their user only."""
        store = LocalStore(temp_data_dir)
        seen = []
        store.subscribe("location_visits", "alice", lambda change: seen.append(change.event))

        row = store.insert("location_visits", {"user_id": "alice", "location_id": "1"})
        store.insert("location_visits", {"user_id": "bob", "location_id": "1"})
        store.delete("location_visits", {"id": row["id"]})

        assert seen == ["INSERT", "DELETE"]

    @pytest.mark.ai_generated
    def test_unsubscribe(self) -> None:
        """Verify unsubscribed callbacks are no longer called."""
        feed = ChangeFeed()
        seen = []
        subscription = feed.subscribe("category_stats", None, seen.append)
        feed.publish("category_stats", "INSERT", {"user_id": "alice"})
        subscription.unsubscribe()
        feed.publish("category_stats", "INSERT", {"user_id": "alice"})
        assert len(seen) == 1

    @pytest.mark.ai_generated
    def test_failing_subscriber_does_not_break_write(self, temp_data_dir: Path) -> None:
        """Verify a subscriber exception does not fail the store write."""
        store = LocalStore(temp_data_dir)

        def boom(change: object) -> None:
            raise RuntimeError("subscriber failed")

        store.subscribe("categories", None, boom)
        assert store.insert("categories", {"name": "Bar"})["name"] == "Bar"


class TestOpenStore:
    """Tests for the store factory."""

    @pytest.mark.ai_generated
    def test_local_by_default(self, temp_data_dir: Path) -> None:
        """Verify the local backend is the default."""
        config = Config()
        config.data.directory = temp_data_dir
        assert isinstance(open_store(config), LocalStore)

    @pytest.mark.ai_generated
    def test_rest_requires_url(self) -> None:
        """Verify the rest backend needs a URL."""
        config = Config()
        config.store.backend = "rest"
        with pytest.raises(ValueError, match="URL"):
            open_store(config)
