"""Unit tests for the visit ledger."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from gemfinder.services.directory import LocationNotFoundError
from gemfinder.services.ledger import GuestLedger, VisitLedger
from gemfinder.services.store import StoreError


@pytest.fixture
def ledger(store, directory) -> VisitLedger:
    """Loaded ledger for the test user."""
    loaded = VisitLedger(store, "alice", directory)
    assert loaded.load()
    store.calls.clear()
    return loaded


class TestCheckIn:
    """Tests for recording visits."""

    @pytest.mark.ai_generated
    def test_check_in_records_visit_and_counters(self, store, ledger) -> None:
        """Verify a check-in writes the visit, category counter and month bucket."""
        event = ledger.check_in("3", rating=4, notes="great", visited_at=datetime(2024, 2, 10, 12, 0))

        assert event is not None
        assert event.is_gem is True
        assert ledger.is_visited("3")

        visits = store.select("location_visits", {"user_id": "alice"})
        assert len(visits) == 1
        assert visits[0]["rating"] == 4
        assert visits[0]["visit_month"] == 2
        assert visits[0]["visit_year"] == 2024

        stats = store.select("category_stats", {"user_id": "alice"})
        assert [(s["category_id"], s["visit_count"]) for s in stats] == [("shop", 1)]

        history = store.select("visit_history", {"user_id": "alice"})
        assert [(h["year"], h["month"], h["visit_count"]) for h in history] == [(2024, 2, 1)]

    @pytest.mark.ai_generated
    def test_second_check_in_in_category_increments(self, store, ledger) -> None:
        """Verify an existing category counter is incremented, not duplicated."""
        ledger.check_in("4")
        ledger.check_in("5")

        stats = store.select("category_stats", {"user_id": "alice", "category_id": "landmark"})
        assert len(stats) == 1
        assert stats[0]["visit_count"] == 2

    @pytest.mark.ai_generated
    def test_check_in_already_visited_is_noop(self, store, ledger) -> None:
        """Verify checking in twice writes nothing the second time."""
        ledger.check_in("1")
        store.calls.clear()

        assert ledger.check_in("1") is None
        assert store.writes() == []

    @pytest.mark.ai_generated
    def test_unknown_location_refused(self, store, ledger) -> None:
        """Verify a visit cannot reference a location that does not exist."""
        with pytest.raises(LocationNotFoundError):
            ledger.check_in("does-not-exist")
        assert store.writes() == []

    @pytest.mark.ai_generated
    def test_rating_out_of_range(self, store, ledger) -> None:
        """Verify ratings outside 1-5 are rejected before any write."""
        with pytest.raises(ValueError, match="Rating"):
            ledger.check_in("1", rating=9)
        assert store.writes() == []

    @pytest.mark.ai_generated
    def test_visit_insert_failure_leaves_state_unchanged(self, store, ledger) -> None:
        """Verify a failed insert does not mark the location visited."""
        store.fail_on.add(("insert", "location_visits"))

        with pytest.raises(StoreError):
            ledger.check_in("1")

        assert not ledger.is_visited("1")
        assert store.select("location_visits") == []

    @pytest.mark.ai_generated
    def test_counter_failure_rolls_back_visit(self, store, ledger) -> None:
        """Verify a failed counter write removes the inserted visit again."""
        store.fail_on.add(("insert", "visit_history"))

        with pytest.raises(StoreError):
            ledger.check_in("1")

        assert not ledger.is_visited("1")
        assert store.select("location_visits") == []
        assert store.select("category_stats") == []

    @pytest.mark.ai_generated
    def test_visited_in_another_session(self, store, directory, ledger) -> None:
        """Verify a duplicate visit from another session is adopted."""
        other = VisitLedger(store, "alice", directory)
        other.load()
        other.check_in("2")

        assert ledger.check_in("2") is None
        assert ledger.is_visited("2")
        assert len(store.select("location_visits")) == 1


class TestUndoCheckIn:
    """Tests for removing visits."""

    @pytest.mark.ai_generated
    def test_round_trip_leaves_no_counter_rows(self, store, ledger) -> None:
        """Verify check-in then undo leaves no zero-count rows behind."""
        ledger.check_in("1")
        assert ledger.undo_check_in("1") is True

        assert not ledger.is_visited("1")
        assert store.select("location_visits") == []
        assert store.select("category_stats") == []
        assert store.select("visit_history") == []

    @pytest.mark.ai_generated
    def test_undo_decrements_shared_counter(self, store, ledger) -> None:
        """Verify undoing one of two visits in a category keeps a count of 1."""
        when = datetime(2024, 3, 1, 12, 0)
        ledger.check_in("4", visited_at=when)
        ledger.check_in("5", visited_at=when)
        ledger.undo_check_in("4")

        stats = store.select("category_stats", {"user_id": "alice"})
        assert [(s["category_id"], s["visit_count"]) for s in stats] == [("landmark", 1)]
        history = store.select("visit_history", {"user_id": "alice"})
        assert [h["visit_count"] for h in history] == [1]

    @pytest.mark.ai_generated
    def test_history_failure_restores_counters(self, store, ledger) -> None:
        """Verify a failed month-bucket write keeps the visit and both counters."""
        ledger.check_in("1")
        store.fail_on.update({("update", "visit_history"), ("delete", "visit_history")})

        with pytest.raises(StoreError):
            ledger.undo_check_in("1")

        assert ledger.is_visited("1")
        assert len(store.select("location_visits")) == 1
        assert [s["visit_count"] for s in store.select("category_stats")] == [1]
        assert [h["visit_count"] for h in store.select("visit_history")] == [1]

    @pytest.mark.ai_generated
    def test_visit_delete_failure_restores_counters(self, store, ledger) -> None:
        """Verify a failed visit delete leaves counters matching the visit."""
        ledger.check_in("4")
        store.fail_on.add(("delete", "location_visits"))

        with pytest.raises(StoreError):
            ledger.undo_check_in("4")

        assert ledger.is_visited("4")
        assert len(store.select("location_visits")) == 1
        assert [s["visit_count"] for s in store.select("category_stats")] == [1]
        assert [h["visit_count"] for h in store.select("visit_history")] == [1]

    @pytest.mark.ai_generated
    def test_month_bucket_uses_local_date(self, store, ledger, local_tz) -> None:
        """Verify the history bucket matches the local calendar month."""
        local_tz("America/Los_Angeles")
        ledger.check_in("1", visited_at=datetime(2024, 2, 1, 3, 0, tzinfo=timezone.utc))

        history = store.select("visit_history", {"user_id": "alice"})
        assert [(h["year"], h["month"]) for h in history] == [(2024, 1)]

    @pytest.mark.ai_generated
    def test_undo_not_visited(self, store, ledger) -> None:
        """Verify undoing an unvisited location is a no-op."""
        assert ledger.undo_check_in("1") is False
        assert store.writes() == []

    @pytest.mark.ai_generated
    def test_load_restores_visits(self, store, directory, ledger) -> None:
        """Verify a new ledger sees visits recorded earlier."""
        ledger.check_in("6")
        fresh = VisitLedger(store, "alice", directory)
        assert fresh.load()
        assert fresh.visited_ids == {"6"}
        assert [e.location_id for e in fresh.events()] == ["6"]

    @pytest.mark.ai_generated
    def test_load_failure_gives_empty_set(self, store, directory) -> None:
        """Verify a failed load leaves an empty ledger and an error."""
        store.fail_on.add(("select", "location_visits"))
        fresh = VisitLedger(store, "alice", directory)
        assert fresh.load() is False
        assert fresh.visited_ids == set()
        assert fresh.error


class TestGuestLedger:
    """Tests for the in-memory guest ledger."""

    @pytest.mark.ai_generated
    def test_guest_visits_never_touch_store(self, store, directory) -> None:
        """Verify guest check-ins stay in memory."""
        guest = GuestLedger(directory)
        assert guest.check_in("3") is not None
        assert guest.is_visited("3")
        assert store.calls == []

    @pytest.mark.ai_generated
    def test_guest_category_counts(self, directory) -> None:
        """Verify guest counters follow check-ins and undos."""
        guest = GuestLedger(directory)
        guest.check_in("4")
        guest.check_in("5")
        assert [(s.category_id, s.visit_count) for s in guest.category_stats()] == [("landmark", 2)]

        guest.undo_check_in("4")
        guest.undo_check_in("5")
        assert guest.category_stats() == []
        assert guest.visited_ids == set()
