"""Unit tests for the session application state."""

from __future__ import annotations

from pathlib import Path

import pytest

from gemfinder.models.preferences import load_preferences
from gemfinder.services.app_state import AppState
from gemfinder.services.directory import OwnershipError, ValidationError
from gemfinder.services.ledger import GuestLedger, VisitLedger
from gemfinder.services.store import StoreError


@pytest.fixture
def state(store, temp_data_dir: Path) -> AppState:
    """Loaded state for the test user."""
    loaded = AppState(store, temp_data_dir, user_id="alice")
    assert loaded.load()
    store.calls.clear()
    return loaded


class TestSession:
    """Tests for session setup and guest mode."""

    @pytest.mark.ai_generated
    def test_signed_in_uses_store_ledger(self, state: AppState) -> None:
        """Verify a configured user gets a store-backed ledger."""
        assert isinstance(state.ledger, VisitLedger)
        assert state.guest is False
        assert state.session_user == "alice"

    @pytest.mark.ai_generated
    def test_without_user_runs_as_guest(self, store, temp_data_dir: Path) -> None:
        """Verify a session without a user falls back to guest mode."""
        guest = AppState(store, temp_data_dir)
        assert guest.guest is True
        assert isinstance(guest.ledger, GuestLedger)
        with pytest.raises(ValueError):
            guest.set_guest_mode(False)

    @pytest.mark.ai_generated
    def test_switching_guest_mode_resets_visits(self, state: AppState) -> None:
        """Verify toggling guest mode starts with a fresh visited set."""
        state.mark_visited("1")
        assert state.visited_ids == {"1"}

        state.set_guest_mode(True)
        assert state.visited_ids == set()
        state.mark_visited("2")
        assert state.visited_ids == {"2"}

        state.set_guest_mode(False)
        assert state.visited_ids == {"1"}

    @pytest.mark.ai_generated
    def test_load_failure_becomes_notice(self, store, temp_data_dir: Path) -> None:
        """Verify read failures degrade to empty data plus an error notice."""
        store.fail_on.add(("select", "locations"))
        failing = AppState(store, temp_data_dir, user_id="alice")

        assert failing.load() is False
        assert failing.visible_locations() == []
        assert ("error", "Failed to load locations") in failing.notices


class TestVisits:
    """Tests for marking and unmarking visits."""

    @pytest.mark.ai_generated
    def test_mark_visited_notifies_listeners(self, state: AppState) -> None:
        """Verify a check-in emits a change and a success notice."""
        kinds = []
        state.subscribe(kinds.append)

        event = state.mark_visited("3")

        assert event is not None
        assert kinds == ["visits"]
        assert ("success", "Badge earned: First Steps") in state.notices
        assert [b.id for b in state.new_badges] == ["first-steps"]

    @pytest.mark.ai_generated
    def test_mark_visited_failure_keeps_state(self, store, state: AppState) -> None:
        """Verify a failed write leaves the location unvisited with an error notice."""
        store.fail_on.add(("insert", "location_visits"))

        with pytest.raises(StoreError):
            state.mark_visited("3")

        assert not state.is_visited("3")
        assert state.notices[-1][0] == "error"

    @pytest.mark.ai_generated
    def test_unsubscribe_listener(self, state: AppState) -> None:
        """Verify removed listeners are not called."""
        kinds = []
        unsubscribe = state.subscribe(kinds.append)
        unsubscribe()
        state.mark_visited("1")
        assert kinds == []

    @pytest.mark.ai_generated
    def test_unmark_visited(self, state: AppState) -> None:
        """Verify undoing a visit."""
        state.mark_visited("1")
        assert state.unmark_visited("1") is True
        assert not state.is_visited("1")
        assert state.unmark_visited("1") is False

    @pytest.mark.ai_generated
    def test_guest_stats_from_memory(self, store, temp_data_dir: Path) -> None:
        """Verify guest stats come from in-memory visits."""
        guest = AppState(store, temp_data_dir, guest=True, user_id="alice")
        guest.load()
        store.calls.clear()
        guest.mark_visited("4")

        stats, error = guest.stats()

        assert error is None
        assert stats.total_visits == 1
        assert stats.visits_by_category == [{"name": "Landmark", "value": 1}]
        assert store.writes() == []


class TestLocations:
    """Tests for adding and deleting locations."""

    @pytest.mark.ai_generated
    def test_add_location_clears_draft(self, state: AppState, temp_data_dir: Path) -> None:
        """Verify adding a location clears the saved form draft."""
        state.update_preferences(lambda prefs: prefs.save_draft({"name": "Spot"}))

        state.add_location(name="Spot", latitude="1", longitude="2")

        assert state.preferences.draft is None
        assert load_preferences(temp_data_dir, "alice").draft is None

    @pytest.mark.ai_generated
    def test_add_invalid_location(self, store, state: AppState) -> None:
        """Verify validation errors become notices and skip the store."""
        with pytest.raises(ValidationError):
            state.add_location(name="Spot", latitude="95", longitude="0")
        assert store.writes() == []
        assert state.notices[-1][0] == "error"

    @pytest.mark.ai_generated
    def test_delete_location_cleans_up(self, store, state: AppState, temp_data_dir: Path) -> None:
        """Verify deleting removes the user's visit and preference entries."""
        mine = state.add_location(name="Spot", latitude="1", longitude="2")
        state.mark_visited(mine.id)
        state.toggle_favorite(mine.id)

        state.delete_location(mine.id)

        assert not state.is_visited(mine.id)
        assert store.select("location_visits", {"location_id": mine.id}) == []
        assert not load_preferences(temp_data_dir, "alice").is_favorite(mine.id)

    @pytest.mark.ai_generated
    def test_delete_seeded_location_refused(self, store, state: AppState) -> None:
        """Verify built-in locations cannot be deleted."""
        with pytest.raises(OwnershipError):
            state.delete_location("1")
        assert store.writes() == []


    @pytest.mark.ai_generated
    def test_delete_failure_keeps_visit_and_counters(self, store, state: AppState) -> None:
        """Verify a failed location delete restores the visit that was undone."""
        mine = state.add_location(name="Spot", latitude="1", longitude="2", category_id="park")
        state.mark_visited(mine.id)
        store.fail_on.add(("delete", "locations"))

        with pytest.raises(StoreError):
            state.delete_location(mine.id)

        assert state.is_visited(mine.id)
        assert len(store.select("location_visits", {"location_id": mine.id})) == 1
        stats = store.select("category_stats", {"user_id": "alice", "category_id": "park"})
        assert [s["visit_count"] for s in stats] == [1]
        assert state.directory.get(mine.id) is not None
        assert state.notices[-1][0] == "error"

    @pytest.mark.ai_generated
    def test_save_draft_keeps_form_fields(self, state: AppState, temp_data_dir: Path) -> None:
        """Verify only filled-in add-location fields are saved as a draft."""
        draft = state.save_draft({"name": "Spot", "latitude": "95", "description": "", "bogus": "x"})

        assert draft == {"name": "Spot", "latitude": "95"}
        assert load_preferences(temp_data_dir, "alice").draft == draft
    @pytest.mark.ai_generated
    def test_toggle_favorite_persists(self, state: AppState, temp_data_dir: Path) -> None:
        """Verify favorites are saved locally."""
        assert state.toggle_favorite("2") is True
        assert load_preferences(temp_data_dir, "alice").favorites == ["2"]
        assert state.toggle_favorite("2") is False


class TestStatsWatching:
    """Tests for pushed stats updates."""

    @pytest.mark.ai_generated
    def test_watcher_refreshes_after_visit(self, state: AppState) -> None:
        """Verify stats follow a new visit while a watcher is active."""
        updates = []
        watcher = state.watch_stats(lambda stats, error: updates.append(stats.total_visits))
        refreshes = watcher.refresh_count

        state.mark_visited("3")

        assert watcher.refresh_count > refreshes
        assert updates[-1] == 1
        stats, error = state.stats()
        assert error is None
        assert stats.total_visits == 1

    @pytest.mark.ai_generated
    def test_stop_watching(self, state: AppState) -> None:
        """Verify a stopped watcher no longer refreshes."""
        watcher = state.watch_stats()
        state.stop_watching_stats()
        refreshes = watcher.refresh_count

        state.mark_visited("3")

        assert watcher.refresh_count == refreshes
        assert state.stats()[0].total_visits == 1

    @pytest.mark.ai_generated
    def test_guest_mode_refuses_watching(self, state: AppState) -> None:
        """Verify guest sessions cannot watch synced stats."""
        state.watch_stats()
        state.set_guest_mode(True)

        with pytest.raises(ValueError, match="guest"):
            state.watch_stats()
