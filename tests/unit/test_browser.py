"""Unit tests for the location browser JSON API."""

from __future__ import annotations

from pathlib import Path

import pytest

from gemfinder.services.app_state import AppState
from gemfinder.views.browser import dispatch_api


@pytest.fixture
def state(store, temp_data_dir: Path) -> AppState:
    loaded = AppState(store, temp_data_dir, user_id="alice")
    loaded.load()
    store.calls.clear()
    return loaded


@pytest.mark.ai_generated
class TestReadRoutes:
    """Tests for GET routes."""

    def test_locations(self, state: AppState) -> None:
        """Verify the locations route returns GeoJSON."""
        status, payload = dispatch_api(state, "GET", "/api/locations")
        assert status == 200
        assert payload["type"] == "FeatureCollection"
        assert len(payload["features"]) == 8

    def test_location_detail(self, state: AppState) -> None:
        """Verify a single location includes status fields."""
        status, payload = dispatch_api(state, "GET", "/api/location/4")
        assert status == 200
        assert payload["is_visited"] is False
        assert payload["category_name"] == "Landmark"

    def test_unknown_location(self, state: AppState) -> None:
        """Verify missing locations are 404."""
        status, payload = dispatch_api(state, "GET", "/api/location/999")
        assert status == 404
        assert "999" in payload["error"]

    def test_stats(self, state: AppState) -> None:
        """Verify stats include totals and an error slot."""
        status, payload = dispatch_api(state, "GET", "/api/stats")
        assert status == 200
        assert payload["totals"]["visits"] == 0
        assert payload["error"] is None

    def test_unknown_route(self, state: AppState) -> None:
        """Verify unmatched routes are 404."""
        assert dispatch_api(state, "GET", "/api/nothing") == (404, {"error": "Not Found"})


@pytest.mark.ai_generated
class TestWriteRoutes:
    """Tests for POST and DELETE routes."""

    def test_check_in_and_undo(self, state: AppState) -> None:
        """Verify a new check-in is 201, a repeat 200, and undo clears it."""
        assert dispatch_api(state, "POST", "/api/visits/1", {"rating": "4"})[0] == 201
        assert dispatch_api(state, "POST", "/api/visits/1")[0] == 200
        assert state.is_visited("1")

        status, payload = dispatch_api(state, "DELETE", "/api/visits/1")
        assert status == 200
        assert payload == {"id": "1", "is_visited": False}
        assert not state.is_visited("1")

    def test_bad_rating(self, store, state: AppState) -> None:
        """Verify an out-of-range rating is 400 and nothing is written."""
        status, _ = dispatch_api(state, "POST", "/api/visits/1", {"rating": 9})
        assert status == 400
        assert store.writes() == []

    def test_store_failure(self, store, state: AppState) -> None:
        """Verify store failures map to 502."""
        store.fail_on.add(("insert", "location_visits"))
        status, payload = dispatch_api(state, "POST", "/api/visits/2")
        assert status == 502
        assert payload["error"]

    def test_add_and_delete_location(self, state: AppState) -> None:
        """Verify adding is 201 and the owner can delete."""
        status, payload = dispatch_api(
            state, "POST", "/api/locations", {"name": "Stairs", "latitude": 37.75, "longitude": -122.45}
        )
        assert status == 201
        assert payload["is_user_uploaded"] is True

        status, payload = dispatch_api(state, "DELETE", f"/api/locations/{payload['id']}")
        assert status == 200
        assert payload["deleted"] is True

    def test_add_invalid_location(self, state: AppState) -> None:
        """Verify validation errors are 400."""
        status, payload = dispatch_api(state, "POST", "/api/locations", {"name": "", "latitude": 0, "longitude": 0})
        assert status == 400
        assert payload["error"] == "Please enter a title"

    def test_delete_seeded_location(self, state: AppState) -> None:
        """Verify built-in locations cannot be deleted."""
        status, _ = dispatch_api(state, "DELETE", "/api/locations/1")
        assert status == 403

    def test_draft_round_trip(self, state: AppState) -> None:
        """Verify a form draft can be saved, read back and discarded."""
        status, payload = dispatch_api(state, "POST", "/api/draft", {"name": "Stairs", "latitude": "", "color": "red"})
        assert status == 200
        assert payload["draft"] == {"name": "Stairs"}

        assert dispatch_api(state, "GET", "/api/draft")[1]["draft"] == {"name": "Stairs"}

        dispatch_api(state, "DELETE", "/api/draft")
        assert dispatch_api(state, "GET", "/api/draft")[1]["draft"] is None

    def test_toggle_favorite(self, state: AppState) -> None:
        """Verify the favorites route toggles."""
        assert dispatch_api(state, "POST", "/api/favorites/2")[1]["is_favorite"] is True
        assert dispatch_api(state, "POST", "/api/favorites/2")[1]["is_favorite"] is False
