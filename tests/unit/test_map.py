"""Unit tests for map generation."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from gemfinder.config import MapConfig
from gemfinder.services.app_state import AppState
from gemfinder.views.map import build_features, generate_map


@pytest.fixture
def state(store, temp_data_dir: Path) -> AppState:
    loaded = AppState(store, temp_data_dir, user_id="alice")
    loaded.load()
    return loaded


@pytest.mark.ai_generated
class TestBuildFeatures:
    """Tests for the location FeatureCollection."""

    def test_flags_visited_and_favorite(self, state: AppState) -> None:
        """Verify features carry visit and favorite status."""
        state.mark_visited("3")
        state.toggle_favorite("1")

        collection = build_features(state)
        by_id = {f["properties"]["id"]: f["properties"] for f in collection["features"]}

        assert len(by_id) == 8
        assert by_id["3"]["is_visited"] is True
        assert by_id["3"]["marker_color"] == "#fbbf24"
        assert by_id["1"]["is_favorite"] is True
        assert by_id["4"]["marker_color"] == "#4ade80"

    def test_hides_other_users_private_locations(self, store, temp_data_dir: Path) -> None:
        """Verify private locations of other users are not mapped."""
        bob = AppState(store, temp_data_dir, user_id="bob")
        bob.load()
        bob.add_location(name="Bob's spot", latitude="1", longitude="2", is_private=True)

        alice = AppState(store, temp_data_dir, user_id="alice")
        alice.load()
        names = [f["properties"]["name"] for f in build_features(alice)["features"]]

        assert "Bob's spot" not in names


@pytest.mark.ai_generated
class TestGenerateMap:
    """Tests for the HTML page."""

    def test_contains_leaflet_and_features(self, state: AppState) -> None:
        """Verify the page embeds Leaflet and the GeoJSON."""
        features = build_features(state)
        page = generate_map(features, title="My <gems>")

        assert "leaflet" in page
        assert json.dumps(features) in page
        assert "My &lt;gems&gt;" in page
        assert "8 locations" in page

    def test_interactive_buttons(self, state: AppState) -> None:
        """Verify the interactive map talks to the visits API."""
        page = generate_map(build_features(state), interactive=True)
        assert "var interactive = true;" in page
        assert "var interactive = false;" in generate_map(build_features(state))

    def test_default_center_without_points(self) -> None:
        """Verify the configured center is used for an empty map."""
        config = MapConfig(center_lat=10.5, center_lon=20.25, zoom=9)
        page = generate_map({"type": "FeatureCollection", "features": []}, config)

        assert "setView([10.5, 20.25], 9)" in page
        assert "0 locations" in page
