"""Map visualization for gemfinder.

Generates a standalone Leaflet.js map of locations. Markers are colored by
status: visited locations are yellow, unvisited hidden gems green, all other
locations blue.
"""

from __future__ import annotations

import html
import http.server
import json
import socketserver
from pathlib import Path
from typing import TYPE_CHECKING, Any

from gemfinder.lib.geo import (
    COMPLETED_STYLE,
    DEFAULT_STYLE,
    HIDDEN_GEM_STYLE,
    feature_collection,
    location_to_feature,
    map_bounds,
)

if TYPE_CHECKING:
    from gemfinder.config import MapConfig
    from gemfinder.services.app_state import AppState


def build_features(state: AppState) -> dict[str, Any]:
    """Build a GeoJSON FeatureCollection of the locations visible to the user.

    Args:
        state: Application state (directory, ledger, preferences).

    Returns:
        FeatureCollection dictionary.
    """
    visited = state.visited_ids
    favorites = state.preferences.favorite_ids
    return feature_collection(
        location_to_feature(loc, visited=loc.id in visited, favorite=loc.id in favorites)
        for loc in state.visible_locations()
    )


def generate_map(
    features: dict[str, Any],
    map_config: MapConfig | None = None,
    title: str = "gemfinder",
    interactive: bool = False,
) -> str:
    """Generate the HTML map page.

    Args:
        features: GeoJSON FeatureCollection of locations.
        map_config: Default center and zoom used when there are no markers.
        title: Page title.
        interactive: Add check-in buttons that talk to the browser's JSON API
            and reload markers from ``/api/locations``.

    Returns:
        HTML content as string.
    """
    points = [
        (f["geometry"]["coordinates"][1], f["geometry"]["coordinates"][0])
        for f in features.get("features", [])
    ]
    if map_config is not None:
        default_center = (map_config.center_lat, map_config.center_lon)
        default_zoom = map_config.zoom
    else:
        default_center, default_zoom = (43.6532, -79.3832), 15
    center, zoom = map_bounds(points, default_center, default_zoom)

    features_json = json.dumps(features)
    count = len(points)

    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{html.escape(title)}</title>
    <link rel="stylesheet" href="https://unpkg.com/leaflet@1.9.4/dist/leaflet.css">
    <style>
        body {{ margin: 0; padding: 0; }}
        #map {{ position: absolute; top: 0; bottom: 0; width: 100%; }}
        .info {{
            padding: 6px 8px;
            font: 14px/16px Arial, Helvetica, sans-serif;
            background: rgba(255,255,255,0.9);
            box-shadow: 0 0 15px rgba(0,0,0,0.2);
            border-radius: 5px;
        }}
        .legend {{ line-height: 18px; color: #555; }}
        .legend i {{
            width: 14px;
            height: 14px;
            float: left;
            margin-right: 8px;
            border-radius: 50%;
        }}
        .gem-popup h3 {{ margin: 0 0 4px 0; font-size: 15px; }}
        .gem-popup .meta {{ font-size: 12px; color: #666; }}
        .gem-popup button {{
            margin-top: 8px;
            padding: 4px 10px;
            border: none;
            border-radius: 4px;
            background: #2563eb;
            color: white;
            cursor: pointer;
        }}
    </style>
</head>
<body>
    <div id="map"></div>
    <script src="https://unpkg.com/leaflet@1.9.4/dist/leaflet.js"></script>
    <script>
        var interactive = {json.dumps(interactive)};
        var map = L.map('map').setView({center}, {zoom});

        L.tileLayer('https://tile.openstreetmap.org/{{z}}/{{x}}/{{y}}.png', {{
            maxZoom: 19,
            attribution: '&copy; OpenStreetMap contributors'
        }}).addTo(map);

        var markers = L.layerGroup().addTo(map);

        function escapeHtml(text) {{
            var div = document.createElement('div');
            div.textContent = text == null ? '' : String(text);
            return div.innerHTML;
        }}

        function popupHtml(p) {{
            var parts = ['<div class="gem-popup">', '<h3>' + escapeHtml(p.name) + '</h3>'];
            if (p.is_hidden_gem) parts.push('<div class="meta">Hidden gem</div>');
            if (p.area) parts.push('<div class="meta">' + escapeHtml(p.area) + '</div>');
            if (p.description) parts.push('<p>' + escapeHtml(p.description) + '</p>');
            if (interactive) {{
                var label = p.is_visited ? 'Unmark visited' : 'Mark as visited';
                parts.push('<button onclick="toggleVisit(\\'' + p.id + '\\', ' + p.is_visited + ')">' +
                    label + '</button>');
                parts.push(' <a href="/location/' + encodeURIComponent(p.id) + '">Details</a>');
            }}
            parts.push('</div>');
            return parts.join('');
        }}

        function render(collection) {{
            markers.clearLayers();
            collection.features.forEach(function(f) {{
                var p = f.properties;
                var c = f.geometry.coordinates;
                L.circleMarker([c[1], c[0]], {{
                    radius: 8,
                    color: p.marker_stroke,
                    fillColor: p.marker_color,
                    fillOpacity: 0.9,
                    weight: 3
                }}).bindPopup(popupHtml(p)).addTo(markers);
            }});
        }}

        function reload() {{
            fetch('/api/locations')
                .then(function(r) {{ return r.json(); }})
                .then(render)
                .catch(function(e) {{ console.error('Failed to load locations', e); }});
        }}

        function toggleVisit(id, visited) {{
            fetch('/api/visits/' + encodeURIComponent(id), {{ method: visited ? 'DELETE' : 'POST' }})
                .then(function(r) {{ return r.json(); }})
                .then(function(body) {{
                    if (body.error) alert(body.error);
                    reload();
                }});
        }}

        render({features_json});

        var legend = L.control({{position: 'bottomright'}});
        legend.onAdd = function() {{
            var div = L.DomUtil.create('div', 'info legend');
            div.innerHTML =
                '<i style="background:{COMPLETED_STYLE[0]}"></i> Visited<br>' +
                '<i style="background:{HIDDEN_GEM_STYLE[0]}"></i> Hidden gem<br>' +
                '<i style="background:{DEFAULT_STYLE[0]}"></i> Location<br>' +
                '<small>{count} locations</small>';
            return div;
        }};
        legend.addTo(map);
    </script>
</body>
</html>"""


def serve_map(
    html_path: Path,
    port: int = 8080,
    host: str = "127.0.0.1",
) -> None:
    """Start a local HTTP server to serve the map.

    Args:
        html_path: Path to the HTML file.
        port: Server port.
        host: Server host.
    """
    directory = html_path.parent

    class Handler(http.server.SimpleHTTPRequestHandler):
        def __init__(self, *args: Any, **kwargs: Any) -> None:
            super().__init__(*args, directory=str(directory), **kwargs)

        def log_message(self, format: str, *args: object) -> None:
            pass  # Suppress logging

    # Allow port reuse to avoid "Address already in use" errors
    socketserver.TCPServer.allow_reuse_address = True

    with socketserver.TCPServer((host, port), Handler) as httpd:
        url = f"http://{host}:{port}/{html_path.name}"
        print(f"Serving at {url}")
        print("Press Ctrl+C to stop")

        try:
            httpd.serve_forever()
        except KeyboardInterrupt:
            print("\nServer stopped")
