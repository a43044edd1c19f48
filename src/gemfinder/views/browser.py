"""Local location browser for gemfinder.

Provides a web-based interface to explore locations, check in, and view
stats. Pages are rendered server-side; the map and the check-in buttons use
a small JSON API served by the same handler.
"""

from __future__ import annotations

import html
import http.server
import json
import logging
import socketserver
import webbrowser
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs, unquote, urlparse

from gemfinder.lib.geo import location_to_feature
from gemfinder.models.location import SORT_OPTIONS, Location, sort_locations
from gemfinder.services.app_state import ADD_LOCATION_FIELDS
from gemfinder.services.directory import LocationNotFoundError, OwnershipError, ValidationError
from gemfinder.services.store import StoreError
from gemfinder.views.map import build_features, generate_map

if TYPE_CHECKING:
    from gemfinder.config import MapConfig
    from gemfinder.services.app_state import AppState

logger = logging.getLogger("gemfinder.browser")


class ApiError(Exception):
    """An API failure with its HTTP status."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message


def _location_payload(state: AppState, location: Location) -> dict[str, Any]:
    data = location.to_dict()
    data["is_visited"] = state.is_visited(location.id)
    data["is_favorite"] = state.preferences.is_favorite(location.id)
    data["category_name"] = state.directory.category_name(location.category_id)
    data["difficulty_label"] = location.difficulty_label
    return data


def _require_visible(state: AppState, location_id: str) -> Location:
    location = state.directory.get(location_id)
    if location is None or location not in state.visible_locations():
        raise ApiError(404, f"Location not found: {location_id}")
    return location


def dispatch_api(
    state: AppState,
    method: str,
    path: str,
    body: dict[str, Any] | None = None,
) -> tuple[int, Any]:
    """Route a JSON API request.

    Args:
        state: Application state.
        method: HTTP method.
        path: Request path (starting with /api/).
        body: Decoded JSON body for POST requests.

    Returns:
        Tuple of (HTTP status, JSON-serializable payload).
    """
    body = body or {}
    parts = [p for p in path.split("/") if p][1:]  # drop "api"

    try:
        if method == "GET" and parts == ["locations"]:
            return 200, build_features(state)

        if method == "GET" and len(parts) == 2 and parts[0] == "location":
            return 200, _location_payload(state, _require_visible(state, parts[1]))

        if method == "GET" and parts == ["stats"]:
            stats, error = state.stats()
            payload = stats.to_dict()
            payload["error"] = error
            return 200, payload

        if len(parts) == 2 and parts[0] == "visits":
            location = _require_visible(state, parts[1])
            if method == "POST":
                rating = body.get("rating")
                event = state.mark_visited(
                    location.id,
                    rating=int(rating) if rating not in (None, "") else None,
                    notes=body.get("notes") or None,
                )
                return (201 if event else 200), {"id": location.id, "is_visited": True}
            if method == "DELETE":
                state.unmark_visited(location.id)
                return 200, {"id": location.id, "is_visited": False}

        if method == "POST" and parts == ["locations"]:
            fields = {k: body[k] for k in ADD_LOCATION_FIELDS if k in body}
            if "is_private" in fields:
                fields["is_private"] = bool(fields["is_private"])
            location = state.add_location(**fields)
            return 201, _location_payload(state, location)

        if method == "DELETE" and len(parts) == 2 and parts[0] == "locations":
            location = state.delete_location(parts[1])
            return 200, {"id": location.id, "deleted": True}

        if parts == ["draft"]:
            if method == "GET":
                return 200, {"draft": state.preferences.draft}
            if method == "POST":
                return 200, {"draft": state.save_draft(body or {})}
            if method == "DELETE":
                state.update_preferences(lambda prefs: prefs.clear_draft())
                return 200, {"draft": None}

        if method == "POST" and len(parts) == 2 and parts[0] == "favorites":
            location = _require_visible(state, parts[1])
            return 200, {"id": location.id, "is_favorite": state.toggle_favorite(location.id)}

    except ApiError as e:
        return e.status, {"error": e.message}
    except LocationNotFoundError as e:
        return 404, {"error": str(e)}
    except OwnershipError as e:
        return 403, {"error": str(e)}
    except (ValidationError, ValueError, TypeError) as e:
        return 400, {"error": str(e)}
    except StoreError as e:
        logger.error("%s %s failed: %s", method, path, e)
        return 502, {"error": str(e)}

    return 404, {"error": "Not Found"}


class LocationBrowserHandler(http.server.BaseHTTPRequestHandler):
    """HTTP request handler for the location browser."""

    state: AppState  # Set by start_browser()
    map_config: MapConfig | None = None

    def do_GET(self) -> None:
        """Handle GET requests."""
        parsed = urlparse(self.path)
        path = unquote(parsed.path)
        query = parse_qs(parsed.query)

        if path == "/" or path == "/index.html":
            self._serve_location_list(query)
        elif path.startswith("/location/"):
            location_id = path.split("/location/")[1].rstrip("/")
            self._serve_location_detail(location_id)
        elif path == "/map":
            self._send_html(generate_map(
                build_features(self.state),
                self.map_config,
                title="gemfinder map",
                interactive=True,
            ))
        elif path == "/stats":
            self._serve_stats()
        elif path.startswith("/api/"):
            self._handle_api("GET", path)
        else:
            self.send_error(404, "Not Found")

    def do_POST(self) -> None:
        """Handle POST requests."""
        path = unquote(urlparse(self.path).path)
        if not path.startswith("/api/"):
            self.send_error(404, "Not Found")
            return
        try:
            body = self._read_json_body()
        except ValueError as e:
            self._send_json({"error": str(e)}, status=400)
            return
        self._handle_api("POST", path, body)

    def do_DELETE(self) -> None:
        """Handle DELETE requests."""
        path = unquote(urlparse(self.path).path)
        if not path.startswith("/api/"):
            self.send_error(404, "Not Found")
            return
        self._handle_api("DELETE", path)

    def _read_json_body(self) -> dict[str, Any]:
        length = int(self.headers.get("Content-Length") or 0)
        if not length:
            return {}
        raw = self.rfile.read(length)
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ValueError(f"Invalid JSON body: {e}") from e
        if not isinstance(data, dict):
            raise ValueError("JSON body must be an object")
        return data

    def _handle_api(self, method: str, path: str, body: dict[str, Any] | None = None) -> None:
        status, payload = dispatch_api(self.state, method, path, body)
        self._send_json(payload, status=status)

    def _serve_location_list(self, query: dict[str, list[str]]) -> None:
        """Serve the explore page."""
        sort_by = query.get("sort", ["recent"])[0]
        if sort_by not in SORT_OPTIONS:
            sort_by = "recent"
        locations = sort_locations(self.state.visible_locations(), sort_by)
        self._send_html(self._render_location_list(locations, sort_by))

    def _serve_location_detail(self, location_id: str) -> None:
        """Serve a location detail page."""
        try:
            location = _require_visible(self.state, location_id)
        except ApiError:
            self.send_error(404, "Location not found")
            return
        self._send_html(self._render_location_detail(location))

    def _serve_stats(self) -> None:
        stats, error = self.state.stats()
        self._send_html(self._render_stats(stats.to_dict(), error))

    def _send_html(self, content: str) -> None:
        """Send HTML response."""
        encoded = content.encode("utf-8")
        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        self.wfile.write(encoded)

    def _send_json(self, data: Any, status: int = 200) -> None:
        """Send JSON response."""
        content = json.dumps(data, default=str)
        encoded = content.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        self.wfile.write(encoded)

    def _nav(self) -> str:
        guest = '<span class="badge guest">Guest mode</span>' if self.state.guest else ""
        return f"""
        <nav>
            <a href="/">Explore</a>
            <a href="/map">Map</a>
            <a href="/stats">Stats</a>
            {guest}
        </nav>
        """

    def _render_location_list(self, locations: list[Location], sort_by: str) -> str:
        """Render the explore list HTML."""
        visited = self.state.visited_ids
        rows = []
        for loc in locations:
            badges = []
            if loc.is_hidden_gem:
                badges.append('<span class="badge gem">Hidden gem</span>')
            if loc.id in visited:
                badges.append('<span class="badge visited">Visited</span>')
            if self.state.preferences.is_favorite(loc.id):
                badges.append('<span class="badge fav">Favorite</span>')
            if loc.is_private:
                badges.append('<span class="badge private">Private</span>')

            rows.append(f"""
            <tr onclick="window.location='/location/{html.escape(loc.id)}'">
                <td>{html.escape(loc.name)}</td>
                <td>{html.escape(loc.area_label)}</td>
                <td>{html.escape(self.state.directory.category_name(loc.category_id) or '')}</td>
                <td>{html.escape(loc.difficulty_label)}</td>
                <td>{' '.join(badges)}</td>
            </tr>
            """)

        sort_links = " | ".join(
            f"<strong>{opt}</strong>" if opt == sort_by else f'<a href="/?sort={opt}">{opt}</a>'
            for opt in SORT_OPTIONS
        )

        return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>gemfinder</title>
    <style>
        {self._get_common_css()}
        table {{ width: 100%; border-collapse: collapse; }}
        th, td {{ padding: 12px; text-align: left; border-bottom: 1px solid #ddd; }}
        tr:hover {{ background-color: #f5f5f5; cursor: pointer; }}
        th {{ background-color: #16a34a; color: white; }}
    </style>
</head>
<body>
    <div class="container">
        {self._nav()}
        <h1>Explore</h1>
        <p>{len(locations)} locations, {len(visited)} visited. Sort by: {sort_links}</p>
        <table>
            <thead>
                <tr>
                    <th>Name</th>
                    <th>Area</th>
                    <th>Category</th>
                    <th>Difficulty</th>
                    <th></th>
                </tr>
            </thead>
            <tbody>
                {''.join(rows)}
            </tbody>
        </table>
    </div>
</body>
</html>"""

    def _render_location_detail(self, location: Location) -> str:
        """Render location detail HTML with check-in controls."""
        visited = self.state.is_visited(location.id)
        favorite = self.state.preferences.is_favorite(location.id)
        feature = json.dumps(location_to_feature(location, visited=visited, favorite=favorite))
        owned = location.is_owned_by(self.state.session_user)

        checkin_html = (
            '<button onclick="api(\'DELETE\', \'/api/visits/ID\')">Unmark visited</button>'
            if visited
            else """
            <label>Rating <select id="rating">
                <option value="">-</option><option>1</option><option>2</option>
                <option>3</option><option>4</option><option>5</option>
            </select></label>
            <label>Notes <input id="notes" type="text"></label>
            <button onclick="api('POST', '/api/visits/ID', {
                rating: document.getElementById('rating').value,
                notes: document.getElementById('notes').value
            })">Mark as visited</button>
            """
        ).replace("ID", html.escape(location.id))

        delete_html = (
            f"""<button class="danger" onclick="if (confirm('Delete this location?'))
                api('DELETE', '/api/locations/{html.escape(location.id)}', null, '/')">Delete</button>"""
            if owned
            else ""
        )

        return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{html.escape(location.name)}</title>
    <link rel="stylesheet" href="https://unpkg.com/leaflet@1.9.4/dist/leaflet.css">
    <style>
        {self._get_common_css()}
        #map {{ height: 300px; margin: 20px 0; border-radius: 8px; }}
        .actions {{ display: flex; gap: 12px; align-items: center; flex-wrap: wrap; margin: 16px 0; }}
        button {{ padding: 6px 12px; border: none; border-radius: 4px; background: #2563eb;
                  color: white; cursor: pointer; }}
        button.danger {{ background: #dc2626; }}
        #message {{ color: #dc2626; }}
    </style>
</head>
<body>
    <div class="container">
        {self._nav()}
        <h1>{html.escape(location.name)}</h1>
        <p>
            {'<span class="badge gem">Hidden gem</span>' if location.is_hidden_gem else ''}
            {'<span class="badge visited">Visited</span>' if visited else ''}
            {html.escape(location.area_label)}
        </p>
        <p>{html.escape(location.description or 'No description')}</p>
        <p><strong>Difficulty:</strong> {html.escape(location.difficulty_label or 'Not rated')}</p>
        <p><strong>Address:</strong> {html.escape(location.address or 'Unknown')}</p>

        <div class="actions">
            {checkin_html}
            <button onclick="api('POST', '/api/favorites/{html.escape(location.id)}')">
                {'Remove favorite' if favorite else 'Add to favorites'}
            </button>
            {delete_html}
        </div>
        <div id="message"></div>

        <div id="map"></div>
    </div>
    <script src="https://unpkg.com/leaflet@1.9.4/dist/leaflet.js"></script>
    <script>
        function api(method, url, body, next) {{
            fetch(url, {{
                method: method,
                headers: {{'Content-Type': 'application/json'}},
                body: body ? JSON.stringify(body) : null
            }}).then(function(r) {{ return r.json(); }}).then(function(data) {{
                if (data.error) {{
                    document.getElementById('message').textContent = data.error;
                }} else {{
                    window.location = next || window.location.href;
                }}
            }});
        }}
        var feature = {feature};
        var c = feature.geometry.coordinates;
        var map = L.map('map').setView([c[1], c[0]], 16);
        L.tileLayer('https://tile.openstreetmap.org/{{z}}/{{x}}/{{y}}.png', {{
            maxZoom: 19,
            attribution: '&copy; OpenStreetMap'
        }}).addTo(map);
        L.circleMarker([c[1], c[0]], {{
            radius: 10,
            color: feature.properties.marker_stroke,
            fillColor: feature.properties.marker_color,
            fillOpacity: 0.9
        }}).addTo(map);
    </script>
</body>
</html>"""

    def _render_stats(self, stats: dict[str, Any], error: str | None) -> str:
        """Render stats page HTML."""
        totals = stats["totals"]
        completion = stats["completion"]

        def bars(series: list[dict[str, Any]], label_key: str, value_key: str) -> str:
            peak = max((s[value_key] for s in series), default=0) or 1
            return "".join(
                f'<div class="bar-row"><span>{html.escape(str(s[label_key]))}</span>'
                f'<div class="bar" style="width: {s[value_key] * 100 // peak}%"></div>'
                f"<span>{s[value_key]}</span></div>"
                for s in series
            )

        recent = "".join(
            f"<li>{html.escape(v['location_name'])} ({html.escape(v['area'])})"
            f"{' - hidden gem' if v['is_gem'] else ''}</li>"
            for v in stats["recent_visits"]
        ) or "<li>No visits yet</li>"

        badges = "".join(
            f"<li><strong>{html.escape(b['name'])}</strong>: {html.escape(b['description'])}</li>"
            for b in stats["badges"]
        ) or "<li>No badges yet</li>"

        error_html = f'<p class="error">{html.escape(error)}</p>' if error else ""

        return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>gemfinder stats</title>
    <style>
        {self._get_common_css()}
        .stats {{ display: grid; grid-template-columns: repeat(auto-fit, minmax(150px, 1fr)); gap: 16px; margin: 20px 0; }}
        .stat {{ background: #f5f5f5; padding: 16px; border-radius: 8px; text-align: center; }}
        .stat-value {{ font-size: 24px; font-weight: bold; color: #16a34a; }}
        .stat-label {{ color: #666; font-size: 14px; }}
        .bar-row {{ display: grid; grid-template-columns: 60px 1fr 40px; align-items: center; gap: 8px; }}
        .bar {{ background: #4ade80; height: 14px; border-radius: 3px; }}
        .error {{ color: #dc2626; }}
    </style>
</head>
<body>
    <div class="container">
        {self._nav()}
        <h1>Your stats</h1>
        {error_html}
        <div class="stats">
            <div class="stat"><div class="stat-value">{totals['visits']}</div><div class="stat-label">Visits</div></div>
            <div class="stat"><div class="stat-value">{totals['hidden_gems_found']}</div><div class="stat-label">Hidden gems</div></div>
            <div class="stat"><div class="stat-value">{totals['streak']}</div><div class="stat-label">Day streak</div></div>
            <div class="stat"><div class="stat-value">{totals['unique_areas']}</div><div class="stat-label">Areas</div></div>
            <div class="stat"><div class="stat-value">{completion['completion_percentage']}%</div><div class="stat-label">Explored</div></div>
            <div class="stat"><div class="stat-value">{completion['discovered_gems']}/{completion['total_hidden_gems']}</div><div class="stat-label">Gems discovered</div></div>
        </div>
        <h2>Visits by month</h2>
        {bars(stats['visits_by_month'], 'name', 'visits')}
        <h2>Weekly activity</h2>
        {bars(stats['weekly_activity'], 'day', 'visits')}
        <h2>By category</h2>
        {bars(stats['visits_by_category'], 'name', 'value') or '<p>No visits yet</p>'}
        <h2>Recent visits</h2>
        <ul>{recent}</ul>
        <h2>Badges</h2>
        <ul>{badges}</ul>
    </div>
</body>
</html>"""

    def _get_common_css(self) -> str:
        """Get common CSS styles."""
        return """
        * { box-sizing: border-box; }
        body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
               margin: 0; padding: 20px; background: #fff; }
        .container { max-width: 1200px; margin: 0 auto; }
        nav a { margin-right: 16px; color: #16a34a; text-decoration: none; font-weight: bold; }
        h1 { color: #16a34a; }
        .badge { padding: 2px 6px; border-radius: 4px; font-size: 12px; margin-right: 4px; }
        .gem { background: #4ade80; color: #064e3b; }
        .visited { background: #fbbf24; color: #78350f; }
        .fav { background: #f472b6; color: white; }
        .private { background: #6b7280; color: white; }
        .guest { background: #e5e7eb; color: #374151; }
        """

    def log_message(self, format: str, *args: object) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)


def start_browser(
    state: AppState,
    host: str = "127.0.0.1",
    port: int = 8080,
    open_browser: bool = True,
    map_config: MapConfig | None = None,
) -> None:
    """Start the location browser server.

    Args:
        state: Loaded application state.
        host: Server host.
        port: Server port.
        open_browser: Open browser automatically.
        map_config: Map defaults for the /map page.
    """
    LocationBrowserHandler.state = state
    LocationBrowserHandler.map_config = map_config
    if not state.guest:
        state.watch_stats()

    socketserver.TCPServer.allow_reuse_address = True

    with socketserver.TCPServer((host, port), LocationBrowserHandler) as httpd:
        url = f"http://{host}:{port}/"
        print(f"Location browser available at {url}")
        print("Press Ctrl+C to stop")

        if open_browser:
            webbrowser.open(url)

        try:
            httpd.serve_forever()
        except KeyboardInterrupt:
            print("\nBrowser stopped")
        finally:
            state.stop_watching_stats()
