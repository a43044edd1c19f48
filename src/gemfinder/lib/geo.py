"""Coordinate validation and GeoJSON helpers for gemfinder."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from gemfinder.models.location import Location

MIN_LATITUDE = -90.0
MAX_LATITUDE = 90.0
MIN_LONGITUDE = -180.0
MAX_LONGITUDE = 180.0

# Marker palette: (fill, stroke)
COMPLETED_STYLE = ("#fbbf24", "rgba(250, 204, 21, 0.7)")
HIDDEN_GEM_STYLE = ("#4ade80", "rgba(74, 222, 128, 0.7)")
DEFAULT_STYLE = ("#60a5fa", "rgba(96, 165, 250, 0.7)")


class CoordinateError(ValueError):
    """Raised when a coordinate cannot be parsed or is out of range."""


def parse_coordinate(value: str | float | int | None, label: str = "coordinate") -> float:
    """Parse a coordinate typed by the user.

    Args:
        value: Raw value (string from a form or CLI, or a number).
        label: Name used in error messages.

    Returns:
        Coordinate as float.

    Raises:
        CoordinateError: If the value is empty or not a number.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise CoordinateError(f"Please enter a {label}")
    try:
        result = float(value)
    except (TypeError, ValueError) as e:
        raise CoordinateError(f"{label.capitalize()} must be a number, got {value!r}") from e
    if result != result:  # NaN
        raise CoordinateError(f"{label.capitalize()} must be a number, got {value!r}")
    return result


def validate_coordinates(latitude: float, longitude: float) -> None:
    """Check latitude/longitude ranges (WGS84 degrees).

    Raises:
        CoordinateError: If either value is out of range.
    """
    if not MIN_LATITUDE <= latitude <= MAX_LATITUDE:
        raise CoordinateError(
            f"Latitude must be between {MIN_LATITUDE:g} and {MAX_LATITUDE:g}, got {latitude:g}"
        )
    if not MIN_LONGITUDE <= longitude <= MAX_LONGITUDE:
        raise CoordinateError(
            f"Longitude must be between {MIN_LONGITUDE:g} and {MAX_LONGITUDE:g}, got {longitude:g}"
        )


def marker_style(is_hidden_gem: bool, is_visited: bool) -> tuple[str, str]:
    """Pick marker fill and stroke colors.

    Visited locations show as completed (yellow) regardless of gem status;
    unvisited hidden gems are green.
    """
    if is_visited:
        return COMPLETED_STYLE
    if is_hidden_gem:
        return HIDDEN_GEM_STYLE
    return DEFAULT_STYLE


def location_to_feature(
    location: Location,
    visited: bool = False,
    favorite: bool = False,
) -> dict[str, Any]:
    """Convert a location into a GeoJSON point feature.

    Args:
        location: Location to convert.
        visited: Whether the current user has checked in.
        favorite: Whether the location is in the user's favorites.

    Returns:
        GeoJSON Feature dictionary.
    """
    fill, stroke = marker_style(location.is_hidden_gem, visited)
    return {
        "type": "Feature",
        "geometry": {
            "type": "Point",
            # GeoJSON order is [longitude, latitude]
            "coordinates": [location.longitude, location.latitude],
        },
        "properties": {
            "id": location.id,
            "name": location.name,
            "description": location.description,
            "area": location.area,
            "category_id": location.category_id,
            "difficulty_to_find": location.difficulty_to_find,
            "is_hidden_gem": location.is_hidden_gem,
            "is_private": location.is_private,
            "is_visited": visited,
            "is_favorite": favorite,
            "marker_color": fill,
            "marker_stroke": stroke,
        },
    }


def feature_collection(features: Iterable[dict[str, Any]]) -> dict[str, Any]:
    """Wrap features into a GeoJSON FeatureCollection."""
    return {"type": "FeatureCollection", "features": list(features)}


def map_bounds(
    points: list[tuple[float, float]],
    default_center: tuple[float, float] = (0.0, 0.0),
    default_zoom: int = 2,
) -> tuple[list[float], int]:
    """Compute a map center and rough zoom level for a set of points.

    Args:
        points: (latitude, longitude) pairs.
        default_center: Center used when there are no points.
        default_zoom: Zoom used when there are no points.

    Returns:
        Tuple of ([lat, lon] center, zoom).
    """
    if not points:
        return [default_center[0], default_center[1]], default_zoom

    lats = [p[0] for p in points]
    lngs = [p[1] for p in points]
    center = [(min(lats) + max(lats)) / 2, (min(lngs) + max(lngs)) / 2]

    span = max(max(lats) - min(lats), max(lngs) - min(lngs))
    if span < 0.01:
        zoom = 15
    elif span < 0.1:
        zoom = 13
    elif span < 1:
        zoom = 10
    elif span < 10:
        zoom = 7
    else:
        zoom = 4

    return center, zoom
