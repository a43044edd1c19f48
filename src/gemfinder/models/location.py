"""Location model and seed data.

Locations are loaded once per session into the location directory. Seeded
locations come from ``gemfinder init``; user-submitted ones are created with
``gemfinder locations add`` or the browser.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from gemfinder.lib.dates import format_timestamp, parse_timestamp

UNKNOWN_AREA = "Unknown Area"
UNKNOWN_LOCATION = "Unknown Location"
UNKNOWN_CATEGORY = "Unknown Category"

SORT_OPTIONS = ("recent", "difficulty", "name")

DIFFICULTY_LABELS = {
    1: "Very easy to find",
    2: "Easy to find",
    3: "Moderate difficulty",
    4: "Hard to find",
    5: "Very hard to find",
}


@dataclass
class Location:
    """A point of interest on the map."""

    id: str
    name: str
    latitude: float
    longitude: float
    description: str | None = None
    address: str | None = None
    city_id: str | None = None
    category_id: str | None = None
    is_hidden_gem: bool = False
    difficulty_to_find: int | None = None
    image_url: str | None = None
    area: str | None = None
    is_private: bool = False
    is_user_uploaded: bool = False
    owner_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def area_label(self) -> str:
        """Area for display, with a placeholder when unknown."""
        return self.area or UNKNOWN_AREA

    @property
    def difficulty_label(self) -> str:
        """Human readable difficulty."""
        if self.difficulty_to_find is None:
            return ""
        return DIFFICULTY_LABELS.get(self.difficulty_to_find, "")

    def is_owned_by(self, user_id: str | None) -> bool:
        """Check whether a user may mutate this location."""
        return bool(self.is_user_uploaded and user_id and self.owner_id == user_id)

    def to_dict(self) -> dict[str, Any]:
        """Convert location to dictionary for JSON serialization.

        Returns:
            Dictionary representation.
        """
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "address": self.address,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "city_id": self.city_id,
            "category_id": self.category_id,
            "is_hidden_gem": self.is_hidden_gem,
            "difficulty_to_find": self.difficulty_to_find,
            "image_url": self.image_url,
            "area": self.area,
            "is_private": self.is_private,
            "is_user_uploaded": self.is_user_uploaded,
            "owner_id": self.owner_id,
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Location:
        """Create a Location from a store row.

        Args:
            data: Dictionary with location data.

        Returns:
            Location instance.
        """
        difficulty = data.get("difficulty_to_find")
        return cls(
            id=str(data["id"]),
            name=data.get("name") or UNKNOWN_LOCATION,
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            description=data.get("description"),
            address=data.get("address"),
            city_id=data.get("city_id"),
            category_id=data.get("category_id"),
            is_hidden_gem=bool(data.get("is_hidden_gem", False)),
            difficulty_to_find=int(difficulty) if difficulty is not None else None,
            image_url=data.get("image_url"),
            area=data.get("area"),
            is_private=bool(data.get("is_private", False)),
            is_user_uploaded=bool(data.get("is_user_uploaded", False)),
            owner_id=data.get("owner_id"),
            created_at=parse_timestamp(data.get("created_at")),
            updated_at=parse_timestamp(data.get("updated_at")),
        )


@dataclass
class Category:
    """A location category (park, museum, ...)."""

    id: str
    name: str
    icon_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "icon_name": self.icon_name}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Category:
        return cls(
            id=str(data["id"]),
            name=data.get("name") or UNKNOWN_CATEGORY,
            icon_name=data.get("icon_name"),
        )


def sort_locations(locations: Iterable[Location], sort_by: str = "recent") -> list[Location]:
    """Sort locations for the explore listing.

    Args:
        locations: Locations to sort.
        sort_by: "recent" (id descending), "difficulty" (hardest first,
            unrated last) or "name".

    Returns:
        New sorted list.
    """
    if sort_by not in SORT_OPTIONS:
        raise ValueError(f"Unknown sort option {sort_by!r} (expected one of: {', '.join(SORT_OPTIONS)})")

    items = list(locations)
    if sort_by == "recent":
        return sorted(items, key=lambda loc: str(loc.id), reverse=True)
    if sort_by == "difficulty":
        return sorted(items, key=lambda loc: loc.difficulty_to_find or 0, reverse=True)
    return sorted(items, key=lambda loc: loc.name.casefold())


def private_locations(locations: Iterable[Location]) -> list[Location]:
    """Locations marked private."""
    return [loc for loc in locations if loc.is_private]


def public_locations(locations: Iterable[Location]) -> list[Location]:
    """User-submitted locations shared publicly."""
    return [loc for loc in locations if not loc.is_private and loc.is_user_uploaded]


def visible_locations(locations: Iterable[Location], user_id: str | None) -> list[Location]:
    """Locations a user may see: everything public plus their own private ones."""
    return [loc for loc in locations if not loc.is_private or loc.owner_id == user_id]


# Seed data: a starter set of San Francisco locations
SEED_CATEGORIES: list[dict[str, Any]] = [
    {"id": "restaurant", "name": "Restaurant", "icon_name": "utensils"},
    {"id": "park", "name": "Park", "icon_name": "trees"},
    {"id": "museum", "name": "Museum", "icon_name": "landmark"},
    {"id": "cafe", "name": "Cafe", "icon_name": "coffee"},
    {"id": "landmark", "name": "Landmark", "icon_name": "map-pin"},
    {"id": "shop", "name": "Shop", "icon_name": "shopping-bag"},
]

SEED_LOCATIONS: list[dict[str, Any]] = [
    {
        "id": "1",
        "name": "Golden Gate Park",
        "description": "Sprawling urban park with gardens, museums, and trails",
        "category_id": "park",
        "latitude": 37.7694,
        "longitude": -122.4836,
        "area": "Richmond",
        "is_hidden_gem": False,
    },
    {
        "id": "2",
        "name": "Fisherman's Wharf",
        "description": "Popular waterfront area with shops and restaurants",
        "category_id": "landmark",
        "latitude": 37.8080,
        "longitude": -122.4169,
        "area": "North Beach",
        "is_hidden_gem": False,
    },
    {
        "id": "3",
        "name": "City Lights Bookstore",
        "description": "Historic independent bookstore and publisher",
        "category_id": "shop",
        "latitude": 37.7973,
        "longitude": -122.4067,
        "area": "North Beach",
        "is_hidden_gem": True,
        "difficulty_to_find": 2,
    },
    {
        "id": "4",
        "name": "Balmy Alley Murals",
        "description": "Vibrant street art in the Mission District",
        "category_id": "landmark",
        "latitude": 37.7517,
        "longitude": -122.4121,
        "area": "Mission",
        "is_hidden_gem": True,
        "difficulty_to_find": 3,
    },
    {
        "id": "5",
        "name": "Sutro Baths Ruins",
        "description": "Historic bath house ruins with ocean views",
        "category_id": "landmark",
        "latitude": 37.7810,
        "longitude": -122.5151,
        "area": "Outer Richmond",
        "is_hidden_gem": True,
        "difficulty_to_find": 3,
    },
    {
        "id": "6",
        "name": "Ferry Building Marketplace",
        "description": "Food hall and farmers market in historic ferry terminal",
        "category_id": "shop",
        "latitude": 37.7956,
        "longitude": -122.3933,
        "area": "Embarcadero",
        "is_hidden_gem": False,
    },
    {
        "id": "7",
        "name": "The Wave Organ",
        "description": "Wave-activated acoustic sculpture on the bay",
        "category_id": "landmark",
        "latitude": 37.8086,
        "longitude": -122.4401,
        "area": "Marina",
        "is_hidden_gem": True,
        "difficulty_to_find": 4,
    },
    {
        "id": "8",
        "name": "Twin Peaks",
        "description": "Famous hills offering panoramic views of the city",
        "category_id": "landmark",
        "latitude": 37.7544,
        "longitude": -122.4477,
        "area": "Twin Peaks",
        "is_hidden_gem": False,
    },
]
