"""Location directory for gemfinder.

Holds the list of locations loaded once per session and mediates every
location mutation. Validation and ownership checks happen before the data
store is contacted.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from gemfinder.lib.dates import now_utc
from gemfinder.lib.geo import CoordinateError, parse_coordinate, validate_coordinates
from gemfinder.models.location import Category, Location, visible_locations
from gemfinder.services.store import DataStore, StoreError

logger = logging.getLogger("gemfinder.directory")

MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 5

# Fields an owner may change with update_location
EDITABLE_FIELDS = (
    "name",
    "description",
    "address",
    "latitude",
    "longitude",
    "category_id",
    "difficulty_to_find",
    "image_url",
    "area",
    "is_private",
)


class ValidationError(ValueError):
    """Raised when user input is rejected before any store call."""


class OwnershipError(PermissionError):
    """Raised when a user tries to mutate a location they do not own."""


class LocationNotFoundError(LookupError):
    """Raised when a location id is not in the directory."""


def _validate_name(name: str | None) -> str:
    if name is None or not name.strip():
        raise ValidationError("Please enter a title")
    return name.strip()


def _validate_point(latitude: Any, longitude: Any) -> tuple[float, float]:
    try:
        lat = parse_coordinate(latitude, "latitude")
        lon = parse_coordinate(longitude, "longitude")
        validate_coordinates(lat, lon)
    except CoordinateError as e:
        raise ValidationError(str(e)) from e
    return lat, lon


def _validate_difficulty(difficulty: Any) -> int | None:
    if difficulty is None or difficulty == "":
        return None
    try:
        value = int(difficulty)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Difficulty must be a whole number, got {difficulty!r}") from e
    if not MIN_DIFFICULTY <= value <= MAX_DIFFICULTY:
        raise ValidationError(
            f"Difficulty must be between {MIN_DIFFICULTY} and {MAX_DIFFICULTY}, got {value}"
        )
    return value


class LocationDirectory:
    """In-memory list of locations shared by all views."""

    def __init__(self, store: DataStore, user_id: str | None = None, guest: bool = False) -> None:
        """Initialize the directory.

        Args:
            store: Data store to load from and write to.
            user_id: Current user, or None when signed out.
            guest: Guest sessions keep added locations in memory only.
        """
        self.store = store
        self.user_id = user_id
        self.guest = guest
        self.error: str | None = None
        self._locations: dict[str, Location] = {}
        self._categories: dict[str, Category] = {}

    @property
    def locations(self) -> list[Location]:
        return list(self._locations.values())

    @property
    def categories(self) -> dict[str, Category]:
        return dict(self._categories)

    def load(self) -> bool:
        """Load locations and categories from the store.

        A failed read leaves an empty directory and records ``error``.

        Returns:
            True if loading succeeded.
        """
        self.error = None
        try:
            rows = self.store.select("locations")
            category_rows = self.store.select("categories")
        except StoreError as e:
            logger.error("Failed to load locations: %s", e)
            self.error = "Failed to load locations"
            self._locations = {}
            self._categories = {}
            return False

        self._locations = {}
        for row in rows:
            try:
                location = Location.from_dict(row)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed location row %s: %s", row.get("id"), e)
                continue
            self._locations[location.id] = location

        self._categories = {str(r["id"]): Category.from_dict(r) for r in category_rows if "id" in r}
        logger.debug("Loaded %d locations, %d categories", len(self._locations), len(self._categories))
        return True

    def get(self, location_id: str) -> Location | None:
        return self._locations.get(str(location_id))

    def require(self, location_id: str) -> Location:
        """Get a location or raise LocationNotFoundError."""
        location = self.get(location_id)
        if location is None:
            raise LocationNotFoundError(f"Location not found: {location_id}")
        return location

    def visible(self) -> list[Location]:
        """Locations the current user may see."""
        return visible_locations(self._locations.values(), self.user_id)

    def category_name(self, category_id: str | None) -> str | None:
        if category_id is None:
            return None
        category = self._categories.get(category_id)
        return category.name if category else None

    def add_location(
        self,
        name: str,
        latitude: Any,
        longitude: Any,
        description: str | None = None,
        difficulty: Any = 1,
        is_private: bool = True,
        area: str | None = None,
        category_id: str | None = None,
        address: str | None = None,
        city_id: str | None = None,
    ) -> Location:
        """Validate and add a user-submitted location.

        Args:
            name: Title (required).
            latitude: Latitude in degrees (string or number).
            longitude: Longitude in degrees (string or number).
            description: Optional description.
            difficulty: Difficulty to find, 1-5.
            is_private: Private gems are only visible to their owner.
            area: Optional neighborhood label.
            category_id: Optional category.
            address: Optional street address.
            city_id: Optional city reference.

        Returns:
            The stored location.

        Raises:
            ValidationError: On bad input; nothing is written.
            OwnershipError: When no user is signed in.
            StoreError: When the write fails.
        """
        clean_name = _validate_name(name)
        lat, lon = _validate_point(latitude, longitude)
        difficulty_value = _validate_difficulty(difficulty)

        if not self.user_id and not self.guest:
            raise OwnershipError("You must be signed in to add a location")

        row: dict[str, Any] = {
            "name": clean_name,
            "description": (description or "").strip() or None,
            "address": address,
            "latitude": lat,
            "longitude": lon,
            "city_id": city_id,
            "category_id": category_id,
            "is_hidden_gem": True,
            "difficulty_to_find": difficulty_value,
            "image_url": None,
            "area": area,
            "is_private": is_private,
            "is_user_uploaded": True,
            "owner_id": self.user_id,
        }

        if self.guest:
            row["id"] = f"guest-{uuid.uuid4()}"
            row["created_at"] = now_utc().isoformat()
            stored = row
            logger.info("Added guest location %s (not persisted)", clean_name)
        else:
            stored = self.store.insert("locations", row)
            logger.info("Added location %s (%s)", clean_name, stored.get("id"))

        location = Location.from_dict(stored)
        self._locations[location.id] = location
        return location

    def require_owned(self, location_id: str) -> Location:
        """Get a location the current user may change.

        Raises:
            LocationNotFoundError: Unknown id.
            OwnershipError: Seeded location, someone else's, or signed out.
        """
        location = self.require(location_id)
        if not self.user_id and not self.guest:
            raise OwnershipError("You must be signed in to change a location")
        if not location.is_user_uploaded:
            raise OwnershipError(f"{location.name} is a built-in location and cannot be changed")
        if location.owner_id != self.user_id:
            raise OwnershipError(f"{location.name} belongs to another user")
        return location

    def update_location(self, location_id: str, **fields: Any) -> Location:
        """Update a location owned by the current user.

        Raises:
            LocationNotFoundError: Unknown id.
            OwnershipError: Not uploaded by the current user.
            ValidationError: On bad input.
        """
        location = self.require_owned(location_id)

        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        values = dict(fields)
        if "name" in values:
            values["name"] = _validate_name(values["name"])
        if "latitude" in values or "longitude" in values:
            lat, lon = _validate_point(
                values.get("latitude", location.latitude),
                values.get("longitude", location.longitude),
            )
            values["latitude"], values["longitude"] = lat, lon
        if "difficulty_to_find" in values:
            values["difficulty_to_find"] = _validate_difficulty(values["difficulty_to_find"])

        if self.guest or location.id.startswith("guest-"):
            merged = {**location.to_dict(), **values}
        else:
            rows = self.store.update("locations", {"id": location.id}, values)
            if not rows:
                raise LocationNotFoundError(f"Location not found in store: {location_id}")
            merged = rows[0]

        updated = Location.from_dict(merged)
        self._locations[updated.id] = updated
        return updated

    def delete_location(self, location_id: str) -> Location:
        """Delete a location uploaded by the current user.

        Ownership is checked locally; refused deletions never reach the store.

        Raises:
            LocationNotFoundError: Unknown id.
            OwnershipError: Seeded location, or owned by someone else.
            StoreError: When the delete fails.
        """
        location = self.require_owned(location_id)

        if not (self.guest or location.id.startswith("guest-")):
            self.store.delete("locations", {"id": location.id})

        del self._locations[location.id]
        logger.info("Deleted location %s", location.name)
        return location
