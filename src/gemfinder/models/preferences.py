"""Local-only user preferences: favorites, folders, and form drafts.

Preferences live in a flat JSON document under the user's directory and are
never synced to the data store. A missing or unreadable file yields empty
preferences.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from gemfinder.lib.paths import get_preferences_path, get_user_dir

logger = logging.getLogger("gemfinder.preferences")


@dataclass
class Folder:
    """A user-defined folder of locations."""

    id: str
    name: str
    location_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "locations": list(self.location_ids)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Folder:
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            location_ids=[str(i) for i in data.get("locations", [])],
        )


@dataclass
class Preferences:
    """Favorites, folders, and an in-progress add-location draft."""

    favorites: list[str] = field(default_factory=list)
    folders: list[Folder] = field(default_factory=list)
    draft: dict[str, Any] | None = None

    @property
    def favorite_ids(self) -> set[str]:
        return set(self.favorites)

    def is_favorite(self, location_id: str) -> bool:
        return location_id in self.favorites

    def toggle_favorite(self, location_id: str) -> bool:
        """Add or remove a favorite.

        Args:
            location_id: Location to toggle.

        Returns:
            True if the location is a favorite afterwards.
        """
        if location_id in self.favorites:
            self.favorites.remove(location_id)
            return False
        self.favorites.append(location_id)
        return True

    def find_folder(self, folder_ref: str) -> Folder | None:
        """Find a folder by id or, failing that, by name."""
        for folder in self.folders:
            if folder.id == folder_ref:
                return folder
        for folder in self.folders:
            if folder.name == folder_ref:
                return folder
        return None

    def create_folder(self, name: str) -> Folder:
        """Create a new empty folder.

        Args:
            name: Folder name (surrounding whitespace is stripped).

        Returns:
            The created folder.

        Raises:
            ValueError: If the name is blank.
        """
        name = name.strip()
        if not name:
            raise ValueError("Folder name must not be empty")

        folder_id = f"folder-{int(time.time() * 1000)}"
        # Keep ids unique when folders are created within the same millisecond
        existing = {f.id for f in self.folders}
        suffix = 1
        candidate = folder_id
        while candidate in existing:
            candidate = f"{folder_id}-{suffix}"
            suffix += 1

        folder = Folder(id=candidate, name=name)
        self.folders.append(folder)
        return folder

    def delete_folder(self, folder_ref: str) -> bool:
        """Delete a folder. Returns False if it did not exist."""
        folder = self.find_folder(folder_ref)
        if folder is None:
            return False
        self.folders = [f for f in self.folders if f.id != folder.id]
        return True

    def toggle_in_folder(self, location_id: str, folder_ref: str) -> bool:
        """Add a location to a folder, or remove it if already there.

        Returns:
            True if the location is in the folder afterwards.

        Raises:
            KeyError: If the folder does not exist.
        """
        folder = self._require_folder(folder_ref)
        if location_id in folder.location_ids:
            folder.location_ids.remove(location_id)
            return False
        folder.location_ids.append(location_id)
        return True

    def remove_from_folder(self, location_id: str, folder_ref: str) -> None:
        folder = self._require_folder(folder_ref)
        folder.location_ids = [i for i in folder.location_ids if i != location_id]

    def folder_locations(self, folder_ref: str) -> list[str]:
        """Location ids in a folder (empty for an unknown folder)."""
        folder = self.find_folder(folder_ref)
        return list(folder.location_ids) if folder else []

    def forget_location(self, location_id: str) -> None:
        """Drop a deleted location from favorites and all folders."""
        self.favorites = [i for i in self.favorites if i != location_id]
        for folder in self.folders:
            folder.location_ids = [i for i in folder.location_ids if i != location_id]

    def save_draft(self, fields: dict[str, Any]) -> None:
        self.draft = dict(fields)

    def clear_draft(self) -> None:
        self.draft = None

    def _require_folder(self, folder_ref: str) -> Folder:
        folder = self.find_folder(folder_ref)
        if folder is None:
            raise KeyError(f"Folder not found: {folder_ref}")
        return folder

    def to_dict(self) -> dict[str, Any]:
        return {
            "favorites": list(self.favorites),
            "folders": [f.to_dict() for f in self.folders],
            "draft": self.draft,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Preferences:
        return cls(
            favorites=[str(i) for i in data.get("favorites", [])],
            folders=[Folder.from_dict(f) for f in data.get("folders", [])],
            draft=data.get("draft"),
        )


def load_preferences(data_dir: Path, user_id: str) -> Preferences:
    """Load preferences for a user.

    Args:
        data_dir: Base data directory.
        user_id: User identifier.

    Returns:
        Preferences instance (empty if nothing stored yet).
    """
    prefs_path = get_preferences_path(get_user_dir(data_dir, user_id))
    if not prefs_path.exists():
        return Preferences()

    try:
        with open(prefs_path) as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Could not read preferences %s, starting fresh: %s", prefs_path, e)
        return Preferences()

    return Preferences.from_dict(data)


def save_preferences(data_dir: Path, user_id: str, prefs: Preferences) -> Path:
    """Save preferences for a user.

    Args:
        data_dir: Base data directory.
        user_id: User identifier.
        prefs: Preferences to save.

    Returns:
        Path to saved file.
    """
    user_dir = get_user_dir(data_dir, user_id)
    user_dir.mkdir(parents=True, exist_ok=True)

    prefs_path = get_preferences_path(user_dir)
    with open(prefs_path, "w") as f:
        json.dump(prefs.to_dict(), f, indent=2)

    return prefs_path
