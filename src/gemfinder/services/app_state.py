"""Session state shared by the CLI and the browser.

``AppState`` owns the location directory, the visit ledger (store-backed or
guest) and the user's local preferences. Every mutation goes through it so
listeners and the notice list see a consistent picture.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date
from pathlib import Path
from typing import Any

from gemfinder.lib.paths import GUEST_USER
from gemfinder.models.location import Location
from gemfinder.models.preferences import Preferences, load_preferences, save_preferences
from gemfinder.models.visit import Badge, VisitEvent
from gemfinder.services.badges import award_badges
from gemfinder.services.directory import (
    LocationDirectory,
    LocationNotFoundError,
    OwnershipError,
    ValidationError,
)
from gemfinder.services.ledger import GuestLedger, VisitLedger
from gemfinder.services.store import DataStore, StoreError
from gemfinder.views.stats import StatsWatcher, UserStats, calculate_stats, compute_stats

logger = logging.getLogger("gemfinder.app_state")

Listener = Callable[[str], None]

# Fields accepted when adding a location, and kept in a form draft
ADD_LOCATION_FIELDS = (
    "name",
    "latitude",
    "longitude",
    "description",
    "difficulty",
    "is_private",
    "area",
    "category_id",
    "address",
)


class AppState:
    """Explicit application context for one user session."""

    def __init__(
        self,
        store: DataStore,
        data_dir: Path,
        user_id: str | None = None,
        guest: bool = False,
    ) -> None:
        """Initialize the session.

        Args:
            store: Data store.
            data_dir: Base data directory (for preferences).
            user_id: Signed-in user; without one the session runs as guest.
            guest: Force guest mode even when a user is configured.
        """
        self.store = store
        self.data_dir = data_dir
        self.user_id = user_id or None
        self.guest = guest or not self.user_id
        self.notices: list[tuple[str, str]] = []
        self.new_badges: list[Badge] = []
        self._listeners: list[Listener] = []
        self._stats_watcher: StatsWatcher | None = None

        self.directory = LocationDirectory(store, self.session_user, guest=self.guest)
        self.ledger: VisitLedger | GuestLedger = self._make_ledger()
        self.preferences: Preferences = load_preferences(data_dir, self.session_user)

    @property
    def session_user(self) -> str:
        """User id for this session (the guest placeholder in guest mode)."""
        if self.guest or not self.user_id:
            return GUEST_USER
        return self.user_id

    def _make_ledger(self) -> VisitLedger | GuestLedger:
        if self.guest:
            return GuestLedger(self.directory, user_id=GUEST_USER)
        return VisitLedger(self.store, self.session_user, self.directory)

    # Notifications

    def notify(self, level: str, message: str) -> None:
        """Record a transient notice (success, info, warning or error)."""
        self.notices.append((level, message))
        logger.debug("Notice (%s): %s", level, message)

    def pop_notices(self) -> list[tuple[str, str]]:
        notices, self.notices = self.notices, []
        return notices

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener called with a change kind after each mutation.

        Returns:
            Function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, kind: str) -> None:
        for listener in list(self._listeners):
            listener(kind)

    # Loading

    def load(self) -> bool:
        """Load locations and visits. Failures become notices.

        Returns:
            True if everything loaded.
        """
        ok = self.directory.load()
        if not ok and self.directory.error:
            self.notify("error", self.directory.error)
        if not self.ledger.load():
            ok = False
            if self.ledger.error:
                self.notify("error", self.ledger.error)
        self._emit("loaded")
        return ok

    @property
    def visited_ids(self) -> set[str]:
        return self.ledger.visited_ids

    def is_visited(self, location_id: str) -> bool:
        return self.ledger.is_visited(location_id)

    def visible_locations(self) -> list[Location]:
        return self.directory.visible()

    # Visits

    def mark_visited(
        self,
        location_id: str,
        rating: int | None = None,
        notes: str | None = None,
    ) -> VisitEvent | None:
        """Check into a location.

        Returns:
            The visit event, or None if it was already visited.

        Raises:
            LocationNotFoundError, ValueError, StoreError: The check-in failed
                (a notice is recorded as well).
        """
        try:
            event = self.ledger.check_in(location_id, rating=rating, notes=notes)
        except LocationNotFoundError as e:
            self.notify("error", str(e))
            raise
        except ValueError as e:
            self.notify("error", str(e))
            raise
        except StoreError as e:
            self.notify("error", f"Failed to mark location as visited: {e}")
            raise

        location = self.directory.require(location_id)
        if event is None:
            self.notify("info", f"{location.name} is already marked as visited")
            return None

        self.notify("success", f"Location marked as visited: {location.name}")
        self.new_badges = []
        if not self.guest:
            self.new_badges = award_badges(self.store, self.session_user)
            for badge in self.new_badges:
                self.notify("success", f"Badge earned: {badge.name}")
        self._emit("visits")
        return event

    def unmark_visited(self, location_id: str) -> bool:
        """Undo a check-in.

        Returns:
            False if the location was not visited.
        """
        try:
            removed = self.ledger.undo_check_in(location_id)
        except StoreError as e:
            self.notify("error", f"Failed to update visit status: {e}")
            raise

        if removed:
            self.notify("success", "Location unmarked as visited")
            self._emit("visits")
        return removed

    # Locations

    def add_location(self, **fields: Any) -> Location:
        """Add a user-submitted location (see LocationDirectory.add_location)."""
        try:
            location = self.directory.add_location(**fields)
        except (ValidationError, OwnershipError) as e:
            self.notify("error", str(e))
            raise
        except StoreError as e:
            self.notify("error", f"Failed to add location: {e}")
            raise

        self.preferences.clear_draft()
        self._save_preferences()
        self.notify("success", f"Location added: {location.name}")
        self._emit("locations")
        return location

    def delete_location(self, location_id: str) -> Location:
        """Delete an owned location, its visit, and its preference entries.

        The user's visit is removed first so its counters are decremented
        while the location is still known; if the location delete then
        fails, the visit is recorded again with its original timestamp.
        """
        try:
            location = self.directory.require_owned(location_id)
            event = next((e for e in self.ledger.events() if e.location_id == location.id), None)
            if event is not None:
                self.ledger.undo_check_in(location.id)
            try:
                self.directory.delete_location(location.id)
            except StoreError:
                if event is not None:
                    self._restore_visit(event)
                raise
        except (LocationNotFoundError, OwnershipError) as e:
            self.notify("error", str(e))
            raise
        except StoreError as e:
            self.notify("error", f"Failed to delete location: {e}")
            raise

        self.preferences.forget_location(location.id)
        self._save_preferences()
        self.notify("success", f"Location deleted: {location.name}")
        self._emit("locations")
        return location

    def _restore_visit(self, event: VisitEvent) -> None:
        try:
            self.ledger.check_in(
                event.location_id,
                rating=event.rating,
                notes=event.notes,
                visited_at=event.visited_at,
            )
        except StoreError as e:
            logger.error("Could not restore visit to %s: %s", event.location_id, e)
            self.notify("warning", "Your visit to this location could not be restored")

    def save_draft(self, fields: dict[str, Any]) -> dict[str, Any]:
        """Keep an unfinished add-location form for later.

        Only add-location fields with a value are kept.
        """
        draft = {k: v for k, v in fields.items() if k in ADD_LOCATION_FIELDS and v not in (None, "")}
        self.update_preferences(lambda prefs: prefs.save_draft(draft))
        return draft

    # Preferences

    def toggle_favorite(self, location_id: str) -> bool:
        """Add or remove a favorite. Returns True if it is now a favorite."""
        location = self.directory.require(location_id)
        now_favorite = self.preferences.toggle_favorite(location.id)
        self._save_preferences()
        self.notify("success", f"{'Added to' if now_favorite else 'Removed from'} favorites: {location.name}")
        self._emit("preferences")
        return now_favorite

    def update_preferences(self, change: Callable[[Preferences], Any]) -> Any:
        """Apply a change to preferences and persist them."""
        result = change(self.preferences)
        self._save_preferences()
        self._emit("preferences")
        return result

    def _save_preferences(self) -> None:
        try:
            save_preferences(self.data_dir, self.session_user, self.preferences)
        except OSError as e:
            self.notify("warning", f"Could not save preferences: {e}")

    # Guest mode

    def set_guest_mode(self, enabled: bool) -> None:
        """Switch guest mode on or off. The visited set starts over.

        Raises:
            ValueError: Turning guest mode off without a configured user.
        """
        if not enabled and not self.user_id:
            raise ValueError("No user configured; cannot leave guest mode")

        self.stop_watching_stats()
        self.guest = enabled
        self.directory.user_id = self.session_user
        self.directory.guest = enabled
        self.ledger = self._make_ledger()
        self.ledger.load()
        self.preferences = load_preferences(self.data_dir, self.session_user)
        self.notify("info", "Guest mode enabled" if enabled else "Guest mode disabled")
        self._emit("guest")

    # Stats

    def stats(self, today: date | None = None) -> tuple[UserStats, str | None]:
        """Current user's stats and an error message if fetching failed.

        While a stats watcher is active its pushed result is returned instead
        of fetching again.
        """
        if isinstance(self.ledger, GuestLedger):
            return compute_stats(
                self.ledger.events(),
                self.directory.visible(),
                category_stats=self.ledger.category_stats(),
                categories=self.directory.categories,
                today=today,
            ), None
        if self._stats_watcher is not None and today is None:
            return self._stats_watcher.stats, self._stats_watcher.error
        return calculate_stats(
            self.store, self.session_user, locations=self.directory.visible(), today=today
        )

    def watch_stats(
        self,
        on_update: Callable[[UserStats, str | None], None] | None = None,
    ) -> StatsWatcher:
        """Keep stats fresh from store change notifications.

        Raises:
            ValueError: In guest mode, where nothing is synced.
        """
        if self.guest:
            raise ValueError("Stats are not synced in guest mode")
        self.stop_watching_stats()
        self._stats_watcher = StatsWatcher(
            self.store, self.session_user, on_update, locations=self.directory.visible
        )
        return self._stats_watcher

    def stop_watching_stats(self) -> None:
        if self._stats_watcher is not None:
            self._stats_watcher.close()
            self._stats_watcher = None
