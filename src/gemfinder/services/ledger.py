"""Visit ledger for gemfinder.

Tracks which locations the current user has checked into and keeps the
per-category and per-month counters in step with visit events. Local state is
updated only after the store accepted every write of a check-in.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from gemfinder.lib.dates import now_utc
from gemfinder.models.visit import CategoryStat, VisitEvent, VisitHistoryBucket
from gemfinder.services.store import DuplicateRecordError, RecordNotFoundError, StoreError

if TYPE_CHECKING:
    from gemfinder.models.location import Location
    from gemfinder.services.directory import LocationDirectory
    from gemfinder.services.store import DataStore

logger = logging.getLogger("gemfinder.ledger")

MIN_RATING = 1
MAX_RATING = 5


def _check_rating(rating: int | None) -> int | None:
    if rating is None:
        return None
    if not MIN_RATING <= int(rating) <= MAX_RATING:
        raise ValueError(f"Rating must be between {MIN_RATING} and {MAX_RATING}, got {rating}")
    return int(rating)


class VisitLedger:
    """Store-backed set of visited locations for one user."""

    def __init__(self, store: DataStore, user_id: str, directory: LocationDirectory) -> None:
        self.store = store
        self.user_id = user_id
        self.directory = directory
        self.error: str | None = None
        self._events: dict[str, VisitEvent] = {}

    def load(self) -> bool:
        """Load the user's visit events.

        Returns:
            True on success; on failure the ledger is empty and ``error`` set.
        """
        self.error = None
        try:
            rows = self.store.select("location_visits", {"user_id": self.user_id})
        except StoreError as e:
            logger.error("Failed to load visits for %s: %s", self.user_id, e)
            self.error = "Failed to load visited locations"
            self._events = {}
            return False

        self._events = {}
        for row in rows:
            event = VisitEvent.from_dict(row)
            self._events[event.location_id] = event
        return True

    def is_visited(self, location_id: str) -> bool:
        return str(location_id) in self._events

    @property
    def visited_ids(self) -> set[str]:
        return set(self._events)

    def events(self) -> list[VisitEvent]:
        return list(self._events.values())

    def check_in(
        self,
        location_id: str,
        rating: int | None = None,
        notes: str | None = None,
        visited_at: datetime | None = None,
    ) -> VisitEvent | None:
        """Record a visit and bump the category and monthly counters.

        Args:
            location_id: Location being checked into.
            rating: Optional 1-5 rating.
            notes: Optional free-text notes.
            visited_at: Visit time (defaults to now).

        Returns:
            The new visit event, or None if the location was already visited.

        Raises:
            LocationNotFoundError: Unknown location.
            ValueError: Rating out of range.
            StoreError: A write failed; nothing is recorded.
        """
        location = self.directory.require(location_id)
        if self.is_visited(location.id):
            logger.info("%s already visited", location.name)
            return None

        event = VisitEvent(
            user_id=self.user_id,
            location_id=location.id,
            visited_at=visited_at or now_utc(),
            is_gem=location.is_hidden_gem,
            rating=_check_rating(rating),
            notes=notes or None,
        )

        try:
            stored = self.store.insert("location_visits", event.to_dict())
        except DuplicateRecordError:
            # Visited from another session; adopt the stored event
            row = self.store.select_one(
                "location_visits", {"user_id": self.user_id, "location_id": location.id}
            )
            self._events[location.id] = VisitEvent.from_dict(row)
            return None
        event.id = str(stored["id"]) if stored.get("id") is not None else None

        category_done = False
        try:
            if location.category_id:
                self._adjust_category(location.category_id, 1, event.visited_at)
                category_done = True
            self._adjust_history(event.visit_year, event.visit_month, 1)
        except StoreError as e:
            logger.error("Counter update failed for %s, rolling back visit: %s", location.name, e)
            self._compensate(location, event, category_done)
            raise

        self._events[location.id] = event
        logger.info("Checked in at %s", location.name)
        return event

    def undo_check_in(self, location_id: str) -> bool:
        """Remove a visit and decrement its counters.

        Counters are decremented before the visit is deleted; if any write
        fails, the counters already decremented are restored and the visit
        stays recorded.

        Returns:
            False if the location was not visited.

        Raises:
            StoreError: A write failed; nothing is removed.
        """
        location_id = str(location_id)
        event = self._events.get(location_id)
        if event is None:
            return False

        location = self.directory.get(location_id)
        category_id = location.category_id if location is not None else None
        category_done = history_done = False
        try:
            if category_id:
                self._adjust_category(category_id, -1, event.visited_at)
                category_done = True
            self._adjust_history(event.visit_year, event.visit_month, -1)
            history_done = True
            self.store.delete("location_visits", {"user_id": self.user_id, "location_id": location_id})
        except StoreError as e:
            logger.error("Removing visit to %s failed, restoring counters: %s", location_id, e)
            self._restore_counters(event, category_id if category_done else None, history_done)
            raise

        del self._events[location_id]
        logger.info("Removed visit to %s", location.name if location else location_id)
        return True

    def _compensate(self, location: Location, event: VisitEvent, category_done: bool) -> None:
        try:
            self.store.delete("location_visits", {"user_id": self.user_id, "location_id": location.id})
            if category_done and location.category_id:
                self._adjust_category(location.category_id, -1, event.visited_at)
        except StoreError as e:
            logger.error("Rollback of visit to %s failed: %s", location.name, e)

    def _restore_counters(self, event: VisitEvent, category_id: str | None, history: bool) -> None:
        try:
            if category_id:
                self._adjust_category(category_id, 1, event.visited_at)
            if history:
                self._adjust_history(event.visit_year, event.visit_month, 1)
        except StoreError as e:
            logger.error("Restoring counters for %s failed: %s", event.location_id, e)

    def _adjust_counter(self, table: str, key: dict[str, object], delta: int, new_row: dict[str, object]) -> None:
        filters = {"user_id": self.user_id, **key}
        try:
            row = self.store.select_one(table, filters)
        except RecordNotFoundError:
            if delta <= 0:
                logger.debug("No %s row for %s to decrement", table, key)
                return
            self.store.insert(table, new_row)
            return

        count = int(row.get("visit_count") or 0) + delta
        if count <= 0:
            self.store.delete(table, {"id": row["id"]})
            return
        values: dict[str, object] = {"visit_count": count}
        if delta > 0 and new_row.get("last_visit_at"):
            values["last_visit_at"] = new_row["last_visit_at"]
        self.store.update(table, {"id": row["id"]}, values)

    def _adjust_category(self, category_id: str, delta: int, visited_at: datetime) -> None:
        stat = CategoryStat(
            user_id=self.user_id,
            category_id=category_id,
            visit_count=delta,
            last_visit_at=visited_at,
        )
        self._adjust_counter("category_stats", {"category_id": category_id}, delta, stat.to_dict())

    def _adjust_history(self, year: int, month: int, delta: int) -> None:
        bucket = VisitHistoryBucket(user_id=self.user_id, year=year, month=month, visit_count=delta)
        self._adjust_counter("visit_history", {"year": year, "month": month}, delta, bucket.to_dict())


class GuestLedger:
    """In-memory ledger for guest sessions. Never touches the store."""

    def __init__(self, directory: LocationDirectory, user_id: str = "guest") -> None:
        self.directory = directory
        self.user_id = user_id
        self.error: str | None = None
        self._events: dict[str, VisitEvent] = {}
        self._category_counts: dict[str, CategoryStat] = {}

    def load(self) -> bool:
        return True

    def is_visited(self, location_id: str) -> bool:
        return str(location_id) in self._events

    @property
    def visited_ids(self) -> set[str]:
        return set(self._events)

    def events(self) -> list[VisitEvent]:
        return list(self._events.values())

    def category_stats(self) -> list[CategoryStat]:
        return list(self._category_counts.values())

    def check_in(
        self,
        location_id: str,
        rating: int | None = None,
        notes: str | None = None,
        visited_at: datetime | None = None,
    ) -> VisitEvent | None:
        location = self.directory.require(location_id)
        if self.is_visited(location.id):
            return None

        event = VisitEvent(
            user_id=self.user_id,
            location_id=location.id,
            visited_at=visited_at or now_utc(),
            is_gem=location.is_hidden_gem,
            rating=_check_rating(rating),
            notes=notes or None,
        )
        self._events[location.id] = event

        if location.category_id:
            stat = self._category_counts.setdefault(
                location.category_id,
                CategoryStat(user_id=self.user_id, category_id=location.category_id),
            )
            stat.visit_count += 1
            stat.last_visit_at = event.visited_at
        return event

    def undo_check_in(self, location_id: str) -> bool:
        event = self._events.pop(str(location_id), None)
        if event is None:
            return False

        location = self.directory.get(event.location_id)
        if location is not None and location.category_id in self._category_counts:
            stat = self._category_counts[location.category_id]
            stat.visit_count -= 1
            if stat.visit_count <= 0:
                del self._category_counts[location.category_id]
        return True
