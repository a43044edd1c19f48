"""Record-oriented data store interface for gemfinder.

The data store is the single source of truth for locations, visit events,
counters, and badges. Two implementations exist: ``LocalStore`` (JSON table
files under the data directory) and ``RestStore`` (a hosted PostgREST
backend, see ``gemfinder.services.rest``).

Every write publishes a change event on the store's ``ChangeFeed`` so that
subscribers (for example the stats watcher) can refetch.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from gemfinder.lib.dates import format_timestamp, now_utc
from gemfinder.lib.paths import get_table_path, get_tables_dir

if TYPE_CHECKING:
    from gemfinder.config import Config

logger = logging.getLogger("gemfinder.store")

TABLES = (
    "locations",
    "categories",
    "location_visits",
    "category_stats",
    "visit_history",
    "badges",
    "user_badges",
)

# Columns that must be unique together per table
UNIQUE_KEYS: dict[str, tuple[str, ...]] = {
    "location_visits": ("user_id", "location_id"),
    "category_stats": ("user_id", "category_id"),
    "visit_history": ("user_id", "year", "month"),
    "user_badges": ("user_id", "badge_id"),
}

Row = dict[str, Any]
Filters = dict[str, Any]


class StoreError(Exception):
    """Raised when a data store read or write fails."""


class RecordNotFoundError(StoreError):
    """Raised when a single-row select matches nothing."""


class DuplicateRecordError(StoreError):
    """Raised when an insert violates a uniqueness constraint."""


@dataclass
class ChangeEvent:
    """A write reported by the store."""

    table: str
    event: str  # INSERT, UPDATE or DELETE
    row: Row


ChangeCallback = Callable[[ChangeEvent], None]


class Subscription:
    """Handle returned by ``subscribe``; call ``unsubscribe`` to stop."""

    def __init__(self, feed: ChangeFeed, key: tuple[str, str | None], callback: ChangeCallback) -> None:
        self._feed = feed
        self._key = key
        self._callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._feed._remove(self._key, self._callback)
            self.active = False


class ChangeFeed:
    """In-process publish/subscribe channel keyed by (table, user id)."""

    def __init__(self) -> None:
        self._subscribers: dict[tuple[str, str | None], list[ChangeCallback]] = {}

    def subscribe(self, table: str, user_id: str | None, callback: ChangeCallback) -> Subscription:
        """Register a callback for writes to a table.

        Args:
            table: Table to watch.
            user_id: Only rows with this user_id are reported; None for all rows.
            callback: Called with a ChangeEvent after each matching write.

        Returns:
            Subscription handle.
        """
        key = (table, user_id)
        self._subscribers.setdefault(key, []).append(callback)
        return Subscription(self, key, callback)

    def publish(self, table: str, event: str, row: Row) -> None:
        """Notify subscribers of a write."""
        change = ChangeEvent(table=table, event=event, row=row)
        callbacks = list(self._subscribers.get((table, None), []))
        row_user = row.get("user_id")
        if row_user is not None:
            callbacks.extend(self._subscribers.get((table, str(row_user)), []))

        for callback in callbacks:
            try:
                callback(change)
            except Exception as e:
                logger.warning("Change subscriber failed for %s %s: %s", event, table, e)

    def _remove(self, key: tuple[str, str | None], callback: ChangeCallback) -> None:
        callbacks = self._subscribers.get(key, [])
        if callback in callbacks:
            callbacks.remove(callback)
        if not callbacks:
            self._subscribers.pop(key, None)


def row_matches(row: Row, filters: Filters | None) -> bool:
    """Check a row against equality / membership filters.

    A list or tuple filter value matches any of its members.
    """
    if not filters:
        return True
    for column, expected in filters.items():
        value = row.get(column)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


def _sort_rows(rows: list[Row], order_by: str, descending: bool) -> list[Row]:
    present = [r for r in rows if r.get(order_by) is not None]
    missing = [r for r in rows if r.get(order_by) is None]
    present.sort(key=lambda r: r[order_by], reverse=descending)
    # Nulls last in either direction
    return present + missing


class DataStore(ABC):
    """Typed CRUD + change-notification interface to the data store."""

    def __init__(self) -> None:
        self.changes = ChangeFeed()

    @abstractmethod
    def select(
        self,
        table: str,
        filters: Filters | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        """Select rows matching filters."""

    @abstractmethod
    def insert(self, table: str, row: Row) -> Row:
        """Insert a row and return it as stored (with id and timestamps)."""

    @abstractmethod
    def update(self, table: str, filters: Filters, values: Row) -> list[Row]:
        """Update matching rows and return them."""

    @abstractmethod
    def delete(self, table: str, filters: Filters) -> list[Row]:
        """Delete matching rows and return them."""

    def select_one(self, table: str, filters: Filters) -> Row:
        """Select exactly one row.

        Raises:
            RecordNotFoundError: If no row matches.
        """
        rows = self.select(table, filters, limit=1)
        if not rows:
            raise RecordNotFoundError(f"No {table} row matching {filters}")
        return rows[0]

    def subscribe(self, table: str, user_id: str | None, callback: ChangeCallback) -> Subscription:
        """Subscribe to writes on a table for one user."""
        return self.changes.subscribe(table, user_id, callback)

    def close(self) -> None:
        """Release resources held by the store."""


class LocalStore(DataStore):
    """Data store backed by JSON table files under the data directory."""

    def __init__(self, data_dir: Path) -> None:
        super().__init__()
        self.data_dir = data_dir

    def _check_table(self, table: str) -> None:
        if table not in TABLES:
            raise StoreError(f"Unknown table: {table}")

    def _read_table(self, table: str) -> list[Row]:
        self._check_table(table)
        path = get_table_path(self.data_dir, table)
        if not path.exists():
            return []
        try:
            with open(path) as f:
                rows = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Failed to read table {table}: {e}") from e
        if not isinstance(rows, list):
            raise StoreError(f"Table {table} is corrupt: expected a list of rows")
        return rows

    def _write_table(self, table: str, rows: list[Row]) -> None:
        tables_dir = get_tables_dir(self.data_dir)
        try:
            tables_dir.mkdir(parents=True, exist_ok=True)
            # Write to a temp file first so a crash never leaves a half-written table
            fd, tmp_name = tempfile.mkstemp(dir=tables_dir, prefix=f".{table}-", suffix=".json")
            with os.fdopen(fd, "w") as f:
                json.dump(rows, f, indent=2, default=str)
            os.replace(tmp_name, get_table_path(self.data_dir, table))
        except OSError as e:
            raise StoreError(f"Failed to write table {table}: {e}") from e

    def select(
        self,
        table: str,
        filters: Filters | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        rows = [dict(r) for r in self._read_table(table) if row_matches(r, filters)]
        if order_by:
            rows = _sort_rows(rows, order_by, descending)
        if limit is not None:
            rows = rows[:limit]
        return rows

    def insert(self, table: str, row: Row) -> Row:
        rows = self._read_table(table)

        unique = UNIQUE_KEYS.get(table)
        if unique:
            key = {col: row.get(col) for col in unique}
            if any(row_matches(r, key) for r in rows):
                raise DuplicateRecordError(f"Duplicate {table} row for {key}")

        stamp = format_timestamp(now_utc())
        stored = dict(row)
        stored.setdefault("id", str(uuid.uuid4()))
        if any(r.get("id") == stored["id"] for r in rows):
            raise DuplicateRecordError(f"Duplicate {table} id {stored['id']}")
        stored.setdefault("created_at", stamp)
        stored.setdefault("updated_at", stamp)

        rows.append(stored)
        self._write_table(table, rows)
        logger.debug("Inserted %s row %s", table, stored["id"])

        self.changes.publish(table, "INSERT", stored)
        return dict(stored)

    def update(self, table: str, filters: Filters, values: Row) -> list[Row]:
        rows = self._read_table(table)
        stamp = format_timestamp(now_utc())
        updated: list[Row] = []
        for r in rows:
            if row_matches(r, filters):
                r.update(values)
                r["updated_at"] = stamp
                updated.append(dict(r))

        if updated:
            self._write_table(table, rows)
            logger.debug("Updated %d %s row(s)", len(updated), table)
            for r in updated:
                self.changes.publish(table, "UPDATE", r)
        return updated

    def delete(self, table: str, filters: Filters) -> list[Row]:
        if not filters:
            raise StoreError(f"Refusing to delete every row of {table}")
        rows = self._read_table(table)
        kept = [r for r in rows if not row_matches(r, filters)]
        removed = [r for r in rows if row_matches(r, filters)]

        if removed:
            self._write_table(table, kept)
            logger.debug("Deleted %d %s row(s)", len(removed), table)
            for r in removed:
                self.changes.publish(table, "DELETE", r)
        return removed


def open_store(config: Config) -> DataStore:
    """Create the data store selected by configuration.

    Args:
        config: Application configuration.

    Returns:
        LocalStore or RestStore.
    """
    if config.store.backend == "rest":
        from gemfinder.services.rest import RestStore

        if not config.store.url:
            raise ValueError("Store URL is required for the rest backend")
        return RestStore(
            url=config.store.url,
            api_key=config.store.api_key,
            timeout=config.store.timeout,
        )

    return LocalStore(config.data.directory)
