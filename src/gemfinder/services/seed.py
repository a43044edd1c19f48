"""Starter data for a fresh data store."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from gemfinder.models.location import SEED_CATEGORIES, SEED_LOCATIONS
from gemfinder.models.visit import SEED_BADGES

if TYPE_CHECKING:
    from gemfinder.services.store import DataStore

logger = logging.getLogger("gemfinder.seed")

SEED_TABLES: dict[str, list[dict[str, Any]]] = {
    "categories": SEED_CATEGORIES,
    "locations": SEED_LOCATIONS,
    "badges": SEED_BADGES,
}


def seed_store(store: DataStore) -> dict[str, int]:
    """Insert seed categories, locations and badges that are not present yet.

    Running it again only adds rows whose id is missing.

    Args:
        store: Data store to seed.

    Returns:
        Number of rows inserted per table.
    """
    inserted: dict[str, int] = {}
    for table, rows in SEED_TABLES.items():
        existing = {str(r.get("id")) for r in store.select(table)}
        count = 0
        for row in rows:
            if str(row["id"]) in existing:
                continue
            store.insert(table, dict(row))
            count += 1
        inserted[table] = count
        logger.debug("Seeded %d %s row(s)", count, table)
    return inserted
