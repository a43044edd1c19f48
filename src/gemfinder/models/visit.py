"""Visit events, denormalized counters, and badges.

A visit event is unique per (user, location) in the store. Category stats and
visit history buckets are counters kept in step with visit events by the
visit ledger; a counter that drops to zero is deleted rather than kept.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from gemfinder.lib.dates import format_timestamp, local_date, now_utc, parse_timestamp


@dataclass
class VisitEvent:
    """A user's check-in at a location."""

    user_id: str
    location_id: str
    visited_at: datetime
    is_gem: bool = False
    rating: int | None = None
    notes: str | None = None
    shared: bool = False
    id: str | None = None

    @property
    def visit_month(self) -> int:
        return local_date(self.visited_at).month

    @property
    def visit_year(self) -> int:
        return local_date(self.visited_at).year

    def to_dict(self) -> dict[str, Any]:
        """Convert to a store row.

        Returns:
            Dictionary representation (id omitted until assigned).
        """
        data: dict[str, Any] = {
            "user_id": self.user_id,
            "location_id": self.location_id,
            "visited_at": format_timestamp(self.visited_at),
            "visit_month": self.visit_month,
            "visit_year": self.visit_year,
            "is_gem": self.is_gem,
            "rating": self.rating,
            "notes": self.notes,
            "shared": self.shared,
        }
        if self.id is not None:
            data["id"] = self.id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VisitEvent:
        """Create from a store row.

        Args:
            data: Dictionary with visit data.

        Returns:
            VisitEvent instance.
        """
        visited_at = parse_timestamp(data.get("visited_at")) or now_utc()
        rating = data.get("rating")
        return cls(
            id=str(data["id"]) if data.get("id") is not None else None,
            user_id=str(data["user_id"]),
            location_id=str(data["location_id"]),
            visited_at=visited_at,
            is_gem=bool(data.get("is_gem", False)),
            rating=int(rating) if rating is not None else None,
            notes=data.get("notes"),
            shared=bool(data.get("shared", False)),
        )


@dataclass
class CategoryStat:
    """Per-user, per-category visit counter."""

    user_id: str
    category_id: str
    visit_count: int = 0
    last_visit_at: datetime | None = None
    id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "user_id": self.user_id,
            "category_id": self.category_id,
            "visit_count": self.visit_count,
            "last_visit_at": format_timestamp(self.last_visit_at),
        }
        if self.id is not None:
            data["id"] = self.id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CategoryStat:
        return cls(
            id=str(data["id"]) if data.get("id") is not None else None,
            user_id=str(data["user_id"]),
            category_id=str(data["category_id"]),
            visit_count=int(data.get("visit_count", 0)),
            last_visit_at=parse_timestamp(data.get("last_visit_at")),
        )


@dataclass
class VisitHistoryBucket:
    """Per-user monthly visit counter."""

    user_id: str
    year: int
    month: int
    visit_count: int = 0
    id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "user_id": self.user_id,
            "year": self.year,
            "month": self.month,
            "visit_count": self.visit_count,
        }
        if self.id is not None:
            data["id"] = self.id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VisitHistoryBucket:
        return cls(
            id=str(data["id"]) if data.get("id") is not None else None,
            user_id=str(data["user_id"]),
            year=int(data["year"]),
            month=int(data["month"]),
            visit_count=int(data.get("visit_count", 0)),
        )


@dataclass
class Badge:
    """A badge definition.

    ``requirement`` is a "<metric>:<threshold>" string, for example
    ``visits:10`` or ``streak:7``.
    """

    id: str
    name: str
    description: str | None = None
    requirement: str | None = None
    icon_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "requirement": self.requirement,
            "icon_name": self.icon_name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Badge:
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "Unknown Badge",
            description=data.get("description"),
            requirement=data.get("requirement"),
            icon_name=data.get("icon_name"),
        )


@dataclass
class BadgeGrant:
    """A badge earned by a user. Grants are append-only."""

    user_id: str
    badge_id: str
    earned_at: datetime
    id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "user_id": self.user_id,
            "badge_id": self.badge_id,
            "earned_at": format_timestamp(self.earned_at),
        }
        if self.id is not None:
            data["id"] = self.id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BadgeGrant:
        return cls(
            id=str(data["id"]) if data.get("id") is not None else None,
            user_id=str(data["user_id"]),
            badge_id=str(data["badge_id"]),
            earned_at=parse_timestamp(data.get("earned_at")) or now_utc(),
        )


SEED_BADGES: list[dict[str, Any]] = [
    {
        "id": "first-steps",
        "name": "First Steps",
        "description": "Check in at your first location",
        "requirement": "visits:1",
        "icon_name": "footprints",
    },
    {
        "id": "explorer",
        "name": "Explorer",
        "description": "Check in at 10 locations",
        "requirement": "visits:10",
        "icon_name": "compass",
    },
    {
        "id": "gem-hunter",
        "name": "Gem Hunter",
        "description": "Find 3 hidden gems",
        "requirement": "gems:3",
        "icon_name": "gem",
    },
    {
        "id": "on-a-roll",
        "name": "On a Roll",
        "description": "Keep a 3 day visit streak",
        "requirement": "streak:3",
        "icon_name": "flame",
    },
    {
        "id": "wanderer",
        "name": "Wanderer",
        "description": "Visit locations in 3 different areas",
        "requirement": "areas:3",
        "icon_name": "map",
    },
    {
        "id": "well-rounded",
        "name": "Well Rounded",
        "description": "Visit locations in 3 different categories",
        "requirement": "categories:3",
        "icon_name": "shapes",
    },
]
