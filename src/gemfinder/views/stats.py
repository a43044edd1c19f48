"""Visit statistics for gemfinder.

Turns a user's raw visit events plus location, category, and badge metadata
into display-ready aggregates: monthly and weekly series, unique areas,
category breakdown, recent visits, day streak, and earned badges.

Monthly and weekly buckets are keyed by month name / weekday only, so visits
from different years land in the same bucket.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any

from gemfinder.lib.dates import format_timestamp, local_date
from gemfinder.models.location import (
    UNKNOWN_AREA,
    UNKNOWN_CATEGORY,
    UNKNOWN_LOCATION,
    Category,
    Location,
)
from gemfinder.models.visit import Badge, BadgeGrant, CategoryStat, VisitEvent
from gemfinder.services.store import StoreError

if TYPE_CHECKING:
    from gemfinder.services.store import ChangeEvent, DataStore, Subscription

logger = logging.getLogger("gemfinder.stats")

MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
WEEKDAYS = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]
RECENT_VISIT_LIMIT = 5

WATCHED_TABLES = ("location_visits", "category_stats")


@dataclass
class RecentVisit:
    """A visit resolved for display."""

    location_name: str
    area: str
    visited_at: datetime
    is_gem: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "location_name": self.location_name,
            "area": self.area,
            "visited_at": format_timestamp(self.visited_at),
            "is_gem": self.is_gem,
        }


@dataclass
class EarnedBadge:
    """A badge grant resolved for display."""

    name: str
    description: str
    earned_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "earned_at": format_timestamp(self.earned_at),
        }


def _empty_months() -> list[dict[str, Any]]:
    return [{"name": m, "visits": 0} for m in MONTHS]


def _empty_week() -> list[dict[str, Any]]:
    return [{"day": d, "visits": 0} for d in WEEKDAYS]


@dataclass
class UserStats:
    """Display-ready statistics for one user."""

    total_visits: int = 0
    hidden_gems_found: int = 0
    streak: int = 0
    unique_areas: int = 0
    visits_by_month: list[dict[str, Any]] = field(default_factory=_empty_months)
    visits_by_category: list[dict[str, Any]] = field(default_factory=list)
    weekly_activity: list[dict[str, Any]] = field(default_factory=_empty_week)
    recent_visits: list[RecentVisit] = field(default_factory=list)
    badges: list[EarnedBadge] = field(default_factory=list)
    total_locations: int = 0
    visited_locations: int = 0
    completion_percentage: int = 0
    total_hidden_gems: int = 0
    discovered_gems: int = 0
    gem_completion_percentage: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "totals": {
                "visits": self.total_visits,
                "hidden_gems_found": self.hidden_gems_found,
                "streak": self.streak,
                "unique_areas": self.unique_areas,
            },
            "completion": {
                "total_locations": self.total_locations,
                "visited_locations": self.visited_locations,
                "completion_percentage": self.completion_percentage,
                "total_hidden_gems": self.total_hidden_gems,
                "discovered_gems": self.discovered_gems,
                "gem_completion_percentage": self.gem_completion_percentage,
            },
            "visits_by_month": self.visits_by_month,
            "visits_by_category": self.visits_by_category,
            "weekly_activity": self.weekly_activity,
            "recent_visits": [v.to_dict() for v in self.recent_visits],
            "badges": [b.to_dict() for b in self.badges],
        }


def empty_stats() -> UserStats:
    """Zeroed stats shown while loading or after a failed fetch."""
    return UserStats()


def _as_date(value: date | datetime) -> date:
    # datetime is a subclass of date, so check it first
    if isinstance(value, datetime):
        return local_date(value)
    return value


def calculate_streak(timestamps: Iterable[date | datetime], today: date | None = None) -> int:
    """Count consecutive visit days ending today or yesterday.

    Timestamps are reduced to calendar dates and deduplicated before
    counting, so several check-ins on one day count once.

    Args:
        timestamps: Visit timestamps or dates.
        today: Reference day (defaults to the local current date).

    Returns:
        Streak length in days; 0 if the latest visit is older than yesterday.
    """
    dates = sorted({_as_date(t) for t in timestamps}, reverse=True)
    if not dates:
        return 0

    if today is None:
        today = date.today()
    yesterday = today - timedelta(days=1)

    most_recent = dates[0]
    if most_recent not in (today, yesterday):
        return 0

    streak = 1
    current = most_recent
    for previous in dates[1:]:
        gap = (current - previous).days
        if gap == 1:
            streak += 1
            current = previous
        elif gap > 1:
            break

    return streak


def monthly_series(visits: Iterable[VisitEvent]) -> list[dict[str, Any]]:
    """Visit counts per calendar month (Jan..Dec), across all years."""
    counts = [0] * 12
    for visit in visits:
        counts[local_date(visit.visited_at).month - 1] += 1
    return [{"name": name, "visits": counts[i]} for i, name in enumerate(MONTHS)]


def weekly_series(visits: Iterable[VisitEvent]) -> list[dict[str, Any]]:
    """Visit counts per weekday (Sun..Sat), across all weeks."""
    counts = [0] * 7
    for visit in visits:
        # Python weeks start on Monday; shift so Sunday is bucket 0
        counts[(local_date(visit.visited_at).weekday() + 1) % 7] += 1
    return [{"day": day, "visits": counts[i]} for i, day in enumerate(WEEKDAYS)]


def unique_area_count(visits: Iterable[VisitEvent], locations: dict[str, Location]) -> int:
    """Number of distinct areas among visited locations.

    Visits whose location or area is unknown share one "Unknown Area" label.
    """
    areas = set()
    for visit in visits:
        location = locations.get(visit.location_id)
        areas.add(location.area_label if location else UNKNOWN_AREA)
    return len(areas)


def category_breakdown(
    category_stats: Iterable[CategoryStat],
    categories: dict[str, Category],
) -> list[dict[str, Any]]:
    """Category name and visit count pairs from the category counters."""
    breakdown = []
    for stat in category_stats:
        category = categories.get(stat.category_id)
        breakdown.append({
            "name": category.name if category else UNKNOWN_CATEGORY,
            "value": stat.visit_count,
        })
    return breakdown


def recent_visits(
    visits: Iterable[VisitEvent],
    locations: dict[str, Location],
    limit: int = RECENT_VISIT_LIMIT,
) -> list[RecentVisit]:
    """The most recent visits resolved to display records."""
    ordered = sorted(visits, key=lambda v: v.visited_at.timestamp(), reverse=True)
    result = []
    for visit in ordered[:limit]:
        location = locations.get(visit.location_id)
        result.append(RecentVisit(
            location_name=location.name if location else UNKNOWN_LOCATION,
            area=location.area_label if location else UNKNOWN_AREA,
            visited_at=visit.visited_at,
            is_gem=location.is_hidden_gem if location else visit.is_gem,
        ))
    return result


def resolve_badges(grants: Iterable[BadgeGrant], badges: dict[str, Badge]) -> list[EarnedBadge]:
    """Resolve badge grants to names and descriptions."""
    earned = []
    for grant in grants:
        badge = badges.get(grant.badge_id)
        earned.append(EarnedBadge(
            name=badge.name if badge else "Unknown Badge",
            description=(badge.description or "") if badge else "",
            earned_at=grant.earned_at,
        ))
    return earned


def _percent(part: int, whole: int) -> int:
    """Percentage rounded half up; 0 when whole is 0."""
    if whole <= 0:
        return 0
    return int(part * 100 / whole + 0.5)


def compute_stats(
    visits: list[VisitEvent],
    locations: Iterable[Location],
    category_stats: Iterable[CategoryStat] = (),
    categories: dict[str, Category] | None = None,
    grants: Iterable[BadgeGrant] = (),
    badges: dict[str, Badge] | None = None,
    today: date | None = None,
) -> UserStats:
    """Compute all aggregates from already-fetched data. No side effects.

    Args:
        visits: The user's visit events.
        locations: Location directory (for names, areas, gem flags).
        category_stats: The user's category counters.
        categories: Category metadata by id.
        grants: The user's badge grants.
        badges: Badge metadata by id.
        today: Reference day for the streak.

    Returns:
        UserStats.
    """
    location_list = list(locations)
    by_id = {loc.id: loc for loc in location_list}
    visited_ids = {v.location_id for v in visits}

    total_hidden_gems = sum(1 for loc in location_list if loc.is_hidden_gem)
    discovered_gems = sum(1 for loc in location_list if loc.is_hidden_gem and loc.id in visited_ids)
    visited_known = sum(1 for loc_id in visited_ids if loc_id in by_id)

    return UserStats(
        total_visits=len(visits),
        hidden_gems_found=sum(1 for v in visits if v.is_gem),
        streak=calculate_streak((v.visited_at for v in visits), today=today),
        unique_areas=unique_area_count(visits, by_id),
        visits_by_month=monthly_series(visits),
        visits_by_category=category_breakdown(category_stats, categories or {}),
        weekly_activity=weekly_series(visits),
        recent_visits=recent_visits(visits, by_id),
        badges=resolve_badges(grants, badges or {}),
        total_locations=len(location_list),
        visited_locations=visited_known,
        completion_percentage=_percent(visited_known, len(location_list)),
        total_hidden_gems=total_hidden_gems,
        discovered_gems=discovered_gems,
        gem_completion_percentage=_percent(discovered_gems, total_hidden_gems),
    )


def calculate_stats(
    store: DataStore,
    user_id: str | None,
    locations: Iterable[Location] | None = None,
    today: date | None = None,
) -> tuple[UserStats, str | None]:
    """Fetch a user's data from the store and compute stats.

    Never raises: on any fetch failure the zeroed stats are returned together
    with an error message.

    Args:
        store: Data store.
        user_id: User to report on; None yields empty stats.
        locations: Preloaded location directory; fetched when None.
        today: Reference day for the streak.

    Returns:
        Tuple of (stats, error message or None).
    """
    if not user_id:
        return empty_stats(), None

    try:
        visit_rows = store.select("location_visits", {"user_id": user_id})
        visits = [VisitEvent.from_dict(r) for r in visit_rows]

        if locations is None:
            location_ids = sorted({v.location_id for v in visits})
            location_list: list[Location] = []
            if location_ids:
                try:
                    location_list = [
                        Location.from_dict(r)
                        for r in store.select("locations", {"id": location_ids})
                    ]
                except StoreError as e:
                    # Stats still render with placeholder names
                    logger.warning("Continuing with empty location data: %s", e)
        else:
            location_list = list(locations)

        stat_rows = store.select("category_stats", {"user_id": user_id})
        category_stats = [CategoryStat.from_dict(r) for r in stat_rows]
        category_ids = sorted({s.category_id for s in category_stats})
        categories: dict[str, Category] = {}
        if category_ids:
            categories = {
                str(r["id"]): Category.from_dict(r)
                for r in store.select("categories", {"id": category_ids})
            }

        grant_rows = store.select("user_badges", {"user_id": user_id})
        grants = [BadgeGrant.from_dict(r) for r in grant_rows]
        badge_ids = sorted({g.badge_id for g in grants})
        badges: dict[str, Badge] = {}
        if badge_ids:
            badges = {str(r["id"]): Badge.from_dict(r) for r in store.select("badges", {"id": badge_ids})}

    except (StoreError, KeyError, TypeError, ValueError) as e:
        logger.error("Failed to fetch stats for %s: %s", user_id, e)
        return empty_stats(), f"Failed to fetch stats: {e}"

    return compute_stats(
        visits,
        location_list,
        category_stats=category_stats,
        categories=categories,
        grants=grants,
        badges=badges,
        today=today,
    ), None


class StatsWatcher:
    """Keeps stats fresh by refetching whenever the store reports a write.

    Subscribes to visit and category-counter changes for one user; every
    notification triggers a full refetch, not a delta update.
    """

    def __init__(
        self,
        store: DataStore,
        user_id: str,
        on_update: Callable[[UserStats, str | None], None] | None = None,
        locations: Callable[[], Iterable[Location]] | None = None,
    ) -> None:
        self.store = store
        self.user_id = user_id
        self.on_update = on_update
        self._locations = locations
        self.stats = empty_stats()
        self.error: str | None = None
        self.refresh_count = 0
        self._subscriptions: list[Subscription] = [
            store.subscribe(table, user_id, self._on_change) for table in WATCHED_TABLES
        ]
        self.refresh()

    def _on_change(self, change: ChangeEvent) -> None:
        logger.debug("Refreshing stats after %s on %s", change.event, change.table)
        self.refresh()

    def refresh(self) -> UserStats:
        locations = self._locations() if self._locations else None
        self.stats, self.error = calculate_stats(self.store, self.user_id, locations=locations)
        self.refresh_count += 1
        if self.on_update:
            self.on_update(self.stats, self.error)
        return self.stats

    def close(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []


def _bar(value: int, peak: int, width: int = 20) -> str:
    if peak <= 0 or value <= 0:
        return ""
    return "#" * max(1, round(value * width / peak))


def format_stats(stats: UserStats) -> str:
    """Render stats as a plain-text report."""
    lines = [
        "Totals",
        f"  Visits:            {stats.total_visits}",
        f"  Hidden gems found: {stats.hidden_gems_found}",
        f"  Day streak:        {stats.streak}",
        f"  Unique areas:      {stats.unique_areas}",
        "",
        "Completion",
        f"  Locations visited: {stats.visited_locations}/{stats.total_locations} "
        f"({stats.completion_percentage}%)",
        f"  Gems discovered:   {stats.discovered_gems}/{stats.total_hidden_gems} "
        f"({stats.gem_completion_percentage}%)",
        "",
        "Visits by month",
    ]

    peak = max((m["visits"] for m in stats.visits_by_month), default=0)
    for month in stats.visits_by_month:
        lines.append(f"  {month['name']}  {month['visits']:>4}  {_bar(month['visits'], peak)}")

    lines.extend(["", "Weekly activity"])
    peak = max((d["visits"] for d in stats.weekly_activity), default=0)
    for day in stats.weekly_activity:
        lines.append(f"  {day['day']}  {day['visits']:>4}  {_bar(day['visits'], peak)}")

    if stats.visits_by_category:
        lines.extend(["", "By category"])
        for entry in stats.visits_by_category:
            lines.append(f"  {entry['name']:<20} {entry['value']:>4}")

    if stats.recent_visits:
        lines.extend(["", "Recent visits"])
        for visit in stats.recent_visits:
            gem = " (gem)" if visit.is_gem else ""
            lines.append(
                f"  {local_date(visit.visited_at).isoformat()}  {visit.location_name}{gem} - {visit.area}"
            )

    if stats.badges:
        lines.extend(["", "Badges"])
        for badge in stats.badges:
            lines.append(f"  {badge.name}: {badge.description}")

    return "\n".join(lines)
