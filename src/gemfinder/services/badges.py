"""Badge awarding for gemfinder.

Badge definitions carry a ``<metric>:<threshold>`` requirement. After a
check-in the user's stats are recomputed and every badge whose threshold is
met, and which the user does not hold yet, is granted. Grants are never
revoked.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import TYPE_CHECKING

from gemfinder.lib.dates import now_utc
from gemfinder.models.visit import Badge, BadgeGrant
from gemfinder.services.store import DuplicateRecordError, StoreError
from gemfinder.views.stats import calculate_stats

if TYPE_CHECKING:
    from gemfinder.services.store import DataStore
    from gemfinder.views.stats import UserStats

logger = logging.getLogger("gemfinder.badges")

METRICS = ("visits", "gems", "streak", "areas", "categories")


def parse_requirement(requirement: str | None) -> tuple[str, int] | None:
    """Parse a requirement like ``visits:10``.

    Returns:
        (metric, threshold), or None if the requirement is missing or invalid.
    """
    if not requirement or ":" not in requirement:
        return None
    metric, _, threshold = requirement.partition(":")
    metric = metric.strip().lower()
    if metric not in METRICS:
        return None
    try:
        return metric, int(threshold)
    except ValueError:
        return None


def stats_metrics(stats: UserStats) -> dict[str, int]:
    """Metric values badges are measured against."""
    return {
        "visits": stats.total_visits,
        "gems": stats.hidden_gems_found,
        "streak": stats.streak,
        "areas": stats.unique_areas,
        "categories": len(stats.visits_by_category),
    }


def qualifying_badges(badges: list[Badge], metrics: dict[str, int]) -> list[Badge]:
    """Badges whose requirement is met by the given metrics."""
    result = []
    for badge in badges:
        parsed = parse_requirement(badge.requirement)
        if parsed is None:
            logger.debug("Ignoring badge %s with requirement %r", badge.id, badge.requirement)
            continue
        metric, threshold = parsed
        if metrics.get(metric, 0) >= threshold:
            result.append(badge)
    return result


def award_badges(store: DataStore, user_id: str, today: date | None = None) -> list[Badge]:
    """Grant every newly earned badge to a user.

    Failures are logged and never propagate: a check-in must not fail
    because badge bookkeeping did.

    Args:
        store: Data store.
        user_id: User to evaluate.
        today: Reference day for the streak metric.

    Returns:
        Badges granted by this call.
    """
    stats, error = calculate_stats(store, user_id, today=today)
    if error:
        logger.warning("Skipping badge evaluation: %s", error)
        return []

    try:
        badges = [Badge.from_dict(r) for r in store.select("badges")]
        held = {str(r["badge_id"]) for r in store.select("user_badges", {"user_id": user_id})}
    except StoreError as e:
        logger.warning("Skipping badge evaluation: %s", e)
        return []

    granted: list[Badge] = []
    for badge in qualifying_badges(badges, stats_metrics(stats)):
        if badge.id in held:
            continue
        grant = BadgeGrant(user_id=user_id, badge_id=badge.id, earned_at=now_utc())
        try:
            store.insert("user_badges", grant.to_dict())
        except DuplicateRecordError:
            continue
        except StoreError as e:
            logger.warning("Failed to grant badge %s: %s", badge.name, e)
            continue
        granted.append(badge)
        logger.info("Earned badge: %s", badge.name)

    return granted
