"""
Progress state machine.

A hunt attempt moves NOT_STARTED -> IN_PROGRESS -> COMPLETED. There is no
NOT_STARTED record: the absence of a `Progress` is that state, and `start()` creates
one already IN_PROGRESS.

Every transition here is a pure function: it takes a `Progress` and returns a new one
(`model_copy`), or raises without producing anything. Callers therefore never see a
half-applied transition.

Completion rule (kept exactly as the hunt server computes it): a hunt completes when
the current index has reached the last waypoint AND the number of visited waypoints is
at least the number of waypoints. It is count-based, not a set comparison against the
hunt's ids.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from enum import Enum

from orienteer.core.time import utc_now
from orienteer.domain.models import Hunt, Progress
from orienteer.errors import InvalidArgumentError, InvalidHuntError


class ProgressStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


def status_of(progress: Progress | None) -> ProgressStatus:
    if progress is None:
        return ProgressStatus.NOT_STARTED
    if progress.completed:
        return ProgressStatus.COMPLETED
    return ProgressStatus.IN_PROGRESS


def start(
    hunt: Hunt,
    player_id: str,
    *,
    now: datetime | None = None,
    progress_id: str | None = None,
) -> Progress:
    """Create a fresh IN_PROGRESS record for `player_id` on `hunt`.

    Raises:
        InvalidHuntError: If the hunt has no waypoints.
        InvalidArgumentError: If `player_id` is empty.
    """
    if not hunt.waypoints:
        raise InvalidHuntError(f"Hunt '{hunt.id}' has no waypoints")
    if not player_id:
        raise InvalidArgumentError("player_id must not be empty")
    return Progress(
        id=progress_id or uuid.uuid4().hex,
        player_id=player_id,
        hunt_id=hunt.id,
        started_at=now or utc_now(),
    )


def is_visited(progress: Progress, waypoint_id: str) -> bool:
    return waypoint_id in progress.visited_waypoint_ids


def mark_visited(progress: Progress, waypoint_id: str, points_awarded: int) -> Progress:
    """Record a visit and award its points once.

    Visiting an already-visited waypoint returns an equal Progress: points are never
    awarded twice for the same waypoint.
    """
    if not waypoint_id:
        raise InvalidArgumentError("waypoint_id must not be empty")
    if points_awarded < 0:
        raise InvalidArgumentError(f"points_awarded must be >= 0 (got {points_awarded})")
    if waypoint_id in progress.visited_waypoint_ids:
        return progress
    return progress.model_copy(
        update={
            "visited_waypoint_ids": progress.visited_waypoint_ids | {waypoint_id},
            "earned_points": progress.earned_points + points_awarded,
        }
    )


def advance(progress: Progress, total_waypoints: int, *, now: datetime | None = None) -> Progress:
    """Move to the next waypoint (clamped to the last one) and recompute completion."""
    if total_waypoints < 1:
        raise InvalidArgumentError(f"total_waypoints must be >= 1 (got {total_waypoints})")

    last_index = total_waypoints - 1
    next_index = min(progress.current_index + 1, last_index)
    completed = next_index >= last_index and len(progress.visited_waypoint_ids) >= total_waypoints

    if completed:
        completed_at = progress.completed_at or now or utc_now()
    else:
        completed_at = None

    return progress.model_copy(
        update={
            "current_index": next_index,
            "completed": completed,
            "completed_at": completed_at,
        }
    )


def elapsed(progress: Progress, *, now: datetime | None = None) -> timedelta:
    """Time spent on the attempt: until completion if completed, else until `now`."""
    end = progress.completed_at or now or utc_now()
    return max(timedelta(0), end - progress.started_at)


def check_invariants(progress: Progress, hunt: Hunt) -> list[str]:
    """Return human-readable descriptions of every invariant `progress` violates for `hunt`."""
    problems: list[str] = []
    if progress.hunt_id != hunt.id:
        problems.append(f"progress is for hunt '{progress.hunt_id}', not '{hunt.id}'")
        return problems

    unknown = progress.visited_waypoint_ids - hunt.waypoint_ids
    if unknown:
        problems.append(f"visited unknown waypoints: {sorted(unknown)}")

    if hunt.waypoints and progress.current_index >= hunt.waypoint_count:
        problems.append(
            f"current_index={progress.current_index} out of range for {hunt.waypoint_count} waypoints"
        )

    expected_points = sum(w.points for w in hunt.waypoints if w.id in progress.visited_waypoint_ids)
    if progress.earned_points != expected_points:
        problems.append(
            f"earned_points={progress.earned_points} but visited waypoints are worth {expected_points}"
        )

    if progress.completed and (
        progress.current_index != hunt.waypoint_count - 1
        or len(progress.visited_waypoint_ids) < hunt.waypoint_count
    ):
        problems.append("completed before visiting every waypoint")
    return problems
