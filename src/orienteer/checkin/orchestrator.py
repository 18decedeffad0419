"""
Check-in orchestrator.

Coordinates one "claim this waypoint" action end to end:

1. local preconditions (hunt, progress, position, eligibility against the waypoint at
   `progress.current_index`); failures raise `NotEligibleError` without any remote call;
2. at most one attempt in flight per progress id; a concurrent attempt raises
   `AttemptInProgressError` instead of queueing;
3. the observed position and target id go to the check-in collaborator;
4. success applies the collaborator's authoritative Progress when it sends one, or
   `mark_visited` + `advance` locally otherwise;
5. failure leaves Progress untouched and frees the slot for a retry;
6. the in-flight flag is cleared only after the new Progress was handed to `apply`.

Applying a result is idempotent: the same authoritative snapshot applied twice leaves
`earned_points` where it was, and a local apply for an already-visited waypoint is a
no-op.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Protocol

from orienteer.core.geo import GeoPoint, format_distance
from orienteer.domain.models import CheckInAttempt, CheckInResult, Hunt, Progress, Waypoint
from orienteer.errors import (
    AttemptInProgressError,
    HuntError,
    InvalidArgumentError,
    NotEligibleError,
    RemoteClientError,
    RemoteTransientError,
)
from orienteer.progress import state_machine
from orienteer.proximity.evaluator import ProximityEvaluator

logger = logging.getLogger(__name__)


class CheckInService(Protocol):
    async def submit_check_in(self, hunt_id: str, waypoint_id: str, position: GeoPoint) -> CheckInResult:
        """Submit one check-in; raise `RemoteError` subclasses on transport/server failure."""
        ...


@dataclass(frozen=True)
class CheckInOutcome:
    """Result of a successful attempt, after the new Progress has been applied."""

    progress: Progress
    points_earned: int
    completed: bool
    message: str
    attempt: CheckInAttempt


def apply_result(hunt: Hunt, progress: Progress, result: CheckInResult, target: Waypoint) -> Progress:
    """Fold a successful check-in result into `progress` (pure, idempotent)."""
    snapshot = result.progress
    if snapshot is not None:
        if snapshot.id != progress.id or snapshot.hunt_id != progress.hunt_id:
            raise InvalidArgumentError(
                f"check-in response is for progress '{snapshot.id}' (hunt '{snapshot.hunt_id}'), "
                f"expected '{progress.id}' (hunt '{progress.hunt_id}')"
            )
        return snapshot

    if state_machine.is_visited(progress, target.id):
        return progress
    visited = state_machine.mark_visited(progress, target.id, target.points)
    return state_machine.advance(visited, hunt.waypoint_count)


class CheckInOrchestrator:
    """Serializes check-in attempts per progress and applies their results."""

    def __init__(self, service: CheckInService, evaluator: ProximityEvaluator):
        self._service = service
        self._evaluator = evaluator
        self._in_flight: set[str] = set()

    @property
    def evaluator(self) -> ProximityEvaluator:
        return self._evaluator

    def in_flight(self, progress_id: str) -> bool:
        return progress_id in self._in_flight

    def _prepare(
        self, hunt: Hunt | None, progress: Progress | None, position: GeoPoint | None
    ) -> tuple[CheckInAttempt, Waypoint]:
        if hunt is None or progress is None:
            raise NotEligibleError("No active hunt to check in to")
        if progress.hunt_id != hunt.id:
            raise InvalidArgumentError(f"progress '{progress.id}' does not belong to hunt '{hunt.id}'")
        if progress.completed:
            raise NotEligibleError("Hunt already completed")
        if position is None:
            raise NotEligibleError("Current position unknown; waiting for a location fix")

        target = hunt.waypoint_at(progress.current_index)
        if target is None:
            raise NotEligibleError("No target waypoint at the current position in the hunt")

        reading = self._evaluator.evaluate(position, target)
        if not reading.eligible or reading.distance_m is None:
            raise NotEligibleError(
                f"Too far from {target.name}: {format_distance(reading.distance_m)} away, "
                f"must be within {format_distance(self._evaluator.radius_m)}"
            )
        attempt = CheckInAttempt(
            hunt_id=hunt.id,
            waypoint_id=target.id,
            observed_position=position,
            distance_m=reading.distance_m,
        )
        return attempt, target

    async def attempt(
        self,
        hunt: Hunt | None,
        progress: Progress | None,
        position: GeoPoint | None,
        *,
        apply: Callable[[Progress], None] | None = None,
    ) -> CheckInOutcome:
        attempt, target = self._prepare(hunt, progress, position)

        if progress.id in self._in_flight:
            raise AttemptInProgressError("A check-in is already in progress")
        self._in_flight.add(progress.id)
        logger.info(
            "Check-in attempt hunt=%s waypoint=%s distance=%.1fm",
            attempt.hunt_id,
            attempt.waypoint_id,
            attempt.distance_m,
        )
        try:
            try:
                result = await self._service.submit_check_in(
                    attempt.hunt_id, attempt.waypoint_id, attempt.observed_position
                )
            except HuntError:
                raise
            except Exception as exc:
                raise RemoteTransientError(f"Check-in failed: {exc}") from exc

            if not result.success:
                raise RemoteClientError(result.message or "Check-in rejected")

            updated = apply_result(hunt, progress, result, target)
            if result.progress is not None:
                points_earned = result.points_earned
            else:
                points_earned = updated.earned_points - progress.earned_points
            if apply is not None:
                apply(updated)

            logger.info(
                "Check-in accepted hunt=%s waypoint=%s points=%d completed=%s",
                attempt.hunt_id,
                attempt.waypoint_id,
                points_earned,
                updated.completed,
            )
            return CheckInOutcome(
                progress=updated,
                points_earned=points_earned,
                completed=updated.completed,
                message=result.message,
                attempt=attempt,
            )
        except HuntError as exc:
            logger.warning("Check-in failed hunt=%s: %s", attempt.hunt_id, exc.message)
            raise
        finally:
            self._in_flight.discard(progress.id)
