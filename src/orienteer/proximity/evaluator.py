"""
Proximity evaluator.

Turns "where the device is now" + "which waypoint is the target" into the two values
the hunt screen needs: the distance to show and whether check-in is allowed. It is
called on every accepted location sample and on demand; it holds no state besides
its radius, so the newest sample always fully determines the answer.
"""

from __future__ import annotations

from dataclasses import dataclass

from orienteer.core.geo import GeoPoint, bearing_deg, distance_m
from orienteer.domain.models import Hunt, Progress, Waypoint
from orienteer.errors import InvalidArgumentError

DEFAULT_CHECK_IN_RADIUS_M = 30.0


@dataclass(frozen=True)
class ProximityReading:
    """Distance/eligibility for one (sample, target) pair.

    `distance_m` and `bearing_deg` are None when there is no sample yet or no target.
    """

    distance_m: float | None
    eligible: bool
    bearing_deg: float | None = None
    waypoint_id: str | None = None


NO_READING = ProximityReading(distance_m=None, eligible=False)


class ProximityEvaluator:
    """Decides check-in eligibility against a fixed radius (inclusive)."""

    def __init__(self, radius_m: float = DEFAULT_CHECK_IN_RADIUS_M):
        if not radius_m > 0:
            raise InvalidArgumentError(f"radius_m must be > 0 (got {radius_m})")
        self._radius_m = float(radius_m)

    @property
    def radius_m(self) -> float:
        return self._radius_m

    def evaluate(self, sample: GeoPoint | None, target: Waypoint | None) -> ProximityReading:
        if sample is None or target is None:
            return ProximityReading(
                distance_m=None,
                eligible=False,
                waypoint_id=target.id if target is not None else None,
            )
        d = distance_m(sample, target.position)
        return ProximityReading(
            distance_m=d,
            eligible=d <= self._radius_m,
            bearing_deg=bearing_deg(sample, target.position) if d > 0 else None,
            waypoint_id=target.id,
        )

    def evaluate_progress(
        self, sample: GeoPoint | None, hunt: Hunt | None, progress: Progress | None
    ) -> ProximityReading:
        """Evaluate against the waypoint at `progress.current_index`."""
        if hunt is None or progress is None:
            return NO_READING
        return self.evaluate(sample, hunt.waypoint_at(progress.current_index))
