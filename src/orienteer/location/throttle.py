"""
Location sample throttling.

GPS sources fire far more often than the hunt screen needs, and a phone standing
still still reports jittery "new" positions. A sample is accepted only when it is the
first one, or when both enough time has passed and the device moved far enough since
the last accepted sample. Exact repeats are always dropped.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable

from orienteer.core.geo import GeoPoint, distance_m


@dataclass
class SampleThrottle:
    """Time + distance gate over a stream of position samples (best-effort, in-process)."""

    min_interval_ms: int = 5000
    min_distance_m: float = 5.0
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    def __post_init__(self) -> None:
        if self.min_interval_ms < 0:
            raise ValueError("min_interval_ms must be >= 0")
        if self.min_distance_m < 0:
            raise ValueError("min_distance_m must be >= 0")
        self._last_point: GeoPoint | None = None
        self._last_accepted_at: float | None = None

    @property
    def last_point(self) -> GeoPoint | None:
        return self._last_point

    def accept(self, point: GeoPoint) -> bool:
        """Return True (and remember the sample) when `point` should be delivered."""
        now = self.clock()
        if self._last_point is None or self._last_accepted_at is None:
            self._remember(point, now)
            return True

        if point == self._last_point:
            return False

        elapsed_ms = (now - self._last_accepted_at) * 1000.0
        if elapsed_ms < self.min_interval_ms:
            return False
        if distance_m(self._last_point, point) < self.min_distance_m:
            return False

        self._remember(point, now)
        return True

    def reset(self) -> None:
        self._last_point = None
        self._last_accepted_at = None

    def _remember(self, point: GeoPoint, now: float) -> None:
        self._last_point = point
        self._last_accepted_at = now
