"""
In-process hunt service.

`LocalHuntService` is the local equivalent of the hunt server's check-in endpoint: it
owns one active Progress per (player, hunt), re-checks the reported position against
its own radius, awards each waypoint's points once, and answers with authoritative
snapshots. The HTTP front serves it, the CLI simulator plays against it, and tests use
it as a realistic collaborator.

`LocalHuntBackend` binds the service to one player and exposes the async surface a
`HuntSession` expects (`HuntSource` + check-in + start/abandon).
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Iterable

from orienteer.core.geo import GeoPoint, format_distance
from orienteer.core.time import utc_now
from orienteer.domain.models import CheckInResult, Hunt, HuntFilter, Progress
from orienteer.errors import HuntNotFoundError, RemoteClientError
from orienteer.progress import state_machine
from orienteer.proximity.evaluator import DEFAULT_CHECK_IN_RADIUS_M, ProximityEvaluator

logger = logging.getLogger(__name__)


class LocalHuntService:
    """Authoritative hunt progress for many players, kept in memory."""

    def __init__(
        self,
        hunts: Iterable[Hunt],
        *,
        radius_m: float = DEFAULT_CHECK_IN_RADIUS_M,
        clock: Callable = utc_now,
    ):
        self._hunts: dict[str, Hunt] = {h.id: h for h in hunts}
        self._evaluator = ProximityEvaluator(radius_m)
        self._clock = clock
        self._active: dict[tuple[str, str], Progress] = {}
        self._archive: list[Progress] = []
        self._lock = threading.Lock()

    def list_hunts(self, hunt_filter: HuntFilter | None = None) -> list[Hunt]:
        hunts = list(self._hunts.values())
        if hunt_filter is None:
            return hunts
        return [h for h in hunts if hunt_filter.matches(h)]

    def get_hunt(self, hunt_id: str) -> Hunt:
        hunt = self._hunts.get(hunt_id)
        if hunt is None:
            raise HuntNotFoundError(hunt_id)
        return hunt

    def start(self, player_id: str, hunt_id: str) -> Progress:
        """Return the player's unfinished attempt on `hunt_id`, or start a new one."""
        hunt = self.get_hunt(hunt_id)
        with self._lock:
            existing = self._active.get((player_id, hunt_id))
            if existing is not None and not existing.completed:
                return existing
            if existing is not None:
                self._archive.append(existing)
            progress = state_machine.start(hunt, player_id, now=self._clock())
            self._active[(player_id, hunt_id)] = progress
        logger.info("Player %s started hunt %s (progress=%s)", player_id, hunt_id, progress.id)
        return progress

    def progress_for(self, player_id: str, hunt_id: str) -> Progress | None:
        with self._lock:
            return self._active.get((player_id, hunt_id))

    def all_progress(self, player_id: str) -> list[Progress]:
        with self._lock:
            archived = [p for p in self._archive if p.player_id == player_id]
            active = [p for (pid, _), p in self._active.items() if pid == player_id]
        return archived + active

    def abandon(self, player_id: str, hunt_id: str) -> Progress | None:
        """Archive the player's attempt on `hunt_id`; no-op when there is none."""
        with self._lock:
            progress = self._active.pop((player_id, hunt_id), None)
            if progress is not None:
                self._archive.append(progress)
        if progress is not None:
            logger.info("Player %s abandoned hunt %s (progress=%s)", player_id, hunt_id, progress.id)
        return progress

    def check_in(
        self,
        player_id: str,
        hunt_id: str,
        position: GeoPoint,
        waypoint_id: str | None = None,
    ) -> CheckInResult:
        """Validate and apply a check-in at `position`.

        Business rejections (too far, wrong waypoint, finished hunt) come back as
        `success=False` with a message; a replayed check-in for a waypoint that was
        already credited succeeds with zero points and the current snapshot.
        """
        hunt = self.get_hunt(hunt_id)
        with self._lock:
            progress = self._active.get((player_id, hunt_id))
            if progress is None:
                raise RemoteClientError(f"No active progress for hunt '{hunt_id}'", status_code=404)

            if waypoint_id is not None and state_machine.is_visited(progress, waypoint_id):
                return CheckInResult(
                    success=True,
                    message="Already checked in here",
                    progress=progress,
                    points_earned=0,
                )
            if progress.completed:
                return CheckInResult(success=False, message="Hunt already completed", progress=progress)

            target = hunt.waypoint_at(progress.current_index)
            if target is None:
                return CheckInResult(success=False, message="No waypoint left to check in", progress=progress)
            if waypoint_id is not None and waypoint_id != target.id:
                return CheckInResult(
                    success=False,
                    message=f"'{waypoint_id}' is not the current waypoint",
                    progress=progress,
                )

            reading = self._evaluator.evaluate(position, target)
            if not reading.eligible:
                return CheckInResult(
                    success=False,
                    message=f"Too far from {target.name} ({format_distance(reading.distance_m)})",
                    progress=progress,
                )

            visited = state_machine.mark_visited(progress, target.id, target.points)
            updated = state_machine.advance(visited, hunt.waypoint_count, now=self._clock())
            self._active[(player_id, hunt_id)] = updated

        points = updated.earned_points - progress.earned_points
        message = "Hunt completed!" if updated.completed else f"Checked in at {target.name}!"
        logger.info(
            "Player %s checked in at %s/%s (+%d, completed=%s)",
            player_id,
            hunt_id,
            target.id,
            points,
            updated.completed,
        )
        return CheckInResult(success=True, message=message, progress=updated, points_earned=points)


class LocalHuntBackend:
    """`LocalHuntService` seen from one player's session."""

    def __init__(self, service: LocalHuntService, player_id: str):
        self._service = service
        self._player_id = player_id

    @property
    def player_id(self) -> str:
        return self._player_id

    async def list_hunts(self, hunt_filter: HuntFilter | None = None) -> list[Hunt]:
        return self._service.list_hunts(hunt_filter)

    async def get_hunt(self, hunt_id: str) -> Hunt:
        return self._service.get_hunt(hunt_id)

    async def start_hunt(self, hunt_id: str) -> Progress:
        return self._service.start(self._player_id, hunt_id)

    async def get_progress(self, hunt_id: str) -> Progress | None:
        return self._service.progress_for(self._player_id, hunt_id)

    async def abandon_hunt(self, hunt_id: str) -> None:
        self._service.abandon(self._player_id, hunt_id)

    async def submit_check_in(self, hunt_id: str, waypoint_id: str, position: GeoPoint) -> CheckInResult:
        return self._service.check_in(self._player_id, hunt_id, position, waypoint_id=waypoint_id)
