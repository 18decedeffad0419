"""
Hunt session: the explicit owner of one player's active hunt.

Everything a hunt screen needs goes through a `HuntSession`:
- `start_hunt` / `abandon_hunt` / `end_hunt` manage the single active attempt;
- `update_position` (or `start_tracking`, which feeds it from a location stream)
  recomputes distance and eligibility synchronously, last sample wins;
- a failed tracking task is kept in `tracking_error` and drops the position, so the
  view stops reporting eligibility;
- `attempt_check_in` runs the check-in orchestrator and is the only write path to
  the active Progress;
- `state` is observable: it holds the current `ActiveHuntView` (or None) and notifies
  subscribers on every change.

Sessions share nothing with each other, so several players (or tests) can run side by
side in one process.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable, Protocol

from orienteer.catalog.source import HuntCatalog
from orienteer.checkin.orchestrator import CheckInOrchestrator, CheckInOutcome, CheckInService
from orienteer.config.settings import Settings, get_settings
from orienteer.core.geo import GeoPoint
from orienteer.core.observable import StateStore
from orienteer.core.time import format_elapsed
from orienteer.domain.models import Hunt, Progress, Waypoint
from orienteer.errors import (
    InvalidArgumentError,
    InvalidHuntError,
    PermissionDeniedError,
    SessionClosedError,
)
from orienteer.location.source import LocationSource
from orienteer.location.supervisor import LocationStream, LocationStreamSupervisor
from orienteer.progress import state_machine
from orienteer.progress.state_machine import ProgressStatus
from orienteer.proximity.evaluator import NO_READING, ProximityEvaluator, ProximityReading

logger = logging.getLogger(__name__)


class HuntBackend(CheckInService, Protocol):
    async def start_hunt(self, hunt_id: str) -> Progress: ...

    async def abandon_hunt(self, hunt_id: str) -> None: ...


@dataclass(frozen=True)
class ActiveHuntView:
    """Snapshot of the active hunt as a screen would render it."""

    hunt: Hunt
    progress: Progress
    position: GeoPoint | None
    reading: ProximityReading

    @property
    def status(self) -> ProgressStatus:
        return state_machine.status_of(self.progress)

    @property
    def target(self) -> Waypoint | None:
        return self.hunt.waypoint_at(self.progress.current_index)

    @property
    def current_clue(self) -> str | None:
        target = self.target
        if target is None:
            return None
        clue = self.hunt.clue_for(target.id)
        return clue.text if clue is not None else None

    @property
    def current_hint(self) -> str | None:
        target = self.target
        return target.hint if target is not None else None

    def elapsed(self, now: datetime | None = None) -> timedelta:
        return state_machine.elapsed(self.progress, now=now)

    def elapsed_display(self, now: datetime | None = None) -> str:
        return format_elapsed(self.elapsed(now))


class HuntSession:
    def __init__(
        self,
        player_id: str,
        catalog: HuntCatalog,
        backend: HuntBackend,
        *,
        evaluator: ProximityEvaluator | None = None,
        supervisor: LocationStreamSupervisor | None = None,
    ):
        if not player_id:
            raise InvalidArgumentError("player_id must not be empty")
        self._player_id = player_id
        self._catalog = catalog
        self._backend = backend
        self._evaluator = evaluator or ProximityEvaluator()
        self._orchestrator = CheckInOrchestrator(backend, self._evaluator)
        self._supervisor = supervisor
        self._position: GeoPoint | None = None
        self._history: list[Progress] = []
        self._tracking_task: asyncio.Task | None = None
        self._tracking_error: BaseException | None = None
        self._stream: LocationStream | None = None
        self.state: StateStore[ActiveHuntView | None] = StateStore(None)

    @classmethod
    def from_settings(
        cls,
        player_id: str,
        catalog: HuntCatalog,
        backend: HuntBackend,
        *,
        location_source: LocationSource | None = None,
        settings: Settings | None = None,
    ) -> "HuntSession":
        settings = settings or get_settings()
        supervisor = (
            LocationStreamSupervisor.from_settings(location_source, settings)
            if location_source is not None
            else None
        )
        return cls(
            player_id,
            catalog,
            backend,
            evaluator=ProximityEvaluator(settings.checkin.radius_m),
            supervisor=supervisor,
        )

    @property
    def player_id(self) -> str:
        return self._player_id

    @property
    def history(self) -> tuple[Progress, ...]:
        """Attempts that were ended or abandoned in this session, oldest first."""
        return tuple(self._history)

    @property
    def position(self) -> GeoPoint | None:
        return self._position

    @property
    def tracking(self) -> bool:
        return self._tracking_task is not None and not self._tracking_task.done()

    @property
    def tracking_error(self) -> BaseException | None:
        """Error that ended the last tracking task, or None."""
        return self._tracking_error

    @property
    def check_in_in_flight(self) -> bool:
        view = self.state.value
        return view is not None and self._orchestrator.in_flight(view.progress.id)

    def get_active_hunt_view(self) -> ActiveHuntView | None:
        return self.state.value

    async def start_hunt(self, hunt_id: str, *, track: bool = False) -> Progress:
        """Start (or resume, if the backend has one open) an attempt on `hunt_id`."""
        hunt = await self._catalog.get_hunt(hunt_id)
        if not hunt.waypoints:
            raise InvalidHuntError(f"Hunt '{hunt.id}' has no waypoints")

        progress = await self._backend.start_hunt(hunt.id)
        if progress.hunt_id != hunt.id:
            raise InvalidArgumentError(
                f"backend started hunt '{progress.hunt_id}' when '{hunt.id}' was requested"
            )
        problems = state_machine.check_invariants(progress, hunt)
        if problems:
            logger.warning("Progress %s from backend is inconsistent: %s", progress.id, "; ".join(problems))

        current = self.state.value
        if current is not None and current.progress.id != progress.id:
            self._close_active()

        reading = self._evaluator.evaluate_progress(self._position, hunt, progress)
        self.state.set(ActiveHuntView(hunt=hunt, progress=progress, position=self._position, reading=reading))
        logger.info("Session %s started hunt %s (progress=%s)", self._player_id, hunt.id, progress.id)

        if track:
            self.start_tracking()
        return progress

    def update_position(self, sample: GeoPoint) -> ProximityReading:
        """Record the newest sample and recompute the reading for the current target."""
        self._position = sample
        view = self.state.value
        if view is None:
            return NO_READING
        reading = self._evaluator.evaluate_progress(sample, view.hunt, view.progress)
        self.state.set(replace(view, position=sample, reading=reading))
        return reading

    async def attempt_check_in(self) -> CheckInOutcome:
        view = self.state.value
        if view is None:
            raise SessionClosedError("No active hunt")
        return await self._orchestrator.attempt(
            view.hunt,
            view.progress,
            view.position,
            apply=self._applier(view.progress.id),
        )

    def _applier(self, progress_id: str) -> Callable[[Progress], None]:
        def apply(progress: Progress) -> None:
            current = self.state.value
            if current is None or current.progress.id != progress_id:
                logger.warning("Discarding check-in result for closed progress %s", progress_id)
                raise SessionClosedError("The hunt ended before the check-in resolved")
            reading = self._evaluator.evaluate_progress(current.position, current.hunt, progress)
            self.state.set(replace(current, progress=progress, reading=reading))

        return apply

    def start_tracking(self) -> asyncio.Task:
        """Feed `update_position` from the location stream in a background task."""
        if self._supervisor is None:
            raise InvalidArgumentError("No location source configured for this session")
        if not self._supervisor.has_permission():
            raise PermissionDeniedError("Location permission not granted")
        self.stop_tracking()
        self._tracking_error = None
        task = asyncio.get_running_loop().create_task(self.track_location())
        task.add_done_callback(self._on_tracking_done)
        self._tracking_task = task
        return task

    def _on_tracking_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        logger.error("Location tracking for session %s failed: %s", self._player_id, exc, exc_info=exc)
        if task is not self._tracking_task:
            return
        # The last fix can no longer be trusted; eligibility drops until a new one arrives.
        self._tracking_error = exc
        self._position = None
        view = self.state.value
        if view is not None:
            reading = self._evaluator.evaluate_progress(None, view.hunt, view.progress)
            self.state.set(replace(view, position=None, reading=reading))

    async def track_location(self) -> None:
        """Consume location samples until the stream ends or the task is cancelled."""
        if self._supervisor is None:
            raise InvalidArgumentError("No location source configured for this session")
        stream = self._supervisor.open()
        self._stream = stream
        try:
            async with stream:
                async for sample in stream:
                    self.update_position(sample)
        finally:
            if self._stream is stream:
                self._stream = None

    def stop_tracking(self) -> None:
        if self._stream is not None:
            # Releases the platform subscription before the task even wakes up.
            self._stream.close()
            self._stream = None
        task, self._tracking_task = self._tracking_task, None
        if task is not None and not task.done():
            task.cancel()

    async def abandon_hunt(self) -> Progress:
        """Tell the backend the attempt is abandoned, then close it locally."""
        view = self.state.value
        if view is None:
            raise SessionClosedError("No active hunt")
        await self._backend.abandon_hunt(view.hunt.id)
        logger.info("Session %s abandoned hunt %s", self._player_id, view.hunt.id)
        return self._close_active() or view.progress

    def end_hunt(self) -> Progress | None:
        """Close the active attempt locally (no backend call); returns it, if any."""
        return self._close_active()

    def _close_active(self) -> Progress | None:
        self.stop_tracking()
        view = self.state.value
        if view is None:
            return None
        self._history.append(view.progress)
        self.state.set(None)
        return view.progress
