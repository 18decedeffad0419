import asyncio

import pytest

from orienteer.catalog.source import HuntCatalog
from orienteer.checkin.local import LocalHuntBackend, LocalHuntService
from orienteer.core.geo import destination_point
from orienteer.domain.models import CheckInResult, Hunt
from orienteer.errors import (
    AttemptInProgressError,
    HuntNotFoundError,
    InvalidArgumentError,
    InvalidHuntError,
    NotEligibleError,
    PermissionDeniedError,
    SessionClosedError,
)
from orienteer.location.source import ReplayLocationSource
from orienteer.location.supervisor import LocationStreamSupervisor
from orienteer.progress.state_machine import ProgressStatus
from orienteer.session import HuntSession

from conftest import STARTED_AT


@pytest.fixture
def service(hunt):
    empty = Hunt(id="empty", name="Empty", total_points=0)
    return LocalHuntService([hunt, empty], clock=lambda: STARTED_AT)


def _session(service, player="p1", **kwargs):
    backend = LocalHuntBackend(service, player)
    return HuntSession(player, HuntCatalog(backend), backend, **kwargs)


class _GatedBackend(LocalHuntBackend):
    """Processes each check-in right away but holds the response until released."""

    def __init__(self, service, player_id):
        super().__init__(service, player_id)
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def submit_check_in(self, hunt_id, waypoint_id, position) -> CheckInResult:
        result = await super().submit_check_in(hunt_id, waypoint_id, position)
        self.entered.set()
        await self.release.wait()
        return result


@pytest.mark.asyncio
async def test_start_exposes_an_active_view(service, hunt):
    session = _session(service)
    assert session.get_active_hunt_view() is None

    progress = await session.start_hunt(hunt.id)
    view = session.get_active_hunt_view()
    assert view.progress == progress
    assert view.status == ProgressStatus.IN_PROGRESS
    assert view.target.id == "wp-a"
    assert view.current_clue == "Count the arches"
    assert view.current_hint == "Under the arch"
    assert view.reading.distance_m is None
    assert view.elapsed_display(now=STARTED_AT.replace(minute=3, second=4)) == "3m 4s"


@pytest.mark.asyncio
async def test_start_rejects_unknown_and_empty_hunts(service):
    session = _session(service)
    with pytest.raises(HuntNotFoundError):
        await session.start_hunt("missing")
    with pytest.raises(InvalidHuntError):
        await session.start_hunt("empty")
    assert session.get_active_hunt_view() is None


@pytest.mark.asyncio
async def test_update_position_recomputes_synchronously(service, hunt, base):
    session = _session(service)
    await session.start_hunt(hunt.id)
    views = []
    session.state.subscribe(views.append, emit_current=False)

    far = session.update_position(destination_point(base, 0.0, 100.0))
    near = session.update_position(destination_point(base, 0.0, 10.0))

    assert not far.eligible and near.eligible
    assert session.get_active_hunt_view().reading == near
    assert [v.reading for v in views] == [far, near]


@pytest.mark.asyncio
async def test_check_in_walk_to_completion(service, hunt):
    session = _session(service)
    await session.start_hunt(hunt.id)

    for waypoint in hunt.waypoints:
        session.update_position(waypoint.position)
        outcome = await session.attempt_check_in()
        assert session.get_active_hunt_view().progress == outcome.progress

    view = session.get_active_hunt_view()
    assert view.status == ProgressStatus.COMPLETED
    assert view.progress.earned_points == hunt.total_points
    assert outcome.message == "Hunt completed!"
    # Server and session agree on the final state.
    assert service.progress_for("p1", hunt.id) == view.progress


@pytest.mark.asyncio
async def test_check_in_without_fix_is_not_eligible(service, hunt):
    session = _session(service)
    await session.start_hunt(hunt.id)
    with pytest.raises(NotEligibleError):
        await session.attempt_check_in()


@pytest.mark.asyncio
async def test_check_in_without_active_hunt_raises_session_closed(service):
    with pytest.raises(SessionClosedError):
        await _session(service).attempt_check_in()


@pytest.mark.asyncio
async def test_concurrent_check_in_is_busy(service, hunt):
    backend = _GatedBackend(service, "p1")
    session = HuntSession("p1", HuntCatalog(backend), backend)
    await session.start_hunt(hunt.id)
    session.update_position(hunt.waypoints[0].position)

    first = asyncio.create_task(session.attempt_check_in())
    await backend.entered.wait()
    assert session.check_in_in_flight
    with pytest.raises(AttemptInProgressError):
        await session.attempt_check_in()

    backend.release.set()
    outcome = await first
    assert not session.check_in_in_flight
    assert session.get_active_hunt_view().progress == outcome.progress


@pytest.mark.asyncio
async def test_response_after_abandon_is_discarded(service, hunt):
    backend = _GatedBackend(service, "p1")
    session = HuntSession("p1", HuntCatalog(backend), backend)
    await session.start_hunt(hunt.id)
    session.update_position(hunt.waypoints[0].position)

    pending = asyncio.create_task(session.attempt_check_in())
    await backend.entered.wait()
    abandoned = await session.abandon_hunt()
    backend.release.set()

    with pytest.raises(SessionClosedError):
        await pending
    assert session.get_active_hunt_view() is None
    assert session.history == (abandoned,)
    assert abandoned.earned_points == 0


@pytest.mark.asyncio
async def test_end_and_restart_archive_previous_attempts(service, hunt):
    session = _session(service)
    first = await session.start_hunt(hunt.id)
    # Restarting an unfinished hunt resumes it rather than archiving.
    assert (await session.start_hunt(hunt.id)).id == first.id
    assert session.history == ()

    assert session.end_hunt() == first
    assert session.end_hunt() is None
    assert session.history == (first,)
    with pytest.raises(SessionClosedError):
        await session.abandon_hunt()


def test_session_requires_a_player(service):
    with pytest.raises(InvalidArgumentError):
        _session(service, player="")


@pytest.mark.asyncio
async def test_tracking_feeds_positions_until_stopped(service, hunt, base):
    track = [destination_point(base, 0.0, d) for d in (300.0, 150.0, 20.0)]
    source = ReplayLocationSource(track)
    supervisor = LocationStreamSupervisor(source, min_interval_ms=0, min_distance_m=0.0)
    session = _session(service, supervisor=supervisor)

    arrived = asyncio.Event()
    session.state.subscribe(lambda v: v is not None and v.reading.eligible and arrived.set())
    await session.start_hunt(hunt.id, track=True)
    assert session.tracking

    await asyncio.wait_for(arrived.wait(), timeout=2)
    assert session.position == track[-1]

    outcome = await session.attempt_check_in()
    assert outcome.progress.earned_points == 10

    session.stop_tracking()
    await asyncio.sleep(0)
    assert not session.tracking
    assert source.active_subscriptions == 0


@pytest.mark.asyncio
async def test_abandon_stops_tracking(service, hunt):
    source = ReplayLocationSource([], delay_seconds=0.01)
    supervisor = LocationStreamSupervisor(source, min_interval_ms=0, min_distance_m=0.0)
    session = _session(service, supervisor=supervisor)
    await session.start_hunt(hunt.id, track=True)
    await asyncio.sleep(0)
    assert source.active_subscriptions == 1

    await session.abandon_hunt()
    assert not session.tracking
    assert source.active_subscriptions == 0
    assert service.progress_for("p1", hunt.id) is None


@pytest.mark.asyncio
async def test_tracking_requires_source_and_permission(service, hunt):
    session = _session(service)
    await session.start_hunt(hunt.id)
    with pytest.raises(InvalidArgumentError):
        session.start_tracking()

    denied = LocationStreamSupervisor(ReplayLocationSource([], permission=False))
    session = _session(service, player="p2", supervisor=denied)
    await session.start_hunt(hunt.id)
    with pytest.raises(PermissionDeniedError):
        session.start_tracking()
    assert not session.tracking


@pytest.mark.asyncio
async def test_sessions_do_not_share_state(service, hunt):
    alice = _session(service, player="alice")
    bob = _session(service, player="bob")
    await alice.start_hunt(hunt.id)
    alice.update_position(hunt.waypoints[0].position)
    await alice.attempt_check_in()

    await bob.start_hunt(hunt.id)
    assert bob.get_active_hunt_view().progress.earned_points == 0
    assert alice.get_active_hunt_view().progress.earned_points == 10


class _ManualSource:
    """Platform stand-in: the test pushes samples and errors by hand."""

    def __init__(self):
        self.subscribes = 0
        self.cancels = 0
        self.on_sample = None
        self.on_error = None

    def has_permission(self):
        return True

    def subscribe(self, on_sample, on_error):
        self.subscribes += 1
        self.on_sample, self.on_error = on_sample, on_error
        source = self

        class _Subscription:
            def cancel(self):
                source.cancels += 1

        return _Subscription()


@pytest.mark.asyncio
async def test_revoked_permission_while_tracking_drops_eligibility(service, hunt):
    source = _ManualSource()
    supervisor = LocationStreamSupervisor(source, min_interval_ms=0, min_distance_m=0.0)
    session = _session(service, supervisor=supervisor)
    await session.start_hunt(hunt.id)
    task = session.start_tracking()
    for _ in range(5):
        await asyncio.sleep(0)
    assert source.subscribes == 1

    arrived = asyncio.Event()
    session.state.subscribe(lambda v: v is not None and v.reading.eligible and arrived.set(), emit_current=False)
    source.on_sample(hunt.waypoints[0].position)
    await asyncio.wait_for(arrived.wait(), timeout=1)

    views = []
    session.state.subscribe(views.append, emit_current=False)
    source.on_error(PermissionError("revoked"))
    done, _ = await asyncio.wait({task}, timeout=1)
    assert task in done

    assert isinstance(session.tracking_error, PermissionDeniedError)
    assert not session.tracking
    assert session.position is None
    assert source.cancels == 1
    view = session.get_active_hunt_view()
    assert view.position is None
    assert not view.reading.eligible
    assert [v.reading.eligible for v in views] == [False]
    with pytest.raises(NotEligibleError):
        await session.attempt_check_in()

    session.start_tracking()
    assert session.tracking_error is None
    session.stop_tracking()
