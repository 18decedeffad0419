from datetime import timedelta

import pytest

from orienteer.core.time import format_elapsed
from orienteer.domain.models import Hunt, Progress
from orienteer.errors import InvalidArgumentError, InvalidHuntError
from orienteer.progress import state_machine
from orienteer.progress.state_machine import ProgressStatus

from conftest import STARTED_AT


def _visit(progress, hunt, index, *, now=None):
    waypoint = hunt.waypoints[index]
    visited = state_machine.mark_visited(progress, waypoint.id, waypoint.points)
    return state_machine.advance(visited, hunt.waypoint_count, now=now)


def test_start_creates_in_progress_record(hunt, progress):
    assert progress.hunt_id == hunt.id
    assert progress.player_id == "player-1"
    assert progress.current_index == 0
    assert progress.earned_points == 0
    assert progress.visited_waypoint_ids == frozenset()
    assert not progress.completed and progress.completed_at is None
    assert state_machine.status_of(progress) == ProgressStatus.IN_PROGRESS
    assert state_machine.status_of(None) == ProgressStatus.NOT_STARTED


def test_start_rejects_empty_hunt_and_player(hunt):
    empty = Hunt(id="empty", name="Empty", total_points=0)
    with pytest.raises(InvalidHuntError):
        state_machine.start(empty, "player-1")
    with pytest.raises(InvalidArgumentError):
        state_machine.start(hunt, "")


def test_start_generates_unique_ids(hunt):
    a = state_machine.start(hunt, "p")
    b = state_machine.start(hunt, "p")
    assert a.id != b.id


def test_mark_visited_is_idempotent(progress):
    once = state_machine.mark_visited(progress, "wp-a", 10)
    twice = state_machine.mark_visited(once, "wp-a", 10)
    assert once.earned_points == 10
    assert twice == once
    # The input record is never modified.
    assert progress.earned_points == 0


@pytest.mark.parametrize("waypoint_id, points", [("", 10), ("wp-a", -1)])
def test_mark_visited_rejects_bad_arguments(progress, waypoint_id, points):
    with pytest.raises(InvalidArgumentError):
        state_machine.mark_visited(progress, waypoint_id, points)


def test_advance_rejects_empty_total(progress):
    with pytest.raises(InvalidArgumentError):
        state_machine.advance(progress, 0)


def test_full_walk_completes_once_every_waypoint_is_visited(hunt, progress):
    finish = STARTED_AT + timedelta(minutes=42)
    p = _visit(progress, hunt, 0)
    assert (p.current_index, p.earned_points, p.completed) == (1, 10, False)

    p = _visit(p, hunt, 1)
    assert (p.current_index, p.earned_points, p.completed) == (2, 30, False)

    p = _visit(p, hunt, 2, now=finish)
    assert p.current_index == 2
    assert p.earned_points == 60
    assert p.completed and p.completed_at == finish
    assert state_machine.status_of(p) == ProgressStatus.COMPLETED
    assert state_machine.check_invariants(p, hunt) == []


def test_advance_clamps_to_last_index_without_completing(hunt, progress):
    p = progress
    for _ in range(5):
        p = state_machine.advance(p, hunt.waypoint_count)
    assert p.current_index == hunt.waypoint_count - 1
    assert not p.completed


def test_completion_is_count_based(hunt, progress):
    # Visiting the right number of waypoints completes, whatever order they came in.
    p = state_machine.mark_visited(progress, "wp-c", 30)
    p = state_machine.mark_visited(p, "wp-b", 20)
    p = state_machine.mark_visited(p, "wp-a", 10)
    p = state_machine.advance(p, 3)
    assert not p.completed
    p = state_machine.advance(p, 3)
    assert p.completed


def test_completed_at_is_kept_on_further_advances(hunt, progress):
    first = STARTED_AT + timedelta(minutes=5)
    p = _visit(_visit(_visit(progress, hunt, 0), hunt, 1), hunt, 2, now=first)
    again = state_machine.advance(p, hunt.waypoint_count, now=first + timedelta(hours=1))
    assert again.completed_at == first


def test_points_never_decrease_along_a_walk(hunt, progress):
    seen = [progress.earned_points]
    p = progress
    for index in (0, 0, 1, 1, 2):
        p = _visit(p, hunt, index)
        seen.append(p.earned_points)
    assert seen == sorted(seen)
    assert p.earned_points == hunt.total_points


def test_progress_rejects_inconsistent_completion(progress):
    with pytest.raises(ValueError):
        Progress(**{**progress.model_dump(), "completed": True})


def test_elapsed_uses_completion_time_and_never_goes_negative(hunt, progress):
    assert state_machine.elapsed(progress, now=STARTED_AT - timedelta(minutes=1)) == timedelta(0)
    assert state_machine.elapsed(progress, now=STARTED_AT + timedelta(seconds=65)) == timedelta(seconds=65)

    done = _visit(_visit(_visit(progress, hunt, 0), hunt, 1), hunt, 2, now=STARTED_AT + timedelta(minutes=3))
    later = STARTED_AT + timedelta(days=1)
    assert state_machine.elapsed(done, now=later) == timedelta(minutes=3)


@pytest.mark.parametrize(
    "delta, expected",
    [
        (timedelta(seconds=5), "5s"),
        (timedelta(minutes=3, seconds=4), "3m 4s"),
        (timedelta(hours=1, minutes=2, seconds=59), "1h 2m"),
        (timedelta(seconds=-10), "0s"),
    ],
)
def test_format_elapsed(delta, expected):
    assert format_elapsed(delta) == expected


def test_check_invariants_reports_problems(hunt, progress):
    bad = progress.model_copy(update={"visited_waypoint_ids": frozenset({"nope"}), "earned_points": 5})
    problems = state_machine.check_invariants(bad, hunt)
    assert any("unknown waypoints" in p for p in problems)
    assert any("earned_points=5" in p for p in problems)

    other = progress.model_copy(update={"hunt_id": "other"})
    assert state_machine.check_invariants(other, hunt) == ["progress is for hunt 'other', not 'canal-ring'"]
