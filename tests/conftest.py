from datetime import datetime, timezone

import pytest

from orienteer.config.settings import get_settings
from orienteer.core.geo import GeoPoint, destination_point
from orienteer.domain.models import Clue, Hunt, Waypoint
from orienteer.progress import state_machine

BASE = GeoPoint(latitude=52.3702, longitude=4.8952)
STARTED_AT = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _fresh_settings():
    # Settings are lru_cached; env overrides in one test must not leak into the next.
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def base() -> GeoPoint:
    return BASE


@pytest.fixture
def hunt() -> Hunt:
    """Three waypoints 1 km apart, worth 10/20/30 points."""
    return Hunt(
        id="canal-ring",
        name="Canal Ring",
        description="Bridges and gables",
        total_points=60,
        waypoints=(
            Waypoint(id="wp-a", name="Bridge", position=BASE, hint="Under the arch", points=10, sequence_index=0),
            Waypoint(
                id="wp-b",
                name="Gable",
                position=destination_point(BASE, 90.0, 1000.0),
                points=20,
                sequence_index=1,
            ),
            Waypoint(
                id="wp-c",
                name="Tower",
                position=destination_point(BASE, 180.0, 1000.0),
                points=30,
                sequence_index=2,
            ),
        ),
        clues=(Clue(id="c-a", waypoint_id="wp-a", text="Count the arches"),),
    )


@pytest.fixture
def progress(hunt):
    return state_machine.start(hunt, "player-1", now=STARTED_AT, progress_id="prog-1")
