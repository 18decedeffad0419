"""
Hunt catalog loader.

The local catalog is a JSON file (default: `data/catalogs/hunts.json`) holding a list
of hunts with their waypoints and clues. We validate it into typed Pydantic models so
the engine can assume waypoints are ordered and point totals are consistent.
"""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import TypeAdapter

from orienteer.core.env import resolve_project_path
from orienteer.core.geo import GeoPoint
from orienteer.domain.models import Hunt


_HUNTS_ADAPTER = TypeAdapter(list[Hunt])
_TRACK_ADAPTER = TypeAdapter(list[GeoPoint])


def load_hunts(path: str | Path) -> list[Hunt]:
    """Load and validate a hunt catalog JSON file."""
    resolved = resolve_project_path(path)
    payload = json.loads(resolved.read_text(encoding="utf-8"))
    return _HUNTS_ADAPTER.validate_python(payload)


def load_track(path: str | Path) -> list[GeoPoint]:
    """Load a recorded track: a JSON list of `{latitude, longitude[, altitude, accuracy]}`."""
    resolved = resolve_project_path(path)
    payload = json.loads(resolved.read_text(encoding="utf-8"))
    return _TRACK_ADAPTER.validate_python(payload)
