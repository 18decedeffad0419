"""
API routes.

Endpoints (the player is identified by the `X-Player-Id` header):
- GET    `/api/health`
- GET    `/api/hunts`: catalog, filterable by `search`, `difficulty`, `active`.
- GET    `/api/hunts/{hunt_id}`
- POST   `/api/hunts/{hunt_id}/start`: start or resume the player's attempt.
- GET    `/api/progress`, `/api/progress/{hunt_id}`
- DELETE `/api/progress/{hunt_id}`: abandon.
- POST   `/api/progress/{hunt_id}/checkin`: body `{latitude, longitude[, waypoint_id]}`.
"""

from __future__ import annotations

from functools import lru_cache

from fastapi import APIRouter, Header, Response

from orienteer import __version__
from orienteer.checkin.local import LocalHuntService
from orienteer.catalog.loader import load_hunts
from orienteer.config.settings import get_settings
from orienteer.domain.models import HuntFilter
from orienteer.errors import InvalidArgumentError, RemoteClientError
from orienteer.remote.dto import CheckInRequest, CheckInResponse, HuntDto, ProgressDto

router = APIRouter()


@lru_cache
def _service() -> LocalHuntService:
    settings = get_settings()
    hunts = load_hunts(settings.catalog.path)
    return LocalHuntService(hunts, radius_m=settings.checkin.radius_m)


def _player(player_id: str | None) -> str:
    if not player_id or not player_id.strip():
        raise InvalidArgumentError("Missing X-Player-Id header")
    return player_id.strip()


@router.get("/api/health")
def health() -> dict:
    return {"status": "ok", "version": __version__}


@router.get("/api/hunts", response_model=list[HuntDto])
def list_hunts(
    search: str | None = None,
    difficulty: str | None = None,
    active: bool = False,
) -> list[HuntDto]:
    hunt_filter = HuntFilter(search=search, difficulty=difficulty, active_only=active)
    return [HuntDto.from_domain(h) for h in _service().list_hunts(hunt_filter)]


@router.get("/api/hunts/{hunt_id}", response_model=HuntDto)
def get_hunt(hunt_id: str) -> HuntDto:
    return HuntDto.from_domain(_service().get_hunt(hunt_id))


@router.post("/api/hunts/{hunt_id}/start", response_model=ProgressDto)
def start_hunt(hunt_id: str, x_player_id: str | None = Header(default=None)) -> ProgressDto:
    progress = _service().start(_player(x_player_id), hunt_id)
    return ProgressDto.from_domain(progress)


@router.get("/api/progress", response_model=list[ProgressDto])
def list_progress(x_player_id: str | None = Header(default=None)) -> list[ProgressDto]:
    return [ProgressDto.from_domain(p) for p in _service().all_progress(_player(x_player_id))]


@router.get("/api/progress/{hunt_id}", response_model=ProgressDto)
def get_progress(hunt_id: str, x_player_id: str | None = Header(default=None)) -> ProgressDto:
    progress = _service().progress_for(_player(x_player_id), hunt_id)
    if progress is None:
        raise RemoteClientError(f"No active progress for hunt '{hunt_id}'", status_code=404)
    return ProgressDto.from_domain(progress)


@router.delete("/api/progress/{hunt_id}", status_code=204)
def abandon_hunt(hunt_id: str, x_player_id: str | None = Header(default=None)) -> Response:
    _service().abandon(_player(x_player_id), hunt_id)
    return Response(status_code=204)


@router.post("/api/progress/{hunt_id}/checkin", response_model=CheckInResponse)
def check_in(
    hunt_id: str,
    body: CheckInRequest,
    x_player_id: str | None = Header(default=None),
) -> CheckInResponse:
    result = _service().check_in(
        _player(x_player_id),
        hunt_id,
        body.position(),
        waypoint_id=body.waypoint_id,
    )
    return CheckInResponse.from_domain(result)
