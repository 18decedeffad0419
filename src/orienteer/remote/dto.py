"""
Wire DTOs for the hunt API (snake_case JSON) and their mappings to domain models.

The same DTOs are used by the client (`HuntApiClient`) to parse responses and by the
HTTP front (`orienteer.api`) to render them, so both sides agree on one format.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from orienteer.core.geo import GeoPoint
from orienteer.core.time import parse_datetime, utc_now
from orienteer.domain.models import (
    CheckInResult,
    Clue,
    ClueDifficulty,
    Hunt,
    HuntDifficulty,
    Progress,
    Waypoint,
)

logger = logging.getLogger(__name__)


class GeoLocationDto(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    def to_domain(self) -> GeoPoint:
        return GeoPoint(latitude=self.latitude, longitude=self.longitude)


class HuntLocationDto(BaseModel):
    id: str
    name: str
    description: str = ""
    location: GeoLocationDto
    hint: str | None = None
    points: int = Field(..., ge=0)
    order: int = Field(..., ge=0)
    image_url: str | None = None

    def to_domain(self) -> Waypoint:
        return Waypoint(
            id=self.id,
            name=self.name,
            description=self.description,
            position=self.location.to_domain(),
            hint=self.hint or "",
            points=self.points,
            sequence_index=self.order,
            image_url=self.image_url,
        )

    @classmethod
    def from_domain(cls, waypoint: Waypoint) -> "HuntLocationDto":
        return cls(
            id=waypoint.id,
            name=waypoint.name,
            description=waypoint.description,
            location=GeoLocationDto(
                latitude=waypoint.position.latitude, longitude=waypoint.position.longitude
            ),
            hint=waypoint.hint or None,
            points=waypoint.points,
            order=waypoint.sequence_index,
            image_url=waypoint.image_url,
        )


class ClueDto(BaseModel):
    id: str
    hunt_location_id: str
    text: str
    hint: str | None = None
    difficulty: str = "MEDIUM"

    def to_domain(self) -> Clue:
        return Clue(
            id=self.id,
            waypoint_id=self.hunt_location_id,
            text=self.text,
            hint=self.hint,
            difficulty=ClueDifficulty.parse(self.difficulty),
        )

    @classmethod
    def from_domain(cls, clue: Clue) -> "ClueDto":
        return cls(
            id=clue.id,
            hunt_location_id=clue.waypoint_id,
            text=clue.text,
            hint=clue.hint,
            difficulty=clue.difficulty.value,
        )


class HuntDto(BaseModel):
    id: str
    name: str
    description: str = ""
    total_points: int = 0
    estimated_duration_minutes: int = 0
    difficulty: str = "INTERMEDIATE"
    image_url: str | None = None
    is_active: bool = True
    locations: list[HuntLocationDto] = Field(default_factory=list)
    clues: list[ClueDto] = Field(default_factory=list)

    def to_domain(self) -> Hunt:
        waypoints = sorted((loc.to_domain() for loc in self.locations), key=lambda w: w.sequence_index)
        total = sum(w.points for w in waypoints)
        # Hunt list endpoints may omit locations; only a full payload can be checked.
        if waypoints and total != self.total_points:
            logger.warning(
                "Hunt %s reports total_points=%d but its waypoints sum to %d; using the sum",
                self.id,
                self.total_points,
                total,
            )
        return Hunt(
            id=self.id,
            name=self.name,
            description=self.description,
            waypoints=tuple(waypoints),
            clues=tuple(c.to_domain() for c in self.clues),
            total_points=total,
            estimated_duration_minutes=self.estimated_duration_minutes,
            difficulty=HuntDifficulty.parse(self.difficulty),
            image_url=self.image_url,
            active=self.is_active,
        )

    @classmethod
    def from_domain(cls, hunt: Hunt) -> "HuntDto":
        return cls(
            id=hunt.id,
            name=hunt.name,
            description=hunt.description,
            total_points=hunt.total_points,
            estimated_duration_minutes=hunt.estimated_duration_minutes,
            difficulty=hunt.difficulty.value,
            image_url=hunt.image_url,
            is_active=hunt.active,
            locations=[HuntLocationDto.from_domain(w) for w in hunt.waypoints],
            clues=[ClueDto.from_domain(c) for c in hunt.clues],
        )


class ProgressDto(BaseModel):
    id: str
    player_id: str
    hunt_id: str
    visited_locations: list[str] = Field(default_factory=list)
    current_location_index: int = 0
    earned_points: int = 0
    started_at: str
    completed_at: str | None = None
    is_completed: bool = False

    def to_domain(self) -> Progress:
        completed_at = parse_datetime(self.completed_at) if self.completed_at else None
        if self.is_completed and completed_at is None:
            logger.warning("Progress %s is completed without completed_at; stamping now", self.id)
            completed_at = utc_now()
        if not self.is_completed:
            completed_at = None
        return Progress(
            id=self.id,
            player_id=self.player_id,
            hunt_id=self.hunt_id,
            visited_waypoint_ids=frozenset(self.visited_locations),
            current_index=self.current_location_index,
            earned_points=self.earned_points,
            started_at=parse_datetime(self.started_at),
            completed_at=completed_at,
            completed=self.is_completed,
        )

    @classmethod
    def from_domain(cls, progress: Progress) -> "ProgressDto":
        return cls(
            id=progress.id,
            player_id=progress.player_id,
            hunt_id=progress.hunt_id,
            visited_locations=sorted(progress.visited_waypoint_ids),
            current_location_index=progress.current_index,
            earned_points=progress.earned_points,
            started_at=progress.started_at.isoformat(),
            completed_at=progress.completed_at.isoformat() if progress.completed_at else None,
            is_completed=progress.completed,
        )


class CheckInRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    waypoint_id: str | None = None

    def position(self) -> GeoPoint:
        return GeoPoint(latitude=self.latitude, longitude=self.longitude)


class CheckInResponse(BaseModel):
    success: bool
    message: str = ""
    progress: ProgressDto | None = None
    points_earned: int = 0

    def to_domain(self) -> CheckInResult:
        return CheckInResult(
            success=self.success,
            message=self.message,
            progress=self.progress.to_domain() if self.progress is not None else None,
            points_earned=max(0, self.points_earned),
        )

    @classmethod
    def from_domain(cls, result: CheckInResult) -> "CheckInResponse":
        return cls(
            success=result.success,
            message=result.message,
            progress=ProgressDto.from_domain(result.progress) if result.progress is not None else None,
            points_earned=result.points_earned,
        )


class ApiError(BaseModel):
    error: str
    message: str | None = None
