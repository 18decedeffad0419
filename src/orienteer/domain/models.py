"""
Domain models (Pydantic).

These types represent the stable "contract" between layers:
- catalog entities (`Hunt`, `Waypoint`, `Clue`) that the engine only reads
- the player's mutable-by-replacement state (`Progress`)
- what a check-in collaborator answers (`CheckInResult`)

All of them are frozen: a transition produces a new instance, it never edits one in
place. Keeping the models in one place gives us validation at the boundary (reject
inconsistent hunts early) and consistent JSON output across CLI/API.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from orienteer.core.geo import GeoPoint


class HuntDifficulty(str, Enum):
    BEGINNER = "BEGINNER"
    INTERMEDIATE = "INTERMEDIATE"
    ADVANCED = "ADVANCED"
    EXPERT = "EXPERT"

    @classmethod
    def parse(cls, value: str | None) -> "HuntDifficulty":
        """Lenient parse: unknown or missing values fall back to INTERMEDIATE."""
        try:
            return cls((value or "").strip().upper())
        except ValueError:
            return cls.INTERMEDIATE


class ClueDifficulty(str, Enum):
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"

    @classmethod
    def parse(cls, value: str | None) -> "ClueDifficulty":
        """Lenient parse: unknown or missing values fall back to MEDIUM."""
        try:
            return cls((value or "").strip().upper())
        except ValueError:
            return cls.MEDIUM


class Waypoint(BaseModel):
    """One stop of a hunt; `sequence_index` defines traversal order."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str
    description: str = ""
    position: GeoPoint
    hint: str = ""
    points: int = Field(..., ge=0)
    sequence_index: int = Field(..., ge=0)
    image_url: str | None = None


class Clue(BaseModel):
    """Riddle text that leads the player to a waypoint."""

    model_config = ConfigDict(frozen=True)

    id: str
    waypoint_id: str
    text: str
    hint: str | None = None
    difficulty: ClueDifficulty = ClueDifficulty.MEDIUM


class Hunt(BaseModel):
    """Read-only description of a hunt: ordered waypoints, clues and scoring."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str
    description: str = ""
    waypoints: tuple[Waypoint, ...] = ()
    clues: tuple[Clue, ...] = ()
    total_points: int = Field(..., ge=0)
    estimated_duration_minutes: int = Field(0, ge=0)
    difficulty: HuntDifficulty = HuntDifficulty.INTERMEDIATE
    image_url: str | None = None
    active: bool = True

    @field_validator("difficulty", mode="before")
    @classmethod
    def _lenient_difficulty(cls, value: object) -> object:
        if isinstance(value, str):
            return HuntDifficulty.parse(value)
        return value

    @model_validator(mode="after")
    def _validate_consistency(self) -> "Hunt":
        seen_ids: set[str] = set()
        previous_index = -1
        for waypoint in self.waypoints:
            if waypoint.id in seen_ids:
                raise ValueError(f"duplicate waypoint id '{waypoint.id}' in hunt '{self.id}'")
            seen_ids.add(waypoint.id)
            if waypoint.sequence_index <= previous_index:
                raise ValueError(
                    f"waypoints of hunt '{self.id}' must be strictly increasing by sequence_index"
                )
            previous_index = waypoint.sequence_index

        expected = sum(w.points for w in self.waypoints)
        if self.total_points != expected:
            raise ValueError(
                f"hunt '{self.id}' total_points={self.total_points} but waypoints sum to {expected}"
            )

        for clue in self.clues:
            if clue.waypoint_id not in seen_ids:
                raise ValueError(f"clue '{clue.id}' refers to unknown waypoint '{clue.waypoint_id}'")
        return self

    @property
    def waypoint_count(self) -> int:
        return len(self.waypoints)

    @property
    def waypoint_ids(self) -> frozenset[str]:
        return frozenset(w.id for w in self.waypoints)

    def waypoint_at(self, index: int) -> Waypoint | None:
        """Return the waypoint at traversal position `index` (None when out of range)."""
        if 0 <= index < len(self.waypoints):
            return self.waypoints[index]
        return None

    def clue_for(self, waypoint_id: str) -> Clue | None:
        return next((c for c in self.clues if c.waypoint_id == waypoint_id), None)


class HuntFilter(BaseModel):
    """Catalog query: case-insensitive text search + optional difficulty."""

    search: str | None = None
    difficulty: HuntDifficulty | None = None
    active_only: bool = False

    @field_validator("difficulty", mode="before")
    @classmethod
    def _lenient_difficulty(cls, value: object) -> object:
        if isinstance(value, str):
            return HuntDifficulty.parse(value)
        return value

    def matches(self, hunt: Hunt) -> bool:
        if self.active_only and not hunt.active:
            return False
        if self.difficulty is not None and hunt.difficulty != self.difficulty:
            return False
        if self.search:
            needle = self.search.strip().lower()
            haystack = f"{hunt.name}\n{hunt.description}".lower()
            if needle not in haystack:
                return False
        return True


class Progress(BaseModel):
    """A player's advancement through one hunt attempt.

    Only the functions in `orienteer.progress.state_machine` produce new values;
    nothing edits an instance in place.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    player_id: str
    hunt_id: str
    visited_waypoint_ids: frozenset[str] = frozenset()
    current_index: int = Field(0, ge=0)
    earned_points: int = Field(0, ge=0)
    started_at: datetime
    completed_at: datetime | None = None
    completed: bool = False

    @model_validator(mode="after")
    def _validate_completion(self) -> "Progress":
        if self.completed != (self.completed_at is not None):
            raise ValueError("completed must be true exactly when completed_at is set")
        return self


class CheckInAttempt(BaseModel):
    """Ephemeral record of one check-in action (never persisted)."""

    model_config = ConfigDict(frozen=True)

    hunt_id: str
    waypoint_id: str
    observed_position: GeoPoint
    distance_m: float = Field(..., ge=0)


class CheckInResult(BaseModel):
    """What the check-in collaborator answered.

    `progress` is the authoritative snapshot when the collaborator sends one; it
    supersedes whatever the client computed locally.
    """

    model_config = ConfigDict(frozen=True)

    success: bool
    message: str = ""
    progress: Progress | None = None
    points_earned: int = Field(0, ge=0)
