"""Immutable value types shared by the tracking, presence and store layers."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from pacemates.core.constants import LAT_RANGE, LON_RANGE


class InvalidCoordinate(ValueError):
    pass


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def __post_init__(self):
        lat, lon = float(self.latitude), float(self.longitude)
        if not LAT_RANGE[0] <= lat <= LAT_RANGE[1]:
            raise InvalidCoordinate(f"latitude {lat} outside {LAT_RANGE}")
        if not LON_RANGE[0] <= lon <= LON_RANGE[1]:
            raise InvalidCoordinate(f"longitude {lon} outside {LON_RANGE}")
        object.__setattr__(self, "latitude", lat)
        object.__setattr__(self, "longitude", lon)

    def as_pair(self) -> list[float]:
        """[lat, lon], the order the route JSON columns use."""
        return [self.latitude, self.longitude]

    @classmethod
    def from_pair(cls, pair) -> "Coordinate":
        return cls(pair[0], pair[1])


Route = tuple[Coordinate, ...]


def route_to_json(route) -> list[list[float]]:
    return [c.as_pair() for c in route]


def route_from_json(data) -> Route:
    return tuple(Coordinate.from_pair(p) for p in (data or []))


class RunStatus(str, Enum):
    idle = "idle"
    active = "active"
    finished = "finished"
    cancelled = "cancelled"


@dataclass(frozen=True)
class RunSessionSnapshot:
    session_id: str
    owner_id: str
    started_at: datetime
    finished_at: datetime
    elapsed_seconds: int
    distance_meters: float
    route: Route


@dataclass(frozen=True)
class SessionState:
    """Point-in-time read of a session in any status."""

    session_id: str
    owner_id: str
    status: RunStatus
    started_at: Optional[datetime]
    elapsed_seconds: int
    distance_meters: float
    route: Route


@dataclass(frozen=True)
class ActiveSessionRecord:
    owner_id: str
    current_location: Coordinate
    route: Route
    started_at: datetime


@dataclass(frozen=True)
class CompletedRun:
    id: int
    session_id: str
    owner_id: str
    distance_meters: float
    duration_seconds: int
    route: Route
    created_at: datetime


@dataclass(frozen=True)
class UserStatistics:
    owner_id: str
    total_runs: int = 0
    total_distance_meters: float = 0.0
    total_time_seconds: int = 0


@dataclass(frozen=True)
class UserProfile:
    id: str
    display_name: Optional[str] = None
    is_visible: bool = True
    created_at: Optional[datetime] = field(default=None, compare=False)
