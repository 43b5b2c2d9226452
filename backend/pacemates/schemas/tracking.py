from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from pacemates.core.errors import POSITION_ERRORS
from pacemates.core.time_utils import meters_to_km, seconds_to_hhmmss
from pacemates.tracking.types import Coordinate, SessionState, ActiveSessionRecord


class CoordinateIn(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    def to_coordinate(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)


class PositionErrorIn(BaseModel):
    # permission_denied, unavailable or timeout
    kind: str = Field(..., pattern="^(" + "|".join(POSITION_ERRORS) + ")$")
    message: Optional[str] = None


class TrackingState(BaseModel):
    """What the active-run screen renders."""

    session_id: str
    owner_id: str
    status: str
    started_at: Optional[datetime] = None
    elapsed_seconds: int
    elapsed: str            # "HH:MM:SS"
    distance_m: float
    distance_km: float      # rounded to 2 decimals, as displayed
    route: list[list[float]]  # [[lat, lon], ...]
    error: Optional[str] = None

    @classmethod
    def from_state(cls, state: SessionState, error: Optional[Exception] = None) -> "TrackingState":
        return cls(
            session_id=state.session_id,
            owner_id=state.owner_id,
            status=state.status.value,
            started_at=state.started_at,
            elapsed_seconds=state.elapsed_seconds,
            elapsed=seconds_to_hhmmss(state.elapsed_seconds),
            distance_m=state.distance_meters,
            distance_km=meters_to_km(state.distance_meters),
            route=[c.as_pair() for c in state.route],
            error=getattr(error, "kind", None),
        )


class ActiveSessionRead(BaseModel):
    owner_id: str
    latitude: float
    longitude: float
    route: list[list[float]]
    started_at: datetime

    @classmethod
    def from_record(cls, record: ActiveSessionRecord) -> "ActiveSessionRead":
        return cls(
            owner_id=record.owner_id,
            latitude=record.current_location.latitude,
            longitude=record.current_location.longitude,
            route=[c.as_pair() for c in record.route],
            started_at=record.started_at,
        )


class PresenceRead(BaseModel):
    viewer_id: str
    stale: bool
    refreshed_at: Optional[datetime] = None
    runners: list[ActiveSessionRead]
