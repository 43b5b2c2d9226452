from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel

from pacemates.core.config import settings
from pacemates.core.time_utils import (
    compute_pace,
    meters_to_km,
    seconds_to_hhmmss,
    to_local_datetime,
)
from pacemates.tracking.types import CompletedRun, UserStatistics


class CompletedRunRead(BaseModel):
    """Schema returned to the frontend when reading a run."""

    id: int
    session_id: str
    owner_id: str
    run_date: Optional[date] = None  # local day the run was recorded
    created_at: Optional[datetime] = None
    distance_m: float
    distance_km: float
    duration_seconds: int
    duration: str   # "HH:MM:SS"
    pace: str       # e.g. "5:30/km"
    route: list[list[float]]

    @classmethod
    def from_run(cls, run: CompletedRun) -> "CompletedRunRead":
        local = to_local_datetime(run.created_at, settings.timezone) if run.created_at else None
        return cls(
            id=run.id,
            session_id=run.session_id,
            owner_id=run.owner_id,
            run_date=local.date() if local else None,
            created_at=run.created_at,
            distance_m=run.distance_meters,
            distance_km=meters_to_km(run.distance_meters),
            duration_seconds=run.duration_seconds,
            duration=seconds_to_hhmmss(run.duration_seconds),
            pace=compute_pace(run.duration_seconds, run.distance_meters),
            route=[c.as_pair() for c in run.route],
        )


class StatisticsRead(BaseModel):
    owner_id: str
    total_runs: int
    total_distance_m: float
    total_distance_km: float  # one decimal, as on the profile screen
    total_time_seconds: int
    total_time: str           # "HH:MM:SS"

    @classmethod
    def from_stats(cls, stats: UserStatistics) -> "StatisticsRead":
        return cls(
            owner_id=stats.owner_id,
            total_runs=stats.total_runs,
            total_distance_m=stats.total_distance_meters,
            total_distance_km=meters_to_km(stats.total_distance_meters, 1),
            total_time_seconds=stats.total_time_seconds,
            total_time=seconds_to_hhmmss(stats.total_time_seconds),
        )
