from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String, false
from sqlalchemy.sql import func
from pacemates.db import Base, RouteJSON


class CompletedRunRow(Base):
    __tablename__ = "completed_runs"

    id = Column(Integer, primary_key=True, index=True)

    # Idempotency key: a retried finalize finds the existing row
    session_id = Column(String(64), nullable=False, unique=True)

    owner_id = Column(String, nullable=False, index=True)

    distance_m = Column(Float, nullable=False)

    # Duration stored as **total seconds** (int)
    duration_seconds = Column(Integer, nullable=False)

    route = Column(RouteJSON, nullable=False)  # [[lat, lon], ...]

    started_at = Column(DateTime(timezone=True), nullable=True)

    # Set in the same transaction that increments user_statistics
    stats_applied = Column(Boolean, nullable=False, default=False, server_default=false())

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # Pace is not stored, it is computed on the fly
    # pace = duration_seconds / (distance_m / 1000)  (computed in schema)
