from sqlalchemy import Column, DateTime, Float, String
from sqlalchemy.sql import func
from pacemates.db import Base, RouteJSON


class ActiveSession(Base):
    __tablename__ = "active_sessions"

    # One row per runner with a session in progress
    owner_id = Column(String, primary_key=True, index=True)

    current_lat = Column(Float, nullable=False)
    current_lon = Column(Float, nullable=False)

    # Full route, overwritten on every upsert: [[lat, lon], ...]
    route = Column(RouteJSON, nullable=False)

    started_at = Column(DateTime(timezone=True), nullable=False)

    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
