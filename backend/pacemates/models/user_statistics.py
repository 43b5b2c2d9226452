from sqlalchemy import Column, Float, Integer, String
from pacemates.db import Base


class UserStatisticsRow(Base):
    __tablename__ = "user_statistics"

    owner_id = Column(String, primary_key=True, index=True)

    # Only ever changed by SQL-side increments, never by absolute writes
    total_runs = Column(Integer, nullable=False, default=0)
    total_distance_m = Column(Float, nullable=False, default=0.0)
    total_time_seconds = Column(Integer, nullable=False, default=0)
