"""Seed demo runners: profiles, a few weeks of finished runs, and live sessions.

Runs go through the real engine (RunSession -> RunFinalizer), so history and
statistics stay consistent with what the app itself would write.
"""

from datetime import datetime, timedelta, timezone
import math
import random

from pacemates.db import Base, SessionLocal, engine
from pacemates.models.active_session import ActiveSession
from pacemates.models.completed_run import CompletedRunRow
from pacemates.models.profile import Profile
from pacemates.models.user_statistics import UserStatisticsRow
from pacemates.store.sql import SqlRunStore
from pacemates.tracking.finalizer import RunFinalizer
from pacemates.tracking.session import RunSession
from pacemates.tracking.types import Coordinate, UserProfile

# Praça da Sé, São Paulo
CENTER = Coordinate(-23.5505, -46.6333)

RUNNERS = [
    ("ana", "Ana", True),
    ("bruno", "Bruno", True),
    ("carla", "Carla", False),  # hidden from the map
]


def loop_route(center: Coordinate, radius_m: float, points: int) -> list[Coordinate]:
    """A rough circle around `center`, good enough for demo polylines."""
    lat_deg = radius_m / 111195.0
    lon_deg = lat_deg / max(math.cos(math.radians(center.latitude)), 1e-6)
    return [
        Coordinate(
            center.latitude + lat_deg * math.sin(2 * math.pi * i / points),
            center.longitude + lon_deg * math.cos(2 * math.pi * i / points),
        )
        for i in range(points + 1)
    ]


def clear_demo_data(db) -> None:
    """Delete everything owned by the demo runners so we can reseed cleanly."""
    ids = [r[0] for r in RUNNERS]
    for model, col in [
        (ActiveSession, ActiveSession.owner_id),
        (CompletedRunRow, CompletedRunRow.owner_id),
        (UserStatisticsRow, UserStatisticsRow.owner_id),
        (Profile, Profile.id),
    ]:
        db.query(model).filter(col.in_(ids)).delete(synchronize_session=False)
    db.commit()


def seed_history(store: SqlRunStore, owner_id: str, weeks: int = 4) -> None:
    finalizer = RunFinalizer(store)
    start = datetime.now(timezone.utc) - timedelta(weeks=weeks)
    for week in range(weeks):
        for day in (1, 3, 6):
            radius = random.uniform(400.0, 1500.0)
            route = loop_route(CENTER, radius, points=random.randint(40, 80))
            # ~5:30/km
            duration = int(2 * math.pi * radius / 1000 * 330)
            when = start + timedelta(weeks=week, days=day, hours=random.randint(6, 19))
            # start and finish stamps, so the run lands on its own day
            stamps = iter([when, when + timedelta(seconds=duration)])
            session = RunSession(owner_id, now=lambda stamps=stamps: next(stamps))
            session.start(route[0])
            for point in route[1:]:
                session.record_position(point)
            for _ in range(duration):
                session.tick()
            finalizer.finalize(session.finish())


def seed_live_sessions(store: SqlRunStore) -> None:
    for owner_id, _, _ in RUNNERS:
        route = loop_route(CENTER, random.uniform(200.0, 600.0), points=12)[:6]
        session = RunSession(owner_id)
        store.upsert_active_session(session.start(route[0]))
        for point in route[1:]:
            record = session.record_position(point)
        store.upsert_active_session(record)


def main() -> None:
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        clear_demo_data(db)
    finally:
        db.close()

    store = SqlRunStore(SessionLocal)
    for owner_id, name, visible in RUNNERS:
        store.upsert_profile(UserProfile(id=owner_id, display_name=name, is_visible=visible))
        seed_history(store, owner_id)
    seed_live_sessions(store)

    for owner_id, _, _ in RUNNERS:
        stats = store.get_statistics(owner_id)
        print(f"{owner_id}: {stats.total_runs} runs, {stats.total_distance_meters / 1000:.1f} km")


if __name__ == "__main__":
    main()
