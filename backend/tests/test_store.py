from datetime import datetime, timedelta, timezone

from pacemates.presence.feed import ChangeKind
from pacemates.tracking.session import RunSession
from pacemates.tracking.types import (
    ActiveSessionRecord,
    Coordinate,
    UserProfile,
    UserStatistics,
)

T0 = datetime(2025, 3, 1, 6, 30, tzinfo=timezone.utc)


def record(owner_id, *points):
    route = tuple(Coordinate(*p) for p in points)
    return ActiveSessionRecord(owner_id=owner_id, current_location=route[-1], route=route, started_at=T0)


def finished_snapshot(owner_id="ana", session_id=None, ticks=30):
    s = RunSession(owner_id, session_id=session_id)
    s.start(Coordinate(-23.5505, -46.6333))
    for _ in range(ticks):
        s.tick()
    s.record_position(Coordinate(-23.5510, -46.6340))
    return s.finish()


def test_upsert_inserts_then_overwrites_route(store, events):
    store.upsert_active_session(record("ana", (1, 1)))
    store.upsert_active_session(record("ana", (1, 1), (1.001, 1.001)))

    [saved] = store.list_active_sessions()
    assert saved.owner_id == "ana"
    assert saved.route == (Coordinate(1, 1), Coordinate(1.001, 1.001))
    assert saved.current_location == Coordinate(1.001, 1.001)
    assert [e.kind for e in events] == [ChangeKind.insert, ChangeKind.update]


def test_delete_active_session(store, events):
    store.upsert_active_session(record("ana", (1, 1)))
    assert store.delete_active_session("ana") is True
    assert store.delete_active_session("ana") is False
    assert store.list_active_sessions() == []
    assert [e.kind for e in events] == [ChangeKind.insert, ChangeKind.delete]


def test_visibility_defaults_to_visible(store):
    store.upsert_profile(UserProfile(id="carla", is_visible=False))
    assert store.visibility_for(["ana", "carla"]) == {"ana": True, "carla": False}
    assert store.visibility_for([]) == {}


def test_visibility_change_notifies_only_when_running(store, events):
    store.upsert_profile(UserProfile(id="ana", display_name="Ana"))
    store.upsert_profile(UserProfile(id="ana", display_name="Ana", is_visible=False))
    assert events == []

    store.upsert_active_session(record("ana", (1, 1)))
    events.clear()
    store.upsert_profile(UserProfile(id="ana", display_name="Ana", is_visible=True))
    assert [(e.kind, e.owner_id) for e in events] == [(ChangeKind.update, "ana")]

    profile = store.get_profile("ana")
    assert profile.display_name == "Ana"
    assert profile.is_visible is True
    assert store.get_profile("nobody") is None


def test_insert_completed_run_is_idempotent_per_session(store):
    snap = finished_snapshot()
    first = store.insert_completed_run(snap)
    again = store.insert_completed_run(snap)

    assert first.id == again.id
    assert first.session_id == snap.session_id
    assert first.distance_meters == snap.distance_meters
    assert first.duration_seconds == 30
    assert first.route == snap.route
    assert len(store.list_completed_runs("ana")) == 1


def test_statistics_are_applied_once_per_run(store):
    assert store.get_statistics("ana") == UserStatistics(owner_id="ana")

    run = store.insert_completed_run(finished_snapshot(ticks=30))
    assert store.apply_run_to_statistics(run) is True
    assert store.apply_run_to_statistics(run) is False

    other = store.insert_completed_run(finished_snapshot(ticks=45))
    assert store.apply_run_to_statistics(other) is True

    stats = store.get_statistics("ana")
    assert stats.total_runs == 2
    assert stats.total_time_seconds == 75
    assert stats.total_distance_meters == run.distance_meters + other.distance_meters


def test_list_completed_runs_newest_first(store):
    ids = [store.insert_completed_run(finished_snapshot()).id for _ in range(3)]
    store.insert_completed_run(finished_snapshot(owner_id="bruno"))

    runs = store.list_completed_runs("ana")
    assert [r.id for r in runs] == sorted(ids, reverse=True)
    assert [r.id for r in store.list_completed_runs("ana", limit=2)] == sorted(ids, reverse=True)[:2]


def test_completed_run_is_dated_when_it_finished(store):
    finished = T0 + timedelta(minutes=42)
    stamps = iter([T0, finished])
    s = RunSession("ana", now=lambda: next(stamps))
    s.start(Coordinate(-23.5505, -46.6333))
    s.record_position(Coordinate(-23.5510, -46.6340))

    run = store.insert_completed_run(s.finish())

    # SQLite hands timestamps back without tzinfo
    assert run.created_at.replace(tzinfo=None) == finished.replace(tzinfo=None)
