import threading
import time

import pytest

from conftest import ManualClock
from pacemates.core.errors import (
    FinalizeError,
    FinalizeStep,
    InvalidTransition,
    PermissionDenied,
    PresenceNotFound,
    StoreWriteFailed,
)
from pacemates.tracking.finalizer import RunFinalizer
from pacemates.tracking.geo import route_distance, segment_distance
from pacemates.tracking.replay import ReplayPositionSource
from pacemates.tracking.tracker import TrackerRegistry
from pacemates.tracking.types import Coordinate, RunStatus, UserProfile

START = Coordinate(-23.5505, -46.6333)
P1 = Coordinate(-23.5506, -46.6334)
P2 = Coordinate(-23.5510, -46.6340)


class FailingStore:
    """A real store whose `method` raises while `down` is set."""

    def __init__(self, store, method, down=True):
        self._store = store
        self._method = method
        self.down = down

    def __getattr__(self, name):
        attr = getattr(self._store, name)
        if name != self._method:
            return attr

        def failing(*args, **kwargs):
            if self.down:
                raise StoreWriteFailed(f"{name} unavailable")
            return attr(*args, **kwargs)
        return failing


@pytest.fixture
def registry(store, feed, finalizer):
    reg = TrackerRegistry(store, feed, finalizer, clock_factory=ManualClock, drain_timeout=5)
    yield reg
    reg.close()


def test_sao_paulo_run_end_to_end(store, registry):
    tracker = registry.start("ana", START)
    assert tracker.clock.started

    tracker.clock.advance(10)
    tracker.source.push(P1)
    tracker.clock.advance(20)
    tracker.source.push(P2)

    run = tracker.finish()

    expected = segment_distance(START, P1) + segment_distance(P1, P2)
    assert tracker.snapshot.elapsed_seconds == 30
    assert tracker.snapshot.route == (START, P1, P2)
    assert tracker.snapshot.distance_meters == expected
    assert run.distance_meters == expected
    assert run.duration_seconds == 30

    assert [r.id for r in store.list_completed_runs("ana")] == [run.id]
    stats = store.get_statistics("ana")
    assert stats.total_runs == 1
    assert stats.total_distance_meters == expected
    assert stats.total_time_seconds == 30
    assert store.list_active_sessions() == []


def test_samples_are_mirrored_to_presence(store, registry):
    tracker = registry.start("ana", START)
    tracker.source.push(P1)
    tracker.presence.drain()

    [saved] = store.list_active_sessions()
    assert saved.owner_id == "ana"
    assert saved.route == (START, P1)
    assert saved.current_location == P1


def test_finish_stops_clock_and_sampler_first(registry):
    tracker = registry.start("ana", START)
    tracker.finish()

    assert tracker.clock.stopped
    assert tracker.source.push(P1) == 0
    tracker.clock.advance(5)
    assert tracker.snapshot.elapsed_seconds == 0
    assert tracker.session.state().route == (START,)
    with pytest.raises(InvalidTransition):
        tracker.finish()


def test_cancel_leaves_no_history(store, registry):
    tracker = registry.start("ana", START)
    tracker.clock.advance(3)
    tracker.source.push(P1)
    tracker.presence.drain()
    assert len(store.list_active_sessions()) == 1

    tracker.cancel()

    assert tracker.status is RunStatus.cancelled
    assert tracker.clock.stopped
    assert store.list_active_sessions() == []
    assert store.list_completed_runs("ana") == []
    assert store.get_statistics("ana").total_runs == 0
    with pytest.raises(InvalidTransition):
        tracker.finalize()


def test_position_error_aborts_the_run(store, registry):
    errors = []
    tracker = registry.start("ana", START)
    tracker.on_error = errors.append
    tracker.source.push(P1)

    tracker.source.fail(PermissionError("location disabled"))

    assert isinstance(tracker.error, PermissionDenied)
    assert errors == [tracker.error]
    assert tracker.status is RunStatus.cancelled
    assert tracker.clock.stopped
    assert store.list_active_sessions() == []
    assert store.list_completed_runs("ana") == []


def test_one_active_run_per_user(registry):
    first = registry.start("ana", START)
    with pytest.raises(InvalidTransition):
        registry.start("ana", P1)
    assert registry.get("ana") is first

    first.finish()
    second = registry.start("ana", P1)
    assert second.session.session_id != first.session.session_id
    assert second.session.state().route == (P1,)


def test_join_starts_an_independent_session(store, registry):
    bruno = registry.start("bruno", START)
    bruno.source.push(P1)
    bruno.presence.drain()

    registry.presence.wait_until_idle(5)
    mine = Coordinate(-23.5600, -46.6400)
    ana = registry.join("ana", "bruno", mine)

    assert ana.session is not bruno.session
    assert ana.session.state().route == (mine,)
    assert bruno.session.state().route == (START, P1)


def test_join_hidden_runner_is_refused(store, registry):
    store.upsert_profile(UserProfile(id="carla", is_visible=False))
    carla = registry.start("carla", START)
    carla.presence.drain()
    registry.presence.wait_until_idle(5)

    with pytest.raises(PresenceNotFound):
        registry.join("ana", "carla", P1)
    assert registry.get("ana") is None


def test_failed_finalize_can_be_retried(store, feed):
    flaky = FailingStore(store, "apply_run_to_statistics")
    registry = TrackerRegistry(flaky, feed, RunFinalizer(flaky), clock_factory=ManualClock)
    try:
        tracker = registry.start("ana", START)
        tracker.clock.advance(12)
        tracker.source.push(P2)

        with pytest.raises(FinalizeError) as exc_info:
            tracker.finish()
        assert exc_info.value.step is FinalizeStep.update_statistics
        assert tracker.status is RunStatus.finished

        flaky.down = False
        run = tracker.finalize()
        tracker.finalize()

        assert len(store.list_completed_runs("ana")) == 1
        stats = store.get_statistics("ana")
        assert stats.total_runs == 1
        assert stats.total_time_seconds == 12
        assert run.distance_meters == route_distance((START, P2))
    finally:
        registry.close()


def test_close_cancels_live_runs(store, feed, finalizer):
    registry = TrackerRegistry(store, feed, finalizer, clock_factory=ManualClock)
    tracker = registry.start("ana", START)
    tracker.presence.drain()
    assert len(store.list_active_sessions()) == 1

    registry.close()

    assert tracker.status is RunStatus.cancelled
    assert store.list_active_sessions() == []


def test_unsaved_run_blocks_a_new_start(store, feed):
    flaky = FailingStore(store, "insert_completed_run")
    registry = TrackerRegistry(flaky, feed, RunFinalizer(flaky), clock_factory=ManualClock)
    try:
        tracker = registry.start("ana", START)
        tracker.clock.advance(7)
        tracker.source.push(P1)
        with pytest.raises(FinalizeError) as exc_info:
            tracker.finish()
        assert exc_info.value.step is FinalizeStep.record_run

        with pytest.raises(InvalidTransition):
            registry.start("ana", START)
        assert registry.get("ana") is tracker

        flaky.down = False
        run = tracker.finalize()
        assert [r.id for r in store.list_completed_runs("ana")] == [run.id]
        assert run.duration_seconds == 7

        assert registry.start("ana", START).status is RunStatus.active
    finally:
        registry.close()


def test_cancel_retries_a_failed_presence_removal(store, feed, finalizer):
    flaky = FailingStore(store, "delete_active_session", down=False)
    registry = TrackerRegistry(flaky, feed, finalizer, clock_factory=ManualClock)
    try:
        tracker = registry.start("ana", START)
        tracker.presence.drain()

        flaky.down = True
        with pytest.raises(StoreWriteFailed):
            tracker.cancel()
        assert tracker.status is RunStatus.cancelled
        assert tracker.withdraw_pending
        assert [r.owner_id for r in store.list_active_sessions()] == ["ana"]

        flaky.down = False
        tracker.cancel()
        assert store.list_active_sessions() == []
        assert tracker.presence.closed
        with pytest.raises(InvalidTransition):
            tracker.cancel()
    finally:
        registry.close()


def test_next_start_clears_a_record_left_by_an_aborted_run(store, feed, finalizer):
    flaky = FailingStore(store, "delete_active_session", down=False)
    registry = TrackerRegistry(flaky, feed, finalizer, clock_factory=ManualClock)
    try:
        tracker = registry.start("ana", START)
        tracker.source.push(P2)
        tracker.presence.drain()

        flaky.down = True
        tracker.source.fail(PermissionError("location disabled"))
        assert tracker.status is RunStatus.cancelled
        assert tracker.withdraw_pending

        with pytest.raises(StoreWriteFailed):
            registry.start("ana", P1)
        assert registry.get("ana") is tracker

        flaky.down = False
        fresh = registry.start("ana", P1)
        fresh.presence.drain()
        assert not tracker.withdraw_pending
        [saved] = store.list_active_sessions()
        assert saved.route == (P1,)
    finally:
        registry.close()


def test_presence_cost_does_not_grow_with_viewers(store, feed, finalizer):
    rebuilds = []

    class CountingStore:
        def __getattr__(self, name):
            return getattr(store, name)

        def list_active_sessions(self):
            rebuilds.append(1)
            return store.list_active_sessions()

    registry = TrackerRegistry(CountingStore(), feed, finalizer, clock_factory=ManualClock)
    try:
        for i in range(40):
            assert registry.presence_view(f"viewer-{i}").owners == []
        assert feed.subscriber_count == 1

        rebuilds.clear()
        tracker = registry.start("ana", START)
        tracker.presence.drain()
        tracker.cancel()
        registry.presence.wait_until_idle(5)

        # one rebuild for the insert, one for the delete
        assert len(rebuilds) == 2
        assert feed.subscriber_count == 1
        assert tracker.presence.closed
    finally:
        registry.close()
    assert feed.subscriber_count == 0


def test_presence_view_never_includes_the_viewer(registry):
    tracker = registry.start("ana", START)
    tracker.presence.drain()
    registry.presence.wait_until_idle(5)

    assert registry.presence_view("ana").owners == []
    assert registry.presence_view("bruno").owners == ["ana"]
    with pytest.raises(PresenceNotFound):
        registry.join("ana", "ana", P1)


def test_finished_run_closes_its_presence_writer(registry):
    tracker = registry.start("ana", START)
    tracker.finish()
    assert tracker.presence.closed
    assert not registry.presence.closed


def test_stuck_presence_write_fails_finish_with_a_retryable_error(store, feed):
    release = threading.Event()

    class SlowStore:
        def __getattr__(self, name):
            return getattr(store, name)

        def upsert_active_session(self, record):
            release.wait(5)
            store.upsert_active_session(record)

    slow = SlowStore()
    registry = TrackerRegistry(slow, feed, RunFinalizer(slow), clock_factory=ManualClock, drain_timeout=0.05)
    try:
        tracker = registry.start("ana", START)
        with pytest.raises(FinalizeError) as exc_info:
            tracker.finish()
        assert exc_info.value.step is FinalizeStep.clear_presence
        assert tracker.unsaved

        release.set()
        tracker.presence.drain(timeout=5)
        run = tracker.finalize()
        assert store.list_active_sessions() == []
        assert [r.id for r in store.list_completed_runs("ana")] == [run.id]
    finally:
        release.set()
        registry.close()


def test_replayed_track_feeds_the_run(store, registry):
    source = ReplayPositionSource([P1, P2], interval=0.001)
    tracker = registry.start("ana", START, source=source)

    deadline = time.monotonic() + 5
    while len(tracker.session.state().route) < 3 and time.monotonic() < deadline:
        time.sleep(0.01)

    run = tracker.finish()
    assert tracker.snapshot.route == (START, P1, P2)
    assert run.distance_meters == route_distance((START, P1, P2))
