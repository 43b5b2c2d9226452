"""Wiring of one live run: sampler + clock -> session -> presence -> finalizer.

``RunTracker`` owns everything that must stop together. Finishing or
cancelling stops the position stream and the clock *before* the session
transitions, so nothing reaches a session that is no longer active.
"""

import logging
import threading
from typing import Callable, Optional

from pacemates.core.errors import (
    FinalizeError,
    FinalizeStep,
    InvalidTransition,
    PositionSourceError,
    PresenceNotFound,
    StoreError,
)
from pacemates.presence.sync import PresenceSync, PresenceView
from pacemates.tracking.clock import IntervalClock
from pacemates.tracking.finalizer import RunFinalizer
from pacemates.tracking.sampler import GeoSampler, PushPositionSource
from pacemates.tracking.session import RunSession
from pacemates.tracking.types import CompletedRun, Coordinate, RunSessionSnapshot, RunStatus

logger = logging.getLogger(__name__)


class RunTracker:
    def __init__(
        self,
        session: RunSession,
        source,
        presence: PresenceSync,
        finalizer: RunFinalizer,
        tick_interval: float = 1.0,
        clock_factory=IntervalClock,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        self.session = session
        self.source = source
        self.presence = presence
        self.finalizer = finalizer
        self.tick_interval = tick_interval
        self.clock_factory = clock_factory
        self.on_error = on_error

        self.sampler = GeoSampler(source, name=f"sampler-{session.owner_id}")
        self.clock = None
        self.error: Optional[PositionSourceError] = None
        self.completed_run: Optional[CompletedRun] = None
        self.withdraw_pending = False

    @property
    def owner_id(self) -> str:
        return self.session.owner_id

    @property
    def status(self) -> RunStatus:
        return self.session.status

    @property
    def snapshot(self) -> Optional[RunSessionSnapshot]:
        return self.session.final_snapshot

    def begin(self, initial_position: Coordinate) -> None:
        record = self.session.start(initial_position)
        self.presence.publish(record)
        self.sampler.start(self._on_sample, self._on_source_error)
        self.clock = self.clock_factory(self.tick_interval, self._on_tick, name=f"clock-{self.owner_id}")
        self.clock.start()

    def _on_tick(self) -> None:
        self.session.tick()

    def _on_sample(self, position: Coordinate) -> None:
        record = self.session.record_position(position)
        self.presence.publish(record)

    def _on_source_error(self, error: PositionSourceError) -> None:
        """Abort the run: no retry, a new start is required."""
        self.error = error
        self._stop_producers()
        if self.session.status is RunStatus.active:
            self.session.cancel()
            self.withdraw_pending = True
            try:
                self._withdraw()
            except StoreError as exc:
                logger.warning("could not withdraw presence for %s after abort: %s", self.owner_id, exc)
        if self.on_error is not None:
            self.on_error(error)

    def _stop_producers(self) -> None:
        self.sampler.stop()
        if self.clock is not None:
            self.clock.stop()

    def _withdraw(self) -> None:
        self.presence.withdraw()
        self.withdraw_pending = False
        self.presence.close()

    @property
    def unsaved(self) -> bool:
        """Finished, but the run has not been persisted yet."""
        return self.snapshot is not None and self.completed_run is None

    def finish(self) -> CompletedRun:
        """Stop tracking, freeze the session and persist it.

        Raises ``FinalizeError`` if persisting fails; ``finalize`` can be
        called again to retry with the same snapshot.
        """
        if self.session.status is not RunStatus.active:
            raise InvalidTransition("finish", self.session.status.value)
        self._stop_producers()
        self.session.finish()
        return self.finalize()

    def finalize(self) -> CompletedRun:
        snapshot = self.session.final_snapshot
        if snapshot is None:
            raise InvalidTransition("finalize", self.session.status.value)
        # a queued upsert landing after the delete would resurrect the record
        try:
            self.presence.drain()
        except StoreError as exc:
            raise FinalizeError(FinalizeStep.clear_presence, exc) from exc
        self.completed_run = self.finalizer.finalize(snapshot)
        self.presence.close()
        return self.completed_run

    def cancel(self) -> None:
        """Abandon the run and remove it from presence.

        If removing the presence record fails the session still ends up
        cancelled, and ``cancel`` may be called again to retry the removal.
        """
        if self.session.status is RunStatus.active:
            self._stop_producers()
            self.session.cancel()
            self.withdraw_pending = True
        elif not self.withdraw_pending:
            raise InvalidTransition("cancel", self.session.status.value)
        self._withdraw()


class TrackerRegistry:
    """At most one live tracker per runner, plus the shared presence view.

    The most recent tracker for a runner is kept after it ends so its
    state can still be read and a failed finalize retried. Each tracker
    publishes through its own outbound ``PresenceSync``, closed once the
    run is saved or withdrawn. Reading presence goes through one shared
    sync, the only feed subscriber, whatever the number of viewers.
    """

    def __init__(
        self,
        store,
        feed,
        finalizer: RunFinalizer,
        tick_interval: float = 1.0,
        drain_timeout: float = 5.0,
        clock_factory=IntervalClock,
        source_factory=PushPositionSource,
    ):
        self.store = store
        self.feed = feed
        self.finalizer = finalizer
        self.tick_interval = tick_interval
        self.drain_timeout = drain_timeout
        self.clock_factory = clock_factory
        self.source_factory = source_factory
        self._lock = threading.Lock()
        self._trackers: dict[str, RunTracker] = {}
        self.presence = PresenceSync(store, feed, None, drain_timeout=drain_timeout)
        self.presence.start()

    def presence_view(self, viewer_id: str) -> PresenceView:
        """Visible runners currently on a run, other than `viewer_id`."""
        return self.presence.view.without(viewer_id)

    def get(self, owner_id: str) -> Optional[RunTracker]:
        return self._trackers.get(owner_id)

    def start(self, owner_id: str, initial_position: Coordinate, source=None) -> RunTracker:
        """Start a run fed by `source`, or by a new ``source_factory()`` source."""
        with self._lock:
            current = self._trackers.get(owner_id)
            if current is not None:
                if current.status is RunStatus.active:
                    raise InvalidTransition("start", "a run is already active")
                if current.unsaved:
                    raise InvalidTransition("start", "the previous run is not saved yet")
                if current.withdraw_pending:
                    # its record must be gone before the new run publishes
                    current.cancel()
            presence = PresenceSync(self.store, self.feed, owner_id, drain_timeout=self.drain_timeout)
            tracker = RunTracker(
                RunSession(owner_id),
                source if source is not None else self.source_factory(),
                presence,
                self.finalizer,
                tick_interval=self.tick_interval,
                clock_factory=self.clock_factory,
            )
            try:
                tracker.begin(initial_position)
            except Exception:
                presence.close()
                raise
            self._trackers[owner_id] = tracker
        return tracker

    def join(self, owner_id: str, target_owner_id: str, own_position: Coordinate) -> RunTracker:
        """Start a fresh session for ``owner_id`` next to a visible runner."""
        if target_owner_id == owner_id:
            raise PresenceNotFound(target_owner_id)
        self.presence.join_session(target_owner_id)
        tracker = self.start(owner_id, own_position)
        logger.info("%s joined %s", owner_id, target_owner_id)
        return tracker

    def close(self) -> None:
        """Cancel live runs and withdraw their presence, then stop workers."""
        with self._lock:
            trackers = list(self._trackers.values())
            self._trackers.clear()
        for tracker in trackers:
            if tracker.status is RunStatus.active or tracker.withdraw_pending:
                try:
                    tracker.cancel()
                except StoreError as exc:
                    logger.warning("abandoned session for %s left behind: %s", tracker.owner_id, exc)
            tracker.presence.close()
        self.presence.close()
