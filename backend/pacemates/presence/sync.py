"""Presence synchronization.

Outbound, the local runner's session is mirrored into the shared
active-sessions collection. Inbound, the change feed tells us that the
collection changed and we rebuild the local ``PresenceView`` from the
store. Rebuilding from source rather than patching makes duplicated or
reordered notifications harmless.

Each direction has its own single worker thread: outbound writes keep
their order, and neither direction ever blocks the session clock or the
position stream.

A sync built without a local owner only reads: its view lists every
visible runner, and callers filter the viewer out with
``PresenceView.without``.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Callable, Iterable, Mapping, Optional

from pacemates.core.errors import FeedDisconnected, PresenceNotFound, StoreError, StoreWriteFailed
from pacemates.presence.feed import ChangeFeed
from pacemates.store.base import RunStore
from pacemates.tracking.types import ActiveSessionRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PresenceView:
    sessions: Mapping[str, ActiveSessionRecord] = field(default_factory=lambda: MappingProxyType({}))
    stale: bool = False
    refreshed_at: Optional[datetime] = None

    def __contains__(self, owner_id) -> bool:
        return owner_id in self.sessions

    def __len__(self) -> int:
        return len(self.sessions)

    def get(self, owner_id) -> Optional[ActiveSessionRecord]:
        return self.sessions.get(owner_id)

    @property
    def owners(self) -> list[str]:
        return sorted(self.sessions)

    def without(self, owner_id) -> "PresenceView":
        """The same view as seen by `owner_id`, who never sees themselves."""
        if owner_id not in self.sessions:
            return self
        sessions = {o: r for o, r in self.sessions.items() if o != owner_id}
        return PresenceView(MappingProxyType(sessions), self.stale, self.refreshed_at)


def derive_presence_view(
    records: Iterable[ActiveSessionRecord],
    visibility: Mapping[str, bool],
    local_owner_id: Optional[str],
) -> dict[str, ActiveSessionRecord]:
    """Other runners' sessions, minus the local runner and hidden owners."""
    return {
        r.owner_id: r
        for r in records
        if r.owner_id != local_owner_id and visibility.get(r.owner_id, True)
    }


def load_presence(store, local_owner_id: Optional[str]) -> dict[str, ActiveSessionRecord]:
    records = store.list_active_sessions()
    visibility = store.visibility_for(r.owner_id for r in records)
    return derive_presence_view(records, visibility, local_owner_id)


class PresenceSync:
    def __init__(
        self,
        store: RunStore,
        feed: ChangeFeed,
        local_owner_id: Optional[str],
        on_publish_error: Optional[Callable[[Exception], None]] = None,
        drain_timeout: float = 5.0,
    ):
        self.store = store
        self.feed = feed
        self.local_owner_id = local_owner_id
        self.on_publish_error = on_publish_error
        self.drain_timeout = drain_timeout

        label = local_owner_id or "all"
        self._outbound = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"presence-out-{label}")
        self._inbound = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"presence-in-{label}")
        self._lock = threading.Lock()
        self._pending: Optional[Future] = None
        self._view = PresenceView()
        self._subscription = None
        self._closed = False

    # --------- Outbound --------- #

    def publish(self, record: ActiveSessionRecord) -> Future:
        """Queue an upsert and return without waiting for it."""
        future = self._outbound.submit(self._upsert, record)
        with self._lock:
            self._pending = future
        return future

    def _upsert(self, record: ActiveSessionRecord) -> None:
        try:
            self.store.upsert_active_session(record)
        except StoreError as exc:
            # the next sample supersedes this one
            logger.warning("presence upsert for %s dropped: %s", record.owner_id, exc)
            if self.on_publish_error is not None:
                self.on_publish_error(exc)

    def drain(self, timeout: Optional[float] = None) -> None:
        """Wait until every queued upsert has been attempted."""
        with self._lock:
            pending = self._pending
        if pending is None:
            return
        try:
            pending.result(timeout=self.drain_timeout if timeout is None else timeout)
        except FutureTimeout as exc:
            raise StoreWriteFailed(f"presence writes for {self.local_owner_id} still pending") from exc

    def withdraw(self) -> bool:
        """Remove the local runner's record once queued upserts are done.

        Runs on the outbound worker, so no earlier upsert can land after
        the delete and resurrect the record. Raises ``StoreWriteFailed``,
        also when the delete does not complete within ``drain_timeout``.
        """
        future = self._outbound.submit(self.store.delete_active_session, self.local_owner_id)
        try:
            return future.result(timeout=self.drain_timeout)
        except FutureTimeout as exc:
            raise StoreWriteFailed(f"withdrawing presence for {self.local_owner_id} timed out") from exc

    # --------- Inbound --------- #

    @property
    def view(self) -> PresenceView:
        return self._view

    def start(self) -> PresenceView:
        """Subscribe to the feed and load the initial view."""
        if self._subscription is None:
            self._subscription = self.feed.subscribe(
                self._on_event,
                on_disconnect=self._on_disconnect,
                on_reconnect=self._on_reconnect,
            )
        return self.resync()

    def _on_event(self, event) -> None:
        if self._closed:
            return
        self._inbound.submit(self._rebuild)

    def _on_disconnect(self, error: FeedDisconnected) -> None:
        logger.warning("presence for %s is now stale: %s", self.local_owner_id, error)
        with self._lock:
            self._view = PresenceView(
                sessions=self._view.sessions,
                stale=True,
                refreshed_at=self._view.refreshed_at,
            )

    def _on_reconnect(self) -> None:
        # events missed while disconnected are gone; start from scratch
        if not self._closed:
            self._inbound.submit(self._rebuild)

    def _rebuild(self) -> PresenceView:
        try:
            sessions = load_presence(self.store, self.local_owner_id)
        except StoreError as exc:
            logger.warning("presence rebuild for %s failed, keeping last view: %s", self.local_owner_id, exc)
            return self._view
        view = PresenceView(
            sessions=MappingProxyType(sessions),
            stale=not getattr(self.feed, "connected", True),
            refreshed_at=datetime.now(timezone.utc),
        )
        with self._lock:
            self._view = view
        return view

    def resync(self) -> PresenceView:
        """Rebuild the view now and wait for the result."""
        return self._inbound.submit(self._rebuild).result()

    def wait_until_idle(self, timeout: Optional[float] = None) -> None:
        """Block until rebuilds queued so far have run."""
        self._inbound.submit(lambda: None).result(timeout=timeout)

    def join_session(self, target_owner_id: str) -> ActiveSessionRecord:
        """Look up a runner to join.

        Joining never merges sessions: the caller starts its own new
        session at its own position, independent of the target's route.
        """
        record = self._view.get(target_owner_id)
        if record is None:
            raise PresenceNotFound(target_owner_id)
        return record

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Unsubscribe and stop both workers. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._subscription is not None:
            self.feed.unsubscribe(self._subscription)
            self._subscription = None
        self._outbound.shutdown(wait=True)
        self._inbound.shutdown(wait=True)
