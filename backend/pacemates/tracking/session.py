"""Run session state machine.

    idle --start--> active --finish--> finished
                           --cancel--> cancelled

A session is single-use: once it leaves ``active`` it never comes back, a
new ``RunSession`` is needed to run again. The clock (``tick``) and the
position stream (``record_position``) run on different threads, so every
read and write of the mutable fields happens under ``self._lock``.
"""

import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from pacemates.core.constants import TICK_SECONDS
from pacemates.core.errors import InvalidTransition
from pacemates.tracking.geo import segment_distance
from pacemates.tracking.types import (
    ActiveSessionRecord,
    Coordinate,
    RunSessionSnapshot,
    RunStatus,
    SessionState,
)

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunSession:
    def __init__(
        self,
        owner_id: str,
        session_id: Optional[str] = None,
        now: Callable[[], datetime] = utcnow,
    ):
        self.owner_id = owner_id
        self.session_id = session_id or uuid.uuid4().hex
        self._now = now
        self._lock = threading.Lock()

        self._status = RunStatus.idle
        self._started_at: Optional[datetime] = None
        self._elapsed_seconds = 0
        self._route: list[Coordinate] = []
        self._distance_meters = 0.0
        self._snapshot: Optional[RunSessionSnapshot] = None

    @property
    def status(self) -> RunStatus:
        return self._status

    def _require_active(self, operation: str) -> None:
        if self._status is not RunStatus.active:
            raise InvalidTransition(operation, self._status.value)

    def _record(self) -> ActiveSessionRecord:
        # caller holds the lock
        return ActiveSessionRecord(
            owner_id=self.owner_id,
            current_location=self._route[-1],
            route=tuple(self._route),
            started_at=self._started_at,
        )

    def start(self, initial_position: Coordinate) -> ActiveSessionRecord:
        with self._lock:
            if self._status is not RunStatus.idle:
                raise InvalidTransition("start", self._status.value)
            self._started_at = self._now()
            self._route = [initial_position]
            self._distance_meters = 0.0
            self._elapsed_seconds = 0
            self._status = RunStatus.active
            record = self._record()
        logger.info("session %s started for %s", self.session_id, self.owner_id)
        return record

    def tick(self) -> int:
        with self._lock:
            self._require_active("tick")
            self._elapsed_seconds += TICK_SECONDS
            return self._elapsed_seconds

    def record_position(self, position: Coordinate) -> ActiveSessionRecord:
        """Append a sample and accumulate distance against the previous point.

        Returns the record to publish, built under the same lock so the
        route and current location always agree.
        """
        with self._lock:
            self._require_active("record a position")
            previous = self._route[-1] if self._route else None
            self._route.append(position)
            if previous is not None:
                self._distance_meters += segment_distance(previous, position)
            return self._record()

    def finish(self) -> RunSessionSnapshot:
        with self._lock:
            self._require_active("finish")
            self._status = RunStatus.finished
            self._snapshot = RunSessionSnapshot(
                session_id=self.session_id,
                owner_id=self.owner_id,
                started_at=self._started_at,
                finished_at=self._now(),
                elapsed_seconds=self._elapsed_seconds,
                distance_meters=self._distance_meters,
                route=tuple(self._route),
            )
            snapshot = self._snapshot
        logger.info(
            "session %s finished: %.1f m in %d s",
            self.session_id, snapshot.distance_meters, snapshot.elapsed_seconds,
        )
        return snapshot

    def cancel(self) -> None:
        with self._lock:
            self._require_active("cancel")
            self._status = RunStatus.cancelled
            self._route = []
            self._distance_meters = 0.0
        logger.info("session %s cancelled", self.session_id)

    @property
    def final_snapshot(self) -> Optional[RunSessionSnapshot]:
        """The snapshot produced by ``finish``, if any."""
        return self._snapshot

    def state(self) -> SessionState:
        with self._lock:
            return SessionState(
                session_id=self.session_id,
                owner_id=self.owner_id,
                status=self._status,
                started_at=self._started_at,
                elapsed_seconds=self._elapsed_seconds,
                distance_meters=self._distance_meters,
                route=tuple(self._route),
            )
