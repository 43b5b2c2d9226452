"""Change feed for the active-sessions collection.

The contract is deliberately weak, matching what hosted realtime services
offer: events arrive at least once, possibly duplicated, possibly out of
order, and nothing is replayed after a disconnect. Consumers are expected
to treat an event as "something changed, go look" rather than as a delta.
"""

import itertools
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Protocol

from pacemates.core.constants import ACTIVE_SESSIONS_COLLECTION
from pacemates.core.errors import FeedDisconnected

logger = logging.getLogger(__name__)


class ChangeKind(str, Enum):
    insert = "insert"
    update = "update"
    delete = "delete"


@dataclass(frozen=True)
class ChangeEvent:
    kind: ChangeKind
    owner_id: str
    collection: str = ACTIVE_SESSIONS_COLLECTION


class ChangeFeed(Protocol):
    def subscribe(
        self,
        on_event: Callable[[ChangeEvent], None],
        on_disconnect: Optional[Callable[[FeedDisconnected], None]] = None,
        on_reconnect: Optional[Callable[[], None]] = None,
    ) -> Any: ...

    def unsubscribe(self, handle: Any) -> None: ...


@dataclass
class _Subscription:
    on_event: Callable[[ChangeEvent], None]
    on_disconnect: Optional[Callable[[FeedDisconnected], None]]
    on_reconnect: Optional[Callable[[], None]]


class LocalChangeFeed:
    """In-process pub/sub; the SQL store publishes after each commit.

    ``disconnect``/``reconnect`` model the transport dropping: events
    published while disconnected are lost.
    """

    def __init__(self, collection: str = ACTIVE_SESSIONS_COLLECTION):
        self.collection = collection
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._subs: dict[int, _Subscription] = {}
        self._connected = True

    @property
    def connected(self) -> bool:
        return self._connected

    def subscribe(self, on_event, on_disconnect=None, on_reconnect=None) -> int:
        with self._lock:
            handle = next(self._ids)
            self._subs[handle] = _Subscription(on_event, on_disconnect, on_reconnect)
            return handle

    def unsubscribe(self, handle) -> None:
        with self._lock:
            self._subs.pop(handle, None)

    @property
    def subscriber_count(self) -> int:
        return len(self._subs)

    def _snapshot(self) -> list[_Subscription]:
        with self._lock:
            return list(self._subs.values())

    def publish(self, event: ChangeEvent) -> int:
        """Fan the event out to subscribers; returns how many got it."""
        if event.collection != self.collection:
            return 0
        if not self._connected:
            logger.debug("feed disconnected, dropping %s for %s", event.kind.value, event.owner_id)
            return 0
        subs = self._snapshot()
        for sub in subs:
            try:
                sub.on_event(event)
            except Exception:
                # one broken consumer must not starve the others
                logger.exception("change feed subscriber failed on %s", event)
        return len(subs)

    def disconnect(self, reason: str = "transport closed") -> None:
        if not self._connected:
            return
        self._connected = False
        error = FeedDisconnected(reason)
        logger.warning("change feed disconnected: %s", reason)
        for sub in self._snapshot():
            if sub.on_disconnect is not None:
                sub.on_disconnect(error)

    def reconnect(self) -> None:
        if self._connected:
            return
        self._connected = True
        logger.info("change feed reconnected")
        for sub in self._snapshot():
            if sub.on_reconnect is not None:
                sub.on_reconnect()
