"""Continuous position sampling.

A ``PositionSource`` is anything that can push coordinates to a callback
until told to stop (a phone's location watch, an HTTP endpoint, a replayed
GPX file). ``GeoSampler`` wraps one subscription to such a source and gives
the tracker a single, non-restartable stream with classified errors.
"""

import itertools
import logging
import threading
from typing import Any, Callable, Optional, Protocol

from pacemates.core.errors import InvalidTransition, classify_position_error
from pacemates.tracking.types import Coordinate

logger = logging.getLogger(__name__)

SampleCallback = Callable[[Coordinate], None]
ErrorCallback = Callable[[Exception], None]


class PositionSource(Protocol):
    def subscribe(self, on_sample: SampleCallback, on_error: ErrorCallback) -> Any: ...

    def unsubscribe(self, handle: Any) -> None: ...


class GeoSampler:
    def __init__(self, source: PositionSource, name: str = "sampler"):
        self.source = source
        self.name = name
        # Re-entrant: error handlers may call stop() from inside a delivery
        self._lock = threading.RLock()
        self._handle = None
        self._started = False
        self._terminated = False
        self._callback: Optional[SampleCallback] = None
        self._error_handler: Optional[Callable] = None

    @property
    def active(self) -> bool:
        return self._started and not self._terminated

    def start(self, callback: SampleCallback, error_handler: Callable) -> Any:
        """Subscribe and return immediately; samples arrive on the source's thread."""
        with self._lock:
            if self._started:
                raise InvalidTransition("start sampler", "stopped" if self._terminated else "sampling")
            self._started = True
            self._callback = callback
            self._error_handler = error_handler
            self._handle = self.source.subscribe(self._deliver, self._fail)
            return self._handle

    def stop(self, handle: Any = None) -> None:
        """Unsubscribe. Idempotent; no callback runs after this returns."""
        with self._lock:
            if self._terminated:
                return
            self._terminated = True
            if self._handle is not None and (handle is None or handle == self._handle):
                self.source.unsubscribe(self._handle)
            self._handle = None

    def _deliver(self, sample: Coordinate) -> None:
        with self._lock:
            if self._terminated or self._callback is None:
                return
            self._callback(sample)

    def _fail(self, error) -> None:
        with self._lock:
            if self._terminated:
                return
            classified = classify_position_error(error)
            logger.warning("%s: position source failed (%s): %s", self.name, classified.kind, classified)
            self.stop()
            if self._error_handler is not None:
                self._error_handler(classified)


class PushPositionSource:
    """Source fed by explicit ``push`` calls, e.g. samples posted over HTTP.

    Samples are delivered synchronously on the pushing thread.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._subscribers: dict[int, tuple[SampleCallback, ErrorCallback]] = {}

    def subscribe(self, on_sample: SampleCallback, on_error: ErrorCallback) -> int:
        with self._lock:
            handle = next(self._ids)
            self._subscribers[handle] = (on_sample, on_error)
            return handle

    def unsubscribe(self, handle) -> None:
        with self._lock:
            self._subscribers.pop(handle, None)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def push(self, sample: Coordinate) -> int:
        """Deliver one sample; returns how many subscribers received it."""
        with self._lock:
            targets = list(self._subscribers.values())
        for on_sample, _ in targets:
            on_sample(sample)
        return len(targets)

    def fail(self, error) -> None:
        """Report an error to every subscriber and end their streams."""
        with self._lock:
            targets = list(self._subscribers.values())
            self._subscribers.clear()
        for _, on_error in targets:
            on_error(error)
