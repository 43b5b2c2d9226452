"""Process-level engine objects with an explicit lifecycle.

Routers get the runtime through the ``get_runtime`` dependency instead of
reaching for module globals, and the app's lifespan tears it down.
"""

import logging
import threading
from typing import Optional

from pacemates.core.config import settings
from pacemates.db import SessionLocal
from pacemates.presence.feed import LocalChangeFeed
from pacemates.store.sql import SqlRunStore
from pacemates.tracking.finalizer import RunFinalizer
from pacemates.tracking.tracker import TrackerRegistry

logger = logging.getLogger(__name__)


class Runtime:
    def __init__(self, session_factory=SessionLocal, feed=None, **registry_options):
        self.feed = feed or LocalChangeFeed()
        self.store = SqlRunStore(session_factory, feed=self.feed)
        self.finalizer = RunFinalizer(self.store)
        registry_options.setdefault("tick_interval", settings.tick_interval_seconds)
        registry_options.setdefault("drain_timeout", settings.drain_timeout_seconds)
        self.registry = TrackerRegistry(self.store, self.feed, self.finalizer, **registry_options)

    def close(self) -> None:
        self.registry.close()


_runtime: Optional[Runtime] = None
_runtime_lock = threading.Lock()


def get_runtime() -> Runtime:
    global _runtime
    with _runtime_lock:
        if _runtime is None:
            _runtime = Runtime()
            logger.info("runtime initialised")
        return _runtime


def shutdown_runtime() -> None:
    global _runtime
    with _runtime_lock:
        runtime, _runtime = _runtime, None
    if runtime is not None:
        runtime.close()
        logger.info("runtime shut down")
