import os
import tempfile

# Use a throwaway sqlite file for anything that imports the app's engine.
# Must happen before the first pacemates import.
_tmpdir = tempfile.mkdtemp(prefix="pacemates-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+pysqlite:///{_tmpdir}/app.db")
# Keep the real clock from ticking during API tests
os.environ.setdefault("TICK_INTERVAL_SECONDS", "3600")

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from pacemates.db import Base  # noqa: E402
from pacemates.models import active_session, completed_run, profile, user_statistics  # noqa: E402,F401
from pacemates.presence.feed import LocalChangeFeed  # noqa: E402
from pacemates.store.sql import SqlRunStore  # noqa: E402
from pacemates.tracking.finalizer import RunFinalizer  # noqa: E402


class ManualClock:
    """Stand-in for IntervalClock; ticks only when the test says so."""

    def __init__(self, interval, callback, name="clock"):
        self.interval = interval
        self.callback = callback
        self.name = name
        self.started = False
        self.stopped = False

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def advance(self, ticks=1):
        for _ in range(ticks):
            if self.stopped:
                return
            self.callback()


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'pacemates.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def feed():
    return LocalChangeFeed()


@pytest.fixture
def store(session_factory, feed):
    return SqlRunStore(session_factory, feed=feed)


@pytest.fixture
def finalizer(store):
    return RunFinalizer(store)


@pytest.fixture
def events(feed):
    received = []
    feed.subscribe(received.append)
    return received
