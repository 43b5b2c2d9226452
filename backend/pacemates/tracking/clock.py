import logging
import threading
import time

logger = logging.getLogger(__name__)


class IntervalClock:
    """Call ``callback`` every ``interval`` seconds on a daemon thread.

    Deadlines are computed from the start time rather than from the previous
    tick, so a slow callback does not make the clock drift.
    """

    def __init__(self, interval: float, callback, name: str = "clock"):
        self.interval = interval
        self.callback = callback
        self.name = name
        self._stop = threading.Event()
        self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop.is_set()

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError(f"{self.name} already started")
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop ticking. Blocks until an in-flight tick returns."""
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    def _run(self) -> None:
        started = time.monotonic()
        ticks = 0
        while True:
            ticks += 1
            delay = started + ticks * self.interval - time.monotonic()
            if self._stop.wait(max(0.0, delay)):
                return
            try:
                self.callback()
            except Exception:
                logger.exception("%s: tick callback failed, stopping", self.name)
                return
