"""Replay recorded tracks as live position sources.

Backs the `/tracking/{owner_id}/replay` endpoint used for demos: a GPX or FIT file
becomes a stream of samples emitted at a fixed cadence, exactly as a phone
would push them during a real run.
"""

import itertools
import logging
import os
import tempfile
import threading

import gpxpy
import gpxpy.gpx
from fitparse import FitFile
from fitparse.utils import FitParseError

from pacemates.core.constants import DEGREES_PER_SEMICIRCLE
from pacemates.core.errors import UnreadableTrack
from pacemates.tracking.types import Coordinate

logger = logging.getLogger(__name__)


def load_gpx_coordinates(path: str) -> list[Coordinate]:
    """Flatten every track/segment point of a GPX file into coordinates."""
    with open(path, "r", encoding="utf-8") as f:
        gpx = gpxpy.parse(f)

    coords = []
    for track in gpx.tracks:
        for segment in track.segments:
            for p in segment.points:
                coords.append(Coordinate(p.latitude, p.longitude))
    # Routes-only files (no <trk>) still describe a path worth replaying
    if not coords:
        for route in gpx.routes:
            for p in route.points:
                coords.append(Coordinate(p.latitude, p.longitude))
    return coords


def _semicircles_to_degrees(val):
    return val * DEGREES_PER_SEMICIRCLE if val is not None else None


def load_fit_coordinates(path: str) -> list[Coordinate]:
    """Extract positioned ``record`` messages from a FIT file."""
    ff = FitFile(path)
    coords = []
    for record in ff.get_messages("record"):
        fields = {f.name: f.value for f in record}
        lat = _semicircles_to_degrees(fields.get("position_lat"))
        lon = _semicircles_to_degrees(fields.get("position_long"))
        # treadmill records carry no position
        if lat is None or lon is None:
            continue
        coords.append(Coordinate(lat, lon))
    return coords


TRACK_EXTENSIONS = (".gpx", ".fit")


def load_track(path: str) -> list[Coordinate]:
    """Load a GPX or FIT file, chosen by extension."""
    ext = os.path.splitext(path)[1].lower()
    if ext not in TRACK_EXTENSIONS:
        raise UnreadableTrack(f"unsupported track format: {ext or path}")
    try:
        if ext == ".fit":
            return load_fit_coordinates(path)
        return load_gpx_coordinates(path)
    except (gpxpy.gpx.GPXException, FitParseError) as exc:
        raise UnreadableTrack(f"could not parse {ext} track: {exc}") from exc


def load_track_bytes(filename: str, data: bytes) -> list[Coordinate]:
    """Same as ``load_track`` for an uploaded file held in memory."""
    ext = os.path.splitext(filename)[1].lower()
    if ext not in TRACK_EXTENSIONS:
        raise UnreadableTrack(f"unsupported track format: {ext or filename}")
    fd, path = tempfile.mkstemp(suffix=ext)
    try:
        with os.fdopen(fd, "wb") as out:
            out.write(data)
        return load_track(path)
    finally:
        os.remove(path)


class ReplayPositionSource:
    """Emit a recorded list of coordinates on a background thread.

    Each subscriber gets its own replay thread. When the recording runs
    out the stream simply goes quiet, like a runner standing still.
    """

    def __init__(self, coordinates, interval: float = 1.0):
        self.coordinates = list(coordinates)
        self.interval = interval
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._replays: dict[int, tuple[threading.Event, object]] = {}

    @classmethod
    def from_gpx(cls, path: str, interval: float = 1.0) -> "ReplayPositionSource":
        return cls(load_gpx_coordinates(path), interval=interval)

    @classmethod
    def from_fit(cls, path: str, interval: float = 1.0) -> "ReplayPositionSource":
        return cls(load_fit_coordinates(path), interval=interval)

    def subscribe(self, on_sample, on_error) -> int:
        stop = threading.Event()
        with self._lock:
            handle = next(self._ids)
            self._replays[handle] = (stop, on_error)
        thread = threading.Thread(
            target=self._run,
            args=(handle, stop, on_sample, on_error),
            name=f"replay-{handle}",
            daemon=True,
        )
        thread.start()
        return handle

    def unsubscribe(self, handle) -> None:
        with self._lock:
            replay = self._replays.pop(handle, None)
        if replay is not None:
            replay[0].set()

    def fail(self, error) -> None:
        """Stop every replay and report `error` to its subscriber."""
        with self._lock:
            replays = list(self._replays.values())
            self._replays.clear()
        for stop, on_error in replays:
            stop.set()
            on_error(error)

    def _run(self, handle, stop, on_sample, on_error):
        if not self.coordinates:
            on_error(RuntimeError("recording contains no positions"))
            return
        for coord in self.coordinates:
            if stop.wait(self.interval):
                return
            on_sample(coord)
        logger.debug("replay %s exhausted after %d samples", handle, len(self.coordinates))
