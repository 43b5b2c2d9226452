from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from pacemates.core.config import settings
from pacemates.core.errors import (
    FinalizeError,
    InvalidTransition,
    PresenceNotFound,
    StoreError,
    UnreadableTrack,
    classify_position_error,
)
from pacemates.runtime import Runtime, get_runtime
from pacemates.schemas.run import CompletedRunRead
from pacemates.schemas.tracking import CoordinateIn, PositionErrorIn, TrackingState
from pacemates.tracking.replay import ReplayPositionSource, load_track_bytes
from pacemates.tracking.sampler import PushPositionSource
from pacemates.tracking.tracker import RunTracker
from pacemates.tracking.types import RunStatus

router = APIRouter(prefix="/tracking", tags=["tracking"])


def _tracker_or_404(runtime: Runtime, owner_id: str) -> RunTracker:
    tracker = runtime.registry.get(owner_id)
    if tracker is None:
        raise HTTPException(status_code=404, detail="No run for this user")
    return tracker


def _state(tracker: RunTracker) -> TrackingState:
    return TrackingState.from_state(tracker.session.state(), tracker.error)


def _finalize_failed(exc: FinalizeError) -> HTTPException:
    return HTTPException(
        status_code=502,
        detail={"message": "Run finished but could not be saved", "step": exc.step.value},
    )


@router.post("/{owner_id}/start", response_model=TrackingState)
def start_run(owner_id: str, payload: CoordinateIn, runtime: Runtime = Depends(get_runtime)):
    try:
        tracker = runtime.registry.start(owner_id, payload.to_coordinate())
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except StoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return _state(tracker)


@router.post("/{owner_id}/join/{target_owner_id}", response_model=TrackingState)
def join_run(
    owner_id: str,
    target_owner_id: str,
    payload: CoordinateIn,
    runtime: Runtime = Depends(get_runtime),
):
    """Start a new run at the caller's own position next to a visible runner."""
    try:
        tracker = runtime.registry.join(owner_id, target_owner_id, payload.to_coordinate())
    except PresenceNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except StoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return _state(tracker)


@router.post("/{owner_id}/replay", response_model=TrackingState)
def replay_track(
    owner_id: str,
    file: UploadFile = File(...),
    runtime: Runtime = Depends(get_runtime),
):
    """Start a run fed server-side by an uploaded GPX or FIT track.

    The run starts at the first recorded point; the rest arrive one every
    `replay_interval_seconds` until the run is finished or cancelled.
    """
    filename = file.filename or "upload.gpx"
    try:
        coords = load_track_bytes(filename, file.file.read())
    except UnreadableTrack as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValueError as e:
        # out-of-range coordinates in the recording
        raise HTTPException(status_code=422, detail=str(e))
    if len(coords) < 2:
        raise HTTPException(status_code=400, detail="Track needs at least two positions")

    source = ReplayPositionSource(coords[1:], interval=settings.replay_interval_seconds)
    try:
        tracker = runtime.registry.start(owner_id, coords[0], source=source)
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except StoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return _state(tracker)


@router.post("/{owner_id}/positions", response_model=TrackingState)
def push_position(owner_id: str, payload: CoordinateIn, runtime: Runtime = Depends(get_runtime)):
    tracker = _tracker_or_404(runtime, owner_id)
    if tracker.status is not RunStatus.active:
        raise HTTPException(status_code=409, detail=f"Run is {tracker.status.value}")
    if not isinstance(tracker.source, PushPositionSource):
        raise HTTPException(status_code=409, detail="Run is fed by a recorded track")
    try:
        tracker.source.push(payload.to_coordinate())
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _state(tracker)


@router.post("/{owner_id}/position-error", response_model=TrackingState)
def report_position_error(
    owner_id: str,
    payload: PositionErrorIn,
    runtime: Runtime = Depends(get_runtime),
):
    """The device lost its location fix; the current run is aborted."""
    tracker = _tracker_or_404(runtime, owner_id)
    error = classify_position_error(payload.kind)
    if payload.message:
        error = type(error)(payload.message)
    tracker.source.fail(error)
    return _state(tracker)


@router.get("/{owner_id}", response_model=TrackingState)
def get_tracking_state(owner_id: str, runtime: Runtime = Depends(get_runtime)):
    return _state(_tracker_or_404(runtime, owner_id))


@router.post("/{owner_id}/finish", response_model=CompletedRunRead)
def finish_run(owner_id: str, runtime: Runtime = Depends(get_runtime)):
    tracker = _tracker_or_404(runtime, owner_id)
    try:
        run = tracker.finish()
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except FinalizeError as e:
        raise _finalize_failed(e)
    return CompletedRunRead.from_run(run)


@router.post("/{owner_id}/finalize", response_model=CompletedRunRead)
def retry_finalize(owner_id: str, runtime: Runtime = Depends(get_runtime)):
    """Retry saving a finished run after a failed finish. Safe to repeat."""
    tracker = _tracker_or_404(runtime, owner_id)
    try:
        run = tracker.finalize()
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except FinalizeError as e:
        raise _finalize_failed(e)
    return CompletedRunRead.from_run(run)


@router.post("/{owner_id}/cancel", response_model=TrackingState)
def cancel_run(owner_id: str, runtime: Runtime = Depends(get_runtime)):
    tracker = _tracker_or_404(runtime, owner_id)
    try:
        tracker.cancel()
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except StoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return _state(tracker)
