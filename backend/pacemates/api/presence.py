from fastapi import APIRouter, Depends

from pacemates.runtime import Runtime, get_runtime
from pacemates.schemas.tracking import ActiveSessionRead, PresenceRead

router = APIRouter(prefix="/presence", tags=["presence"])


@router.get("/{viewer_id}", response_model=PresenceRead)
def get_presence(viewer_id: str, runtime: Runtime = Depends(get_runtime)):
    """Other visible runners currently on a run, as seen by `viewer_id`.

    Every viewer reads the same background-maintained view, minus themselves.
    """
    view = runtime.registry.presence_view(viewer_id)
    return PresenceRead(
        viewer_id=viewer_id,
        stale=view.stale,
        refreshed_at=view.refreshed_at,
        runners=[ActiveSessionRead.from_record(view.sessions[o]) for o in view.owners],
    )
