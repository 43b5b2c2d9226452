from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from pacemates.core.errors import StoreError
from pacemates.runtime import Runtime, get_runtime
from pacemates.schemas.profile import ProfileRead, ProfileUpsert
from pacemates.schemas.run import CompletedRunRead, StatisticsRead
from pacemates.tracking.types import UserProfile

router = APIRouter(prefix="/users", tags=["users"])


@router.put("/{owner_id}", response_model=ProfileRead)
def upsert_profile(owner_id: str, payload: ProfileUpsert, runtime: Runtime = Depends(get_runtime)):
    try:
        profile = runtime.store.upsert_profile(
            UserProfile(id=owner_id, display_name=payload.display_name, is_visible=payload.is_visible)
        )
    except StoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return profile


@router.get("/{owner_id}", response_model=ProfileRead)
def get_profile(owner_id: str, runtime: Runtime = Depends(get_runtime)):
    try:
        profile = runtime.store.get_profile(owner_id)
    except StoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


@router.get("/{owner_id}/stats", response_model=StatisticsRead)
def get_statistics(owner_id: str, runtime: Runtime = Depends(get_runtime)):
    try:
        stats = runtime.store.get_statistics(owner_id)
    except StoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return StatisticsRead.from_stats(stats)


@router.get("/{owner_id}/runs", response_model=list[CompletedRunRead])
def list_runs(
    owner_id: str,
    limit: Optional[int] = Query(None, ge=1, le=500),
    runtime: Runtime = Depends(get_runtime),
):
    """Run history, most recent first."""
    try:
        runs = runtime.store.list_completed_runs(owner_id, limit=limit)
    except StoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return [CompletedRunRead.from_run(r) for r in runs]
