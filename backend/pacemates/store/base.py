from typing import Iterable, Optional, Protocol

from pacemates.tracking.types import (
    ActiveSessionRecord,
    CompletedRun,
    RunSessionSnapshot,
    UserProfile,
    UserStatistics,
)


class RunStore(Protocol):
    """Durable storage the engine needs.

    Implementations raise ``StoreWriteFailed`` / ``StoreReadFailed``. No
    transaction spans more than one method call.
    """

    # active sessions (shared presence collection)
    def upsert_active_session(self, record: ActiveSessionRecord) -> None: ...

    def delete_active_session(self, owner_id: str) -> bool: ...

    def list_active_sessions(self) -> list[ActiveSessionRecord]: ...

    def visibility_for(self, owner_ids: Iterable[str]) -> dict[str, bool]: ...

    # history and totals
    def insert_completed_run(self, snapshot: RunSessionSnapshot) -> CompletedRun: ...

    def apply_run_to_statistics(self, run: CompletedRun) -> bool: ...

    def get_statistics(self, owner_id: str) -> UserStatistics: ...

    def list_completed_runs(self, owner_id: str, limit: Optional[int] = None) -> list[CompletedRun]: ...

    # profiles
    def upsert_profile(self, profile: UserProfile) -> UserProfile: ...

    def get_profile(self, owner_id: str) -> Optional[UserProfile]: ...
