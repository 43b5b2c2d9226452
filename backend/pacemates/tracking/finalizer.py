import logging

from pacemates.core.errors import FinalizeError, FinalizeStep, StoreError
from pacemates.store.base import RunStore
from pacemates.tracking.types import CompletedRun, RunSessionSnapshot

logger = logging.getLogger(__name__)


class RunFinalizer:
    """Turn a finished session into history and updated totals.

    Three independent writes, applied in order:

    1. record the completed run (keyed by ``session_id``)
    2. remove the runner's active-session record
    3. add the run to the runner's statistics (at most once per run)

    A failing step raises ``FinalizeError`` naming the step; earlier steps
    stay applied. Every step is idempotent, so calling ``finalize`` again
    with the same snapshot resumes where the last attempt stopped.
    """

    def __init__(self, store: RunStore):
        self.store = store

    def finalize(self, snapshot: RunSessionSnapshot) -> CompletedRun:
        try:
            run = self.store.insert_completed_run(snapshot)
        except StoreError as exc:
            raise FinalizeError(FinalizeStep.record_run, exc) from exc

        try:
            self.store.delete_active_session(snapshot.owner_id)
        except StoreError as exc:
            raise FinalizeError(FinalizeStep.clear_presence, exc) from exc

        try:
            applied = self.store.apply_run_to_statistics(run)
        except StoreError as exc:
            raise FinalizeError(FinalizeStep.update_statistics, exc) from exc

        if applied:
            logger.info(
                "run %s recorded for %s (%.1f m, %d s)",
                run.id, run.owner_id, run.distance_meters, run.duration_seconds,
            )
        else:
            logger.info("run %s was already counted, finalize was a retry", run.id)
        return run
