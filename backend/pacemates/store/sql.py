"""SQLAlchemy implementation of the run store.

Every public method is its own unit of work: open a session, do the work,
commit, close. Change events go out to the feed only after a commit
succeeded, so subscribers never see a change that was rolled back.
"""

import logging
from contextlib import contextmanager
from typing import Iterable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from pacemates.core.errors import StoreReadFailed, StoreWriteFailed
from pacemates.db import SessionLocal
from pacemates.models.active_session import ActiveSession
from pacemates.models.completed_run import CompletedRunRow
from pacemates.models.profile import Profile
from pacemates.models.user_statistics import UserStatisticsRow
from pacemates.presence.feed import ChangeEvent, ChangeKind
from pacemates.tracking.types import (
    ActiveSessionRecord,
    Coordinate,
    CompletedRun,
    RunSessionSnapshot,
    UserProfile,
    UserStatistics,
    route_from_json,
    route_to_json,
)

logger = logging.getLogger(__name__)


def _to_record(row: ActiveSession) -> ActiveSessionRecord:
    return ActiveSessionRecord(
        owner_id=row.owner_id,
        current_location=Coordinate(row.current_lat, row.current_lon),
        route=route_from_json(row.route),
        started_at=row.started_at,
    )


def _to_run(row: CompletedRunRow) -> CompletedRun:
    return CompletedRun(
        id=row.id,
        session_id=row.session_id,
        owner_id=row.owner_id,
        distance_meters=float(row.distance_m),
        duration_seconds=int(row.duration_seconds),
        route=route_from_json(row.route),
        created_at=row.created_at,
    )


def _to_profile(row: Profile) -> UserProfile:
    return UserProfile(
        id=row.id,
        display_name=row.display_name,
        is_visible=bool(row.is_visible),
        created_at=row.created_at,
    )


class SqlRunStore:
    def __init__(self, session_factory=SessionLocal, feed=None):
        self._session_factory = session_factory
        self.feed = feed

    @contextmanager
    def _session(self):
        db = self._session_factory()
        try:
            yield db
        finally:
            db.close()

    def _publish(self, kind: ChangeKind, owner_id: str) -> None:
        if self.feed is not None:
            self.feed.publish(ChangeEvent(kind=kind, owner_id=owner_id))

    # --------- Active sessions --------- #

    def upsert_active_session(self, record: ActiveSessionRecord) -> None:
        try:
            with self._session() as db:
                row = db.get(ActiveSession, record.owner_id)
                kind = ChangeKind.update
                if row is None:
                    row = ActiveSession(owner_id=record.owner_id)
                    db.add(row)
                    kind = ChangeKind.insert
                row.current_lat = record.current_location.latitude
                row.current_lon = record.current_location.longitude
                row.route = route_to_json(record.route)
                row.started_at = record.started_at
                db.commit()
        except SQLAlchemyError as exc:
            raise StoreWriteFailed(f"upsert active session for {record.owner_id}: {exc}") from exc
        self._publish(kind, record.owner_id)

    def delete_active_session(self, owner_id: str) -> bool:
        try:
            with self._session() as db:
                deleted = (
                    db.query(ActiveSession)
                    .filter(ActiveSession.owner_id == owner_id)
                    .delete(synchronize_session=False)
                )
                db.commit()
        except SQLAlchemyError as exc:
            raise StoreWriteFailed(f"delete active session for {owner_id}: {exc}") from exc
        if deleted:
            self._publish(ChangeKind.delete, owner_id)
        return bool(deleted)

    def list_active_sessions(self) -> list[ActiveSessionRecord]:
        try:
            with self._session() as db:
                rows = db.query(ActiveSession).order_by(ActiveSession.started_at).all()
                return [_to_record(r) for r in rows]
        except SQLAlchemyError as exc:
            raise StoreReadFailed(f"list active sessions: {exc}") from exc

    def visibility_for(self, owner_ids: Iterable[str]) -> dict[str, bool]:
        """Visibility per owner; owners without a profile count as visible."""
        ids = list(set(owner_ids))
        result = {owner_id: True for owner_id in ids}
        if not ids:
            return result
        try:
            with self._session() as db:
                rows = (
                    db.query(Profile.id, Profile.is_visible)
                    .filter(Profile.id.in_(ids))
                    .all()
                )
        except SQLAlchemyError as exc:
            raise StoreReadFailed(f"read visibility: {exc}") from exc
        for owner_id, is_visible in rows:
            result[owner_id] = bool(is_visible)
        return result

    # --------- History & statistics --------- #

    def insert_completed_run(self, snapshot: RunSessionSnapshot) -> CompletedRun:
        """Insert the run, or return the row already stored for this session."""
        try:
            with self._session() as db:
                existing = (
                    db.query(CompletedRunRow)
                    .filter(CompletedRunRow.session_id == snapshot.session_id)
                    .first()
                )
                if existing is not None:
                    logger.info("session %s already recorded as run %s", snapshot.session_id, existing.id)
                    return _to_run(existing)

                row = CompletedRunRow(
                    session_id=snapshot.session_id,
                    owner_id=snapshot.owner_id,
                    distance_m=snapshot.distance_meters,
                    duration_seconds=snapshot.elapsed_seconds,
                    route=route_to_json(snapshot.route),
                    started_at=snapshot.started_at,
                    created_at=snapshot.finished_at,
                )
                db.add(row)
                try:
                    db.commit()
                except IntegrityError:
                    # a concurrent finalize of the same session won the race
                    db.rollback()
                    row = (
                        db.query(CompletedRunRow)
                        .filter(CompletedRunRow.session_id == snapshot.session_id)
                        .one()
                    )
                    return _to_run(row)
                db.refresh(row)
                return _to_run(row)
        except SQLAlchemyError as exc:
            raise StoreWriteFailed(f"insert completed run for {snapshot.session_id}: {exc}") from exc

    def apply_run_to_statistics(self, run: CompletedRun) -> bool:
        """Add one run to its owner's totals, at most once per run.

        The ``stats_applied`` claim and the increment commit together, and
        the increment is computed by the database, not from a prior read.
        Returns False when the run had already been counted.
        """
        try:
            with self._session() as db:
                claimed = (
                    db.query(CompletedRunRow)
                    .filter(CompletedRunRow.id == run.id)
                    .filter(CompletedRunRow.stats_applied.is_(False))
                    .update({CompletedRunRow.stats_applied: True}, synchronize_session=False)
                )
                if not claimed:
                    db.rollback()
                    return False

                updated = (
                    db.query(UserStatisticsRow)
                    .filter(UserStatisticsRow.owner_id == run.owner_id)
                    .update(
                        {
                            UserStatisticsRow.total_runs: UserStatisticsRow.total_runs + 1,
                            UserStatisticsRow.total_distance_m: UserStatisticsRow.total_distance_m + run.distance_meters,
                            UserStatisticsRow.total_time_seconds: UserStatisticsRow.total_time_seconds + run.duration_seconds,
                        },
                        synchronize_session=False,
                    )
                )
                if not updated:
                    db.add(
                        UserStatisticsRow(
                            owner_id=run.owner_id,
                            total_runs=1,
                            total_distance_m=run.distance_meters,
                            total_time_seconds=run.duration_seconds,
                        )
                    )
                db.commit()
                return True
        except SQLAlchemyError as exc:
            raise StoreWriteFailed(f"update statistics for {run.owner_id}: {exc}") from exc

    def get_statistics(self, owner_id: str) -> UserStatistics:
        try:
            with self._session() as db:
                row = db.get(UserStatisticsRow, owner_id)
        except SQLAlchemyError as exc:
            raise StoreReadFailed(f"read statistics for {owner_id}: {exc}") from exc
        if row is None:
            return UserStatistics(owner_id=owner_id)
        return UserStatistics(
            owner_id=owner_id,
            total_runs=int(row.total_runs),
            total_distance_meters=float(row.total_distance_m),
            total_time_seconds=int(row.total_time_seconds),
        )

    def list_completed_runs(self, owner_id: str, limit: Optional[int] = None) -> list[CompletedRun]:
        try:
            with self._session() as db:
                query = (
                    db.query(CompletedRunRow)
                    .filter(CompletedRunRow.owner_id == owner_id)
                    # Most recent first
                    .order_by(CompletedRunRow.created_at.desc(), CompletedRunRow.id.desc())
                )
                if limit is not None:
                    query = query.limit(limit)
                return [_to_run(r) for r in query.all()]
        except SQLAlchemyError as exc:
            raise StoreReadFailed(f"list runs for {owner_id}: {exc}") from exc

    # --------- Profiles --------- #

    def upsert_profile(self, profile: UserProfile) -> UserProfile:
        try:
            with self._session() as db:
                row = db.get(Profile, profile.id)
                visibility_changed = row is None and not profile.is_visible
                if row is None:
                    row = Profile(id=profile.id)
                    db.add(row)
                elif bool(row.is_visible) != profile.is_visible:
                    visibility_changed = True
                row.display_name = profile.display_name
                row.is_visible = profile.is_visible
                has_session = db.get(ActiveSession, profile.id) is not None
                db.commit()
                db.refresh(row)
                saved = _to_profile(row)
        except SQLAlchemyError as exc:
            raise StoreWriteFailed(f"upsert profile {profile.id}: {exc}") from exc
        if visibility_changed and has_session:
            # presence views filter on visibility, so they must re-derive
            self._publish(ChangeKind.update, profile.id)
        return saved

    def get_profile(self, owner_id: str) -> Optional[UserProfile]:
        try:
            with self._session() as db:
                row = db.get(Profile, owner_id)
                return _to_profile(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise StoreReadFailed(f"read profile {owner_id}: {exc}") from exc
