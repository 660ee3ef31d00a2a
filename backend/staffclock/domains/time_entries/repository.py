from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session, selectinload

from staffclock.core.errors import AlreadyActiveError
from staffclock.core.logging import get_logger
from staffclock.db.session import retry_once
from staffclock.models.time_entry import TimeEntry

logger = get_logger(__name__)


@dataclass
class EntryFilter:
    tenant_id: str
    user_id: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    status: str | None = None
    is_approved: bool | None = None


class TimeEntryRepository:
    """Request-scoped access to time entries.

    The single-active-entry rule lives in the ``uq_time_entries_one_active_per_user``
    index; ``insert_entry`` translates a violation into :class:`AlreadyActiveError`.
    """

    def __init__(self, session: Session):
        self.session = session

    @retry_once
    def get(self, entry_id: str) -> TimeEntry | None:
        return self.session.get(TimeEntry, entry_id)

    @retry_once
    def find_active_entry(self, user_id: str) -> TimeEntry | None:
        return (
            self.session.query(TimeEntry)
            .filter(TimeEntry.user_id == user_id, TimeEntry.status == "active")
            .one_or_none()
        )

    def insert_entry(self, entry: TimeEntry) -> TimeEntry:
        self.session.add(entry)
        try:
            self.session.flush()
        except IntegrityError as exc:
            self.session.rollback()
            logger.info("clock_in_conflict", user_id=entry.user_id, error=str(exc.orig))
            raise AlreadyActiveError() from exc
        except DBAPIError:
            self.session.rollback()
            raise
        return entry

    def update_entry(self, entry: TimeEntry) -> TimeEntry:
        # Not retried: a rollback discards the pending changes.
        entry_id = entry.id
        self.session.add(entry)
        try:
            self.session.flush()
        except DBAPIError as exc:
            self.session.rollback()
            logger.warning("time_entry_write_failed", entry_id=entry_id, error=str(exc.orig))
            raise
        return entry

    @retry_once
    def list_entries(self, criteria: EntryFilter) -> list[TimeEntry]:
        query = (
            self.session.query(TimeEntry)
            .options(selectinload(TimeEntry.user), selectinload(TimeEntry.breaks))
            .filter(TimeEntry.tenant_id == criteria.tenant_id)
        )
        if criteria.user_id:
            query = query.filter(TimeEntry.user_id == criteria.user_id)
        if criteria.start_date:
            query = query.filter(TimeEntry.work_date >= criteria.start_date)
        if criteria.end_date:
            query = query.filter(TimeEntry.work_date <= criteria.end_date)
        if criteria.status:
            query = query.filter(TimeEntry.status == criteria.status)
        if criteria.is_approved is not None:
            query = query.filter(TimeEntry.is_approved.is_(criteria.is_approved))
        return query.order_by(TimeEntry.clock_in.desc(), TimeEntry.id.desc()).all()

    @retry_once
    def count_pending(self, tenant_id: str) -> int:
        return (
            self.session.query(TimeEntry)
            .filter(
                TimeEntry.tenant_id == tenant_id,
                TimeEntry.status == "completed",
                TimeEntry.is_approved.is_(False),
            )
            .count()
        )
