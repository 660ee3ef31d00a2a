"""Clock-in/out state machine for time entries.

An entry moves ``active -> completed`` on clock-out, or to ``cancelled`` when a
manager voids it. Every successful mutation writes an audit row and commits in the
same transaction.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from staffclock.core.clock import Clock, ensure_utc, hours_between, local_date, utcnow
from staffclock.core.errors import (
    AlreadyActiveError,
    Forbidden,
    NoActiveEntryError,
    NotFound,
    ValidationError,
)
from staffclock.core.logging import get_logger
from staffclock.core.observability import clock_events, tracer
from staffclock.domains.audit.service import AuditLogger
from staffclock.domains.tenants.settings import TenantSettings, load_settings
from staffclock.domains.time_entries.location import enforce_location_policy
from staffclock.domains.time_entries.repository import TimeEntryRepository
from staffclock.models.time_entry import BreakPeriod, TimeEntry
from staffclock.models.user import User, role_at_least

logger = get_logger(__name__)


def _minutes_between(start: datetime, end: datetime) -> float:
    return max((ensure_utc(end) - ensure_utc(start)).total_seconds(), 0.0) / 60


class TimeEntryLedger:
    def __init__(self, session: Session, clock: Clock = utcnow):
        self.session = session
        self.clock = clock
        self.repository = TimeEntryRepository(session)
        self.audit = AuditLogger(session)

    # -- employee actions -------------------------------------------------

    def clock_in(self, user: User, *, location: dict[str, Any] | None = None, notes: str | None = None) -> TimeEntry:
        with tracer.start_as_current_span("time_entries.clock_in"):
            policy = load_settings(user.tenant)
            enforce_location_policy(policy.location, location, role=user.role)

            if self.repository.find_active_entry(user.id) is not None:
                raise AlreadyActiveError()

            now = self.clock()
            entry = TimeEntry(
                tenant_id=user.tenant_id,
                user_id=user.id,
                clock_in=now,
                work_date=local_date(now, user.tenant.timezone),
                status="active",
                total_break_minutes=0.0,
                location=location or None,
                notes=notes,
                created_by=user.id,
                last_modified_by=user.id,
            )
            self.repository.insert_entry(entry)
            self.audit.log(
                tenant_id=user.tenant_id,
                user_id=user.id,
                action="clock_in",
                resource="time_entry",
                resource_id=entry.id,
                details={"location": location} if location else None,
            )
            self.session.commit()
            self.session.refresh(entry)

        clock_events.add(1, {"event": "clock_in"})
        logger.info("clock_in", user_id=user.id, entry_id=entry.id, work_date=str(entry.work_date))
        return entry

    def clock_out(self, user: User, *, notes: str | None = None) -> TimeEntry:
        with tracer.start_as_current_span("time_entries.clock_out"):
            entry = self.repository.find_active_entry(user.id)
            if entry is None:
                raise NoActiveEntryError()

            now = self.clock()
            self._close_open_break(entry, now)
            entry.clock_out = now
            entry.total_hours = hours_between(entry.clock_in, now, entry.total_break_minutes or 0.0)
            entry.status = "completed"
            entry.last_modified_by = user.id
            if notes:
                entry.notes = notes
            self._apply_auto_approval(entry, load_settings(user.tenant), now)

            self.repository.update_entry(entry)
            self.audit.log(
                tenant_id=user.tenant_id,
                user_id=user.id,
                action="clock_out",
                resource="time_entry",
                resource_id=entry.id,
                details={"total_hours": entry.total_hours, "approval_status": entry.approval_status},
            )
            self.session.commit()
            self.session.refresh(entry)

        clock_events.add(1, {"event": "clock_out"})
        logger.info(
            "clock_out",
            user_id=user.id,
            entry_id=entry.id,
            total_hours=entry.total_hours,
            approval_status=entry.approval_status,
        )
        return entry

    def start_break(self, user: User) -> TimeEntry:
        policy = load_settings(user.tenant)
        self._ensure_breaks_enabled(policy)
        entry = self.repository.find_active_entry(user.id)
        if entry is None:
            raise NoActiveEntryError()
        if entry.open_break is not None:
            raise ValidationError("Break already in progress")
        limit = policy.breaks.max_breaks_per_day
        if limit is not None and len(entry.breaks) >= limit:
            raise ValidationError(f"Break limit of {limit} per shift reached")

        now = self.clock()
        entry.breaks.append(BreakPeriod(started_at=now))
        entry.last_modified_by = user.id
        self.repository.update_entry(entry)
        self.audit.log(
            tenant_id=user.tenant_id,
            user_id=user.id,
            action="break_start",
            resource="time_entry",
            resource_id=entry.id,
        )
        self.session.commit()
        self.session.refresh(entry)

        clock_events.add(1, {"event": "break_start"})
        logger.info("break_start", user_id=user.id, entry_id=entry.id)
        return entry

    def end_break(self, user: User) -> TimeEntry:
        self._ensure_breaks_enabled(load_settings(user.tenant))
        entry = self.repository.find_active_entry(user.id)
        if entry is None:
            raise NoActiveEntryError()
        if entry.open_break is None:
            raise ValidationError("No break in progress")

        minutes = self._close_open_break(entry, self.clock())
        entry.last_modified_by = user.id
        self.repository.update_entry(entry)
        self.audit.log(
            tenant_id=user.tenant_id,
            user_id=user.id,
            action="break_end",
            resource="time_entry",
            resource_id=entry.id,
            details={"minutes": round(minutes, 2)},
        )
        self.session.commit()
        self.session.refresh(entry)

        clock_events.add(1, {"event": "break_end"})
        logger.info("break_end", user_id=user.id, entry_id=entry.id, minutes=round(minutes, 2))
        return entry

    def active_entry(self, user: User) -> TimeEntry | None:
        return self.repository.find_active_entry(user.id)

    # -- manager actions --------------------------------------------------

    def get_entry(self, actor: User, entry_id: str) -> TimeEntry:
        entry = self._load(actor, entry_id)
        if not role_at_least(actor.role, "manager") and entry.user_id != actor.id:
            raise Forbidden("Access denied")
        return entry

    def edit_entry(
        self,
        actor: User,
        entry_id: str,
        *,
        clock_in: datetime | None = None,
        clock_out: datetime | None = None,
        notes: str | None = None,
        admin_notes: str | None = None,
    ) -> TimeEntry:
        self._require_manager(actor)
        entry = self._load(actor, entry_id)
        if entry.status == "cancelled":
            raise ValidationError("Cancelled entries cannot be edited")
        was_active = entry.status == "active"

        new_in = ensure_utc(clock_in) if clock_in else ensure_utc(entry.clock_in)
        new_out = ensure_utc(clock_out) if clock_out else ensure_utc(entry.clock_out)
        if new_out is not None and new_out <= new_in:
            raise ValidationError("Clock out time must be after clock in time")

        changes: dict[str, Any] = {}
        if clock_in:
            changes["clock_in"] = new_in.isoformat()
            entry.clock_in = new_in
            entry.work_date = local_date(new_in, actor.tenant.timezone)
        if clock_out:
            changes["clock_out"] = new_out.isoformat()
            self._close_open_break(entry, new_out)
            entry.clock_out = new_out
            entry.status = "completed"
        if notes is not None:
            changes["notes"] = notes
            entry.notes = notes
        if admin_notes is not None:
            changes["admin_notes"] = admin_notes
            entry.admin_notes = admin_notes
        if entry.clock_out is not None:
            entry.total_hours = hours_between(entry.clock_in, entry.clock_out, entry.total_break_minutes or 0.0)
        if was_active and entry.status == "completed":
            self._apply_auto_approval(entry, load_settings(actor.tenant), self.clock())
        entry.last_modified_by = actor.id

        self.repository.update_entry(entry)
        self.audit.log(
            tenant_id=actor.tenant_id,
            user_id=actor.id,
            action="time_entry_updated",
            resource="time_entry",
            resource_id=entry.id,
            details=changes,
        )
        self.session.commit()
        self.session.refresh(entry)
        logger.info("time_entry_updated", entry_id=entry.id, actor_id=actor.id, fields=sorted(changes))
        return entry

    def approve_entry(self, actor: User, entry_id: str) -> TimeEntry:
        self._require_manager(actor)
        entry = self._load(actor, entry_id)
        if entry.status != "completed":
            raise ValidationError("Only completed entries can be approved")

        entry.is_approved = True
        entry.approval_status = "approved"
        entry.approved_by = actor.id
        entry.approved_at = self.clock()
        entry.last_modified_by = actor.id

        self.repository.update_entry(entry)
        self.audit.log(
            tenant_id=actor.tenant_id,
            user_id=actor.id,
            action="time_entry_approved",
            resource="time_entry",
            resource_id=entry.id,
        )
        self.session.commit()
        self.session.refresh(entry)
        logger.info("time_entry_approved", entry_id=entry.id, approver_id=actor.id)
        return entry

    def cancel_entry(self, actor: User, entry_id: str, *, reason: str | None = None) -> TimeEntry:
        self._require_manager(actor)
        entry = self._load(actor, entry_id)
        if entry.status == "cancelled":
            raise ValidationError("Time entry is already cancelled")

        self._close_open_break(entry, self.clock())
        entry.status = "cancelled"
        entry.is_approved = False
        entry.last_modified_by = actor.id
        if reason:
            entry.admin_notes = f"{entry.admin_notes}\n{reason}" if entry.admin_notes else reason

        self.repository.update_entry(entry)
        self.audit.log(
            tenant_id=actor.tenant_id,
            user_id=actor.id,
            action="time_entry_cancelled",
            resource="time_entry",
            resource_id=entry.id,
            details={"reason": reason} if reason else None,
        )
        self.session.commit()
        self.session.refresh(entry)
        logger.info("time_entry_cancelled", entry_id=entry.id, actor_id=actor.id)
        return entry

    # -- helpers ----------------------------------------------------------

    def _load(self, actor: User, entry_id: str) -> TimeEntry:
        entry = self.repository.get(entry_id)
        if entry is None:
            raise NotFound("Time entry not found")
        if entry.tenant_id != actor.tenant_id:
            logger.warning("cross_tenant_access", entry_id=entry_id, actor_id=actor.id)
            raise Forbidden("Access denied")
        return entry

    @staticmethod
    def _require_manager(actor: User) -> None:
        if not role_at_least(actor.role, "manager"):
            raise Forbidden("Insufficient permissions")

    @staticmethod
    def _ensure_breaks_enabled(policy: TenantSettings) -> None:
        if not policy.breaks.enabled:
            raise ValidationError("Break tracking is disabled for this organization")

    @staticmethod
    def _close_open_break(entry: TimeEntry, at: datetime) -> float:
        period = entry.open_break
        if period is None:
            return 0.0
        period.ended_at = at
        minutes = _minutes_between(period.started_at, at)
        entry.total_break_minutes = (entry.total_break_minutes or 0.0) + minutes
        return minutes

    @staticmethod
    def _apply_auto_approval(entry: TimeEntry, policy: TenantSettings, now: datetime) -> None:
        approvals = policy.approvals
        under_threshold = (
            approvals.auto_approval_threshold is not None
            and (entry.total_hours or 0.0) < approvals.auto_approval_threshold
        )
        if approvals.require_manager_approval and not under_threshold:
            entry.approval_status = "pending"
            return
        entry.is_approved = True
        entry.approval_status = "auto_approved"
        entry.approved_at = now
