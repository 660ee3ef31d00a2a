from __future__ import annotations

from datetime import date
from typing import Any, Literal

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from staffclock.api.deps import MANAGER_ROLES, get_clock, get_current_user, require_roles
from staffclock.core.clock import Clock
from staffclock.db.session import get_session
from staffclock.domains.reporting.reports import ReportService
from staffclock.domains.reporting.router import get_reports
from staffclock.domains.time_entries.ledger import TimeEntryLedger
from staffclock.domains.time_entries.schemas import (
    CancelRequest,
    ClockInRequest,
    ClockOutRequest,
    EntryUpdate,
    entry_out,
)
from staffclock.models.user import User

router = APIRouter(prefix="/time-entries", tags=["time-entries"])


def get_ledger(db: Session = Depends(get_session), clock: Clock = Depends(get_clock)) -> TimeEntryLedger:
    return TimeEntryLedger(db, clock)


@router.post("/clock-in", status_code=status.HTTP_201_CREATED)
def clock_in(
    payload: ClockInRequest | None = None,
    user: User = Depends(get_current_user),
    ledger: TimeEntryLedger = Depends(get_ledger),
) -> dict[str, Any]:
    payload = payload or ClockInRequest()
    location = payload.location.model_dump(exclude_none=True) if payload.location else None
    entry = ledger.clock_in(user, location=location, notes=payload.notes)
    return {"success": True, "message": "Clocked in successfully", "entry": entry_out(entry)}


@router.post("/clock-out")
def clock_out(
    payload: ClockOutRequest | None = None,
    user: User = Depends(get_current_user),
    ledger: TimeEntryLedger = Depends(get_ledger),
) -> dict[str, Any]:
    entry = ledger.clock_out(user, notes=payload.notes if payload else None)
    return {"success": True, "message": "Clocked out successfully", "entry": entry_out(entry)}


@router.post("/break/start")
def start_break(user: User = Depends(get_current_user), ledger: TimeEntryLedger = Depends(get_ledger)) -> dict[str, Any]:
    entry = ledger.start_break(user)
    return {"success": True, "message": "Break started", "entry": entry_out(entry)}


@router.post("/break/end")
def end_break(user: User = Depends(get_current_user), ledger: TimeEntryLedger = Depends(get_ledger)) -> dict[str, Any]:
    entry = ledger.end_break(user)
    return {"success": True, "message": "Break ended", "entry": entry_out(entry)}


@router.get("")
def list_time_entries(
    user_id: str | None = Query(default=None, alias="userId"),
    start_date: date | None = Query(default=None, alias="startDate"),
    end_date: date | None = Query(default=None, alias="endDate"),
    entry_status: Literal["active", "completed", "cancelled"] | None = Query(default=None, alias="status"),
    is_approved: bool | None = Query(default=None, alias="isApproved"),
    user: User = Depends(get_current_user),
    reports: ReportService = Depends(get_reports),
) -> dict[str, Any]:
    criteria = reports.scoped_filter(
        user,
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
        status=entry_status,
        is_approved=is_approved,
    )
    entries = reports.list_entries(criteria)
    return {"success": True, "entries": [entry_out(entry) for entry in entries], "count": len(entries)}


@router.get("/active")
def active_entry(user: User = Depends(get_current_user), ledger: TimeEntryLedger = Depends(get_ledger)) -> dict[str, Any]:
    entry = ledger.active_entry(user)
    return {"success": True, "entry": entry_out(entry) if entry else None}


@router.get("/weekly-report")
def weekly_report(
    week_offset: int = Query(default=0, alias="weekOffset", ge=-52, le=0),
    user: User = Depends(get_current_user),
    reports: ReportService = Depends(get_reports),
) -> dict[str, Any]:
    report = reports.weekly_report(user, week_offset)
    return {"success": True, **report.model_dump(mode="json", by_alias=True)}


@router.get("/{entry_id}")
def get_time_entry(
    entry_id: str,
    user: User = Depends(get_current_user),
    ledger: TimeEntryLedger = Depends(get_ledger),
) -> dict[str, Any]:
    return {"success": True, "entry": entry_out(ledger.get_entry(user, entry_id))}


@router.put("/{entry_id}")
def update_time_entry(
    entry_id: str,
    payload: EntryUpdate,
    user: User = Depends(require_roles(*MANAGER_ROLES)),
    ledger: TimeEntryLedger = Depends(get_ledger),
) -> dict[str, Any]:
    entry = ledger.edit_entry(
        user,
        entry_id,
        clock_in=payload.clock_in,
        clock_out=payload.clock_out,
        notes=payload.notes,
        admin_notes=payload.admin_notes,
    )
    return {"success": True, "entry": entry_out(entry)}


@router.patch("/{entry_id}/approve")
def approve_time_entry(
    entry_id: str,
    user: User = Depends(require_roles(*MANAGER_ROLES)),
    ledger: TimeEntryLedger = Depends(get_ledger),
) -> dict[str, Any]:
    return {"success": True, "entry": entry_out(ledger.approve_entry(user, entry_id))}


@router.patch("/{entry_id}/cancel")
def cancel_time_entry(
    entry_id: str,
    payload: CancelRequest | None = None,
    user: User = Depends(require_roles(*MANAGER_ROLES)),
    ledger: TimeEntryLedger = Depends(get_ledger),
) -> dict[str, Any]:
    entry = ledger.cancel_entry(user, entry_id, reason=payload.reason if payload else None)
    return {"success": True, "entry": entry_out(entry)}
